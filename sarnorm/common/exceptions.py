# SPDX-FileCopyrightText: Aresys S.r.l. <info@aresys.it>
# SPDX-License-Identifier: MIT

"""
Common exception hierarchy
--------------------------

Every error raised while normalizing a product derives from ``SARNormError`` and from the
built-in exception closest to its meaning, so callers can catch either.
"""


class SARNormError(Exception):
    """Base exception for all product normalization errors"""


class UnsupportedFormatError(SARNormError, ValueError):
    """Raster container format not supported by the reader"""


class MalformedCoefficientsError(SARNormError, ValueError):
    """Polynomial or LUT coefficient string containing a non-numeric token"""


class InvalidGeometryError(SARNormError, RuntimeError):
    """Tie-point count mismatch, degenerate grid or degenerate time interval"""


class MissingFieldError(SARNormError, LookupError):
    """Vendor metadata field with no acceptable default is absent or unreadable"""


class RasterReadError(SARNormError, OSError):
    """Pixel read failure for a raster window"""
