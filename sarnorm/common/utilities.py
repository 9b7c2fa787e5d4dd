# SPDX-FileCopyrightText: Aresys S.r.l. <info@aresys.it>
# SPDX-License-Identifier: MIT

"""
Common Enum, dataclasses and other utilities
--------------------------------------------
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
from arepytools.timing.precisedatetime import PreciseDateTime
from numpy.polynomial import Polynomial

from sarnorm.common.exceptions import MalformedCoefficientsError

# plain decimal or scientific notation, no digit separators, no nan or inf
_NUMBER_PATTERN = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class SARPolarization(Enum):
    """Polarization enum class"""

    HH = "H/H"
    VV = "V/V"
    HV = "H/V"
    VH = "V/H"
    RH = "R/H"
    RV = "R/V"


COMPACT_POLARIZATIONS = (SARPolarization.RH, SARPolarization.RV)


class Unit(Enum):
    """Physical unit of bands and tie-point grids"""

    REAL = "real"
    IMAGINARY = "imaginary"
    AMPLITUDE = "amplitude"
    INTENSITY = "intensity"
    DEGREES = "deg"
    NANOSECONDS = "ns"


@dataclass
class OrbitStateVector:
    """Platform state at a given time, Earth-fixed frame"""

    time: PreciseDateTime
    position: np.ndarray  # x, y, z [m]
    velocity: np.ndarray  # x, y, z [m/s]


@dataclass
class CoefficientSegment:
    """Generic polynomial segment: coefficients in increasing degree order, applied to (x - origin)"""

    reference_time: PreciseDateTime
    origin: float
    coefficients: np.ndarray = field(default_factory=lambda: np.zeros(0))

    @property
    def polynomial(self) -> Polynomial:
        """Polynomial built from the segment coefficients"""
        return Polynomial(self.coefficients)

    def evaluate(self, x: float | np.ndarray) -> float | np.ndarray:
        """Evaluate the segment polynomial at x, relative to the segment origin.

        Parameters
        ----------
        x : float | np.ndarray
            abscissa value(s)

        Returns
        -------
        float | np.ndarray
            polynomial value(s)
        """
        return self.polynomial(np.asarray(x, dtype=float) - self.origin)


@dataclass
class SRGRCoefficientSet(CoefficientSegment):
    """Ground range to slant range polynomial, origin is the ground range origin [m]"""


@dataclass
class DopplerCoefficientSet(CoefficientSegment):
    """Doppler centroid polynomial, origin is the slant range time reference [ns]"""


@dataclass
class CalibrationLUT:
    """Radiometric calibration look-up table"""

    name: str
    offset: float
    gains: np.ndarray


def parse_coefficients(text: str | None, field_name: str = "coefficients") -> np.ndarray:
    """Parsing a whitespace delimited string of numbers, keeping the vendor order.

    Parameters
    ----------
    text : str | None
        string to be parsed, None or blank strings give an empty array
    field_name : str, optional
        name of the field being parsed, used in error messages

    Returns
    -------
    np.ndarray
        parsed values as float64 array

    Raises
    ------
    MalformedCoefficientsError
        if any token is not a valid number
    """
    if text is None:
        return np.zeros(0)

    values = []
    for token in text.split():
        if _NUMBER_PATTERN.fullmatch(token) is None:
            raise MalformedCoefficientsError(f"{field_name}: token {token!r} is not a valid number")
        values.append(float(token))

    return np.array(values, dtype=float)
