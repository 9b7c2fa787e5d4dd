# SPDX-FileCopyrightText: Aresys S.r.l. <info@aresys.it>
# SPDX-License-Identifier: MIT

"""
Serialized GeoTIFF window decoder
---------------------------------
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Union

import numpy as np
import tifffile
import zarr

from sarnorm.common.exceptions import RasterReadError

logger = logging.getLogger(__name__)


class GeoTiffImageDecoder:
    """Window reader for a single source GeoTIFF.

    The zarr view of the tiff keeps read state, so all reads of one decoder go through a single
    lock. Decoders of different source images are independent.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._store = None
        self._array = None

        with tifffile.TiffFile(self._path) as tif:
            self._shape = tuple(tif.series[0].shape)

    @property
    def path(self) -> Path:
        """Path to the source image"""
        return self._path

    @property
    def name(self) -> str:
        """Lowercase file name of the source image"""
        return self._path.name.lower()

    @property
    def shape(self) -> tuple[int, ...]:
        """Shape of the image series: (lines, samples) or (lines, samples, bands)"""
        return self._shape

    @property
    def num_bands(self) -> int:
        """Number of samples per pixel"""
        return self._shape[2] if len(self._shape) == 3 else 1

    def _open_array(self):
        if self._array is None:
            self._store = tifffile.imread(self._path, aszarr=True)
            self._array = zarr.open(self._store, mode="r")
        return self._array

    def read_window(
        self,
        band_index: int,
        offset_x: int,
        offset_y: int,
        width: int,
        height: int,
        step_x: int = 1,
        step_y: int = 1,
    ) -> np.ndarray:
        """Reading a subsampled rectangular window of one band.

        Parameters
        ----------
        band_index : int
            sample index within the pixel (0 for single band images)
        offset_x : int
            first sample to be read
        offset_y : int
            first line to be read
        width : int
            number of output samples
        height : int
            number of output lines
        step_x : int, optional
            sample subsampling factor, by default 1
        step_y : int, optional
            line subsampling factor, by default 1

        Returns
        -------
        np.ndarray
            window data with shape (height, width) at most, clipped at the image border

        Raises
        ------
        RasterReadError
            if the window cannot be decoded
        """
        with self._lock:
            try:
                array = self._open_array()
                window = array[
                    offset_y : offset_y + height * step_y : step_y,
                    offset_x : offset_x + width * step_x : step_x,
                ]
                window = np.asarray(window)
                if window.ndim == 3:
                    window = window[:, :, band_index]
                elif band_index != 0:
                    raise IndexError(f"band {band_index} requested from a single band image")
            except Exception as err:
                logger.exception(
                    "Decoding failed for %s window (%d, %d, %d, %d)", self.name, offset_x, offset_y, width, height
                )
                raise RasterReadError(f"cannot read window from {self._path}") from err

        return window

    def close(self) -> None:
        """Releasing the underlying tiff store"""
        with self._lock:
            if self._store is not None:
                self._store.close()
            self._store = None
            self._array = None

