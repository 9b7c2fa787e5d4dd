# SPDX-FileCopyrightText: Aresys S.r.l. <info@aresys.it>
# SPDX-License-Identifier: MIT

"""
Tie-point grids and tie-point based geocoding
---------------------------------------------
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from sarnorm.common.exceptions import InvalidGeometryError
from sarnorm.common.utilities import Unit

TPG_LATITUDE = "latitude"
TPG_LONGITUDE = "longitude"
TPG_INCIDENT_ANGLE = "incident_angle"
TPG_SLANT_RANGE_TIME = "slant_range_time"


@dataclass
class TiePointGrid:
    """Coarse regular grid of values covering a raster.

    Tie point (i, j) is located at image coordinates
    (offset_x + i * subsampling_x, offset_y + j * subsampling_y). Values are stored row major,
    one row per azimuth tie point.
    """

    name: str
    width: int
    height: int
    offset_x: float
    offset_y: float
    subsampling_x: float
    subsampling_y: float
    values: np.ndarray
    unit: Unit = Unit.DEGREES
    discontinuity_at_180: bool = False

    def __post_init__(self) -> None:
        self.values = np.asarray(self.values, dtype=np.float32).ravel()
        if self.width < 2 or self.height < 2:
            raise InvalidGeometryError(
                f"{self.name} tie-point grid must be at least 2x2, got {self.width}x{self.height}"
            )
        if self.values.size != self.width * self.height:
            raise InvalidGeometryError(
                f"{self.name} tie-point grid has {self.values.size} values, expected {self.width}x{self.height}"
            )
        if self.subsampling_x <= 0 or self.subsampling_y <= 0:
            raise InvalidGeometryError(f"{self.name} tie-point grid subsampling must be positive")

    @property
    def grid(self) -> np.ndarray:
        """Values as a (height, width) array view"""
        return self.values.reshape(self.height, self.width)

    def get_pixel_double(self, x: float, y: float) -> float:
        """Bilinear interpolation of the grid at continuous image coordinates (x, y).

        Coordinates outside the tie-point lattice are linearly extrapolated from the nearest cell.

        Parameters
        ----------
        x : float
            image coordinate along range (pixel corner convention, pixel centers at i + 0.5)
        y : float
            image coordinate along azimuth

        Returns
        -------
        float
            interpolated value
        """
        fi = (x - self.offset_x) / self.subsampling_x
        fj = (y - self.offset_y) / self.subsampling_y
        i = int(np.clip(np.floor(fi), 0, self.width - 2))
        j = int(np.clip(np.floor(fj), 0, self.height - 2))
        wi = fi - i
        wj = fj - j

        grid = self.grid
        corners = np.array(
            [grid[j, i], grid[j, i + 1], grid[j + 1, i], grid[j + 1, i + 1]],
            dtype=float,
        )

        wrapped = False
        if self.discontinuity_at_180 and corners.max() - corners.min() > 180.0:
            corners[corners < 0] += 360.0
            wrapped = True

        v00, v10, v01, v11 = corners
        value = (1 - wi) * (1 - wj) * v00 + wi * (1 - wj) * v10 + (1 - wi) * wj * v01 + wi * wj * v11

        if wrapped and value > 180.0:
            value -= 360.0

        return float(value)

    def get_pixel_value(self, x: int, y: int) -> float:
        """Interpolated value at the center of the integer pixel (x, y)"""
        return self.get_pixel_double(x + 0.5, y + 0.5)


class TiePointGeoCoding:
    """Pixel to geographic coordinates conversion from latitude and longitude tie-point grids"""

    def __init__(self, lat_grid: TiePointGrid, lon_grid: TiePointGrid) -> None:
        if (lat_grid.width, lat_grid.height) != (lon_grid.width, lon_grid.height):
            raise InvalidGeometryError("latitude and longitude tie-point grids have different sizes")
        self._lat_grid = lat_grid
        self._lon_grid = lon_grid

    @property
    def lat_grid(self) -> TiePointGrid:
        """Latitude tie-point grid"""
        return self._lat_grid

    @property
    def lon_grid(self) -> TiePointGrid:
        """Longitude tie-point grid"""
        return self._lon_grid

    def get_geo_pos(self, x: float, y: float) -> tuple[float, float]:
        """Geographic position at continuous image coordinates.

        Parameters
        ----------
        x : float
            image coordinate along range
        y : float
            image coordinate along azimuth

        Returns
        -------
        tuple[float, float]
            latitude [deg],
            longitude [deg]
        """
        return self._lat_grid.get_pixel_double(x, y), self._lon_grid.get_pixel_double(x, y)
