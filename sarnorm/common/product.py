# SPDX-FileCopyrightText: Aresys S.r.l. <info@aresys.it>
# SPDX-License-Identifier: MIT

"""
Normalized product container
----------------------------
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from sarnorm.common.exceptions import RasterReadError
from sarnorm.common.metadata import NormalizedMetadata
from sarnorm.common.raster import GeoTiffImageDecoder
from sarnorm.common.tie_point_grid import TiePointGeoCoding, TiePointGrid
from sarnorm.common.utilities import Unit

logger = logging.getLogger(__name__)


@dataclass
class Band:
    """Raster band backed by one sample of a source image"""

    name: str
    data_type: np.dtype
    width: int
    height: int
    unit: Unit
    image_name: str  # lowercase file name of the source image
    band_index: int  # sample index within the source image pixel


@dataclass
class VirtualBand:
    """Band computed from other bands with an arithmetic expression"""

    name: str
    expression: str
    width: int
    height: int
    unit: Unit = Unit.INTENSITY
    data_type: np.dtype = field(default_factory=lambda: np.dtype(np.float32))


@dataclass
class SARProduct:
    """Normalized, geolocated SAR product"""

    name: str
    product_type: str
    width: int
    height: int
    metadata: NormalizedMetadata
    bands: list[Band] = field(default_factory=list)
    virtual_bands: list[VirtualBand] = field(default_factory=list)
    tie_point_grids: dict[str, TiePointGrid] = field(default_factory=dict)
    geocoding: TiePointGeoCoding | None = None
    decoders: dict[str, GeoTiffImageDecoder] = field(default_factory=dict)

    def add_band(self, band: Band) -> None:
        """Adding a band, names are unique"""
        if band.name in self.band_names:
            raise ValueError(f"band {band.name} already exists")
        self.bands.append(band)

    def add_virtual_band(self, band: VirtualBand) -> None:
        """Adding a virtual band, names are unique"""
        if band.name in self.band_names:
            raise ValueError(f"band {band.name} already exists")
        self.virtual_bands.append(band)

    def add_tie_point_grid(self, grid: TiePointGrid) -> None:
        """Adding a tie-point grid, replacing any grid with the same name"""
        self.tie_point_grids[grid.name] = grid

    @property
    def band_names(self) -> list[str]:
        """Names of real and virtual bands, in insertion order"""
        return [b.name for b in self.bands] + [b.name for b in self.virtual_bands]

    def get_band(self, name: str) -> Band:
        """Real band by name"""
        for band in self.bands:
            if band.name == name:
                return band
        raise KeyError(name)

    def read_band_raster(
        self,
        band_name: str,
        offset_x: int,
        offset_y: int,
        width: int,
        height: int,
        step_x: int = 1,
        step_y: int = 1,
    ) -> np.ndarray:
        """Reading a window of a real band through its source image decoder.

        Raises
        ------
        RasterReadError
            if the band has no decoder or the window cannot be decoded
        """
        band = self.get_band(band_name)
        decoder = self.decoders.get(band.image_name)
        if decoder is None:
            raise RasterReadError(f"no decoder for image {band.image_name}")

        data = decoder.read_window(band.band_index, offset_x, offset_y, width, height, step_x, step_y)
        return data.astype(band.data_type, copy=False)

    def close(self) -> None:
        """Releasing all source image decoders"""
        for decoder in self.decoders.values():
            decoder.close()
        logger.debug("Closed %d decoders of %s", len(self.decoders), self.name)
        self.decoders.clear()
