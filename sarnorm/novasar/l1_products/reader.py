# SPDX-FileCopyrightText: Aresys S.r.l. <info@aresys.it>
# SPDX-License-Identifier: MIT

"""
NOVASAR product format reader
-----------------------------
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import sarnorm.novasar.l1_products.utilities as support
from sarnorm.common.driver import read_product_directory
from sarnorm.common.exceptions import InvalidGeometryError
from sarnorm.common.metadata import MetadataKey, MetadataNode, NormalizedMetadata
from sarnorm.common.product import SARProduct
from sarnorm.common.raster import GeoTiffImageDecoder
from sarnorm.novasar.l1_products.bands import SourceImage, apply_compact_mode, build_bands
from sarnorm.novasar.l1_products.geocoding import (
    create_geocoding,
    create_incidence_angle_grid,
    create_slant_range_time_grid,
)

logger = logging.getLogger(__name__)


class NovaSAR1ProductDirectory:
    """NovaSAR-1 L1 product folder parser, stages are run by the generic product directory driver"""

    def __init__(self, product_dir: Union[str, Path], config: support.NovaSAR1ReaderConfig | None = None) -> None:
        self._product_dir = Path(product_dir)
        self._config = config if config is not None else support.NovaSAR1ReaderConfig()
        self._root: MetadataNode | None = None
        self._metadata: NormalizedMetadata | None = None
        self._decoders: dict[str, GeoTiffImageDecoder] = {}

    @property
    def image_names(self) -> list[str]:
        """Registered source images, in registration order"""
        return list(self._decoders)

    def get_header_file_name(self) -> str:
        return support.METADATA_FILE

    def add_abstracted_metadata_header(self, root: MetadataNode) -> None:
        self._root = root
        self._metadata = support.normalize_metadata(root)
        self._metadata.calibration_luts = support.read_calibration_luts(self._product_dir)
        logger.debug("Calibration LUTs found: %s", sorted(self._metadata.calibration_luts))

    def add_image_file(self, path: Path) -> None:
        path = Path(path)
        if not support.is_recognized_image_file(path.name):
            logger.debug("Skipping %s: not a NovaSAR image file", path.name)
            return

        decoder = GeoTiffImageDecoder(path)
        self._decoders[decoder.name] = decoder
        logger.debug("Registered image %s, shape %s", decoder.name, decoder.shape)

    def create_product(self, root: MetadataNode) -> SARProduct:
        metadata = self._require_metadata()
        product = SARProduct(
            name=metadata[MetadataKey.PRODUCT],
            product_type=metadata[MetadataKey.PRODUCT_TYPE],
            width=metadata[MetadataKey.NUM_SAMPLES_PER_LINE],
            height=metadata[MetadataKey.NUM_OUTPUT_LINES],
            metadata=metadata,
        )
        product.decoders.update(self._decoders)
        return product

    def add_bands(self, product: SARProduct) -> None:
        metadata = product.metadata
        is_slc = metadata[MetadataKey.SLC_FLAG] != 0

        polarizations = support.build_polarization_table(self._decoders, metadata.polarization_map)

        images = []
        for name, decoder in self._decoders.items():
            # complex samples are stored as (real, imaginary) sample pairs
            num_bands = max(decoder.num_bands // 2, 1) if is_slc else decoder.num_bands
            images.append(SourceImage(name=name, num_bands=num_bands))

        band_set = build_bands(product.width, product.height, is_slc, images, polarizations)
        for band in band_set.bands:
            product.add_band(band)
        for virtual_band in band_set.virtual_bands:
            product.add_virtual_band(virtual_band)

        apply_compact_mode(metadata, polarizations)

    def add_geocoding(self, product: SARProduct) -> None:
        root = self._require_root()
        geocoding = create_geocoding(
            geographic_information=support.get_metadata_section(root, "geographicInformation"),
            metadata=product.metadata,
            width=product.width,
            height=product.height,
            flip_to_sar_geometry=self._config.flip_to_sar_geometry,
        )
        product.add_tie_point_grid(geocoding.lat_grid)
        product.add_tie_point_grid(geocoding.lon_grid)
        product.geocoding = geocoding

    def add_tie_point_grids(self, product: SARProduct) -> None:
        root = self._require_root()
        if product.geocoding is None:
            raise InvalidGeometryError("geocoding must be added before the derived tie-point grids")

        product.add_tie_point_grid(
            create_incidence_angle_grid(
                image_generation_parameters=support.get_metadata_section(root, "Image_Generation_Parameters"),
                metadata=product.metadata,
                geocoding=product.geocoding,
                width=product.width,
                height=product.height,
                grid_size=self._config.tie_point_grid_size,
                flip_to_sar_geometry=self._config.flip_to_sar_geometry,
            )
        )

        if self._config.add_slant_range_time_grid:
            product.add_tie_point_grid(
                create_slant_range_time_grid(
                    metadata=product.metadata,
                    width=product.width,
                    height=product.height,
                    grid_size=self._config.tie_point_grid_size,
                    flip_to_sar_geometry=self._config.flip_to_sar_geometry,
                )
            )

    def close(self) -> None:
        for decoder in self._decoders.values():
            decoder.close()
        self._decoders.clear()

    def _require_root(self) -> MetadataNode:
        if self._root is None:
            raise RuntimeError("metadata header has not been processed")
        return self._root

    def _require_metadata(self) -> NormalizedMetadata:
        if self._metadata is None:
            raise RuntimeError("metadata header has not been processed")
        return self._metadata


def read_product(
    pf_path: Union[str, Path], config: support.NovaSAR1ReaderConfig | None = None
) -> SARProduct:
    """Reading a NovaSAR-1 product folder into a normalized, geolocated product.

    Parameters
    ----------
    pf_path : Union[str, Path]
        Path to the NovaSAR-1 product folder
    config : support.NovaSAR1ReaderConfig | None, optional
        reader configuration, by default NovaSAR1ReaderConfig()

    Returns
    -------
    SARProduct
        normalized product, to be closed by the caller
    """
    return read_product_directory(NovaSAR1ProductDirectory(pf_path, config), pf_path)


def open_product(
    pf_path: Union[str, Path], config: support.NovaSAR1ReaderConfig | None = None
) -> SARProduct:
    """Open a NovaSAR-1 product.

    Parameters
    ----------
    pf_path : Union[str, Path]
        Path to the NovaSAR-1 product
    config : support.NovaSAR1ReaderConfig | None, optional
        reader configuration, by default NovaSAR1ReaderConfig()

    Returns
    -------
    SARProduct
        SARProduct object corresponding to the input NovaSAR-1 product

    Raises
    ------
    support.InvalidNovaSAR1Product
        if the path is not a NovaSAR-1 product folder
    """

    if not support.is_novasar_1_product(product=pf_path):
        raise support.InvalidNovaSAR1Product(f"{pf_path}")

    return read_product(pf_path, config)
