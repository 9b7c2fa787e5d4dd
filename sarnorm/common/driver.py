# SPDX-FileCopyrightText: Aresys S.r.l. <info@aresys.it>
# SPDX-License-Identifier: MIT

"""
Generic product directory driver
--------------------------------
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

from sarnorm.common.metadata import MetadataNode
from sarnorm.common.product import SARProduct
from sarnorm.common.protocols import ProductDirectoryParser

logger = logging.getLogger(__name__)

_RASTER_EXTENSIONS = (".tif", ".tiff")


def read_product_directory(parser: ProductDirectoryParser, product_dir: Union[str, Path]) -> SARProduct:
    """Running the parser stages in their fixed order on a product directory.

    Stages: header parsing, metadata normalization, image file registration, product creation,
    band mapping, geocoding, derived tie-point grids.

    Parameters
    ----------
    parser : ProductDirectoryParser
        mission specific parser
    product_dir : Union[str, Path]
        path to the product directory

    Returns
    -------
    SARProduct
        fully populated product, owning the parser decoders
    """
    product_dir = Path(product_dir)
    header_path = product_dir.joinpath(parser.get_header_file_name())

    try:
        logger.debug("Stage header: parsing %s", header_path)
        root = MetadataNode.from_file(header_path)

        logger.debug("Stage add_abstracted_metadata_header")
        parser.add_abstracted_metadata_header(root)

        logger.debug("Stage add_image_file")
        raster_files = sorted(f for f in product_dir.iterdir() if f.suffix.lower() in _RASTER_EXTENSIONS)
        for raster_file in raster_files:
            parser.add_image_file(raster_file)

        logger.debug("Stage create_product")
        product = parser.create_product(root)

        logger.debug("Stage add_bands")
        parser.add_bands(product)

        logger.debug("Stage add_geocoding")
        parser.add_geocoding(product)

        logger.debug("Stage add_tie_point_grids")
        parser.add_tie_point_grids(product)
    except Exception:
        parser.close()
        raise

    logger.info(
        "Opened %s: type %s, %dx%d, %d bands",
        product.name,
        product.product_type,
        product.width,
        product.height,
        len(product.band_names),
    )

    return product
