# SPDX-FileCopyrightText: Aresys S.r.l. <info@aresys.it>
# SPDX-License-Identifier: MIT

"""
Common Protocols to be matched for each implementation
------------------------------------------------------
"""

from pathlib import Path
from typing import Protocol, runtime_checkable

from sarnorm.common.metadata import MetadataNode
from sarnorm.common.product import SARProduct


@runtime_checkable
class ProductDirectoryParser(Protocol):
    """Protocol to define the stages of a mission specific product directory parser"""

    def get_header_file_name(self) -> str:
        """Name of the vendor metadata file inside the product directory"""

    def add_abstracted_metadata_header(self, root: MetadataNode) -> None:
        """Normalizing the vendor metadata tree.

        Parameters
        ----------
        root : MetadataNode
            root of the vendor metadata tree
        """

    def add_image_file(self, path: Path) -> None:
        """Registering a raster file of the product, unrecognized files are skipped.

        Parameters
        ----------
        path : Path
            path to the raster file
        """

    def create_product(self, root: MetadataNode) -> SARProduct:
        """Creating the host product from the normalized metadata"""

    def add_bands(self, product: SARProduct) -> None:
        """Adding bands and virtual bands to the product"""

    def add_geocoding(self, product: SARProduct) -> None:
        """Adding latitude/longitude tie-point grids and geocoding to the product"""

    def add_tie_point_grids(self, product: SARProduct) -> None:
        """Adding derived tie-point grids to the product"""

    def close(self) -> None:
        """Releasing every resource opened by the parser"""
