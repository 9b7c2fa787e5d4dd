# SPDX-FileCopyrightText: Aresys S.r.l. <info@aresys.it>
# SPDX-License-Identifier: MIT

"""
NOVASAR band and channel mapping
--------------------------------
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from sarnorm.common.metadata import MetadataKey, NormalizedMetadata
from sarnorm.common.product import Band, VirtualBand
from sarnorm.common.utilities import Unit
from sarnorm.novasar.l1_products.utilities import COMPACT_MODE_DESCRIPTOR, PolarizationTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceImage:
    """Registered source image: lowercase file name and number of bands it provides.

    For complex products each band is a complex channel stored as two samples (real, imaginary).
    """

    name: str
    num_bands: int = 1


@dataclass
class BandSet:
    """Ordered bands and derived virtual intensity bands"""

    bands: list[Band]
    virtual_bands: list[VirtualBand]


def create_virtual_intensity_band(
    width: int, height: int, suffix: str, real_band: Band, imaginary_band: Band | None = None
) -> VirtualBand:
    """Intensity band from an (i, q) pair or from a single amplitude band.

    Parameters
    ----------
    width : int
        band width
    height : int
        band height
    suffix : str
        name suffix, e.g. "_HH"
    real_band : Band
        real band of the pair, or the amplitude band
    imaginary_band : Band | None, optional
        imaginary band of the pair, None for detected products

    Returns
    -------
    VirtualBand
        intensity band
    """
    if imaginary_band is None:
        expression = f"{real_band.name} * {real_band.name}"
    else:
        expression = f"{real_band.name} * {real_band.name} + {imaginary_band.name} * {imaginary_band.name}"

    return VirtualBand(name="Intensity" + suffix, expression=expression, width=width, height=height)


def _resolve_polarization(image_name: str, polarizations: PolarizationTable) -> str:
    pol = polarizations.get(image_name)
    if pol is None:
        pol = image_name.rsplit(".", 1)[0].upper()
        logger.warning("No polarization found for image %s, naming its bands with %s", image_name, pol)
    return pol


def build_bands(
    width: int, height: int, is_slc: bool, images: list[SourceImage], polarizations: PolarizationTable
) -> BandSet:
    """Deciding band count, naming, sample type and pairing of the product bands.

    Complex products get an (i_<POL>, q_<POL>) float32 pair per channel, detected products one
    Amplitude_<POL> uint32 band per channel; each channel also gets an Intensity_<POL> virtual band.

    Parameters
    ----------
    width : int
        scene width
    height : int
        scene height
    is_slc : bool
        True for single look complex products
    images : list[SourceImage]
        source images, in registration order
    polarizations : PolarizationTable
        polarization code of each source image

    Returns
    -------
    BandSet
        ordered bands and virtual bands
    """
    bands = []
    virtual_bands = []

    for image in images:
        pol = _resolve_polarization(image.name, polarizations)
        suffix = "_" + pol

        for b in range(image.num_bands):
            if is_slc:
                real_band = Band(
                    name="i" + suffix,
                    data_type=np.dtype(np.float32),
                    width=width,
                    height=height,
                    unit=Unit.REAL,
                    image_name=image.name,
                    band_index=2 * b,
                )
                imaginary_band = Band(
                    name="q" + suffix,
                    data_type=np.dtype(np.float32),
                    width=width,
                    height=height,
                    unit=Unit.IMAGINARY,
                    image_name=image.name,
                    band_index=2 * b + 1,
                )
                bands.extend([real_band, imaginary_band])
                virtual_bands.append(create_virtual_intensity_band(width, height, suffix, real_band, imaginary_band))
            else:
                amplitude_band = Band(
                    name="Amplitude" + suffix,
                    data_type=np.dtype(np.uint32),
                    width=width,
                    height=height,
                    unit=Unit.AMPLITUDE,
                    image_name=image.name,
                    band_index=b,
                )
                bands.append(amplitude_band)
                virtual_bands.append(create_virtual_intensity_band(width, height, suffix, amplitude_band))

    logger.debug("Built %d bands and %d virtual bands from %d images", len(bands), len(virtual_bands), len(images))

    return BandSet(bands=bands, virtual_bands=virtual_bands)


def apply_compact_mode(metadata: NormalizedMetadata, polarizations: PolarizationTable) -> None:
    """Flagging compact polarimetric products in the normalized metadata"""
    if polarizations.compact_mode:
        metadata[MetadataKey.POLSAR_DATA] = 1
        metadata[MetadataKey.COMPACT_MODE] = COMPACT_MODE_DESCRIPTOR
