# SPDX-FileCopyrightText: Aresys S.r.l. <info@aresys.it>
# SPDX-License-Identifier: MIT

"""
NOVASAR reader support module
-----------------------------
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Union

import numpy as np
from lxml import etree

from sarnorm.common.exceptions import (
    InvalidGeometryError,
    MalformedCoefficientsError,
    MissingFieldError,
    SARNormError,
    UnsupportedFormatError,
)
from sarnorm.common.metadata import (
    NO_METADATA,
    NO_METADATA_STRING,
    NO_METADATA_UTC,
    POLARIZATION_TAGS,
    MetadataKey,
    MetadataNode,
    NormalizedMetadata,
)
from sarnorm.common.utilities import (
    COMPACT_POLARIZATIONS,
    CalibrationLUT,
    DopplerCoefficientSet,
    OrbitStateVector,
    SRGRCoefficientSet,
    parse_coefficients,
)

logger = logging.getLogger(__name__)

_IMAGE_FORMATS = (".tif", ".tiff")
METADATA_FILE = "metadata.xml"
_IMAGE_PREFIXES = ("image", "rh", "rv")
_SUPPORTED_PRODUCT_FORMAT = "GEOTIFF"
_LUT_NAMES = ("lutSigma", "lutGamma", "lutBeta")

COMPACT_MODE_DESCRIPTOR = "Right Circular Hybrid Mode"

# slant range time reference of the Doppler centroid polynomial [ns]: not annotated in NovaSAR
# metadata, kept at zero
DOPPLER_SLANT_RANGE_TIME_REFERENCE = 0.0

# ground range origin of the SRGR polynomial [m]: not annotated in NovaSAR metadata, always zero
SRGR_GROUND_RANGE_ORIGIN = 0.0


class NovaSAR1ProductType(Enum):
    """NovaSAR-1 L1 product types"""

    SLC = "SLC"  # stripmap, single look, complex, slant range
    SRD = "SRD"  # stripmap, multi-look, detected, slant range
    GRD = "GRD"  # stripmap, multi-look, detected, ground range
    SCD = "SCD"  # scanSAR, multi-look, detected, ground range


class InvalidNovaSAR1Product(SARNormError, RuntimeError):
    """Invalid NovaSAR-1 product"""


@dataclass(frozen=True)
class NovaSAR1ReaderConfig:
    """NovaSAR-1 reader configuration"""

    flip_to_sar_geometry: bool = False  # reorder lat/lon tie points to SAR acquisition geometry
    add_slant_range_time_grid: bool = False  # build the slant range time grid from SRGR coefficients
    tie_point_grid_size: tuple[int, int] = (11, 11)  # (width, height) of derived tie-point grids


@dataclass(frozen=True)
class PolarizationTable:
    """Polarization code of each source image and compact-polarimetric mode flag"""

    codes: Mapping[str, str | None]
    compact_mode: bool

    def get(self, image_name: str) -> str | None:
        """Polarization code of a source image, None if unresolved"""
        return self.codes.get(image_name.lower())


def is_slc_product(product_type: str) -> bool:
    """True if the product type denotes a single look complex product"""
    return NovaSAR1ProductType.SLC.value in product_type.upper()


def is_ground_range_product(product_type: str) -> bool:
    """True if the product type denotes a ground range product"""
    product_type = product_type.upper()
    return NovaSAR1ProductType.GRD.value in product_type or NovaSAR1ProductType.SCD.value in product_type


def is_recognized_image_file(name: str) -> bool:
    """True for tiff files named with a NovaSAR imagery prefix"""
    name = name.lower()
    return name.endswith(_IMAGE_FORMATS) and name.startswith(_IMAGE_PREFIXES)


def classify_polarization(image_name: str, polarization_map: Mapping[str, str]) -> tuple[str | None, bool]:
    """Resolving the polarization code of a source image.

    The vendor per-image list is used first. Images not listed there are inferred as compact
    polarimetric channels when their name contains "rh" or "rv".

    Parameters
    ----------
    image_name : str
        source image file name
    polarization_map : Mapping[str, str]
        lowercase image name to polarization code, from the vendor metadata

    Returns
    -------
    tuple[str | None, bool]
        polarization code, None if it cannot be resolved,
        True if the code was inferred as a compact polarimetric channel
    """
    image_name = image_name.lower()
    pol = polarization_map.get(image_name)
    if pol is not None:
        return pol, False

    for compact_pol in COMPACT_POLARIZATIONS:
        if compact_pol.name.lower() in image_name:
            return compact_pol.name, True

    return None, False


def build_polarization_table(image_names: Iterable[str], polarization_map: Mapping[str, str]) -> PolarizationTable:
    """Classifying all source images up front.

    Parameters
    ----------
    image_names : Iterable[str]
        source image file names
    polarization_map : Mapping[str, str]
        lowercase image name to polarization code, from the vendor metadata

    Returns
    -------
    PolarizationTable
        immutable polarization table
    """
    codes = {}
    compact_mode = False
    for name in image_names:
        pol, is_compact = classify_polarization(name, polarization_map)
        codes[name.lower()] = pol
        compact_mode = compact_mode or is_compact

    return PolarizationTable(codes=MappingProxyType(codes), compact_mode=compact_mode)


def read_polarization_map(image_attributes: MetadataNode, metadata: NormalizedMetadata) -> dict[str, str]:
    """Reading the per-image polarization list and filling the polarization tags.

    Parameters
    ----------
    image_attributes : MetadataNode
        Image_Attributes vendor node
    metadata : NormalizedMetadata
        normalized metadata to be updated

    Returns
    -------
    dict[str, str]
        lowercase image name to uppercase polarization code
    """
    polarization_map = {}
    for idx, node in enumerate(image_attributes.children("fullResolutionImageData")):
        pol = node.attribute("Pol", "").upper()
        polarization_map[(node.text or "").lower()] = pol
        if idx < len(POLARIZATION_TAGS):
            metadata[POLARIZATION_TAGS[idx]] = pol
        else:
            logger.warning("Polarization %s of image %s exceeds the available polarization tags", pol, node.text)

    return polarization_map


def ingest_orbit(orbit_data: MetadataNode, metadata: NormalizedMetadata) -> list[OrbitStateVector]:
    """Converting vendor state vectors, in vendor order, and setting the state vector time.

    Parameters
    ----------
    orbit_data : MetadataNode
        OrbitData vendor node
    metadata : NormalizedMetadata
        normalized metadata, its state vector time is set only if not already set

    Returns
    -------
    list[OrbitStateVector]
        orbit state vectors

    Raises
    ------
    MissingFieldError
        if the vector count is missing or fewer vectors than declared are annotated
    """
    num_vectors = orbit_data.get_int("NumberOfStateVectorSets")
    nodes = orbit_data.children("StateVector")
    if len(nodes) < num_vectors:
        raise MissingFieldError(f"{num_vectors} state vectors declared, {len(nodes)} found")

    state_vectors = []
    for node in nodes[:num_vectors]:
        state_vectors.append(
            OrbitStateVector(
                time=node.get_time("Time"),
                position=np.array([node.get_double(c, 0.0) for c in ("xPosition", "yPosition", "zPosition")]),
                velocity=np.array([node.get_double(c, 0.0) for c in ("xVelocity", "yVelocity", "zVelocity")]),
            )
        )

    if state_vectors and metadata[MetadataKey.STATE_VECTOR_TIME] == NO_METADATA_UTC:
        metadata[MetadataKey.STATE_VECTOR_TIME] = state_vectors[0].time

    logger.debug("Ingested %d orbit state vectors", len(state_vectors))

    return state_vectors


def ingest_srgr(product_type: str, image_generation_parameters: MetadataNode) -> SRGRCoefficientSet | None:
    """Ground to slant range polynomial, annotated only for ground range products.

    Parameters
    ----------
    product_type : str
        vendor product type string
    image_generation_parameters : MetadataNode
        Image_Generation_Parameters vendor node

    Returns
    -------
    SRGRCoefficientSet | None
        coefficient set, None for slant range products
    """
    if not is_ground_range_product(product_type):
        return None

    coefficients = parse_coefficients(
        image_generation_parameters.get_string("GroundToSlantRangeCoefficients", ""),
        "GroundToSlantRangeCoefficients",
    )
    if coefficients.size == 0:
        raise MalformedCoefficientsError(f"GroundToSlantRangeCoefficients missing for {product_type} product")

    return SRGRCoefficientSet(
        reference_time=image_generation_parameters.get_time("ZeroDopplerTimeFirstLine", NO_METADATA_UTC),
        origin=SRGR_GROUND_RANGE_ORIGIN,
        coefficients=coefficients,
    )


def ingest_doppler(image_generation_parameters: MetadataNode) -> DopplerCoefficientSet:
    """Doppler centroid polynomial.

    Parameters
    ----------
    image_generation_parameters : MetadataNode
        Image_Generation_Parameters vendor node

    Returns
    -------
    DopplerCoefficientSet
        coefficient set referenced to the first line time
    """
    return DopplerCoefficientSet(
        reference_time=image_generation_parameters.get_time("ZeroDopplerTimeFirstLine", NO_METADATA_UTC),
        origin=DOPPLER_SLANT_RANGE_TIME_REFERENCE,
        coefficients=parse_coefficients(
            image_generation_parameters.get_string("DopplerCentroid", ""), "DopplerCentroid"
        ),
    )


def get_metadata_section(root: MetadataNode, name: str) -> MetadataNode:
    """Vendor metadata section, an empty node if the section is absent"""
    node = root.child(name)
    if node is None:
        logger.debug("Section %s missing from vendor metadata, defaults apply", name)
        return MetadataNode(etree.Element(name))
    return node


def verify_product_format(product_format: str) -> None:
    """Checking that the raster container is GeoTIFF.

    Raises
    ------
    UnsupportedFormatError
        for any other container format
    """
    if product_format.strip().upper() != _SUPPORTED_PRODUCT_FORMAT:
        raise UnsupportedFormatError(f"NovaSAR {product_format} format is not supported by this reader")


def normalize_metadata(root: MetadataNode) -> NormalizedMetadata:
    """Mapping the NovaSAR-1 vendor metadata tree to the normalized attribute set.

    Parameters
    ----------
    root : MetadataNode
        root of the vendor metadata tree

    Returns
    -------
    NormalizedMetadata
        normalized metadata, including polarization map, orbit and range models

    Raises
    ------
    UnsupportedFormatError
        if the product format is not GeoTIFF
    MissingFieldError
        if image dimensions are missing
    InvalidGeometryError
        if the image has less than two lines
    MalformedCoefficientsError
        if a polynomial coefficient string holds a non-numeric token
    """
    metadata = NormalizedMetadata()

    product = get_metadata_section(root, "Product")
    source_attributes = get_metadata_section(root, "Source_Attributes")
    orbit_data = get_metadata_section(root, "OrbitData")
    image_generation_parameters = get_metadata_section(root, "Image_Generation_Parameters")
    image_attributes = get_metadata_section(root, "Image_Attributes")
    geographic_information = get_metadata_section(root, "geographicInformation")

    metadata[MetadataKey.ANTENNA_POINTING] = source_attributes.get_string(
        "AntennaPointing", NO_METADATA_STRING
    ).lower()

    radar_frequency = source_attributes.get_double("RadarCentreFrequency", None)
    if radar_frequency is not None:
        metadata[MetadataKey.RADAR_FREQUENCY] = radar_frequency / 1e6

    metadata[MetadataKey.DATA_TAKE_ID] = source_attributes.get_int("AcquisitionID", NO_METADATA)

    pass_direction = orbit_data.get_string("Pass_Direction", NO_METADATA_STRING).upper()
    metadata[MetadataKey.PASS] = pass_direction

    metadata[MetadataKey.ALGORITHM] = image_generation_parameters.get_string("AlgorithmUsed", NO_METADATA_STRING)
    metadata[MetadataKey.GEO_REF_SYSTEM] = geographic_information.get_string("EllipsoidName", NO_METADATA_STRING)

    # NovaSAR processing always applies these corrections
    metadata[MetadataKey.ANT_ELEV_CORR_FLAG] = 1
    metadata[MetadataKey.RANGE_SPREAD_COMP_FLAG] = 1
    metadata[MetadataKey.REPLICA_POWER_CORR_FLAG] = 1

    metadata[MetadataKey.ORBIT_STATE_VECTOR_FILE] = orbit_data.get_string("OrbitDataFile", NO_METADATA_STRING)

    product_type = image_generation_parameters.get_string("ProductType", NO_METADATA_STRING).upper()
    metadata[MetadataKey.PRODUCT_TYPE] = product_type
    metadata[MetadataKey.SLC_FLAG] = int(is_slc_product(product_type))
    metadata[MetadataKey.SRGR_FLAG] = int(is_ground_range_product(product_type))

    metadata[MetadataKey.PRODUCT] = product.get_string("ProductName", NO_METADATA_STRING)
    metadata[MetadataKey.MISSION] = source_attributes.get_string("Satellite", NO_METADATA_STRING)

    op_mode_name = source_attributes.get_string("OperationalModeName", NO_METADATA_STRING)
    metadata[MetadataKey.SPH_DESCRIPTOR] = op_mode_name
    metadata[MetadataKey.ACQUISITION_MODE] = op_mode_name
    swaths = op_mode_name.rsplit("_", 1)[-1]
    metadata[MetadataKey.BEAMS] = swaths
    metadata[MetadataKey.SWATH] = swaths

    calibration_status = image_attributes.get_string("CalibrationStatus", NO_METADATA_STRING)
    if calibration_status.upper() == "CALIBRATED":
        metadata[MetadataKey.ABS_CALIBRATION_FLAG] = 1
        metadata[MetadataKey.CALIBRATION_FACTOR] = image_attributes.get_double("CalibrationConstant", 1.0)
    else:
        metadata[MetadataKey.ABS_CALIBRATION_FLAG] = 0
        metadata[MetadataKey.CALIBRATION_FACTOR] = 1.0

    radiometric_scaling = image_generation_parameters.get_string("RadiometricScaling", NO_METADATA_STRING)
    metadata[MetadataKey.INC_ANGLE_COMP_FLAG] = int(radiometric_scaling.upper() == "SIGMA0")

    echo_sampling_rate = source_attributes.get_double("EchoSamplingRate", None)
    if echo_sampling_rate is not None:
        metadata[MetadataKey.RANGE_SAMPLING_RATE] = echo_sampling_rate / 1e6

    metadata[MetadataKey.VECTOR_SOURCE] = orbit_data.get_string("OrbitDataSource", NO_METADATA_STRING)
    metadata[MetadataKey.PROCESSING_SYSTEM_IDENTIFIER] = (
        image_generation_parameters.get_string("ProcessingFacility", NO_METADATA_STRING)
        + "-"
        + image_generation_parameters.get_string("SoftwareVersion", NO_METADATA_STRING)
    )
    metadata[MetadataKey.PROC_TIME] = image_generation_parameters.get_time("ProcessingTime", NO_METADATA_UTC)

    start_time = image_generation_parameters.get_time("ZeroDopplerTimeFirstLine", NO_METADATA_UTC)
    stop_time = image_generation_parameters.get_time("ZeroDopplerTimeLastLine", NO_METADATA_UTC)
    metadata[MetadataKey.FIRST_LINE_TIME] = start_time
    metadata[MetadataKey.LAST_LINE_TIME] = stop_time

    range_looks = image_generation_parameters.get_int("NumberOfRangeLooks", 1)
    azimuth_looks = image_generation_parameters.get_int("NumberOfAzimuthLooks", 1)
    metadata[MetadataKey.RANGE_LOOKS] = range_looks
    metadata[MetadataKey.AZIMUTH_LOOKS] = azimuth_looks
    metadata[MetadataKey.MULTILOOK_FLAG] = int(range_looks > 1 or azimuth_looks > 1)

    metadata[MetadataKey.SLANT_RANGE_TO_FIRST_PIXEL] = image_generation_parameters.get_double(
        "SlantRangeNearEdge", 0.0
    )

    range_bandwidth = image_generation_parameters.get_double("TotalProcessedRangeBandwidth", None)
    if range_bandwidth is not None:
        metadata[MetadataKey.RANGE_BANDWIDTH] = range_bandwidth / 1e6
    metadata[MetadataKey.AZIMUTH_BANDWIDTH] = image_generation_parameters.get_double(
        "TotalProcessedAzimuthBandwidth", NO_METADATA
    )

    data_type = image_attributes.get_string("DataType", NO_METADATA_STRING)
    metadata[MetadataKey.SAMPLE_TYPE] = "DETECTED" if "MAGNITUDE_DETECTED" in data_type else "COMPLEX"

    verify_product_format(image_attributes.get_string("ProductFormat", NO_METADATA_STRING))

    num_lines = image_attributes.get_int("NumberOfLinesInImage")
    num_samples = image_attributes.get_int("NumberOfSamplesPerLine")
    metadata[MetadataKey.NUM_OUTPUT_LINES] = num_lines
    metadata[MetadataKey.NUM_SAMPLES_PER_LINE] = num_samples

    if num_lines <= 1:
        raise InvalidGeometryError(f"line time interval undefined for {num_lines} lines")
    metadata[MetadataKey.LINE_TIME_INTERVAL] = (stop_time - start_time) / (num_lines - 1)

    metadata[MetadataKey.RANGE_SPACING] = image_attributes.get_double("SampledPixelSpacing", 0.0)
    metadata[MetadataKey.AZIMUTH_SPACING] = image_attributes.get_double("SampledLineSpacing", 0.0)
    metadata[MetadataKey.PULSE_REPETITION_FREQUENCY] = source_attributes.get_double(
        "PulseRepetitionFrequency", NO_METADATA
    )
    metadata[MetadataKey.AVG_SCENE_HEIGHT] = geographic_information.get_double("MeanTerrainHeight", NO_METADATA)

    metadata.polarization_map = read_polarization_map(image_attributes, metadata)

    metadata.orbit_state_vectors = ingest_orbit(orbit_data, metadata)

    srgr = ingest_srgr(product_type, image_generation_parameters)
    if srgr is not None:
        metadata.srgr_coefficients.append(srgr)

    metadata.doppler_coefficients.append(ingest_doppler(image_generation_parameters))

    return metadata


def read_calibration_lut(lut_path: Union[str, Path], lut_name: str) -> CalibrationLUT:
    """Reading a calibration LUT xml file.

    Parameters
    ----------
    lut_path : Union[str, Path]
        path to the LUT xml file
    lut_name : str
        LUT name (lutSigma, lutGamma or lutBeta)

    Returns
    -------
    CalibrationLUT
        offset and gains of the LUT
    """
    root = MetadataNode.from_file(lut_path)
    gains = parse_coefficients(root.get_string("gains", ""), f"{lut_name}/gains")
    if gains.size == 0:
        logger.warning("Calibration LUT %s has no gains", lut_name)

    return CalibrationLUT(name=lut_name, offset=root.get_double("offset"), gains=gains)


def read_calibration_luts(product_dir: Union[str, Path]) -> dict[str, CalibrationLUT]:
    """Reading the available calibration LUTs of a product, missing LUT files are skipped.

    Parameters
    ----------
    product_dir : Union[str, Path]
        path to the product directory

    Returns
    -------
    dict[str, CalibrationLUT]
        LUT name to calibration LUT
    """
    product_dir = Path(product_dir)
    luts = {}
    for lut_name in _LUT_NAMES:
        for candidate in (lut_name, lut_name.lower()):
            lut_path = product_dir.joinpath(candidate + ".xml")
            if lut_path.is_file():
                luts[lut_name] = read_calibration_lut(lut_path, lut_name)
                break

    return luts


def is_novasar_1_product(product: Union[str, Path]) -> bool:
    """Check if input path corresponds to a valid NovaSAR-1 product, basic version.

    Conditions to be met for basic validity:
        - path exists
        - path is a directory
        - metadata file exists
        - metadata file can be parsed and holds Product and Image_Attributes sections

    Parameters
    ----------
    product : Union[str, Path]
        path to the product to be checked

    Returns
    -------
    bool
        True if it is a valid product, else False
    """
    product = Path(product)

    if not product.exists() or not product.is_dir():
        return False

    metadata_path = product.joinpath(METADATA_FILE)
    if not metadata_path.is_file():
        return False

    try:
        root = MetadataNode.from_file(metadata_path)
    except etree.XMLSyntaxError:
        return False

    return root.child("Product") is not None and root.child("Image_Attributes") is not None
