# SPDX-FileCopyrightText: Aresys S.r.l. <info@aresys.it>
# SPDX-License-Identifier: MIT

"""
NOVASAR geocoding and tie-point grids
-------------------------------------
"""

from __future__ import annotations

import logging

import numpy as np
from scipy.constants import speed_of_light as LIGHT_SPEED

from sarnorm.common.exceptions import InvalidGeometryError, MalformedCoefficientsError
from sarnorm.common.metadata import MetadataKey, MetadataNode, NormalizedMetadata
from sarnorm.common.tie_point_grid import (
    TPG_INCIDENT_ANGLE,
    TPG_LATITUDE,
    TPG_LONGITUDE,
    TPG_SLANT_RANGE_TIME,
    TiePointGeoCoding,
    TiePointGrid,
)
from sarnorm.common.utilities import SRGRCoefficientSet, Unit, parse_coefficients

logger = logging.getLogger(__name__)

# WGS84 ellipsoid axes [m]
WGS84_SEMI_MAJOR_AXIS = 6378137.0
WGS84_SEMI_MINOR_AXIS = 6356752.314245


def is_ascending(metadata: NormalizedMetadata) -> bool:
    """True for ascending passes"""
    return metadata[MetadataKey.PASS] == "ASCENDING"


def is_descending(metadata: NormalizedMetadata) -> bool:
    """True for descending passes"""
    return metadata[MetadataKey.PASS] == "DESCENDING"


def is_antenna_pointing_right(metadata: NormalizedMetadata) -> bool:
    """True for right looking acquisitions"""
    return metadata[MetadataKey.ANTENNA_POINTING] == "right"


def flip_tie_points(
    values: np.ndarray,
    grid_width: int,
    grid_height: int,
    flip_to_sar_geometry: bool,
    ascending: bool,
    pointing_right: bool,
) -> np.ndarray:
    """Reordering raw tie points to SAR acquisition geometry.

    ===========  ==============  ======================================
    ascending    pointing right  reordering
    ===========  ==============  ======================================
    True         True            rows reversed
    True         False           rows reversed and columns reversed
    False        True            columns reversed
    False        False           none
    ===========  ==============  ======================================

    Parameters
    ----------
    values : np.ndarray
        tie point values, row major, grid_width * grid_height items
    grid_width : int
        number of range tie points
    grid_height : int
        number of azimuth tie points
    flip_to_sar_geometry : bool
        reordering switch, values are returned unchanged when False
    ascending : bool
        pass direction is ascending
    pointing_right : bool
        antenna points right

    Returns
    -------
    np.ndarray
        reordered tie point values, row major
    """
    values = np.asarray(values)
    if not flip_to_sar_geometry:
        return values

    grid = values.reshape(grid_height, grid_width)
    if ascending:
        if pointing_right:
            grid = grid[::-1, :]
        else:
            grid = grid[::-1, ::-1]
    else:
        if pointing_right:
            grid = grid[:, ::-1]

    return np.ascontiguousarray(grid).ravel()


def read_geographic_tie_points(geographic_information: MetadataNode) -> tuple[int, int, np.ndarray, np.ndarray]:
    """Reading raw latitude and longitude tie points.

    Parameters
    ----------
    geographic_information : MetadataNode
        geographicInformation vendor node

    Returns
    -------
    tuple[int, int, np.ndarray, np.ndarray]
        grid width (range tie points),
        grid height (azimuth tie points),
        latitudes [deg],
        longitudes [deg]

    Raises
    ------
    InvalidGeometryError
        if the tie point counts are missing or do not match the annotated tie points
    """
    grid_width = geographic_information.get_int("NumberOfRangeTiepoints", None)
    grid_height = geographic_information.get_int("NumberOfAzimuthTiepoints", None)
    if grid_width is None or grid_height is None:
        raise InvalidGeometryError("tie point counts missing from geographicInformation")

    tie_points = geographic_information.children("TiePoint")
    if len(tie_points) != grid_width * grid_height:
        raise InvalidGeometryError(
            f"{len(tie_points)} tie points annotated, expected {grid_width}x{grid_height}"
        )

    latitudes = np.array([tp.get_double("latitude", 0.0) for tp in tie_points], dtype=np.float32)
    longitudes = np.array([tp.get_double("longitude", 0.0) for tp in tie_points], dtype=np.float32)

    return grid_width, grid_height, latitudes, longitudes


def build_lat_lon_grids(
    width: int,
    height: int,
    grid_width: int,
    grid_height: int,
    latitudes: np.ndarray,
    longitudes: np.ndarray,
) -> tuple[TiePointGrid, TiePointGrid]:
    """Latitude and longitude grids spanning the scene, first tie point at the first pixel center"""
    if grid_width < 2 or grid_height < 2:
        raise InvalidGeometryError(f"tie point grid must be at least 2x2, got {grid_width}x{grid_height}")

    subsampling_x = (width - 1) / (grid_width - 1)
    subsampling_y = (height - 1) / (grid_height - 1)

    lat_grid = TiePointGrid(
        name=TPG_LATITUDE,
        width=grid_width,
        height=grid_height,
        offset_x=0.5,
        offset_y=0.5,
        subsampling_x=subsampling_x,
        subsampling_y=subsampling_y,
        values=latitudes,
        unit=Unit.DEGREES,
    )
    lon_grid = TiePointGrid(
        name=TPG_LONGITUDE,
        width=grid_width,
        height=grid_height,
        offset_x=0.5,
        offset_y=0.5,
        subsampling_x=subsampling_x,
        subsampling_y=subsampling_y,
        values=longitudes,
        unit=Unit.DEGREES,
        discontinuity_at_180=True,
    )

    return lat_grid, lon_grid


def set_scene_corners(
    metadata: NormalizedMetadata, width: int, height: int, lat_grid: TiePointGrid, lon_grid: TiePointGrid
) -> None:
    """Recording the geographic position of the four scene corners"""
    corners = {
        (MetadataKey.FIRST_NEAR_LAT, MetadataKey.FIRST_NEAR_LONG): (0, 0),
        (MetadataKey.FIRST_FAR_LAT, MetadataKey.FIRST_FAR_LONG): (width - 1, 0),
        (MetadataKey.LAST_NEAR_LAT, MetadataKey.LAST_NEAR_LONG): (0, height - 1),
        (MetadataKey.LAST_FAR_LAT, MetadataKey.LAST_FAR_LONG): (width - 1, height - 1),
    }
    for (lat_key, lon_key), (x, y) in corners.items():
        metadata[lat_key] = lat_grid.get_pixel_value(x, y)
        metadata[lon_key] = lon_grid.get_pixel_value(x, y)


def create_geocoding(
    geographic_information: MetadataNode,
    metadata: NormalizedMetadata,
    width: int,
    height: int,
    flip_to_sar_geometry: bool,
) -> TiePointGeoCoding:
    """Building the tie-point geocoding of the scene and recording its corners.

    Parameters
    ----------
    geographic_information : MetadataNode
        geographicInformation vendor node
    metadata : NormalizedMetadata
        normalized metadata, corners are written here
    width : int
        scene width
    height : int
        scene height
    flip_to_sar_geometry : bool
        tie points reordering switch

    Returns
    -------
    TiePointGeoCoding
        geocoding built from the latitude and longitude grids
    """
    grid_width, grid_height, latitudes, longitudes = read_geographic_tie_points(geographic_information)

    ascending = is_ascending(metadata)
    pointing_right = is_antenna_pointing_right(metadata)
    latitudes = flip_tie_points(latitudes, grid_width, grid_height, flip_to_sar_geometry, ascending, pointing_right)
    longitudes = flip_tie_points(longitudes, grid_width, grid_height, flip_to_sar_geometry, ascending, pointing_right)

    lat_grid, lon_grid = build_lat_lon_grids(width, height, grid_width, grid_height, latitudes, longitudes)
    set_scene_corners(metadata, width, height, lat_grid, lon_grid)

    logger.debug("Geocoding built from %dx%d tie points", grid_width, grid_height)

    return TiePointGeoCoding(lat_grid, lon_grid)


def is_range_reversed(flip_to_sar_geometry: bool, descending: bool, pointing_right: bool) -> bool:
    """Column reversal test of the derived range grids.

    The pass direction and pointing sense are inverted with respect to the latitude/longitude
    reordering, matching the vendor convention.
    """
    return not flip_to_sar_geometry and ((descending and pointing_right) or (not descending and not pointing_right))


def get_near_range_incidence_angle(inc_angle_coeffs: str) -> float:
    """Near range incidence angle [deg], first token of the incidence angle coefficients"""
    coefficients = parse_coefficients(inc_angle_coeffs, "IncAngleCoeffs")
    if coefficients.size == 0:
        raise MalformedCoefficientsError("IncAngleCoeffs is empty")
    return float(coefficients[0])


def get_local_earth_radius(latitude: float) -> float:
    """Local WGS84 earth radius [m] at a geodetic latitude [deg]"""
    a = WGS84_SEMI_MAJOR_AXIS
    b = WGS84_SEMI_MINOR_AXIS
    lam = np.deg2rad(latitude)
    cos2 = np.cos(lam) ** 2
    sin2 = np.sin(lam) ** 2
    e2 = (b * b) / (a * a)
    return float(a * np.sqrt((cos2 + e2 * e2 * sin2) / (cos2 + e2 * sin2)))


def compute_incidence_angles(
    near_range_incidence_angle: float,
    scene_center_latitude: float,
    range_spacing: float,
    slant_range_to_first_pixel: float,
    is_ground_range: bool,
    grid_width: int,
    subsampling_x: int,
    reverse: bool = False,
) -> np.ndarray:
    """Incidence angles across range on the ellipsoid, one per range tie point.

    Ground range is stepped pixel by pixel from the near edge; the incidence angle is recovered
    from the earth central angle at each step and sampled every subsampling_x pixels.

    Parameters
    ----------
    near_range_incidence_angle : float
        incidence angle at the first pixel [deg]
    scene_center_latitude : float
        geodetic latitude of the scene center [deg]
    range_spacing : float
        range pixel spacing [m], ground range or slant range depending on the projection
    slant_range_to_first_pixel : float
        slant range distance of the first pixel [m]
    is_ground_range : bool
        True if range_spacing is a ground range spacing
    grid_width : int
        number of range tie points
    subsampling_x : int
        pixels between two range tie points
    reverse : bool, optional
        store the angles in reversed range order, by default False

    Returns
    -------
    np.ndarray
        incidence angles [deg], float32, grid_width items
    """
    rt = get_local_earth_radius(scene_center_latitude)
    rt2 = rt * rt

    alpha1 = np.deg2rad(near_range_incidence_angle)
    if is_ground_range:
        ground_range_spacing = range_spacing
    else:
        ground_range_spacing = range_spacing / np.sin(alpha1)
    delta_psi = ground_range_spacing / rt

    r1 = slant_range_to_first_pixel
    rt_plus_h = np.sqrt(rt2 + r1 * r1 + 2.0 * rt * r1 * np.cos(alpha1))
    rt_plus_h2 = rt_plus_h * rt_plus_h
    theta1 = np.arccos((r1 + rt * np.cos(alpha1)) / rt_plus_h)
    psi = alpha1 - theta1

    incidence_angles = np.zeros(grid_width, dtype=np.float32)
    k = 0
    for i in range(grid_width * subsampling_x):
        ri = np.sqrt(rt2 + rt_plus_h2 - 2.0 * rt * rt_plus_h * np.cos(psi))
        alpha = np.arccos(np.clip((rt_plus_h2 - ri * ri - rt2) / (2.0 * ri * rt), -1.0, 1.0))
        if i % subsampling_x == 0:
            index = grid_width - 1 - k if reverse else k
            incidence_angles[index] = np.rad2deg(alpha)
            k += 1

        if not is_ground_range:
            delta_psi = range_spacing / np.sin(alpha) / rt
        psi += delta_psi

    return incidence_angles


def _derived_grid_subsampling(width: int, height: int, grid_width: int, grid_height: int) -> tuple[int, int]:
    if grid_width < 2 or grid_height < 2:
        raise InvalidGeometryError(f"tie point grid must be at least 2x2, got {grid_width}x{grid_height}")

    subsampling_x = int(width / (grid_width - 1))
    subsampling_y = int(height / (grid_height - 1))
    if subsampling_x < 1 or subsampling_y < 1:
        raise InvalidGeometryError(
            f"scene {width}x{height} too small for a {grid_width}x{grid_height} tie point grid"
        )

    return subsampling_x, subsampling_y


def create_incidence_angle_grid(
    image_generation_parameters: MetadataNode,
    metadata: NormalizedMetadata,
    geocoding: TiePointGeoCoding,
    width: int,
    height: int,
    grid_size: tuple[int, int],
    flip_to_sar_geometry: bool,
) -> TiePointGrid:
    """Incidence angle tie-point grid, constant along azimuth.

    Parameters
    ----------
    image_generation_parameters : MetadataNode
        Image_Generation_Parameters vendor node
    metadata : NormalizedMetadata
        normalized metadata
    geocoding : TiePointGeoCoding
        scene geocoding, used for the scene center latitude
    width : int
        scene width
    height : int
        scene height
    grid_size : tuple[int, int]
        (width, height) of the tie-point grid
    flip_to_sar_geometry : bool
        tie points reordering switch

    Returns
    -------
    TiePointGrid
        incidence angle grid [deg]
    """
    grid_width, grid_height = grid_size
    subsampling_x, subsampling_y = _derived_grid_subsampling(width, height, grid_width, grid_height)

    scene_center_latitude, _ = geocoding.get_geo_pos(width / 2.0, height / 2.0)
    near_range_incidence_angle = get_near_range_incidence_angle(
        image_generation_parameters.get_string("IncAngleCoeffs", "")
    )

    reverse = is_range_reversed(flip_to_sar_geometry, is_descending(metadata), is_antenna_pointing_right(metadata))
    incidence_angles = compute_incidence_angles(
        near_range_incidence_angle=near_range_incidence_angle,
        scene_center_latitude=scene_center_latitude,
        range_spacing=metadata[MetadataKey.RANGE_SPACING],
        slant_range_to_first_pixel=metadata[MetadataKey.SLANT_RANGE_TO_FIRST_PIXEL],
        is_ground_range=metadata[MetadataKey.SRGR_FLAG] != 0,
        grid_width=grid_width,
        subsampling_x=subsampling_x,
        reverse=reverse,
    )

    logger.debug(
        "Incidence angles from %.3f to %.3f deg at scene center latitude %.3f deg",
        incidence_angles.min(),
        incidence_angles.max(),
        scene_center_latitude,
    )

    return TiePointGrid(
        name=TPG_INCIDENT_ANGLE,
        width=grid_width,
        height=grid_height,
        offset_x=0.0,
        offset_y=0.0,
        subsampling_x=subsampling_x,
        subsampling_y=subsampling_y,
        values=np.tile(incidence_angles, grid_height),
        unit=Unit.DEGREES,
    )


def _select_segment(segments: list[SRGRCoefficientSet], seconds_from_start: float, start_time) -> SRGRCoefficientSet:
    index = 0
    while index < len(segments) and segments[index].reference_time - start_time < seconds_from_start:
        index += 1
    return segments[min(index, len(segments) - 1)]


def create_slant_range_time_grid(
    metadata: NormalizedMetadata,
    width: int,
    height: int,
    grid_size: tuple[int, int],
    flip_to_sar_geometry: bool,
) -> TiePointGrid:
    """Slant range time tie-point grid from the ground to slant range polynomials.

    Parameters
    ----------
    metadata : NormalizedMetadata
        normalized metadata, holding at least one SRGR coefficient set
    width : int
        scene width
    height : int
        scene height
    grid_size : tuple[int, int]
        (width, height) of the tie-point grid
    flip_to_sar_geometry : bool
        tie points reordering switch

    Returns
    -------
    TiePointGrid
        two way slant range time grid [ns]

    Raises
    ------
    InvalidGeometryError
        if no SRGR coefficient set is available
    """
    segments = metadata.srgr_coefficients
    if not segments:
        raise InvalidGeometryError("slant range time grid requires ground to slant range coefficients")

    grid_width, grid_height = grid_size
    subsampling_x, subsampling_y = _derived_grid_subsampling(width, height, grid_width, grid_height)

    start_time = metadata[MetadataKey.FIRST_LINE_TIME]
    line_time_interval = metadata[MetadataKey.LINE_TIME_INTERVAL]
    ground_range = np.arange(grid_width) * subsampling_x * metadata[MetadataKey.RANGE_SPACING]

    range_distances = np.zeros((grid_height, grid_width))
    for j in range(grid_height):
        segment = _select_segment(segments, j * line_time_interval, start_time)
        range_distances[j] = segment.evaluate(ground_range)

    range_times = (range_distances / (LIGHT_SPEED / 2.0) * 1e9).ravel()
    if is_range_reversed(flip_to_sar_geometry, is_descending(metadata), is_antenna_pointing_right(metadata)):
        range_times = range_times[::-1]

    return TiePointGrid(
        name=TPG_SLANT_RANGE_TIME,
        width=grid_width,
        height=grid_height,
        offset_x=0.0,
        offset_y=0.0,
        subsampling_x=subsampling_x,
        subsampling_y=subsampling_y,
        values=range_times,
        unit=Unit.NANOSECONDS,
    )
