# SPDX-FileCopyrightText: Aresys S.r.l. <info@aresys.it>
# SPDX-License-Identifier: MIT

"""
Vendor metadata tree access and normalized metadata
---------------------------------------------------
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Union

from arepytools.timing.precisedatetime import InvalidUtcString, PreciseDateTime
from lxml import etree

from sarnorm.common.exceptions import MissingFieldError
from sarnorm.common.utilities import (
    CalibrationLUT,
    DopplerCoefficientSet,
    OrbitStateVector,
    SRGRCoefficientSet,
)

NO_METADATA_STRING = " "
NO_METADATA = 99999
NO_METADATA_UTC = PreciseDateTime()

_MISSING = object()


class MetadataNode:
    """Typed, case-insensitive accessors over a vendor metadata xml element"""

    def __init__(self, element: etree._Element) -> None:
        self._element = element

    @staticmethod
    def from_file(path) -> MetadataNode:
        """Loading a vendor metadata xml file and wrapping its root element"""
        return MetadataNode(etree.parse(str(path)).getroot())

    @property
    def element(self) -> etree._Element:
        """Wrapped lxml element"""
        return self._element

    @property
    def name(self) -> str:
        """Element tag, without namespace"""
        return etree.QName(self._element).localname

    @property
    def text(self) -> str | None:
        """Stripped element text, None if empty"""
        text = self._element.text
        if text is None or not text.strip():
            return None
        return text.strip()

    def children(self, name: str | None = None) -> list[MetadataNode]:
        """Child elements, optionally filtered by tag (case-insensitive), in document order"""
        nodes = [c for c in self._element if isinstance(c.tag, str)]
        if name is not None:
            nodes = [c for c in nodes if etree.QName(c).localname.lower() == name.lower()]
        return [MetadataNode(c) for c in nodes]

    def child(self, name: str) -> MetadataNode | None:
        """First child element with the given tag (case-insensitive), None if absent"""
        matches = self.children(name)
        return matches[0] if matches else None

    def attribute(self, name: str, default: Any = _MISSING) -> str:
        """XML attribute of this element (case-insensitive)"""
        for key, value in self._element.attrib.items():
            if key.lower() == name.lower():
                return value
        return self._default_or_raise(name, default)

    def _raw(self, name: str) -> str | None:
        node = self.child(name)
        return node.text if node is not None else None

    def _default_or_raise(self, name: str, default: Any) -> Any:
        if default is _MISSING:
            raise MissingFieldError(f"{self.name}/{name} is missing")
        return default

    def get_string(self, name: str, default: Any = _MISSING) -> str:
        """Text of a named child"""
        raw = self._raw(name)
        if raw is None:
            return self._default_or_raise(name, default)
        return raw

    def get_double(self, name: str, default: Any = _MISSING) -> float:
        """Text of a named child converted to float"""
        raw = self._raw(name)
        if raw is None:
            return self._default_or_raise(name, default)
        try:
            return float(raw)
        except ValueError as err:
            raise MissingFieldError(f"{self.name}/{name}: {raw!r} is not a number") from err

    def get_int(self, name: str, default: Any = _MISSING) -> int:
        """Text of a named child converted to int"""
        raw = self._raw(name)
        if raw is None:
            return self._default_or_raise(name, default)
        try:
            return int(raw)
        except ValueError as err:
            raise MissingFieldError(f"{self.name}/{name}: {raw!r} is not an integer") from err

    def get_time(self, name: str, default: Any = _MISSING) -> PreciseDateTime:
        """Text of a named child converted to PreciseDateTime"""
        raw = self._raw(name)
        if raw is None:
            return self._default_or_raise(name, default)
        try:
            return PreciseDateTime.from_utc_string(raw)
        except (InvalidUtcString, ValueError) as err:
            raise MissingFieldError(f"{self.name}/{name}: {raw!r} is not a valid UTC time") from err


class AttributeKind(Enum):
    """Type of a normalized attribute"""

    STRING = auto()
    INT = auto()
    DOUBLE = auto()
    UTC = auto()


class MetadataKey(Enum):
    """Normalized attribute keys"""

    PRODUCT = "PRODUCT"
    PRODUCT_TYPE = "PRODUCT_TYPE"
    SPH_DESCRIPTOR = "SPH_DESCRIPTOR"
    MISSION = "MISSION"
    ACQUISITION_MODE = "ACQUISITION_MODE"
    BEAMS = "BEAMS"
    SWATH = "SWATH"
    PROC_TIME = "PROC_TIME"
    PROCESSING_SYSTEM_IDENTIFIER = "ProcessingSystemIdentifier"
    PASS = "PASS"
    ANTENNA_POINTING = "antenna_pointing"
    SAMPLE_TYPE = "SAMPLE_TYPE"
    MDS1_TX_RX_POLAR = "mds1_tx_rx_polar"
    MDS2_TX_RX_POLAR = "mds2_tx_rx_polar"
    MDS3_TX_RX_POLAR = "mds3_tx_rx_polar"
    MDS4_TX_RX_POLAR = "mds4_tx_rx_polar"
    POLSAR_DATA = "polsarData"
    COMPACT_MODE = "compact_mode"
    ALGORITHM = "algorithm"
    DATA_TAKE_ID = "data_take_id"
    GEO_REF_SYSTEM = "geo_ref_system"
    ORBIT_STATE_VECTOR_FILE = "orbit_state_vector_file"
    VECTOR_SOURCE = "VECTOR_SOURCE"
    STATE_VECTOR_TIME = "STATE_VECTOR_TIME"
    RADAR_FREQUENCY = "radar_frequency"
    RANGE_SAMPLING_RATE = "range_sampling_rate"
    PULSE_REPETITION_FREQUENCY = "pulse_repetition_frequency"
    ANT_ELEV_CORR_FLAG = "ant_elev_corr_flag"
    RANGE_SPREAD_COMP_FLAG = "range_spread_comp_flag"
    REPLICA_POWER_CORR_FLAG = "replica_power_corr_flag"
    ABS_CALIBRATION_FLAG = "abs_calibration_flag"
    CALIBRATION_FACTOR = "calibration_factor"
    INC_ANGLE_COMP_FLAG = "inc_angle_comp_flag"
    SLC_FLAG = "slc_flag"
    SRGR_FLAG = "srgr_flag"
    FIRST_LINE_TIME = "first_line_time"
    LAST_LINE_TIME = "last_line_time"
    RANGE_LOOKS = "range_looks"
    AZIMUTH_LOOKS = "azimuth_looks"
    MULTILOOK_FLAG = "multilook_flag"
    SLANT_RANGE_TO_FIRST_PIXEL = "slant_range_to_first_pixel"
    RANGE_BANDWIDTH = "range_bandwidth"
    AZIMUTH_BANDWIDTH = "azimuth_bandwidth"
    NUM_OUTPUT_LINES = "num_output_lines"
    NUM_SAMPLES_PER_LINE = "num_samples_per_line"
    LINE_TIME_INTERVAL = "line_time_interval"
    RANGE_SPACING = "range_spacing"
    AZIMUTH_SPACING = "azimuth_spacing"
    AVG_SCENE_HEIGHT = "avg_scene_height"
    FIRST_NEAR_LAT = "first_near_lat"
    FIRST_NEAR_LONG = "first_near_long"
    FIRST_FAR_LAT = "first_far_lat"
    FIRST_FAR_LONG = "first_far_long"
    LAST_NEAR_LAT = "last_near_lat"
    LAST_NEAR_LONG = "last_near_long"
    LAST_FAR_LAT = "last_far_lat"
    LAST_FAR_LONG = "last_far_long"


POLARIZATION_TAGS = (
    MetadataKey.MDS1_TX_RX_POLAR,
    MetadataKey.MDS2_TX_RX_POLAR,
    MetadataKey.MDS3_TX_RX_POLAR,
    MetadataKey.MDS4_TX_RX_POLAR,
)


@dataclass(frozen=True)
class AttributeSpec:
    """Kind, default and unit of a normalized attribute"""

    kind: AttributeKind
    default: Any
    unit: str = ""


def _string(default: str = NO_METADATA_STRING) -> AttributeSpec:
    return AttributeSpec(AttributeKind.STRING, default)


def _int(default: int = NO_METADATA, unit: str = "") -> AttributeSpec:
    return AttributeSpec(AttributeKind.INT, default, unit)


def _double(default: float = float(NO_METADATA), unit: str = "") -> AttributeSpec:
    return AttributeSpec(AttributeKind.DOUBLE, default, unit)


def _utc() -> AttributeSpec:
    return AttributeSpec(AttributeKind.UTC, NO_METADATA_UTC, "utc")


ATTRIBUTE_TABLE: dict[MetadataKey, AttributeSpec] = {
    MetadataKey.PRODUCT: _string(),
    MetadataKey.PRODUCT_TYPE: _string(),
    MetadataKey.SPH_DESCRIPTOR: _string(),
    MetadataKey.MISSION: _string(),
    MetadataKey.ACQUISITION_MODE: _string(),
    MetadataKey.BEAMS: _string(),
    MetadataKey.SWATH: _string(),
    MetadataKey.PROC_TIME: _utc(),
    MetadataKey.PROCESSING_SYSTEM_IDENTIFIER: _string(),
    MetadataKey.PASS: _string(),
    MetadataKey.ANTENNA_POINTING: _string(),
    MetadataKey.SAMPLE_TYPE: _string(),
    MetadataKey.MDS1_TX_RX_POLAR: _string(),
    MetadataKey.MDS2_TX_RX_POLAR: _string(),
    MetadataKey.MDS3_TX_RX_POLAR: _string(),
    MetadataKey.MDS4_TX_RX_POLAR: _string(),
    MetadataKey.POLSAR_DATA: _int(0),
    MetadataKey.COMPACT_MODE: _string(),
    MetadataKey.ALGORITHM: _string(),
    MetadataKey.DATA_TAKE_ID: _int(),
    MetadataKey.GEO_REF_SYSTEM: _string(),
    MetadataKey.ORBIT_STATE_VECTOR_FILE: _string(),
    MetadataKey.VECTOR_SOURCE: _string(),
    MetadataKey.STATE_VECTOR_TIME: _utc(),
    MetadataKey.RADAR_FREQUENCY: _double(unit="MHz"),
    MetadataKey.RANGE_SAMPLING_RATE: _double(99999.9, unit="MHz"),
    MetadataKey.PULSE_REPETITION_FREQUENCY: _double(unit="Hz"),
    MetadataKey.ANT_ELEV_CORR_FLAG: _int(0),
    MetadataKey.RANGE_SPREAD_COMP_FLAG: _int(0),
    MetadataKey.REPLICA_POWER_CORR_FLAG: _int(0),
    MetadataKey.ABS_CALIBRATION_FLAG: _int(0),
    MetadataKey.CALIBRATION_FACTOR: _double(1.0),
    MetadataKey.INC_ANGLE_COMP_FLAG: _int(0),
    MetadataKey.SLC_FLAG: _int(0),
    MetadataKey.SRGR_FLAG: _int(0),
    MetadataKey.FIRST_LINE_TIME: _utc(),
    MetadataKey.LAST_LINE_TIME: _utc(),
    MetadataKey.RANGE_LOOKS: _int(1),
    MetadataKey.AZIMUTH_LOOKS: _int(1),
    MetadataKey.MULTILOOK_FLAG: _int(0),
    MetadataKey.SLANT_RANGE_TO_FIRST_PIXEL: _double(0.0, unit="m"),
    MetadataKey.RANGE_BANDWIDTH: _double(unit="MHz"),
    MetadataKey.AZIMUTH_BANDWIDTH: _double(unit="Hz"),
    MetadataKey.NUM_OUTPUT_LINES: _int(),
    MetadataKey.NUM_SAMPLES_PER_LINE: _int(),
    MetadataKey.LINE_TIME_INTERVAL: _double(0.0, unit="s"),
    MetadataKey.RANGE_SPACING: _double(0.0, unit="m"),
    MetadataKey.AZIMUTH_SPACING: _double(0.0, unit="m"),
    MetadataKey.AVG_SCENE_HEIGHT: _double(unit="m"),
    MetadataKey.FIRST_NEAR_LAT: _double(unit="deg"),
    MetadataKey.FIRST_NEAR_LONG: _double(unit="deg"),
    MetadataKey.FIRST_FAR_LAT: _double(unit="deg"),
    MetadataKey.FIRST_FAR_LONG: _double(unit="deg"),
    MetadataKey.LAST_NEAR_LAT: _double(unit="deg"),
    MetadataKey.LAST_NEAR_LONG: _double(unit="deg"),
    MetadataKey.LAST_FAR_LAT: _double(unit="deg"),
    MetadataKey.LAST_FAR_LONG: _double(unit="deg"),
}

AttributeValue = Union[str, int, float, PreciseDateTime]


@dataclass
class NormalizedMetadata:
    """Normalized attribute set: every key of ATTRIBUTE_TABLE always holds a value"""

    attributes: dict[MetadataKey, AttributeValue] = field(
        default_factory=lambda: {key: spec.default for key, spec in ATTRIBUTE_TABLE.items()}
    )
    orbit_state_vectors: list[OrbitStateVector] = field(default_factory=list)
    srgr_coefficients: list[SRGRCoefficientSet] = field(default_factory=list)
    doppler_coefficients: list[DopplerCoefficientSet] = field(default_factory=list)
    calibration_luts: dict[str, CalibrationLUT] = field(default_factory=dict)
    polarization_map: dict[str, str] = field(default_factory=dict)

    def __getitem__(self, key: MetadataKey) -> AttributeValue:
        return self.attributes[key]

    def __setitem__(self, key: MetadataKey, value: AttributeValue) -> None:
        self.set(key, value)

    def set(self, key: MetadataKey, value: AttributeValue) -> None:
        """Setting a normalized attribute, coercing the value to the attribute kind.

        Parameters
        ----------
        key : MetadataKey
            normalized attribute key
        value : AttributeValue
            value to be stored

        Raises
        ------
        KeyError
            if the key is not part of the normalized attribute table
        TypeError
            if a time attribute is given a value that is not a PreciseDateTime
        """
        if key not in ATTRIBUTE_TABLE:
            raise KeyError(f"{key} is not a normalized metadata key")

        kind = ATTRIBUTE_TABLE[key].kind
        if kind == AttributeKind.STRING:
            value = str(value)
        elif kind == AttributeKind.INT:
            value = int(value)
        elif kind == AttributeKind.DOUBLE:
            value = float(value)
        elif not isinstance(value, PreciseDateTime):
            raise TypeError(f"{key} requires a PreciseDateTime, got {type(value).__name__}")

        self.attributes[key] = value

    def is_default(self, key: MetadataKey) -> bool:
        """True if the attribute still holds its documented default"""
        return self.attributes[key] == ATTRIBUTE_TABLE[key].default

    def unit(self, key: MetadataKey) -> str:
        """Unit of a normalized attribute"""
        return ATTRIBUTE_TABLE[key].unit

    def to_dict(self) -> dict[str, AttributeValue]:
        """Plain dictionary view keyed by attribute name"""
        return {key.value: value for key, value in self.attributes.items()}
