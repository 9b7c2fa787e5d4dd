# SPDX-FileCopyrightText: Aresys S.r.l. <info@aresys.it>
# SPDX-License-Identifier: MIT

"""Testing NovaSAR-1 metadata normalization, orbit and range models ingestion"""

import unittest

import numpy as np
from arepytools.timing.precisedatetime import PreciseDateTime
from lxml import etree
from novasar_samples import metadata_root

from sarnorm.common.exceptions import (
    InvalidGeometryError,
    MalformedCoefficientsError,
    MissingFieldError,
    UnsupportedFormatError,
)
from sarnorm.common.metadata import ATTRIBUTE_TABLE, MetadataKey, MetadataNode, NormalizedMetadata
from sarnorm.common.utilities import parse_coefficients
from sarnorm.novasar.l1_products import utilities as support


class NormalizeMetadataTest(unittest.TestCase):
    """Testing normalize_metadata"""

    def test_general_fields(self) -> None:
        """Unit conversions and string normalization"""
        metadata = support.normalize_metadata(metadata_root())

        assert metadata[MetadataKey.PASS] == "ASCENDING"
        assert metadata[MetadataKey.ANTENNA_POINTING] == "right"
        assert metadata[MetadataKey.MISSION] == "NovaSAR-1"
        assert metadata[MetadataKey.SWATH] == "S11"
        assert metadata[MetadataKey.BEAMS] == "S11"
        assert metadata[MetadataKey.ACQUISITION_MODE] == "Stripmap_S11"
        assert metadata[MetadataKey.PROCESSING_SYSTEM_IDENTIFIER] == "SSTL-2.1"
        assert metadata[MetadataKey.DATA_TAKE_ID] == 12345
        assert metadata[MetadataKey.GEO_REF_SYSTEM] == "WGS84"
        np.testing.assert_allclose(metadata[MetadataKey.RADAR_FREQUENCY], 3200.0)
        np.testing.assert_allclose(metadata[MetadataKey.RANGE_SAMPLING_RATE], 45.0)
        np.testing.assert_allclose(metadata[MetadataKey.RANGE_BANDWIDTH], 40.0)
        np.testing.assert_allclose(metadata[MetadataKey.SLANT_RANGE_TO_FIRST_PIXEL], 850000.0)
        assert metadata[MetadataKey.NUM_OUTPUT_LINES] == 80
        assert metadata[MetadataKey.NUM_SAMPLES_PER_LINE] == 100
        assert metadata[MetadataKey.ANT_ELEV_CORR_FLAG] == 1
        assert metadata[MetadataKey.RANGE_SPREAD_COMP_FLAG] == 1
        assert metadata[MetadataKey.REPLICA_POWER_CORR_FLAG] == 1
        assert metadata[MetadataKey.INC_ANGLE_COMP_FLAG] == 1

    def test_every_key_has_a_value(self) -> None:
        """Absent sections leave documented defaults only for optional fields"""
        metadata = support.normalize_metadata(metadata_root())
        assert set(metadata.attributes) == set(ATTRIBUTE_TABLE)
        assert metadata.is_default(MetadataKey.FIRST_NEAR_LAT)
        assert metadata.is_default(MetadataKey.COMPACT_MODE)

    def test_line_time_interval(self) -> None:
        """Interval between first and last line over the number of line intervals"""
        metadata = support.normalize_metadata(metadata_root())
        np.testing.assert_allclose(metadata[MetadataKey.LINE_TIME_INTERVAL], 7.9 / 79, rtol=1e-9)

    def test_single_line_image(self) -> None:
        """Line time interval undefined"""
        with self.assertRaises(InvalidGeometryError):
            support.normalize_metadata(metadata_root(num_lines=1))

    def test_calibrated(self) -> None:
        """Calibration constant kept for calibrated products"""
        root = metadata_root(calibration_status="CALIBRATED", calibration_constant="2.5")
        metadata = support.normalize_metadata(root)
        assert metadata[MetadataKey.ABS_CALIBRATION_FLAG] == 1
        assert metadata[MetadataKey.CALIBRATION_FACTOR] == 2.5

    def test_calibrated_case_insensitive(self) -> None:
        """Calibration status comparison ignores case"""
        root = metadata_root(calibration_status="Calibrated", calibration_constant="3.0")
        metadata = support.normalize_metadata(root)
        assert metadata[MetadataKey.ABS_CALIBRATION_FLAG] == 1
        assert metadata[MetadataKey.CALIBRATION_FACTOR] == 3.0

    def test_uncalibrated(self) -> None:
        """Calibration factor forced to one for uncalibrated products"""
        root = metadata_root(calibration_status="Uncalibrated", calibration_constant="2.5")
        metadata = support.normalize_metadata(root)
        assert metadata[MetadataKey.ABS_CALIBRATION_FLAG] == 0
        assert metadata[MetadataKey.CALIBRATION_FACTOR] == 1.0

    def test_sample_type(self) -> None:
        """Detected vs complex sample type"""
        detected = support.normalize_metadata(metadata_root(data_type="MAGNITUDE_DETECTED_BLAH"))
        complex_data = support.normalize_metadata(metadata_root(data_type="COMPLEX_IQ"))
        assert detected[MetadataKey.SAMPLE_TYPE] == "DETECTED"
        assert complex_data[MetadataKey.SAMPLE_TYPE] == "COMPLEX"

    def test_unsupported_format(self) -> None:
        """Only GeoTIFF rasters are accepted"""
        with self.assertRaises(UnsupportedFormatError):
            support.normalize_metadata(metadata_root(product_format="HDF5"))
        support.normalize_metadata(metadata_root(product_format="GEOTIFF"))

    def test_multilook_flag(self) -> None:
        """Multilook flag from range and azimuth looks"""
        single_look = support.normalize_metadata(metadata_root())
        multi_look = support.normalize_metadata(metadata_root(range_looks=1, azimuth_looks=3))
        assert single_look[MetadataKey.MULTILOOK_FLAG] == 0
        assert multi_look[MetadataKey.MULTILOOK_FLAG] == 1
        assert multi_look[MetadataKey.AZIMUTH_LOOKS] == 3

    def test_slc_product(self) -> None:
        """SLC products carry no ground to slant range model"""
        metadata = support.normalize_metadata(metadata_root(product_type="NOVASAR_SLC"))
        assert metadata[MetadataKey.SLC_FLAG] == 1
        assert metadata[MetadataKey.SRGR_FLAG] == 0
        assert metadata.srgr_coefficients == []

    def test_scansar_ground_range_product(self) -> None:
        """Ground range products carry one ground to slant range model"""
        metadata = support.normalize_metadata(
            metadata_root(product_type="NOVASAR_SCD", data_type="MAGNITUDE_DETECTED")
        )
        assert metadata[MetadataKey.SLC_FLAG] == 0
        assert metadata[MetadataKey.SRGR_FLAG] == 1
        assert len(metadata.srgr_coefficients) == 1
        srgr = metadata.srgr_coefficients[0]
        assert srgr.origin == 0.0
        assert srgr.reference_time == metadata[MetadataKey.FIRST_LINE_TIME]
        np.testing.assert_allclose(srgr.coefficients, [850000.0, 0.34, 1.0e-6, 0.0, 0.0])

    def test_missing_dimensions(self) -> None:
        """Image dimensions have no default"""
        root = metadata_root()
        node = root.child("Image_Attributes").child("NumberOfSamplesPerLine")
        node.element.getparent().remove(node.element)
        with self.assertRaises(MissingFieldError):
            support.normalize_metadata(root)

    def test_polarization_tags(self) -> None:
        """Per image polarization list"""
        metadata = support.normalize_metadata(metadata_root(images={"image_HH.tif": "HH", "image_VV.tif": "vv"}))
        assert metadata.polarization_map == {"image_hh.tif": "HH", "image_vv.tif": "VV"}
        assert metadata[MetadataKey.MDS1_TX_RX_POLAR] == "HH"
        assert metadata[MetadataKey.MDS2_TX_RX_POLAR] == "VV"
        assert metadata.is_default(MetadataKey.MDS3_TX_RX_POLAR)


class OrbitIngestionTest(unittest.TestCase):
    """Testing ingest_orbit"""

    def test_vendor_order_kept(self) -> None:
        """State vectors in vendor order, reference time from the first one"""
        metadata = support.normalize_metadata(metadata_root())
        vectors = metadata.orbit_state_vectors
        assert len(vectors) == 2
        assert vectors[0].time == PreciseDateTime.from_utc_string("2021-01-01T09:59:50.000000")
        np.testing.assert_allclose(vectors[1].position, [3940000.0, 890000.0, 5640000.0])
        np.testing.assert_allclose(vectors[1].velocity, [-6010.0, -1005.0, 3990.0])
        assert metadata[MetadataKey.STATE_VECTOR_TIME] == vectors[0].time

    def test_state_vector_time_not_overwritten(self) -> None:
        """An existing state vector time is kept"""
        orbit_data = metadata_root().child("OrbitData")
        metadata = NormalizedMetadata()
        existing = PreciseDateTime.from_utc_string("2020-12-31T00:00:00.000000")
        metadata[MetadataKey.STATE_VECTOR_TIME] = existing

        support.ingest_orbit(orbit_data, metadata)
        assert metadata[MetadataKey.STATE_VECTOR_TIME] == existing

    def test_fewer_vectors_than_declared(self) -> None:
        """Declared count not matched"""
        orbit_data = metadata_root().child("OrbitData")
        orbit_data.child("NumberOfStateVectorSets").element.text = "3"
        with self.assertRaises(MissingFieldError):
            support.ingest_orbit(orbit_data, NormalizedMetadata())


class RangeModelIngestionTest(unittest.TestCase):
    """Testing ingest_srgr and ingest_doppler"""

    def test_doppler(self) -> None:
        """Doppler centroid polynomial with zero slant range time reference"""
        igp = metadata_root().child("Image_Generation_Parameters")
        doppler = support.ingest_doppler(igp)
        assert doppler.origin == support.DOPPLER_SLANT_RANGE_TIME_REFERENCE == 0.0
        np.testing.assert_allclose(doppler.coefficients, [12.5, -0.3])
        np.testing.assert_allclose(doppler.evaluate(10.0), 12.5 - 3.0)

    def test_srgr_only_for_ground_range(self) -> None:
        """No SRGR set for slant range products"""
        igp = metadata_root().child("Image_Generation_Parameters")
        assert support.ingest_srgr("NOVASAR_SLC", igp) is None
        assert support.ingest_srgr("NOVASAR_SRD", igp) is None
        assert support.ingest_srgr("NOVASAR_GRD", igp) is not None

    def test_malformed_coefficients(self) -> None:
        """Non numeric tokens abort the ingestion"""
        with self.assertRaises(MalformedCoefficientsError):
            support.normalize_metadata(metadata_root(product_type="NOVASAR_GRD", ground_to_slant="850000.0 abc 0.0"))
        with self.assertRaises(MalformedCoefficientsError):
            support.normalize_metadata(metadata_root(doppler_centroid="1.0 2,0"))

    def test_missing_srgr_for_ground_range(self) -> None:
        """Ground range products without a ground to slant range model are rejected"""
        root = metadata_root(product_type="NOVASAR_GRD", data_type="MAGNITUDE_DETECTED", ground_to_slant="")
        with self.assertRaises(MalformedCoefficientsError):
            support.normalize_metadata(root)
        with self.assertRaises(MalformedCoefficientsError):
            support.ingest_srgr("NOVASAR_SCD", root.child("Image_Generation_Parameters"))

    def test_parse_coefficients(self) -> None:
        """Whitespace delimited values in vendor order"""
        np.testing.assert_array_equal(parse_coefficients(" 1.0\t-2e3\n 4 "), [1.0, -2000.0, 4.0])
        assert parse_coefficients(None).size == 0
        assert parse_coefficients("").size == 0

    def test_parse_coefficients_strict_grammar(self) -> None:
        """Digit separators and non finite literals are not coefficients"""
        for text in ("1_0 2.0", "nan", "inf", "1.0 -Infinity", "0x1A"):
            with self.assertRaises(MalformedCoefficientsError):
                parse_coefficients(text)
        np.testing.assert_array_equal(parse_coefficients("1.0e-6 -3 .5 +2."), [1.0e-6, -3.0, 0.5, 2.0])


class ProductTypeTest(unittest.TestCase):
    """Testing product type classification"""

    def test_classification(self) -> None:
        """SLC and ground range detection from product type strings"""
        assert support.is_slc_product("NOVASAR_SLC")
        assert not support.is_slc_product("NOVASAR_GRD")
        assert support.is_ground_range_product("NOVASAR_GRD")
        assert support.is_ground_range_product("novasar_scd")
        assert not support.is_ground_range_product("NOVASAR_SRD")


class MetadataNodeTest(unittest.TestCase):
    """Testing MetadataNode accessors"""

    def setUp(self) -> None:
        self.node = MetadataNode(
            etree.fromstring(
                b"<root><Value>4.5</Value><count>3</count><Name> abc </Name><Bad>x</Bad>"
                b'<Time>2021-01-01T10:00:00.000000</Time><Item Pol="HH">a</Item><Item>b</Item></root>'
            )
        )

    def test_typed_access(self) -> None:
        """Typed accessors, case insensitive names"""
        assert self.node.get_double("value") == 4.5
        assert self.node.get_int("Count") == 3
        assert self.node.get_string("Name") == "abc"
        assert self.node.get_time("Time") == PreciseDateTime.from_utc_string("2021-01-01T10:00:00.000000")
        assert [c.text for c in self.node.children("item")] == ["a", "b"]
        assert self.node.child("Item").attribute("pol") == "HH"

    def test_defaults_and_missing(self) -> None:
        """Defaults for absent fields, MissingFieldError otherwise"""
        assert self.node.get_double("Missing", 1.0) == 1.0
        assert self.node.child("Missing") is None
        with self.assertRaises(MissingFieldError):
            self.node.get_string("Missing")
        with self.assertRaises(MissingFieldError):
            self.node.get_double("Bad")
        with self.assertRaises(MissingFieldError):
            self.node.get_time("Bad")

    def test_normalized_metadata_coercion(self) -> None:
        """Values coerced to the attribute kind"""
        metadata = NormalizedMetadata()
        metadata[MetadataKey.RANGE_LOOKS] = "4"
        metadata[MetadataKey.RANGE_SPACING] = 3
        assert metadata[MetadataKey.RANGE_LOOKS] == 4
        assert isinstance(metadata[MetadataKey.RANGE_SPACING], float)
        with self.assertRaises(TypeError):
            metadata[MetadataKey.FIRST_LINE_TIME] = "2021-01-01"
        assert metadata.unit(MetadataKey.RADAR_FREQUENCY) == "MHz"
        assert metadata.to_dict()["range_looks"] == 4


if __name__ == "__main__":
    unittest.main()
