# SPDX-FileCopyrightText: Aresys S.r.l. <info@aresys.it>
# SPDX-License-Identifier: MIT

"""Testing GeoTIFF window decoding and the product container"""

import tempfile
import unittest
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import numpy as np
import tifffile

from sarnorm.common.exceptions import RasterReadError
from sarnorm.common.metadata import NormalizedMetadata
from sarnorm.common.product import Band, SARProduct, VirtualBand
from sarnorm.common.raster import GeoTiffImageDecoder
from sarnorm.common.utilities import Unit


class GeoTiffImageDecoderTest(unittest.TestCase):
    """Testing GeoTiffImageDecoder"""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        tmp = Path(self._tmp.name)

        self.complex_data = np.arange(30 * 20 * 2, dtype=np.float32).reshape(30, 20, 2)
        self.complex_path = tmp.joinpath("image_HH.tif")
        tifffile.imwrite(self.complex_path, self.complex_data, photometric="minisblack", planarconfig="contig")

        self.detected_data = np.arange(30 * 20, dtype=np.uint16).reshape(30, 20)
        self.detected_path = tmp.joinpath("image_VV.tif")
        tifffile.imwrite(self.detected_path, self.detected_data)

    def test_properties(self) -> None:
        """Shape, bands and lowercase name"""
        decoder = GeoTiffImageDecoder(self.complex_path)
        self.addCleanup(decoder.close)
        assert decoder.name == "image_hh.tif"
        assert decoder.shape == (30, 20, 2)
        assert decoder.num_bands == 2
        assert GeoTiffImageDecoder(self.detected_path).num_bands == 1

    def test_read_window(self) -> None:
        """Windows with and without subsampling"""
        decoder = GeoTiffImageDecoder(self.complex_path)
        self.addCleanup(decoder.close)

        window = decoder.read_window(1, 2, 3, 5, 4)
        np.testing.assert_array_equal(window, self.complex_data[3:7, 2:7, 1])

        subsampled = decoder.read_window(0, 0, 0, 5, 6, step_x=4, step_y=5)
        np.testing.assert_array_equal(subsampled, self.complex_data[0:30:5, 0:20:4, 0])

    def test_window_clipped_at_border(self) -> None:
        """Windows exceeding the image are clipped"""
        decoder = GeoTiffImageDecoder(self.detected_path)
        self.addCleanup(decoder.close)
        window = decoder.read_window(0, 15, 25, 10, 10)
        np.testing.assert_array_equal(window, self.detected_data[25:, 15:])

    def test_read_failure_releases_lock(self) -> None:
        """Decode failures are reported and leave the decoder usable"""
        decoder = GeoTiffImageDecoder(self.detected_path)
        self.addCleanup(decoder.close)

        with self.assertLogs("sarnorm.common.raster", level="ERROR"):
            with self.assertRaises(RasterReadError):
                decoder.read_window(1, 0, 0, 5, 5)

        assert not decoder._lock.locked()
        np.testing.assert_array_equal(decoder.read_window(0, 0, 0, 2, 2), self.detected_data[:2, :2])

    def test_concurrent_reads(self) -> None:
        """Concurrent window requests on one decoder"""
        decoder = GeoTiffImageDecoder(self.complex_path)
        self.addCleanup(decoder.close)

        offsets = list(range(0, 25))
        with ThreadPoolExecutor(max_workers=8) as executor:
            windows = list(executor.map(lambda y: decoder.read_window(0, 0, y, 20, 5), offsets))

        for y, window in zip(offsets, windows):
            np.testing.assert_array_equal(window, self.complex_data[y : y + 5, :, 0])

    def test_close_and_reopen(self) -> None:
        """Store reopened on demand after close"""
        decoder = GeoTiffImageDecoder(self.detected_path)
        decoder.read_window(0, 0, 0, 1, 1)
        decoder.close()
        decoder.close()
        np.testing.assert_array_equal(decoder.read_window(0, 0, 0, 1, 1), self.detected_data[:1, :1])
        decoder.close()


class SARProductTest(unittest.TestCase):
    """Testing SARProduct"""

    def setUp(self) -> None:
        self.product = SARProduct(
            name="p", product_type="NOVASAR_GRD", width=20, height=30, metadata=NormalizedMetadata()
        )
        self.band = Band("Amplitude_HH", np.dtype(np.uint32), 20, 30, Unit.AMPLITUDE, "image_hh.tif", 0)

    def test_unique_band_names(self) -> None:
        """Real and virtual band names share one namespace"""
        self.product.add_band(self.band)
        self.product.add_virtual_band(VirtualBand("Intensity_HH", "Amplitude_HH * Amplitude_HH", 20, 30))
        assert self.product.band_names == ["Amplitude_HH", "Intensity_HH"]
        with self.assertRaises(ValueError):
            self.product.add_band(self.band)
        with self.assertRaises(ValueError):
            self.product.add_virtual_band(VirtualBand("Amplitude_HH", "1", 20, 30))
        with self.assertRaises(KeyError):
            self.product.get_band("Intensity_HH")

    def test_read_without_decoder(self) -> None:
        """Bands whose image is not open cannot be read"""
        self.product.add_band(self.band)
        with self.assertRaises(RasterReadError):
            self.product.read_band_raster("Amplitude_HH", 0, 0, 1, 1)


if __name__ == "__main__":
    unittest.main()
