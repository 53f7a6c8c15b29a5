"""
Unit tests for region statistics (measurement.region_statistics).

Uses in-memory numpy arrays through ArrayPixelAccessor. Covers the calibrated
rectangle case, ellipse and polygon coverage, empty regions, lines, angles,
points and pixel-unit fallback.
"""

import math
import unittest
import sys
import os

import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from measurement.calibration import CalibrationInfo
from measurement.geometry_parser import (AngleShape, EllipseShape, LineShape, PointShape,
                                         PolygonShape, RectangleShape, parse_position_data)
from measurement.pixel_access import ArrayPixelAccessor
from measurement.region_statistics import compute_region_statistics, coverage_mask
from utils.engine_errors import EmptyRegionError


class TestRectangleStatistics(unittest.TestCase):
    """Calibrated statistics over a rectangle."""

    def setUp(self):
        self.calibration = CalibrationInfo(rows=20, columns=20, pixel_spacing=(1.0, 1.0),
                                           rescale_slope=2.0, rescale_intercept=-50.0)
        self.accessor = ArrayPixelAccessor.single(np.full((20, 20), 100, dtype=np.int16), "img")

    def test_constant_region(self):
        shape = RectangleShape(vertices=((2.0, 2.0), (12.0, 12.0)))
        stats = compute_region_statistics(shape, self.calibration, self.accessor, "img")
        self.assertEqual(stats.pixel_count, 100)
        self.assertAlmostEqual(stats.mean, 150.0)
        self.assertAlmostEqual(stats.std_dev, 0.0)
        self.assertAlmostEqual(stats.min_value, 150.0)
        self.assertAlmostEqual(stats.max_value, 150.0)
        self.assertAlmostEqual(stats.area_or_length, 100.0)
        self.assertEqual(stats.unit, "mm2")
        self.assertAlmostEqual(stats.median, 150.0)
        self.assertAlmostEqual(stats.sum, 15000.0)

    def test_corner_order_does_not_matter(self):
        a = RectangleShape(vertices=((2.0, 2.0), (12.0, 12.0)))
        b = RectangleShape(vertices=((12.0, 2.0), (2.0, 12.0)))
        self.assertEqual(compute_region_statistics(a, self.calibration, self.accessor, "img"),
                         compute_region_statistics(b, self.calibration, self.accessor, "img"))

    def test_varying_values(self):
        pixels = np.arange(16, dtype=float).reshape(4, 4)
        calibration = CalibrationInfo(rows=4, columns=4)
        shape = RectangleShape(vertices=((0.0, 0.0), (2.0, 2.0)))
        stats = compute_region_statistics(shape, calibration, ArrayPixelAccessor.single(pixels))
        # Pixels (0,0) (0,1) (1,0) (1,1) -> 0, 1, 4, 5
        self.assertEqual(stats.pixel_count, 4)
        self.assertAlmostEqual(stats.mean, 2.5)
        self.assertAlmostEqual(stats.variance, 4.25)
        self.assertAlmostEqual(stats.std_dev, math.sqrt(4.25))
        self.assertEqual((stats.min_value, stats.max_value), (0.0, 5.0))
        self.assertEqual(stats.unit, "px2")
        self.assertEqual(stats.value_unit, "raw")

    def test_anisotropic_spacing_area(self):
        calibration = CalibrationInfo(rows=20, columns=20, pixel_spacing=(0.5, 2.0))
        shape = RectangleShape(vertices=((0.0, 0.0), (4.0, 4.0)))
        stats = compute_region_statistics(shape, calibration, self.accessor, "img")
        self.assertEqual(stats.pixel_count, 16)
        self.assertAlmostEqual(stats.area_or_length, 16.0)

    def test_frame_selection(self):
        frames = np.stack([np.zeros((5, 5)), np.full((5, 5), 7.0)])
        shape = RectangleShape(vertices=((0.0, 0.0), (5.0, 5.0)), frame=1)
        stats = compute_region_statistics(shape, CalibrationInfo(rows=5, columns=5),
                                          ArrayPixelAccessor({"mf": frames}), "mf")
        self.assertEqual(stats.mean, 7.0)
        self.assertEqual(stats.pixel_count, 25)

    def test_deterministic(self):
        shape = PolygonShape(vertices=((1.0, 1.0), (15.0, 3.0), (9.0, 17.0)))
        first = compute_region_statistics(shape, self.calibration, self.accessor, "img")
        second = compute_region_statistics(shape, self.calibration, self.accessor, "img")
        self.assertEqual(first, second)


class TestCoverage(unittest.TestCase):
    """Scan conversion of area shapes."""

    def test_ellipse_coverage(self):
        shape = EllipseShape(vertices=((0.0, 0.0), (10.0, 10.0)))
        mask = coverage_mask(shape, 10, 10)
        self.assertTrue(mask[5, 5])
        self.assertFalse(mask[0, 0])
        self.assertFalse(mask[9, 9])
        self.assertEqual(mask.sum(), mask.T.sum())
        # Roughly pi * 5^2
        self.assertTrue(70 <= mask.sum() <= 86)

    def test_polygon_triangle(self):
        shape = PolygonShape(vertices=((0.0, 0.0), (10.0, 0.0), (0.0, 10.0)))
        mask = coverage_mask(shape, 10, 10)
        self.assertTrue(mask[0, 0])
        self.assertFalse(mask[9, 9])
        # Centers with x + y < 10: 45 pixels
        self.assertEqual(int(mask.sum()), 45)

    def test_shape_clipped_to_image(self):
        shape = RectangleShape(vertices=((8.0, 8.0), (30.0, 30.0)))
        self.assertEqual(int(coverage_mask(shape, 10, 10).sum()), 4)

    def test_unknown_matrix_size_is_not_clipped(self):
        shape = RectangleShape(vertices=((2.0, 2.0), (12.0, 12.0)))
        mask = coverage_mask(shape, None, None)
        self.assertEqual(mask.shape, (13, 13))
        self.assertEqual(int(mask.sum()), 100)

    def test_record_without_matrix_size(self):
        calibration = CalibrationInfo.from_record({"PixelSpacing": "1\\1"})
        accessor = ArrayPixelAccessor.single(np.full((20, 20), 100, dtype=np.int16), "img")
        shape = RectangleShape(vertices=((2.0, 2.0), (12.0, 12.0)))
        stats = compute_region_statistics(shape, calibration, accessor, "img")
        self.assertEqual(stats.pixel_count, 100)
        self.assertAlmostEqual(stats.mean, 100.0)
        self.assertAlmostEqual(stats.area_or_length, 100.0)
        self.assertEqual(stats.unit, "mm2")

    def test_line_has_no_coverage(self):
        with self.assertRaises(TypeError):
            coverage_mask(LineShape(vertices=((0.0, 0.0), (1.0, 1.0))), 4, 4)


class TestEmptyRegion(unittest.TestCase):
    """Shapes that cover zero pixels."""

    def setUp(self):
        self.calibration = CalibrationInfo(rows=10, columns=10, pixel_spacing=(1.0, 1.0))
        self.accessor = ArrayPixelAccessor.single(np.ones((10, 10)))

    def test_degenerate_polygon(self):
        shape = PolygonShape(vertices=((1.0, 1.0), (5.0, 5.0), (8.0, 8.0)))
        with self.assertRaises(EmptyRegionError) as ctx:
            compute_region_statistics(shape, self.calibration, self.accessor)
        stats = ctx.exception.stats
        self.assertIsNone(stats.mean)
        self.assertIsNone(stats.std_dev)
        self.assertEqual(stats.pixel_count, 0)
        self.assertEqual(stats.area_or_length, 0.0)
        self.assertTrue(stats.is_empty)

    def test_zero_width_rectangle(self):
        shape = RectangleShape(vertices=((3.0, 1.0), (3.0, 8.0)))
        with self.assertRaises(EmptyRegionError):
            compute_region_statistics(shape, self.calibration, self.accessor)

    def test_sliver_between_pixel_centers(self):
        shape = RectangleShape(vertices=((3.6, 3.6), (4.4, 4.4)))
        with self.assertRaises(EmptyRegionError):
            compute_region_statistics(shape, self.calibration, self.accessor)


class TestNonAreaShapes(unittest.TestCase):
    """Lines, angles and points."""

    def test_line_length_with_spacing(self):
        calibration = CalibrationInfo(rows=50, columns=50, pixel_spacing=(0.5, 0.5))
        stats = compute_region_statistics(LineShape(vertices=((0.0, 0.0), (30.0, 40.0))), calibration)
        self.assertAlmostEqual(stats.area_or_length, 25.0)
        self.assertEqual(stats.unit, "mm")
        self.assertIsNone(stats.mean)
        self.assertEqual(stats.pixel_count, 0)

    def test_line_length_without_spacing(self):
        stats = compute_region_statistics(LineShape(vertices=((0.0, 0.0), (3.0, 4.0))),
                                          CalibrationInfo(rows=10, columns=10))
        self.assertAlmostEqual(stats.area_or_length, 5.0)
        self.assertEqual(stats.unit, "px")

    def test_right_angle(self):
        shape = parse_position_data({"type": "angle", "points": [[4, 1], [1, 1], [1, 7]]})
        stats = compute_region_statistics(shape, CalibrationInfo(rows=10, columns=10))
        self.assertAlmostEqual(stats.area_or_length, 90.0, places=9)
        self.assertEqual(stats.unit, "deg")

    def test_acute_angle(self):
        shape = AngleShape(vertices=((1.0, 0.0), (0.0, 0.0), (1.0, 1.0)))
        stats = compute_region_statistics(shape, CalibrationInfo(rows=10, columns=10))
        self.assertAlmostEqual(stats.area_or_length, 45.0)

    def test_point_sample(self):
        pixels = np.zeros((10, 10))
        pixels[7, 3] = 40
        calibration = CalibrationInfo(rows=10, columns=10, rescale_slope=1.0,
                                      rescale_intercept=-1024.0, rescale_type="HU")
        stats = compute_region_statistics(PointShape(vertices=((3.6, 7.2),)), calibration,
                                          ArrayPixelAccessor.single(pixels))
        self.assertEqual(stats.mean, -984.0)
        self.assertEqual(stats.pixel_count, 1)
        self.assertEqual(stats.value_unit, "HU")

    def test_sampling_shape_requires_accessor(self):
        with self.assertRaises(ValueError):
            compute_region_statistics(RectangleShape(vertices=((0.0, 0.0), (2.0, 2.0))),
                                      CalibrationInfo(rows=4, columns=4))

    def test_to_dict(self):
        stats = compute_region_statistics(LineShape(vertices=((0.0, 0.0), (3.0, 4.0))),
                                          CalibrationInfo(rows=10, columns=10))
        record = stats.to_dict()
        self.assertEqual(record["type"], "line")
        self.assertEqual(record["value"], 5.0)
        self.assertIsNone(record["stdDev"])


if __name__ == "__main__":
    unittest.main()
