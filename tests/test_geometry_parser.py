"""
Unit tests for the geometry parser (measurement.geometry_parser).

Tests each shape kind, payload aliases and alternate coordinate forms,
vertex-count and bounds validation, and verbatim position-data round trip.
"""

import json
import unittest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from measurement.geometry_parser import (
    AngleShape,
    EllipseShape,
    LineShape,
    PointShape,
    PolygonShape,
    RectangleShape,
    ShapeKind,
    parse_position_data,
    to_position_data,
)
from utils.engine_errors import MalformedGeometryError


class TestParseShapes(unittest.TestCase):
    """One test per shape kind."""

    def test_line(self):
        shape = parse_position_data('{"type": "line", "points": [{"x": 1, "y": 2}, {"x": 4, "y": 6}]}')
        self.assertIsInstance(shape, LineShape)
        self.assertEqual(shape.vertices, ((1.0, 2.0), (4.0, 6.0)))
        self.assertAlmostEqual(shape.length_pixels, 5.0)
        self.assertEqual(shape.frame, 0)

    def test_point_with_frame(self):
        shape = parse_position_data({"type": "Probe", "x": 3, "y": 4}, frame_number=2)
        self.assertIsInstance(shape, PointShape)
        self.assertEqual(shape.vertices, ((3.0, 4.0),))
        self.assertEqual(shape.frame, 2)

    def test_right_angle(self):
        shape = parse_position_data({"type": "angle", "points": [[10, 0], [0, 0], [0, 10]]})
        self.assertIsInstance(shape, AngleShape)
        self.assertAlmostEqual(shape.angle_degrees, 90.0, places=9)

    def test_angle_with_named_vertex(self):
        shape = parse_position_data({"type": "Angle", "vertex": {"x": 5, "y": 5},
                                     "points": [{"x": 10, "y": 5}, {"x": 0, "y": 5}]})
        self.assertEqual(shape.vertex, (5.0, 5.0))
        self.assertAlmostEqual(shape.angle_degrees, 180.0)

    def test_rectangle_alias_and_corner_keys(self):
        shape = parse_position_data({"type": "RectangleRoi",
                                     "topLeft": {"x": 2, "y": 3}, "bottomRight": {"x": 8, "y": 9}})
        self.assertIsInstance(shape, RectangleShape)
        self.assertEqual(shape.bounding_box, (2.0, 3.0, 8.0, 9.0))

    def test_ellipse_from_center_and_radii(self):
        shape = parse_position_data({"type": "EllipseRoi", "center": {"x": 10, "y": 10},
                                     "radiusX": 4, "radiusY": 2})
        self.assertIsInstance(shape, EllipseShape)
        self.assertEqual(shape.center, (10.0, 10.0))
        self.assertEqual(shape.radii, (4.0, 2.0))

    def test_polygon(self):
        shape = parse_position_data({"shape": "freehand",
                                     "points": [[0, 0], [4, 0], [4, 3], [0, 3]]})
        self.assertIsInstance(shape, PolygonShape)
        self.assertEqual(shape.kind, ShapeKind.POLYGON)
        self.assertAlmostEqual(shape.area_pixels, 12.0)
        self.assertEqual(len(shape.edges()), 4)

    def test_uppercase_coordinate_keys(self):
        shape = parse_position_data({"type": "length", "start": {"X": 0, "Y": 0}, "end": {"X": 3, "Y": 0}})
        self.assertEqual(shape.vertices, ((0.0, 0.0), (3.0, 0.0)))


class TestMalformedGeometry(unittest.TestCase):
    """Inputs that must raise MalformedGeometryError."""

    def assertMalformed(self, payload, **kwargs):
        with self.assertRaises(MalformedGeometryError):
            parse_position_data(payload, **kwargs)

    def test_wrong_vertex_counts(self):
        self.assertMalformed({"type": "line", "points": [[0, 0]]})
        self.assertMalformed({"type": "line", "points": [[0, 0], [1, 1], [2, 2]]})
        self.assertMalformed({"type": "angle", "points": [[0, 0], [1, 1]]})
        self.assertMalformed({"type": "rectangle", "points": [[0, 0]]})
        self.assertMalformed({"type": "polygon", "points": [[0, 0], [1, 1]]})
        self.assertMalformed({"type": "point", "points": []})

    def test_unknown_or_missing_kind(self):
        self.assertMalformed({"type": "spline", "points": [[0, 0], [1, 1]]})
        self.assertMalformed({"points": [[0, 0], [1, 1]]})

    def test_bad_payload_text(self):
        self.assertMalformed("not json")
        self.assertMalformed("[1, 2]")
        self.assertMalformed(b'{"type": "point", "points": [[1, 1]]}\xff')
        self.assertMalformed(b"\xc3\x28")

    def test_non_numeric_and_non_finite_coordinates(self):
        self.assertMalformed({"type": "line", "points": [["a", 0], [1, 1]]})
        self.assertMalformed({"type": "line", "points": [[float("nan"), 0], [1, 1]]})
        self.assertMalformed({"type": "line", "points": [[True, 0], [1, 1]]})
        self.assertMalformed({"type": "line", "points": [{"x": 1}, [1, 1]]})

    def test_out_of_bounds(self):
        payload = {"type": "line", "points": [[0, 0], [20, 5]]}
        self.assertMalformed(payload, rows=10, columns=20)
        self.assertMalformed({"type": "point", "x": -1, "y": 0}, rows=10, columns=10)
        # In bounds when the instance is wider
        self.assertIsInstance(parse_position_data(payload, rows=10, columns=21), LineShape)

    def test_zero_length_angle_arm(self):
        self.assertMalformed({"type": "angle", "points": [[0, 0], [0, 0], [5, 5]]})

    def test_negative_frame(self):
        self.assertMalformed({"type": "point", "x": 1, "y": 1}, frame_number=-1)

    def test_vertex_limit(self):
        points = [[i, i % 2] for i in range(10)]
        self.assertMalformed({"type": "polygon", "points": points}, max_vertices=5)

    def test_negative_ellipse_radius(self):
        self.assertMalformed({"type": "ellipse", "center": [5, 5], "radiusX": -1, "radiusY": 2})


class TestPositionDataRoundTrip(unittest.TestCase):
    """Tests for to_position_data."""

    def test_original_text_returned_unchanged(self):
        text = '{"type":"EllipseRoi",  "points":[{"x":1.50,"y":2},{"x":7,"y":9}], "color":"#ff0"}'
        shape = parse_position_data(text)
        self.assertEqual(to_position_data(shape), text)

    def test_canonical_form_for_constructed_shapes(self):
        shape = LineShape(vertices=((1.0, 2.0), (3.0, 4.0)))
        payload = json.loads(to_position_data(shape))
        self.assertEqual(payload, {"type": "line", "points": [{"x": 1.0, "y": 2.0}, {"x": 3.0, "y": 4.0}]})
        self.assertEqual(parse_position_data(payload), shape)

    def test_shapes_compare_by_geometry(self):
        a = parse_position_data('{"type": "line", "points": [[0, 0], [1, 1]]}')
        b = parse_position_data('{"type":"line","points":[[0,0],[1,1]]}')
        self.assertEqual(a, b)


if __name__ == "__main__":
    unittest.main()
