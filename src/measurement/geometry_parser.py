"""
Geometry Parser

This module decodes a stored position-data payload (coordinate list plus a
shape discriminator) into one of the shape variants a measurement or
annotation can take, in image-pixel coordinates, and encodes shapes back.

Coordinates are (x, y) with x along columns and y along rows. Frame indices
are 0-based.

Inputs:
    - Position data: JSON text or an already-decoded mapping, e.g.
      {"type": "line", "points": [{"x": 10, "y": 12}, {"x": 40, "y": 12}]}
    - Frame number and the owning instance's bounds (rows, columns)

Outputs:
    - Shape variants: PointShape, LineShape, AngleShape, RectangleShape,
      EllipseShape, PolygonShape
    - Position data text (the original payload is returned unchanged)

Requirements:
    - Standard library only (json, math)
    - utils.engine_errors (MalformedGeometryError)
"""

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

from utils.engine_errors import MalformedGeometryError

Point = Tuple[float, float]


class ShapeKind(Enum):
    POINT = "point"
    LINE = "line"
    ANGLE = "angle"
    RECTANGLE = "rectangle"
    ELLIPSE = "ellipse"
    POLYGON = "polygon"


# Discriminator values accepted on input, including the stored measurement
# and annotation type names (Length, EllipseRoi, RectangleRoi, Probe, ...).
_KIND_ALIASES: Dict[str, ShapeKind] = {
    "point": ShapeKind.POINT,
    "probe": ShapeKind.POINT,
    "line": ShapeKind.LINE,
    "length": ShapeKind.LINE,
    "distance": ShapeKind.LINE,
    "angle": ShapeKind.ANGLE,
    "rectangle": ShapeKind.RECTANGLE,
    "rect": ShapeKind.RECTANGLE,
    "rectangleroi": ShapeKind.RECTANGLE,
    "ellipse": ShapeKind.ELLIPSE,
    "ellipseroi": ShapeKind.ELLIPSE,
    "circle": ShapeKind.ELLIPSE,
    "polygon": ShapeKind.POLYGON,
    "area": ShapeKind.POLYGON,
    "freehand": ShapeKind.POLYGON,
    "freehandroi": ShapeKind.POLYGON,
}


@dataclass(frozen=True)
class Shape:
    """
    Parsed geometry of an annotation or measurement.

    Subclasses fix the kind and the vertex count the kind requires.
    position_data holds the payload text the shape was parsed from, if any,
    and does not take part in equality.
    """
    vertices: Tuple[Point, ...]
    frame: int = 0
    position_data: Optional[str] = field(default=None, compare=False, repr=False)

    kind: ClassVar[ShapeKind]
    vertex_count: ClassVar[Optional[int]] = None
    min_vertex_count: ClassVar[int] = 1

    def __post_init__(self):
        count = len(self.vertices)
        if self.vertex_count is not None and count != self.vertex_count:
            raise MalformedGeometryError(
                f"{self.kind.value} requires {self.vertex_count} vertices, got {count}"
            )
        if count < self.min_vertex_count:
            raise MalformedGeometryError(
                f"{self.kind.value} requires at least {self.min_vertex_count} vertices, got {count}"
            )

    @property
    def bounding_box(self) -> Tuple[float, float, float, float]:
        """(min_x, min_y, max_x, max_y) of the vertices."""
        xs = [x for x, _ in self.vertices]
        ys = [y for _, y in self.vertices]
        return min(xs), min(ys), max(xs), max(ys)


@dataclass(frozen=True)
class PointShape(Shape):
    kind: ClassVar[ShapeKind] = ShapeKind.POINT
    vertex_count: ClassVar[Optional[int]] = 1


@dataclass(frozen=True)
class LineShape(Shape):
    kind: ClassVar[ShapeKind] = ShapeKind.LINE
    vertex_count: ClassVar[Optional[int]] = 2

    @property
    def length_pixels(self) -> float:
        (x0, y0), (x1, y1) = self.vertices
        return math.hypot(x1 - x0, y1 - y0)


@dataclass(frozen=True)
class AngleShape(Shape):
    """Vertices are (first arm end, vertex, second arm end)."""
    kind: ClassVar[ShapeKind] = ShapeKind.ANGLE
    vertex_count: ClassVar[Optional[int]] = 3

    def __post_init__(self):
        super().__post_init__()
        first, vertex, second = self.vertices
        if first == vertex or second == vertex:
            raise MalformedGeometryError("angle arm has zero length")

    @property
    def vertex(self) -> Point:
        return self.vertices[1]

    @property
    def angle_degrees(self) -> float:
        """Interior angle at the middle vertex, in [0, 180]."""
        (x1, y1), (vx, vy), (x2, y2) = self.vertices
        ax, ay = x1 - vx, y1 - vy
        bx, by = x2 - vx, y2 - vy
        cross = ax * by - ay * bx
        dot = ax * bx + ay * by
        return math.degrees(math.atan2(abs(cross), dot))


@dataclass(frozen=True)
class RectangleShape(Shape):
    """Two opposite corners, in any order."""
    kind: ClassVar[ShapeKind] = ShapeKind.RECTANGLE
    vertex_count: ClassVar[Optional[int]] = 2


@dataclass(frozen=True)
class EllipseShape(Shape):
    """Two opposite corners of the axis-aligned bounding box."""
    kind: ClassVar[ShapeKind] = ShapeKind.ELLIPSE
    vertex_count: ClassVar[Optional[int]] = 2

    @property
    def center(self) -> Point:
        min_x, min_y, max_x, max_y = self.bounding_box
        return (min_x + max_x) / 2.0, (min_y + max_y) / 2.0

    @property
    def radii(self) -> Tuple[float, float]:
        min_x, min_y, max_x, max_y = self.bounding_box
        return (max_x - min_x) / 2.0, (max_y - min_y) / 2.0


@dataclass(frozen=True)
class PolygonShape(Shape):
    kind: ClassVar[ShapeKind] = ShapeKind.POLYGON
    min_vertex_count: ClassVar[int] = 3

    @property
    def signed_area_pixels(self) -> float:
        """Shoelace area; positive for counter-clockwise vertex order in x/y axes."""
        total = 0.0
        n = len(self.vertices)
        for i in range(n):
            x0, y0 = self.vertices[i]
            x1, y1 = self.vertices[(i + 1) % n]
            total += x0 * y1 - x1 * y0
        return total / 2.0

    @property
    def area_pixels(self) -> float:
        return abs(self.signed_area_pixels)

    def edges(self) -> List[Tuple[Point, Point]]:
        n = len(self.vertices)
        return [(self.vertices[i], self.vertices[(i + 1) % n]) for i in range(n)]


SHAPE_CLASSES = {
    cls.kind: cls
    for cls in (PointShape, LineShape, AngleShape, RectangleShape, EllipseShape, PolygonShape)
}


def _coerce_number(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        raise MalformedGeometryError(f"coordinate is not a number: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MalformedGeometryError(f"coordinate is not a number: {value!r}") from None
    if not math.isfinite(number):
        raise MalformedGeometryError(f"coordinate is not finite: {value!r}")
    return number


def _coerce_point(item: Any) -> Point:
    """Accept {"x": .., "y": ..} (case-insensitive keys) or an [x, y] pair."""
    if isinstance(item, Mapping):
        lowered = {str(k).lower(): v for k, v in item.items()}
        if "x" not in lowered or "y" not in lowered:
            raise MalformedGeometryError(f"point is missing x/y: {item!r}")
        return _coerce_number(lowered["x"]), _coerce_number(lowered["y"])
    if isinstance(item, (list, tuple)) and len(item) == 2:
        return _coerce_number(item[0]), _coerce_number(item[1])
    raise MalformedGeometryError(f"unrecognized point: {item!r}")


def _decode_payload(position_data: Union[str, bytes, Mapping[str, Any]]) -> Tuple[Dict[str, Any], Optional[str]]:
    if isinstance(position_data, Mapping):
        return dict(position_data), None
    if isinstance(position_data, bytes):
        try:
            position_data = position_data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedGeometryError(f"position data is not valid UTF-8: {e}") from None
    if not isinstance(position_data, str):
        raise MalformedGeometryError(f"unsupported position data type: {type(position_data).__name__}")
    try:
        payload = json.loads(position_data)
    except json.JSONDecodeError as e:
        raise MalformedGeometryError(f"position data is not valid JSON: {e}") from None
    if not isinstance(payload, dict):
        raise MalformedGeometryError("position data must be a JSON object")
    return payload, position_data


def _resolve_kind(payload: Mapping[str, Any]) -> ShapeKind:
    discriminator = payload.get("type", payload.get("shape"))
    if discriminator is None:
        raise MalformedGeometryError("position data has no shape type")
    key = str(discriminator).strip().lower().replace("_", "").replace("-", "")
    kind = _KIND_ALIASES.get(key)
    if kind is None:
        raise MalformedGeometryError(f"unknown shape type: {discriminator!r}")
    return kind


def _extract_vertices(kind: ShapeKind, payload: Mapping[str, Any]) -> List[Point]:
    points = payload.get("points")
    if points is not None and not isinstance(points, (list, tuple)):
        raise MalformedGeometryError("points must be a list")
    vertices = [_coerce_point(p) for p in (points or [])]

    if kind is ShapeKind.ELLIPSE and not vertices and "center" in payload:
        cx, cy = _coerce_point(payload["center"])
        rx = _coerce_number(payload.get("radiusX", payload.get("radius")))
        ry = _coerce_number(payload.get("radiusY", payload.get("radius")))
        if rx < 0 or ry < 0:
            raise MalformedGeometryError("ellipse radius must not be negative")
        return [(cx - rx, cy - ry), (cx + rx, cy + ry)]

    if kind is ShapeKind.ANGLE and "vertex" in payload:
        if len(vertices) != 2:
            raise MalformedGeometryError(
                f"angle with a named vertex requires 2 arm points, got {len(vertices)}"
            )
        return [vertices[0], _coerce_point(payload["vertex"]), vertices[1]]

    if not vertices:
        for first_key, second_key in (("start", "end"), ("topLeft", "bottomRight")):
            if first_key in payload and second_key in payload:
                return [_coerce_point(payload[first_key]), _coerce_point(payload[second_key])]
        if kind is ShapeKind.POINT and "x" in payload and "y" in payload:
            return [_coerce_point(payload)]

    return vertices


def parse_position_data(
    position_data: Union[str, bytes, Mapping[str, Any]],
    frame_number: Optional[int] = 0,
    rows: Optional[int] = None,
    columns: Optional[int] = None,
    max_vertices: Optional[int] = None,
) -> Shape:
    """
    Parse a position-data payload into a Shape.

    Args:
        position_data: JSON text (kept verbatim on the shape) or a decoded mapping
        frame_number: 0-based frame index; None means 0
        rows: Owning instance rows; with columns, enables the bounds check
        columns: Owning instance columns
        max_vertices: Optional call-site bound on vertex count

    Returns:
        The Shape variant named by the payload's discriminator

    Raises:
        MalformedGeometryError: unknown kind, vertex count inconsistent with the
            kind, non-finite coordinates, or coordinates outside
            [0, columns) x [0, rows)
    """
    payload, raw_text = _decode_payload(position_data)
    kind = _resolve_kind(payload)
    vertices = _extract_vertices(kind, payload)

    frame = 0 if frame_number is None else int(frame_number)
    if frame < 0:
        raise MalformedGeometryError(f"frame number must not be negative: {frame}")
    if max_vertices is not None and len(vertices) > max_vertices:
        raise MalformedGeometryError(
            f"{kind.value} has {len(vertices)} vertices, limit is {max_vertices}"
        )
    if rows is not None and columns is not None:
        for x, y in vertices:
            if not (0.0 <= x < columns and 0.0 <= y < rows):
                raise MalformedGeometryError(
                    f"vertex ({x}, {y}) outside image bounds {columns}x{rows}"
                )

    return SHAPE_CLASSES[kind](vertices=tuple(vertices), frame=frame, position_data=raw_text)


def to_position_data(shape: Shape) -> str:
    """
    Encode a shape as position-data text.

    A shape parsed from text returns that text unchanged so stored payloads
    round-trip byte for byte; other shapes use the canonical form.
    """
    if shape.position_data is not None:
        return shape.position_data
    payload = {
        "type": shape.kind.value,
        "points": [{"x": x, "y": y} for x, y in shape.vertices],
    }
    return json.dumps(payload, separators=(",", ":"))
