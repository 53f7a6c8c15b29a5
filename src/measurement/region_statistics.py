"""
Region Statistics Calculator

This module converts a parsed shape into calibrated, real-world measurements.
Area shapes (rectangle, ellipse, polygon) are scan-converted onto the
instance's pixel grid by testing each pixel center inside the shape's
bounding box; every covered pixel is sampled through the pixel accessor,
rescaled, and accumulated into mean/std/min/max statistics.

Inputs:
    - Shape (from geometry_parser)
    - CalibrationInfo (pixel spacing, rescale slope/intercept, matrix size)
    - Pixel sample accessor and instance id

Outputs:
    - RegionStats (statistics undefined when nothing was sampled)
    - EmptyRegionError when an area shape covers zero pixels

Requirements:
    - numpy for coverage masks and the median
    - measurement.calibration, measurement.geometry_parser
    - utils.engine_errors, utils.debug_log
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Hashable, List, Optional

import numpy as np

from measurement.calibration import UNIT_DEGREES, CalibrationInfo
from measurement.geometry_parser import (AngleShape, EllipseShape, LineShape, PointShape,
                                         PolygonShape, RectangleShape, Shape, ShapeKind)
from measurement.pixel_access import PixelSampleAccessor
from utils.debug_log import debug_log, engine_debug
from utils.engine_errors import EmptyRegionError


@dataclass(frozen=True)
class RegionStats:
    """
    Output of a statistics computation.

    area_or_length is an area for region shapes, a length for lines and an
    angle for angle shapes; unit records which (mm2/px2, mm/px, deg).
    Statistics are None ("undefined") when no pixel was sampled.
    """
    mean: Optional[float]
    std_dev: Optional[float]
    min_value: Optional[float]
    max_value: Optional[float]
    pixel_count: int
    area_or_length: float
    unit: str
    median: Optional[float] = None
    sum: Optional[float] = None
    variance: Optional[float] = None
    value_unit: str = "raw"
    kind: Optional[ShapeKind] = None

    @property
    def is_empty(self) -> bool:
        return self.pixel_count == 0 and self.mean is None

    def to_dict(self) -> Dict[str, Any]:
        """Field names as used by the stored measurement records."""
        return {
            "type": self.kind.value if self.kind else None,
            "mean": self.mean,
            "stdDev": self.std_dev,
            "min": self.min_value,
            "max": self.max_value,
            "median": self.median,
            "sum": self.sum,
            "variance": self.variance,
            "pixelCount": self.pixel_count,
            "value": self.area_or_length,
            "unit": self.unit,
            "valueUnit": self.value_unit,
        }


def _center_grid(min_x: float, min_y: float, max_x: float, max_y: float,
                 rows: int, columns: int):
    """
    Pixel indices and pixel-center coordinates covering a bounding box,
    clipped to a rows x columns grid. Returns None when the clipped box is empty.
    """
    c0 = max(0, int(math.floor(min_x)))
    c1 = min(columns, int(math.ceil(max_x)) + 1)
    r0 = max(0, int(math.floor(min_y)))
    r1 = min(rows, int(math.ceil(max_y)) + 1)
    if c0 >= c1 or r0 >= r1:
        return None
    col_idx = np.arange(c0, c1)
    row_idx = np.arange(r0, r1)
    cx, cy = np.meshgrid(col_idx + 0.5, row_idx + 0.5)
    return row_idx, col_idx, cx, cy


def _polygon_mask(shape: PolygonShape, cx: np.ndarray, cy: np.ndarray) -> np.ndarray:
    """Even-odd rule: toggle for every edge a rightward ray from the center crosses."""
    inside = np.zeros(cx.shape, dtype=bool)
    with np.errstate(divide='ignore', invalid='ignore'):
        for (x0, y0), (x1, y1) in shape.edges():
            crosses = (y0 > cy) != (y1 > cy)
            if not crosses.any():
                continue
            x_cross = (x1 - x0) * (cy - y0) / (y1 - y0) + x0
            inside ^= crosses & (cx < x_cross)
    return inside


def coverage_mask(shape: Shape, rows: Optional[int], columns: Optional[int]) -> np.ndarray:
    """
    Boolean (rows, columns) mask of pixels whose centers fall inside the shape.

    Rectangles include centers on their edges; ellipses use the normalized
    distance <= 1 test; polygons use the even-odd rule. A zero-width or
    zero-height rectangle or ellipse covers nothing. An unknown (None)
    dimension is sized to reach the shape's bounding box, so the shape is
    not clipped along it.
    """
    min_x, min_y, max_x, max_y = shape.bounding_box
    if rows is None:
        rows = max(0, int(math.ceil(max_y)) + 1)
    if columns is None:
        columns = max(0, int(math.ceil(max_x)) + 1)
    mask = np.zeros((rows, columns), dtype=bool)
    if isinstance(shape, (RectangleShape, EllipseShape)) and (max_x <= min_x or max_y <= min_y):
        return mask
    grid = _center_grid(min_x, min_y, max_x, max_y, rows, columns)
    if grid is None:
        return mask
    row_idx, col_idx, cx, cy = grid

    if isinstance(shape, RectangleShape):
        inside = (cx >= min_x) & (cx <= max_x) & (cy >= min_y) & (cy <= max_y)
    elif isinstance(shape, EllipseShape):
        (ecx, ecy), (rx, ry) = shape.center, shape.radii
        inside = ((cx - ecx) / rx) ** 2 + ((cy - ecy) / ry) ** 2 <= 1.0
    elif isinstance(shape, PolygonShape):
        inside = _polygon_mask(shape, cx, cy)
    else:
        raise TypeError(f"{shape.kind.value} shapes do not cover a region")

    mask[row_idx[0]:row_idx[-1] + 1, col_idx[0]:col_idx[-1] + 1] = inside
    return mask


def sample_region(shape: Shape, calibration: CalibrationInfo,
                  pixel_accessor: PixelSampleAccessor,
                  instance_id: Hashable = None) -> List[float]:
    """Calibrated values of every covered pixel, in row-major order."""
    mask = coverage_mask(shape, calibration.rows, calibration.columns)
    values = []
    for row, col in np.argwhere(mask):
        raw = pixel_accessor.get_pixel_value(instance_id, shape.frame, int(row), int(col))
        values.append(calibration.apply_rescale(raw))
    return values


def _accumulate(values: List[float], area_or_length: float, unit: str,
                value_unit: str, kind: ShapeKind) -> RegionStats:
    count = len(values)
    if count == 0:
        return RegionStats(mean=None, std_dev=None, min_value=None, max_value=None,
                           pixel_count=0, area_or_length=area_or_length, unit=unit,
                           value_unit=value_unit, kind=kind)
    total = 0.0
    total_sq = 0.0
    low = math.inf
    high = -math.inf
    for value in values:
        total += value
        total_sq += value * value
        low = min(low, value)
        high = max(high, value)
    mean = total / count
    # Population variance; clamp rounding noise below zero
    variance = max(0.0, total_sq / count - mean * mean)
    return RegionStats(
        mean=mean,
        std_dev=math.sqrt(variance),
        min_value=low,
        max_value=high,
        pixel_count=count,
        area_or_length=area_or_length,
        unit=unit,
        median=float(np.median(values)),
        sum=total,
        variance=variance,
        value_unit=value_unit,
        kind=kind,
    )


def compute_region_statistics(shape: Shape, calibration: CalibrationInfo,
                              pixel_accessor: Optional[PixelSampleAccessor] = None,
                              instance_id: Hashable = None) -> RegionStats:
    """
    Compute calibrated measurements for a shape.

    - Line: length with spacing applied per axis; no sampling.
    - Angle: interior angle in degrees; no sampling.
    - Point: the single calibrated sample under the point.
    - Rectangle/ellipse/polygon: statistics over covered pixels; area is the
      covered pixel count times the pixel area (mm2 when spacing is known).

    Raises:
        EmptyRegionError: an area shape covers zero pixels; the error's
            ``stats`` holds the undefined RegionStats
        ValueError: a sampling shape was given without a pixel accessor
    """
    value_unit = calibration.value_unit

    if isinstance(shape, LineShape):
        (x0, y0), (x1, y1) = shape.vertices
        length = calibration.scaled_length(x1 - x0, y1 - y0)
        return _accumulate([], length, calibration.length_unit, value_unit, shape.kind)

    if isinstance(shape, AngleShape):
        return _accumulate([], shape.angle_degrees, UNIT_DEGREES, value_unit, shape.kind)

    if pixel_accessor is None:
        raise ValueError(f"{shape.kind.value} statistics require a pixel accessor")

    if isinstance(shape, PointShape):
        x, y = shape.vertices[0]
        raw = pixel_accessor.get_pixel_value(instance_id, shape.frame, int(math.floor(y)), int(math.floor(x)))
        return _accumulate([calibration.apply_rescale(raw)], 0.0, calibration.area_unit, value_unit, shape.kind)

    values = sample_region(shape, calibration, pixel_accessor, instance_id)
    area = len(values) * calibration.pixel_area
    stats = _accumulate(values, area, calibration.area_unit, value_unit, shape.kind)
    if stats.is_empty:
        engine_debug(f"Empty region for {shape.kind.value} with vertices {shape.vertices}")
        debug_log("region_statistics.compute_region_statistics", "empty region",
                  {"kind": shape.kind.value, "vertices": shape.vertices, "frame": shape.frame,
                   "instance_id": instance_id})
        raise EmptyRegionError(f"{shape.kind.value} covers no pixels", stats=stats)
    return stats
