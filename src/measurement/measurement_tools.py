"""
Measurement Tools

Calibrated measurements that go beyond single-region statistics:
polygon area/perimeter, pairwise landmark distances, line intensity
profiles, region histograms, contour-stack volumes and Hounsfield
interpretation.

Inputs:
    - Shapes / vertex lists in pixel coordinates
    - CalibrationInfo and a pixel sample accessor

Outputs:
    - Frozen result objects (AreaMeasurement, LandmarkDistance,
      ProfileLine, Histogram, ContourVolume)

Requirements:
    - numpy for histogram binning and percentiles
    - measurement.calibration, measurement.geometry_parser,
      measurement.region_statistics
"""

import math
from dataclasses import dataclass
from typing import Hashable, List, Optional, Sequence, Tuple

import numpy as np

from measurement.calibration import CalibrationInfo
from measurement.geometry_parser import LineShape, Point, PolygonShape, Shape
from measurement.pixel_access import PixelSampleAccessor
from measurement.region_statistics import sample_region
from utils.engine_errors import EmptyRegionError, MalformedGeometryError

# Upper bounds (exclusive) of the Hounsfield interpretation bands
HOUNSFIELD_BANDS: Tuple[Tuple[float, str], ...] = (
    (-950.0, "Air"),
    (-50.0, "Lung/Fat"),
    (20.0, "Water/Fluid"),
    (70.0, "Soft Tissue"),
    (200.0, "Blood/Muscle"),
    (400.0, "Calcification"),
)


def interpret_hounsfield(hu: float) -> str:
    """Tissue class for a Hounsfield value."""
    for upper, label in HOUNSFIELD_BANDS:
        if hu < upper:
            return label
    return "Bone"


@dataclass(frozen=True)
class AreaMeasurement:
    area: float
    perimeter: float
    area_unit: str
    length_unit: str
    area_pixels: float
    perimeter_pixels: float


def measure_polygon_area(shape: PolygonShape, calibration: CalibrationInfo) -> AreaMeasurement:
    """
    Geometric (shoelace) area and perimeter of a polygon.

    Unlike region statistics this is the exact enclosed area, not a
    covered-pixel count. Spacing is applied per axis.
    """
    perimeter_px = 0.0
    perimeter = 0.0
    for (x0, y0), (x1, y1) in shape.edges():
        perimeter_px += math.hypot(x1 - x0, y1 - y0)
        perimeter += calibration.scaled_length(x1 - x0, y1 - y0)
    area_px = shape.area_pixels
    return AreaMeasurement(
        area=area_px * calibration.pixel_area,
        perimeter=perimeter,
        area_unit=calibration.area_unit,
        length_unit=calibration.length_unit,
        area_pixels=area_px,
        perimeter_pixels=perimeter_px,
    )


@dataclass(frozen=True)
class LandmarkDistance:
    from_landmark: str
    to_landmark: str
    distance: float
    unit: str


def measure_landmark_distances(landmarks: Sequence[Tuple[str, Point]],
                               calibration: CalibrationInfo) -> List[LandmarkDistance]:
    """Distances between every pair of named landmarks, in input order (i < j)."""
    results = []
    for i in range(len(landmarks)):
        name_a, (xa, ya) = landmarks[i]
        for j in range(i + 1, len(landmarks)):
            name_b, (xb, yb) = landmarks[j]
            results.append(LandmarkDistance(
                from_landmark=name_a,
                to_landmark=name_b,
                distance=calibration.scaled_length(xb - xa, yb - ya),
                unit=calibration.length_unit,
            ))
    return results


def bresenham_points(x0: int, y0: int, x1: int, y1: int) -> List[Tuple[int, int]]:
    """Integer pixel positions (x, y) on the line from (x0, y0) to (x1, y1), inclusive."""
    points = []
    dx = abs(x1 - x0)
    dy = abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx - dy
    while True:
        points.append((x0, y0))
        if x0 == x1 and y0 == y1:
            break
        e2 = 2 * err
        if e2 > -dy:
            err -= dy
            x0 += sx
        if e2 < dx:
            err += dx
            y0 += sy
    return points


@dataclass(frozen=True)
class ProfileLine:
    values: Tuple[float, ...]
    points: Tuple[Tuple[int, int], ...]
    mean: Optional[float]
    std_dev: Optional[float]
    min_value: Optional[float]
    max_value: Optional[float]
    length: float
    unit: str


def profile_line(shape: LineShape, calibration: CalibrationInfo,
                 pixel_accessor: PixelSampleAccessor,
                 instance_id: Hashable = None) -> ProfileLine:
    """Calibrated samples along a line; positions outside the image are skipped."""
    (sx, sy), (ex, ey) = shape.vertices
    values = []
    points = []
    for x, y in bresenham_points(int(sx), int(sy), int(ex), int(ey)):
        if calibration.contains(x, y):
            raw = pixel_accessor.get_pixel_value(instance_id, shape.frame, y, x)
            values.append(calibration.apply_rescale(raw))
            points.append((x, y))

    length = calibration.scaled_length(ex - sx, ey - sy)
    if not values:
        return ProfileLine((), (), None, None, None, None, length, calibration.length_unit)
    array = np.asarray(values, dtype=float)
    return ProfileLine(
        values=tuple(values),
        points=tuple(points),
        mean=float(array.mean()),
        std_dev=float(array.std()),
        min_value=float(array.min()),
        max_value=float(array.max()),
        length=length,
        unit=calibration.length_unit,
    )


@dataclass(frozen=True)
class Histogram:
    counts: Tuple[int, ...]
    bin_width: float
    min_value: float
    max_value: float
    mean: float
    std_dev: float
    median: float
    percentiles: Tuple[float, ...]  # 5th, 25th, 50th, 75th, 95th


HISTOGRAM_PERCENTILES = (5, 25, 50, 75, 95)


def region_histogram(shape: Shape, calibration: CalibrationInfo,
                     pixel_accessor: PixelSampleAccessor,
                     instance_id: Hashable = None, bins: int = 256) -> Histogram:
    """
    Histogram of calibrated values inside a region shape.

    Raises:
        EmptyRegionError: the shape covers no pixels
    """
    if bins <= 0:
        raise ValueError(f"bins must be positive, got {bins}")
    values = sample_region(shape, calibration, pixel_accessor, instance_id)
    if not values:
        raise EmptyRegionError(f"{shape.kind.value} covers no pixels")
    array = np.asarray(values, dtype=float)
    low = float(array.min())
    high = float(array.max())
    counts, edges = np.histogram(array, bins=bins, range=(low, high) if high > low else (low, low + 1.0))
    return Histogram(
        counts=tuple(int(c) for c in counts),
        bin_width=float(edges[1] - edges[0]),
        min_value=low,
        max_value=high,
        mean=float(array.mean()),
        std_dev=float(array.std()),
        median=float(np.median(array)),
        percentiles=tuple(float(p) for p in np.percentile(array, HISTOGRAM_PERCENTILES)),
    )


@dataclass(frozen=True)
class ContourVolume:
    area_pixels_total: float
    volume_mm3: Optional[float]
    volume_ml: Optional[float]
    slice_count: int
    slice_thickness: float


def contour_volume(contours: Sequence[PolygonShape], calibration: CalibrationInfo,
                   slice_thickness: Optional[float] = None) -> ContourVolume:
    """
    Volume from one contour per slice (sum of shoelace areas times thickness).

    area_pixels_total is the summed contour area in px2 over all slices.
    Without pixel spacing volume_mm3 and volume_ml are None.
    """
    thickness = slice_thickness if slice_thickness is not None else calibration.slice_thickness
    if thickness is None or thickness <= 0:
        raise MalformedGeometryError("contour volume requires a positive slice thickness")
    total_area_px = sum(contour.area_pixels for contour in contours)
    volume_mm3 = None
    volume_ml = None
    if calibration.has_spacing:
        volume_mm3 = total_area_px * calibration.pixel_area * thickness
        volume_ml = volume_mm3 / 1000.0
    return ContourVolume(
        area_pixels_total=total_area_px,
        volume_mm3=volume_mm3,
        volume_ml=volume_ml,
        slice_count=len(contours),
        slice_thickness=thickness,
    )
