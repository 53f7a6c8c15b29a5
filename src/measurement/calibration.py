"""
Calibration Resolver

This module exposes per-instance calibration data: pixel spacing, rescale
slope/intercept/type, matrix size and bits stored, plus the unit conversions
measurements need. It infers rescale type (HU for CT) when the tag is missing.

Inputs:
    - pydicom Dataset, or a stored instance metadata mapping

Outputs:
    - CalibrationInfo value objects

Requirements:
    - pydicom
    - utils.dicom_utils (pixel spacing lookup, multi-value parsing)
"""

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from pydicom.dataset import Dataset

from utils.dicom_utils import get_pixel_spacing, parse_multi_value, spacing_from_values

# Units reported on measurement results
UNIT_MM = "mm"
UNIT_PIXELS = "px"
UNIT_MM2 = "mm2"
UNIT_PIXELS2 = "px2"
UNIT_DEGREES = "deg"


def get_rescale_parameters(dataset: Dataset) -> Tuple[Optional[float], Optional[float], Optional[str]]:
    """
    Extract rescale parameters from DICOM dataset.

    Args:
        dataset: pydicom Dataset

    Returns:
        Tuple of (rescale_slope, rescale_intercept, rescale_type); members are
        None when not present
    """
    slope_values = parse_multi_value(getattr(dataset, 'RescaleSlope', None))
    intercept_values = parse_multi_value(getattr(dataset, 'RescaleIntercept', None))
    rescale_slope = slope_values[0] if slope_values else None
    rescale_intercept = intercept_values[0] if intercept_values else None

    rescale_type = None
    type_value = getattr(dataset, 'RescaleType', None)
    if type_value is not None:
        if isinstance(type_value, (list, tuple)):
            type_value = type_value[0] if type_value else ""
        rescale_type = str(type_value).strip() or None

    return rescale_slope, rescale_intercept, rescale_type


def infer_rescale_type(
    modality: Optional[str],
    rescale_slope: Optional[float],
    rescale_intercept: Optional[float],
    rescale_type: Optional[str]
) -> Optional[str]:
    """
    Infer rescale type when RescaleType tag is missing.
    For CT images, infers "HU" when rescale parameters match the CT pattern
    (slope 1, intercept -1024).

    Returns:
        Inferred rescale type (e.g., "HU") or original rescale_type
    """
    if rescale_type:
        return rescale_type

    if modality and str(modality).upper() == 'CT':
        if rescale_slope is not None and rescale_intercept is not None:
            slope_match = abs(rescale_slope - 1.0) < 0.001
            intercept_match = abs(rescale_intercept - (-1024.0)) < 0.1
            if slope_match and intercept_match:
                return "HU"

    return None


def _optional_int(value: Any) -> Optional[int]:
    numbers = parse_multi_value(value)
    if not numbers or not math.isfinite(numbers[0]):
        return None
    return int(numbers[0])


def _matrix_dimension(value: Any) -> Optional[int]:
    """Rows/Columns value, or None when absent or not positive."""
    dimension = _optional_int(value)
    if dimension is None or dimension <= 0:
        return None
    return dimension


@dataclass(frozen=True)
class CalibrationInfo:
    """
    Per-instance unit conversion data.

    pixel_spacing is (row_mm, col_mm); when absent every measurement is
    reported in pixel units. Slope and intercept default to 1.0 and 0.0.
    rows/columns are None when the matrix size is unknown; regions are then
    not clipped to the image and coordinates are not bounds-checked.
    """
    rows: Optional[int] = None
    columns: Optional[int] = None
    pixel_spacing: Optional[Tuple[float, float]] = None
    rescale_slope: float = 1.0
    rescale_intercept: float = 0.0
    rescale_type: Optional[str] = None
    bits_stored: Optional[int] = None
    modality: Optional[str] = None
    slice_thickness: Optional[float] = None

    @property
    def has_matrix(self) -> bool:
        return self.rows is not None and self.columns is not None

    @property
    def has_spacing(self) -> bool:
        return self.pixel_spacing is not None

    @property
    def row_spacing(self) -> float:
        return self.pixel_spacing[0] if self.pixel_spacing else 1.0

    @property
    def column_spacing(self) -> float:
        return self.pixel_spacing[1] if self.pixel_spacing else 1.0

    @property
    def length_unit(self) -> str:
        return UNIT_MM if self.has_spacing else UNIT_PIXELS

    @property
    def area_unit(self) -> str:
        return UNIT_MM2 if self.has_spacing else UNIT_PIXELS2

    @property
    def pixel_area(self) -> float:
        """Area of one pixel in area_unit."""
        return self.row_spacing * self.column_spacing

    @property
    def value_unit(self) -> str:
        return self.rescale_type or "raw"

    def apply_rescale(self, raw: float) -> float:
        """Convert a raw stored sample to its real-world value."""
        return float(raw) * self.rescale_slope + self.rescale_intercept

    def scaled_length(self, dx: float, dy: float) -> float:
        """
        Length of a pixel-space displacement (dx along columns, dy along rows).
        Spacing is applied per axis.
        """
        return math.hypot(dx * self.column_spacing, dy * self.row_spacing)

    def contains(self, x: float, y: float) -> bool:
        """
        True when (x, y) lies in [0, columns) x [0, rows). With an unknown
        matrix size only negative coordinates fall outside.
        """
        if x < 0.0 or y < 0.0:
            return False
        if self.columns is not None and x >= self.columns:
            return False
        return self.rows is None or y < self.rows

    @classmethod
    def from_dataset(cls, dataset: Dataset, infer_hounsfield: bool = True) -> 'CalibrationInfo':
        """Resolve calibration from a pydicom Dataset."""
        slope, intercept, rescale_type = get_rescale_parameters(dataset)
        modality = getattr(dataset, 'Modality', None)
        modality = str(modality) if modality else None
        if infer_hounsfield:
            rescale_type = infer_rescale_type(modality, slope, intercept, rescale_type)
        thickness = parse_multi_value(getattr(dataset, 'SliceThickness', None))
        return cls(
            rows=_matrix_dimension(getattr(dataset, 'Rows', None)),
            columns=_matrix_dimension(getattr(dataset, 'Columns', None)),
            pixel_spacing=get_pixel_spacing(dataset),
            rescale_slope=slope if slope is not None else 1.0,
            rescale_intercept=intercept if intercept is not None else 0.0,
            rescale_type=rescale_type,
            bits_stored=_optional_int(getattr(dataset, 'BitsStored', None)),
            modality=modality,
            slice_thickness=thickness[0] if thickness and thickness[0] > 0 else None,
        )

    @classmethod
    def from_record(cls, record: Mapping[str, Any], infer_hounsfield: bool = True) -> 'CalibrationInfo':
        """
        Resolve calibration from stored instance metadata.

        Keys follow the DICOM keywords (Rows, Columns, PixelSpacing,
        RescaleSlope, RescaleIntercept, RescaleType, BitsStored, Modality,
        SliceThickness); lowerCamelCase variants are accepted too.
        PixelSpacing may be a backslash-separated string.
        """
        def lookup(keyword: str) -> Any:
            if keyword in record:
                return record[keyword]
            return record.get(keyword[0].lower() + keyword[1:])

        slope_values = parse_multi_value(lookup('RescaleSlope'))
        intercept_values = parse_multi_value(lookup('RescaleIntercept'))
        slope = slope_values[0] if slope_values else None
        intercept = intercept_values[0] if intercept_values else None
        modality = lookup('Modality')
        modality = str(modality) if modality else None
        rescale_type = lookup('RescaleType')
        if rescale_type is not None:
            rescale_type = str(rescale_type).strip() or None
        if infer_hounsfield:
            rescale_type = infer_rescale_type(modality, slope, intercept, rescale_type)
        thickness = parse_multi_value(lookup('SliceThickness'))
        return cls(
            rows=_matrix_dimension(lookup('Rows')),
            columns=_matrix_dimension(lookup('Columns')),
            pixel_spacing=spacing_from_values(lookup('PixelSpacing')),
            rescale_slope=slope if slope is not None else 1.0,
            rescale_intercept=intercept if intercept is not None else 0.0,
            rescale_type=rescale_type,
            bits_stored=_optional_int(lookup('BitsStored')),
            modality=modality,
            slice_thickness=thickness[0] if thickness and thickness[0] > 0 else None,
        )
