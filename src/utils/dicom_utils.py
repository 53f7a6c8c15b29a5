"""
DICOM Utility Functions

This module provides helper functions used by calibration resolution and
measurement formatting:
- Pixel spacing lookup (Pixel Spacing, Imager Pixel Spacing, FOV fallback)
- Parsing of backslash-separated multi-valued strings from stored metadata
- Distance conversions and formatting

Inputs:
    - pydicom.Dataset objects or stored metadata strings
    - Distances in pixels or millimeters

Outputs:
    - (row_spacing, column_spacing) tuples in mm
    - Converted/formatted distances

Requirements:
    - pydicom library
"""

import math
from typing import List, Optional, Tuple

from pydicom.dataset import Dataset

PixelSpacing = Tuple[float, float]


def parse_multi_value(value) -> List[float]:
    """
    Parse a DICOM multi-valued number into a list of floats.

    Accepts pydicom MultiValue/list/tuple, a single number, or a stored
    string such as "0.703125\\0.703125". Unparseable parts are skipped.
    """
    if value is None:
        return []
    if isinstance(value, (int, float)):
        return [float(value)]
    if isinstance(value, str):
        parts = value.replace(",", "\\").split("\\")
    else:
        try:
            parts = list(value)
        except TypeError:
            return []
    result = []
    for part in parts:
        try:
            number = float(str(part).strip())
        except ValueError:
            continue
        result.append(number)
    return result


def spacing_from_values(values) -> Optional[PixelSpacing]:
    """Return (row, col) spacing if the first two values are finite and positive."""
    numbers = parse_multi_value(values)
    if len(numbers) < 2:
        return None
    row_spacing, col_spacing = numbers[0], numbers[1]
    if not (math.isfinite(row_spacing) and math.isfinite(col_spacing)):
        return None
    if row_spacing <= 0 or col_spacing <= 0:
        return None
    return (row_spacing, col_spacing)


def calculate_pixel_spacing_from_fov(dataset: Dataset) -> Optional[PixelSpacing]:
    """
    Calculate pixel spacing from Field of View and matrix size.
    For MR, Percent Phase Field of View is applied along the phase
    encoding direction.

    Args:
        dataset: pydicom Dataset

    Returns:
        Tuple of (row_spacing, column_spacing) in mm, or None if not available
    """
    try:
        rows = int(getattr(dataset, 'Rows', 0) or 0)
        columns = int(getattr(dataset, 'Columns', 0) or 0)
        if rows <= 0 or columns <= 0:
            return None

        modality = str(getattr(dataset, 'Modality', '') or '').upper()
        if modality == 'MR':
            recon_diameter = float(getattr(dataset, 'ReconstructionDiameter', 0) or 0)
            if recon_diameter <= 0:
                return None
            row_fov = col_fov = recon_diameter
            percent_phase_fov = getattr(dataset, 'PercentPhaseFieldOfView', None)
            direction = str(getattr(dataset, 'InPlanePhaseEncodingDirection', '') or '').upper()
            if percent_phase_fov is not None:
                phase_fov = recon_diameter * (float(percent_phase_fov) / 100.0)
                if direction == 'ROW':
                    row_fov = phase_fov
                elif direction == 'COL':
                    col_fov = phase_fov
            return (row_fov / rows, col_fov / columns)

        fov = None
        if hasattr(dataset, 'FieldOfView'):
            fov = float(dataset.FieldOfView)
        elif hasattr(dataset, 'ReconstructionDiameter'):
            fov = float(dataset.ReconstructionDiameter)
        if fov is not None and fov > 0:
            return (fov / rows, fov / columns)
    except (TypeError, ValueError):
        pass

    return None


def get_pixel_spacing(dataset: Dataset) -> Optional[PixelSpacing]:
    """
    Get pixel spacing from DICOM dataset.
    Checks multiple sources in priority order:
    1. Pixel Spacing (0028,0030) - primary
    2. Imager Pixel Spacing (0018,1164) - fallback
    3. Calculate from Field of View + Matrix Size - fallback

    Args:
        dataset: pydicom Dataset

    Returns:
        Tuple of (row_spacing, column_spacing) in mm, or None if not available
    """
    for keyword in ('PixelSpacing', 'ImagerPixelSpacing'):
        spacing = spacing_from_values(getattr(dataset, keyword, None))
        if spacing is not None:
            return spacing
    return calculate_pixel_spacing_from_fov(dataset)


def get_slice_thickness(dataset: Dataset) -> Optional[float]:
    """Slice thickness in mm, or None if not available."""
    values = parse_multi_value(getattr(dataset, 'SliceThickness', None))
    if values and values[0] > 0:
        return values[0]
    return None


def pixels_to_mm(pixels: float, pixel_spacing: Optional[PixelSpacing],
                 dimension: int = 0) -> Optional[float]:
    """
    Convert pixel distance to millimeters.

    Args:
        pixels: Distance in pixels
        pixel_spacing: Tuple of (row_spacing, column_spacing) in mm
        dimension: 0 for row (Y), 1 for column (X)

    Returns:
        Distance in mm, or None if pixel spacing not available
    """
    if pixel_spacing is None or dimension not in (0, 1):
        return None
    return pixels * pixel_spacing[dimension]


def mm_to_pixels(mm: float, pixel_spacing: Optional[PixelSpacing],
                 dimension: int = 0) -> Optional[float]:
    """Convert millimeter distance to pixels; None if spacing not available."""
    if pixel_spacing is None or dimension not in (0, 1):
        return None
    return mm / pixel_spacing[dimension]


def format_length(value: float, unit: str, display_unit: str = "mm") -> str:
    """
    Format a length with appropriate units.

    Args:
        value: Length value
        unit: Unit of value ("mm" or "px")
        display_unit: "mm" or "cm" for calibrated lengths

    Returns:
        Formatted string (e.g., "10.5 mm", "1.05 cm" or "25.0 pixels")
    """
    if unit != "mm":
        return f"{value:.1f} pixels"
    if display_unit == "cm":
        return f"{value / 10.0:.2f} cm"
    if value >= 10:
        return f"{value:.1f} mm"
    return f"{value:.2f} mm"
