"""
Pixel Sample Access

This module defines the read-only pixel sample contract the measurement engine
consumes, GetPixelValue(instance_id, frame, row, col), and two collaborators
implementing it: one over in-memory numpy arrays and one over pydicom datasets.

Inputs:
    - numpy arrays shaped (rows, cols) or (frames, rows, cols), keyed by instance id
    - pydicom Datasets keyed by instance id

Outputs:
    - Raw (un-rescaled) numeric samples

Requirements:
    - numpy, pydicom
"""

from typing import Any, Dict, Hashable, Mapping, Optional, Protocol

import numpy as np
from pydicom.dataset import Dataset


class PixelSampleAccessor(Protocol):
    """Returns the raw stored sample for every in-bounds coordinate."""

    def get_pixel_value(self, instance_id: Hashable, frame: int, row: int, col: int) -> float:
        ...


def _frame_plane(pixel_array: np.ndarray, frame: int) -> np.ndarray:
    """Select the 2-D plane for a 0-based frame index."""
    if pixel_array.ndim == 2:
        return pixel_array
    return pixel_array[frame]


class ArrayPixelAccessor:
    """
    Pixel accessor over decoded arrays.

    Arrays are 2-D (single frame) or 3-D with the frame axis first. Frame
    indices are 0-based.
    """

    def __init__(self, arrays: Mapping[Hashable, Any]):
        self._arrays: Dict[Hashable, np.ndarray] = {
            key: np.asarray(value) for key, value in arrays.items()
        }

    @classmethod
    def single(cls, pixel_array: Any, instance_id: Hashable = None) -> 'ArrayPixelAccessor':
        """Accessor holding one array under instance_id."""
        return cls({instance_id: pixel_array})

    def get_pixel_value(self, instance_id: Hashable, frame: int, row: int, col: int) -> float:
        plane = _frame_plane(self._arrays[instance_id], frame)
        return float(plane[row, col])

    def get_frame(self, instance_id: Hashable, frame: int) -> np.ndarray:
        return _frame_plane(self._arrays[instance_id], frame)


class DatasetPixelAccessor:
    """
    Pixel accessor over pydicom datasets.

    Pixel data is decoded lazily, once per instance, on first access.
    Compressed transfer syntaxes need the optional pydicom pixel handlers.
    """

    def __init__(self, datasets: Mapping[Hashable, Dataset]):
        self._datasets = dict(datasets)
        self._decoded: Dict[Hashable, np.ndarray] = {}

    def _pixels(self, instance_id: Hashable) -> np.ndarray:
        pixel_array: Optional[np.ndarray] = self._decoded.get(instance_id)
        if pixel_array is None:
            pixel_array = self._datasets[instance_id].pixel_array
            self._decoded[instance_id] = pixel_array
        return pixel_array

    def _is_multiframe(self, instance_id: Hashable) -> bool:
        num_frames = getattr(self._datasets[instance_id], 'NumberOfFrames', 1)
        try:
            return int(num_frames) > 1
        except (TypeError, ValueError):
            return False

    def get_frame(self, instance_id: Hashable, frame: int) -> np.ndarray:
        pixel_array = self._pixels(instance_id)
        if self._is_multiframe(instance_id):
            return pixel_array[frame]
        return pixel_array

    def get_pixel_value(self, instance_id: Hashable, frame: int, row: int, col: int) -> float:
        return float(self.get_frame(instance_id, frame)[row, col])
