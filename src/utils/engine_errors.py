"""
Engine Error Kinds

This module defines the error kinds raised by the clinical analysis engine.
The surrounding service layer translates them into user-facing responses.

Inputs:
    - Raised by workflow and measurement operations

Outputs:
    - EngineError subclasses carrying a message (and, for EmptyRegionError,
      the undefined statistics of the region)

Requirements:
    - Standard library only
"""

from typing import Any, Optional


class EngineError(Exception):
    """Base class for all engine errors."""


class NotFoundError(EngineError):
    """
    Raised when a requested protocol id is absent from the catalog,
    or when no protocol in the catalog matches a study.
    """


class MalformedGeometryError(EngineError, ValueError):
    """
    Raised when a position-data payload cannot be turned into a shape:
    unknown kind, wrong vertex count, non-finite or out-of-bounds coordinates.
    """


class EmptyRegionError(EngineError):
    """
    Raised when a rasterized shape covers zero pixels.

    The region's statistics (all undefined) are kept on ``stats`` so the
    caller can still report area/unit alongside the condition.
    """

    def __init__(self, message: str, stats: Optional[Any] = None):
        super().__init__(message)
        self.stats = stats
