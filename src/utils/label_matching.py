"""
Label Similarity

Scores how well two free-text labels (body part, series description,
viewport hint) match. Shared by series pairing and hanging protocol
assignment.

Inputs:
    - Two optional label strings

Outputs:
    - Integer similarity score: 2 exact (case-insensitive), 1 substring
      containment in either direction, 0 none

Requirements:
    - Standard library only
"""

from typing import Iterable, Optional

EXACT_MATCH = 2
PARTIAL_MATCH = 1
NO_MATCH = 0


def normalize_label(label: Optional[str]) -> str:
    """Strip and casefold a label; None becomes an empty string."""
    if label is None:
        return ""
    return str(label).strip().casefold()


def label_similarity(first: Optional[str], second: Optional[str]) -> int:
    """
    Score the similarity of two labels.

    Empty or missing labels never match anything, including each other.
    """
    a = normalize_label(first)
    b = normalize_label(second)
    if not a or not b:
        return NO_MATCH
    if a == b:
        return EXACT_MATCH
    if a in b or b in a:
        return PARTIAL_MATCH
    return NO_MATCH


def best_label_similarity(hint: Optional[str], labels: Iterable[Optional[str]]) -> int:
    """Best score of hint against any of the labels."""
    return max((label_similarity(hint, label) for label in labels), default=NO_MATCH)


def same_code(first: Optional[str], second: Optional[str]) -> bool:
    """Case-insensitive equality for coded values (modality, body part); missing never matches."""
    a = normalize_label(first)
    return bool(a) and a == normalize_label(second)
