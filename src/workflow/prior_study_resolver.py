"""
Prior Study Resolver

Ranks a patient's other studies as comparison candidates for a reference
study. The candidate pool is supplied already filtered and authorized by the
data-access collaborator; the resolver does not query storage.

Ranking:
    1. Studies dated strictly before the reference date, then studies dated
       on/after it, then undated studies (undated keep input order).
    2. Within a dated group, smaller absolute time distance first.
    3. Same modality as the reference before cross-modality.
    4. Input order.

Inputs:
    - Reference StudyRef, candidate StudyRefs, optional limit

Outputs:
    - Ordered list of StudyRef

Requirements:
    - workflow.study_models
    - utils.label_matching, utils.debug_log
"""

from typing import Iterable, List, Optional

from utils.debug_log import debug_log
from utils.label_matching import same_code
from workflow.study_models import StudyRef, as_datetime

_EARLIER = 0
_LATER = 1
_UNDATED = 2


def _is_reference(candidate: StudyRef, reference: StudyRef) -> bool:
    if candidate.id is not None and candidate.id == reference.id:
        return True
    return bool(candidate.uid) and candidate.uid == reference.uid


def find_priors(patient_id: Optional[str], reference: StudyRef,
                candidates: Iterable[StudyRef], limit: Optional[int] = None) -> List[StudyRef]:
    """
    Rank candidate prior studies for a reference study.

    Args:
        patient_id: Patient the pool belongs to (diagnostics only; the pool is pre-filtered)
        reference: Study being read
        candidates: The patient's studies; the reference itself is skipped if present
        limit: Maximum number of results; None is unbounded, <= 0 returns []

    Returns:
        Candidates in ranked order. Empty when the reference has no date or
        the pool is empty.
    """
    if limit is not None and limit <= 0:
        return []
    if reference.study_date is None:
        return []

    reference_time = as_datetime(reference.study_date)
    reference_modality = reference.effective_modality

    ranked = []
    for index, candidate in enumerate(candidates):
        if _is_reference(candidate, reference):
            continue
        if candidate.study_date is None:
            ranked.append(((_UNDATED, 0.0, False, index), candidate))
            continue
        delta = as_datetime(candidate.study_date) - reference_time
        group = _EARLIER if delta.total_seconds() < 0 else _LATER
        cross_modality = not same_code(candidate.effective_modality, reference_modality)
        ranked.append(((group, abs(delta.total_seconds()), cross_modality, index), candidate))

    ranked.sort(key=lambda item: item[0])
    result = [candidate for _, candidate in ranked]
    if limit is not None:
        result = result[:limit]

    debug_log("prior_study_resolver.find_priors", "ranked priors",
              {"patient_id": patient_id, "reference": reference.id,
               "result": [study.id for study in result]})
    return result
