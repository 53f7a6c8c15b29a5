"""
Study Comparison

Compares a current study with a prior: either the prior the caller names or
the best-ranked candidate dated strictly before the current study. Series
are paired for side-by-side review.

Inputs:
    - Current StudyRef (with series), optional explicit prior, candidate pool

Outputs:
    - ComparisonResult

Requirements:
    - workflow.prior_study_resolver, workflow.series_pairing
"""

from typing import Iterable, Optional

from utils.debug_log import debug_log
from workflow.prior_study_resolver import find_priors
from workflow.series_pairing import pair_series
from workflow.study_models import ComparisonResult, StudyRef, as_datetime


def _select_prior(current: StudyRef, candidates: Iterable[StudyRef]) -> Optional[StudyRef]:
    current_time = as_datetime(current.study_date) if current.study_date is not None else None
    for candidate in find_priors(current.patient_id, current, candidates):
        if candidate.study_date is None or current_time is None:
            continue
        if as_datetime(candidate.study_date) < current_time:
            return candidate
    return None


def compare_studies(current: StudyRef, prior: Optional[StudyRef] = None,
                    candidates: Iterable[StudyRef] = ()) -> ComparisonResult:
    """
    Build the comparison between current and prior studies.

    Args:
        current: Study being read, with its series
        prior: Explicit prior study; when None one is chosen from candidates
        candidates: Patient's other studies (with series), used when prior is None

    Returns:
        ComparisonResult; time_delta is current minus prior date when both are known
    """
    if prior is None:
        prior = _select_prior(current, candidates)

    time_delta = None
    if prior is not None and prior.study_date is not None and current.study_date is not None:
        time_delta = as_datetime(current.study_date) - as_datetime(prior.study_date)

    pairs = pair_series(current.series, prior.series if prior is not None else ())
    debug_log("study_comparison.compare_studies", "compared studies",
              {"current": current.id, "prior": prior.id if prior else None,
               "pairs": len(pairs)})
    return ComparisonResult(
        current_study=current,
        prior_study=prior,
        time_delta=time_delta,
        series_pairs=tuple(pairs),
    )
