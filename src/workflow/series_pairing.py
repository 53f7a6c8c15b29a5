"""
Series Pairing Engine

Aligns the series of a current study with those of a prior study for
side-by-side comparison.

Greedy matching: current series are visited in ascending series-number order;
each takes the unmatched prior series of the same modality with the best
body-part similarity (exact > substring > none), ties broken by the closest
series number and then by prior input order. Current series with no
same-modality candidate left become current-only pairs; prior series never
chosen are appended as prior-only pairs in their input order.

Inputs:
    - Current and prior SeriesRef sequences

Outputs:
    - Ordered list of SeriesPair

Requirements:
    - workflow.study_models
    - utils.label_matching
"""

import math
from typing import List, Optional, Sequence

from utils.label_matching import (EXACT_MATCH, NO_MATCH, PARTIAL_MATCH, label_similarity,
                                  normalize_label, same_code)
from workflow.study_models import MatchBasis, SeriesPair, SeriesRef, sorted_by_series_number

_BASIS_BY_SIMILARITY = {
    EXACT_MATCH: MatchBasis.EXACT_BODY_PART,
    PARTIAL_MATCH: MatchBasis.PARTIAL_BODY_PART,
    NO_MATCH: MatchBasis.MODALITY_ONLY,
}


def series_match_score(current: SeriesRef, prior: SeriesRef) -> float:
    """
    Confidence of a pairing in [0, 1]: same modality 0.4; both descriptions
    present +0.4 when equal (case-insensitive) else +0.2; same body part +0.2.
    """
    score = 0.4 if same_code(current.modality, prior.modality) else 0.0
    current_description = normalize_label(current.description)
    prior_description = normalize_label(prior.description)
    if current_description and prior_description:
        score += 0.4 if current_description == prior_description else 0.2
    if same_code(current.body_part, prior.body_part):
        score += 0.2
    return round(score, 6)


def _number_distance(current: SeriesRef, prior: SeriesRef) -> float:
    if current.series_number is None or prior.series_number is None:
        return math.inf
    return abs(current.series_number - prior.series_number)


def pair_series(current_series: Sequence[SeriesRef],
                prior_series: Sequence[SeriesRef]) -> List[SeriesPair]:
    """
    Pair current and prior series.

    Every input series appears in exactly one pair. The result depends only
    on the inputs and their order.
    """
    prior_list = list(prior_series)
    matched = [False] * len(prior_list)
    pairs: List[SeriesPair] = []

    for current in sorted_by_series_number(tuple(current_series)):
        best_index: Optional[int] = None
        best_key = None
        for index, prior in enumerate(prior_list):
            if matched[index] or not same_code(current.modality, prior.modality):
                continue
            similarity = label_similarity(current.body_part, prior.body_part)
            key = (-similarity, _number_distance(current, prior), index)
            if best_key is None or key < best_key:
                best_key = key
                best_index = index

        if best_index is None:
            pairs.append(SeriesPair(current=current, prior=None, basis=MatchBasis.CURRENT_ONLY))
            continue

        matched[best_index] = True
        prior = prior_list[best_index]
        pairs.append(SeriesPair(
            current=current,
            prior=prior,
            basis=_BASIS_BY_SIMILARITY[-best_key[0]],
            confidence=series_match_score(current, prior),
        ))

    for index, prior in enumerate(prior_list):
        if not matched[index]:
            pairs.append(SeriesPair(current=None, prior=prior, basis=MatchBasis.PRIOR_ONLY))

    return pairs
