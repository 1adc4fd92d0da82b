from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from .data_models import User
from .matching_models import CandidateMatch

MAX_COUNTED_TAGS = 5


@dataclass(frozen=True)
class ScoreWeights:
    w_tags: float = 0.40
    w_similarity: float = 0.50
    w_proximity: float = 0.10


def _tag_component(shared_tag_count: int) -> float:
    # diminishing returns past MAX_COUNTED_TAGS
    return min(max(shared_tag_count, 0), MAX_COUNTED_TAGS) / MAX_COUNTED_TAGS


def _proximity_component(proximity_km: float) -> float:
    if math.isinf(proximity_km) or math.isnan(proximity_km):
        return 0.0
    if proximity_km <= 0:
        return 1.0
    return 1.0 / (1.0 + proximity_km / 100.0)


def score_components(shared_tag_count: int, similarity: float, proximity_km: float) -> Dict[str, float]:
    return {
        "tags": _tag_component(shared_tag_count),
        "similarity": float(similarity),
        "proximity": _proximity_component(proximity_km),
    }


def score_candidate(
    shared_tag_count: int,
    similarity: float,
    proximity_km: float,
    weights: ScoreWeights = ScoreWeights(),
) -> float:
    """Weighted sum of tag overlap, embedding similarity and proximity.

    Each component lies in [0, 1] and the default weights sum to 1, so the score does too.
    No clamping is applied.
    """
    comps = score_components(shared_tag_count, similarity, proximity_km)
    return (
        weights.w_tags * comps["tags"]
        + weights.w_similarity * comps["similarity"]
        + weights.w_proximity * comps["proximity"]
    )


def shared_tag_ids(candidate_tag_ids: Iterable[int], requester_tag_ids: Iterable[int]) -> List[int]:
    """Tag ids present on both sides, in the candidate's order, without duplicates."""
    wanted = set(requester_tag_ids)
    seen = set()
    shared: List[int] = []
    for tag_id in candidate_tag_ids:
        if tag_id in wanted and tag_id not in seen:
            shared.append(tag_id)
            seen.add(tag_id)
    return shared


def select_tag_pool(
    annotated: Sequence[Tuple[User, float, List[int]]],
    backstop: int,
) -> List[Tuple[User, float, List[int]]]:
    """Keep every candidate with shared tags, plus zero-overlap ones while the pool is small.

    A zero-overlap candidate is admitted only while fewer than `backstop` candidates
    have been kept so far, so cold-start users still see someone.
    """
    kept: List[Tuple[User, float, List[int]]] = []
    for user, dist, shared in annotated:
        if shared or len(kept) < backstop:
            kept.append((user, dist, shared))
    return kept


def rank_candidates(matches: Iterable[CandidateMatch]) -> List[CandidateMatch]:
    """Sort by score descending; equal scores fall back to candidate id ascending."""
    return sorted(matches, key=lambda m: (-m.score, m.user.id))
