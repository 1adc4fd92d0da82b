"""Hard pass/fail constraints applied before any scoring.

`EligibilityPredicate` is the query handed to the user store. Stores backed by a
database translate its fields into WHERE clauses; the in-memory store calls
`accepts` directly.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .data_models import User
from .geo import distance_km, max_distance_for
from .logging_setup import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class EligibilityPredicate:
    """Store query for one requester.

    `check_min_age` / `check_max_age` switch on the age clauses. They are set only
    when the requester has declared the matching bound of their own range.
    """

    exclude_user_id: str
    requester_age: int
    gender: Optional[str] = None
    check_min_age: bool = False
    check_max_age: bool = False

    def accepts(self, candidate: User) -> bool:
        if candidate.id == self.exclude_user_id:
            return False
        if self.gender is not None:
            if (candidate.gender or "").strip().lower() != self.gender.strip().lower():
                return False
        # the requester must fall inside the candidate's range; a candidate bound left unset passes
        min_age, max_age = candidate.preferred_age_min, candidate.preferred_age_max
        if self.check_min_age and min_age is not None and min_age > self.requester_age:
            return False
        if self.check_max_age and max_age is not None and max_age < self.requester_age:
            return False
        return True


def build_eligibility_predicate(requester: User, requester_age: int) -> EligibilityPredicate:
    gender = requester.gender_preference.strip() if requester.has_gender_preference else None
    return EligibilityPredicate(
        exclude_user_id=requester.id,
        requester_age=requester_age,
        gender=gender,
        check_min_age=requester.preferred_age_min is not None,
        check_max_age=requester.preferred_age_max is not None,
    )


def filter_by_proximity(requester: User, candidates: Iterable[User]) -> List[Tuple[User, float]]:
    """Drop candidates outside the requester's radius.

    Returns (candidate, distance_km) pairs. When either side has no location the
    candidate is kept with an infinite distance.
    """
    radius = max_distance_for(requester.proximity)
    kept: List[Tuple[User, float]] = []
    missing = 0
    for candidate in candidates:
        if not (requester.has_coordinates and candidate.has_coordinates):
            missing += 1
            kept.append((candidate, math.inf))
            continue
        dist = distance_km(requester.latitude, requester.longitude, candidate.latitude, candidate.longitude)
        if dist <= radius:
            kept.append((candidate, dist))
    if missing:
        logger.debug("Proximity check skipped for candidates without coordinates", count=missing)
    return kept
