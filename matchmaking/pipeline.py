"""
Candidate pipeline: turn one user id into a ranked, paginated list of candidates.

Steps run strictly in order, each feeding the next:

1. load the requester (NotFoundError if absent)
2. compute the requester's age
3. load the requester's tag ids
4. eligibility query, then proximity filter
5. shared-tag annotation with the minimum-pool backstop
6. one batched similarity call for the whole surviving pool
7. composite score per candidate
8. sort by score, ties by candidate id
9. slice the requested page
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Callable, List, Optional, Tuple

from .data_models import User
from .eligibility import build_eligibility_predicate, filter_by_proximity
from .errors import InvalidRequestError, NotFoundError
from .feature_engineering import Embedding, calculate_age, most_recent_embedding
from .logging_setup import get_logger
from .matching_models import CandidateMatch, PaginatedResult
from .recommender import ScoreWeights, rank_candidates, score_candidate, select_tag_pool, shared_tag_ids
from .similarity import SimilarityBackend
from .stores import TagStore, ThoughtStore, UserStore

logger = get_logger(__name__)


class CandidatePipeline:
    def __init__(
        self,
        user_store: UserStore,
        tag_store: TagStore,
        thought_store: ThoughtStore,
        similarity: SimilarityBackend,
        weights: ScoreWeights = ScoreWeights(),
        candidate_limit: int = 1000,
        tag_backstop: int = 20,
        max_page_size: int = 20,
        today: Callable[[], date] = date.today,
    ):
        self._users = user_store
        self._tags = tag_store
        self._thoughts = thought_store
        self._similarity = similarity
        self._weights = weights
        self._candidate_limit = candidate_limit
        self._tag_backstop = tag_backstop
        self._max_page_size = max_page_size
        self._today = today

    def _validate(self, user_id: str, page: int, page_size: int) -> None:
        if not user_id:
            raise InvalidRequestError("User ID is required")
        if page < 1:
            raise InvalidRequestError(f"page must be >= 1, got {page}")
        if not 1 <= page_size <= self._max_page_size:
            raise InvalidRequestError(f"pageSize must be between 1 and {self._max_page_size}, got {page_size}")

    async def get_candidates(
        self, user_id: str, page: int = 1, page_size: int = 2
    ) -> PaginatedResult[CandidateMatch]:
        self._validate(user_id, page, page_size)
        log = logger.bind(user_id=user_id, page=page, page_size=page_size)

        requester = await self._users.get_by_id(user_id)
        if requester is None:
            raise NotFoundError(user_id)
        age = calculate_age(requester.dob, self._today())
        requester_tags = await self._tags.get_tag_ids_for_user(user_id)
        log.debug("Loaded requester", age=age, tags=len(requester_tags))

        predicate = build_eligibility_predicate(requester, age)
        eligible = await self._users.query_eligible(predicate, self._candidate_limit)
        eligible = [c for c in eligible if c.id != requester.id]
        nearby = filter_by_proximity(requester, eligible)
        log.info("Eligible candidates", eligible=len(eligible), within_radius=len(nearby))
        if not nearby:
            return PaginatedResult[CandidateMatch].empty(page, page_size)

        annotated = await self._annotate_shared_tags(nearby, requester_tags)
        pool = select_tag_pool(annotated, self._tag_backstop)
        log.info("Candidates after tag filtering", pool=len(pool))
        if not pool:
            return PaginatedResult[CandidateMatch].empty(page, page_size)

        candidate_ids = [user.id for user, _, _ in pool]
        embedding = await self._requester_embedding(user_id)
        scores = await self._similarity_scores(embedding, candidate_ids)

        matches: List[CandidateMatch] = []
        for user, dist, shared in pool:
            similarity = min(1.0, max(0.0, float(scores.get(user.id, 0.0))))
            matches.append(
                CandidateMatch(
                    user=user,
                    shared_tags=shared,
                    similarity=similarity,
                    proximity_km=dist,
                    score=score_candidate(len(shared), similarity, dist, self._weights),
                )
            )

        ranked = rank_candidates(matches)
        result = PaginatedResult[CandidateMatch].paginate(ranked, page, page_size)
        log.info("Ranked candidates", total=result.total_count, returned=len(result.data), has_more=result.has_more)
        return result

    async def _annotate_shared_tags(
        self, nearby: List[Tuple[User, float]], requester_tags: List[int]
    ) -> List[Tuple[User, float, List[int]]]:
        # Independent reads; a failed lookup counts as "no tags" for that candidate
        results = await asyncio.gather(
            *(self._tags.get_tag_ids_for_user(user.id) for user, _ in nearby),
            return_exceptions=True,
        )
        annotated: List[Tuple[User, float, List[int]]] = []
        for (user, dist), tag_ids in zip(nearby, results):
            if isinstance(tag_ids, BaseException):
                logger.warning("Tag lookup failed, treating as no tags", candidate_id=user.id, error=str(tag_ids))
                tag_ids = []
            annotated.append((user, dist, shared_tag_ids(tag_ids, requester_tags)))
        return annotated

    async def _requester_embedding(self, user_id: str) -> Optional[Embedding]:
        try:
            thoughts = await self._thoughts.get_thoughts_for_user(user_id)
        except Exception as e:
            logger.warning("Thought lookup failed, similarity will be zero", user_id=user_id, error=str(e))
            return None
        embedding = most_recent_embedding(thoughts)
        if embedding is None:
            logger.info("No valid embedding for requester", user_id=user_id, thoughts=len(thoughts))
        return embedding

    async def _similarity_scores(self, embedding: Optional[Embedding], candidate_ids: List[str]):
        try:
            return await self._similarity.similarity_scores(embedding, candidate_ids)
        except Exception as e:
            logger.warning("Similarity backend raised, zero-filling", error=str(e))
            return {cid: 0.0 for cid in candidate_ids}
