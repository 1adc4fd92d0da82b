"""Embedding similarity between the requester and a candidate allow-list.

Two layers:

- a *similarity index* (`InMemorySimilarityIndex`, `PineconeSimilarityIndex`) stores one
  vector per user and answers top-k queries restricted to an id allow-list;
- a *similarity backend* turns that into a score per candidate. The vector-index
  backend degrades to the zero-fill backend whenever the requester has no embedding
  or the index fails, so ranking never aborts because of it.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Protocol, Sequence

import numpy as np
from pinecone import Pinecone
from sklearn.metrics.pairwise import cosine_similarity  # type: ignore

from .errors import BackendUnavailableError
from .logging_setup import get_logger
from .matching_models import IndexMatch

logger = get_logger(__name__)


class SimilarityIndex(Protocol):
    async def query(self, vector: Sequence[float], top_k: int, id_in: Sequence[str]) -> List[IndexMatch]: ...

    async def upsert(self, id: str, values: Sequence[float], metadata: Optional[Dict[str, Any]] = None) -> None: ...

    async def delete(self, id: str) -> None: ...


class SimilarityBackend(Protocol):
    async def similarity_scores(
        self, query_embedding: Optional[Sequence[float]], candidate_ids: Sequence[str]
    ) -> Dict[str, float]: ...


def _validate_vector(values: Sequence[float]) -> List[float]:
    if len(values) < 1:
        raise ValueError(f"Invalid vector dimension: {len(values)}")
    return [float(v) for v in values]


class InMemorySimilarityIndex:
    """Cosine-similarity index held in process memory."""

    def __init__(self) -> None:
        self._vectors: Dict[str, np.ndarray] = {}
        self._metadata: Dict[str, Dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._vectors)

    async def upsert(self, id: str, values: Sequence[float], metadata: Optional[Dict[str, Any]] = None) -> None:
        self._vectors[id] = np.asarray(_validate_vector(values), dtype=float)
        self._metadata[id] = dict(metadata or {})

    async def delete(self, id: str) -> None:
        self._vectors.pop(id, None)
        self._metadata.pop(id, None)

    async def query(self, vector: Sequence[float], top_k: int, id_in: Sequence[str]) -> List[IndexMatch]:
        query_vec = np.asarray(_validate_vector(vector), dtype=float).reshape(1, -1)
        ids = [i for i in dict.fromkeys(id_in) if i in self._vectors]
        # Vectors of another dimensionality cannot be compared
        ids = [i for i in ids if self._vectors[i].shape[0] == query_vec.shape[1]]
        if not ids:
            return []
        matrix = np.vstack([self._vectors[i] for i in ids])
        scores = cosine_similarity(query_vec, matrix).flatten()
        ranked = sorted(zip(ids, scores), key=lambda p: (-p[1], p[0]))[:max(1, top_k)]
        return [IndexMatch(id=i, score=float(s)) for i, s in ranked]


class PineconeSimilarityIndex:
    """Adapter over a Pinecone index namespace.

    User vectors carry a `userId` metadata field so the allow-list can be pushed into
    the query filter. The Pinecone client is synchronous; calls run in a worker thread.
    """

    def __init__(self, index: Any, namespace: str = "user-embeddings"):
        self._index = index
        self._namespace = namespace

    @classmethod
    def connect(cls, api_key: str, index_name: str, namespace: str) -> "PineconeSimilarityIndex":
        client = Pinecone(api_key=api_key)
        return cls(client.Index(index_name), namespace=namespace)

    async def upsert(self, id: str, values: Sequence[float], metadata: Optional[Dict[str, Any]] = None) -> None:
        record = {"id": id, "values": _validate_vector(values), "metadata": dict(metadata or {})}
        try:
            await asyncio.to_thread(self._index.upsert, vectors=[record], namespace=self._namespace)
        except Exception as e:
            raise BackendUnavailableError(f"Pinecone upsert failed for {id}: {e}") from e

    async def delete(self, id: str) -> None:
        try:
            await asyncio.to_thread(self._index.delete, ids=[id], namespace=self._namespace)
        except Exception as e:
            raise BackendUnavailableError(f"Pinecone delete failed for {id}: {e}") from e

    async def query(self, vector: Sequence[float], top_k: int, id_in: Sequence[str]) -> List[IndexMatch]:
        try:
            response = await asyncio.to_thread(
                self._index.query,
                vector=_validate_vector(vector),
                top_k=max(1, int(top_k)),
                namespace=self._namespace,
                filter={"userId": {"$in": list(id_in)}},
                include_metadata=False,
            )
        except Exception as e:
            raise BackendUnavailableError(f"Pinecone query failed: {e}") from e
        return self._normalize(response)

    @staticmethod
    def _normalize(response: Any) -> List[IndexMatch]:
        matches = response.get("matches") if isinstance(response, dict) else getattr(response, "matches", None)
        if matches is None:
            raise BackendUnavailableError("Pinecone response has no matches field")
        out: List[IndexMatch] = []
        for m in matches:
            mid = m.get("id") if isinstance(m, dict) else getattr(m, "id", None)
            score = m.get("score") if isinstance(m, dict) else getattr(m, "score", None)
            if mid is None:
                raise BackendUnavailableError("Pinecone match without id")
            out.append(IndexMatch(id=str(mid), score=float(score or 0.0)))
        return out


class ZeroFillSimilarityBackend:
    """Every candidate gets similarity 0."""

    async def similarity_scores(
        self, query_embedding: Optional[Sequence[float]], candidate_ids: Sequence[str]
    ) -> Dict[str, float]:
        return {cid: 0.0 for cid in candidate_ids}


class VectorIndexSimilarityBackend:
    """Scores candidates with one allow-listed index query, bounded by `timeout_s`."""

    def __init__(self, index: SimilarityIndex, timeout_s: float = 5.0):
        self._index = index
        self._timeout_s = timeout_s
        self._fallback = ZeroFillSimilarityBackend()

    async def similarity_scores(
        self, query_embedding: Optional[Sequence[float]], candidate_ids: Sequence[str]
    ) -> Dict[str, float]:
        if not candidate_ids:
            return {}
        if not query_embedding:
            logger.info("No valid requester embedding, similarity zero-filled", candidates=len(candidate_ids))
            return await self._fallback.similarity_scores(query_embedding, candidate_ids)

        top_k = max(1, len(candidate_ids))
        try:
            matches = await asyncio.wait_for(
                self._index.query(query_embedding, top_k, list(candidate_ids)),
                timeout=self._timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning("Similarity query timed out", timeout_s=self._timeout_s, candidates=len(candidate_ids))
            return await self._fallback.similarity_scores(query_embedding, candidate_ids)
        except Exception as e:
            logger.warning("Similarity backend unavailable", error=str(e), candidates=len(candidate_ids))
            return await self._fallback.similarity_scores(query_embedding, candidate_ids)

        scores = {cid: 0.0 for cid in candidate_ids}
        for m in matches:
            # an index that ignores the filter must not leak outsiders into the ranking
            if m.id in scores:
                scores[m.id] = min(1.0, max(0.0, m.score))
        logger.debug("Similarity scores received", returned=len(matches), candidates=len(candidate_ids))
        return scores
