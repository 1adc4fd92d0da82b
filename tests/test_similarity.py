"""
Tests for the similarity index implementations and the similarity backends.
"""
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from conftest import RecordingIndex
from matchmaking.errors import BackendUnavailableError
from matchmaking.matching_models import IndexMatch
from matchmaking.similarity import (
    InMemorySimilarityIndex,
    PineconeSimilarityIndex,
    VectorIndexSimilarityBackend,
    ZeroFillSimilarityBackend,
)


class TestInMemorySimilarityIndex:
    @pytest.mark.asyncio
    async def test_query_respects_allow_list(self):
        index = InMemorySimilarityIndex()
        await index.upsert("a", [1.0, 0.0])
        await index.upsert("b", [0.0, 1.0])
        await index.upsert("c", [1.0, 1.0])

        matches = await index.query([1.0, 0.0], top_k=10, id_in=["b", "c", "missing"])

        assert [m.id for m in matches] == ["c", "b"]
        assert matches[0].score == pytest.approx(0.70710678)
        assert matches[1].score == pytest.approx(0.0)

    @pytest.mark.asyncio
    async def test_top_k_and_tie_order(self):
        index = InMemorySimilarityIndex()
        for uid in ("z", "y", "x"):
            await index.upsert(uid, [2.0, 0.0])

        matches = await index.query([1.0, 0.0], top_k=2, id_in=["z", "y", "x"])

        assert [m.id for m in matches] == ["x", "y"]

    @pytest.mark.asyncio
    async def test_mismatched_dimensions_are_skipped(self):
        index = InMemorySimilarityIndex()
        await index.upsert("short", [1.0, 0.0])
        await index.upsert("long", [1.0, 0.0, 0.0])

        matches = await index.query([1.0, 0.0, 0.0], top_k=5, id_in=["short", "long"])

        assert [m.id for m in matches] == ["long"]

    @pytest.mark.asyncio
    async def test_upsert_replaces_and_delete_removes(self):
        index = InMemorySimilarityIndex()
        await index.upsert("a", [1.0, 0.0])
        await index.upsert("a", [0.0, 1.0])
        assert len(index) == 1

        matches = await index.query([0.0, 1.0], top_k=1, id_in=["a"])
        assert matches[0].score == pytest.approx(1.0)

        await index.delete("a")
        await index.delete("a")
        assert len(index) == 0

    @pytest.mark.asyncio
    async def test_zero_dimension_vector_rejected(self):
        index = InMemorySimilarityIndex()
        with pytest.raises(ValueError, match="Invalid vector dimension"):
            await index.upsert("a", [])


class TestVectorIndexSimilarityBackend:
    @pytest.mark.asyncio
    async def test_empty_candidate_list_skips_query(self):
        index = RecordingIndex([])
        backend = VectorIndexSimilarityBackend(index)

        assert await backend.similarity_scores([1.0], []) == {}
        assert index.queries == []

    @pytest.mark.asyncio
    async def test_missing_embedding_zero_fills_without_query(self):
        index = RecordingIndex([IndexMatch(id="a", score=0.9)])
        backend = VectorIndexSimilarityBackend(index)

        scores = await backend.similarity_scores(None, ["a", "b"])

        assert scores == {"a": 0.0, "b": 0.0}
        assert index.queries == []

    @pytest.mark.asyncio
    async def test_single_query_with_allow_list(self):
        index = RecordingIndex([IndexMatch(id="a", score=0.9)])
        backend = VectorIndexSimilarityBackend(index)

        scores = await backend.similarity_scores([0.5, 0.5], ["a", "b", "c"])

        assert scores == {"a": 0.9, "b": 0.0, "c": 0.0}
        assert len(index.queries) == 1
        assert index.queries[0]["top_k"] == 3
        assert index.queries[0]["id_in"] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_outsiders_and_out_of_range_scores(self):
        index = RecordingIndex([
            IndexMatch(id="a", score=-0.3),
            IndexMatch(id="b", score=1.2),
            IndexMatch(id="stranger", score=0.99),
        ])
        backend = VectorIndexSimilarityBackend(index)

        scores = await backend.similarity_scores([1.0], ["a", "b"])

        assert scores == {"a": 0.0, "b": 1.0}

    @pytest.mark.asyncio
    async def test_failure_zero_fills(self, failing_index):
        backend = VectorIndexSimilarityBackend(failing_index)

        scores = await backend.similarity_scores([1.0], ["a", "b"])

        assert scores == {"a": 0.0, "b": 0.0}

    @pytest.mark.asyncio
    async def test_timeout_zero_fills(self, slow_index):
        backend = VectorIndexSimilarityBackend(slow_index, timeout_s=0.05)

        scores = await backend.similarity_scores([1.0], ["a"])

        assert scores == {"a": 0.0}


@pytest.mark.asyncio
async def test_zero_fill_backend():
    scores = await ZeroFillSimilarityBackend().similarity_scores([1.0, 2.0], ["a", "b"])
    assert scores == {"a": 0.0, "b": 0.0}


class TestPineconeSimilarityIndex:
    """The adapter is exercised against a mocked Pinecone `Index`."""

    @pytest.mark.asyncio
    async def test_query_pushes_allow_list_into_filter(self):
        client = MagicMock()
        client.query.return_value = {"matches": [{"id": "a", "score": 0.42}]}
        index = PineconeSimilarityIndex(client, namespace="user-embeddings")

        matches = await index.query([0.1, 0.2], top_k=0, id_in=["a", "b"])

        assert matches == [IndexMatch(id="a", score=0.42)]
        kwargs = client.query.call_args.kwargs
        assert kwargs["filter"] == {"userId": {"$in": ["a", "b"]}}
        assert kwargs["namespace"] == "user-embeddings"
        assert kwargs["top_k"] == 1

    @pytest.mark.asyncio
    async def test_object_response(self):
        client = MagicMock()
        client.query.return_value = SimpleNamespace(matches=[SimpleNamespace(id="b", score=0.5)])
        index = PineconeSimilarityIndex(client)

        matches = await index.query([1.0], top_k=1, id_in=["b"])

        assert matches == [IndexMatch(id="b", score=0.5)]

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        client = MagicMock()
        client.query.return_value = {"results": []}
        index = PineconeSimilarityIndex(client)

        with pytest.raises(BackendUnavailableError):
            await index.query([1.0], top_k=1, id_in=["a"])

    @pytest.mark.asyncio
    async def test_client_errors_are_wrapped(self):
        client = MagicMock()
        client.query.side_effect = ConnectionError("network")
        client.upsert.side_effect = ConnectionError("network")
        index = PineconeSimilarityIndex(client)

        with pytest.raises(BackendUnavailableError):
            await index.query([1.0], top_k=1, id_in=["a"])
        with pytest.raises(BackendUnavailableError):
            await index.upsert("a", [1.0])

    @pytest.mark.asyncio
    async def test_upsert_record_shape(self):
        client = MagicMock()
        index = PineconeSimilarityIndex(client, namespace="ns")

        await index.upsert("u1", [1, 2], {"userId": "u1"})

        client.upsert.assert_called_once_with(
            vectors=[{"id": "u1", "values": [1.0, 2.0], "metadata": {"userId": "u1"}}],
            namespace="ns",
        )
