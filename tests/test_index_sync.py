import pytest

from conftest import make_thought
from matchmaking.index_sync import sync_embeddings
from matchmaking.similarity import InMemorySimilarityIndex
from matchmaking.stores import InMemoryThoughtStore


class MetadataIndex(InMemorySimilarityIndex):
    def __init__(self):
        super().__init__()
        self.writes = {}

    async def upsert(self, id, values, metadata=None):
        self.writes[id] = (list(values), dict(metadata or {}))
        await super().upsert(id, values, metadata)


@pytest.mark.asyncio
async def test_sync_writes_one_vector_per_user(thought_store, users):
    index = MetadataIndex()

    written = await sync_embeddings(index, thought_store, [u.id for u in users])

    # req, a, b, c and far have embeddings
    assert written == 5
    assert len(index) == 5
    assert index.writes["a"] == ([1.0, 0.0, 0.0], {"userId": "a", "thoughtId": "a-t0"})


@pytest.mark.asyncio
async def test_sync_uses_latest_valid_embedding():
    store = InMemoryThoughtStore([
        make_thought("u", [1.0, 0.0], minutes_ago=20),
        make_thought("u", [0.0, 1.0], minutes_ago=10),
        make_thought("u", None, minutes_ago=0, raw_embedding="[broken"),
    ])
    index = MetadataIndex()

    await sync_embeddings(index, store, ["u"])

    assert index.writes["u"] == ([0.0, 1.0], {"userId": "u", "thoughtId": "u-t10"})


@pytest.mark.asyncio
async def test_thought_without_id_has_no_thought_metadata():
    store = InMemoryThoughtStore([make_thought("u", [1.0], id=None)])
    index = MetadataIndex()

    await sync_embeddings(index, store, ["u"])

    assert index.writes["u"][1] == {"userId": "u"}


@pytest.mark.asyncio
async def test_sync_skips_users_without_embeddings():
    store = InMemoryThoughtStore([make_thought("u", None)])
    index = MetadataIndex()

    assert await sync_embeddings(index, store, ["u", "ghost"]) == 0
    assert index.writes == {}


@pytest.mark.asyncio
async def test_failed_writes_do_not_stop_the_batch(thought_store, failing_index):
    written = await sync_embeddings(failing_index, thought_store, ["req", "a", "b"])

    assert written == 0
