"""
Pytest configuration and shared fixtures for the matchmaking tests.
"""
import asyncio
import json
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

import pytest
import pytest_asyncio

from matchmaking.data_models import Tag, Thought, User
from matchmaking.errors import BackendUnavailableError
from matchmaking.index_sync import sync_embeddings
from matchmaking.matching_models import IndexMatch
from matchmaking.pipeline import CandidatePipeline
from matchmaking.similarity import InMemorySimilarityIndex, VectorIndexSimilarityBackend
from matchmaking.stores import InMemoryTagStore, InMemoryThoughtStore, InMemoryUserStore

TODAY = date(2024, 6, 1)

# Manhattan
NYC = (40.7128, -74.0060)


def make_user(user_id: str, **overrides) -> User:
    """Build a user aged 30 on TODAY, living in Manhattan, with no preferences set."""
    fields = {
        "id": user_id,
        "username": f"user_{user_id}",
        "dob": date(1994, 3, 10),
        "latitude": NYC[0],
        "longitude": NYC[1],
    }
    fields.update(overrides)
    return User(**fields)


def make_thought(
    user_id: str,
    embedding: Optional[List[float]],
    minutes_ago: int = 0,
    raw_embedding: Optional[str] = None,
    **overrides,
) -> Thought:
    """`raw_embedding` is stored verbatim, for thoughts whose embedding text is malformed."""
    stored = raw_embedding if raw_embedding is not None else (json.dumps(embedding) if embedding is not None else None)
    fields = {
        "id": f"{user_id}-t{minutes_ago}",
        "user_id": user_id,
        "content": f"thought from {user_id}",
        "embedding": stored,
        "created_at": datetime(2024, 5, 31, 12, 0) - timedelta(minutes=minutes_ago),
    }
    fields.update(overrides)
    return Thought(**fields)


# ============================================================================
# Fixtures: Test Data
# ============================================================================

@pytest.fixture
def today() -> Callable[[], date]:
    return lambda: TODAY


@pytest.fixture
def tags() -> List[Tag]:
    return [
        Tag(id=1, name="Hiking", category="interest"),
        Tag(id=2, name="Cooking", category="interest"),
        Tag(id=3, name="Jazz", category="interest"),
        Tag(id=4, name="Chess", category="interest"),
        Tag(id=10, name="New Parent", category="context"),
        Tag(id=11, name="Career Change", category="context"),
        Tag(id=20, name="Friendship", category="intention"),
    ]


@pytest.fixture
def users() -> List[User]:
    """Requester `req` plus five in-range candidates and two that must be excluded."""
    return [
        make_user("req", nickname="Riley", proximity="local", preferred_age_min=25, preferred_age_max=40),
        make_user("a"),
        make_user("b", latitude=40.75, longitude=-73.99),
        make_user("c", latitude=40.70, longitude=-74.02),
        make_user("d", latitude=40.80, longitude=-73.95),
        # (0, 0) means the location was never shared
        make_user("e", latitude=0.0, longitude=0.0),
        # about 60 km north, outside the local radius
        make_user("far", latitude=NYC[0] + 0.54, longitude=NYC[1]),
        # only wants to meet people up to 25
        make_user("picky", preferred_age_max=25),
    ]


@pytest.fixture
def memberships() -> List[tuple]:
    return [
        ("req", 1), ("req", 2), ("req", 3), ("req", 10), ("req", 20),
        ("a", 1), ("a", 2), ("a", 3),
        ("b", 1),
        ("c", 2), ("c", 11),
        ("d", 1), ("d", 2),
        ("e", 3),
        ("far", 1), ("far", 2), ("far", 3),
        ("picky", 1),
    ]


@pytest.fixture
def thoughts() -> List[Thought]:
    return [
        make_thought("req", [1.0, 0.0, 0.0]),
        make_thought("a", [1.0, 0.0, 0.0]),
        make_thought("b", [0.0, 1.0, 0.0]),
        make_thought("c", [0.6, 0.8, 0.0]),
        make_thought("far", [1.0, 0.0, 0.0]),
    ]


@pytest.fixture
def user_store(users) -> InMemoryUserStore:
    return InMemoryUserStore(users)


@pytest.fixture
def tag_store(tags, memberships) -> InMemoryTagStore:
    return InMemoryTagStore(tags, memberships)


@pytest.fixture
def thought_store(thoughts) -> InMemoryThoughtStore:
    return InMemoryThoughtStore(thoughts)


@pytest_asyncio.fixture
async def similarity_index(thought_store, users) -> InMemorySimilarityIndex:
    index = InMemorySimilarityIndex()
    await sync_embeddings(index, thought_store, [u.id for u in users])
    return index


@pytest.fixture
def pipeline(user_store, tag_store, thought_store, similarity_index, today) -> CandidatePipeline:
    return CandidatePipeline(
        user_store,
        tag_store,
        thought_store,
        VectorIndexSimilarityBackend(similarity_index, timeout_s=1.0),
        today=today,
    )


# ============================================================================
# Fixtures: Backend Doubles
# ============================================================================

class FailingIndex:
    """Similarity index whose every call fails."""

    def __init__(self) -> None:
        self.calls = 0

    async def query(self, vector, top_k, id_in) -> List[IndexMatch]:
        self.calls += 1
        raise BackendUnavailableError("index down")

    async def upsert(self, id, values, metadata=None) -> None:
        raise BackendUnavailableError("index down")

    async def delete(self, id) -> None:
        raise BackendUnavailableError("index down")


class SlowIndex:
    """Similarity index that never answers in time."""

    async def query(self, vector, top_k, id_in) -> List[IndexMatch]:
        await asyncio.sleep(10)
        return []

    async def upsert(self, id, values, metadata=None) -> None:
        return None

    async def delete(self, id) -> None:
        return None


class RecordingIndex:
    """Returns canned matches and records the arguments of each query."""

    def __init__(self, matches: List[IndexMatch]):
        self.matches = matches
        self.queries: List[Dict] = []

    async def query(self, vector, top_k, id_in) -> List[IndexMatch]:
        self.queries.append({"vector": list(vector), "top_k": top_k, "id_in": list(id_in)})
        return list(self.matches)

    async def upsert(self, id, values, metadata=None) -> None:
        return None

    async def delete(self, id) -> None:
        return None


class FakeGenerator:
    """Text generator returning a fixed reply, or raising when `error` is set."""

    def __init__(self, reply: str = "Alex writes about mountains. You both love the outdoors.", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.prompts: List[Dict] = []

    async def complete(self, prompt, max_tokens, temperature, system=None) -> str:
        self.prompts.append(
            {"prompt": prompt, "max_tokens": max_tokens, "temperature": temperature, "system": system}
        )
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def failing_index() -> FailingIndex:
    return FailingIndex()


@pytest.fixture
def slow_index() -> SlowIndex:
    return SlowIndex()


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()
