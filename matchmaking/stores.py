"""Read-only collaborator stores the engine depends on.

Production deployments back these with a database; the in-memory versions serve
the CLI (loaded from CSV by `ingest.load_stores`) and the tests.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from .data_models import Tag, Thought, User
from .eligibility import EligibilityPredicate


class UserStore(Protocol):
    async def get_by_id(self, user_id: str) -> Optional[User]: ...

    async def query_eligible(self, predicate: EligibilityPredicate, limit: int) -> List[User]: ...


class TagStore(Protocol):
    async def get_tag_ids_for_user(self, user_id: str) -> List[int]: ...

    async def get_tags_for_user(self, user_id: str) -> List[Tag]: ...


class ThoughtStore(Protocol):
    async def get_thoughts_for_user(self, user_id: str) -> List[Thought]: ...


class InMemoryUserStore:
    def __init__(self, users: Iterable[User] = ()):
        self._users: Dict[str, User] = {u.id: u for u in users}

    def all(self) -> List[User]:
        return list(self._users.values())

    async def get_by_id(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    async def query_eligible(self, predicate: EligibilityPredicate, limit: int) -> List[User]:
        out: List[User] = []
        for user in self._users.values():
            if len(out) >= limit:
                break
            if predicate.accepts(user):
                out.append(user)
        return out


class InMemoryTagStore:
    def __init__(self, tags: Iterable[Tag] = (), memberships: Iterable[Tuple[str, int]] = ()):
        self._tags: Dict[int, Tag] = {t.id: t for t in tags}
        self._by_user: Dict[str, List[int]] = defaultdict(list)
        for user_id, tag_id in memberships:
            if tag_id not in self._by_user[user_id]:
                self._by_user[user_id].append(tag_id)

    async def get_tag_ids_for_user(self, user_id: str) -> List[int]:
        return list(self._by_user.get(user_id, []))

    async def get_tags_for_user(self, user_id: str) -> List[Tag]:
        return [self._tags[i] for i in self._by_user.get(user_id, []) if i in self._tags]


class InMemoryThoughtStore:
    def __init__(self, thoughts: Iterable[Thought] = ()):
        self._by_user: Dict[str, List[Thought]] = defaultdict(list)
        for thought in thoughts:
            self._by_user[thought.user_id].append(thought)

    def user_ids(self) -> List[str]:
        return list(self._by_user.keys())

    async def get_thoughts_for_user(self, user_id: str) -> List[Thought]:
        return list(self._by_user.get(user_id, []))
