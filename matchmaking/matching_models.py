# pydantic models produced by the ranking pipeline
import math
from typing import Generic, List, Optional, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from .data_models import User

T = TypeVar("T")


class CandidateMatch(BaseModel):
    """One ranked candidate. Computed per request, never persisted.

    Fields:
        user: The candidate's profile.
        shared_tags: Tag ids the candidate shares with the requester.
        similarity: Embedding similarity in [0, 1]; 0 when unknown.
        proximity_km: Great-circle distance, or infinity when either side has no location.
        score: Composite ranking score, a pure function of the three signals above.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user: User
    shared_tags: List[int] = Field(default_factory=list)
    similarity: float = Field(default=0.0, ge=0.0, le=1.0)
    proximity_km: float = math.inf
    score: float = 0.0

    @field_serializer("proximity_km", when_used="json")
    def _finite_or_null(self, value: float) -> Optional[float]:
        return value if math.isfinite(value) else None


class PaginatedResult(BaseModel, Generic[T]):
    """One page of a ranked list.

    Fields:
        data: Items on this page, at most `page_size` of them.
        page: 1-based page number.
        page_size: Requested page size.
        has_more: True when items exist beyond this page.
        total_count: Length of the full ranked list.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    data: List[T] = Field(default_factory=list)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=1, ge=1)
    has_more: bool = False
    total_count: int = Field(default=0, ge=0)

    @classmethod
    def paginate(cls, items: Sequence[T], page: int, page_size: int) -> "PaginatedResult[T]":
        start = (page - 1) * page_size
        total = len(items)
        return cls(
            data=list(items[start:start + page_size]),
            page=page,
            page_size=page_size,
            has_more=page * page_size < total,
            total_count=total,
        )

    @classmethod
    def empty(cls, page: int, page_size: int) -> "PaginatedResult[T]":
        return cls(data=[], page=page, page_size=page_size, has_more=False, total_count=0)


class IndexMatch(BaseModel):
    """A single hit returned by the similarity index."""

    id: str
    score: float


class RecommendedUser(BaseModel):
    """The slice of a recommended user the explanation endpoint receives."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    username: str = ""
    nickname: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.nickname or self.username or "This person"


class ThoughtPair(BaseModel):
    """Two thoughts, one per user, and the cosine similarity of their embeddings."""

    requester_thought_id: Optional[str] = None
    recommended_thought_id: Optional[str] = None
    requester_text: str
    recommended_text: str
    similarity: float
