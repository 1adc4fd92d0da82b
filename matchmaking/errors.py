"""Error taxonomy for the matching engine.

Only `NotFoundError` and `InvalidRequestError` are allowed to escape a
recommendation request. `BackendUnavailableError` is raised by adapters and
always absorbed by the similarity backend or the explanation generator.
"""

from __future__ import annotations


class MatchingError(Exception):
    """Base class for matching engine errors."""


class NotFoundError(MatchingError):
    """The requester id does not resolve to a user."""

    def __init__(self, user_id: str):
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class InvalidRequestError(MatchingError):
    """A request parameter violates a hard precondition (page, page size, id)."""


class BackendUnavailableError(MatchingError):
    """The similarity index or generation backend failed or returned malformed data."""
