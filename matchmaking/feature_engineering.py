from __future__ import annotations

import json
import math
from datetime import date
from typing import Any, Iterable, List, Optional, Tuple

from .data_models import Thought
from .logging_setup import get_logger

logger = get_logger(__name__)

Embedding = List[float]


def calculate_age(dob: date, today: Optional[date] = None) -> int:
    """
    Whole years between `dob` and `today`, minus one if this year's birthday is still ahead.

    Args:
        dob: Date of birth.
        today: Reference date; defaults to the current date.

    Returns:
        Age in completed years.
    """
    today = today or date.today()
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def parse_embedding(raw: Any) -> Optional[Embedding]:
    """Parse a stored embedding into list[float].

    Accepts a JSON array string or an already-decoded list. Anything that is not a
    non-empty array of finite numbers is treated as "no embedding".
    """
    if raw is None:
        return None
    value = raw
    if isinstance(raw, str):
        s = raw.strip()
        if not (s.startswith("[") and s.endswith("]")):
            logger.warning("Embedding is not a JSON array", preview=s[:32])
            return None
        try:
            value = json.loads(s)
        except ValueError as e:
            logger.warning("Failed to parse embedding", error=str(e))
            return None
    if not isinstance(value, (list, tuple)) or len(value) == 0:
        return None
    out: Embedding = []
    for x in value:
        # bool is an int subclass but never a valid component
        if isinstance(x, bool) or not isinstance(x, (int, float)) or not math.isfinite(x):
            logger.warning("Embedding contains non-numeric values", length=len(value))
            return None
        out.append(float(x))
    return out


def newest_first(thoughts: Iterable[Thought]) -> List[Thought]:
    return sorted(thoughts, key=lambda t: t.created_at, reverse=True)


def latest_valid_thought(thoughts: Iterable[Thought]) -> Optional[Tuple[Thought, Embedding]]:
    """The most recently created thought whose embedding parses, with that embedding."""
    for thought in newest_first(thoughts):
        vec = parse_embedding(thought.embedding)
        if vec is not None:
            return thought, vec
    return None


def most_recent_embedding(thoughts: Iterable[Thought]) -> Optional[Embedding]:
    latest = latest_valid_thought(thoughts)
    return latest[1] if latest is not None else None


def thought_embeddings(thoughts: Iterable[Thought]) -> List[Tuple[Thought, Embedding]]:
    """All thoughts with text and a valid embedding, newest first."""
    out: List[Tuple[Thought, Embedding]] = []
    for thought in newest_first(thoughts):
        if not thought.content:
            continue
        vec = parse_embedding(thought.embedding)
        if vec is not None:
            out.append((thought, vec))
    return out
