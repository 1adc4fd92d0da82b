"""
Human-readable reasons for a single recommendation.

Two strategies, tried in order:

- Generative: find the most similar pairs of thoughts between the requester and the
  recommended user, summarise each side from the matched texts, and ask the text
  generator for a short two-part narrative.
- Deterministic: compare both users' tags per category and fill a sentence template,
  ending with a generic "fresh perspective" line when nothing overlaps.

`ExplanationGenerator.explain` never raises for missing thoughts, missing tags or
generator failures, and always returns a non-empty string. It holds no per-call
state, so it can be called once per candidate in any order.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity  # type: ignore

from .data_models import Tag, Thought
from .feature_engineering import Embedding, thought_embeddings
from .generation import TextGenerator
from .logging_setup import get_logger
from .matching_models import RecommendedUser, ThoughtPair
from .stores import TagStore, ThoughtStore

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You create explanations about why two users might connect. Write in 80-100 words total. "
    "The first half should be a narrative about the person being recommended (using their nickname), "
    "describing their journey and approach. The second half should explain similarities and potential "
    "connections, addressing the user as \"you\" and referring to the recommended person by their nickname. "
    "Do not invent facts that are not supported by the summaries. "
    "Example: \"Alex documents their creative process through thoughtful reflections, capturing moments of "
    "inspiration and struggle alike. Their entries about finding balance between structure and spontaneity "
    "in art mirror your own creative journey. Your shared passion for mindfulness and creative expression "
    "suggests a meaningful connection, and their approach to weaving creativity into daily life complements "
    "your exploration of art as self-discovery.\""
)

FRESH_PERSPECTIVE = "{name} might offer a fresh perspective with different interests and experiences."


def top_similar_thought_pairs(
    requester: Sequence[Tuple[Thought, Embedding]],
    recommended: Sequence[Tuple[Thought, Embedding]],
    top_n: int = 4,
) -> List[ThoughtPair]:
    """Rank every (requester thought, recommended thought) combination by cosine similarity.

    Only vectors sharing the dimensionality of the requester's newest embedding are compared.
    """
    if not requester or not recommended:
        return []
    dim = len(requester[0][1])
    left = [(t, v) for t, v in requester if len(v) == dim]
    right = [(t, v) for t, v in recommended if len(v) == dim]
    if not left or not right:
        return []

    matrix = cosine_similarity(
        np.asarray([v for _, v in left], dtype=float),
        np.asarray([v for _, v in right], dtype=float),
    )
    flat = [
        (float(matrix[i, j]), i, j)
        for i in range(matrix.shape[0])
        for j in range(matrix.shape[1])
    ]
    flat.sort(key=lambda x: (-x[0], x[1], x[2]))

    pairs: List[ThoughtPair] = []
    for sim, i, j in flat[:max(0, top_n)]:
        a, b = left[i][0], right[j][0]
        pairs.append(
            ThoughtPair(
                requester_thought_id=a.id,
                recommended_thought_id=b.id,
                requester_text=a.content,
                recommended_text=b.content,
                similarity=sim,
            )
        )
    return pairs


def summarize_thoughts(texts: Sequence[str], max_chars: int = 400) -> str:
    unique = list(dict.fromkeys(t.strip() for t in texts if t and t.strip()))
    return " ".join(unique)[:max_chars]


def _names_by_category(tags: Sequence[Tag]) -> Dict[str, List[str]]:
    out: Dict[str, List[str]] = {"interest": [], "context": [], "intention": []}
    for tag in tags:
        if tag.name not in out[tag.category]:
            out[tag.category].append(tag.name)
    return out


def _common(mine: List[str], theirs: List[str]) -> List[str]:
    other = set(theirs)
    return [name for name in mine if name in other]


def tag_overlap_explanation(
    requester_tags: Sequence[Tag],
    recommended_tags: Sequence[Tag],
    display_name: str,
) -> str:
    """Templated sentence over shared interests, then contexts, then intentions."""
    mine = _names_by_category(requester_tags)
    theirs = _names_by_category(recommended_tags)
    interests = _common(mine["interest"], theirs["interest"])
    contexts = _common(mine["context"], theirs["context"])
    intentions = _common(mine["intention"], theirs["intention"])

    explanation = ""
    if interests:
        if len(interests) == 1:
            explanation = f"You both share an interest in {interests[0]}."
        elif len(interests) == 2:
            explanation = f"You both enjoy {interests[0]} and {interests[1]}."
        else:
            remaining = len(interests) - 2
            plural = "s" if remaining > 1 else ""
            explanation = (
                f"You both enjoy {interests[0]}, {interests[1]} and {remaining} other shared interest{plural}."
            )

    if contexts:
        context_text = contexts[0] if len(contexts) == 1 else f"{contexts[0]} and other similar situations"
        if explanation:
            explanation += f" You're also both navigating {context_text.lower()}."
        else:
            explanation = f"You're both in similar life situations around {context_text.lower()}."

    if intentions:
        intention_text = intentions[0] if len(intentions) == 1 else f"{intentions[0]} and other shared goals"
        if explanation:
            explanation += f" Plus, you both are looking for {intention_text.lower()}."
        else:
            explanation = f"You both are seeking {intention_text.lower()}."

    return explanation or FRESH_PERSPECTIVE.format(name=display_name)


class ExplanationGenerator:
    def __init__(
        self,
        tag_store: TagStore,
        thought_store: ThoughtStore,
        generator: Optional[TextGenerator] = None,
        timeout_s: float = 15.0,
        top_n_pairs: int = 4,
        summary_chars: int = 400,
    ):
        self._tags = tag_store
        self._thoughts = thought_store
        self._generator = generator
        self._timeout_s = timeout_s
        self._top_n = top_n_pairs
        self._summary_chars = summary_chars

    async def explain(self, recommended: RecommendedUser, requester_id: str) -> str:
        name = recommended.display_name
        if self._generator is not None:
            try:
                return await asyncio.wait_for(
                    self._generative(self._generator, recommended, requester_id),
                    timeout=self._timeout_s,
                )
            except asyncio.TimeoutError:
                logger.warning("Generative explanation timed out", timeout_s=self._timeout_s)
            except Exception as e:
                logger.warning("Generative explanation failed, using tag overlap", error=str(e))

        try:
            return await self._deterministic(recommended, requester_id)
        except Exception as e:
            logger.warning("Tag overlap explanation failed", error=str(e))
            return FRESH_PERSPECTIVE.format(name=name)

    async def _generative(self, generator: TextGenerator, recommended: RecommendedUser, requester_id: str) -> str:
        mine, theirs = await asyncio.gather(
            self._thoughts.get_thoughts_for_user(requester_id),
            self._thoughts.get_thoughts_for_user(recommended.id),
        )
        pairs = top_similar_thought_pairs(thought_embeddings(mine), thought_embeddings(theirs), self._top_n)
        if not pairs:
            raise LookupError("No thought pairs found")

        requester_summary = summarize_thoughts([p.requester_text for p in pairs], self._summary_chars)
        recommended_summary = summarize_thoughts([p.recommended_text for p in pairs], self._summary_chars)
        name = recommended.display_name
        prompt = (
            f"Generate an 80-100 word explanation for why you should connect with {name}.\n\n"
            f"First half: Write a narrative about {name} and their journey/approach based on: "
            f"{recommended_summary}\n\n"
            f"Second half: Explain similarities and connections between you (the user) and {name}, "
            f"addressing the user directly as \"you\". You (the user) are described as: {requester_summary}"
        )
        text = await generator.complete(prompt, max_tokens=200, temperature=0.7, system=SYSTEM_PROMPT)
        if not text or not text.strip():
            raise ValueError("Empty explanation")
        return text.strip()

    async def _deterministic(self, recommended: RecommendedUser, requester_id: str) -> str:
        mine, theirs = await asyncio.gather(
            self._tags.get_tags_for_user(requester_id),
            self._tags.get_tags_for_user(recommended.id),
        )
        return tag_overlap_explanation(mine, theirs, recommended.display_name)
