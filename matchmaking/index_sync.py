from __future__ import annotations

from typing import Any, Dict, Iterable

from .errors import BackendUnavailableError
from .feature_engineering import latest_valid_thought
from .logging_setup import get_logger
from .similarity import SimilarityIndex
from .stores import ThoughtStore

logger = get_logger(__name__)


async def sync_embeddings(
    index: SimilarityIndex,
    thought_store: ThoughtStore,
    user_ids: Iterable[str],
) -> int:
    """Write each user's latest valid thought embedding into the similarity index.

    The vector id is the user id. Users without a valid embedding are skipped, and a
    failed write is logged without stopping the rest of the batch.

    Returns:
        Number of vectors written.
    """
    written = 0
    for user_id in user_ids:
        latest = latest_valid_thought(await thought_store.get_thoughts_for_user(user_id))
        if latest is None:
            logger.debug("Skipping user without a valid embedding", user_id=user_id)
            continue
        thought, vec = latest
        metadata: Dict[str, Any] = {"userId": user_id}
        if thought.id is not None:
            metadata["thoughtId"] = thought.id
        try:
            await index.upsert(user_id, vec, metadata)
        except (BackendUnavailableError, ValueError) as e:
            logger.warning("Embedding sync failed", user_id=user_id, error=str(e))
            continue
        written += 1
    logger.info("Embedding sync complete", written=written)
    return written
