"""
Service construction.

Builds the pipeline and explanation generator once, at process start, from
settings. Nothing here is cached at module level; callers hold on to the
returned `Services` and pass it down.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from .explanation import ExplanationGenerator
from .generation import OpenAITextGenerator, TextGenerator
from .index_sync import sync_embeddings
from .ingest import load_stores
from .logging_setup import get_logger
from .pipeline import CandidatePipeline
from .settings import Settings
from .similarity import InMemorySimilarityIndex, PineconeSimilarityIndex, SimilarityIndex, VectorIndexSimilarityBackend
from .stores import InMemoryTagStore, InMemoryThoughtStore, InMemoryUserStore

logger = get_logger(__name__)

LocalStores = Tuple[InMemoryUserStore, InMemoryTagStore, InMemoryThoughtStore]


@dataclass
class Services:
    pipeline: CandidatePipeline
    explainer: ExplanationGenerator
    index: SimilarityIndex
    user_store: InMemoryUserStore
    thought_store: InMemoryThoughtStore


def build_text_generator(settings: Settings) -> Optional[TextGenerator]:
    if not settings.generation_enabled:
        logger.info("OPENAI_API_KEY not set, explanations use tag overlap only")
        return None
    return OpenAITextGenerator.from_api_key(settings.openai_api_key, settings.openai_model)


async def build_index(settings: Settings, user_store: InMemoryUserStore, thought_store: InMemoryThoughtStore) -> SimilarityIndex:
    if settings.pinecone_enabled:
        logger.info("Using Pinecone similarity index", index=settings.pinecone_index, namespace=settings.pinecone_namespace)
        return PineconeSimilarityIndex.connect(
            settings.pinecone_api_key, settings.pinecone_index, settings.pinecone_namespace
        )
    index = InMemorySimilarityIndex()
    await sync_embeddings(index, thought_store, [u.id for u in user_store.all()])
    logger.info("Using in-memory similarity index", vectors=len(index))
    return index


async def build_services(settings: Settings, stores: Optional[LocalStores] = None) -> Services:
    user_store, tag_store, thought_store = stores or load_stores(settings.data_dir)
    index = await build_index(settings, user_store, thought_store)
    pipeline = CandidatePipeline(
        user_store,
        tag_store,
        thought_store,
        VectorIndexSimilarityBackend(index, timeout_s=settings.similarity_timeout_s),
        candidate_limit=settings.candidate_limit,
        tag_backstop=settings.tag_backstop,
        max_page_size=settings.max_page_size,
    )
    explainer = ExplanationGenerator(
        tag_store,
        thought_store,
        generator=build_text_generator(settings),
        timeout_s=settings.generation_timeout_s,
    )
    return Services(
        pipeline=pipeline,
        explainer=explainer,
        index=index,
        user_store=user_store,
        thought_store=thought_store,
    )
