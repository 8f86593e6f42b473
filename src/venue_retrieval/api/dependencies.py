"""Dependency injection configuration for FastAPI app.

Uses FastAPI's app.state pattern for storing service instances.

Pattern:
    - Services stored in app.state during lifespan
    - Dependency functions retrieve from request.app.state
    - Clean separation, no global mutable state
"""

import logging
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Request

from venue_retrieval.cache import CacheSuite, PayloadCodec
from venue_retrieval.config import get_redis_client, get_settings
from venue_retrieval.handlers import PipelineHandler
from venue_retrieval.protocols import EmbeddingProvider, VectorSearchService
from venue_retrieval.repositories import (
    OllamaEmbeddingProvider,
    PostgrestClient,
    RedisDurableCache,
    RedisVectorSearch,
    SupabaseGeoQuery,
    SupabaseMetadataStore,
    SupabaseVectorSearch,
)
from venue_retrieval.services import PipelineOrchestrator

logger = logging.getLogger(__name__)


def get_pipeline(request: Request) -> PipelineOrchestrator:
    """Dependency injection for PipelineOrchestrator from app.state.

    Args:
        request: FastAPI Request object

    Returns:
        The PipelineOrchestrator instance from app.state

    Raises:
        RuntimeError: If the pipeline is not initialized
    """
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise RuntimeError("PipelineOrchestrator not initialized. Check lifespan setup.")
    return pipeline


def get_handler(request: Request) -> PipelineHandler:
    """Dependency injection for PipelineHandler from app.state.

    Raises:
        RuntimeError: If handler is not initialized
    """
    handler = getattr(request.app.state, "pipeline_handler", None)
    if handler is None:
        raise RuntimeError("PipelineHandler not initialized. Check lifespan setup.")
    return handler


def build_embedding_provider(provider: str) -> EmbeddingProvider:
    """Build the configured embedding provider.

    ⚠️ The query model must match the model that embedded the venues and
    events, or similarities are meaningless.
    """
    if provider == "local":
        # Imported lazily: loads torch
        from venue_retrieval.repositories.local_embedding_provider import LocalEmbeddingProvider

        return LocalEmbeddingProvider.create()
    return OllamaEmbeddingProvider.create()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI app.

    Initializes all layers and stores in app.state:
    1. Repositories (Redis durable tier, Supabase collaborators, embeddings)
    2. Cache suite and pipeline - stored in app.state.pipeline
    3. Handler (HTTP endpoints) - stored in app.state.pipeline_handler

    Cleanup:
        Stops background workers, drains pending durable writes and closes
        the HTTP clients on shutdown
    """
    settings = get_settings()
    redis_client = get_redis_client()
    postgrest = PostgrestClient.create()
    embedding_provider = build_embedding_provider(settings.embedding_provider)

    def durable_factory(cache_type: str, codec: PayloadCodec[Any]) -> RedisDurableCache[Any]:
        return RedisDurableCache.create(cache_type, codec, redis_client=redis_client)

    cache = CacheSuite.create(settings=settings, durable_factory=durable_factory)

    vector_service: VectorSearchService
    if settings.vector_backend == "redis":
        vector_service = RedisVectorSearch.create(embedding_provider=embedding_provider, redis_client=redis_client)
    else:
        vector_service = SupabaseVectorSearch(postgrest)

    pipeline = PipelineOrchestrator.create(
        geo_service=SupabaseGeoQuery(postgrest),
        vector_service=vector_service,
        metadata_store=SupabaseMetadataStore(postgrest),
        embedding_provider=embedding_provider,
        cache=cache,
        settings=settings,
    )
    pipeline.start()

    app.state.pipeline = pipeline
    app.state.pipeline_handler = PipelineHandler(pipeline=pipeline, embedding_provider=embedding_provider)
    app.state.embedding_provider = embedding_provider

    logger.info(
        "Pipeline initialized (embedding=%s/%s, vectors=%s, redis=%s)",
        settings.embedding_provider,
        embedding_provider.model_name,
        settings.vector_backend,
        settings.redis_url,
    )

    yield

    pipeline.dispose()
    await postgrest.close()
    close = getattr(embedding_provider, "close", None)
    if close is not None:
        await close()
    redis_client.close()

    del app.state.pipeline_handler
    del app.state.pipeline
    del app.state.embedding_provider
    logger.info("Pipeline shut down")


# Type aliases for cleaner dependency injection
HandlerDep = Annotated[PipelineHandler, Depends(get_handler)]
PipelineDep = Annotated[PipelineOrchestrator, Depends(get_pipeline)]
