"""
News RAG Server Application Entry Point

This module defines the FastAPI application instance, wires the long-lived
components in the lifespan, registers all routers, configures global
exception handling, and provides a test-friendly application factory.

Startup order
-------------
1. Logging
2. Session storage (Redis when reachable, otherwise in memory)
3. Vector index (pgvector; optional, chat degrades without it)
4. Embedder, LLM client and chat service

Everything is kept on ``app.state`` and torn down in reverse on shutdown.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .api import chat_routes, health_routes, session_routes
from .config import settings
from .core.errors import not_found_handler, unhandled_exception_handler
from .core.logging_setup import configure_logging
from .db.vector_store import VectorIndex
from .embeddings.embedder import Embedder
from .llm.client import LLMClient
from .rag.chat_service import ChatService
from .sessions.cache import close_redis, connect_redis
from .sessions.store import create_session_store


logger = logging.getLogger("news_rag.app")


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(settings.log_level)
    logger.info("Starting news-rag-server (environment=%s)", settings.environment)

    redis_client = await connect_redis(settings.redis_url)
    session_store = create_session_store(redis_client)
    session_store.start()

    vector_index = VectorIndex()
    if not await vector_index.initialize():
        logger.warning("Vector index unavailable; answers will have no news context")

    embedder = Embedder()
    if not embedder.enabled:
        logger.warning("No embedding API key configured; retrieval is disabled")

    llm = LLMClient()
    if not llm.enabled:
        logger.warning("No LLM API key configured; serving mock responses")

    app.state.redis = redis_client
    app.state.session_store = session_store
    app.state.vector_index = vector_index
    app.state.embedder = embedder
    app.state.chat_service = ChatService(embedder, vector_index, llm)

    logger.info("Startup complete (sessions=%s)", session_store.backend)

    try:
        yield
    finally:
        logger.info("Shutting down news-rag-server")
        await session_store.close()
        await close_redis(redis_client)
        await vector_index.close()


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Tests build their own instance and replace components with
    ``app.dependency_overrides``; the lifespan only runs under a server.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="news-rag-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_exception_handler(404, not_found_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_routes.router)
    app.include_router(session_routes.router)
    app.include_router(chat_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn)
# ---------------------------------------------------------------------

app = create_app()
