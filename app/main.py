"""
Standalone FastAPI app wiring for AI Mind.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

import mind.config as config
from mind.db import DB, init_db
from mind.mcp import mcp_stream_app, MCPRouteNormalizerASGI
from mind.services import embeddings
from mind.services.subconscious import run_subconscious_pass
from mind.services.vector_index import embedding_backfill_loop, run_embedding_backfill
from app.middleware import configure_middleware
from app.routes.health import router as health_router
from app.routes.root import router as root_router
from app.routes.subconscious import router as subconscious_router


subconscious_task = None
embedding_backfill_task = None


async def _run_subconscious_once() -> None:
    # A failed run leaves the previous snapshot in place.
    try:
        await asyncio.to_thread(run_subconscious_pass)
    except Exception as exc:
        config.logger.warning(f"Subconscious run error: {exc}")


async def _subconscious_loop() -> None:
    if config.SUBCONSCIOUS_TICK_SECONDS <= 0:
        return
    while True:
        await asyncio.sleep(config.SUBCONSCIOUS_TICK_SECONDS)
        await _run_subconscious_once()


async def _cancel(task) -> None:
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize on startup, cleanup on shutdown."""
    global subconscious_task, embedding_backfill_task
    init_db()
    embeddings.init_http_client()
    if config.EMBEDDING_BACKFILL_ENABLED:
        await asyncio.to_thread(run_embedding_backfill)
        if config.EMBEDDING_BACKFILL_INTERVAL_SECONDS > 0:
            embedding_backfill_task = asyncio.create_task(embedding_backfill_loop())
    if config.SUBCONSCIOUS_RUN_ON_STARTUP:
        await _run_subconscious_once()
    if config.SUBCONSCIOUS_TICK_SECONDS > 0:
        subconscious_task = asyncio.create_task(_subconscious_loop())
    try:
        async with mcp_stream_app.lifespan(mcp_stream_app):
            yield
    finally:
        await _cancel(subconscious_task)
        await _cancel(embedding_backfill_task)
        embeddings.cleanup_http_client()
        if DB.engine:
            DB.engine.dispose()


app = FastAPI(title=config.SERVICE_NAME, redirect_slashes=False, lifespan=lifespan)
configure_middleware(app)

app.include_router(health_router)
app.include_router(root_router)
app.include_router(subconscious_router)

app.mount("/mcp/", mcp_stream_app)


# =============================================================================
# ASGI Application (module-level for production deployment)
# =============================================================================

asgi_app = MCPRouteNormalizerASGI(app)


def main() -> None:
    config.logger.info(f"{config.SERVICE_NAME} starting on {config.HOST}:{config.PORT}")
    uvicorn.run(asgi_app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
