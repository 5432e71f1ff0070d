"""
Health and dependency endpoints.
"""

from __future__ import annotations

import time

from fastapi import APIRouter, HTTPException
from sqlalchemy import text

import mind.config as config
from mind.db import DB, schema_status
from mind.errors import EmbeddingProviderError
from mind.mcp import tool_inventory_status
from mind.services import embeddings


router = APIRouter()


def _check_db_health() -> dict:
    if DB.engine is None:
        return {"ok": False, "error": "db_not_initialized"}

    try:
        with DB.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            ext_version = None
            pgvector_installed = True
            if config.DB_BACKEND == "postgres" and config.VECTOR_BACKEND_EFFECTIVE == "pgvector":
                ext_version = conn.execute(
                    text("SELECT extversion FROM pg_extension WHERE extname = 'vector'")
                ).scalar()
                pgvector_installed = bool(ext_version)
    except Exception as exc:
        return {"ok": False, "error": str(exc)}

    schema = schema_status(DB.engine)
    return {
        "ok": schema["schema_up_to_date"],
        "pgvector_installed": pgvector_installed,
        "pgvector_version": ext_version,
        **schema,
    }


async def _check_embedding_health(check_external: bool) -> dict:
    breaker_status = embeddings.embedding_circuit_breaker.status()
    embedding_status = {
        "status": "unknown",
        "provider": config.EMBEDDING_PROVIDER,
        "circuit_breaker": breaker_status,
        "checked": False,
    }

    if config.EMBEDDING_PROVIDER == "none":
        embedding_status["status"] = "disabled"
        return embedding_status

    if breaker_status.get("open"):
        embedding_status["status"] = "cooldown"
        return embedding_status

    if check_external and config.EMBEDDING_HEALTHCHECK_ENABLED:
        embedding_status["checked"] = True
        start = time.time()
        try:
            await embeddings.embed_text("healthcheck")
            embedding_status["status"] = "ok"
            embedding_status["latency_ms"] = int((time.time() - start) * 1000)
        except EmbeddingProviderError as exc:
            embedding_status["status"] = "error"
            embedding_status["error"] = str(exc)
        return embedding_status

    embedding_status["status"] = "skipped" if check_external else "ready"
    return embedding_status


@router.get("/health")
async def health(check_embeddings: bool = False):
    """Health check endpoint."""
    db_health = _check_db_health()
    embedding_status = await _check_embedding_health(check_external=check_embeddings)
    vector_required = config.DB_BACKEND == "postgres" and config.VECTOR_BACKEND_EFFECTIVE == "pgvector"
    if not db_health.get("ok") or (vector_required and not db_health.get("pgvector_installed")):
        raise HTTPException(
            status_code=503,
            detail={"database": db_health, "embedding_provider": embedding_status},
        )

    return {
        "status": "healthy",
        "service": config.SERVICE_NAME,
        "version": config.SERVICE_VERSION,
        "vector_backend": config.VECTOR_BACKEND_EFFECTIVE,
        "database": db_health,
        "embedding_provider": embedding_status,
    }


@router.get("/health/tools")
async def health_tools():
    """Tool inventory health check."""
    tool_inventory = await tool_inventory_status()
    if tool_inventory.get("tool_count", 0) == 0:
        raise HTTPException(status_code=503, detail={"tool_inventory": tool_inventory})

    return {
        "status": "healthy",
        "service": config.SERVICE_NAME,
        "tool_inventory": tool_inventory,
    }
