"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import mind.config as config


router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": config.SERVICE_NAME,
        "version": config.SERVICE_VERSION,
        "description": "Persistent memory, emotional processing and a subconscious for AI companions",
        "embedding_model": config.EMBEDDING_MODEL,
        "vector_backend": config.VECTOR_BACKEND_EFFECTIVE,
        "endpoints": {
            "health": "/health",
            "health_tools": "/health/tools",
            "process": "/process",
            "subconscious": "/subconscious",
            "mcp": "/mcp",
        },
    }
