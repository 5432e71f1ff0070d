"""
Middleware configuration for the AI Mind app.
"""

from __future__ import annotations

from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

import mind.config as config


def configure_middleware(app) -> None:
    """Host allowlist (when configured) and CORS for browser MCP clients."""
    if config.TRUSTED_HOSTS:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=config.TRUSTED_HOSTS)

    if config.CORS_ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.CORS_ALLOWED_ORIGINS,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["*"],
            expose_headers=["mcp-session-id"],
        )
