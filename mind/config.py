"""
Shared configuration for AI Mind.
"""

from __future__ import annotations

import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("aimind")


def _get_bool(env_name: str, default: bool) -> bool:
    value = os.environ.get(env_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(env_name: str, default: int) -> int:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(env_name: str, default: float) -> float:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_list(env_name: str) -> list[str]:
    value = os.environ.get(env_name, "")
    return [item.strip() for item in value.split(",") if item.strip()]


def _derive_effective_backends(db_backend: str, vector_backend: str) -> tuple[str, str]:
    db_effective = db_backend if db_backend in {"postgres", "sqlite"} else "postgres"
    vector_effective = (
        vector_backend if vector_backend in {"pgvector", "scan", "none"} else "none"
    )
    if db_effective == "sqlite" and vector_effective == "pgvector":
        vector_effective = "scan"
    return db_effective, vector_effective


SERVICE_NAME = "AI Mind"
SERVICE_VERSION = "1.2.0"

# Database settings
DB_BACKEND = os.environ.get("DB_BACKEND", "postgres").strip().lower()
VECTOR_BACKEND = os.environ.get("VECTOR_BACKEND", "pgvector").strip().lower()
SQLITE_PATH = os.environ.get("SQLITE_PATH", "/data/aimind.db")
DATABASE_URL = os.environ.get("DATABASE_URL")
DB_BACKEND_EFFECTIVE, VECTOR_BACKEND_EFFECTIVE = _derive_effective_backends(
    DB_BACKEND,
    VECTOR_BACKEND,
)

# HTTP surface
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = _get_int("PORT", 8080)
TRUSTED_HOSTS = _get_list("TRUSTED_HOSTS")
CORS_ALLOWED_ORIGINS = _get_list("CORS_ALLOWED_ORIGINS")

# Database initialization controls
AUTO_CREATE_EXTENSIONS = _get_bool("AUTO_CREATE_EXTENSIONS", True)
AUTO_MIGRATE_ON_STARTUP = _get_bool("AUTO_MIGRATE_ON_STARTUP", True)

# Embedding settings
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
OPENAI_EMBEDDINGS_URL = os.environ.get(
    "OPENAI_EMBEDDINGS_URL", "https://api.openai.com/v1/embeddings"
)
EMBEDDING_MODEL = os.environ.get("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_DIM = _get_int("EMBEDDING_DIM", 1536)
EMBEDDING_PROVIDER = os.environ.get("EMBEDDING_PROVIDER", "openai").strip().lower()
EMBEDDING_TIMEOUT_SECONDS = _get_float("EMBEDDING_TIMEOUT_SECONDS", 30.0)
# Upstream calls are not retried unless an operator opts in.
EMBEDDING_RETRY_MAX = _get_int("EMBEDDING_RETRY_MAX", 0)
EMBEDDING_RETRY_BACKOFF_SECONDS = _get_float("EMBEDDING_RETRY_BACKOFF_SECONDS", 0.5)
EMBEDDING_RETRY_JITTER_SECONDS = _get_float("EMBEDDING_RETRY_JITTER_SECONDS", 0.25)
EMBEDDING_FAILURE_THRESHOLD = _get_int("EMBEDDING_FAILURE_THRESHOLD", 5)
EMBEDDING_COOLDOWN_SECONDS = _get_int("EMBEDDING_COOLDOWN_SECONDS", 60)
EMBEDDING_HEALTHCHECK_ENABLED = _get_bool("EMBEDDING_HEALTHCHECK_ENABLED", True)
EMBEDDING_BACKFILL_ENABLED = _get_bool("EMBEDDING_BACKFILL_ENABLED", True)
EMBEDDING_BACKFILL_INTERVAL_SECONDS = _get_int("EMBEDDING_BACKFILL_INTERVAL_SECONDS", 300)
EMBEDDING_BACKFILL_BATCH_LIMIT = _get_int("EMBEDDING_BACKFILL_BATCH_LIMIT", 50)

# Request/input limits
MAX_RESULT_LIMIT = _get_int("AIMIND_MAX_RESULT_LIMIT", 100)
MAX_QUERY_LENGTH = _get_int("AIMIND_MAX_QUERY_LENGTH", 4000)
MAX_TEXT_LENGTH = _get_int("AIMIND_MAX_TEXT_LENGTH", 8000)
MAX_SHORT_TEXT_LENGTH = _get_int("AIMIND_MAX_SHORT_TEXT_LENGTH", 255)
MAX_LIST_ITEMS = _get_int("AIMIND_MAX_LIST_ITEMS", 50)
MAX_EMBEDDING_TEXT_LENGTH = _get_int("AIMIND_MAX_EMBEDDING_TEXT_LENGTH", 8000)
MAX_CONSOLIDATE_DAYS = _get_int("AIMIND_MAX_CONSOLIDATE_DAYS", 365)
TOOL_INVENTORY_RETRY_SECONDS = _get_int("AIMIND_TOOL_INVENTORY_RETRY_SECONDS", 5)

# Subconscious (graph analysis + warmth scoring)
SUBCONSCIOUS_TICK_SECONDS = _get_int("SUBCONSCIOUS_TICK_SECONDS", 3600)
SUBCONSCIOUS_RUN_ON_STARTUP = _get_bool("SUBCONSCIOUS_RUN_ON_STARTUP", False)
WARMTH_WINDOW_HOURS = _get_int("WARMTH_WINDOW_HOURS", 48)
WARMTH_MENTION_WEIGHT = _get_float("WARMTH_MENTION_WEIGHT", 0.6)
WARMTH_CONNECTION_WEIGHT = _get_float("WARMTH_CONNECTION_WEIGHT", 0.4)
HOT_ENTITY_LIMIT = _get_int("HOT_ENTITY_LIMIT", 15)
CENTRAL_NODE_LIMIT = _get_int("CENTRAL_NODE_LIMIT", 10)
RELATION_PATTERN_LIMIT = _get_int("RELATION_PATTERN_LIMIT", 10)
CLUSTER_LIMIT = _get_int("CLUSTER_LIMIT", 5)
CLUSTER_MEMBER_LIMIT = _get_int("CLUSTER_MEMBER_LIMIT", 8)
CLUSTER_RELATION_TYPE_LIMIT = _get_int("CLUSTER_RELATION_TYPE_LIMIT", 5)
CONTEXT_CLUSTER_LIMIT = _get_int("CONTEXT_CLUSTER_LIMIT", 5)
CONTEXT_CLUSTER_MEMBER_LIMIT = _get_int("CONTEXT_CLUSTER_MEMBER_LIMIT", 4)
RECURRING_MENTION_THRESHOLD = _get_int("RECURRING_MENTION_THRESHOLD", 3)
MOOD_CONFIDENCE_THRESHOLD = _get_int("MOOD_CONFIDENCE_THRESHOLD", 5)

# Consolidation
DUPLICATE_SIMILARITY_THRESHOLD = _get_float("DUPLICATE_SIMILARITY_THRESHOLD", 0.5)
DUPLICATE_MIN_WORD_LENGTH = _get_int("DUPLICATE_MIN_WORD_LENGTH", 4)
CONSOLIDATE_DEFAULT_DAYS = _get_int("CONSOLIDATE_DEFAULT_DAYS", 7)
CONSOLIDATE_REPORT_LIMIT = _get_int("CONSOLIDATE_REPORT_LIMIT", 5)


def validate_and_prepare_config() -> None:
    """Validate configuration and apply derived settings at startup."""
    global DATABASE_URL, DB_BACKEND_EFFECTIVE, VECTOR_BACKEND_EFFECTIVE

    errors = []
    if DB_BACKEND not in {"postgres", "sqlite"}:
        errors.append("DB_BACKEND must be 'postgres' or 'sqlite'")

    if VECTOR_BACKEND not in {"pgvector", "scan", "none"}:
        errors.append("VECTOR_BACKEND must be 'pgvector', 'scan', or 'none'")

    if DB_BACKEND == "sqlite" and VECTOR_BACKEND == "pgvector":
        errors.append("VECTOR_BACKEND=pgvector requires DB_BACKEND=postgres")

    if EMBEDDING_PROVIDER not in {"openai", "none"}:
        errors.append("EMBEDDING_PROVIDER must be 'openai' or 'none'")

    if not DATABASE_URL:
        if DB_BACKEND == "sqlite":
            if not SQLITE_PATH:
                errors.append("SQLITE_PATH environment variable is required for sqlite")
            else:
                DATABASE_URL = f"sqlite:///{SQLITE_PATH}"
        else:
            errors.append("DATABASE_URL environment variable is required")
    else:
        url_lower = DATABASE_URL.lower()
        is_sqlite_url = url_lower.startswith("sqlite")
        if DB_BACKEND == "sqlite" and not is_sqlite_url:
            errors.append("DATABASE_URL must be a sqlite URL when DB_BACKEND=sqlite")
        if DB_BACKEND == "postgres" and is_sqlite_url:
            errors.append("DATABASE_URL must be a postgres URL when DB_BACKEND=postgres")

    DB_BACKEND_EFFECTIVE, VECTOR_BACKEND_EFFECTIVE = _derive_effective_backends(
        DB_BACKEND,
        VECTOR_BACKEND,
    )

    if VECTOR_BACKEND_EFFECTIVE != "none" and EMBEDDING_PROVIDER == "none":
        logger.warning(
            "Embedding provider disabled; searches will use the literal fallback."
        )

    if VECTOR_BACKEND_EFFECTIVE == "pgvector":
        from mind.models import PGVECTOR_AVAILABLE

        if not PGVECTOR_AVAILABLE:
            errors.append("pgvector package is required when VECTOR_BACKEND=pgvector")

    if WARMTH_MENTION_WEIGHT < 0 or WARMTH_CONNECTION_WEIGHT < 0:
        errors.append("warmth weights must be non-negative")
    elif WARMTH_MENTION_WEIGHT + WARMTH_CONNECTION_WEIGHT > 1.0 + 1e-9:
        errors.append("WARMTH_MENTION_WEIGHT + WARMTH_CONNECTION_WEIGHT must not exceed 1.0")

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))
