"""
Shared helpers for AI Mind services.
"""

from __future__ import annotations

import math
import random
import string
from datetime import datetime
from functools import wraps
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

import mind.config as config
from mind.errors import NotFoundError, UpstreamUnavailable, ValidationIssue
from mind.models import utcnow
from mind.validators import (
    validate_required_text as _validate_required_text,
    validate_optional_text as _validate_optional_text,
    validate_limit as _validate_limit,
    validate_optional_id as _validate_optional_id,
    validate_choice as _validate_choice,
    validate_string_list as _validate_string_list,
    validate_unit_interval as _validate_unit_interval,
)

# =============================================================================
# Configuration
# =============================================================================

logger = config.logger

MAX_RESULT_LIMIT = config.MAX_RESULT_LIMIT
MAX_QUERY_LENGTH = config.MAX_QUERY_LENGTH
MAX_TEXT_LENGTH = config.MAX_TEXT_LENGTH
MAX_SHORT_TEXT_LENGTH = config.MAX_SHORT_TEXT_LENGTH
MAX_LIST_ITEMS = config.MAX_LIST_ITEMS

__all__ = [
    "logger",
    "service_tool",
    "generate_id",
    "round_half_up",
    "percent",
    "preview",
    "isoformat",
    "utcnow",
    "MAX_RESULT_LIMIT",
    "MAX_QUERY_LENGTH",
    "MAX_TEXT_LENGTH",
    "MAX_SHORT_TEXT_LENGTH",
    "MAX_LIST_ITEMS",
    "_validate_required_text",
    "_validate_optional_text",
    "_validate_limit",
    "_validate_optional_id",
    "_validate_choice",
    "_validate_string_list",
    "_validate_unit_interval",
]


# =============================================================================
# Helper Functions
# =============================================================================

def generate_id(prefix: str) -> str:
    """Build ids like ``thread-20260118093000-a1b2``."""
    stamp = utcnow().strftime("%Y%m%d%H%M%S")
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=4))
    return f"{prefix}-{stamp}-{suffix}"


def round_half_up(value: float, digits: int = 2) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def percent(ratio: float) -> int:
    return int(math.floor(ratio * 100 + 0.5))


def preview(text: str | None, length: int) -> str:
    return (text or "")[:length]


def isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _tool_error_payload(
    tool_name: str,
    error_type: str,
    message: str,
    field: str | None = None,
    data: dict | None = None,
) -> dict:
    payload = {
        "status": "error",
        "error_type": error_type,
        "tool": tool_name,
        "field": field,
        "message": message,
    }
    if data:
        payload["data"] = data
    return payload


def _log_tool_error(tool_name: str, error_type: str, field: str | None, detail: str, warn: bool = False) -> None:
    payload = {
        "tool": tool_name,
        "field": field,
        "error_type": error_type,
        "detail": detail,
    }
    if warn:
        logger.warning("tool_error", extra=payload)
    else:
        logger.info("tool_error", extra=payload)


def _tool_error_handler(fn: Callable[..., dict]) -> Callable[..., dict]:
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ValidationIssue as exc:
            _log_tool_error(fn.__name__, "invalid_argument", exc.field, str(exc))
            return _tool_error_payload(fn.__name__, "invalid_argument", str(exc), exc.field, exc.data)
        except NotFoundError as exc:
            _log_tool_error(fn.__name__, "not_found", exc.field, str(exc))
            return _tool_error_payload(fn.__name__, "not_found", str(exc), exc.field)
        except UpstreamUnavailable as exc:
            _log_tool_error(fn.__name__, "upstream_unavailable", None, str(exc), warn=True)
            return _tool_error_payload(fn.__name__, "upstream_unavailable", str(exc), data=exc.data)
        except SQLAlchemyError as exc:
            _log_tool_error(fn.__name__, "upstream_unavailable", None, exc.__class__.__name__, warn=True)
            return _tool_error_payload(fn.__name__, "upstream_unavailable", "memory store unavailable")
        except ValueError as exc:
            _log_tool_error(fn.__name__, "invalid_argument", None, str(exc), warn=True)
            return _tool_error_payload(fn.__name__, "invalid_argument", str(exc))
    return wrapper


def service_tool(fn: Callable[..., dict]) -> Callable[..., dict]:
    """Turn service exceptions into explicit error results for the caller."""
    return _tool_error_handler(fn)
