"""
Embedding Generator client (OpenAI-compatible) with a circuit breaker.
"""

from __future__ import annotations

import asyncio
import random
import threading
import time
from typing import List, Optional

import httpx

import mind.config as config
from mind.errors import EmbeddingProviderError
from mind.validators import validate_embedding_text as _validate_embedding_text

logger = config.logger

RETRYABLE_STATUSES = {429, 500, 502, 503, 504}

http_client = None  # Reusable HTTP client for the embeddings API


def init_http_client():
    """Initialize HTTP client for embedding API calls."""
    global http_client
    headers = {"Content-Type": "application/json"}
    if config.OPENAI_API_KEY:
        headers["Authorization"] = f"Bearer {config.OPENAI_API_KEY}"
    http_client = httpx.Client(
        timeout=httpx.Timeout(config.EMBEDDING_TIMEOUT_SECONDS),
        limits=httpx.Limits(max_keepalive_connections=10, max_connections=100),
        headers=headers,
    )
    logger.info("HTTP client initialized")


def cleanup_http_client():
    """Clean up HTTP client on shutdown."""
    global http_client
    if http_client:
        http_client.close()
        http_client = None
        logger.info("HTTP client closed")


class EmbeddingCircuitBreaker:
    def __init__(self, failure_threshold: int, cooldown_seconds: int):
        self._failure_threshold = max(1, failure_threshold)
        self._cooldown_seconds = max(1, cooldown_seconds)
        self._lock = threading.Lock()
        self._consecutive_failures = 0
        self._cooldown_until = 0.0
        self._last_error: Optional[str] = None
        self._last_failure_ts: Optional[float] = None
        self._last_success_ts: Optional[float] = None

    def is_open(self) -> bool:
        with self._lock:
            return time.time() < self._cooldown_until

    def record_success(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            self._cooldown_until = 0.0
            self._last_success_ts = time.time()

    def record_failure(self, error: str) -> None:
        with self._lock:
            self._consecutive_failures += 1
            self._last_error = error
            self._last_failure_ts = time.time()
            if self._consecutive_failures >= self._failure_threshold:
                self._cooldown_until = time.time() + self._cooldown_seconds

    def status(self) -> dict:
        with self._lock:
            return {
                "open": time.time() < self._cooldown_until,
                "consecutive_failures": self._consecutive_failures,
                "cooldown_until_epoch": int(self._cooldown_until) if self._cooldown_until else None,
                "last_error": self._last_error,
                "last_failure_epoch": int(self._last_failure_ts) if self._last_failure_ts else None,
                "last_success_epoch": int(self._last_success_ts) if self._last_success_ts else None,
            }


embedding_circuit_breaker = EmbeddingCircuitBreaker(
    failure_threshold=config.EMBEDDING_FAILURE_THRESHOLD,
    cooldown_seconds=config.EMBEDDING_COOLDOWN_SECONDS,
)


def _raise_embedding_unavailable(detail: str) -> None:
    logger.warning("embedding_provider_unavailable", extra={"detail": detail})
    raise EmbeddingProviderError(f"embedding provider unavailable ({detail})")


def _sleep_backoff(attempt: int) -> None:
    base = config.EMBEDDING_RETRY_BACKOFF_SECONDS * (2 ** attempt)
    jitter = random.uniform(0, config.EMBEDDING_RETRY_JITTER_SECONDS)
    time.sleep(base + jitter)


async def _async_sleep_backoff(attempt: int) -> None:
    base = config.EMBEDDING_RETRY_BACKOFF_SECONDS * (2 ** attempt)
    jitter = random.uniform(0, config.EMBEDDING_RETRY_JITTER_SECONDS)
    await asyncio.sleep(base + jitter)


def _check_provider() -> None:
    if config.EMBEDDING_PROVIDER == "none":
        _raise_embedding_unavailable("embedding provider disabled")
    if embedding_circuit_breaker.is_open():
        _raise_embedding_unavailable("circuit breaker open")


def _parse_embedding(response: httpx.Response) -> List[float]:
    try:
        data = response.json()
        return data["data"][0]["embedding"]
    except (ValueError, KeyError, IndexError, TypeError):
        embedding_circuit_breaker.record_failure("malformed response")
        _raise_embedding_unavailable("malformed response")


def _request_payload(text: str) -> dict:
    return {"model": config.EMBEDDING_MODEL, "input": text}


async def embed_text(text: str) -> List[float]:
    """Generate embedding using configured provider."""
    _validate_embedding_text(text)
    _check_provider()
    timeout = httpx.Timeout(config.EMBEDDING_TIMEOUT_SECONDS)
    async with httpx.AsyncClient(timeout=timeout) as client:
        for attempt in range(config.EMBEDDING_RETRY_MAX + 1):
            try:
                response = await client.post(
                    config.OPENAI_EMBEDDINGS_URL,
                    headers={
                        "Authorization": f"Bearer {config.OPENAI_API_KEY}",
                        "Content-Type": "application/json",
                    },
                    json=_request_payload(text),
                )
            except httpx.RequestError as exc:
                if attempt >= config.EMBEDDING_RETRY_MAX:
                    embedding_circuit_breaker.record_failure(str(exc))
                    _raise_embedding_unavailable("request error")
                await _async_sleep_backoff(attempt)
                continue

            if response.status_code in RETRYABLE_STATUSES:
                if attempt >= config.EMBEDDING_RETRY_MAX:
                    embedding_circuit_breaker.record_failure(f"status {response.status_code}")
                    _raise_embedding_unavailable(f"status {response.status_code}")
                await _async_sleep_backoff(attempt)
                continue
            if response.status_code >= 400:
                embedding_circuit_breaker.record_failure(f"status {response.status_code}")
                _raise_embedding_unavailable(f"status {response.status_code}")

            vector = _parse_embedding(response)
            embedding_circuit_breaker.record_success()
            return vector


def embed_text_sync(text: str) -> List[float]:
    """Synchronous version of embed_text using pooled HTTP client."""
    _validate_embedding_text(text)
    _check_provider()
    if http_client is None:
        init_http_client()

    for attempt in range(config.EMBEDDING_RETRY_MAX + 1):
        try:
            response = http_client.post(
                config.OPENAI_EMBEDDINGS_URL,
                json=_request_payload(text),
            )
        except httpx.RequestError:
            if attempt >= config.EMBEDDING_RETRY_MAX:
                embedding_circuit_breaker.record_failure("request error")
                _raise_embedding_unavailable("request error")
            _sleep_backoff(attempt)
            continue

        if response.status_code in RETRYABLE_STATUSES:
            if attempt >= config.EMBEDDING_RETRY_MAX:
                embedding_circuit_breaker.record_failure(f"status {response.status_code}")
                _raise_embedding_unavailable(f"status {response.status_code}")
            _sleep_backoff(attempt)
            continue
        if response.status_code >= 400:
            embedding_circuit_breaker.record_failure(f"status {response.status_code}")
            _raise_embedding_unavailable(f"status {response.status_code}")

        vector = _parse_embedding(response)
        embedding_circuit_breaker.record_success()
        return vector
