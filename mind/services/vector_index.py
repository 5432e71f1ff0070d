"""
Vector Index adapter plus vectorization and backfill of observations/journals.

Backends:
- pgvector: cosine distance in Postgres (``<=>``)
- scan: JSON vectors ranked in process with numpy
- none: no matches, every search takes the literal fallback
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError

import mind.config as config
from mind.db import DB
from mind.errors import UpstreamUnavailable, VectorIndexError
from mind.models import Entity, Journal, Observation, VectorRecord
from mind.services import embeddings

logger = config.logger


@dataclass
class VectorMatch:
    id: str
    score: float
    metadata: dict = field(default_factory=dict)


def _clamp_score(value: float) -> float:
    if value != value:  # NaN
        return 0.0
    return max(0.0, min(1.0, float(value)))


class VectorIndex:
    """Base adapter; stores vectors in the ``vectors`` table."""

    backend = "base"

    def __init__(self, db):
        self.db = db

    def upsert(self, vector_id: str, vector: Sequence[float], metadata: dict) -> None:
        record = VectorRecord(
            id=vector_id,
            source_type=metadata.get("source", "unknown"),
            source_id=int(metadata.get("source_id") or 0),
            model_version=config.EMBEDDING_MODEL,
            embedding=[float(value) for value in vector],
            metadata_=dict(metadata),
        )
        try:
            self.db.merge(record)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise VectorIndexError("vector index upsert failed") from exc

    def delete(self, vector_ids: Sequence[str]) -> int:
        if not vector_ids:
            return 0
        try:
            deleted = (
                self.db.query(VectorRecord)
                .filter(VectorRecord.id.in_(list(vector_ids)))
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise VectorIndexError("vector index delete failed") from exc
        return deleted

    def query(
        self,
        vector: Sequence[float],
        top_k: int,
        return_metadata: bool = True,
    ) -> list[VectorMatch]:
        raise NotImplementedError


class PgVectorIndex(VectorIndex):
    backend = "pgvector"

    def query(self, vector, top_k, return_metadata=True):
        distance = VectorRecord.embedding.cosine_distance(list(vector))
        try:
            rows = (
                self.db.query(VectorRecord, distance.label("distance"))
                .filter(VectorRecord.model_version == config.EMBEDDING_MODEL)
                .order_by(distance)
                .limit(top_k)
                .all()
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise VectorIndexError("vector index query failed") from exc
        return [
            VectorMatch(
                id=record.id,
                score=_clamp_score(1.0 - float(dist)),
                metadata=dict(record.metadata_ or {}) if return_metadata else {},
            )
            for record, dist in rows
        ]


class ScanVectorIndex(VectorIndex):
    backend = "scan"

    def query(self, vector, top_k, return_metadata=True):
        try:
            records = (
                self.db.query(VectorRecord)
                .filter(VectorRecord.model_version == config.EMBEDDING_MODEL)
                .order_by(VectorRecord.id.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise VectorIndexError("vector index query failed") from exc

        probe = np.asarray(vector, dtype=float)
        candidates = [r for r in records if r.embedding and len(r.embedding) == probe.shape[0]]
        if not candidates or top_k <= 0:
            return []

        matrix = np.asarray([r.embedding for r in candidates], dtype=float)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(probe)
        dots = matrix @ probe
        scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [
            VectorMatch(
                id=candidates[i].id,
                score=_clamp_score(scores[i]),
                metadata=dict(candidates[i].metadata_ or {}) if return_metadata else {},
            )
            for i in order
        ]


class NullVectorIndex(VectorIndex):
    backend = "none"

    def upsert(self, vector_id, vector, metadata):
        return None

    def query(self, vector, top_k, return_metadata=True):
        return []


def vector_search_enabled() -> bool:
    return config.VECTOR_BACKEND_EFFECTIVE in {"pgvector", "scan"}


def get_vector_index(db) -> VectorIndex:
    backend = config.VECTOR_BACKEND_EFFECTIVE
    if backend == "pgvector":
        return PgVectorIndex(db)
    if backend == "scan":
        return ScanVectorIndex(db)
    return NullVectorIndex(db)


# =============================================================================
# Vectorization of memory rows
# =============================================================================

def observation_vector_id(entity_id: int, observation_id: int) -> str:
    return f"obs-{entity_id}-{observation_id}"


def journal_vector_id(journal_id: int) -> str:
    return f"journal-{journal_id}"


def _embedding_text(text: str) -> str:
    return text[: config.MAX_EMBEDDING_TEXT_LENGTH]


def vectorize_observation(db, observation: Observation, entity: Entity) -> bool:
    """Embed and upsert one observation. Returns False when it was skipped."""
    if not vector_search_enabled():
        return False
    try:
        vector = embeddings.embed_text_sync(_embedding_text(f"{entity.name}: {observation.content}"))
        get_vector_index(db).upsert(
            observation_vector_id(entity.id, observation.id),
            vector,
            {
                "source": "observation",
                "source_id": observation.id,
                "entity": entity.name,
                "content": observation.content,
                "context": entity.context,
                "weight": observation.weight,
            },
        )
    except UpstreamUnavailable:
        logger.warning("Embedding unavailable; skipping vector upsert")
        return False
    return True


def vectorize_journal(db, journal: Journal) -> bool:
    if not vector_search_enabled():
        return False
    try:
        vector = embeddings.embed_text_sync(_embedding_text(journal.content))
        get_vector_index(db).upsert(
            journal_vector_id(journal.id),
            vector,
            {
                "source": "journal",
                "source_id": journal.id,
                "title": journal.entry_date,
                "content": journal.content,
                "emotion": journal.emotion,
            },
        )
    except UpstreamUnavailable:
        logger.warning("Embedding unavailable; skipping vector upsert")
        return False
    return True


# =============================================================================
# Backfill (recovers a cold index)
# =============================================================================

def _missing_vectors(db, model, source_type: str, limit: int):
    return (
        db.query(model)
        .outerjoin(
            VectorRecord,
            and_(
                VectorRecord.source_type == source_type,
                VectorRecord.source_id == model.id,
            ),
        )
        .filter(VectorRecord.id.is_(None))
        .order_by(model.id.asc())
        .limit(limit)
        .all()
    )


def run_embedding_backfill(batch_limit: Optional[int] = None) -> dict:
    if DB.SessionLocal is None:
        return {"status": "skipped", "reason": "db_not_initialized"}
    if not vector_search_enabled():
        return {"status": "skipped", "reason": "vector_disabled"}
    if embeddings.embedding_circuit_breaker.is_open():
        return {"status": "skipped", "reason": "circuit_open"}
    limit = config.EMBEDDING_BACKFILL_BATCH_LIMIT if batch_limit is None else batch_limit
    if limit <= 0:
        return {"status": "skipped", "reason": "batch_limit_disabled"}

    db = DB.SessionLocal()
    processed = 0
    backfilled = 0
    skipped = 0
    try:
        for observation in _missing_vectors(db, Observation, "observation", limit):
            processed += 1
            if vectorize_observation(db, observation, observation.entity):
                backfilled += 1
            else:
                skipped += 1
                if embeddings.embedding_circuit_breaker.is_open():
                    break
        remaining = limit - processed
        if remaining > 0 and not embeddings.embedding_circuit_breaker.is_open():
            for journal in _missing_vectors(db, Journal, "journal", remaining):
                processed += 1
                if vectorize_journal(db, journal):
                    backfilled += 1
                else:
                    skipped += 1
                    if embeddings.embedding_circuit_breaker.is_open():
                        break
        return {
            "status": "ok",
            "processed": processed,
            "backfilled": backfilled,
            "skipped_count": skipped,
        }
    finally:
        db.close()


async def embedding_backfill_loop() -> None:
    if config.EMBEDDING_BACKFILL_INTERVAL_SECONDS <= 0:
        return
    while True:
        await asyncio.sleep(config.EMBEDDING_BACKFILL_INTERVAL_SECONDS)
        try:
            stats = await asyncio.to_thread(run_embedding_backfill)
            if stats.get("status") == "ok" and stats.get("backfilled", 0) > 0:
                logger.info("embedding_backfill_complete", extra=stats)
        except Exception as exc:
            logger.warning(f"Embedding backfill error: {exc}")
