"""
Subconscious processing: the periodic analytics run.

Reads recent observations and the full relation set, runs graph analysis
and warmth/mood scoring, then publishes one snapshot. Everything is
computed before the single write, so a failure anywhere leaves the
previous snapshot untouched.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import mind.config as config
from mind.db import DB
from mind.models import Entity, Observation, Relation
from mind.services.graph_analyzer import analyze_relations
from mind.services.shared import service_tool
from mind.services.snapshot import (
    SubconsciousSnapshot,
    load_snapshot_payload,
    new_run_id,
    publish_snapshot,
)
from mind.services.warmth import RecentMention, score_entities

logger = config.logger


def _recent_mentions(db, cutoff: datetime) -> list[RecentMention]:
    rows = (
        db.query(Entity.name, Entity.entity_type, Entity.context, Observation.emotion)
        .select_from(Observation)
        .join(Entity, Observation.entity_id == Entity.id)
        .filter(Observation.added_at > cutoff)
        .order_by(Observation.added_at.desc(), Observation.id.desc())
        .all()
    )
    return [RecentMention(*row) for row in rows]


def compute_snapshot(
    db,
    now: Optional[datetime] = None,
    run_id: Optional[int] = None,
) -> SubconsciousSnapshot:
    now = now or datetime.now(timezone.utc)
    cutoff = (now - timedelta(hours=config.WARMTH_WINDOW_HOURS)).replace(tzinfo=None)

    mentions = _recent_mentions(db, cutoff)
    relations = db.query(Relation).order_by(Relation.id.asc()).all()

    analysis = analyze_relations(relations, cluster_limit=config.CLUSTER_LIMIT)
    connections = {name: entry.total for name, entry in analysis.connectivity.items()}
    scores = score_entities(mentions, connections)
    return SubconsciousSnapshot.build(
        analysis,
        scores,
        processed_at=now,
        run_id=run_id if run_id is not None else new_run_id(),
    )


def run_subconscious_pass(now: Optional[datetime] = None) -> dict:
    """Compute and publish a fresh snapshot. Raises on store failure."""
    if DB.SessionLocal is None:
        return {"status": "skipped", "reason": "db_not_initialized"}

    run_id = new_run_id()
    db = DB.SessionLocal()
    try:
        snapshot = compute_snapshot(db, now=now, run_id=run_id)
        published = publish_snapshot(db, snapshot)
    finally:
        db.close()

    summary = {
        "status": "published" if published else "stale_run_rejected",
        "run_id": run_id,
        "processed_at": snapshot.processed_at.isoformat(),
        "hot_entities": len(snapshot.hot_entities),
        "recurring_patterns": len(snapshot.recurring_patterns),
        "central_nodes": len(snapshot.central_nodes),
        "relation_clusters": len(snapshot.relation_clusters),
        "mood": snapshot.mood.dominant,
        "mood_confidence": snapshot.mood.confidence,
    }
    logger.info("subconscious_run_complete", extra=summary)
    return summary


@service_tool
def mind_process() -> dict:
    """
    Manually trigger the subconscious run.

    Returns:
        Run summary with counts and whether the snapshot was published
    """
    return run_subconscious_pass()


@service_tool
def mind_subconscious() -> dict:
    """Return the latest snapshot payload, if one has been published."""
    db = DB.SessionLocal()
    try:
        payload = load_snapshot_payload(db)
    finally:
        db.close()
    if payload is None:
        return {"status": "empty", "message": "No subconscious snapshot has been published yet"}
    return {"status": "ok", "snapshot": payload}
