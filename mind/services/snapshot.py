"""
Subconscious snapshot: typed representation, storage schema and publisher.

Exactly one live snapshot exists. It lives in the ``subconscious`` row keyed
by a constant id and is replaced with a single upsert statement, so readers
see either the old or the new snapshot. Every read goes back to the
database; nothing is cached in process.

Writes carry a monotonic ``run_id`` (the run's start time in microseconds).
A run that started earlier than the stored one is rejected, so a slow,
stale run cannot regress a newer snapshot.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import or_

import mind.config as config
from mind.models import SubconsciousState, utcnow
from mind.services.graph_analyzer import (
    CentralNode,
    GraphAnalysis,
    GraphSummary,
    RelationCluster,
    RelationPattern,
)
from mind.services.warmth import (
    ContextCluster,
    HotEntity,
    Mood,
    RecurringPattern,
    WarmthScores,
)

logger = config.logger

SNAPSHOT_SCHEMA_VERSION = 1
SNAPSHOT_ROW_ID = 1
SNAPSHOT_STATE_TYPE = "daemon"


def new_run_id() -> int:
    return time.time_ns() // 1000


def _known(cls, raw: Any, renames: Optional[dict] = None) -> dict:
    """Keep only the keys ``cls`` declares so newer writers don't break us."""
    if not isinstance(raw, dict):
        raise ValueError(f"expected object for {cls.__name__}")
    renames = renames or {}
    names = {f.name for f in fields(cls)}
    values = {}
    for key, value in raw.items():
        key = renames.get(key, key)
        if key in names:
            values[key] = value
    return values


def _list_of(cls, raw: Any, renames: Optional[dict] = None) -> list:
    return [cls(**_known(cls, item, renames)) for item in (raw or [])]


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class SubconsciousSnapshot:
    processed_at: datetime
    hot_entities: list[HotEntity] = field(default_factory=list)
    recurring_patterns: list[RecurringPattern] = field(default_factory=list)
    mood: Mood = field(default_factory=Mood)
    context_clusters: list[ContextCluster] = field(default_factory=list)
    central_nodes: list[CentralNode] = field(default_factory=list)
    relation_patterns: list[RelationPattern] = field(default_factory=list)
    relation_clusters: list[RelationCluster] = field(default_factory=list)
    graph_stats: GraphSummary = field(default_factory=GraphSummary)
    run_id: int = 0
    schema_version: int = SNAPSHOT_SCHEMA_VERSION

    @classmethod
    def build(
        cls,
        analysis: GraphAnalysis,
        scores: WarmthScores,
        processed_at: datetime,
        run_id: int,
    ) -> "SubconsciousSnapshot":
        return cls(
            processed_at=processed_at,
            hot_entities=scores.hot_entities,
            recurring_patterns=scores.recurring_patterns,
            mood=scores.mood,
            context_clusters=scores.context_clusters,
            central_nodes=analysis.central_nodes,
            relation_patterns=analysis.relation_patterns,
            relation_clusters=analysis.clusters,
            graph_stats=analysis.summary,
            run_id=run_id,
        )

    def age_hours(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return max(0.0, (now - self.processed_at).total_seconds() / 3600)

    def to_payload(self) -> dict:
        """Storage form; field names match the long-standing blob layout."""
        return {
            "schema_version": self.schema_version,
            "run_id": self.run_id,
            "processed_at": self.processed_at.isoformat(),
            "hot_entities": [
                {
                    "name": item.name,
                    "warmth": item.warmth,
                    "mentions": item.mentions,
                    "connections": item.connections,
                    "type": item.entity_type,
                    "contexts": list(item.contexts),
                }
                for item in self.hot_entities
            ],
            "recurring_patterns": [asdict(item) for item in self.recurring_patterns],
            "mood": {
                "dominant": self.mood.dominant,
                "confidence": self.mood.confidence,
                "tagged_mentions": self.mood.tagged_mentions,
            },
            "context_clusters": [asdict(item) for item in self.context_clusters],
            "central_nodes": [asdict(item) for item in self.central_nodes],
            "relation_patterns": [
                {"type": item.relation_type, "count": item.count}
                for item in self.relation_patterns
            ],
            "relation_clusters": [asdict(item) for item in self.relation_clusters],
            "graph_stats": asdict(self.graph_stats),
        }

    @classmethod
    def from_payload(cls, payload: Any) -> "SubconsciousSnapshot":
        if isinstance(payload, str):
            payload = json.loads(payload)
        if not isinstance(payload, dict):
            raise ValueError("snapshot payload must be an object")
        if "processed_at" not in payload:
            raise ValueError("snapshot payload missing processed_at")
        return cls(
            processed_at=_parse_timestamp(payload["processed_at"]),
            hot_entities=_list_of(HotEntity, payload.get("hot_entities"), {"type": "entity_type"}),
            recurring_patterns=_list_of(RecurringPattern, payload.get("recurring_patterns")),
            mood=Mood(**_known(Mood, payload.get("mood") or {})),
            context_clusters=_list_of(ContextCluster, payload.get("context_clusters")),
            central_nodes=_list_of(CentralNode, payload.get("central_nodes"), {"relationTypes": "relation_types"}),
            relation_patterns=_list_of(RelationPattern, payload.get("relation_patterns"), {"type": "relation_type"}),
            relation_clusters=_list_of(RelationCluster, payload.get("relation_clusters"), {"bridgeRelations": "bridge_relations"}),
            graph_stats=GraphSummary(**_known(GraphSummary, payload.get("graph_stats") or {})),
            run_id=int(payload.get("run_id") or 0),
            schema_version=int(payload.get("schema_version") or SNAPSHOT_SCHEMA_VERSION),
        )


def _dialect_insert(db):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Unsupported database dialect for snapshot upsert: {dialect}")
    return insert


def publish_snapshot(db, snapshot: SubconsciousSnapshot) -> bool:
    """
    Atomically replace the live snapshot.

    Returns False when a newer run already published (stale write rejected).
    """
    insert = _dialect_insert(db)
    table = SubconsciousState.__table__
    stmt = insert(table).values(
        id=SNAPSHOT_ROW_ID,
        state_type=SNAPSHOT_STATE_TYPE,
        data=snapshot.to_payload(),
        run_id=snapshot.run_id,
        schema_version=snapshot.schema_version,
        updated_at=utcnow(),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.id],
        set_={
            "state_type": stmt.excluded.state_type,
            "data": stmt.excluded.data,
            "run_id": stmt.excluded.run_id,
            "schema_version": stmt.excluded.schema_version,
            "updated_at": stmt.excluded.updated_at,
        },
        where=or_(table.c.run_id.is_(None), table.c.run_id <= stmt.excluded.run_id),
    )
    try:
        result = db.execute(stmt)
        db.commit()
    except Exception:
        db.rollback()
        raise
    applied = result.rowcount != 0
    if not applied:
        logger.warning("snapshot_write_rejected", extra={"run_id": snapshot.run_id})
    return applied


def load_snapshot(db) -> Optional[SubconsciousSnapshot]:
    """Read the live snapshot; an unreadable blob is treated as absent."""
    row = (
        db.query(SubconsciousState)
        .filter(SubconsciousState.id == SNAPSHOT_ROW_ID)
        .first()
    )
    if row is None or row.data is None:
        return None
    try:
        return SubconsciousSnapshot.from_payload(row.data)
    except (TypeError, ValueError, KeyError) as exc:
        logger.warning("snapshot_unreadable", extra={"detail": str(exc)})
        return None


def load_snapshot_payload(db) -> Optional[dict]:
    snapshot = load_snapshot(db)
    return snapshot.to_payload() if snapshot else None
