"""
Mind health report: record counts and a 0-100 score per component.

    database     = min(100, round(entities/100*50 + observations/500*50))
    threads      = 100 / 60 / 30 by stale (7d+) active count <3 / <6 / else; 50 if none active
    journals     = 100 if >=3 this week, 70 if >=1, 40 if any at all, else 0
    identity     = min(100, round(identity/50*100))
    activity     = min(100, round(observations_this_week/20*100))
    subconscious = 100 (<1h) / 70 (<2h) / 40 (<6h) / 10 (older) / 0 (never ran)
    overall      = round(mean of the six)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func

from mind.db import DB
from mind.models import (
    ContextEntry,
    Entity,
    IdentityEntry,
    Journal,
    Note,
    Observation,
    Relation,
    RelationalState,
    Thread,
    ThreadStatus,
)
from mind.services.shared import round_half_up, service_tool
from mind.services.snapshot import SubconsciousSnapshot, load_snapshot

HEALTH_WINDOW_DAYS = 7


def _round(value: float) -> int:
    return int(round_half_up(value, 0))


def database_score(entities: int, observations: int) -> int:
    return min(100, _round(entities / 100 * 50 + observations / 500 * 50))


def thread_score(active: int, stale: int) -> int:
    if active <= 0:
        return 50
    if stale < 3:
        return 100
    if stale < 6:
        return 60
    return 30


def journal_score(journals_total: int, journals_recent: int) -> int:
    if journals_recent >= 3:
        return 100
    if journals_recent >= 1:
        return 70
    if journals_total > 0:
        return 40
    return 0


def identity_score(identity_count: int) -> int:
    return min(100, _round(identity_count / 50 * 100))


def activity_score(recent_observations: int) -> int:
    return min(100, _round(recent_observations / 20 * 100))


def subconscious_freshness(
    snapshot: Optional[SubconsciousSnapshot],
    now: Optional[datetime] = None,
) -> tuple[int, str, Optional[float]]:
    if snapshot is None:
        return 0, "never run", None
    age = snapshot.age_hours(now)
    if age < 1:
        return 100, "fresh", age
    if age < 2:
        return 70, "recent", age
    if age < 6:
        return 40, "stale", age
    return 10, "very stale", age


def _count(db, model, *criteria) -> int:
    query = db.query(func.count()).select_from(model)
    if criteria:
        query = query.filter(*criteria)
    return query.scalar() or 0


@service_tool
def mind_health() -> dict:
    """
    Health check across memory, threads, journals, identity and the subconscious.

    Returns:
        Counts, per-component scores and the overall score
    """
    now = datetime.now(timezone.utc)
    week_ago = (now - timedelta(days=HEALTH_WINDOW_DAYS)).replace(tzinfo=None)
    active_status = ThreadStatus.active.value

    db = DB.SessionLocal()
    try:
        counts = {
            "entities": _count(db, Entity),
            "observations": _count(db, Observation),
            "relations": _count(db, Relation),
            "active_threads": _count(db, Thread, Thread.status == active_status),
            "stale_threads": _count(
                db, Thread, Thread.status == active_status, Thread.updated_at < week_ago
            ),
            "resolved_threads_7d": _count(
                db,
                Thread,
                Thread.status == ThreadStatus.resolved.value,
                Thread.resolved_at > week_ago,
            ),
            "journals": _count(db, Journal),
            "journals_7d": _count(db, Journal, Journal.created_at > week_ago),
            "identity": _count(db, IdentityEntry),
            "notes": _count(db, Note),
            "context_entries": _count(db, ContextEntry),
            "relational_states": _count(db, RelationalState),
            "observations_7d": _count(db, Observation, Observation.added_at > week_ago),
        }
        by_context = dict(
            db.query(Entity.context, func.count(Entity.id))
            .group_by(Entity.context)
            .order_by(Entity.context.asc())
            .all()
        )
        snapshot = load_snapshot(db)
    finally:
        db.close()

    sub_score, sub_status, sub_age = subconscious_freshness(snapshot, now)
    scores = {
        "database": database_score(counts["entities"], counts["observations"]),
        "threads": thread_score(counts["active_threads"], counts["stale_threads"]),
        "journals": journal_score(counts["journals"], counts["journals_7d"]),
        "identity": identity_score(counts["identity"]),
        "activity": activity_score(counts["observations_7d"]),
        "subconscious": sub_score,
    }
    overall = _round(sum(scores.values()) / len(scores))

    return {
        "status": "ok",
        "date": now.date().isoformat(),
        "overall": overall,
        "scores": scores,
        "counts": counts,
        "entities_by_context": by_context,
        "subconscious": {
            "status": sub_status,
            "age_hours": round_half_up(sub_age, 1) if sub_age is not None else None,
            "mood": snapshot.mood.dominant if snapshot else None,
            "mood_confidence": snapshot.mood.confidence if snapshot else None,
            "hot_entities": len(snapshot.hot_entities) if snapshot else 0,
        },
    }
