"""
Self model: identity anchors, the context layer and relational state,
plus the orient/ground views that open a session.
"""

from __future__ import annotations

from typing import Optional, List

from mind.db import DB
from mind.errors import NotFoundError, ValidationIssue
from mind.models import (
    ContextEntry,
    IdentityEntry,
    Journal,
    RelationalState,
    Thread,
    ThreadStatus,
    utcnow,
)
from mind.services.shared import (
    MAX_LIST_ITEMS,
    MAX_SHORT_TEXT_LENGTH,
    MAX_TEXT_LENGTH,
    _validate_choice,
    _validate_optional_text,
    _validate_required_text,
    _validate_string_list,
    _validate_unit_interval,
    generate_id,
    isoformat,
    preview,
    round_half_up,
    service_tool,
)
from mind.services.snapshot import load_snapshot
from mind.services.threads import priority_order, serialize_thread

IDENTITY_READ_LIMIT = 50
RELATIONAL_HISTORY_LIMIT = 10
ORIENT_IDENTITY_LIMIT = 10
ORIENT_CONTEXT_LIMIT = 5
ORIENT_HOT_LIMIT = 5
ORIENT_CENTRAL_LIMIT = 3
GROUND_JOURNAL_LIMIT = 3
GROUND_PREVIEW_LENGTH = 200


def _serialize_identity(entry: IdentityEntry) -> dict:
    return {
        "id": entry.id,
        "section": entry.section,
        "content": entry.content,
        "weight": entry.weight,
        "connections": entry.connections or "",
    }


def _serialize_context(entry: ContextEntry) -> dict:
    return {
        "id": entry.id,
        "scope": entry.scope,
        "content": entry.content,
        "links": entry.links or [],
        "updated_at": isoformat(entry.updated_at),
    }


def _serialize_relational(state: RelationalState) -> dict:
    return {
        "person": state.person,
        "feeling": state.feeling,
        "intensity": state.intensity,
        "timestamp": isoformat(state.timestamp),
    }


# =============================================================================
# Relational state
# =============================================================================

@service_tool
def mind_feel_toward(
    person: str,
    feeling: Optional[str] = None,
    intensity: Optional[str] = None,
) -> dict:
    """
    Record a feeling toward someone, or read recent feelings when none is given.

    Args:
        person: Who the feeling is about
        feeling: What is felt; omit to read
        intensity: How strongly, default "present"

    Returns:
        The recorded state, or the last 10 states for the person
    """
    _validate_required_text(person, "person", MAX_SHORT_TEXT_LENGTH)
    _validate_optional_text(feeling, "feeling", MAX_SHORT_TEXT_LENGTH)
    _validate_optional_text(intensity, "intensity", MAX_SHORT_TEXT_LENGTH)

    db = DB.SessionLocal()
    try:
        if feeling:
            state = RelationalState(
                person=person,
                feeling=feeling,
                intensity=intensity or "present",
            )
            db.add(state)
            db.commit()
            db.refresh(state)
            return {"status": "recorded", "state": _serialize_relational(state)}

        states = (
            db.query(RelationalState)
            .filter(RelationalState.person == person)
            .order_by(RelationalState.timestamp.desc(), RelationalState.id.desc())
            .limit(RELATIONAL_HISTORY_LIMIT)
            .all()
        )
        return {
            "status": "ok",
            "person": person,
            "count": len(states),
            "states": [_serialize_relational(s) for s in states],
        }
    finally:
        db.close()


# =============================================================================
# Identity
# =============================================================================

@service_tool
def mind_identity(
    action: str = "read",
    section: Optional[str] = None,
    content: Optional[str] = None,
    weight: float = 0.7,
    connections: str = "",
) -> dict:
    """
    Read or write identity anchors.

    A read with a section matches every section starting with it.
    """
    _validate_choice(action, "action", ("read", "write"))
    _validate_optional_text(section, "section", MAX_SHORT_TEXT_LENGTH)

    db = DB.SessionLocal()
    try:
        if action == "write":
            _validate_required_text(section, "section", MAX_SHORT_TEXT_LENGTH)
            _validate_required_text(content, "content", MAX_TEXT_LENGTH)
            _validate_unit_interval(weight, "weight")
            _validate_optional_text(connections, "connections", MAX_TEXT_LENGTH)
            entry = IdentityEntry(
                section=section,
                content=content,
                weight=float(weight),
                connections=connections or "",
            )
            db.add(entry)
            db.commit()
            db.refresh(entry)
            return {"status": "stored", "entry": _serialize_identity(entry)}

        query = db.query(IdentityEntry)
        if section:
            query = query.filter(IdentityEntry.section.like(f"{section}%"))
        query = query.order_by(IdentityEntry.weight.desc(), IdentityEntry.id.asc())
        if not section:
            query = query.limit(IDENTITY_READ_LIMIT)
        entries = query.all()
        return {
            "status": "ok",
            "count": len(entries),
            "entries": [_serialize_identity(e) for e in entries],
        }
    finally:
        db.close()


# =============================================================================
# Context layer
# =============================================================================

@service_tool
def mind_context(
    action: str = "read",
    scope: Optional[str] = None,
    content: Optional[str] = None,
    links: Optional[List[str]] = None,
    id: Optional[str] = None,
) -> dict:
    """
    Manage the context layer: read, set, update or clear entries.

    Args:
        action: read / set / update / clear
        scope: Scope filter (read), scope for new entries (set), or scope to clear
        content: Entry text (set, update)
        links: Related references (set)
        id: Entry id (update, clear)
    """
    _validate_choice(action, "action", ("read", "set", "update", "clear"))
    _validate_optional_text(scope, "scope", MAX_SHORT_TEXT_LENGTH)
    _validate_optional_text(id, "id", MAX_SHORT_TEXT_LENGTH)

    db = DB.SessionLocal()
    try:
        if action == "read":
            query = db.query(ContextEntry)
            if scope:
                query = query.filter(ContextEntry.scope == scope)
            entries = query.order_by(ContextEntry.updated_at.desc()).all()
            return {
                "status": "ok",
                "count": len(entries),
                "entries": [_serialize_context(e) for e in entries],
            }

        if action == "set":
            _validate_required_text(scope, "scope", MAX_SHORT_TEXT_LENGTH)
            _validate_required_text(content, "content", MAX_TEXT_LENGTH)
            _validate_string_list(links, "links", MAX_LIST_ITEMS, MAX_SHORT_TEXT_LENGTH)
            entry = ContextEntry(
                id=generate_id("ctx"),
                scope=scope,
                content=content,
                links=list(links or []),
            )
            db.add(entry)
            db.commit()
            db.refresh(entry)
            return {"status": "created", "entry": _serialize_context(entry)}

        if action == "update":
            _validate_required_text(id, "id", MAX_SHORT_TEXT_LENGTH)
            _validate_required_text(content, "content", MAX_TEXT_LENGTH)
            entry = db.query(ContextEntry).filter(ContextEntry.id == id).first()
            if entry is None:
                raise NotFoundError(f"Context entry '{id}' not found", resource="context_entry", field="id")
            entry.content = content
            entry.updated_at = utcnow()
            db.commit()
            db.refresh(entry)
            return {"status": "updated", "entry": _serialize_context(entry)}

        # clear
        if id:
            deleted = db.query(ContextEntry).filter(ContextEntry.id == id).delete(synchronize_session=False)
            db.commit()
            return {"status": "cleared", "id": id, "deleted": deleted}
        if scope:
            deleted = db.query(ContextEntry).filter(ContextEntry.scope == scope).delete(synchronize_session=False)
            db.commit()
            return {"status": "cleared", "scope": scope, "deleted": deleted}
        raise ValidationIssue("Specify id or scope to clear", field="id", error_type="required")
    finally:
        db.close()


# =============================================================================
# Orient / ground
# =============================================================================

def latest_state_per_person(states: list[RelationalState]) -> list[dict]:
    """First (newest) state seen for each person, in input order."""
    seen: dict[str, dict] = {}
    for state in states:
        if state.person not in seen:
            seen[state.person] = _serialize_relational(state)
    return list(seen.values())


@service_tool
def mind_orient() -> dict:
    """
    Orientation at the start of a session: who I am, what is current,
    how I feel toward people, and what the subconscious last noticed.
    """
    db = DB.SessionLocal()
    try:
        identity = (
            db.query(IdentityEntry)
            .order_by(IdentityEntry.weight.desc(), IdentityEntry.id.asc())
            .limit(ORIENT_IDENTITY_LIMIT)
            .all()
        )
        context = (
            db.query(ContextEntry)
            .order_by(ContextEntry.updated_at.desc())
            .limit(ORIENT_CONTEXT_LIMIT)
            .all()
        )
        states = (
            db.query(RelationalState)
            .order_by(RelationalState.timestamp.desc(), RelationalState.id.desc())
            .limit(RELATIONAL_HISTORY_LIMIT)
            .all()
        )
        snapshot = load_snapshot(db)

        response = {
            "status": "ok",
            "identity": [_serialize_identity(e) for e in identity],
            "context": [_serialize_context(e) for e in context],
            "relational_state": latest_state_per_person(states),
            "subconscious": None,
        }
        if snapshot:
            response["subconscious"] = {
                "mood": {
                    "dominant": snapshot.mood.dominant,
                    "confidence": snapshot.mood.confidence,
                },
                "hot_entities": [
                    {"name": e.name, "warmth": e.warmth, "connections": e.connections}
                    for e in snapshot.hot_entities[:ORIENT_HOT_LIMIT]
                ],
                "central_nodes": [
                    {"name": n.name, "connections": n.connections}
                    for n in snapshot.central_nodes[:ORIENT_CENTRAL_LIMIT]
                ],
                "hours_since_processed": round_half_up(snapshot.age_hours(), 1),
            }
        return response
    finally:
        db.close()


@service_tool
def mind_ground() -> dict:
    """Active threads (high priority first) and the latest journal entries."""
    db = DB.SessionLocal()
    try:
        threads = (
            db.query(Thread)
            .filter(Thread.status == ThreadStatus.active.value)
            .order_by(priority_order(), Thread.created_at.asc())
            .all()
        )
        journals = (
            db.query(Journal)
            .order_by(Journal.created_at.desc(), Journal.id.desc())
            .limit(GROUND_JOURNAL_LIMIT)
            .all()
        )
        return {
            "status": "ok",
            "active_threads": [serialize_thread(t) for t in threads],
            "recent_journals": [
                {
                    "id": j.id,
                    "entry_date": j.entry_date or "Undated",
                    "preview": preview(j.content, GROUND_PREVIEW_LENGTH),
                    "emotion": j.emotion,
                }
                for j in journals
            ],
        }
    finally:
        db.close()
