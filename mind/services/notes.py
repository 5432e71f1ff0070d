"""
Emotional note lifecycle.

    fresh --sit--> active (1-2 sits) --sit--> processing (3+ sits)
      \\______________ resolve ______________/--> metabolized (terminal)

Charge is derived from ``sit_count`` except for the one-way move to
``metabolized``. Sitting with a metabolized note still records the sit,
but the charge stays metabolized.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import case

from mind.db import DB
from mind.errors import NotFoundError, ValidationIssue
from mind.models import (
    Note,
    NoteCharge,
    NoteSit,
    WEIGHT_VALUES,
    Weight,
    utcnow,
)
from mind.services.shared import (
    MAX_RESULT_LIMIT,
    MAX_SHORT_TEXT_LENGTH,
    MAX_TEXT_LENGTH,
    _validate_choice,
    _validate_limit,
    _validate_optional_id,
    _validate_optional_text,
    _validate_required_text,
    isoformat,
    preview,
    service_tool,
)

ACTIVE_SIT_LIMIT = 2  # 1..2 sits => active, more => processing

WEIGHT_RANK = {Weight.heavy.value: 3, Weight.medium.value: 2, Weight.light.value: 1}
CHARGE_RANK = {
    NoteCharge.fresh.value: 4,
    NoteCharge.active.value: 3,
    NoteCharge.processing.value: 2,
    NoteCharge.metabolized.value: 1,
}
CHARGE_ICONS = {
    NoteCharge.fresh.value: "●",
    NoteCharge.active.value: "○",
    NoteCharge.processing.value: "◐",
    NoteCharge.metabolized.value: "✓",
}


def charge_for_sits(sit_count: int) -> NoteCharge:
    if sit_count <= 0:
        return NoteCharge.fresh
    if sit_count <= ACTIVE_SIT_LIMIT:
        return NoteCharge.active
    return NoteCharge.processing


def next_charge(current: Optional[str], sit_count: int) -> NoteCharge:
    if current == NoteCharge.metabolized.value:
        return NoteCharge.metabolized
    return charge_for_sits(sit_count)


def _serialize_note(note: Note, content_length: Optional[int] = None) -> dict:
    charge = note.charge or NoteCharge.fresh.value
    return {
        "id": note.id,
        "content": preview(note.content, content_length) if content_length else note.content,
        "weight": note.weight,
        "charge": charge,
        "charge_icon": CHARGE_ICONS.get(charge, CHARGE_ICONS[NoteCharge.fresh.value]),
        "sit_count": note.sit_count or 0,
        "emotion": note.emotion,
        "created_at": isoformat(note.created_at),
        "last_sat_at": isoformat(note.last_sat_at),
        "resolution_note": note.resolution_note,
        "resolved_at": isoformat(note.resolved_at),
        "linked_insight_id": note.linked_insight_id,
    }


def _find_note(db, note_id: Optional[int], text_match: Optional[str], for_update: bool = False) -> Note:
    _validate_optional_id(note_id, "note_id")
    _validate_optional_text(text_match, "text_match", MAX_TEXT_LENGTH)
    if note_id is None and not (text_match and text_match.strip()):
        raise ValidationIssue(
            "Must provide note_id or text_match",
            field="note_id",
            error_type="required",
        )
    query = db.query(Note)
    if for_update:
        query = query.with_for_update()
    if note_id is not None:
        note = query.filter(Note.id == note_id).first()
    else:
        note = (
            query.filter(Note.content.ilike(f"%{text_match}%"))
            .order_by(Note.created_at.desc(), Note.id.desc())
            .first()
        )
    if note is None:
        raise NotFoundError("Note not found", resource="note", field="note_id" if note_id else "text_match")
    return note


def write_note(db, content: str, weight: str = "medium", emotion: Optional[str] = None) -> Note:
    """Create a fresh note (sit_count 0)."""
    _validate_required_text(content, "content", MAX_TEXT_LENGTH)
    _validate_choice(weight, "weight", WEIGHT_VALUES)
    _validate_optional_text(emotion, "emotion", MAX_SHORT_TEXT_LENGTH)
    note = Note(
        content=content,
        weight=weight,
        emotion=emotion,
        charge=NoteCharge.fresh.value,
        sit_count=0,
    )
    db.add(note)
    db.commit()
    db.refresh(note)
    return note


@service_tool
def mind_sit(
    sit_note: str,
    note_id: Optional[int] = None,
    text_match: Optional[str] = None,
) -> dict:
    """
    Sit with an emotional note: record what arose and advance its charge.

    Args:
        sit_note: What arose while sitting with the note
        note_id: Note id
        text_match: Or the most recent note whose content contains this text

    Returns:
        Updated sit count and charge
    """
    _validate_required_text(sit_note, "sit_note", MAX_TEXT_LENGTH)
    db = DB.SessionLocal()
    try:
        note = _find_note(db, note_id, text_match, for_update=True)
        previous_charge = note.charge or NoteCharge.fresh.value
        note.sit_count = (note.sit_count or 0) + 1
        note.charge = next_charge(previous_charge, note.sit_count).value
        note.last_sat_at = utcnow()
        db.add(NoteSit(note_id=note.id, sit_note=sit_note))
        db.commit()
        db.refresh(note)
        return {
            "status": "sat",
            "note_id": note.id,
            "weight": note.weight,
            "previous_charge": previous_charge,
            "charge": note.charge,
            "charge_locked": previous_charge == NoteCharge.metabolized.value,
            "sit_count": note.sit_count,
            "sit_note": sit_note,
            "content_preview": preview(note.content, 80),
        }
    finally:
        db.close()


@service_tool
def mind_resolve(
    resolution_note: str,
    note_id: Optional[int] = None,
    text_match: Optional[str] = None,
    linked_insight_id: Optional[int] = None,
) -> dict:
    """
    Mark a note as metabolized. One-way: nothing moves it back.

    Args:
        resolution_note: How the note was resolved
        note_id: Note id
        text_match: Or the most recent note whose content contains this text
        linked_insight_id: Optional id of another note that provided the resolution

    Returns:
        Resolved note summary, with a preview of the linked insight when it exists
    """
    _validate_required_text(resolution_note, "resolution_note", MAX_TEXT_LENGTH)
    _validate_optional_id(linked_insight_id, "linked_insight_id")
    db = DB.SessionLocal()
    try:
        note = _find_note(db, note_id, text_match, for_update=True)
        previous_charge = note.charge or NoteCharge.fresh.value
        note.charge = NoteCharge.metabolized.value
        note.resolution_note = resolution_note
        note.resolved_at = utcnow()
        note.linked_insight_id = linked_insight_id
        db.commit()
        db.refresh(note)

        response = {
            "status": "resolved",
            "note_id": note.id,
            "weight": note.weight,
            "previous_charge": previous_charge,
            "charge": note.charge,
            "resolution_note": resolution_note,
            "content_preview": preview(note.content, 80),
        }
        if linked_insight_id:
            linked = db.query(Note).filter(Note.id == linked_insight_id).first()
            response["linked_insight"] = (
                {"id": linked.id, "content_preview": preview(linked.content, 60)}
                if linked
                else None
            )
        return response
    finally:
        db.close()


@service_tool
def mind_surface(limit: int = 10, include_metabolized: bool = False) -> dict:
    """
    Surface notes that need attention, heaviest and freshest first.

    Args:
        limit: Max results
        include_metabolized: Also show resolved notes

    Returns:
        Ordered notes and per-charge counts
    """
    _validate_limit(limit, "limit", MAX_RESULT_LIMIT)
    weight_rank = case(WEIGHT_RANK, value=Note.weight, else_=1)
    charge_rank = case(CHARGE_RANK, value=Note.charge, else_=1)

    db = DB.SessionLocal()
    try:
        query = db.query(Note)
        if not include_metabolized:
            query = query.filter(Note.charge != NoteCharge.metabolized.value)
        notes = (
            query.order_by(
                weight_rank.desc(),
                charge_rank.desc(),
                Note.created_at.desc(),
                Note.id.desc(),
            )
            .limit(limit)
            .all()
        )
        counts = {charge.value: 0 for charge in NoteCharge}
        for note in notes:
            counts[note.charge or NoteCharge.fresh.value] += 1
        if not include_metabolized:
            counts.pop(NoteCharge.metabolized.value)
        return {
            "status": "ok",
            "count": len(notes),
            "notes": [_serialize_note(note) for note in notes],
            "charge_counts": counts,
        }
    finally:
        db.close()


@service_tool
def mind_note_history(note_id: int) -> dict:
    """Return a note with its full sit history, oldest sit first."""
    db = DB.SessionLocal()
    try:
        note = _find_note(db, note_id, None)
        payload = _serialize_note(note)
        payload["sits"] = [
            {"id": sit.id, "sit_note": sit.sit_note, "created_at": isoformat(sit.created_at)}
            for sit in note.sits
        ]
        return {"status": "ok", "note": payload}
    finally:
        db.close()
