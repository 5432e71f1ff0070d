import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "scan")

import pytest

from mind.models import NoteCharge
from mind.services.memory_writes import mind_write
from mind.services.notes import (
    charge_for_sits,
    mind_note_history,
    mind_resolve,
    mind_sit,
    mind_surface,
    next_charge,
)


def _note(content, weight="medium", emotion=None):
    result = mind_write(type="note", content=content, weight=weight, emotion=emotion)
    assert result["status"] == "stored"
    assert result["charge"] == "fresh"
    assert result["sit_count"] == 0
    return result["note_id"]


@pytest.mark.parametrize(
    "sits,charge",
    [(0, "fresh"), (1, "active"), (2, "active"), (3, "processing"), (7, "processing")],
)
def test_charge_follows_sit_count(sits, charge):
    assert charge_for_sits(sits).value == charge


def test_metabolized_is_terminal():
    assert next_charge("metabolized", 1) is NoteCharge.metabolized
    assert next_charge("processing", 4) is NoteCharge.processing
    assert next_charge(None, 0) is NoteCharge.fresh


def test_sitting_advances_charge(server_db):
    note_id = _note("the argument about the move", weight="heavy")

    charges = [mind_sit(sit_note=f"sit {i}", note_id=note_id)["charge"] for i in range(3)]

    assert charges == ["active", "active", "processing"]
    history = mind_note_history(note_id=note_id)
    assert history["note"]["sit_count"] == 3
    assert [sit["sit_note"] for sit in history["note"]["sits"]] == ["sit 0", "sit 1", "sit 2"]


def test_resolve_is_one_way(server_db):
    note_id = _note("missed the recital")
    mind_sit(sit_note="it still stings", note_id=note_id)

    resolved = mind_resolve(resolution_note="talked it through", note_id=note_id)
    assert resolved["status"] == "resolved"
    assert resolved["previous_charge"] == "active"
    assert resolved["charge"] == "metabolized"

    again = mind_sit(sit_note="looking back", note_id=note_id)
    assert again["charge"] == "metabolized"
    assert again["charge_locked"] is True
    assert again["sit_count"] == 2


def test_resolve_reports_linked_insight(server_db):
    insight = _note("realised it was about control")
    note_id = _note("snapped at the dinner table")

    resolved = mind_resolve(
        resolution_note="see insight",
        text_match="dinner table",
        linked_insight_id=insight,
    )

    assert resolved["note_id"] == note_id
    assert resolved["linked_insight"]["id"] == insight
    assert resolved["linked_insight"]["content_preview"] == "realised it was about control"


def test_surface_orders_weight_then_charge(server_db):
    medium_active = _note("medium active")
    mind_sit(sit_note="once", note_id=medium_active)
    medium_fresh = _note("medium fresh")
    heavy_fresh = _note("heavy fresh", weight="heavy")
    resolved = _note("already done", weight="heavy")
    mind_resolve(resolution_note="done", note_id=resolved)

    surfaced = mind_surface()
    assert [n["id"] for n in surfaced["notes"]] == [heavy_fresh, medium_fresh, medium_active]
    assert surfaced["charge_counts"] == {"fresh": 2, "active": 1, "processing": 0}
    assert surfaced["notes"][0]["charge_icon"] == "●"

    everything = mind_surface(include_metabolized=True)
    assert resolved in [n["id"] for n in everything["notes"]]
    assert everything["charge_counts"]["metabolized"] == 1


def test_surface_respects_limit(server_db):
    for i in range(4):
        _note(f"note {i}")
    assert mind_surface(limit=2)["count"] == 2


def test_missing_note_is_not_found(server_db):
    response = mind_sit(sit_note="hello", note_id=999)
    assert response["status"] == "error"
    assert response["error_type"] == "not_found"
    assert response["tool"] == "mind_sit"


def test_sit_requires_a_target(server_db):
    response = mind_sit(sit_note="hello")
    assert response["status"] == "error"
    assert response["error_type"] == "invalid_argument"
    assert response["message"] == "Must provide note_id or text_match"


def test_note_weight_is_validated(server_db):
    response = mind_write(type="note", content="x", weight="crushing")
    assert response["status"] == "error"
    assert response["field"] == "weight"
