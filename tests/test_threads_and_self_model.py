import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "scan")

from datetime import datetime, timezone

from mind.services.memory_writes import mind_write
from mind.services.self_model import (
    mind_context,
    mind_feel_toward,
    mind_ground,
    mind_identity,
    mind_orient,
)
from mind.services.snapshot import SubconsciousSnapshot, publish_snapshot
from mind.services.threads import mind_thread
from mind.services.warmth import HotEntity, Mood


def test_thread_lifecycle(server_db):
    created = mind_thread(action="add", content="finish the letter", priority="high", context="started monday")
    assert created["status"] == "created"
    thread_id = created["thread"]["id"]
    assert thread_id.startswith("thread-")

    updated = mind_thread(action="update", thread_id=thread_id, add_note="second draft done", new_priority="medium")
    assert updated["thread"]["context"] == "started monday\nsecond draft done"
    assert updated["thread"]["priority"] == "medium"

    resolved = mind_thread(action="resolve", thread_id=thread_id, resolution="sent")
    assert resolved["thread"]["status"] == "resolved"
    assert resolved["thread"]["resolution"] == "sent"

    assert mind_thread(action="list")["count"] == 0
    assert mind_thread(action="list", status="all")["count"] == 1
    assert mind_thread(action="list", status="resolved")["threads"][0]["id"] == thread_id


def test_thread_errors(server_db):
    assert mind_thread(action="add")["field"] == "content"
    assert mind_thread(action="resolve", thread_id="thread-missing")["error_type"] == "not_found"
    assert mind_thread(action="archive")["field"] == "action"
    assert mind_thread(action="add", content="x", priority="urgent")["field"] == "priority"


def test_ground_orders_threads_by_priority(server_db):
    mind_thread(action="add", content="low one", priority="low")
    mind_thread(action="add", content="high one", priority="high")
    mind_thread(action="add", content="medium one")
    for i in range(4):
        mind_write(type="journal", entry=f"entry {i} " + "x" * 300)

    grounded = mind_ground()

    assert [t["content"] for t in grounded["active_threads"]] == ["high one", "medium one", "low one"]
    assert len(grounded["recent_journals"]) == 3
    assert len(grounded["recent_journals"][0]["preview"]) == 200


def test_feel_toward_records_and_reads(server_db):
    recorded = mind_feel_toward(person="Sam", feeling="grateful")
    assert recorded["status"] == "recorded"
    assert recorded["state"]["intensity"] == "present"

    mind_feel_toward(person="Sam", feeling="worried", intensity="strong")
    history = mind_feel_toward(person="Sam")
    assert history["count"] == 2
    assert history["states"][0]["feeling"] == "worried"


def test_identity_prefix_read(server_db):
    mind_identity(action="write", section="values.honesty", content="say the true thing", weight=0.9)
    mind_identity(action="write", section="values.care", content="notice people", weight=0.8)
    mind_identity(action="write", section="voice", content="plain words", weight=0.95)

    values = mind_identity(section="values")
    assert [e["section"] for e in values["entries"]] == ["values.honesty", "values.care"]

    everything = mind_identity()
    assert everything["entries"][0]["section"] == "voice"
    assert mind_identity(action="write", section="x", content="y", weight=1.5)["field"] == "weight"


def test_context_layer_operations(server_db):
    created = mind_context(action="set", scope="project", content="moving house", links=["thread-1"])
    entry_id = created["entry"]["id"]
    assert entry_id.startswith("ctx-")
    assert created["entry"]["links"] == ["thread-1"]

    updated = mind_context(action="update", id=entry_id, content="moved house")
    assert updated["entry"]["content"] == "moved house"
    assert mind_context(action="update", id="ctx-missing", content="x")["error_type"] == "not_found"

    mind_context(action="set", scope="project", content="second")
    assert mind_context(scope="project")["count"] == 2

    assert mind_context(action="clear")["message"] == "Specify id or scope to clear"
    assert mind_context(action="clear", id=entry_id)["deleted"] == 1
    assert mind_context(action="clear", scope="project")["deleted"] == 1
    assert mind_context()["count"] == 0


def test_orient_without_snapshot(server_db):
    mind_identity(action="write", section="core", content="curious")
    mind_feel_toward(person="Sam", feeling="fond")
    mind_feel_toward(person="Sam", feeling="proud")
    mind_feel_toward(person="Ada", feeling="calm")

    oriented = mind_orient()

    assert oriented["status"] == "ok"
    assert oriented["subconscious"] is None
    assert [e["content"] for e in oriented["identity"]] == ["curious"]
    states = {s["person"]: s["feeling"] for s in oriented["relational_state"]}
    assert states == {"Ada": "calm", "Sam": "proud"}


def test_orient_includes_snapshot_summary(db_session):
    publish_snapshot(
        db_session,
        SubconsciousSnapshot(
            processed_at=datetime.now(timezone.utc),
            hot_entities=[
                HotEntity(name=f"e{i}", warmth=1.0 - i / 10, mentions=1, connections=0)
                for i in range(7)
            ],
            mood=Mood("joy", "medium", 8),
            run_id=5,
        ),
    )

    oriented = mind_orient()

    sub = oriented["subconscious"]
    assert sub["mood"] == {"dominant": "joy", "confidence": "medium"}
    assert len(sub["hot_entities"]) == 5
    assert sub["hours_since_processed"] < 1
