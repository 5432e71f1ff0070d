import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "scan")

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from mind.db import DB
from mind.services import subconscious
from mind.services.memory_writes import mind_write
from mind.services.snapshot import load_snapshot


def _seed_memory():
    mind_write(
        type="entity",
        name="Alice",
        entity_type="person",
        observations=["brought soup", "stayed late", "laughed at the joke"],
        emotion="tender",
    )
    mind_write(type="entity", name="Bob", entity_type="person", observations=["borrowed the ladder"])
    mind_write(type="relation", from_entity="Alice", to_entity="Bob", relation_type="knows")
    mind_write(type="relation", from_entity="Bob", to_entity="Carol", relation_type="knows")


def test_run_publishes_snapshot(db_session):
    _seed_memory()

    summary = subconscious.run_subconscious_pass()

    assert summary["status"] == "published"
    assert summary["hot_entities"] == 2
    assert summary["mood"] == "tender"
    assert summary["mood_confidence"] == "low"

    snapshot = load_snapshot(db_session)
    warmth = {e.name: e.warmth for e in snapshot.hot_entities}
    assert warmth == {"Alice": 0.8, "Bob": 0.6}
    assert [p.entity for p in snapshot.recurring_patterns] == ["Alice"]
    assert snapshot.central_nodes[0].name == "Bob"
    assert snapshot.relation_clusters[0].entities == ["Alice", "Bob", "Carol"]
    assert snapshot.graph_stats.total_relations == 2


def test_mentions_outside_window_are_ignored(db_session):
    _seed_memory()
    later = datetime.now(timezone.utc) + timedelta(hours=72)

    snapshot = subconscious.compute_snapshot(db_session, now=later, run_id=1)

    assert snapshot.hot_entities == []
    assert snapshot.mood.dominant == "neutral"
    # relations are not windowed
    assert snapshot.graph_stats.total_relations == 2


def test_failed_run_keeps_previous_snapshot(db_session, monkeypatch):
    _seed_memory()
    first = subconscious.run_subconscious_pass()

    def broken(*args, **kwargs):
        raise RuntimeError("analysis blew up")

    monkeypatch.setattr(subconscious, "analyze_relations", broken)
    with pytest.raises(RuntimeError):
        subconscious.run_subconscious_pass()

    assert load_snapshot(db_session).run_id == first["run_id"]


def test_scheduled_run_swallows_failures(server_db, monkeypatch):
    from app import main

    def broken(*args, **kwargs):
        raise RuntimeError("analysis blew up")

    monkeypatch.setattr(main, "run_subconscious_pass", broken)
    asyncio.run(main._run_subconscious_once())


def test_run_skips_without_database(monkeypatch):
    monkeypatch.setattr(DB, "SessionLocal", None)
    assert subconscious.run_subconscious_pass()["status"] == "skipped"


def test_mind_process_and_mind_subconscious(server_db):
    assert subconscious.mind_subconscious()["status"] == "empty"

    _seed_memory()
    processed = subconscious.mind_process()
    assert processed["status"] == "published"

    response = subconscious.mind_subconscious()
    assert response["status"] == "ok"
    assert response["snapshot"]["run_id"] == processed["run_id"]
    assert response["snapshot"]["mood"]["dominant"] == "tender"
