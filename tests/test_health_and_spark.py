import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "scan")

from datetime import datetime, timedelta, timezone

import pytest

from mind.services.health import (
    database_score,
    journal_score,
    mind_health,
    subconscious_freshness,
    thread_score,
)
from mind.services.memory_writes import mind_write
from mind.services.snapshot import SubconsciousSnapshot, publish_snapshot
from mind.services.spark import mind_spark, split_count
from mind.services.threads import mind_thread
from mind.services.warmth import HotEntity

NOW = datetime(2026, 1, 18, 12, 0, tzinfo=timezone.utc)


def test_component_scores():
    assert database_score(0, 0) == 0
    assert database_score(100, 500) == 100
    assert database_score(300, 0) == 100
    assert database_score(1, 0) == 1  # 0.5 rounds up
    assert thread_score(0, 0) == 50
    assert thread_score(4, 2) == 100
    assert thread_score(5, 5) == 60
    assert thread_score(9, 6) == 30
    assert journal_score(0, 0) == 0
    assert journal_score(5, 0) == 40
    assert journal_score(5, 1) == 70
    assert journal_score(5, 3) == 100


@pytest.mark.parametrize(
    "age_hours,score,status",
    [(0.5, 100, "fresh"), (1.5, 70, "recent"), (5.9, 40, "stale"), (30, 10, "very stale")],
)
def test_subconscious_freshness(age_hours, score, status):
    snapshot = SubconsciousSnapshot(processed_at=NOW - timedelta(hours=age_hours))
    assert subconscious_freshness(snapshot, NOW)[:2] == (score, status)


def test_never_run_subconscious_scores_zero():
    assert subconscious_freshness(None, NOW) == (0, "never run", None)


def test_health_on_empty_mind(server_db):
    report = mind_health()

    assert report["status"] == "ok"
    assert report["scores"] == {
        "database": 0,
        "threads": 50,
        "journals": 0,
        "identity": 0,
        "activity": 0,
        "subconscious": 0,
    }
    assert report["overall"] == 8
    assert report["subconscious"]["status"] == "never run"


def test_health_counts_recent_activity(server_db):
    mind_write(type="entity", name="Alice", observations=[f"note {i}" for i in range(10)])
    mind_write(type="entity", name="Desk", context="work")
    mind_write(type="journal", entry="today")
    mind_thread(action="add", content="call back")

    report = mind_health()

    assert report["counts"]["observations_7d"] == 10
    assert report["counts"]["active_threads"] == 1
    assert report["scores"]["activity"] == 50
    assert report["scores"]["journals"] == 70
    assert report["scores"]["threads"] == 100
    assert report["entities_by_context"] == {"default": 1, "work": 1}


def test_split_count():
    assert split_count(5, True) == (3, 2)
    assert split_count(4, True) == (2, 2)
    assert split_count(5, False) == (0, 5)


def test_spark_empty(server_db):
    response = mind_spark()
    assert response["status"] == "empty"
    assert response["sparks"] == []


def test_spark_random_only(server_db):
    mind_write(type="entity", name="Alice", observations=[f"memory {i}" for i in range(6)])
    response = mind_spark(count=3)
    assert response["count"] == 3
    assert response["biased_toward"] == []
    assert len({s["id"] for s in response["sparks"]}) == 3


def test_spark_biased_toward_hot_entities(db_session):
    mind_write(type="entity", name="Hot", observations=["warm one", "warm two", "warm three"])
    mind_write(type="entity", name="Cold", observations=["cold one"], weight="light")
    publish_snapshot(
        db_session,
        SubconsciousSnapshot(
            processed_at=datetime.now(timezone.utc),
            hot_entities=[HotEntity(name="Hot", warmth=1.0, mentions=3, connections=0)],
            run_id=1,
        ),
    )

    response = mind_spark(count=3, weight_bias="light")

    assert response["biased_toward"] == ["Hot"]
    entities = sorted(s["entity"] for s in response["sparks"])
    assert entities == ["Cold", "Hot", "Hot"]
