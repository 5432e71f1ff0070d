import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "scan")

from datetime import datetime, timezone

from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from mind.services.memory_writes import mind_write
from mind.services.search import mind_prime, mind_search, mood_tint, tint_query
from mind.services.snapshot import SubconsciousSnapshot, publish_snapshot
from mind.services.warmth import Mood


def _publish_mood(db_session, dominant, confidence):
    publish_snapshot(
        db_session,
        SubconsciousSnapshot(
            processed_at=datetime.now(timezone.utc),
            mood=Mood(dominant=dominant, confidence=confidence, tagged_mentions=6),
            run_id=1,
        ),
    )


def test_tint_vocabulary():
    assert mood_tint(Mood("tender", "medium", 6)) == "warm, gentle, caring, soft"
    assert mood_tint(Mood("tender", "low", 2)) is None
    assert mood_tint(None) is None
    assert mood_tint(Mood("wistful", "medium", 6)) == "wistful"
    assert tint_query("q", None) == "q"


def test_search_is_tinted_by_confident_mood(db_session, fake_embeddings):
    mind_write(type="entity", name="Alice", entity_type="person", observations=["we talked for hours"])
    _publish_mood(db_session, "tender", "medium")

    response = mind_search(query="our conversation")

    assert response["status"] == "ok"
    assert response["search_text"] == "our conversation (context: warm, gentle, caring, soft)"
    assert fake_embeddings.texts[-1] == "our conversation (context: warm, gentle, caring, soft)"
    assert response["mood_tint"]["annotation"] == "Search tinted by current mood: tender"


def test_low_confidence_mood_leaves_query_untouched(db_session, fake_embeddings):
    mind_write(type="entity", name="Alice", observations=["we talked for hours"])
    _publish_mood(db_session, "tender", "low")

    response = mind_search(query="our conversation")

    assert response["search_text"] == "our conversation"
    assert fake_embeddings.texts[-1] == "our conversation"
    assert "mood_tint" not in response


def test_semantic_results_are_ranked_and_scored(server_db, fake_embeddings):
    mind_write(
        type="entity",
        name="Garden",
        observations=["tomatoes ripening along the south fence", "the kettle whistles at dawn"],
    )

    response = mind_search(query="ripening tomatoes", n_results=2)

    assert response["mode"] == "semantic"
    assert response["results"][0]["content"] == "tomatoes ripening along the south fence"
    assert response["results"][0]["title"] == "Garden"
    for result in response["results"]:
        assert 0.0 <= result["score"] <= 1.0
        assert result["score_percent"] == int(result["score"] * 100 + 0.5)


def test_zero_vector_matches_falls_back_to_literal(server_db, fake_embeddings):
    fake_embeddings.fail = True
    write = mind_write(type="entity", name="Notebook", observations=["the blue heron returned"])
    assert write["stored"] == 1
    assert write["vectorized"] == 0
    fake_embeddings.fail = False

    response = mind_search(query="blue heron")

    assert response["mode"] == "literal"
    assert response["degraded"] is True
    assert response["count"] == 1
    assert response["results"][0]["content"] == "the blue heron returned"
    assert response["results"][0]["score"] is None


def test_provider_outage_degrades_to_literal(server_db, fake_embeddings):
    mind_write(type="journal", entry="Quiet morning, heron by the pond")
    fake_embeddings.fail = True

    response = mind_search(query="heron")

    assert response["mode"] == "literal"
    assert "degraded_reason" in response
    assert response["results"][0]["source"] == "journal"


def test_vector_index_failure_rolls_back_and_degrades(server_db, fake_embeddings, monkeypatch):
    mind_write(type="journal", entry="Quiet morning, heron by the pond")

    rollbacks = {"count": 0}
    original_rollback = Session.rollback

    def counting_rollback(self):
        rollbacks["count"] += 1
        return original_rollback(self)

    monkeypatch.setattr(Session, "rollback", counting_rollback)

    def fail_vector_select(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().startswith("SELECT") and "FROM vectors" in statement:
            raise OperationalError(statement, parameters, Exception("canceling statement due to statement timeout"))

    event.listen(server_db, "before_cursor_execute", fail_vector_select)
    try:
        response = mind_search(query="heron")
    finally:
        event.remove(server_db, "before_cursor_execute", fail_vector_select)

    assert response["status"] == "ok"
    assert response["mode"] == "literal"
    assert response["degraded_reason"] == "vector index query failed"
    assert response["results"][0]["source"] == "journal"
    assert rollbacks["count"] >= 1


def test_context_filter_applies_to_results(server_db, fake_embeddings):
    mind_write(type="entity", name="Standup", context="work", observations=["deploy went well"])
    mind_write(type="entity", name="Dinner", context="home", observations=["deploy the lasagna"])

    response = mind_search(query="deploy", context="work")

    assert response["count"] >= 1
    assert {r["context"] for r in response["results"]} <= {"work", None}


def test_search_validates_arguments(server_db):
    response = mind_search(query="   ")
    assert response["status"] == "error"
    assert response["error_type"] == "invalid_argument"
    assert response["field"] == "query"


def test_prime_collects_entities_and_mentions(server_db, fake_embeddings):
    mind_write(type="entity", name="Pottery", observations=["pottery class on thursday"])

    response = mind_prime(topic="pottery")

    assert response["status"] == "ok"
    assert [e["name"] for e in response["related_entities"]] == ["Pottery"]
    assert response["recent_mentions"][0]["entity"] == "Pottery"
    assert response["related_memories"]
