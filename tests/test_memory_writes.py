import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "scan")

from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from mind.models import EntityRef, Observation, Relation, VectorRecord
from mind.services.memory_writes import (
    mind_delete,
    mind_edit,
    mind_list_entities,
    mind_read_entity,
    mind_write,
)


def test_entity_write_stores_and_vectorizes(db_session, fake_embeddings):
    result = mind_write(
        type="entity",
        name="Alice",
        entity_type="person",
        observations=["likes tea", "plays cello"],
        emotion="tender",
    )

    assert result["status"] == "stored"
    assert result["stored"] == 2
    assert result["vectorized"] == 2
    assert fake_embeddings.texts == ["Alice: likes tea", "Alice: plays cello"]
    assert db_session.query(VectorRecord).count() == 2


def test_entity_write_is_idempotent_on_name_and_context(server_db, fake_embeddings):
    first = mind_write(type="entity", name="Alice", entity_type="person")
    second = mind_write(type="entity", name="Alice", entity_type="concept", observations=["again"])

    assert first["entity_id"] == second["entity_id"]
    assert second["entity_type"] == "person"
    other = mind_write(type="entity", name="Alice", context="work")
    assert other["entity_id"] != first["entity_id"]


def test_embedding_failure_still_stores_observation(server_db, fake_embeddings):
    fake_embeddings.fail = True
    result = mind_write(type="entity", name="Bob", observations=["plants tulips"])
    assert result["stored"] == 1
    assert result["vectorized"] == 0


def test_observation_write_requires_existing_entity(server_db):
    response = mind_write(type="observation", entity_name="Nobody", observations=["hello"])
    assert response["status"] == "error"
    assert response["error_type"] == "not_found"
    assert response["field"] == "entity_name"


def test_observation_write_requires_observations(server_db):
    mind_write(type="entity", name="Alice")
    response = mind_write(type="observation", entity_name="Alice", observations=[])
    assert response["error_type"] == "invalid_argument"
    assert response["field"] == "observations"


def test_partial_batch_failure_reports_what_was_applied(db_session, server_db, fake_embeddings):
    mind_write(type="entity", name="Alice")
    inserts = {"count": 0}

    def fail_second_insert(conn, cursor, statement, parameters, context, executemany):
        if statement.startswith("INSERT INTO observations"):
            inserts["count"] += 1
            if inserts["count"] == 2:
                raise OperationalError(statement, parameters, Exception("disk I/O error"))

    event.listen(server_db, "before_cursor_execute", fail_second_insert)
    try:
        response = mind_write(
            type="observation",
            entity_name="Alice",
            observations=["first", "second", "third"],
        )
    finally:
        event.remove(server_db, "before_cursor_execute", fail_second_insert)

    assert response["status"] == "error"
    assert response["error_type"] == "upstream_unavailable"
    assert response["data"]["applied"] == 1
    assert response["data"]["requested"] == 3
    assert len(response["data"]["observation_ids"]) == 1
    assert db_session.query(Observation).count() == 1


def test_relation_write_does_not_require_entities(db_session):
    result = mind_write(type="relation", from_entity="Alice", to_entity="Bob", relation_type="knows")
    assert result["status"] == "stored"
    assert result["unresolved"] == ["Alice", "Bob"]
    assert db_session.query(Relation).count() == 1

    relation = db_session.query(Relation).one()
    assert relation.source == EntityRef("Alice", "default")
    assert relation.target == EntityRef("Bob", "default")

    mind_write(type="entity", name="Bob")
    again = mind_write(type="relation", from_entity="Alice", to_entity="Bob", relation_type="trusts")
    assert again["unresolved"] == ["Alice"]


def test_relation_write_requires_type(server_db):
    response = mind_write(type="relation", from_entity="Alice", to_entity="Bob")
    assert response["field"] == "relation_type"


def test_journal_write(server_db, fake_embeddings):
    result = mind_write(type="journal", entry="A slow, good day", tags=["rest"], emotion="gratitude")
    assert result["status"] == "stored"
    assert result["vectorized"] == 1
    assert len(result["entry_date"]) == 10
    assert fake_embeddings.texts == ["A slow, good day"]


def test_unknown_or_missing_type(server_db):
    missing = mind_write(type=None)
    assert missing["field"] == "type"
    assert missing["error_type"] == "invalid_argument"

    unknown = mind_write(type="dream")
    assert unknown["field"] == "type"
    assert "entity" in unknown["message"]


def test_list_and_read_entity(server_db):
    mind_write(type="entity", name="Alice", entity_type="person", observations=["likes tea"])
    mind_write(type="entity", name="Bob", entity_type="person", context="work")
    mind_write(type="entity", name="Tea", entity_type="concept")
    mind_write(type="relation", from_entity="Alice", to_entity="Tea", relation_type="enjoys")
    mind_write(type="relation", from_entity="Bob", to_entity="Alice", relation_type="knows")

    people = mind_list_entities(entity_type="person")
    assert {e["name"] for e in people["entities"]} == {"Alice", "Bob"}
    assert mind_list_entities(context="work")["count"] == 1

    read = mind_read_entity(name="Alice")
    assert read["entity"]["entity_type"] == "person"
    assert [o["content"] for o in read["observations"]] == ["likes tea"]
    assert read["relations"]["outgoing"][0]["to_entity"] == "Tea"
    assert read["relations"]["incoming"][0]["from_entity"] == "Bob"
    assert read["relations"]["outgoing"][0]["resolved"] is True
    # Bob was written under "work"; the relation points at Bob in "default"
    assert read["relations"]["incoming"][0]["resolved"] is False

    assert mind_read_entity(name="Nobody")["error_type"] == "not_found"


def test_edit_by_text_match_revectorizes(server_db, fake_embeddings):
    mind_write(type="entity", name="Alice", observations=["likes green tea"])

    result = mind_edit(text_match="green tea", new_content="likes oolong now", new_weight="heavy")

    assert result["status"] == "updated"
    assert result["old_preview"] == "likes green tea"
    assert result["new_preview"] == "likes oolong now"
    assert result["weight"] == "heavy"
    assert result["revectorized"] is True
    assert fake_embeddings.texts[-1] == "Alice: likes oolong now"


def test_edit_requires_target_and_update(server_db):
    assert mind_edit(new_content="x")["message"] == "Must provide observation_id or text_match"
    assert mind_edit(observation_id=1)["message"] == "No updates provided"
    assert mind_edit(observation_id=42, new_weight="light")["error_type"] == "not_found"


def test_delete_observation_removes_vector(db_session, fake_embeddings):
    write = mind_write(type="entity", name="Alice", observations=["likes tea", "plays cello"])
    target = write["observation_ids"][0]

    result = mind_delete(observation_id=target)

    assert result["status"] == "deleted"
    assert result["vectors_deleted"] == 1
    assert db_session.query(Observation).count() == 1
    assert db_session.query(VectorRecord).count() == 1


def test_delete_entity_cascades(db_session, fake_embeddings):
    mind_write(type="entity", name="Alice", observations=["likes tea", "plays cello"])
    mind_write(type="entity", name="Bob", observations=["reads maps"])
    mind_write(type="relation", from_entity="Alice", to_entity="Bob", relation_type="knows")
    mind_write(type="relation", from_entity="Bob", to_entity="Alice", relation_type="trusts")

    result = mind_delete(entity_name="Alice")

    assert result["observations_deleted"] == 2
    assert result["relations_deleted"] == 2
    assert result["vectors_deleted"] == 2
    assert db_session.query(Observation).count() == 1
    assert db_session.query(Relation).count() == 0
    assert mind_read_entity(name="Alice")["error_type"] == "not_found"


def test_delete_requires_a_target(server_db):
    response = mind_delete()
    assert response["error_type"] == "invalid_argument"
    assert mind_delete(entity_name="Ghost")["error_type"] == "not_found"
