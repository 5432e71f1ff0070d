import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "scan")


def test_core_imports():
    import mind.models  # noqa: F401
    import mind.services.subconscious  # noqa: F401
    import mind.mcp.server  # noqa: F401


def test_every_tool_is_registered():
    from mind.mcp.server import registered_tool_names

    assert registered_tool_names() == sorted(
        [
            "mind_consolidate",
            "mind_context",
            "mind_delete",
            "mind_edit",
            "mind_feel_toward",
            "mind_ground",
            "mind_health",
            "mind_identity",
            "mind_list_entities",
            "mind_note_history",
            "mind_orient",
            "mind_prime",
            "mind_process",
            "mind_read_entity",
            "mind_resolve",
            "mind_search",
            "mind_sit",
            "mind_spark",
            "mind_subconscious",
            "mind_surface",
            "mind_thread",
            "mind_write",
        ]
    )


def test_core_smoke_lifecycle(server_db):
    from mind.mcp import server

    stored = server.mind_write(type="entity", name="Smoke", observations=["Core import smoke observation"])
    assert stored["stored"] == 1

    found = server.mind_search(query="smoke observation")
    assert found["count"] == 1
    assert found["mode"] == "literal"

    note = server.mind_write(type="note", content="smoke note")
    assert server.mind_sit(sit_note="sat", note_id=note["note_id"])["charge"] == "active"
    assert server.mind_resolve(resolution_note="done", note_id=note["note_id"])["charge"] == "metabolized"

    assert server.mind_process()["status"] == "published"
    assert server.mind_subconscious()["snapshot"]["hot_entities"][0]["name"] == "Smoke"

    deleted = server.mind_delete(entity_name="Smoke")
    assert deleted["observations_deleted"] == 1
