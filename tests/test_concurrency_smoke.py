import os
from concurrent.futures import ThreadPoolExecutor

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "scan")

from mind.services import memory_writes, notes, subconscious


def _write_entity(name: str) -> dict:
    return memory_writes.mind_write(
        type="entity",
        name=name,
        observations=[f"{name} concurrent observation"],
        emotion="curiosity",
    )


def test_memory_write_concurrency(server_db):
    names = ["Concurrent 1", "Concurrent 2", "Concurrent 3"]
    with ThreadPoolExecutor(max_workers=3) as executor:
        results = list(executor.map(_write_entity, names))

    assert all(result["status"] == "stored" for result in results)
    listed = memory_writes.mind_list_entities(limit=10)
    assert {e["name"] for e in listed["entities"]} == set(names)


def test_sits_on_separate_notes_concurrently(server_db):
    note_ids = []
    for content in ("first concurrent note", "second concurrent note"):
        note_ids.append(memory_writes.mind_write(type="note", content=content)["note_id"])

    with ThreadPoolExecutor(max_workers=2) as executor:
        results = list(executor.map(lambda note_id: notes.mind_sit(sit_note="sat", note_id=note_id), note_ids))

    assert [r["charge"] for r in results] == ["active", "active"]


def test_run_alongside_writes(server_db):
    with ThreadPoolExecutor(max_workers=2) as executor:
        write = executor.submit(_write_entity, "Concurrent run")
        run = executor.submit(subconscious.run_subconscious_pass)
        assert write.result()["status"] == "stored"
        assert run.result()["status"] == "published"

    assert subconscious.mind_subconscious()["status"] == "ok"
