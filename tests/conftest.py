import os
import re
import zlib

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "scan")
os.environ.setdefault("EMBEDDING_PROVIDER", "none")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from mind.db import DB
from mind.errors import EmbeddingProviderError
from mind.models import Base
from mind.services import embeddings

FAKE_EMBEDDING_DIM = 64
_WORD = re.compile(r"[a-z0-9]+")


def bag_of_words_vector(text: str) -> list[float]:
    vector = [0.0] * FAKE_EMBEDDING_DIM
    for word in _WORD.findall(text.lower()):
        vector[zlib.crc32(word.encode()) % FAKE_EMBEDDING_DIM] += 1.0
    return vector


@pytest.fixture
def server_db(tmp_path):
    db_path = tmp_path / "aimind.sqlite"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    previous_engine = DB.engine
    previous_session = DB.SessionLocal
    DB.engine = engine
    DB.SessionLocal = SessionLocal
    try:
        yield engine
    finally:
        DB.engine = previous_engine
        DB.SessionLocal = previous_session
        engine.dispose()


@pytest.fixture
def db_session(server_db):
    db = DB.SessionLocal()
    try:
        yield db
    finally:
        db.close()


class FakeEmbeddings:
    def __init__(self):
        self.texts: list[str] = []
        self.fail = False

    def __call__(self, text: str) -> list[float]:
        self.texts.append(text)
        if self.fail:
            raise EmbeddingProviderError("embedding provider unavailable (test)")
        return bag_of_words_vector(text)


@pytest.fixture
def fake_embeddings(monkeypatch):
    fake = FakeEmbeddings()
    monkeypatch.setattr(embeddings, "embed_text_sync", fake)
    return fake
