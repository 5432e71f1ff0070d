"""
AI Mind Database Models
PostgreSQL (+ pgvector) or SQLite schema
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Float,
    DateTime, ForeignKey, CheckConstraint, Index, UniqueConstraint, JSON
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship, declarative_base

import mind.config as config

DB_BACKEND_EFFECTIVE = config.DB_BACKEND_EFFECTIVE
VECTOR_BACKEND_EFFECTIVE = config.VECTOR_BACKEND_EFFECTIVE

try:
    from pgvector.sqlalchemy import Vector as PgVector
    PGVECTOR_AVAILABLE = True
except Exception:
    PgVector = None
    PGVECTOR_AVAILABLE = False

if (
    DB_BACKEND_EFFECTIVE == "postgres"
    and VECTOR_BACKEND_EFFECTIVE == "pgvector"
    and PGVECTOR_AVAILABLE
):
    EMBEDDING_COLUMN_TYPE = PgVector(config.EMBEDDING_DIM)
else:
    EMBEDDING_COLUMN_TYPE = JSON

JSON_TYPE = JSONB if DB_BACKEND_EFFECTIVE == "postgres" else JSON


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what SQLite round-trips."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


Base = declarative_base()

# =============================================================================
# Enums
# =============================================================================

class Weight(str, PyEnum):
    light = "light"
    medium = "medium"
    heavy = "heavy"


class NoteCharge(str, PyEnum):
    fresh = "fresh"
    active = "active"
    processing = "processing"
    metabolized = "metabolized"


class ThreadStatus(str, PyEnum):
    active = "active"
    resolved = "resolved"
    paused = "paused"


WEIGHT_VALUES = tuple(item.value for item in Weight)
CHARGE_VALUES = tuple(item.value for item in NoteCharge)


@dataclass(frozen=True)
class EntityRef:
    """
    Weak reference to an entity by name.

    Relations carry these instead of foreign keys, so a relation may point
    at an entity that has not been written yet.
    """

    name: str
    context: str = "default"


# =============================================================================
# Entities & Observations
# =============================================================================

class Entity(Base):
    __tablename__ = "entities"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    entity_type = Column(String(100), nullable=False, default="concept")
    context = Column(String(100), nullable=False, default="default")
    created_at = Column(DateTime(timezone=True), default=utcnow)

    observations = relationship(
        "Observation",
        back_populates="entity",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("name", "context", name="uq_entities_name_context"),
        Index("ix_entities_context", "context"),
        Index("ix_entities_created_at", "created_at"),
    )

    @property
    def ref(self) -> EntityRef:
        return EntityRef(self.name, self.context)


class Observation(Base):
    __tablename__ = "observations"

    id = Column(Integer, primary_key=True)
    entity_id = Column(Integer, ForeignKey("entities.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    salience = Column(String(50), nullable=False, default="active")
    emotion = Column(String(100))
    weight = Column(String(20), nullable=False, default=Weight.medium.value)
    added_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True))

    entity = relationship("Entity", back_populates="observations")

    __table_args__ = (
        CheckConstraint("weight IN ('light', 'medium', 'heavy')", name="check_observation_weight"),
        Index("ix_observations_entity_id", "entity_id"),
        Index("ix_observations_added_at", "added_at"),
    )


class Relation(Base):
    __tablename__ = "relations"

    id = Column(Integer, primary_key=True)
    from_entity = Column(String(255), nullable=False)  # name reference, not a FK
    to_entity = Column(String(255), nullable=False)
    relation_type = Column(String(100), nullable=False)
    from_context = Column(String(100), nullable=False, default="default")
    to_context = Column(String(100), nullable=False, default="default")
    store_in = Column(String(100), nullable=False, default="default")
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_relations_from_entity", "from_entity"),
        Index("ix_relations_to_entity", "to_entity"),
        Index("ix_relations_type", "relation_type"),
    )

    @classmethod
    def between(cls, source: EntityRef, target: EntityRef, relation_type: str, store_in: str = "default"):
        return cls(
            from_entity=source.name,
            from_context=source.context,
            to_entity=target.name,
            to_context=target.context,
            relation_type=relation_type,
            store_in=store_in,
        )

    @property
    def source(self) -> EntityRef:
        return EntityRef(self.from_entity, self.from_context or "default")

    @property
    def target(self) -> EntityRef:
        return EntityRef(self.to_entity, self.to_context or "default")


# =============================================================================
# Journals & Threads
# =============================================================================

class Journal(Base):
    __tablename__ = "journals"

    id = Column(Integer, primary_key=True)
    entry_date = Column(String(10))
    content = Column(Text, nullable=False)
    tags = Column(JSON_TYPE, default=list)
    emotion = Column(String(100))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_journals_created_at", "created_at"),
    )


class Thread(Base):
    __tablename__ = "threads"

    id = Column(String(64), primary_key=True)
    thread_type = Column(String(50), nullable=False, default="intention")
    content = Column(Text, nullable=False)
    context = Column(Text)
    priority = Column(String(20), nullable=False, default="medium")
    status = Column(String(20), nullable=False, default=ThreadStatus.active.value)
    resolution = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)
    resolved_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_threads_status", "status"),
    )


# =============================================================================
# Self model (identity, context layer, relational state)
# =============================================================================

class IdentityEntry(Base):
    __tablename__ = "identity"

    id = Column(Integer, primary_key=True)
    section = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    weight = Column(Float, nullable=False, default=0.7)
    connections = Column(Text, default="")
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_identity_section", "section"),
    )


class ContextEntry(Base):
    __tablename__ = "context_entries"

    id = Column(String(64), primary_key=True)
    scope = Column(String(100), nullable=False)
    content = Column(Text, nullable=False)
    links = Column(JSON_TYPE, default=list)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_context_entries_scope", "scope"),
    )


class RelationalState(Base):
    __tablename__ = "relational_state"

    id = Column(Integer, primary_key=True)
    person = Column(String(255), nullable=False)
    feeling = Column(String(255), nullable=False)
    intensity = Column(String(50), nullable=False, default="present")
    timestamp = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_relational_state_person", "person"),
    )


# =============================================================================
# Emotional notes
# =============================================================================

class Note(Base):
    __tablename__ = "notes"

    id = Column(Integer, primary_key=True)
    content = Column(Text, nullable=False)
    weight = Column(String(20), nullable=False, default=Weight.medium.value)
    charge = Column(String(20), nullable=False, default=NoteCharge.fresh.value)
    sit_count = Column(Integer, nullable=False, default=0)
    emotion = Column(String(100))
    last_sat_at = Column(DateTime(timezone=True))
    resolution_note = Column(Text)
    resolved_at = Column(DateTime(timezone=True))
    linked_insight_id = Column(Integer)  # another note; not enforced
    created_at = Column(DateTime(timezone=True), default=utcnow)

    sits = relationship(
        "NoteSit",
        back_populates="note",
        order_by="NoteSit.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("sit_count >= 0", name="check_note_sit_count"),
        CheckConstraint(
            "charge IN ('fresh', 'active', 'processing', 'metabolized')",
            name="check_note_charge",
        ),
        CheckConstraint("weight IN ('light', 'medium', 'heavy')", name="check_note_weight"),
        Index("ix_notes_charge", "charge"),
        Index("ix_notes_created_at", "created_at"),
    )


class NoteSit(Base):
    __tablename__ = "note_sits"

    id = Column(Integer, primary_key=True)
    note_id = Column(Integer, ForeignKey("notes.id", ondelete="CASCADE"), nullable=False)
    sit_note = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    note = relationship("Note", back_populates="sits")

    __table_args__ = (
        Index("ix_note_sits_note_id", "note_id"),
    )


# =============================================================================
# Subconscious snapshot
# =============================================================================

class SubconsciousState(Base):
    __tablename__ = "subconscious"

    id = Column(Integer, primary_key=True)
    state_type = Column(String(50), nullable=False, default="daemon")
    data = Column(JSON_TYPE, nullable=False)
    run_id = Column(BigInteger)
    schema_version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("state_type", name="uq_subconscious_state_type"),
    )


# =============================================================================
# Vector index storage
# =============================================================================

class VectorRecord(Base):
    __tablename__ = "vectors"

    id = Column(String(255), primary_key=True)  # obs-{entity}-{obs} / journal-{id}
    source_type = Column(String(50), nullable=False)
    source_id = Column(Integer, nullable=False)
    model_version = Column(String(100), nullable=False)
    embedding = Column(EMBEDDING_COLUMN_TYPE, nullable=False)
    metadata_ = Column("metadata", JSON_TYPE, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_vectors_source", "source_type", "source_id"),
    )


__all__ = [
    "Base",
    "EntityRef",
    "Weight",
    "NoteCharge",
    "ThreadStatus",
    "WEIGHT_VALUES",
    "CHARGE_VALUES",
    "Entity",
    "Observation",
    "Relation",
    "Journal",
    "Thread",
    "IdentityEntry",
    "ContextEntry",
    "RelationalState",
    "Note",
    "NoteSit",
    "SubconsciousState",
    "VectorRecord",
    "utcnow",
]
