"""Initial schema: memory graph, journals, threads, self model, notes,
subconscious snapshot and vector storage.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-01-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

import mind.config as config


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _embedding_type(is_postgres: bool):
    if is_postgres and config.VECTOR_BACKEND_EFFECTIVE == "pgvector":
        from pgvector.sqlalchemy import Vector

        return Vector(config.EMBEDDING_DIM)
    return sa.JSON()


def upgrade() -> None:
    bind = op.get_bind()
    is_postgres = bind.dialect.name == "postgresql"
    json_type = postgresql.JSONB() if is_postgres else sa.JSON()

    # =============================================================================
    # Entities, observations, relations
    # =============================================================================
    op.create_table(
        "entities",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False, server_default="concept"),
        sa.Column("context", sa.String(100), nullable=False, server_default="default"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", "context", name="uq_entities_name_context"),
    )
    op.create_index("ix_entities_context", "entities", ["context"])
    op.create_index("ix_entities_created_at", "entities", ["created_at"])

    op.create_table(
        "observations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("salience", sa.String(50), nullable=False, server_default="active"),
        sa.Column("emotion", sa.String(100), nullable=True),
        sa.Column("weight", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"], ondelete="CASCADE"),
        sa.CheckConstraint("weight IN ('light', 'medium', 'heavy')", name="check_observation_weight"),
    )
    op.create_index("ix_observations_entity_id", "observations", ["entity_id"])
    op.create_index("ix_observations_added_at", "observations", ["added_at"])

    op.create_table(
        "relations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("from_entity", sa.String(255), nullable=False),
        sa.Column("to_entity", sa.String(255), nullable=False),
        sa.Column("relation_type", sa.String(100), nullable=False),
        sa.Column("from_context", sa.String(100), nullable=False, server_default="default"),
        sa.Column("to_context", sa.String(100), nullable=False, server_default="default"),
        sa.Column("store_in", sa.String(100), nullable=False, server_default="default"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_relations_from_entity", "relations", ["from_entity"])
    op.create_index("ix_relations_to_entity", "relations", ["to_entity"])
    op.create_index("ix_relations_type", "relations", ["relation_type"])

    # =============================================================================
    # Journals & threads
    # =============================================================================
    op.create_table(
        "journals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entry_date", sa.String(10), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("tags", json_type, nullable=True),
        sa.Column("emotion", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_journals_created_at", "journals", ["created_at"])

    op.create_table(
        "threads",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("thread_type", sa.String(50), nullable=False, server_default="intention"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("context", sa.Text(), nullable=True),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("resolution", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_threads_status", "threads", ["status"])

    # =============================================================================
    # Self model
    # =============================================================================
    op.create_table(
        "identity",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("section", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("weight", sa.Float(), nullable=False, server_default="0.7"),
        sa.Column("connections", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_identity_section", "identity", ["section"])

    op.create_table(
        "context_entries",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("scope", sa.String(100), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("links", json_type, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_context_entries_scope", "context_entries", ["scope"])

    op.create_table(
        "relational_state",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("person", sa.String(255), nullable=False),
        sa.Column("feeling", sa.String(255), nullable=False),
        sa.Column("intensity", sa.String(50), nullable=False, server_default="present"),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_relational_state_person", "relational_state", ["person"])

    # =============================================================================
    # Emotional notes
    # =============================================================================
    op.create_table(
        "notes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("weight", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("charge", sa.String(20), nullable=False, server_default="fresh"),
        sa.Column("sit_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("emotion", sa.String(100), nullable=True),
        sa.Column("last_sat_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution_note", sa.Text(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("linked_insight_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("sit_count >= 0", name="check_note_sit_count"),
        sa.CheckConstraint(
            "charge IN ('fresh', 'active', 'processing', 'metabolized')",
            name="check_note_charge",
        ),
        sa.CheckConstraint("weight IN ('light', 'medium', 'heavy')", name="check_note_weight"),
    )
    op.create_index("ix_notes_charge", "notes", ["charge"])
    op.create_index("ix_notes_created_at", "notes", ["created_at"])

    op.create_table(
        "note_sits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("note_id", sa.Integer(), nullable=False),
        sa.Column("sit_note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["note_id"], ["notes.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_note_sits_note_id", "note_sits", ["note_id"])

    # =============================================================================
    # Subconscious snapshot (single live row)
    # =============================================================================
    op.create_table(
        "subconscious",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("state_type", sa.String(50), nullable=False, server_default="daemon"),
        sa.Column("data", json_type, nullable=False),
        sa.Column("run_id", sa.BigInteger(), nullable=True),
        sa.Column("schema_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("state_type", name="uq_subconscious_state_type"),
    )

    # =============================================================================
    # Vector storage
    # =============================================================================
    op.create_table(
        "vectors",
        sa.Column("id", sa.String(255), nullable=False),
        sa.Column("source_type", sa.String(50), nullable=False),
        sa.Column("source_id", sa.Integer(), nullable=False),
        sa.Column("model_version", sa.String(100), nullable=False),
        sa.Column("embedding", _embedding_type(is_postgres), nullable=False),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_vectors_source", "vectors", ["source_type", "source_id"])


def downgrade() -> None:
    op.drop_index("ix_vectors_source", table_name="vectors")
    op.drop_table("vectors")
    op.drop_table("subconscious")
    op.drop_index("ix_note_sits_note_id", table_name="note_sits")
    op.drop_table("note_sits")
    op.drop_index("ix_notes_created_at", table_name="notes")
    op.drop_index("ix_notes_charge", table_name="notes")
    op.drop_table("notes")
    op.drop_index("ix_relational_state_person", table_name="relational_state")
    op.drop_table("relational_state")
    op.drop_index("ix_context_entries_scope", table_name="context_entries")
    op.drop_table("context_entries")
    op.drop_index("ix_identity_section", table_name="identity")
    op.drop_table("identity")
    op.drop_index("ix_threads_status", table_name="threads")
    op.drop_table("threads")
    op.drop_index("ix_journals_created_at", table_name="journals")
    op.drop_table("journals")
    op.drop_index("ix_relations_type", table_name="relations")
    op.drop_index("ix_relations_to_entity", table_name="relations")
    op.drop_index("ix_relations_from_entity", table_name="relations")
    op.drop_table("relations")
    op.drop_index("ix_observations_added_at", table_name="observations")
    op.drop_index("ix_observations_entity_id", table_name="observations")
    op.drop_table("observations")
    op.drop_index("ix_entities_created_at", table_name="entities")
    op.drop_index("ix_entities_context", table_name="entities")
    op.drop_table("entities")
