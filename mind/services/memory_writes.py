"""
Memory write, read, edit and delete services.
"""

from __future__ import annotations

from typing import Optional, List

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from mind.db import DB
from mind.errors import NotFoundError, UpstreamUnavailable, ValidationIssue
from mind.models import (
    Entity,
    EntityRef,
    Journal,
    Observation,
    Relation,
    WEIGHT_VALUES,
    utcnow,
)
from mind.services.notes import write_note
from mind.services.shared import (
    MAX_LIST_ITEMS,
    MAX_RESULT_LIMIT,
    MAX_SHORT_TEXT_LENGTH,
    MAX_TEXT_LENGTH,
    _validate_choice,
    _validate_limit,
    _validate_optional_id,
    _validate_optional_text,
    _validate_required_text,
    _validate_string_list,
    isoformat,
    logger,
    preview,
    service_tool,
)
from mind.services.vector_index import (
    get_vector_index,
    observation_vector_id,
    vectorize_journal,
    vectorize_observation,
)

WRITE_TYPES = ("entity", "observation", "relation", "journal", "note")
DEFAULT_CONTEXT = "default"


def get_or_create_entity(db, name: str, entity_type: str, context: str) -> Entity:
    """Insert-or-get on (name, context); an existing entity keeps its type."""
    entity = (
        db.query(Entity)
        .filter(Entity.name == name, Entity.context == context)
        .first()
    )
    if entity is not None:
        return entity
    entity = Entity(name=name, entity_type=entity_type, context=context)
    db.add(entity)
    try:
        db.commit()
        db.refresh(entity)
    except IntegrityError as exc:
        db.rollback()
        entity = (
            db.query(Entity)
            .filter(Entity.name == name, Entity.context == context)
            .first()
        )
        if entity is None:
            raise exc
    return entity


def _store_observations(
    db,
    entity: Entity,
    observations: List[str],
    salience: str,
    emotion: Optional[str],
    weight: str,
) -> dict:
    stored_ids: list[int] = []
    vectorized = 0
    for content in observations:
        observation = Observation(
            entity_id=entity.id,
            content=content,
            salience=salience,
            emotion=emotion,
            weight=weight,
        )
        db.add(observation)
        try:
            db.commit()
            db.refresh(observation)
        except SQLAlchemyError as exc:
            db.rollback()
            raise UpstreamUnavailable(
                "memory store unavailable",
                data={
                    "applied": len(stored_ids),
                    "requested": len(observations),
                    "observation_ids": stored_ids,
                },
            ) from exc
        stored_ids.append(observation.id)
        if vectorize_observation(db, observation, entity):
            vectorized += 1

    if vectorized < len(stored_ids):
        logger.warning(
            "observations_not_vectorized",
            extra={"entity_id": entity.id, "missing": len(stored_ids) - vectorized},
        )
    return {
        "stored": len(stored_ids),
        "vectorized": vectorized,
        "observation_ids": stored_ids,
    }


def _validate_observation_fields(
    observations: Optional[List[str]],
    salience: str,
    emotion: Optional[str],
    weight: str,
) -> None:
    _validate_string_list(observations, "observations", MAX_LIST_ITEMS, MAX_TEXT_LENGTH)
    _validate_required_text(salience, "salience", MAX_SHORT_TEXT_LENGTH)
    _validate_optional_text(emotion, "emotion", MAX_SHORT_TEXT_LENGTH)
    _validate_choice(weight, "weight", WEIGHT_VALUES)


def _write_entity(db, params: dict) -> dict:
    name = params.get("name")
    entity_type = params.get("entity_type") or "concept"
    context = params.get("context") or DEFAULT_CONTEXT
    observations = params.get("observations") or []
    salience = params.get("salience") or "active"
    emotion = params.get("emotion")
    weight = params.get("weight") or "medium"

    _validate_required_text(name, "name", MAX_SHORT_TEXT_LENGTH)
    _validate_required_text(entity_type, "entity_type", MAX_SHORT_TEXT_LENGTH)
    _validate_required_text(context, "context", MAX_SHORT_TEXT_LENGTH)
    _validate_observation_fields(observations, salience, emotion, weight)

    entity = get_or_create_entity(db, name, entity_type, context)
    result = _store_observations(db, entity, observations, salience, emotion, weight)
    return {
        "status": "stored",
        "type": "entity",
        "entity_id": entity.id,
        "name": entity.name,
        "entity_type": entity.entity_type,
        "context": entity.context,
        **result,
    }


def _write_observation(db, params: dict) -> dict:
    entity_name = params.get("entity_name")
    context = params.get("context") or DEFAULT_CONTEXT
    observations = params.get("observations") or []
    salience = params.get("salience") or "active"
    emotion = params.get("emotion")
    weight = params.get("weight") or "medium"

    _validate_required_text(entity_name, "entity_name", MAX_SHORT_TEXT_LENGTH)
    _validate_required_text(context, "context", MAX_SHORT_TEXT_LENGTH)
    if not observations:
        raise ValidationIssue(
            "observations must be a non-empty list",
            field="observations",
            error_type="required",
        )
    _validate_observation_fields(observations, salience, emotion, weight)

    entity = (
        db.query(Entity)
        .filter(Entity.name == entity_name, Entity.context == context)
        .first()
    )
    if entity is None:
        raise NotFoundError(
            f"Entity '{entity_name}' not found in context '{context}'",
            resource="entity",
            field="entity_name",
        )
    result = _store_observations(db, entity, observations, salience, emotion, weight)
    return {
        "status": "stored",
        "type": "observation",
        "entity_id": entity.id,
        "entity_name": entity.name,
        "context": entity.context,
        **result,
    }


def _ref_exists(db, ref: EntityRef) -> bool:
    return (
        db.query(Entity.id)
        .filter(Entity.name == ref.name, Entity.context == ref.context)
        .first()
        is not None
    )


def _write_relation(db, params: dict) -> dict:
    from_entity = params.get("from_entity")
    to_entity = params.get("to_entity")
    relation_type = params.get("relation_type")
    from_context = params.get("from_context") or DEFAULT_CONTEXT
    to_context = params.get("to_context") or DEFAULT_CONTEXT
    store_in = params.get("store_in") or DEFAULT_CONTEXT

    _validate_required_text(from_entity, "from_entity", MAX_SHORT_TEXT_LENGTH)
    _validate_required_text(to_entity, "to_entity", MAX_SHORT_TEXT_LENGTH)
    _validate_required_text(relation_type, "relation_type", MAX_SHORT_TEXT_LENGTH)
    for field, value in (
        ("from_context", from_context),
        ("to_context", to_context),
        ("store_in", store_in),
    ):
        _validate_required_text(value, field, MAX_SHORT_TEXT_LENGTH)

    source = EntityRef(from_entity, from_context)
    target = EntityRef(to_entity, to_context)
    relation = Relation.between(source, target, relation_type, store_in=store_in)
    db.add(relation)
    db.commit()
    db.refresh(relation)
    return {
        "status": "stored",
        "type": "relation",
        "relation_id": relation.id,
        "from_entity": from_entity,
        "to_entity": to_entity,
        "relation_type": relation_type,
        "stored": 1,
        "unresolved": [ref.name for ref in dict.fromkeys((source, target)) if not _ref_exists(db, ref)],
    }


def _write_journal(db, params: dict) -> dict:
    entry = params.get("entry")
    tags = params.get("tags") or []
    emotion = params.get("emotion")

    _validate_required_text(entry, "entry", MAX_TEXT_LENGTH)
    _validate_string_list(tags, "tags", MAX_LIST_ITEMS, MAX_SHORT_TEXT_LENGTH)
    _validate_optional_text(emotion, "emotion", MAX_SHORT_TEXT_LENGTH)

    entry_date = utcnow().date().isoformat()
    journal = Journal(entry_date=entry_date, content=entry, tags=list(tags), emotion=emotion)
    db.add(journal)
    db.commit()
    db.refresh(journal)
    vectorized = vectorize_journal(db, journal)
    return {
        "status": "stored",
        "type": "journal",
        "journal_id": journal.id,
        "entry_date": entry_date,
        "stored": 1,
        "vectorized": 1 if vectorized else 0,
    }


def _write_note(db, params: dict) -> dict:
    note = write_note(
        db,
        params.get("content"),
        weight=params.get("weight") or "medium",
        emotion=params.get("emotion"),
    )
    return {
        "status": "stored",
        "type": "note",
        "note_id": note.id,
        "weight": note.weight,
        "charge": note.charge,
        "sit_count": note.sit_count,
        "stored": 1,
    }


_WRITERS = {
    "entity": _write_entity,
    "observation": _write_observation,
    "relation": _write_relation,
    "journal": _write_journal,
    "note": _write_note,
}


@service_tool
def mind_write(
    type: str,
    name: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_name: Optional[str] = None,
    observations: Optional[List[str]] = None,
    context: Optional[str] = None,
    salience: Optional[str] = None,
    emotion: Optional[str] = None,
    weight: Optional[str] = None,
    from_entity: Optional[str] = None,
    to_entity: Optional[str] = None,
    relation_type: Optional[str] = None,
    from_context: Optional[str] = None,
    to_context: Optional[str] = None,
    store_in: Optional[str] = None,
    entry: Optional[str] = None,
    tags: Optional[List[str]] = None,
    content: Optional[str] = None,
) -> dict:
    """
    Write to memory.

    Args:
        type: One of entity, observation, relation, journal, note
        name: Entity name (entity)
        entity_type: Entity type, default "concept" (entity)
        entity_name: Target entity (observation)
        observations: Observation texts (entity, observation)
        context: Entity context, default "default"
        salience: Observation salience, default "active"
        emotion: Emotion tag (observations, journals, notes)
        weight: light / medium / heavy (observations, notes)
        from_entity: Relation source name
        to_entity: Relation target name
        relation_type: Relation label
        from_context: Source context
        to_context: Target context
        store_in: Context the relation is filed under
        entry: Journal text
        tags: Journal tags
        content: Note text

    Returns:
        What was stored; observation writes report stored and vectorized counts
    """
    if type is None:
        raise ValidationIssue("type is required", field="type", error_type="required")
    _validate_choice(type, "type", WRITE_TYPES)
    params = {
        "name": name,
        "entity_type": entity_type,
        "entity_name": entity_name,
        "observations": observations,
        "context": context,
        "salience": salience,
        "emotion": emotion,
        "weight": weight,
        "from_entity": from_entity,
        "to_entity": to_entity,
        "relation_type": relation_type,
        "from_context": from_context,
        "to_context": to_context,
        "store_in": store_in,
        "entry": entry,
        "tags": tags,
        "content": content,
    }
    db = DB.SessionLocal()
    try:
        return _WRITERS[type](db, params)
    finally:
        db.close()


# =============================================================================
# Read
# =============================================================================

@service_tool
def mind_list_entities(
    entity_type: Optional[str] = None,
    context: Optional[str] = None,
    limit: int = 50,
) -> dict:
    """List entities, newest first."""
    _validate_optional_text(entity_type, "entity_type", MAX_SHORT_TEXT_LENGTH)
    _validate_optional_text(context, "context", MAX_SHORT_TEXT_LENGTH)
    _validate_limit(limit, "limit", MAX_RESULT_LIMIT)

    db = DB.SessionLocal()
    try:
        query = db.query(Entity)
        if entity_type:
            query = query.filter(Entity.entity_type == entity_type)
        if context:
            query = query.filter(Entity.context == context)
        entities = query.order_by(Entity.created_at.desc(), Entity.id.desc()).limit(limit).all()
        return {
            "status": "ok",
            "count": len(entities),
            "entities": [
                {
                    "id": e.id,
                    "name": e.name,
                    "entity_type": e.entity_type,
                    "context": e.context,
                    "created_at": isoformat(e.created_at),
                }
                for e in entities
            ],
        }
    finally:
        db.close()


@service_tool
def mind_read_entity(name: str, context: Optional[str] = None) -> dict:
    """
    Read one entity with its observations and relations.

    Without a context, the newest entity with that name wins.
    """
    _validate_required_text(name, "name", MAX_SHORT_TEXT_LENGTH)
    _validate_optional_text(context, "context", MAX_SHORT_TEXT_LENGTH)

    db = DB.SessionLocal()
    try:
        query = db.query(Entity).filter(Entity.name == name)
        if context:
            query = query.filter(Entity.context == context)
        entity = query.order_by(Entity.created_at.desc(), Entity.id.desc()).first()
        if entity is None:
            raise NotFoundError(f"Entity '{name}' not found", resource="entity", field="name")

        observations = (
            db.query(Observation)
            .filter(Observation.entity_id == entity.id)
            .order_by(Observation.added_at.desc(), Observation.id.desc())
            .all()
        )
        outgoing = (
            db.query(Relation)
            .filter(Relation.from_entity == name)
            .order_by(Relation.id.asc())
            .all()
        )
        incoming = (
            db.query(Relation)
            .filter(Relation.to_entity == name)
            .order_by(Relation.id.asc())
            .all()
        )
        return {
            "status": "ok",
            "entity": {
                "id": entity.id,
                "name": entity.name,
                "entity_type": entity.entity_type,
                "context": entity.context,
                "created_at": isoformat(entity.created_at),
            },
            "observations": [
                {
                    "id": obs.id,
                    "content": obs.content,
                    "salience": obs.salience,
                    "emotion": obs.emotion,
                    "weight": obs.weight,
                    "added_at": isoformat(obs.added_at),
                }
                for obs in observations
            ],
            "relations": {
                "outgoing": [
                    {
                        "relation_type": r.relation_type,
                        "to_entity": r.target.name,
                        "to_context": r.target.context,
                        "resolved": _ref_exists(db, r.target),
                    }
                    for r in outgoing
                ],
                "incoming": [
                    {
                        "relation_type": r.relation_type,
                        "from_entity": r.source.name,
                        "from_context": r.source.context,
                        "resolved": _ref_exists(db, r.source),
                    }
                    for r in incoming
                ],
            },
        }
    finally:
        db.close()


# =============================================================================
# Edit / delete
# =============================================================================

def _find_observation(db, observation_id: Optional[int], text_match: Optional[str]) -> Observation:
    if observation_id is not None:
        observation = db.query(Observation).filter(Observation.id == observation_id).first()
        field = "observation_id"
    else:
        observation = (
            db.query(Observation)
            .filter(Observation.content.ilike(f"%{text_match}%"))
            .order_by(Observation.added_at.desc(), Observation.id.desc())
            .first()
        )
        field = "text_match"
    if observation is None:
        raise NotFoundError("Observation not found", resource="observation", field=field)
    return observation


@service_tool
def mind_edit(
    observation_id: Optional[int] = None,
    text_match: Optional[str] = None,
    new_content: Optional[str] = None,
    new_weight: Optional[str] = None,
    new_emotion: Optional[str] = None,
) -> dict:
    """
    Edit an observation found by id or by the newest content match.

    A content change re-embeds the observation.
    """
    _validate_optional_id(observation_id, "observation_id")
    _validate_optional_text(text_match, "text_match", MAX_TEXT_LENGTH)
    _validate_optional_text(new_content, "new_content", MAX_TEXT_LENGTH)
    _validate_choice(new_weight, "new_weight", WEIGHT_VALUES)
    _validate_optional_text(new_emotion, "new_emotion", MAX_SHORT_TEXT_LENGTH)
    if observation_id is None and not (text_match and text_match.strip()):
        raise ValidationIssue(
            "Must provide observation_id or text_match",
            field="observation_id",
            error_type="required",
        )
    if not (new_content or new_weight or new_emotion):
        raise ValidationIssue(
            "No updates provided",
            field="new_content",
            error_type="required",
        )

    db = DB.SessionLocal()
    try:
        observation = _find_observation(db, observation_id, text_match)
        old_content = observation.content
        if new_content:
            observation.content = new_content
        if new_weight:
            observation.weight = new_weight
        if new_emotion:
            observation.emotion = new_emotion
        observation.updated_at = utcnow()
        db.commit()
        db.refresh(observation)

        revectorized = False
        if new_content:
            revectorized = vectorize_observation(db, observation, observation.entity)
        return {
            "status": "updated",
            "observation_id": observation.id,
            "old_preview": preview(old_content, 50),
            "new_preview": preview(observation.content, 50),
            "weight": observation.weight,
            "emotion": observation.emotion,
            "revectorized": revectorized,
        }
    finally:
        db.close()


def _delete_vectors(db, vector_ids: list[str]) -> int:
    if not vector_ids:
        return 0
    try:
        return get_vector_index(db).delete(vector_ids)
    except UpstreamUnavailable:
        logger.warning("vector_delete_failed", extra={"count": len(vector_ids)})
        return 0


@service_tool
def mind_delete(
    observation_id: Optional[int] = None,
    text_match: Optional[str] = None,
    entity_name: Optional[str] = None,
    context: Optional[str] = None,
) -> dict:
    """
    Delete an observation (by id or newest content match) or a whole entity.

    Deleting an entity removes its observations, every relation naming it
    in either direction, and the entity itself.
    """
    _validate_optional_id(observation_id, "observation_id")
    _validate_optional_text(text_match, "text_match", MAX_TEXT_LENGTH)
    _validate_optional_text(entity_name, "entity_name", MAX_SHORT_TEXT_LENGTH)
    _validate_optional_text(context, "context", MAX_SHORT_TEXT_LENGTH)
    has_text = bool(text_match and text_match.strip())
    has_entity = bool(entity_name and entity_name.strip())
    if observation_id is None and not has_text and not has_entity:
        raise ValidationIssue(
            "Must provide observation_id, text_match, or entity_name",
            field="observation_id",
            error_type="required",
        )

    db = DB.SessionLocal()
    try:
        if observation_id is not None or has_text:
            observation = _find_observation(db, observation_id, text_match if has_text else None)
            vector_id = observation_vector_id(observation.entity_id, observation.id)
            result = {
                "status": "deleted",
                "target": "observation",
                "observation_id": observation.id,
                "content_preview": preview(observation.content, 50),
            }
            db.delete(observation)
            db.commit()
            result["vectors_deleted"] = _delete_vectors(db, [vector_id])
            return result

        context = context or DEFAULT_CONTEXT
        entity = (
            db.query(Entity)
            .filter(Entity.name == entity_name, Entity.context == context)
            .first()
        )
        if entity is None:
            raise NotFoundError(
                f"Entity '{entity_name}' not found in context '{context}'",
                resource="entity",
                field="entity_name",
            )
        observation_ids = [
            row[0]
            for row in db.query(Observation.id).filter(Observation.entity_id == entity.id).all()
        ]
        db.query(Observation).filter(Observation.entity_id == entity.id).delete(
            synchronize_session=False
        )
        relations_deleted = (
            db.query(Relation)
            .filter(or_(Relation.from_entity == entity_name, Relation.to_entity == entity_name))
            .delete(synchronize_session=False)
        )
        entity_id = entity.id
        db.query(Entity).filter(Entity.id == entity_id).delete(synchronize_session=False)
        db.commit()
        vectors_deleted = _delete_vectors(
            db, [observation_vector_id(entity_id, obs_id) for obs_id in observation_ids]
        )
        return {
            "status": "deleted",
            "target": "entity",
            "entity_name": entity_name,
            "context": context,
            "observations_deleted": len(observation_ids),
            "relations_deleted": relations_deleted,
            "vectors_deleted": vectors_deleted,
        }
    finally:
        db.close()
