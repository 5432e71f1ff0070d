"""
Mood-tinted retrieval.

When the latest snapshot carries a mood with better than "low" confidence,
a few mood words are appended to the query before it is embedded, and the
applied mood is reported back with the results. Zero semantic matches (or
an unavailable index) falls back to a literal substring match over
observations and journals using the untinted query.
"""

from __future__ import annotations

from typing import Optional

from mind.db import DB
from mind.errors import UpstreamUnavailable
from mind.models import Entity, Journal, Observation
from mind.services import embeddings
from mind.services.shared import (
    MAX_QUERY_LENGTH,
    MAX_RESULT_LIMIT,
    MAX_SHORT_TEXT_LENGTH,
    _validate_limit,
    _validate_optional_text,
    _validate_required_text,
    logger,
    percent,
    preview,
    service_tool,
)
from mind.services.snapshot import load_snapshot
from mind.services.vector_index import VectorMatch, get_vector_index, vector_search_enabled
from mind.services.warmth import Mood

MOOD_TINTS = {
    "tender": "warm, gentle, caring, soft",
    "pride": "accomplishment, growth, achievement, recognition",
    "joy": "happiness, delight, pleasure, celebration",
    "curiosity": "wondering, exploring, investigating, discovering",
    "melancholy": "reflective, wistful, quiet, contemplative",
    "intensity": "passionate, urgent, fierce, powerful",
    "gratitude": "thankful, appreciative, blessed, fortunate",
    "longing": "yearning, missing, wanting, desire",
}

PRIME_ENTITY_LIMIT = 5
PRIME_MENTION_LIMIT = 5


def mood_tint(mood: Optional[Mood]) -> Optional[str]:
    """Vocabulary for the mood, or None when the mood should not bias search."""
    if mood is None or mood.confidence == "low":
        return None
    return MOOD_TINTS.get(mood.dominant, mood.dominant)


def tint_query(query: str, tint: Optional[str]) -> str:
    if not tint:
        return query
    return f"{query} (context: {tint})"


def _semantic_matches(db, text: str, top_k: int) -> list[VectorMatch]:
    if not vector_search_enabled():
        return []
    vector = embeddings.embed_text_sync(text)
    return get_vector_index(db).query(vector, top_k, return_metadata=True)


def _serialize_match(match: VectorMatch) -> dict:
    metadata = match.metadata or {}
    return {
        "id": match.id,
        "source": metadata.get("source"),
        "title": metadata.get("entity") or metadata.get("title"),
        "content": metadata.get("content"),
        "context": metadata.get("context"),
        "score": match.score,
        "score_percent": percent(match.score),
    }


def literal_search(db, query: str, limit: int, context: Optional[str] = None) -> list[dict]:
    """Substring match over observation and journal content, no score."""
    pattern = f"%{query}%"
    obs_query = (
        db.query(Observation.id, Observation.content, Entity.id, Entity.name, Entity.context)
        .select_from(Observation)
        .join(Entity, Observation.entity_id == Entity.id)
        .filter(Observation.content.ilike(pattern))
    )
    if context:
        obs_query = obs_query.filter(Entity.context == context)
    observation_rows = (
        obs_query.order_by(Observation.added_at.desc(), Observation.id.desc())
        .limit(limit)
        .all()
    )
    results = [
        {
            "id": f"obs-{entity_id}-{obs_id}",
            "source": "observation",
            "title": name,
            "content": content,
            "context": entity_context,
            "score": None,
        }
        for obs_id, content, entity_id, name, entity_context in observation_rows
    ]

    remaining = limit - len(results)
    if remaining > 0:
        journal_rows = (
            db.query(Journal)
            .filter(Journal.content.ilike(pattern))
            .order_by(Journal.created_at.desc(), Journal.id.desc())
            .limit(remaining)
            .all()
        )
        results.extend(
            {
                "id": f"journal-{journal.id}",
                "source": "journal",
                "title": journal.entry_date,
                "content": journal.content,
                "context": None,
                "score": None,
            }
            for journal in journal_rows
        )
    return results


@service_tool
def mind_search(
    query: str,
    context: Optional[str] = None,
    n_results: int = 10,
) -> dict:
    """
    Semantic search over observations and journals, tinted by current mood.

    Args:
        query: Free-text query
        context: Optional entity context to restrict results to
        n_results: Maximum number of results

    Returns:
        Ranked results (score in [0, 1]); literal fallback results carry no score
    """
    _validate_required_text(query, "query", MAX_QUERY_LENGTH)
    _validate_optional_text(context, "context", MAX_SHORT_TEXT_LENGTH)
    _validate_limit(n_results, "n_results", MAX_RESULT_LIMIT)

    db = DB.SessionLocal()
    try:
        snapshot = load_snapshot(db)
        mood = snapshot.mood if snapshot else None
        tint = mood_tint(mood)
        search_text = tint_query(query, tint)

        degraded_reason = None
        try:
            matches = _semantic_matches(db, search_text, n_results)
        except UpstreamUnavailable as exc:
            logger.warning("semantic_search_unavailable", extra={"detail": str(exc)})
            matches = []
            degraded_reason = str(exc)

        if context:
            matches = [m for m in matches if m.metadata.get("context") in (None, context)]

        if matches:
            mode = "semantic"
            results = [_serialize_match(match) for match in matches]
        else:
            mode = "literal"
            results = literal_search(db, query, n_results, context=context)

        response = {
            "status": "ok",
            "query": query,
            "search_text": search_text,
            "mode": mode,
            "count": len(results),
            "results": results,
        }
        if tint:
            response["mood_tint"] = {
                "mood": mood.dominant,
                "tint": tint,
                "annotation": f"Search tinted by current mood: {mood.dominant}",
            }
        if mode == "literal":
            response["degraded"] = True
            response["fallback"] = "literal"
            if degraded_reason:
                response["degraded_reason"] = degraded_reason
        return response
    finally:
        db.close()


@service_tool
def mind_prime(topic: str, depth: int = 10) -> dict:
    """
    Gather context around a topic before working on it.

    Args:
        topic: Topic to prime on
        depth: Number of semantic matches to pull

    Returns:
        Related memories (semantic), entities named like the topic and recent mentions
    """
    _validate_required_text(topic, "topic", MAX_QUERY_LENGTH)
    _validate_limit(depth, "depth", MAX_RESULT_LIMIT)

    db = DB.SessionLocal()
    try:
        degraded_reason = None
        try:
            matches = _semantic_matches(db, topic, depth)
        except UpstreamUnavailable as exc:
            matches = []
            degraded_reason = str(exc)

        pattern = f"%{topic}%"
        entities = (
            db.query(Entity)
            .filter(Entity.name.ilike(pattern))
            .order_by(Entity.created_at.desc())
            .limit(PRIME_ENTITY_LIMIT)
            .all()
        )
        mentions = (
            db.query(Observation, Entity.name)
            .outerjoin(Entity, Observation.entity_id == Entity.id)
            .filter(Observation.content.ilike(pattern))
            .order_by(Observation.added_at.desc(), Observation.id.desc())
            .limit(PRIME_MENTION_LIMIT)
            .all()
        )
        response = {
            "status": "ok",
            "topic": topic,
            "related_memories": [
                {
                    "id": match.id,
                    "score_percent": percent(match.score),
                    "content": preview(match.metadata.get("content") or match.id, 150),
                }
                for match in matches
            ],
            "related_entities": [
                {"name": e.name, "entity_type": e.entity_type, "context": e.context}
                for e in entities
            ],
            "recent_mentions": [
                {"entity": name, "content": preview(obs.content, 100)}
                for obs, name in mentions
            ],
        }
        if degraded_reason:
            response["degraded"] = True
            response["degraded_reason"] = degraded_reason
        return response
    finally:
        db.close()
