"""
Spark: a random handful of observations for associative thinking,
biased toward whatever the subconscious found hot.
"""

from __future__ import annotations

import math
import random
from typing import Optional

from sqlalchemy import func

from mind.db import DB
from mind.models import Entity, Observation, WEIGHT_VALUES
from mind.services.shared import (
    MAX_RESULT_LIMIT,
    MAX_SHORT_TEXT_LENGTH,
    _validate_choice,
    _validate_limit,
    _validate_optional_text,
    service_tool,
)
from mind.services.snapshot import load_snapshot

SPARK_HOT_ENTITY_LIMIT = 5


def split_count(count: int, has_hot: bool) -> tuple[int, int]:
    """(hot, random) split: half rounded up goes to hot entities when any exist."""
    hot = math.ceil(count / 2) if has_hot else 0
    return hot, count - hot


def _spark_query(db):
    return (
        db.query(Observation.id, Observation.content, Observation.weight, Observation.emotion, Entity.name)
        .select_from(Observation)
        .outerjoin(Entity, Observation.entity_id == Entity.id)
    )


def _serialize(row) -> dict:
    obs_id, content, weight, emotion, entity_name = row
    return {
        "id": obs_id,
        "content": content,
        "weight": weight,
        "emotion": emotion,
        "entity": entity_name,
    }


@service_tool
def mind_spark(
    count: int = 5,
    context: Optional[str] = None,
    weight_bias: Optional[str] = None,
) -> dict:
    """
    Pull random observations to spark associations.

    Args:
        count: How many observations
        context: Restrict the random half to one entity context
        weight_bias: Restrict the random half to one weight

    Returns:
        Shuffled observations and the hot entities that biased the pick
    """
    _validate_limit(count, "count", MAX_RESULT_LIMIT)
    _validate_optional_text(context, "context", MAX_SHORT_TEXT_LENGTH)
    _validate_choice(weight_bias, "weight_bias", WEIGHT_VALUES)

    db = DB.SessionLocal()
    try:
        snapshot = load_snapshot(db)
        hot_names = [e.name for e in snapshot.hot_entities[:SPARK_HOT_ENTITY_LIMIT]] if snapshot else []
        hot_count, random_count = split_count(count, bool(hot_names))

        rows = []
        if hot_count:
            rows.extend(
                _spark_query(db)
                .filter(Entity.name.in_(hot_names))
                .order_by(func.random())
                .limit(hot_count)
                .all()
            )
        if random_count:
            query = _spark_query(db)
            if context:
                query = query.filter(Entity.context == context)
            if weight_bias:
                query = query.filter(Observation.weight == weight_bias)
            rows.extend(query.order_by(func.random()).limit(random_count).all())
    finally:
        db.close()

    sparks = [_serialize(row) for row in rows]
    random.shuffle(sparks)
    return {
        "status": "ok" if sparks else "empty",
        "count": len(sparks),
        "biased_toward": hot_names if hot_count else [],
        "sparks": sparks,
    }
