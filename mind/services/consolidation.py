"""
Consolidation review over a recent window of observations.

Pairs are compared exhaustively (quadratic), which is fine for the small
day-bounded windows this runs on. Similarity is lexical:

    words(x)   = lowercase whitespace tokens longer than DUPLICATE_MIN_WORD_LENGTH
    similarity = |A & B| / max(|A|, |B|)

and a pair is flagged when similarity > DUPLICATE_SIMILARITY_THRESHOLD.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Optional

import mind.config as config
from mind.db import DB
from mind.models import Entity, Observation, Weight, utcnow
from mind.services.shared import (
    MAX_SHORT_TEXT_LENGTH,
    _validate_limit,
    _validate_optional_text,
    percent,
    preview,
    service_tool,
)
from mind.services.snapshot import load_snapshot

UNLINKED_ENTITY = "_unlinked_"


@dataclass
class WindowObservation:
    id: int
    content: str
    weight: Optional[str]
    entity_name: Optional[str]


@dataclass
class DuplicatePair:
    first: WindowObservation
    second: WindowObservation
    similarity: float

    @property
    def percent(self) -> int:
        return percent(self.similarity)


def tokenize(text: str, min_length: Optional[int] = None) -> set[str]:
    min_length = config.DUPLICATE_MIN_WORD_LENGTH if min_length is None else min_length
    return {word for word in (text or "").lower().split() if len(word) > min_length}


def lexical_similarity(words_a: set[str], words_b: set[str]) -> float:
    total = max(len(words_a), len(words_b))
    if total == 0:
        return 0.0
    return len(words_a & words_b) / total


def find_duplicate_pairs(
    observations: list[WindowObservation],
    threshold: Optional[float] = None,
) -> list[DuplicatePair]:
    """Flag likely duplicates in discovery order (i < j, input order)."""
    threshold = config.DUPLICATE_SIMILARITY_THRESHOLD if threshold is None else threshold
    token_sets = [tokenize(obs.content) for obs in observations]
    pairs: list[DuplicatePair] = []
    for i in range(len(observations)):
        for j in range(i + 1, len(observations)):
            similarity = lexical_similarity(token_sets[i], token_sets[j])
            if similarity > threshold:
                pairs.append(DuplicatePair(observations[i], observations[j], similarity))
    return pairs


def group_by_entity(observations: Iterable[WindowObservation]) -> dict[str, list[WindowObservation]]:
    groups: dict[str, list[WindowObservation]] = {}
    for obs in observations:
        groups.setdefault(obs.entity_name or UNLINKED_ENTITY, []).append(obs)
    return groups


def weight_distribution(observations: Iterable[WindowObservation]) -> dict[str, int]:
    counts = {weight.value: 0 for weight in Weight}
    for obs in observations:
        key = obs.weight or Weight.medium.value
        counts[key] = counts.get(key, 0) + 1
    return counts


def _window_observations(db, days: int, context: Optional[str]) -> list[WindowObservation]:
    cutoff = utcnow() - timedelta(days=days)
    query = (
        db.query(Observation.id, Observation.content, Observation.weight, Entity.name)
        .select_from(Observation)
        .outerjoin(Entity, Observation.entity_id == Entity.id)
        .filter(Observation.added_at > cutoff)
    )
    if context:
        query = query.filter(Entity.context == context)
    rows = query.order_by(Observation.added_at.desc(), Observation.id.desc()).all()
    return [WindowObservation(*row) for row in rows]


@service_tool
def mind_consolidate(days: Optional[int] = None, context: Optional[str] = None) -> dict:
    """
    Review recent observations for consolidation.

    Args:
        days: Window size in days (default 7)
        context: Optional entity context filter

    Returns:
        Weight distribution, most active entities, likely duplicates and
        recurring patterns from the latest snapshot
    """
    days = config.CONSOLIDATE_DEFAULT_DAYS if days is None else days
    _validate_limit(days, "days", config.MAX_CONSOLIDATE_DAYS)
    _validate_optional_text(context, "context", MAX_SHORT_TEXT_LENGTH)
    report_limit = config.CONSOLIDATE_REPORT_LIMIT

    db = DB.SessionLocal()
    try:
        observations = _window_observations(db, days, context)
        if not observations:
            return {
                "status": "empty",
                "days": days,
                "context": context,
                "total_observations": 0,
                "message": f"No observations in the last {days} days.",
            }
        snapshot = load_snapshot(db)
    finally:
        db.close()

    groups = group_by_entity(observations)
    most_active = sorted(groups.items(), key=lambda item: len(item[1]), reverse=True)
    duplicates = find_duplicate_pairs(observations)
    recurring = snapshot.recurring_patterns[:report_limit] if snapshot else []

    return {
        "status": "ok",
        "days": days,
        "context": context,
        "total_observations": len(observations),
        "unique_entities": len(groups),
        "weight_distribution": weight_distribution(observations),
        "most_active_entities": [
            {"entity": name, "observations": len(items)}
            for name, items in most_active[:report_limit]
        ],
        "duplicate_count": len(duplicates),
        "duplicates": [
            {
                "first_id": pair.first.id,
                "second_id": pair.second.id,
                "similarity": pair.similarity,
                "similarity_percent": pair.percent,
                "first_preview": preview(pair.first.content, 60),
                "second_preview": preview(pair.second.content, 60),
            }
            for pair in duplicates[:report_limit]
        ],
        "recurring_patterns": [
            {"entity": p.entity, "mentions": p.mentions, "pattern": p.pattern}
            for p in recurring
        ],
    }
