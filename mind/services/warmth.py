"""
Warmth & mood scoring over recent observations.

Warmth blends how often an entity was mentioned inside the recency
window with how connected it is in the relation graph:

    warmth = round(MENTION_WEIGHT * mentions / max_mentions
                   + CONNECTION_WEIGHT * connections / max_connections, 2)
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Mapping, NamedTuple, Optional

import mind.config as config
from mind.services.shared import round_half_up

NEUTRAL_MOOD = "neutral"
RECURRING_THEME = "recurring theme"


class RecentMention(NamedTuple):
    entity_name: str
    entity_type: str
    context: str
    emotion: Optional[str] = None


@dataclass
class EntityActivity:
    entity_type: str
    mentions: int = 0
    contexts: dict = field(default_factory=dict)  # ordered set
    emotions: list[str] = field(default_factory=list)


@dataclass
class HotEntity:
    name: str
    warmth: float
    mentions: int
    connections: int
    entity_type: str = "concept"
    contexts: list[str] = field(default_factory=list)


@dataclass
class RecurringPattern:
    entity: str
    mentions: int
    connections: int
    pattern: str = RECURRING_THEME


@dataclass
class Mood:
    dominant: str = NEUTRAL_MOOD
    confidence: str = "low"
    tagged_mentions: int = 0


@dataclass
class ContextCluster:
    contexts: list[str]
    entities: list[str]
    size: int


@dataclass
class WarmthScores:
    hot_entities: list[HotEntity]
    recurring_patterns: list[RecurringPattern]
    mood: Mood
    context_clusters: list[ContextCluster]


def collect_activity(mentions: Iterable[RecentMention]) -> dict[str, EntityActivity]:
    """Group recent mentions per entity name, keeping first-seen order."""
    activity: dict[str, EntityActivity] = {}
    for mention in mentions:
        entry = activity.get(mention.entity_name)
        if entry is None:
            entry = EntityActivity(entity_type=mention.entity_type)
            activity[mention.entity_name] = entry
        entry.mentions += 1
        entry.contexts.setdefault(mention.context, None)
        if mention.emotion:
            entry.emotions.append(mention.emotion)
    return activity


def compute_warmth(
    mentions: int,
    max_mentions: int,
    connections: int,
    max_connections: int,
    mention_weight: Optional[float] = None,
    connection_weight: Optional[float] = None,
) -> float:
    mention_weight = config.WARMTH_MENTION_WEIGHT if mention_weight is None else mention_weight
    connection_weight = config.WARMTH_CONNECTION_WEIGHT if connection_weight is None else connection_weight
    obs_warmth = mentions / max(max_mentions, 1)
    conn_warmth = connections / max(max_connections, 1)
    combined = mention_weight * obs_warmth + connection_weight * conn_warmth
    return round_half_up(max(0.0, min(1.0, combined)), 2)


def detect_mood(activity: Mapping[str, EntityActivity], confidence_threshold: Optional[int] = None) -> Mood:
    threshold = config.MOOD_CONFIDENCE_THRESHOLD if confidence_threshold is None else confidence_threshold
    emotions = [emotion for entry in activity.values() for emotion in entry.emotions]
    if not emotions:
        return Mood()
    # most_common keeps first-encountered order among equal counts
    dominant, _ = Counter(emotions).most_common(1)[0]
    confidence = "medium" if len(emotions) > threshold else "low"
    return Mood(dominant=dominant, confidence=confidence, tagged_mentions=len(emotions))


def group_by_contexts(
    activity: Mapping[str, EntityActivity],
    cluster_limit: Optional[int] = None,
    member_limit: Optional[int] = None,
) -> list[ContextCluster]:
    cluster_limit = config.CONTEXT_CLUSTER_LIMIT if cluster_limit is None else cluster_limit
    member_limit = config.CONTEXT_CLUSTER_MEMBER_LIMIT if member_limit is None else member_limit
    groups: dict[tuple, list[str]] = {}
    for name, entry in activity.items():
        key = tuple(sorted(entry.contexts))
        groups.setdefault(key, []).append(name)
    clusters = [
        ContextCluster(contexts=list(key), entities=names[:member_limit], size=len(names))
        for key, names in groups.items()
        if len(names) >= 2
    ]
    return clusters[:cluster_limit]


def score_entities(
    mentions: Iterable[RecentMention],
    connections: Mapping[str, int],
    *,
    hot_limit: Optional[int] = None,
    recurring_threshold: Optional[int] = None,
) -> WarmthScores:
    """
    Score entities mentioned inside the recency window.

    ``connections`` maps entity name to total relation connectivity for the
    whole graph; entities missing from it count as 0.
    """
    hot_limit = config.HOT_ENTITY_LIMIT if hot_limit is None else hot_limit
    recurring_threshold = (
        config.RECURRING_MENTION_THRESHOLD if recurring_threshold is None else recurring_threshold
    )
    activity = collect_activity(mentions)
    max_mentions = max((entry.mentions for entry in activity.values()), default=0)
    max_connections = max(connections.values(), default=0)

    scored = [
        HotEntity(
            name=name,
            warmth=compute_warmth(
                entry.mentions,
                max_mentions,
                connections.get(name, 0),
                max_connections,
            ),
            mentions=entry.mentions,
            connections=connections.get(name, 0),
            entity_type=entry.entity_type,
            contexts=list(entry.contexts),
        )
        for name, entry in activity.items()
    ]
    scored.sort(key=lambda item: item.warmth, reverse=True)

    recurring = [
        RecurringPattern(
            entity=name,
            mentions=entry.mentions,
            connections=connections.get(name, 0),
        )
        for name, entry in activity.items()
        if entry.mentions >= recurring_threshold
    ]

    return WarmthScores(
        hot_entities=scored[:hot_limit],
        recurring_patterns=recurring,
        mood=detect_mood(activity),
        context_clusters=group_by_contexts(activity),
    )
