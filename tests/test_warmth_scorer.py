import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "scan")

from mind.services.warmth import (
    RecentMention,
    collect_activity,
    compute_warmth,
    detect_mood,
    score_entities,
)


def _mentions(name, count, emotion=None, context="default", entity_type="person"):
    return [RecentMention(name, entity_type, context, emotion) for _ in range(count)]


def test_warmth_blends_mentions_and_connections():
    mentions = _mentions("Alice", 3, "tender") + _mentions("Bob", 1)
    scores = score_entities(mentions, {"Alice": 1, "Bob": 2, "Carol": 1})

    by_name = {hot.name: hot for hot in scores.hot_entities}
    assert by_name["Alice"].warmth == 0.8
    assert by_name["Bob"].warmth == 0.6
    assert [hot.name for hot in scores.hot_entities] == ["Alice", "Bob"]
    assert by_name["Alice"].mentions == 3
    assert by_name["Bob"].connections == 2
    # Carol has no recent mentions, so she is not scored at all
    assert "Carol" not in by_name


def test_warmth_range_and_zero_case():
    assert compute_warmth(0, 0, 0, 0) == 0.0
    assert compute_warmth(5, 5, 9, 9) == 1.0
    scores = score_entities(_mentions("Solo", 1), {})
    assert 0.0 <= scores.hot_entities[0].warmth <= 1.0
    assert scores.hot_entities[0].warmth == 0.6


def test_hot_entity_limit():
    mentions = []
    for i in range(20):
        mentions += _mentions(f"entity{i}", 1)
    scores = score_entities(mentions, {}, hot_limit=15)
    assert len(scores.hot_entities) == 15


def test_recurring_patterns_threshold():
    mentions = _mentions("Garden", 3) + _mentions("Kitchen", 2)
    scores = score_entities(mentions, {"Garden": 4})
    assert [(p.entity, p.mentions, p.connections, p.pattern) for p in scores.recurring_patterns] == [
        ("Garden", 3, 4, "recurring theme")
    ]


def test_mood_most_frequent_tag_with_first_seen_tiebreak():
    mentions = (
        _mentions("A", 2, "curiosity")
        + _mentions("B", 2, "joy")
        + _mentions("C", 1)
    )
    mood = detect_mood(collect_activity(mentions))
    assert mood.dominant == "curiosity"
    assert mood.confidence == "low"
    assert mood.tagged_mentions == 4


def test_mood_confidence_medium_above_threshold():
    mood = detect_mood(collect_activity(_mentions("A", 6, "tender")))
    assert mood.dominant == "tender"
    assert mood.confidence == "medium"


def test_no_tags_is_neutral():
    mood = detect_mood(collect_activity(_mentions("A", 10)))
    assert mood.dominant == "neutral"
    assert mood.confidence == "low"


def test_context_clusters_group_identical_context_sets():
    mentions = (
        _mentions("A", 1, context="work")
        + _mentions("B", 1, context="work")
        + _mentions("C", 1, context="home")
        + _mentions("D", 1, context="home")
        + _mentions("D", 1, context="work")
    )
    scores = score_entities(mentions, {})
    assert [(c.contexts, c.entities, c.size) for c in scores.context_clusters] == [
        (["work"], ["A", "B"], 2)
    ]
    by_name = {hot.name: hot for hot in scores.hot_entities}
    assert by_name["D"].contexts == ["home", "work"]
