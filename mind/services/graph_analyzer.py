"""
Relation graph analysis: connectivity, central nodes, relation-type
frequency and weakly-connected clusters.

Works on the full relation set; graph structure is cumulative, so no
time window applies here (unlike warmth scoring).
"""

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Iterable, NamedTuple, Optional

import mind.config as config
from mind.services.shared import round_half_up


class RelationEdge(NamedTuple):
    from_entity: str
    to_entity: str
    relation_type: str


@dataclass
class Connectivity:
    outgoing: int = 0
    incoming: int = 0
    total: int = 0
    relation_types: dict = field(default_factory=dict)  # ordered set

    def add_type(self, relation_type: str) -> None:
        self.relation_types.setdefault(relation_type, None)


@dataclass
class CentralNode:
    name: str
    connections: int
    outgoing: int = 0
    incoming: int = 0
    relation_types: list[str] = field(default_factory=list)


@dataclass
class RelationPattern:
    relation_type: str
    count: int


@dataclass
class RelationCluster:
    entities: list[str]
    density: float = 0.0
    bridge_relations: list[str] = field(default_factory=list)
    size: int = 0

    def __post_init__(self):
        # older snapshots omit size; fall back to the listed members
        if not self.size:
            self.size = len(self.entities)


@dataclass
class GraphSummary:
    total_relations: int = 0
    unique_relation_types: int = 0
    connected_entities: int = 0


@dataclass
class GraphAnalysis:
    connectivity: dict[str, Connectivity]
    central_nodes: list[CentralNode]
    relation_patterns: list[RelationPattern]
    clusters: list[RelationCluster]
    summary: GraphSummary

    def connections(self, name: str) -> int:
        entry = self.connectivity.get(name)
        return entry.total if entry else 0


def _as_edges(relations: Iterable) -> list[RelationEdge]:
    return [
        RelationEdge(rel.from_entity, rel.to_entity, rel.relation_type)
        for rel in relations
    ]


def build_connectivity(edges: Iterable[RelationEdge]) -> dict[str, Connectivity]:
    connectivity: dict[str, Connectivity] = {}
    for edge in edges:
        source = connectivity.setdefault(edge.from_entity, Connectivity())
        target = connectivity.setdefault(edge.to_entity, Connectivity())
        source.outgoing += 1
        source.total += 1
        target.incoming += 1
        target.total += 1
        source.add_type(edge.relation_type)
        target.add_type(edge.relation_type)
    return connectivity


def find_central_nodes(connectivity: dict[str, Connectivity], limit: int) -> list[CentralNode]:
    ranked = sorted(connectivity.items(), key=lambda item: item[1].total, reverse=True)
    return [
        CentralNode(
            name=name,
            connections=entry.total,
            outgoing=entry.outgoing,
            incoming=entry.incoming,
            relation_types=list(entry.relation_types),
        )
        for name, entry in ranked[:limit]
    ]


def count_relation_types(edges: Iterable[RelationEdge], limit: int) -> list[RelationPattern]:
    counts = Counter(edge.relation_type for edge in edges)
    return [
        RelationPattern(relation_type=rel_type, count=count)
        for rel_type, count in counts.most_common(limit)
    ]


def _undirected_adjacency(edges: Iterable[RelationEdge]) -> dict[str, dict]:
    adjacency: dict[str, dict] = {}
    for edge in edges:
        adjacency.setdefault(edge.from_entity, {})
        adjacency.setdefault(edge.to_entity, {})
        if edge.from_entity == edge.to_entity:
            continue
        adjacency[edge.from_entity].setdefault(edge.to_entity, None)
        adjacency[edge.to_entity].setdefault(edge.from_entity, None)
    return adjacency


def connected_components(adjacency: dict[str, dict]) -> list[list[str]]:
    """Breadth-first components; every node is visited exactly once."""
    visited: set[str] = set()
    components: list[list[str]] = []
    for start in adjacency:
        if start in visited:
            continue
        visited.add(start)
        queue = deque([start])
        component: list[str] = []
        while queue:
            node = queue.popleft()
            component.append(node)
            for neighbor in adjacency[node]:
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)
        components.append(component)
    return components


def cluster_density(members: list[str], adjacency: dict[str, dict]) -> float:
    n = len(members)
    if n < 2:
        return 0.0
    # neighbour sets are symmetric, so each undirected edge is seen twice
    edge_count = sum(len(adjacency.get(member, {})) for member in members) // 2
    possible = n * (n - 1) / 2
    return round_half_up(min(1.0, edge_count / possible), 2)


def find_clusters(
    edges: list[RelationEdge],
    connectivity: dict[str, Connectivity],
    member_limit: int,
    relation_type_limit: int,
    cluster_limit: Optional[int] = None,
) -> list[RelationCluster]:
    adjacency = _undirected_adjacency(edges)
    clusters: list[RelationCluster] = []
    for component in connected_components(adjacency):
        if len(component) < 2:
            continue
        bridge: dict = {}
        for member in component:
            for rel_type in connectivity[member].relation_types:
                bridge.setdefault(rel_type, None)
        clusters.append(
            RelationCluster(
                entities=component[:member_limit],
                size=len(component),
                density=cluster_density(component, adjacency),
                bridge_relations=list(bridge)[:relation_type_limit],
            )
        )
    clusters.sort(key=lambda cluster: cluster.size, reverse=True)
    if cluster_limit is not None:
        clusters = clusters[:cluster_limit]
    return clusters


def analyze_relations(
    relations: Iterable,
    *,
    central_limit: Optional[int] = None,
    pattern_limit: Optional[int] = None,
    member_limit: Optional[int] = None,
    relation_type_limit: Optional[int] = None,
    cluster_limit: Optional[int] = None,
) -> GraphAnalysis:
    """
    Analyze a relation set.

    Accepts ORM ``Relation`` rows or ``RelationEdge`` tuples. An empty
    relation set yields empty outputs, not an error.
    """
    edges = _as_edges(relations)
    connectivity = build_connectivity(edges)
    central_nodes = find_central_nodes(
        connectivity,
        config.CENTRAL_NODE_LIMIT if central_limit is None else central_limit,
    )
    patterns = count_relation_types(
        edges,
        config.RELATION_PATTERN_LIMIT if pattern_limit is None else pattern_limit,
    )
    clusters = find_clusters(
        edges,
        connectivity,
        member_limit=config.CLUSTER_MEMBER_LIMIT if member_limit is None else member_limit,
        relation_type_limit=(
            config.CLUSTER_RELATION_TYPE_LIMIT if relation_type_limit is None else relation_type_limit
        ),
        cluster_limit=cluster_limit,
    )
    summary = GraphSummary(
        total_relations=len(edges),
        unique_relation_types=len({edge.relation_type for edge in edges}),
        connected_entities=len(connectivity),
    )
    return GraphAnalysis(
        connectivity=connectivity,
        central_nodes=central_nodes,
        relation_patterns=patterns,
        clusters=clusters,
        summary=summary,
    )
