"""
MCP server wiring and tool registration.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, List, Optional

from fastmcp import FastMCP

import mind.config as config
from mind.services import (
    consolidation,
    health,
    memory_writes,
    notes,
    search,
    self_model,
    spark,
    subconscious,
    threads,
)

READ_ONLY_TOOL_ANNOTATIONS = {"readOnlyHint": True}
DESTRUCTIVE_TOOL_ANNOTATIONS = {"destructiveHint": True}

mcp = FastMCP(config.SERVICE_NAME)

_REGISTERED_TOOLS: list[tuple[Callable[..., dict], tuple[Any, ...], dict[str, Any]]] = []
_TOOL_REGISTRY_LOCK = threading.Lock()
_LAST_TOOL_COUNT: Optional[int] = None


def mcp_tool(*args, **kwargs):
    """Register a tool with FastMCP and keep a local registry."""
    def decorator(fn: Callable[..., dict]):
        _REGISTERED_TOOLS.append((fn, args, kwargs))
        mcp.tool(*args, **kwargs)(fn)
        return fn
    return decorator


def registered_tool_names() -> list[str]:
    return sorted(fn.__name__ for fn, _, _ in _REGISTERED_TOOLS)


def _record_tool_inventory_count(tool_count: int) -> None:
    global _LAST_TOOL_COUNT
    with _TOOL_REGISTRY_LOCK:
        if tool_count == 0 and (_LAST_TOOL_COUNT is None or _LAST_TOOL_COUNT > 0):
            config.logger.warning("tool_inventory_empty", extra={"tool_count": tool_count})
        elif tool_count > 0 and _LAST_TOOL_COUNT == 0:
            config.logger.info("tool_inventory_restored", extra={"tool_count": tool_count})
        _LAST_TOOL_COUNT = tool_count


async def tool_inventory_status() -> dict:
    """Return the tools FastMCP currently exposes."""
    tools = await mcp.get_tools()
    tool_names = sorted(tools.keys())
    tool_count = len(tool_names)
    _record_tool_inventory_count(tool_count)
    return {
        "tool_count": tool_count,
        "tools": tool_names,
        "retry_after_seconds": config.TOOL_INVENTORY_RETRY_SECONDS if tool_count == 0 else None,
    }


# =============================================================================
# Session start
# =============================================================================

@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def mind_orient() -> dict:
    return self_model.mind_orient()


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def mind_ground() -> dict:
    return self_model.mind_ground()


# =============================================================================
# Memory
# =============================================================================

@mcp_tool()
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
    return memory_writes.mind_write(
        type=type,
        name=name,
        entity_type=entity_type,
        entity_name=entity_name,
        observations=observations,
        context=context,
        salience=salience,
        emotion=emotion,
        weight=weight,
        from_entity=from_entity,
        to_entity=to_entity,
        relation_type=relation_type,
        from_context=from_context,
        to_context=to_context,
        store_in=store_in,
        entry=entry,
        tags=tags,
        content=content,
    )


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def mind_search(
    query: str,
    context: Optional[str] = None,
    n_results: int = 10,
) -> dict:
    return search.mind_search(query=query, context=context, n_results=n_results)


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def mind_prime(topic: str, depth: int = 10) -> dict:
    return search.mind_prime(topic=topic, depth=depth)


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def mind_spark(
    count: int = 5,
    context: Optional[str] = None,
    weight_bias: Optional[str] = None,
) -> dict:
    return spark.mind_spark(count=count, context=context, weight_bias=weight_bias)


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def mind_list_entities(
    entity_type: Optional[str] = None,
    context: Optional[str] = None,
    limit: int = 50,
) -> dict:
    return memory_writes.mind_list_entities(entity_type=entity_type, context=context, limit=limit)


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def mind_read_entity(name: str, context: Optional[str] = None) -> dict:
    return memory_writes.mind_read_entity(name=name, context=context)


@mcp_tool()
def mind_edit(
    observation_id: Optional[int] = None,
    text_match: Optional[str] = None,
    new_content: Optional[str] = None,
    new_weight: Optional[str] = None,
    new_emotion: Optional[str] = None,
) -> dict:
    return memory_writes.mind_edit(
        observation_id=observation_id,
        text_match=text_match,
        new_content=new_content,
        new_weight=new_weight,
        new_emotion=new_emotion,
    )


@mcp_tool(annotations=DESTRUCTIVE_TOOL_ANNOTATIONS)
def mind_delete(
    observation_id: Optional[int] = None,
    text_match: Optional[str] = None,
    entity_name: Optional[str] = None,
    context: Optional[str] = None,
) -> dict:
    return memory_writes.mind_delete(
        observation_id=observation_id,
        text_match=text_match,
        entity_name=entity_name,
        context=context,
    )


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def mind_consolidate(days: int = 7, context: Optional[str] = None) -> dict:
    return consolidation.mind_consolidate(days=days, context=context)


# =============================================================================
# Threads and self model
# =============================================================================

@mcp_tool()
def mind_thread(
    action: str,
    status: Optional[str] = None,
    content: Optional[str] = None,
    thread_type: Optional[str] = None,
    context: Optional[str] = None,
    priority: Optional[str] = None,
    thread_id: Optional[str] = None,
    resolution: Optional[str] = None,
    new_content: Optional[str] = None,
    new_priority: Optional[str] = None,
    new_status: Optional[str] = None,
    add_note: Optional[str] = None,
) -> dict:
    return threads.mind_thread(
        action=action,
        status=status,
        content=content,
        thread_type=thread_type,
        context=context,
        priority=priority,
        thread_id=thread_id,
        resolution=resolution,
        new_content=new_content,
        new_priority=new_priority,
        new_status=new_status,
        add_note=add_note,
    )


@mcp_tool()
def mind_feel_toward(
    person: str,
    feeling: Optional[str] = None,
    intensity: Optional[str] = None,
) -> dict:
    return self_model.mind_feel_toward(person=person, feeling=feeling, intensity=intensity)


@mcp_tool()
def mind_identity(
    action: str = "read",
    section: Optional[str] = None,
    content: Optional[str] = None,
    weight: float = 0.7,
    connections: str = "",
) -> dict:
    return self_model.mind_identity(
        action=action,
        section=section,
        content=content,
        weight=weight,
        connections=connections,
    )


@mcp_tool()
def mind_context(
    action: str = "read",
    scope: Optional[str] = None,
    content: Optional[str] = None,
    links: Optional[List[str]] = None,
    id: Optional[str] = None,
) -> dict:
    return self_model.mind_context(action=action, scope=scope, content=content, links=links, id=id)


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def mind_health() -> dict:
    return health.mind_health()


# =============================================================================
# Emotional processing
# =============================================================================

@mcp_tool()
def mind_sit(
    sit_note: str,
    note_id: Optional[int] = None,
    text_match: Optional[str] = None,
) -> dict:
    return notes.mind_sit(sit_note=sit_note, note_id=note_id, text_match=text_match)


@mcp_tool()
def mind_resolve(
    resolution_note: str,
    note_id: Optional[int] = None,
    text_match: Optional[str] = None,
    linked_insight_id: Optional[int] = None,
) -> dict:
    return notes.mind_resolve(
        resolution_note=resolution_note,
        note_id=note_id,
        text_match=text_match,
        linked_insight_id=linked_insight_id,
    )


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def mind_surface(limit: int = 10, include_metabolized: bool = False) -> dict:
    return notes.mind_surface(limit=limit, include_metabolized=include_metabolized)


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def mind_note_history(note_id: int) -> dict:
    return notes.mind_note_history(note_id=note_id)


# =============================================================================
# Subconscious
# =============================================================================

@mcp_tool()
def mind_process() -> dict:
    return subconscious.mind_process()


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def mind_subconscious() -> dict:
    return subconscious.mind_subconscious()


mcp_stream_app = mcp.http_app(
    path="/",
    transport="streamable-http",
    stateless_http=True,
    json_response=True,
)


class MCPRouteNormalizerASGI:
    """Pure ASGI middleware - no response buffering, SSE-safe."""
    def __init__(self, wrapped_app):
        self.wrapped_app = wrapped_app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope.get("path") == "/mcp":
            scope = dict(scope)
            scope["path"] = "/mcp/"
        await self.wrapped_app(scope, receive, send)
