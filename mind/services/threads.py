"""
Threads: intentions and open loops that persist across sessions.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import case

from mind.db import DB
from mind.errors import NotFoundError, ValidationIssue
from mind.models import Thread, ThreadStatus, utcnow
from mind.services.shared import (
    MAX_RESULT_LIMIT,
    MAX_SHORT_TEXT_LENGTH,
    MAX_TEXT_LENGTH,
    _validate_choice,
    _validate_limit,
    _validate_optional_text,
    _validate_required_text,
    generate_id,
    isoformat,
    service_tool,
)

THREAD_ACTIONS = ("list", "add", "resolve", "update")
THREAD_PRIORITIES = ("high", "medium", "low")
THREAD_STATUSES = tuple(item.value for item in ThreadStatus)

PRIORITY_ORDER = {"high": 1, "medium": 2}


def priority_order():
    """SQL ordering expression: high, then medium, then everything else."""
    return case(PRIORITY_ORDER, value=Thread.priority, else_=3)


def serialize_thread(thread: Thread) -> dict:
    return {
        "id": thread.id,
        "thread_type": thread.thread_type,
        "content": thread.content,
        "context": thread.context,
        "priority": thread.priority,
        "status": thread.status,
        "resolution": thread.resolution,
        "created_at": isoformat(thread.created_at),
        "updated_at": isoformat(thread.updated_at),
        "resolved_at": isoformat(thread.resolved_at),
    }


def _get_thread(db, thread_id: Optional[str]) -> Thread:
    _validate_required_text(thread_id, "thread_id", MAX_SHORT_TEXT_LENGTH)
    thread = db.query(Thread).filter(Thread.id == thread_id).first()
    if thread is None:
        raise NotFoundError(f"Thread '{thread_id}' not found", resource="thread", field="thread_id")
    return thread


@service_tool
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
    limit: int = 50,
) -> dict:
    """
    Manage threads.

    Args:
        action: list, add, resolve or update
        status: Filter for list ("active" by default, "all" for every thread)
        content: Thread text (add)
        thread_type: Kind of thread, default "intention" (add)
        context: Free-text context (add)
        priority: high / medium / low, default "medium" (add)
        thread_id: Target thread (resolve, update)
        resolution: How the thread was resolved (resolve)
        new_content: Replacement text (update)
        new_priority: Replacement priority (update)
        new_status: Replacement status (update)
        add_note: Appended to the context on a new line (update)
        limit: Max threads returned by list

    Returns:
        The affected thread(s)
    """
    _validate_required_text(action, "action", MAX_SHORT_TEXT_LENGTH)
    _validate_choice(action, "action", THREAD_ACTIONS)

    db = DB.SessionLocal()
    try:
        if action == "list":
            status = status or ThreadStatus.active.value
            _validate_optional_text(status, "status", MAX_SHORT_TEXT_LENGTH)
            _validate_limit(limit, "limit", MAX_RESULT_LIMIT)
            query = db.query(Thread)
            if status != "all":
                query = query.filter(Thread.status == status)
            threads = query.order_by(Thread.created_at.desc(), Thread.id.desc()).limit(limit).all()
            return {
                "status": "ok",
                "filter": status,
                "count": len(threads),
                "threads": [serialize_thread(t) for t in threads],
            }

        if action == "add":
            if not (content and content.strip()):
                raise ValidationIssue(
                    "content is required for adding a thread",
                    field="content",
                    error_type="required",
                )
            _validate_required_text(content, "content", MAX_TEXT_LENGTH)
            _validate_optional_text(thread_type, "thread_type", MAX_SHORT_TEXT_LENGTH)
            _validate_optional_text(context, "context", MAX_TEXT_LENGTH)
            _validate_choice(priority, "priority", THREAD_PRIORITIES)
            thread = Thread(
                id=generate_id("thread"),
                thread_type=thread_type or "intention",
                content=content,
                context=context,
                priority=priority or "medium",
                status=ThreadStatus.active.value,
            )
            db.add(thread)
            db.commit()
            db.refresh(thread)
            return {"status": "created", "thread": serialize_thread(thread)}

        if action == "resolve":
            _validate_optional_text(resolution, "resolution", MAX_TEXT_LENGTH)
            thread = _get_thread(db, thread_id)
            now = utcnow()
            thread.status = ThreadStatus.resolved.value
            thread.resolution = resolution
            thread.resolved_at = now
            thread.updated_at = now
            db.commit()
            db.refresh(thread)
            return {"status": "resolved", "thread": serialize_thread(thread)}

        # update
        _validate_optional_text(new_content, "new_content", MAX_TEXT_LENGTH)
        _validate_choice(new_priority, "new_priority", THREAD_PRIORITIES)
        _validate_choice(new_status, "new_status", THREAD_STATUSES)
        _validate_optional_text(add_note, "add_note", MAX_TEXT_LENGTH)
        thread = _get_thread(db, thread_id)
        if new_content:
            thread.content = new_content
        if new_priority:
            thread.priority = new_priority
        if new_status:
            thread.status = new_status
        if add_note:
            thread.context = f"{thread.context}\n{add_note}" if thread.context else add_note
        thread.updated_at = utcnow()
        db.commit()
        db.refresh(thread)
        return {"status": "updated", "thread": serialize_thread(thread)}
    finally:
        db.close()
