"""
Subconscious endpoints: trigger a run, read the live snapshot.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError

import mind.config as config
from mind.errors import UpstreamUnavailable
from mind.services.snapshot import load_snapshot_payload
from mind.services.subconscious import run_subconscious_pass
from app.deps import get_db_session


router = APIRouter()


@router.post("/process")
async def process():
    """Run the subconscious pass now and return its summary."""
    try:
        summary = await asyncio.to_thread(run_subconscious_pass)
    except (SQLAlchemyError, UpstreamUnavailable) as exc:
        config.logger.warning(f"Manual subconscious run error: {exc}")
        raise HTTPException(status_code=503, detail={"error": "memory store unavailable"})
    if summary.get("status") == "skipped":
        raise HTTPException(status_code=503, detail=summary)
    return summary


@router.get("/subconscious")
async def read_subconscious(db=Depends(get_db_session)):
    """Latest published snapshot."""
    try:
        payload = load_snapshot_payload(db)
    except SQLAlchemyError:
        raise HTTPException(status_code=503, detail={"error": "memory store unavailable"})
    if payload is None:
        raise HTTPException(status_code=404, detail={"error": "no snapshot published yet"})
    return payload
