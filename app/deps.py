"""
Dependency helpers for the standalone FastAPI app.
"""

from __future__ import annotations

from typing import Generator

from fastapi import HTTPException

from mind.db import DB


def get_db_session() -> Generator:
    if DB.SessionLocal is None:
        raise HTTPException(status_code=503, detail={"error": "db_not_initialized"})
    db = DB.SessionLocal()
    try:
        yield db
    finally:
        db.close()
