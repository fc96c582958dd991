"""FastAPI dependencies for API routes."""

from __future__ import annotations

from fastapi import Depends, Request

from productsync.server.conflicts import ConflictDetector
from productsync.server.consistency import ConsistencyAuditor
from productsync.server.database import Database
from productsync.server.versioning import VersionCheckedWriter


def get_db(request: Request) -> Database:
    """Get database from app state."""
    db: Database = request.app.state.db
    return db


def get_writer(db: Database = Depends(get_db)) -> VersionCheckedWriter:
    """Version-checked writer bound to the app database."""
    return VersionCheckedWriter(db)


def get_detector(db: Database = Depends(get_db)) -> ConflictDetector:
    """Conflict detector bound to the app database."""
    return ConflictDetector(db)


def get_auditor(db: Database = Depends(get_db)) -> ConsistencyAuditor:
    """Consistency auditor bound to the app database."""
    return ConsistencyAuditor(db)
