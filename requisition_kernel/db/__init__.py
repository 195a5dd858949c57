"""Database layer - engine, declarative base, and column types."""

from requisition_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from requisition_kernel.db.engine import (
    build_engine,
    create_tables,
    get_engine,
    get_session,
    session_scope,
)

__all__ = [
    "build_engine",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
]
