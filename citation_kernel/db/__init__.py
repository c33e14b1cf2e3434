"""Database layer - engine, base classes, types, and immutability guards."""

from citation_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from citation_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from citation_kernel.db.types import DocumentNo, Money, Sequence

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "Money",
    "Sequence",
    "DocumentNo",
]
