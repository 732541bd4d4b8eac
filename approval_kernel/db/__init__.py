"""Database layer - engine, base classes, types."""

from approval_kernel.db.base import Base, UTCDateTime, UUIDString
from approval_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "Base",
    "UTCDateTime",
    "UUIDString",
]
