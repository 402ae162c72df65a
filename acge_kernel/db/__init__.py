"""Database layer - engine and base classes."""

from acge_kernel.db.base import UUID, Base, UUIDString
from acge_kernel.db.engine import (
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
    "UUIDString",
    "UUID",
]
