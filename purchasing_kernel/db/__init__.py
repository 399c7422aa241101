"""Database layer - engine, base classes and row locking."""

from purchasing_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from purchasing_kernel.db.engine import create_tables, get_engine, get_session
from purchasing_kernel.db.locking import lock_rows

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "lock_rows",
]
