"""Database layer - engine, base classes and immutability enforcement."""

from stock_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from stock_kernel.db.engine import build_engine, create_tables, session_scope

__all__ = [
    "build_engine",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]
