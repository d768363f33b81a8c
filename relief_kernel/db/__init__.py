"""Database layer - engine, base classes, column types."""

from relief_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from relief_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from relief_kernel.db.types import Currency, Money, Quantity, round_money

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Quantity",
    "Currency",
    "round_money",
]
