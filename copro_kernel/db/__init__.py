"""Database layer - engine, base classes, money types."""

from copro_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from copro_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from copro_kernel.db.types import LongText, Money, ShortCode, parse_amount, round_money

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "ShortCode",
    "LongText",
    "parse_amount",
    "round_money",
]
