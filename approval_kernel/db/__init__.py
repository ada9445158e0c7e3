"""Database layer - engine, base classes, types, and transactions."""

from approval_kernel.db.base import UUID, Base, UTCDateTime, UUIDString
from approval_kernel.db.engine import build_engine, create_tables, drop_tables
from approval_kernel.db.transactions import is_retryable_conflict, run_in_transaction

__all__ = [
    "Base",
    "UTCDateTime",
    "UUID",
    "UUIDString",
    "build_engine",
    "create_tables",
    "drop_tables",
    "is_retryable_conflict",
    "run_in_transaction",
]
