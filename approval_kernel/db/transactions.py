"""
Module: approval_kernel.db.transactions
Responsibility: Run one unit of work in its own transaction, retrying it a
    bounded number of times when it loses a serialization race.
Architecture position: Kernel > DB.  Used by the draft manager, which owns
    transaction boundaries; services only flush.

Invariants enforced:
    - Every attempt uses a fresh session, so no ORM state from a rolled-back
      attempt leaks into the next one.
    - Only serialization failures retry: StaleDataError (optimistic version
      check), deadlock, serialization failure, lock-not-available and SQLite
      busy errors.  Domain errors propagate after a single rollback.
    - Exhausted retries raise ConcurrencyConflictError; an action is never
      silently dropped.
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from approval_kernel.exceptions import ConcurrencyConflictError
from approval_kernel.logging_config import get_logger

logger = get_logger("db.transactions")

T = TypeVar("T")

# PostgreSQL SQLSTATEs: serialization_failure, deadlock_detected,
# lock_not_available
_RETRYABLE_PGCODES = frozenset({"40001", "40P01", "55P03"})

_RETRYABLE_MESSAGES = (
    "deadlock",
    "could not serialize",
    "database is locked",
    "database table is locked",
)


def is_retryable_conflict(exc: BaseException) -> bool:
    """Return True if ``exc`` is a lost serialization race."""
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, OperationalError):
        pgcode = getattr(exc.orig, "pgcode", None)
        if pgcode in _RETRYABLE_PGCODES:
            return True
        message = str(exc.orig).lower()
        return any(marker in message for marker in _RETRYABLE_MESSAGES)
    return False


def run_in_transaction(
    session_factory: sessionmaker[Session],
    work: Callable[[Session], T],
    *,
    operation: str,
    draft_id: UUID | None = None,
    max_attempts: int = 3,
    backoff_seconds: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Execute ``work(session)`` and commit, retrying on serialization races.

    Preconditions: ``max_attempts >= 1``.
    Postconditions: On success the transaction is committed and the return
        value of ``work`` is returned.  On failure the transaction is rolled
        back and either the original exception or ConcurrencyConflictError
        is raised.

    Raises:
        ConcurrencyConflictError: every attempt lost a serialization race.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        session = session_factory()
        try:
            result = work(session)
            session.commit()
            return result
        except (StaleDataError, OperationalError) as exc:
            session.rollback()
            if not is_retryable_conflict(exc):
                raise
            if attempt == max_attempts:
                logger.warning(
                    "transaction_conflict_exhausted",
                    extra={
                        "operation": operation,
                        "draft_id": str(draft_id) if draft_id else None,
                        "attempts": attempt,
                    },
                )
                raise ConcurrencyConflictError(
                    operation, str(draft_id), attempt,
                ) from exc
            logger.info(
                "transaction_retry",
                extra={
                    "operation": operation,
                    "draft_id": str(draft_id) if draft_id else None,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "error_type": type(exc).__name__,
                },
            )
            sleep(backoff_seconds * attempt)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    raise AssertionError("unreachable")
