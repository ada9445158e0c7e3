"""
Bounded retry of serialization conflicts.

run_in_transaction retries only lost races (stale version, deadlock,
serialization failure, busy database) and gives up with
ConcurrencyConflictError once max_attempts is exhausted.  Domain errors
propagate after a single attempt.
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from approval_kernel.db.transactions import is_retryable_conflict, run_in_transaction
from approval_kernel.domain.approval import DraftStatus
from approval_kernel.exceptions import ConcurrencyConflictError, DraftNotFoundError
from approval_kernel.models import DraftModel
from approval_services.draft_manager import DraftManager


class _PgError(Exception):
    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


def operational(message, pgcode=None):
    orig = _PgError(message, pgcode) if pgcode else Exception(message)
    return OperationalError("UPDATE drafts ...", {}, orig)


class FlakyWork:
    """Adds a draft, then fails the first ``failures`` attempts."""

    def __init__(self, clock, failures, error=None):
        self.clock = clock
        self.failures = failures
        self.error = error or StaleDataError("version mismatch")
        self.calls = 0

    def __call__(self, session):
        self.calls += 1
        now = self.clock.now()
        session.add(DraftModel(
            owner_id=uuid4(),
            category="leave",
            title="",
            content={},
            status=DraftStatus.DRAFT.value,
            created_at=now,
            updated_at=now,
            action_seq=0,
        ))
        session.flush()
        if self.calls <= self.failures:
            raise self.error
        return self.calls


def draft_count(session_factory):
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(DraftModel))


class TestIsRetryableConflict:

    def test_stale_data(self):
        assert is_retryable_conflict(StaleDataError("x"))

    @pytest.mark.parametrize("pgcode", ["40001", "40P01", "55P03"])
    def test_postgres_conflict_codes(self, pgcode):
        assert is_retryable_conflict(operational("boom", pgcode))

    @pytest.mark.parametrize("message", [
        "database is locked",
        "deadlock detected",
        "could not serialize access due to concurrent update",
    ])
    def test_conflict_messages(self, message):
        assert is_retryable_conflict(operational(message))

    def test_other_operational_errors(self):
        assert not is_retryable_conflict(operational("no such table: drafts"))
        assert not is_retryable_conflict(operational("disk full", "53100"))

    def test_domain_and_integrity_errors(self):
        assert not is_retryable_conflict(DraftNotFoundError("d"))
        assert not is_retryable_conflict(IntegrityError("INSERT", {}, Exception("dup")))


class TestRunInTransaction:

    def test_success_commits(self, session_factory, clock):
        work = FlakyWork(clock, failures=0)
        assert run_in_transaction(session_factory, work, operation="create") == 1
        assert draft_count(session_factory) == 1

    def test_retry_then_success(self, session_factory, clock, captured_logs):
        sleeps = []
        work = FlakyWork(clock, failures=2)

        result = run_in_transaction(
            session_factory, work, operation="act",
            max_attempts=3, backoff_seconds=0.1, sleep=sleeps.append,
        )

        assert result == 3
        # Failed attempts were rolled back
        assert draft_count(session_factory) == 1
        assert sleeps == [pytest.approx(0.1), pytest.approx(0.2)]
        retries = [r for r in captured_logs() if r["message"] == "transaction_retry"]
        assert [r["attempt"] for r in retries] == [1, 2]
        assert retries[0]["error_type"] == "StaleDataError"

    def test_exhausted_retries(self, session_factory, clock, captured_logs):
        draft_id = uuid4()
        work = FlakyWork(clock, failures=10, error=operational("database is locked"))

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            run_in_transaction(
                session_factory, work, operation="act", draft_id=draft_id,
                max_attempts=3, sleep=lambda seconds: None,
            )

        assert exc_info.value.attempts == 3
        assert exc_info.value.operation == "act"
        assert exc_info.value.draft_id == str(draft_id)
        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert work.calls == 3
        assert draft_count(session_factory) == 0
        assert any(r["message"] == "transaction_conflict_exhausted" for r in captured_logs())

    def test_single_attempt(self, session_factory, clock):
        work = FlakyWork(clock, failures=1)
        with pytest.raises(ConcurrencyConflictError):
            run_in_transaction(session_factory, work, operation="act", max_attempts=1)
        assert work.calls == 1

    def test_domain_error_not_retried(self, session_factory, clock):
        work = FlakyWork(clock, failures=5, error=DraftNotFoundError("d"))
        with pytest.raises(DraftNotFoundError):
            run_in_transaction(session_factory, work, operation="act", sleep=pytest.fail)
        assert work.calls == 1
        assert draft_count(session_factory) == 0

    def test_non_conflict_operational_error_not_retried(self, session_factory, clock):
        work = FlakyWork(clock, failures=5, error=operational("no such column"))
        with pytest.raises(OperationalError):
            run_in_transaction(session_factory, work, operation="act", sleep=pytest.fail)
        assert work.calls == 1

    def test_max_attempts_validated(self, session_factory, clock):
        with pytest.raises(ValueError):
            run_in_transaction(session_factory, FlakyWork(clock, 0), operation="x", max_attempts=0)

    def test_manager_rejects_zero_attempts(self, session_factory):
        with pytest.raises(ValueError):
            DraftManager(session_factory, max_attempts=0)
