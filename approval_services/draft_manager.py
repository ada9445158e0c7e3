"""
approval_services.draft_manager -- Draft Manager facade.

Responsibility:
    The callable surface of the approval engine.  Orchestrates the route
    instantiator, stage executor, status aggregator and action recorder
    behind create / save / submit / act / comment / cancel / delete, and
    exposes the read API (snapshot, history, listings, statistics, history
    verification and replay).

Architecture position:
    Services -- stateful orchestration over the kernel.  Owns transaction
    boundaries: every mutating operation runs in its own transaction,
    obtained from a session factory, committed here and only here.

Invariants enforced:
    - Atomicity: each operation's reads and writes of Draft, Route, Stage,
      Approver and Action rows happen in one transaction.
    - Per-draft serialization: the draft row is locked (SELECT ... FOR
      UPDATE; BEGIN IMMEDIATE on SQLite) before any state is read, and its
      version column catches writers that bypassed the lock.
    - Bounded retry: serialization failures retry up to ``max_attempts``,
      then raise ConcurrencyConflictError.  Domain errors never retry.
    - Post-commit dispatch: status-change listeners run only after commit;
      their failures are logged and never undo or retry the transition.
    - Explicit actor: every mutating operation takes the actor id as an
      argument; nothing is read from ambient context.

Failure modes:
    - DraftNotFoundError, ApproverNotFoundError, CategoryNotFoundError.
    - InactiveCategoryError, route validation errors, TemplateNotFoundError.
    - InvalidDraftTransitionError, StageAlreadyResolvedError,
      DraftHasHistoryError.
    - NotDraftOwnerError, ApproverNotEligibleError.
    - ConcurrencyConflictError after exhausted retries.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Iterator
from datetime import datetime
from typing import TYPE_CHECKING, Any, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from approval_engines.replay import ReplayReport, compare_replay, replay_history
from approval_kernel.db.transactions import run_in_transaction
from approval_kernel.domain.approval import (
    DEFAULT_SYSTEM_ACTOR_ID,
    ActionKind,
    ActionRecord,
    Decision,
    DraftInfo,
    DraftSnapshot,
    DraftStatistics,
    DraftStatus,
    DraftStatusChange,
    DraftStatusListener,
    IdentityProvider,
    RouteSpec,
    StageOutcome,
    TemplateProvider,
    can_transition,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import (
    ApproverNotEligibleError,
    ApproverNotFoundError,
    CategoryNotFoundError,
    DraftHasHistoryError,
    DraftNotFoundError,
    InactiveCategoryError,
    InvalidDraftTransitionError,
    NotDraftOwnerError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.models.draft import ApproverModel, DraftModel
from approval_kernel.selectors.draft_selector import DraftSelector
from approval_kernel.services.action_recorder import ActionRecorder
from approval_kernel.services.route_instantiator import RouteInstantiator
from approval_kernel.services.stage_executor import StageExecutor
from approval_kernel.services.status_aggregator import StatusAggregator

if TYPE_CHECKING:
    from approval_config import CompiledApprovalConfig

logger = get_logger("services.draft_manager")

T = TypeVar("T")

_CANCELLABLE = frozenset({
    DraftStatus.DRAFT,
    DraftStatus.SUBMITTED,
    DraftStatus.IN_PROGRESS,
})


class _Unit:
    """Per-attempt state of one mutating operation."""

    def __init__(self, session: Session, clock: Clock):
        self.session = session
        self.events: list[DraftStatusChange] = []
        self._clock = clock
        self._now: datetime | None = None

    @property
    def now(self) -> datetime:
        """Operation timestamp, read on first use.

        Mutating operations lock the draft row before touching this, so
        timestamps follow the order in which transactions hold the lock.
        """
        if self._now is None:
            self._now = self._clock.now()
        return self._now

    def transition(self, draft: DraftModel, target: DraftStatus, operation: str) -> None:
        current = DraftStatus(draft.status)
        if not can_transition(current, target):
            raise InvalidDraftTransitionError(str(draft.id), current.value, operation)
        draft.status = target.value
        draft.updated_at = self.now
        self.events.append(DraftStatusChange(draft.id, current, target, self.now))


class DraftManager:
    """Facade over the approval workflow engine."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        template_provider: TemplateProvider | None = None,
        identity_provider: IdentityProvider | None = None,
        listeners: Iterable[DraftStatusListener] = (),
        clock: Clock | None = None,
        max_attempts: int = 3,
        retry_backoff_ms: int = 50,
        system_actor_id: UUID = DEFAULT_SYSTEM_ACTOR_ID,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._session_factory = session_factory
        self._templates = template_provider
        self._identities = identity_provider
        self._listeners: list[DraftStatusListener] = list(listeners)
        self._clock = clock or SystemClock()
        self._max_attempts = max_attempts
        self._backoff_seconds = retry_backoff_ms / 1000.0
        self._system_actor_id = system_actor_id
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        session_factory: sessionmaker[Session],
        config: CompiledApprovalConfig,
        **kwargs: Any,
    ) -> DraftManager:
        """Build a manager from a CompiledApprovalConfig."""
        settings = config.settings
        kwargs.setdefault("template_provider", config.template_store())
        kwargs.setdefault("max_attempts", settings.max_attempts)
        kwargs.setdefault("retry_backoff_ms", settings.retry_backoff_ms)
        kwargs.setdefault("system_actor_id", settings.system_actor_id)
        return cls(session_factory, **kwargs)

    def subscribe(self, listener: DraftStatusListener) -> None:
        """Register a status-change listener."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------

    def create(
        self,
        owner_id: UUID,
        category: str,
        content: dict[str, Any] | None = None,
        title: str = "",
    ) -> DraftInfo:
        """Create a draft in DRAFT status. No route yet."""
        if self._templates is not None:
            info = self._templates.get_category(category)
            if info is None:
                raise CategoryNotFoundError(category)
            if not info.is_active:
                raise InactiveCategoryError(category)

        def work(unit: _Unit) -> DraftInfo:
            draft = DraftModel(
                owner_id=owner_id,
                category=category,
                title=title,
                content=dict(content or {}),
                status=DraftStatus.DRAFT.value,
                created_at=unit.now,
                updated_at=unit.now,
                action_seq=0,
            )
            unit.session.add(draft)
            unit.session.flush()
            logger.info(
                "draft_created",
                extra={"draft_id": str(draft.id), "category": category},
            )
            return draft.to_dto()

        return self._run("create", None, owner_id, work)

    def save_draft(
        self,
        draft_id: UUID,
        actor_id: UUID,
        content: dict[str, Any],
        title: str | None = None,
    ) -> DraftInfo:
        """Replace the content (and optionally the title) of a DRAFT."""

        def work(unit: _Unit) -> DraftInfo:
            draft = self._lock_draft(unit.session, draft_id)
            self._check_owner(draft, actor_id)
            self._require_status(draft, {DraftStatus.DRAFT}, "save_draft")
            draft.content = dict(content)
            if title is not None:
                draft.title = title
            draft.updated_at = unit.now
            unit.session.flush()
            logger.info("draft_saved", extra={"draft_id": str(draft_id)})
            return draft.to_dto()

        return self._run("save_draft", draft_id, actor_id, work)

    def submit(
        self,
        draft_id: UUID,
        actor_id: UUID,
        route_spec: RouteSpec | None = None,
    ) -> DraftInfo:
        """Instantiate the route, activate its first stage, and start review.

        Without a route spec the category's default template is used.
        """

        def work(unit: _Unit) -> DraftInfo:
            session = unit.session
            draft = self._lock_draft(session, draft_id)
            self._check_owner(draft, actor_id)
            self._require_status(draft, {DraftStatus.DRAFT}, "submit")

            route = RouteInstantiator(session, self._templates, self._clock).instantiate(
                draft.id, route_spec,
            )
            unit.transition(draft, DraftStatus.SUBMITTED, "submit")
            draft.submitted_at = unit.now

            StageExecutor(session, self._clock).activate_next(route)
            unit.transition(draft, DraftStatus.IN_PROGRESS, "submit")

            ActionRecorder(session, self._clock).record(
                draft.id, actor_id, ActionKind.SUBMIT, occurred_at=unit.now,
            )
            logger.info(
                "draft_submitted",
                extra={
                    "draft_id": str(draft.id),
                    "route_id": str(route.id),
                    "template_id": route.template_id,
                },
            )
            return draft.to_dto()

        return self._run("submit", draft_id, actor_id, work)

    def act(
        self,
        draft_id: UUID,
        approver_id: UUID,
        actor_id: UUID,
        decision: Decision,
        comment: str = "",
    ) -> DraftInfo:
        """Apply an approver's decision and advance the route.

        ``actor_id`` must be the approver's user, or the system actor (used
        by external jobs such as deadline auto-approval).
        """

        def work(unit: _Unit) -> DraftInfo:
            session = unit.session
            draft = self._lock_draft(session, draft_id)
            self._require_status(draft, {DraftStatus.IN_PROGRESS}, "act")

            approver = session.get(ApproverModel, approver_id)
            if approver is None or approver.stage.route.draft_id != draft.id:
                raise ApproverNotFoundError(str(draft_id), str(approver_id))
            if actor_id not in (approver.user_id, self._system_actor_id):
                raise ApproverNotEligibleError(
                    str(approver_id), "actor is not the assigned approver",
                )

            stage = approver.stage
            outcome = StageExecutor(session, self._clock).record_approver_action(
                stage, approver, decision, comment,
            )
            if outcome != StageOutcome.CONTINUE:
                old = DraftStatus(draft.status)
                new = StatusAggregator(session, self._clock).advance(stage.route)
                if new != old:
                    unit.events.append(DraftStatusChange(draft.id, old, new, unit.now))
            draft.updated_at = unit.now

            ActionRecorder(session, self._clock).record(
                draft.id,
                actor_id,
                decision.action_kind,
                comment,
                approver_id=approver.id,
                stage_id=stage.id,
                occurred_at=unit.now,
            )
            return draft.to_dto()

        return self._run("act", draft_id, actor_id, work)

    def comment(self, draft_id: UUID, actor_id: UUID, text: str) -> ActionRecord:
        """Append a COMMENT. Allowed at any status; never changes state."""

        def work(unit: _Unit) -> ActionRecord:
            draft = self._lock_draft(unit.session, draft_id)
            draft.updated_at = unit.now
            return ActionRecorder(unit.session, self._clock).record(
                draft.id, actor_id, ActionKind.COMMENT, text, occurred_at=unit.now,
            )

        return self._run("comment", draft_id, actor_id, work)

    def cancel(self, draft_id: UUID, actor_id: UUID, comment: str = "") -> DraftInfo:
        """Cancel a non-terminal draft, skipping everything still pending."""

        def work(unit: _Unit) -> DraftInfo:
            session = unit.session
            draft = self._lock_draft(session, draft_id)
            self._check_owner(draft, actor_id)
            self._require_status(draft, _CANCELLABLE, "cancel")

            if draft.route is not None:
                StageExecutor(session, self._clock).skip_remaining(draft.route)
            unit.transition(draft, DraftStatus.CANCELLED, "cancel")
            draft.completed_at = unit.now

            ActionRecorder(session, self._clock).record(
                draft.id, actor_id, ActionKind.CANCEL, comment, occurred_at=unit.now,
            )
            logger.info("draft_cancelled", extra={"draft_id": str(draft.id)})
            return draft.to_dto()

        return self._run("cancel", draft_id, actor_id, work)

    def delete_draft(self, draft_id: UUID, actor_id: UUID) -> None:
        """Hard-delete a DRAFT that has no recorded history."""

        def work(unit: _Unit) -> None:
            draft = self._lock_draft(unit.session, draft_id)
            self._check_owner(draft, actor_id)
            self._require_status(draft, {DraftStatus.DRAFT}, "delete_draft")
            if draft.action_seq > 0:
                raise DraftHasHistoryError(str(draft_id), draft.action_seq)
            unit.session.delete(draft)
            unit.session.flush()
            logger.info("draft_deleted", extra={"draft_id": str(draft_id)})

        self._run("delete_draft", draft_id, actor_id, work)

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get_draft_snapshot(self, draft_id: UUID) -> DraftSnapshot:
        """Status, stages, approvers and history for UI rendering."""
        with self._session_factory() as session:
            return DraftSelector(session).get_snapshot(draft_id, self._identities)

    def history(self, draft_id: UUID) -> Iterator[ActionRecord]:
        """Lazily yield the draft's actions in order.

        Raises DraftNotFoundError immediately for an unknown draft.  The
        read session behind the iterator stays open until it is exhausted
        or closed; consume it before starting another operation.
        """
        with self._session_factory() as session:
            if session.get(DraftModel, draft_id) is None:
                raise DraftNotFoundError(str(draft_id))
        return self._iter_history(draft_id)

    def _iter_history(self, draft_id: UUID) -> Iterator[ActionRecord]:
        with self._session_factory() as session:
            yield from ActionRecorder(session, self._clock).history(draft_id)

    def list_drafts(
        self,
        owner_id: UUID,
        status: DraftStatus | None = None,
    ) -> list[DraftInfo]:
        """An owner's drafts, newest first."""
        with self._session_factory() as session:
            return DraftSelector(session).list_for_owner(owner_id, status)

    def pending_for_user(self, user_id: UUID) -> list[DraftInfo]:
        """Drafts on which ``user_id`` may act right now."""
        with self._session_factory() as session:
            return DraftSelector(session).pending_for_user(user_id)

    def statistics(
        self,
        category: str | None = None,
        owner_id: UUID | None = None,
        since: datetime | None = None,
    ) -> DraftStatistics:
        """Per-status draft counts."""
        with self._session_factory() as session:
            return DraftSelector(session).status_counts(category, owner_id, since)

    def verify_history(self, draft_id: UUID) -> int:
        """Verify the draft's action hash chain; returns the action count."""
        with self._session_factory() as session:
            if session.get(DraftModel, draft_id) is None:
                raise DraftNotFoundError(str(draft_id))
            return ActionRecorder(session, self._clock).verify_chain(draft_id)

    def replay(self, draft_id: UUID) -> ReplayReport:
        """Rebuild state from history and compare it with stored state."""
        with self._session_factory() as session:
            draft = session.get(DraftModel, draft_id)
            if draft is None:
                raise DraftNotFoundError(str(draft_id))
            stored_status = DraftStatus(draft.status)
            stages = draft.route.to_dto().stages if draft.route is not None else ()
            actions = list(ActionRecorder(session, self._clock).history(draft_id))

        result = replay_history(draft_id, stages, actions)
        report = compare_replay(draft_id, result, stored_status, stages)
        if not report.matches:
            logger.warning(
                "draft_replay_mismatch",
                extra={"draft_id": str(draft_id), "mismatches": list(report.mismatches)},
            )
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        draft_id: UUID | None,
        actor_id: UUID,
        work: Callable[[_Unit], T],
    ) -> T:
        def attempt(session: Session) -> tuple[T, list[DraftStatusChange]]:
            unit = _Unit(session, self._clock)
            return work(unit), unit.events

        with LogContext.bind(operation=operation, draft_id=draft_id, actor_id=actor_id):
            result, events = run_in_transaction(
                self._session_factory,
                attempt,
                operation=operation,
                draft_id=draft_id,
                max_attempts=self._max_attempts,
                backoff_seconds=self._backoff_seconds,
                sleep=self._sleep,
            )
            self._dispatch(events)
        return result

    def _dispatch(self, events: list[DraftStatusChange]) -> None:
        for event in events:
            logger.info(
                "draft_status_changed",
                extra={
                    "draft_id": str(event.draft_id),
                    "old_status": event.old_status.value,
                    "new_status": event.new_status.value,
                },
            )
            for listener in self._listeners:
                try:
                    listener.on_draft_status_changed(
                        event.draft_id, event.old_status, event.new_status,
                    )
                except Exception:
                    logger.exception(
                        "draft_status_listener_failed",
                        extra={
                            "draft_id": str(event.draft_id),
                            "listener": type(listener).__name__,
                            "new_status": event.new_status.value,
                        },
                    )

    @staticmethod
    def _lock_draft(session: Session, draft_id: UUID) -> DraftModel:
        draft = session.execute(
            select(DraftModel).where(DraftModel.id == draft_id).with_for_update()
        ).scalar_one_or_none()
        if draft is None:
            raise DraftNotFoundError(str(draft_id))
        return draft

    def _check_owner(self, draft: DraftModel, actor_id: UUID) -> None:
        if actor_id not in (draft.owner_id, self._system_actor_id):
            raise NotDraftOwnerError(str(draft.id), str(actor_id))

    @staticmethod
    def _require_status(
        draft: DraftModel,
        allowed: Iterable[DraftStatus],
        operation: str,
    ) -> None:
        current = DraftStatus(draft.status)
        if current not in allowed:
            raise InvalidDraftTransitionError(str(draft.id), current.value, operation)
