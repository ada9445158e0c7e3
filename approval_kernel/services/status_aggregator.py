"""
approval_kernel.services.status_aggregator -- Draft status roll-up.

Responsibility:
    After a stage resolves, roll the route's stage statuses up into the
    draft's status: activate the next gating stage, approve the draft, or
    reject it and skip what remains.

Architecture position:
    Kernel > Services.  Decisions come from approval_engines.aggregation;
    this service persists them.  Flushes only.

Invariants enforced:
    - Terminal drafts are left unchanged; advance() is idempotent.
    - completed_at is set exactly when the draft reaches APPROVED or
      REJECTED.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from approval_engines.aggregation import advance
from approval_kernel.domain.approval import DraftStatus, TERMINAL_DRAFT_STATUSES
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.logging_config import get_logger
from approval_kernel.models.draft import RouteModel
from approval_kernel.services.stage_executor import write_stages

logger = get_logger("services.status_aggregator")


class StatusAggregator:
    """Derives and stores the draft status of a route."""

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    def advance(self, route: RouteModel) -> DraftStatus:
        """Advance the route and return the draft's resulting status."""
        draft = route.draft
        current = DraftStatus(draft.status)
        if current in TERMINAL_DRAFT_STATUSES:
            return current

        now = self._clock.now()
        progress = advance(current, [s.to_dto() for s in route.stages], now)
        write_stages(route, progress.stages)

        if progress.status != current:
            draft.status = progress.status.value
            draft.completed_at = now
            draft.updated_at = now
            logger.info(
                "draft_route_resolved",
                extra={
                    "draft_id": str(draft.id),
                    "old_status": current.value,
                    "new_status": progress.status.value,
                },
            )
        elif progress.activated:
            logger.debug(
                "route_advanced",
                extra={
                    "draft_id": str(draft.id),
                    "activated": [str(s.stage_id) for s in progress.activated],
                },
            )

        self._session.flush()
        return progress.status
