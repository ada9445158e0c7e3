"""
approval_kernel.services.stage_executor -- Stage state machine (persistence).

Responsibility:
    Activate the next stage of a route and apply approver decisions to a
    stage.  The decisions themselves come from approval_engines.stage_rules
    and approval_engines.aggregation; this service writes their results to
    the Stage and Approver rows.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and pure
    engines.  Flushes only; the caller owns the transaction.

Invariants enforced:
    - Eligibility is checked before any row changes.
    - Terminal stages and approvers are never rewritten.
    - Notify-only stages resolve as soon as they are reached.

Failure modes:
    - ApproverNotEligibleError / StageAlreadyResolvedError from the rules.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy.orm import Session

from approval_engines.aggregation import activate_next, cancel_route
from approval_engines.stage_rules import apply_decision
from approval_kernel.domain.approval import (
    Decision,
    StageInfo,
    StageOutcome,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.logging_config import get_logger
from approval_kernel.models.draft import ApproverModel, RouteModel, StageModel

logger = get_logger("services.stage_executor")


def write_stages(route: RouteModel, stages: Iterable[StageInfo]) -> list[StageModel]:
    """Copy stage and approver values onto the route's rows.

    Returns:
        The stage rows whose status changed.
    """
    by_id = {s.id: s for s in route.stages}
    changed: list[StageModel] = []
    for info in stages:
        model = by_id[info.stage_id]
        if model.status != info.status.value:
            changed.append(model)
        model.status = info.status.value
        model.activated_at = info.activated_at
        model.resolved_at = info.resolved_at

        approvers = {a.id: a for a in model.approvers}
        for a_info in info.approvers:
            a_model = approvers[a_info.approver_id]
            a_model.status = a_info.status.value
            a_model.acted_at = a_info.acted_at
            a_model.comment = a_info.comment
            a_model.notified_at = a_info.notified_at
    return changed


class StageExecutor:
    """Applies stage transitions to a route."""

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    def activate_next(self, route: RouteModel) -> list[StageModel]:
        """Activate the lowest PENDING stage, moving through notify-only ones.

        Returns:
            Stage rows this call changed (notify-only stages that resolved
            on the way, then the activated gating stage).
        """
        now = self._clock.now()
        stages, activated = activate_next([s.to_dto() for s in route.stages], now)
        if not activated:
            return []

        write_stages(route, stages)
        self._session.flush()

        activated_ids = {s.stage_id for s in activated}
        models = [s for s in route.stages if s.id in activated_ids]
        for stage in models:
            logger.info(
                "stage_activated",
                extra={
                    "draft_id": str(route.draft_id),
                    "stage_id": str(stage.id),
                    "order_index": stage.order_index,
                    "stage_type": stage.stage_type,
                    "mode": stage.mode,
                    "rule": stage.rule,
                    "status": stage.status,
                },
            )
        return models

    def record_approver_action(
        self,
        stage: StageModel,
        approver: ApproverModel,
        decision: Decision,
        comment: str = "",
    ) -> StageOutcome:
        """Apply one approver's decision to the stage.

        Raises before mutating anything if the approver may not act now.
        """
        now = self._clock.now()
        updated, outcome = apply_decision(
            stage.to_dto(), approver.id, decision, now, comment,
        )
        write_stages(stage.route, [updated])
        self._session.flush()

        logger.info(
            "approver_action_recorded",
            extra={
                "draft_id": str(stage.route.draft_id),
                "stage_id": str(stage.id),
                "approver_id": str(approver.id),
                "decision": decision.value,
                "outcome": outcome.value,
            },
        )
        if outcome != StageOutcome.CONTINUE:
            logger.info(
                "stage_resolved",
                extra={
                    "draft_id": str(stage.route.draft_id),
                    "stage_id": str(stage.id),
                    "order_index": stage.order_index,
                    "status": stage.status,
                },
            )
        return outcome

    def skip_remaining(self, route: RouteModel) -> list[StageModel]:
        """Skip every non-terminal stage and PENDING approver of the route."""
        stages = cancel_route([s.to_dto() for s in route.stages], self._clock.now())
        changed = write_stages(route, stages)
        self._session.flush()
        if changed:
            logger.info(
                "stages_skipped",
                extra={
                    "draft_id": str(route.draft_id),
                    "stage_ids": [str(s.id) for s in changed],
                },
            )
        return changed
