"""
approval_engines.stage_rules -- Pure single-stage state machine.

Responsibility:
    Decide, for one stage, which approvers may act now, whether a given
    approver may act, how a decision changes the stage, and how notify-only
    stages resolve.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types and kernel exceptions.
    Every function takes frozen DTOs and returns new DTOs; callers persist
    the differences.

Invariants enforced:
    - SEQUENTIAL eligibility: only the lowest-order PENDING approver of an
      ACTIVE stage may act.
    - PARALLEL eligibility: every PENDING approver of an ACTIVE stage may
      act.
    - Rule ALL: any rejection rejects the stage and skips the remaining
      PENDING approvers; the stage completes only when all approved.
    - Rule ANY: any approval completes the stage and skips the remaining
      PENDING approvers; the stage rejects only when all rejected.
    - Terminal stages never change.

Failure modes:
    - StageAlreadyResolvedError when acting on a terminal stage.
    - ApproverNotEligibleError when the stage is not yet active, the
      approver already acted, or SEQUENTIAL ordering blocks the approver.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID

from approval_kernel.domain.approval import (
    ApproverInfo,
    ApproverStatus,
    Decision,
    StageInfo,
    StageMode,
    StageOutcome,
    StageRule,
    StageStatus,
    TERMINAL_STAGE_STATUSES,
)
from approval_kernel.exceptions import (
    ApproverNotEligibleError,
    StageAlreadyResolvedError,
)


@dataclass(frozen=True)
class StageEvaluation:
    """Outcome of a stage under its rule, plus the approvers to skip."""

    outcome: StageOutcome
    skip_approver_ids: tuple[UUID, ...] = ()


def eligible_approvers(stage: StageInfo) -> tuple[ApproverInfo, ...]:
    """Return the approvers of ``stage`` who may act right now."""
    if stage.status != StageStatus.ACTIVE or not stage.is_gating:
        return ()
    pending = tuple(
        a for a in sorted(stage.approvers, key=lambda a: a.order_index)
        if a.status == ApproverStatus.PENDING
    )
    if stage.mode == StageMode.SEQUENTIAL:
        return pending[:1]
    return pending


def check_eligibility(stage: StageInfo, approver: ApproverInfo) -> None:
    """Raise unless ``approver`` may act on ``stage`` now."""
    if stage.status in TERMINAL_STAGE_STATUSES:
        raise StageAlreadyResolvedError(str(stage.stage_id), stage.status.value)
    if stage.status != StageStatus.ACTIVE:
        raise ApproverNotEligibleError(
            str(approver.approver_id), "stage is not active yet",
        )
    if not stage.is_gating:
        raise ApproverNotEligibleError(
            str(approver.approver_id), "notify-only stages take no decisions",
        )
    if approver.status != ApproverStatus.PENDING:
        raise ApproverNotEligibleError(
            str(approver.approver_id),
            f"approver already resolved as {approver.status.value}",
        )
    eligible_ids = {a.approver_id for a in eligible_approvers(stage)}
    if approver.approver_id not in eligible_ids:
        raise ApproverNotEligibleError(
            str(approver.approver_id),
            "an earlier approver in this sequential stage has not acted",
        )


def evaluate_stage(stage: StageInfo) -> StageEvaluation:
    """Apply the stage's completion rule to its current approver statuses."""
    statuses = [a.status for a in stage.approvers]
    pending_ids = tuple(
        a.approver_id for a in stage.approvers if a.status == ApproverStatus.PENDING
    )

    if stage.rule == StageRule.ALL:
        if ApproverStatus.REJECTED in statuses:
            return StageEvaluation(StageOutcome.REJECTED, pending_ids)
        if statuses and all(s == ApproverStatus.APPROVED for s in statuses):
            return StageEvaluation(StageOutcome.COMPLETED)
        return StageEvaluation(StageOutcome.CONTINUE)

    if ApproverStatus.APPROVED in statuses:
        return StageEvaluation(StageOutcome.COMPLETED, pending_ids)
    if statuses and all(s == ApproverStatus.REJECTED for s in statuses):
        return StageEvaluation(StageOutcome.REJECTED)
    return StageEvaluation(StageOutcome.CONTINUE)


def apply_decision(
    stage: StageInfo,
    approver_id: UUID,
    decision: Decision,
    acted_at: datetime,
    comment: str = "",
) -> tuple[StageInfo, StageOutcome]:
    """Record one approver's decision and resolve the stage if decided.

    Returns:
        The updated stage and its outcome.  On COMPLETED or REJECTED the
        stage is terminal, ``resolved_at`` is set, and the approvers the
        rule short-circuited are SKIPPED.
    """
    approver = _find_approver(stage, approver_id)
    check_eligibility(stage, approver)

    acted = replace(
        approver,
        status=decision.approver_status,
        acted_at=acted_at,
        comment=comment,
    )
    stage = replace(
        stage,
        approvers=tuple(acted if a.approver_id == approver_id else a for a in stage.approvers),
    )

    evaluation = evaluate_stage(stage)
    if evaluation.outcome == StageOutcome.CONTINUE:
        return stage, evaluation.outcome

    skip = set(evaluation.skip_approver_ids)
    stage = replace(
        stage,
        status=(
            StageStatus.COMPLETED
            if evaluation.outcome == StageOutcome.COMPLETED
            else StageStatus.REJECTED
        ),
        resolved_at=acted_at,
        approvers=tuple(
            replace(a, status=ApproverStatus.SKIPPED) if a.approver_id in skip else a
            for a in stage.approvers
        ),
    )
    return stage, evaluation.outcome


def activate_stage(stage: StageInfo, now: datetime) -> StageInfo:
    """Move a PENDING stage to ACTIVE.

    A notify-only stage resolves on activation: its recipients are marked
    notified and SKIPPED (no decision is expected of them) and the stage
    is COMPLETED, or SKIPPED when it has no recipients.
    """
    if stage.status != StageStatus.PENDING:
        return stage
    if stage.is_gating:
        return replace(stage, status=StageStatus.ACTIVE, activated_at=now)
    if not stage.approvers:
        return replace(stage, status=StageStatus.SKIPPED, resolved_at=now)
    return replace(
        stage,
        status=StageStatus.COMPLETED,
        activated_at=now,
        resolved_at=now,
        approvers=tuple(
            replace(a, status=ApproverStatus.SKIPPED, notified_at=now)
            for a in stage.approvers
        ),
    )


def skip_stage(stage: StageInfo, now: datetime) -> StageInfo:
    """Skip a non-terminal stage and all of its PENDING approvers."""
    if stage.status in TERMINAL_STAGE_STATUSES:
        return stage
    return replace(
        stage,
        status=StageStatus.SKIPPED,
        resolved_at=now,
        approvers=tuple(
            replace(a, status=ApproverStatus.SKIPPED)
            if a.status == ApproverStatus.PENDING else a
            for a in stage.approvers
        ),
    )


def _find_approver(stage: StageInfo, approver_id: UUID) -> ApproverInfo:
    for approver in stage.approvers:
        if approver.approver_id == approver_id:
            return approver
    raise ApproverNotEligibleError(str(approver_id), "approver is not part of this stage")
