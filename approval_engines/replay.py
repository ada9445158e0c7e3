"""
approval_engines.replay -- Pure reconstruction of draft state from history.

Responsibility:
    Fold a draft's ordered action history over its route (reset to the
    as-instantiated state) using the same stage and aggregation rules the
    live services apply, and compare the result with stored state.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Round trip: replaying every action of a draft from creation yields the
      draft, stage and approver statuses currently stored.
    - COMMENT actions never change state.

Failure modes:
    - HistoryReplayError if an action cannot apply (for example an approval
      referencing an approver not on the route, or a decision the rules
      would have refused).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from uuid import UUID

from approval_kernel.domain.approval import (
    ActionKind,
    ActionRecord,
    ApproverStatus,
    Decision,
    DraftStatus,
    StageInfo,
    StageOutcome,
    StageStatus,
)
from approval_kernel.exceptions import ApprovalKernelError, HistoryReplayError
from approval_engines.aggregation import advance, cancel_route, start_route
from approval_engines.stage_rules import apply_decision


@dataclass(frozen=True)
class ReplayResult:
    """State reconstructed from an action history."""

    draft_status: DraftStatus
    stages: tuple[StageInfo, ...]
    actions_applied: int

    @property
    def stage_statuses(self) -> dict[UUID, StageStatus]:
        return {s.stage_id: s.status for s in self.stages}

    @property
    def approver_statuses(self) -> dict[UUID, ApproverStatus]:
        return {a.approver_id: a.status for s in self.stages for a in s.approvers}


@dataclass(frozen=True)
class ReplayReport:
    """Comparison of replayed state with stored state."""

    draft_id: UUID
    result: ReplayResult
    mismatches: tuple[str, ...] = ()

    @property
    def matches(self) -> bool:
        return not self.mismatches


def reset_route(stages: Sequence[StageInfo]) -> tuple[StageInfo, ...]:
    """Return the route as it was right after instantiation."""
    return tuple(
        replace(
            stage,
            status=StageStatus.PENDING,
            activated_at=None,
            resolved_at=None,
            approvers=tuple(
                replace(
                    a,
                    status=ApproverStatus.PENDING,
                    acted_at=None,
                    comment="",
                    notified_at=None,
                )
                for a in stage.approvers
            ),
        )
        for stage in sorted(stages, key=lambda s: s.order_index)
    )


def replay_history(
    draft_id: UUID,
    stages: Sequence[StageInfo],
    actions: Iterable[ActionRecord],
) -> ReplayResult:
    """Replay ``actions`` in order over a reset copy of ``stages``.

    Args:
        draft_id: Draft the history belongs to (for error reporting).
        stages: The draft's route stages (any status; they are reset).
        actions: The draft's actions in seq order.
    """
    status = DraftStatus.DRAFT
    current = reset_route(stages)
    applied = 0

    for action in actions:
        applied += 1
        if action.kind == ActionKind.COMMENT:
            continue

        if action.kind == ActionKind.SUBMIT:
            if status != DraftStatus.DRAFT:
                raise HistoryReplayError(
                    str(draft_id), action.seq, f"submit while {status.value}",
                )
            if not current:
                raise HistoryReplayError(
                    str(draft_id), action.seq, "submitted draft has no route",
                )
            progress = start_route(current, action.occurred_at)
            status, current = progress.status, progress.stages
            continue

        if action.kind == ActionKind.CANCEL:
            current = cancel_route(current, action.occurred_at)
            status = DraftStatus.CANCELLED
            continue

        decision = Decision(action.kind.value)
        if action.approver_id is None:
            raise HistoryReplayError(
                str(draft_id), action.seq, "decision without approver",
            )
        index = _stage_index_for(current, action.approver_id)
        if index is None:
            raise HistoryReplayError(
                str(draft_id), action.seq,
                f"approver {action.approver_id} is not on the route",
            )
        try:
            stage, outcome = apply_decision(
                current[index],
                action.approver_id,
                decision,
                action.occurred_at,
                action.comment,
            )
        except ApprovalKernelError as exc:
            raise HistoryReplayError(str(draft_id), action.seq, str(exc)) from exc

        current = current[:index] + (stage,) + current[index + 1:]
        if outcome != StageOutcome.CONTINUE:
            progress = advance(status, current, action.occurred_at)
            status, current = progress.status, progress.stages

    return ReplayResult(draft_status=status, stages=current, actions_applied=applied)


def compare_replay(
    draft_id: UUID,
    result: ReplayResult,
    stored_status: DraftStatus,
    stored_stages: Sequence[StageInfo],
) -> ReplayReport:
    """Report every status that differs between replayed and stored state."""
    mismatches: list[str] = []
    if result.draft_status != stored_status:
        mismatches.append(
            f"draft: replayed {result.draft_status.value}, stored {stored_status.value}"
        )

    replayed_stages = result.stage_statuses
    replayed_approvers = result.approver_statuses
    for stage in stored_stages:
        replayed = replayed_stages.get(stage.stage_id)
        if replayed != stage.status:
            mismatches.append(
                f"stage {stage.order_index}: replayed "
                f"{replayed.value if replayed else None}, stored {stage.status.value}"
            )
        for approver in stage.approvers:
            replayed_a = replayed_approvers.get(approver.approver_id)
            if replayed_a != approver.status:
                mismatches.append(
                    f"approver {approver.approver_id}: replayed "
                    f"{replayed_a.value if replayed_a else None}, "
                    f"stored {approver.status.value}"
                )

    return ReplayReport(draft_id=draft_id, result=result, mismatches=tuple(mismatches))


def _stage_index_for(stages: tuple[StageInfo, ...], approver_id: UUID) -> int | None:
    for index, stage in enumerate(stages):
        if any(a.approver_id == approver_id for a in stage.approvers):
            return index
    return None
