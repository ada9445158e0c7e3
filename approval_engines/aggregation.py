"""
approval_engines.aggregation -- Pure route progression and draft status.

Responsibility:
    Roll per-stage statuses up into the draft's status and decide whether
    the route continues (activate the next stage), finishes (APPROVED),
    or halts (REJECTED).  Also computes route activation and cancellation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types and sibling engines.

Invariants enforced:
    - At most one ACTIVE stage per route at any time.
    - A REJECTED gating stage rejects the draft and skips every remaining
      non-terminal stage.
    - With no gating stage left PENDING or ACTIVE, the draft is APPROVED
      and trailing notify-only stages are resolved.
    - Terminal drafts are never changed (advance is idempotent).
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from approval_kernel.domain.approval import (
    DraftStatus,
    StageInfo,
    StageStatus,
    TERMINAL_DRAFT_STATUSES,
)
from approval_engines.stage_rules import activate_stage, skip_stage


class RouteAction(str, Enum):
    """What the route needs next."""

    NONE = "none"
    ACTIVATE_NEXT = "activate_next"
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(frozen=True)
class RouteProgress:
    """Result of advancing a route: new draft status and stage values."""

    status: DraftStatus
    stages: tuple[StageInfo, ...]
    activated: tuple[StageInfo, ...] = field(default_factory=tuple)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_DRAFT_STATUSES


def decide_route(status: DraftStatus, stages: Sequence[StageInfo]) -> RouteAction:
    """Decide the next route step from the current stage statuses."""
    if status != DraftStatus.IN_PROGRESS:
        return RouteAction.NONE
    if any(s.is_gating and s.status == StageStatus.REJECTED for s in stages):
        return RouteAction.REJECT
    if any(s.status == StageStatus.ACTIVE for s in stages):
        return RouteAction.NONE
    if any(s.is_gating and s.status == StageStatus.PENDING for s in stages):
        return RouteAction.ACTIVATE_NEXT
    return RouteAction.APPROVE


def activate_next(
    stages: Sequence[StageInfo],
    now: datetime,
) -> tuple[tuple[StageInfo, ...], tuple[StageInfo, ...]]:
    """Activate stages in order until a gating stage is ACTIVE.

    Notify-only stages met on the way resolve immediately, so activation
    moves through them to the next gating stage.  Does nothing while a
    stage is already ACTIVE.

    Returns:
        ``(stages, activated)``: all stages in order, and those this call
        changed.
    """
    ordered = sorted(stages, key=lambda s: s.order_index)
    if any(s.status == StageStatus.ACTIVE for s in ordered):
        return tuple(ordered), ()

    result: list[StageInfo] = []
    activated: list[StageInfo] = []
    blocked = False
    for stage in ordered:
        if blocked or stage.status != StageStatus.PENDING:
            result.append(stage)
            continue
        updated = activate_stage(stage, now)
        result.append(updated)
        activated.append(updated)
        if updated.status == StageStatus.ACTIVE:
            blocked = True
    return tuple(result), tuple(activated)


def advance(
    status: DraftStatus,
    stages: Sequence[StageInfo],
    now: datetime,
) -> RouteProgress:
    """Advance a route after a stage changed.

    Idempotent: a terminal draft, or a route with an ACTIVE stage still
    waiting for decisions, is returned unchanged.
    """
    stages = tuple(sorted(stages, key=lambda s: s.order_index))
    action = decide_route(status, stages)

    if action == RouteAction.NONE:
        return RouteProgress(status, stages)

    if action == RouteAction.REJECT:
        return RouteProgress(
            DraftStatus.REJECTED,
            tuple(skip_stage(s, now) for s in stages),
        )

    if action == RouteAction.ACTIVATE_NEXT:
        updated, activated = activate_next(stages, now)
        return RouteProgress(status, updated, activated)

    # APPROVE: pending notify-only stages are notified at approval time
    resolved = tuple(activate_stage(s, now) for s in stages)
    activated = tuple(r for r, s in zip(resolved, stages) if r is not s)
    return RouteProgress(DraftStatus.APPROVED, resolved, activated)


def start_route(stages: Sequence[StageInfo], now: datetime) -> RouteProgress:
    """Move a freshly instantiated route into review."""
    updated, activated = activate_next(stages, now)
    progress = advance(DraftStatus.IN_PROGRESS, updated, now)
    return RouteProgress(
        progress.status,
        progress.stages,
        activated + progress.activated,
    )


def cancel_route(stages: Sequence[StageInfo], now: datetime) -> tuple[StageInfo, ...]:
    """Skip every non-terminal stage and PENDING approver."""
    return tuple(skip_stage(s, now) for s in sorted(stages, key=lambda s: s.order_index))
