"""
approval_engines.validation -- Pure route specification validation.

Responsibility:
    Check an ordered list of stage specifications before anything is
    persisted, and normalize approver ordering.  The same function runs
    at submission time (route instantiation) and at configuration compile
    time (every template in a config set).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types and kernel exceptions.

Invariants enforced:
    - At least one gating stage (COOPERATION or APPROVAL) per route.
    - Stage order indices are unique and contiguous, starting at 1.
    - Gating stages have at least one approver; notify-only stages may have
      none.
    - A user appears at most once per stage, and approver order indices are
      unique within a stage.

Failure modes:
    - InvalidRouteSpecError for an empty route or malformed approver order.
    - NoGatingStageError, StageOrderError, EmptyApproverListError,
      DuplicateApproverError for the specific violations above.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace

from approval_kernel.domain.approval import ApproverSpec, StageSpec, StageType
from approval_kernel.exceptions import (
    DuplicateApproverError,
    EmptyApproverListError,
    InvalidRouteSpecError,
    NoGatingStageError,
    StageOrderError,
)


def validate_route_spec(stages: Sequence[StageSpec]) -> tuple[StageSpec, ...]:
    """Validate a route and return it normalized.

    Normalization sorts stages by ``order_index`` and gives every approver
    an explicit ``order_index`` (its 1-based position when omitted).

    Args:
        stages: Stage specifications in any order.

    Returns:
        Tuple of validated stage specs, sorted by order index, with every
        approver carrying an explicit order index.
    """
    if not stages:
        raise InvalidRouteSpecError("route has no stages")

    for stage in stages:
        if not isinstance(stage.stage_type, StageType):
            raise InvalidRouteSpecError(
                f"stage {stage.name!r} has unknown type {stage.stage_type!r}"
            )

    ordered = tuple(sorted(stages, key=lambda s: s.order_index))
    _check_stage_order(ordered)

    if not any(s.is_gating for s in ordered):
        raise NoGatingStageError(len(ordered))

    return tuple(_normalize_stage(s) for s in ordered)


def _check_stage_order(ordered: tuple[StageSpec, ...]) -> None:
    indices = tuple(s.order_index for s in ordered)
    if len(set(indices)) != len(indices):
        raise StageOrderError(indices, "duplicate order index")
    expected = tuple(range(1, len(indices) + 1))
    if indices != expected:
        raise StageOrderError(indices, "order indices must be contiguous from 1")


def _normalize_stage(stage: StageSpec) -> StageSpec:
    if stage.is_gating and not stage.approvers:
        raise EmptyApproverListError(stage.order_index, stage.name)

    seen_users = set()
    for approver in stage.approvers:
        if approver.user_id in seen_users:
            raise DuplicateApproverError(stage.order_index, str(approver.user_id))
        seen_users.add(approver.user_id)

    approvers = tuple(
        ApproverSpec(
            user_id=a.user_id,
            order_index=a.order_index if a.order_index is not None else position,
        )
        for position, a in enumerate(stage.approvers, start=1)
    )
    approver_indices = [a.order_index for a in approvers]
    if len(set(approver_indices)) != len(approver_indices):
        raise InvalidRouteSpecError(
            f"stage {stage.order_index} has duplicate approver order indices"
        )
    if any(i < 1 for i in approver_indices):
        raise InvalidRouteSpecError(
            f"stage {stage.order_index} has an approver order index below 1"
        )

    return replace(
        stage,
        approvers=tuple(sorted(approvers, key=lambda a: a.order_index)),
    )
