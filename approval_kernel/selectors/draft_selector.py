"""
Module: approval_kernel.selectors.draft_selector
Responsibility: Read queries over drafts -- the UI snapshot, owner listings,
    the approver inbox and per-status statistics.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Snapshots are built from one session, so the draft header, route and
      history describe the same committed state.
    - The inbox applies the same eligibility rule the stage executor
      enforces, so a draft listed for a user is one that user can act on.

Failure modes:
    - DraftNotFoundError from get_snapshot() for an unknown draft.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select

from approval_engines.stage_rules import eligible_approvers
from approval_kernel.domain.approval import (
    ApproverStatus,
    DraftInfo,
    DraftSnapshot,
    DraftStatistics,
    DraftStatus,
    IdentityProvider,
    StageStatus,
)
from approval_kernel.exceptions import DraftNotFoundError
from approval_kernel.models.action import ActionModel
from approval_kernel.models.draft import (
    ApproverModel,
    DraftModel,
    RouteModel,
    StageModel,
)
from approval_kernel.selectors.base import BaseSelector


class DraftSelector(BaseSelector[DraftModel]):
    """Read-only draft queries."""

    def get(self, draft_id: UUID) -> DraftInfo | None:
        model = self.session.get(DraftModel, draft_id)
        return model.to_dto() if model is not None else None

    def get_snapshot(
        self,
        draft_id: UUID,
        identity_provider: IdentityProvider | None = None,
    ) -> DraftSnapshot:
        """Draft header, route with stages and approvers, and full history.

        When an identity provider is given, approver display names are
        filled in; otherwise they are None.
        """
        draft = self.session.get(DraftModel, draft_id)
        if draft is None:
            raise DraftNotFoundError(str(draft_id))

        route_info = None
        if draft.route is not None:
            names = None
            if identity_provider is not None:
                names = {}
                for stage in draft.route.stages:
                    for approver in stage.approvers:
                        if approver.user_id in names:
                            continue
                        user = identity_provider.get_user(approver.user_id)
                        if user is not None:
                            names[approver.user_id] = user.display_name
            route_info = draft.route.to_dto(names)

        history = tuple(
            a.to_dto()
            for a in self.session.scalars(
                select(ActionModel)
                .where(ActionModel.draft_id == draft_id)
                .order_by(ActionModel.seq)
            )
        )
        return DraftSnapshot(draft=draft.to_dto(), route=route_info, history=history)

    def list_for_owner(
        self,
        owner_id: UUID,
        status: DraftStatus | None = None,
    ) -> list[DraftInfo]:
        """Drafts of an owner, newest first."""
        stmt = select(DraftModel).where(DraftModel.owner_id == owner_id)
        if status is not None:
            stmt = stmt.where(DraftModel.status == status.value)
        stmt = stmt.order_by(DraftModel.created_at.desc(), DraftModel.id)
        return [d.to_dto() for d in self.session.scalars(stmt)]

    def pending_for_user(self, user_id: UUID) -> list[DraftInfo]:
        """In-progress drafts on which ``user_id`` may act right now, oldest
        submission first."""
        stmt = (
            select(StageModel)
            .join(RouteModel, StageModel.route_id == RouteModel.id)
            .join(DraftModel, RouteModel.draft_id == DraftModel.id)
            .join(ApproverModel, ApproverModel.stage_id == StageModel.id)
            .where(
                DraftModel.status == DraftStatus.IN_PROGRESS.value,
                StageModel.status == StageStatus.ACTIVE.value,
                ApproverModel.user_id == user_id,
                ApproverModel.status == ApproverStatus.PENDING.value,
            )
            .distinct()
        )
        drafts: dict[UUID, DraftModel] = {}
        for stage in self.session.scalars(stmt):
            if any(a.user_id == user_id for a in eligible_approvers(stage.to_dto())):
                draft = stage.route.draft
                drafts[draft.id] = draft

        ordered = sorted(
            drafts.values(),
            key=lambda d: (d.submitted_at or d.created_at, str(d.id)),
        )
        return [d.to_dto() for d in ordered]

    def status_counts(
        self,
        category: str | None = None,
        owner_id: UUID | None = None,
        since: datetime | None = None,
    ) -> DraftStatistics:
        """Count drafts per status for the given filters."""
        stmt = select(DraftModel.status, func.count()).group_by(DraftModel.status)
        if category is not None:
            stmt = stmt.where(DraftModel.category == category)
        if owner_id is not None:
            stmt = stmt.where(DraftModel.owner_id == owner_id)
        if since is not None:
            stmt = stmt.where(DraftModel.created_at >= since)

        by_status = {status: 0 for status in DraftStatus}
        for status, count in self.session.execute(stmt):
            by_status[DraftStatus(status)] = count
        return DraftStatistics(total=sum(by_status.values()), by_status=by_status)
