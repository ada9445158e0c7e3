"""
Module: approval_kernel.models.draft
Responsibility: ORM persistence for drafts and their instantiated routes
    (route, stages, approver slots).

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Valid status values: DB check constraints limit every lifecycle column
      to its enum's values; services enforce the transition rules.
    - One route per draft: UNIQUE(draft_id) on approval_routes.
    - Unique stage order within a route: UNIQUE(route_id, order_index).
    - Unique approver per stage: UNIQUE(stage_id, user_id) and
      UNIQUE(stage_id, order_index).
    - Optimistic versioning: every flush of a draft row bumps ``version``
      and checks the previous value, so a concurrent writer that bypassed
      the row lock fails with StaleDataError.

Failure modes:
    - IntegrityError on a second route for a draft, or duplicate stage or
      approver ordering.
    - StaleDataError on a lost version race.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base
from approval_kernel.domain.approval import (
    ApproverInfo,
    ApproverStatus,
    DraftInfo,
    DraftStatus,
    RouteInfo,
    StageInfo,
    StageMode,
    StageRule,
    StageStatus,
    StageType,
)


def _in_clause(column: str, enum_cls) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


class DraftModel(Base):
    """Persistent draft document.

    Contract:
        ``status`` only moves along DRAFT_TRANSITIONS.  ``action_seq`` is the
        last sequence number handed out to this draft's action log; it is
        read and bumped while the row is locked.
    """

    __tablename__ = "approval_drafts"

    __table_args__ = (
        CheckConstraint(
            _in_clause("status", DraftStatus),
            name="ck_approval_drafts_valid_status",
        ),
        CheckConstraint("action_seq >= 0", name="ck_approval_drafts_seq"),
        Index("ix_approval_drafts_owner_status", "owner_id", "status", "created_at"),
        Index("ix_approval_drafts_category", "category"),
    )

    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    content: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DraftStatus.DRAFT.value,
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    action_seq: Mapped[int] = mapped_column(default=0, nullable=False)
    version: Mapped[int] = mapped_column(nullable=False)

    route: Mapped["RouteModel | None"] = relationship(
        "RouteModel",
        back_populates="draft",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Draft {self.id} {self.category} status={self.status}>"

    @property
    def draft_status(self) -> DraftStatus:
        return DraftStatus(self.status)

    def to_dto(self) -> DraftInfo:
        """Convert ORM model to frozen domain DTO."""
        return DraftInfo(
            draft_id=self.id,
            owner_id=self.owner_id,
            category=self.category,
            title=self.title,
            content=dict(self.content or {}),
            status=DraftStatus(self.status),
            created_at=self.created_at,
            submitted_at=self.submitted_at,
            completed_at=self.completed_at,
        )


class RouteModel(Base):
    """Instantiated route owned by exactly one draft."""

    __tablename__ = "approval_routes"

    __table_args__ = (
        UniqueConstraint("draft_id", name="uq_approval_routes_draft"),
    )

    draft_id: Mapped[UUID] = mapped_column(
        ForeignKey("approval_drafts.id"), nullable=False,
    )
    template_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    draft: Mapped["DraftModel"] = relationship("DraftModel", back_populates="route")
    stages: Mapped[list["StageModel"]] = relationship(
        "StageModel",
        back_populates="route",
        order_by="StageModel.order_index",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Route {self.id} draft={self.draft_id} stages={len(self.stages)}>"

    def to_dto(self, display_names: dict[UUID, str] | None = None) -> RouteInfo:
        """Convert ORM model to frozen domain DTO."""
        return RouteInfo(
            route_id=self.id,
            draft_id=self.draft_id,
            stages=tuple(s.to_dto(display_names) for s in self.stages),
            template_id=self.template_id,
            created_at=self.created_at,
        )


class StageModel(Base):
    """One ordered stage of an instantiated route."""

    __tablename__ = "approval_stages"

    __table_args__ = (
        UniqueConstraint("route_id", "order_index", name="uq_approval_stages_order"),
        CheckConstraint(
            _in_clause("status", StageStatus),
            name="ck_approval_stages_valid_status",
        ),
        CheckConstraint(
            _in_clause("stage_type", StageType),
            name="ck_approval_stages_valid_type",
        ),
        CheckConstraint(
            _in_clause("mode", StageMode),
            name="ck_approval_stages_valid_mode",
        ),
        CheckConstraint(
            _in_clause("rule", StageRule),
            name="ck_approval_stages_valid_rule",
        ),
        CheckConstraint("order_index >= 1", name="ck_approval_stages_order_positive"),
    )

    route_id: Mapped[UUID] = mapped_column(
        ForeignKey("approval_routes.id"), nullable=False,
    )
    order_index: Mapped[int] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    stage_type: Mapped[str] = mapped_column(String(20), nullable=False)
    mode: Mapped[str] = mapped_column(String(20), nullable=False)
    rule: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=StageStatus.PENDING.value,
    )
    activated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    route: Mapped["RouteModel"] = relationship("RouteModel", back_populates="stages")
    approvers: Mapped[list["ApproverModel"]] = relationship(
        "ApproverModel",
        back_populates="stage",
        order_by="ApproverModel.order_index",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<Stage {self.id} #{self.order_index} {self.stage_type} "
            f"status={self.status}>"
        )

    @property
    def stage_status(self) -> StageStatus:
        return StageStatus(self.status)

    @property
    def is_gating(self) -> bool:
        return StageType(self.stage_type).is_gating

    def to_dto(self, display_names: dict[UUID, str] | None = None) -> StageInfo:
        """Convert ORM model to frozen domain DTO."""
        return StageInfo(
            stage_id=self.id,
            route_id=self.route_id,
            order_index=self.order_index,
            name=self.name,
            stage_type=StageType(self.stage_type),
            mode=StageMode(self.mode),
            rule=StageRule(self.rule),
            status=StageStatus(self.status),
            approvers=tuple(a.to_dto(display_names) for a in self.approvers),
            activated_at=self.activated_at,
            resolved_at=self.resolved_at,
        )


class ApproverModel(Base):
    """One reviewer slot of a stage."""

    __tablename__ = "approval_approvers"

    __table_args__ = (
        UniqueConstraint("stage_id", "user_id", name="uq_approval_approvers_user"),
        UniqueConstraint("stage_id", "order_index", name="uq_approval_approvers_order"),
        CheckConstraint(
            _in_clause("status", ApproverStatus),
            name="ck_approval_approvers_valid_status",
        ),
        Index("ix_approval_approvers_user_status", "user_id", "status"),
    )

    stage_id: Mapped[UUID] = mapped_column(
        ForeignKey("approval_stages.id"), nullable=False,
    )
    user_id: Mapped[UUID] = mapped_column(nullable=False)
    order_index: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApproverStatus.PENDING.value,
    )
    acted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    comment: Mapped[str] = mapped_column(Text, default="", nullable=False)
    notified_at: Mapped[datetime | None] = mapped_column(nullable=True)

    stage: Mapped["StageModel"] = relationship("StageModel", back_populates="approvers")

    def __repr__(self) -> str:
        return f"<Approver {self.id} user={self.user_id} status={self.status}>"

    @property
    def approver_status(self) -> ApproverStatus:
        return ApproverStatus(self.status)

    def to_dto(self, display_names: dict[UUID, str] | None = None) -> ApproverInfo:
        """Convert ORM model to frozen domain DTO."""
        return ApproverInfo(
            approver_id=self.id,
            stage_id=self.stage_id,
            user_id=self.user_id,
            order_index=self.order_index,
            status=ApproverStatus(self.status),
            acted_at=self.acted_at,
            comment=self.comment,
            notified_at=self.notified_at,
            display_name=(display_names or {}).get(self.user_id),
        )
