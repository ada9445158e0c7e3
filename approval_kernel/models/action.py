"""
Module: approval_kernel.models.action
Responsibility: ORM persistence for the append-only action log.

Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ and exceptions only.

Invariants enforced:
    - Per-draft total order: UNIQUE(draft_id, seq).
    - Append-only: ORM listeners reject UPDATE and DELETE of any action.
    - Tamper evidence: each row stores the hash of its predecessor and its
      own chained hash (see utils/hashing.hash_action).

Failure modes:
    - IntegrityError on a duplicate (draft_id, seq).
    - ImmutabilityViolationError on action UPDATE/DELETE.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base
from approval_kernel.domain.approval import ActionKind, ActionRecord
from approval_kernel.exceptions import ImmutabilityViolationError


class ActionModel(Base):
    """Persistent audit-log entry. Append-only.

    Contract:
        Actions are immutable once created -- no UPDATE, no DELETE.
    """

    __tablename__ = "approval_actions"

    __table_args__ = (
        UniqueConstraint("draft_id", "seq", name="uq_approval_actions_seq"),
        CheckConstraint(
            "kind IN ({})".format(", ".join(f"'{k.value}'" for k in ActionKind)),
            name="ck_approval_actions_valid_kind",
        ),
        CheckConstraint("seq >= 1", name="ck_approval_actions_seq_positive"),
        Index("ix_approval_actions_draft_occurred", "draft_id", "occurred_at", "seq"),
    )

    draft_id: Mapped[UUID] = mapped_column(
        ForeignKey("approval_drafts.id"), nullable=False,
    )
    seq: Mapped[int] = mapped_column(nullable=False)
    actor_id: Mapped[UUID] = mapped_column(nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    comment: Mapped[str] = mapped_column(Text, default="", nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    approver_id: Mapped[UUID | None] = mapped_column(nullable=True)
    stage_id: Mapped[UUID | None] = mapped_column(nullable=True)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<Action {self.draft_id}#{self.seq} {self.kind}>"

    def to_dto(self) -> ActionRecord:
        """Convert ORM model to frozen domain DTO."""
        return ActionRecord(
            action_id=self.id,
            draft_id=self.draft_id,
            seq=self.seq,
            actor_id=self.actor_id,
            kind=ActionKind(self.kind),
            occurred_at=self.occurred_at,
            comment=self.comment,
            approver_id=self.approver_id,
            stage_id=self.stage_id,
            prev_hash=self.prev_hash,
            hash=self.hash,
        )


# =============================================================================
# ORM-Level Immutability for Actions (Append-Only)
# =============================================================================


@event.listens_for(ActionModel, "before_update")
def prevent_action_update(mapper, connection, target):
    """Prevent updates to action records."""
    raise ImmutabilityViolationError(
        entity_type="Action",
        entity_id=str(target.id),
        reason="Actions are immutable -- cannot modify",
    )


@event.listens_for(ActionModel, "before_delete")
def prevent_action_delete(mapper, connection, target):
    """Prevent deletion of action records."""
    raise ImmutabilityViolationError(
        entity_type="Action",
        entity_id=str(target.id),
        reason="Actions are immutable -- cannot delete",
    )
