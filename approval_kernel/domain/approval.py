"""
Approval workflow domain types (``approval_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the approval workflow engine: the lifecycle enums of
drafts, stages and approvers, their transition tables, the stage-type
capability variant, route specifications and templates, read DTOs, and the
protocols of the collaborators the engine consumes or notifies.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``models/``, ``services/``, ``selectors/`` or outer layers.

Invariants enforced
-------------------
* Draft lifecycle -- ``DRAFT_TRANSITIONS`` defines the only valid status
  changes; APPROVED, REJECTED and CANCELLED have no outgoing edges.
* Stage and approver lifecycles -- ``STAGE_TRANSITIONS`` and
  ``APPROVER_TRANSITIONS``; terminal statuses are never reactivated.
* Stage capability -- every ``StageType`` member must declare whether it is
  gating or notify-only at definition time; there is no default.
* Templates are detached values -- a ``RouteTemplate`` holds only frozen
  specs, so instantiation copies values and never shares state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

# Actor used by external jobs (deadline auto-approval, housekeeping) that call
# the engine on behalf of the system rather than a person.
DEFAULT_SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


# =========================================================================
# Draft lifecycle
# =========================================================================


class DraftStatus(str, Enum):
    """Lifecycle states of a document under review."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


DRAFT_TRANSITIONS: dict[DraftStatus, frozenset[DraftStatus]] = {
    DraftStatus.DRAFT: frozenset({
        DraftStatus.SUBMITTED,
        DraftStatus.CANCELLED,
    }),
    DraftStatus.SUBMITTED: frozenset({
        DraftStatus.IN_PROGRESS,
        DraftStatus.CANCELLED,
    }),
    DraftStatus.IN_PROGRESS: frozenset({
        DraftStatus.APPROVED,
        DraftStatus.REJECTED,
        DraftStatus.CANCELLED,
    }),
    DraftStatus.APPROVED: frozenset(),
    DraftStatus.REJECTED: frozenset(),
    DraftStatus.CANCELLED: frozenset(),
}

TERMINAL_DRAFT_STATUSES: frozenset[DraftStatus] = frozenset({
    DraftStatus.APPROVED,
    DraftStatus.REJECTED,
    DraftStatus.CANCELLED,
})


def can_transition(current: DraftStatus, target: DraftStatus) -> bool:
    """Check a draft status change against ``DRAFT_TRANSITIONS``."""
    return target in DRAFT_TRANSITIONS.get(current, frozenset())


# =========================================================================
# Stage type variant
# =========================================================================


class StageCapability(str, Enum):
    """What a stage's outcome may do to the draft."""

    GATING = "gating"
    NOTIFY_ONLY = "notify_only"


class StageType(str, Enum):
    """Kind of review a stage performs.

    Each member is declared as ``(value, capability)``; a new type cannot be
    added without choosing whether it gates progression.
    """

    capability: StageCapability

    def __new__(cls, value: str, capability: StageCapability) -> StageType:
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.capability = capability
        return obj

    COOPERATION = ("cooperation", StageCapability.GATING)
    APPROVAL = ("approval", StageCapability.GATING)
    REFERENCE = ("reference", StageCapability.NOTIFY_ONLY)
    RECEPTION = ("reception", StageCapability.NOTIFY_ONLY)
    CIRCULATION = ("circulation", StageCapability.NOTIFY_ONLY)

    @property
    def is_gating(self) -> bool:
        return self.capability is StageCapability.GATING

    @property
    def is_notify_only(self) -> bool:
        return self.capability is StageCapability.NOTIFY_ONLY


GATING_STAGE_TYPES: frozenset[StageType] = frozenset(
    t for t in StageType if t.is_gating
)
NOTIFY_ONLY_STAGE_TYPES: frozenset[StageType] = frozenset(
    t for t in StageType if t.is_notify_only
)


class StageMode(str, Enum):
    """How approvers within a stage become eligible."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class StageRule(str, Enum):
    """Completion policy of a stage."""

    ALL = "all"
    ANY = "any"


# =========================================================================
# Stage and approver lifecycles
# =========================================================================


class StageStatus(str, Enum):
    """Runtime status of a stage."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    REJECTED = "rejected"
    SKIPPED = "skipped"


STAGE_TRANSITIONS: dict[StageStatus, frozenset[StageStatus]] = {
    StageStatus.PENDING: frozenset({StageStatus.ACTIVE, StageStatus.SKIPPED}),
    StageStatus.ACTIVE: frozenset({
        StageStatus.COMPLETED,
        StageStatus.REJECTED,
        StageStatus.SKIPPED,
    }),
    StageStatus.COMPLETED: frozenset(),
    StageStatus.REJECTED: frozenset(),
    StageStatus.SKIPPED: frozenset(),
}

TERMINAL_STAGE_STATUSES: frozenset[StageStatus] = frozenset({
    StageStatus.COMPLETED,
    StageStatus.REJECTED,
    StageStatus.SKIPPED,
})


class ApproverStatus(str, Enum):
    """Runtime status of one reviewer slot."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


APPROVER_TRANSITIONS: dict[ApproverStatus, frozenset[ApproverStatus]] = {
    ApproverStatus.PENDING: frozenset({
        ApproverStatus.APPROVED,
        ApproverStatus.REJECTED,
        ApproverStatus.SKIPPED,
    }),
    ApproverStatus.APPROVED: frozenset(),
    ApproverStatus.REJECTED: frozenset(),
    ApproverStatus.SKIPPED: frozenset(),
}


class ActionKind(str, Enum):
    """Kinds of audit-log entries."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    COMMENT = "comment"
    CANCEL = "cancel"


class Decision(str, Enum):
    """Decisions an approver can make."""

    APPROVE = "approve"
    REJECT = "reject"

    @property
    def action_kind(self) -> ActionKind:
        return ActionKind(self.value)

    @property
    def approver_status(self) -> ApproverStatus:
        if self is Decision.APPROVE:
            return ApproverStatus.APPROVED
        return ApproverStatus.REJECTED


class StageOutcome(str, Enum):
    """Result of evaluating a stage after an approver action."""

    CONTINUE = "continue"
    COMPLETED = "completed"
    REJECTED = "rejected"


# =========================================================================
# Route specifications and templates
# =========================================================================


@dataclass(frozen=True)
class ApproverSpec:
    """One reviewer in a stage definition.

    ``order_index`` is optional; when omitted, position in the stage's
    approver tuple (1-based) is used.
    """

    user_id: UUID
    order_index: int | None = None


@dataclass(frozen=True)
class StageSpec:
    """One ordered step of a route definition."""

    name: str
    stage_type: StageType
    mode: StageMode
    rule: StageRule
    order_index: int
    approvers: tuple[ApproverSpec, ...] = ()

    @property
    def is_gating(self) -> bool:
        return self.stage_type.is_gating


# Templates share the spec shape; only the route level differs.
ApproverTemplate = ApproverSpec
StageTemplate = StageSpec


@dataclass(frozen=True)
class RouteTemplate:
    """Reusable, detached route definition for a category."""

    template_id: str
    name: str
    category: str
    stages: tuple[StageSpec, ...]
    is_default: bool = False
    description: str = ""


@dataclass(frozen=True)
class RouteSpec:
    """Route requested at submission.

    Exactly one of ``template_id`` and ``stages`` may be given.  An empty
    spec means "use the category's default template".
    """

    template_id: str | None = None
    stages: tuple[StageSpec, ...] = ()

    @classmethod
    def from_template(cls, template_id: str) -> RouteSpec:
        return cls(template_id=template_id)

    @classmethod
    def explicit(cls, stages: tuple[StageSpec, ...] | list[StageSpec]) -> RouteSpec:
        return cls(stages=tuple(stages))

    @property
    def uses_default(self) -> bool:
        return self.template_id is None and not self.stages


@dataclass(frozen=True)
class CategoryInfo:
    """Document category as configured in the template store."""

    code: str
    name: str
    description: str = ""
    is_active: bool = True
    default_template: str | None = None


# =========================================================================
# Runtime DTOs
# =========================================================================


@dataclass(frozen=True)
class ApproverInfo:
    """Snapshot of one approver slot."""

    approver_id: UUID
    stage_id: UUID
    user_id: UUID
    order_index: int
    status: ApproverStatus
    acted_at: datetime | None = None
    comment: str = ""
    notified_at: datetime | None = None
    display_name: str | None = None


@dataclass(frozen=True)
class StageInfo:
    """Snapshot of one stage with its approvers in order."""

    stage_id: UUID
    route_id: UUID
    order_index: int
    name: str
    stage_type: StageType
    mode: StageMode
    rule: StageRule
    status: StageStatus
    approvers: tuple[ApproverInfo, ...] = ()
    activated_at: datetime | None = None
    resolved_at: datetime | None = None

    @property
    def is_gating(self) -> bool:
        return self.stage_type.is_gating

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STAGE_STATUSES


@dataclass(frozen=True)
class RouteInfo:
    """Snapshot of an instantiated route."""

    route_id: UUID
    draft_id: UUID
    stages: tuple[StageInfo, ...]
    template_id: str | None = None
    created_at: datetime | None = None

    @property
    def approvers(self) -> tuple[ApproverInfo, ...]:
        return tuple(a for s in self.stages for a in s.approvers)

    @property
    def active_stage(self) -> StageInfo | None:
        for stage in self.stages:
            if stage.status == StageStatus.ACTIVE:
                return stage
        return None


@dataclass(frozen=True)
class DraftInfo:
    """Snapshot of a draft's header."""

    draft_id: UUID
    owner_id: UUID
    category: str
    title: str
    content: dict[str, Any]
    status: DraftStatus
    created_at: datetime
    submitted_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_DRAFT_STATUSES


@dataclass(frozen=True)
class ActionRecord:
    """Immutable audit-log entry."""

    action_id: UUID
    draft_id: UUID
    seq: int
    actor_id: UUID
    kind: ActionKind
    occurred_at: datetime
    comment: str = ""
    approver_id: UUID | None = None
    stage_id: UUID | None = None
    prev_hash: str | None = None
    hash: str | None = None


@dataclass(frozen=True)
class DraftSnapshot:
    """Everything the UI needs to render a draft."""

    draft: DraftInfo
    route: RouteInfo | None
    history: tuple[ActionRecord, ...]

    @property
    def status(self) -> DraftStatus:
        return self.draft.status

    @property
    def stages(self) -> tuple[StageInfo, ...]:
        return self.route.stages if self.route is not None else ()

    @property
    def approvers(self) -> tuple[ApproverInfo, ...]:
        return self.route.approvers if self.route is not None else ()


@dataclass(frozen=True)
class DraftStatusChange:
    """A draft status transition, delivered to listeners after commit."""

    draft_id: UUID
    old_status: DraftStatus
    new_status: DraftStatus
    occurred_at: datetime


@dataclass(frozen=True)
class DraftStatistics:
    """Per-status draft counts for a filter."""

    total: int
    by_status: dict[DraftStatus, int] = field(default_factory=dict)

    @property
    def percentages(self) -> dict[DraftStatus, int] | None:
        if self.total == 0:
            return None
        return {
            status: round(count * 100 / self.total)
            for status, count in self.by_status.items()
        }


@dataclass(frozen=True)
class UserRef:
    """Denormalized identity for display."""

    user_id: UUID
    display_name: str


# =========================================================================
# Collaborator protocols
# =========================================================================


class TemplateProvider(Protocol):
    """Read-only source of categories and route templates."""

    def get_template(self, category: str) -> RouteTemplate | None:
        """Return the default template for a category, if any."""
        ...

    def get_template_by_id(self, template_id: str) -> RouteTemplate | None:
        """Return a template by id."""
        ...

    def get_category(self, code: str) -> CategoryInfo | None:
        """Return a category by code."""
        ...


class IdentityProvider(Protocol):
    """Resolves user ids to display names. Never used for authorization."""

    def get_user(self, user_id: UUID) -> UserRef | None:
        ...


class DraftStatusListener(Protocol):
    """Subscriber to draft status transitions (notifications, UI refresh)."""

    def on_draft_status_changed(
        self,
        draft_id: UUID,
        old_status: DraftStatus,
        new_status: DraftStatus,
    ) -> None:
        ...
