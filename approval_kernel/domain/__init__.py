"""Pure domain types for the approval kernel. No I/O."""

from approval_kernel.domain.approval import (
    APPROVER_TRANSITIONS,
    DEFAULT_SYSTEM_ACTOR_ID,
    DRAFT_TRANSITIONS,
    GATING_STAGE_TYPES,
    NOTIFY_ONLY_STAGE_TYPES,
    STAGE_TRANSITIONS,
    TERMINAL_DRAFT_STATUSES,
    TERMINAL_STAGE_STATUSES,
    ActionKind,
    ActionRecord,
    ApproverInfo,
    ApproverSpec,
    ApproverStatus,
    ApproverTemplate,
    CategoryInfo,
    Decision,
    DraftInfo,
    DraftSnapshot,
    DraftStatistics,
    DraftStatus,
    DraftStatusChange,
    DraftStatusListener,
    IdentityProvider,
    RouteInfo,
    RouteSpec,
    RouteTemplate,
    StageCapability,
    StageInfo,
    StageMode,
    StageOutcome,
    StageRule,
    StageSpec,
    StageStatus,
    StageTemplate,
    StageType,
    TemplateProvider,
    UserRef,
    can_transition,
)
from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = [
    "APPROVER_TRANSITIONS",
    "DEFAULT_SYSTEM_ACTOR_ID",
    "DRAFT_TRANSITIONS",
    "GATING_STAGE_TYPES",
    "NOTIFY_ONLY_STAGE_TYPES",
    "STAGE_TRANSITIONS",
    "TERMINAL_DRAFT_STATUSES",
    "TERMINAL_STAGE_STATUSES",
    "ActionKind",
    "ActionRecord",
    "ApproverInfo",
    "ApproverSpec",
    "ApproverStatus",
    "ApproverTemplate",
    "CategoryInfo",
    "Clock",
    "Decision",
    "DeterministicClock",
    "DraftInfo",
    "DraftSnapshot",
    "DraftStatistics",
    "DraftStatus",
    "DraftStatusChange",
    "DraftStatusListener",
    "IdentityProvider",
    "RouteInfo",
    "RouteSpec",
    "RouteTemplate",
    "StageCapability",
    "StageInfo",
    "StageMode",
    "StageOutcome",
    "StageRule",
    "StageSpec",
    "StageStatus",
    "StageTemplate",
    "StageType",
    "SystemClock",
    "TemplateProvider",
    "UserRef",
    "can_transition",
]
