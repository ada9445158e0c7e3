"""
Approval Engines - pure calculation functions for the approval workflow.

Nothing here touches the database, the clock or the logger: every function
takes frozen domain values and returns new ones.  The kernel services
persist the results, and the replay engine folds the same functions over an
action history.

Modules:
    validation    route specification checks and normalization
    stage_rules   per-stage eligibility and completion rules
    aggregation   route progression and draft status
    replay        state reconstruction from history
"""

from approval_engines.aggregation import (
    RouteAction,
    RouteProgress,
    activate_next,
    advance,
    cancel_route,
    decide_route,
    start_route,
)
from approval_engines.replay import (
    ReplayReport,
    ReplayResult,
    compare_replay,
    replay_history,
    reset_route,
)
from approval_engines.stage_rules import (
    StageEvaluation,
    activate_stage,
    apply_decision,
    check_eligibility,
    eligible_approvers,
    evaluate_stage,
    skip_stage,
)
from approval_engines.validation import validate_route_spec

__all__ = [
    "ReplayReport",
    "ReplayResult",
    "RouteAction",
    "RouteProgress",
    "StageEvaluation",
    "activate_next",
    "activate_stage",
    "advance",
    "apply_decision",
    "cancel_route",
    "check_eligibility",
    "compare_replay",
    "decide_route",
    "eligible_approvers",
    "evaluate_stage",
    "replay_history",
    "reset_route",
    "skip_stage",
    "start_route",
    "validate_route_spec",
]
