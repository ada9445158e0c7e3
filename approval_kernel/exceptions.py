"""
Typed exception hierarchy for the approval kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The web layer adapts every engine failure into an HTTP response, and the
retry loop in the draft manager must tell a serialization conflict apart
from a business-rule refusal.  Matching on message text is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        manager.act(draft_id, approver_id, actor_id, Decision.APPROVE)
    except ApproverNotEligibleError as e:
        api_response(403, code=e.code, approver=e.approver_id, reason=e.reason)
    except InvalidStateError as e:
        api_response(409, code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- NotFoundError
    |   +-- DraftNotFoundError
    |   +-- ApproverNotFoundError
    |   +-- TemplateNotFoundError
    |   +-- CategoryNotFoundError
    |
    +-- ValidationError
    |   +-- InvalidRouteSpecError
    |   +-- NoGatingStageError
    |   +-- StageOrderError
    |   +-- EmptyApproverListError
    |   +-- DuplicateApproverError
    |   +-- RouteAlreadyExistsError
    |   +-- InactiveCategoryError
    |
    +-- InvalidStateError
    |   +-- InvalidDraftTransitionError
    |   +-- StageAlreadyResolvedError
    |   +-- DraftHasHistoryError
    |
    +-- ApprovalPermissionError
    |   +-- ApproverNotEligibleError
    |   +-- NotDraftOwnerError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
    |   +-- ActionChainBrokenError
    |   +-- HistoryReplayError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|--------------------------------------
Not found    | DRAFT_NOT_FOUND           | Draft id doesn't exist
             | APPROVER_NOT_FOUND        | Approver slot not on this draft
             | TEMPLATE_NOT_FOUND        | No template for id / category
             | CATEGORY_NOT_FOUND        | Unknown category code
-------------|---------------------------|--------------------------------------
Validation   | INVALID_ROUTE_SPEC        | Neither / both template and stages
             | NO_GATING_STAGE           | Route has no COOPERATION/APPROVAL
             | STAGE_ORDER_INVALID       | Order indices duplicate or gapped
             | EMPTY_APPROVER_LIST       | Gating stage without approvers
             | DUPLICATE_APPROVER        | Same user twice in one stage
             | ROUTE_ALREADY_EXISTS      | Draft already owns a route
             | INACTIVE_CATEGORY         | Category disabled for new drafts
-------------|---------------------------|--------------------------------------
State        | INVALID_DRAFT_TRANSITION  | Operation not allowed in status
             | STAGE_ALREADY_RESOLVED    | Late action on a terminal stage
             | DRAFT_HAS_HISTORY         | Delete of a draft with actions
-------------|---------------------------|--------------------------------------
Permission   | APPROVER_NOT_ELIGIBLE     | Slot pending / blocked / acted
             | NOT_DRAFT_OWNER           | Actor is not the draft owner
-------------|---------------------------|--------------------------------------
Concurrency  | CONCURRENCY_CONFLICT      | Retries exhausted on a draft
-------------|---------------------------|--------------------------------------
Immutability | IMMUTABILITY_VIOLATION    | UPDATE/DELETE of an action record
-------------|---------------------------|--------------------------------------
Audit        | ACTION_CHAIN_BROKEN       | Action hash chain mismatch
             | HISTORY_REPLAY_FAILED     | Action log cannot be replayed
-------------|---------------------------|--------------------------------------
Config       | CONFIGURATION_ERROR       | Configuration set failed to load

===============================================================================
DESIGN DECISIONS
===============================================================================

1. The permission category is ``ApprovalPermissionError`` rather than
   ``PermissionError`` so the builtin (an ``OSError`` subclass) is never
   shadowed in modules that import from here.

2. ValidationError, InvalidStateError and ApprovalPermissionError are raised
   before any mutation reaches the session, so the caller may correct its
   input and call again.  ConcurrencyConflictError is only raised after the
   draft manager's bounded retry gave up.
===============================================================================
"""


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Lookup failures


class NotFoundError(ApprovalKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class DraftNotFoundError(NotFoundError):
    """Draft with given ID was not found."""

    code: str = "DRAFT_NOT_FOUND"

    def __init__(self, draft_id: str):
        self.draft_id = draft_id
        super().__init__(f"Draft not found: {draft_id}")


class ApproverNotFoundError(NotFoundError):
    """Approver slot does not exist on the draft's route."""

    code: str = "APPROVER_NOT_FOUND"

    def __init__(self, draft_id: str, approver_id: str):
        self.draft_id = draft_id
        self.approver_id = approver_id
        super().__init__(
            f"Approver {approver_id} not found on draft {draft_id}"
        )


class TemplateNotFoundError(NotFoundError):
    """No route template matches the requested id or category."""

    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Route template not found: {reference}")


class CategoryNotFoundError(NotFoundError):
    """Category code is unknown to the template store."""

    code: str = "CATEGORY_NOT_FOUND"

    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Category not found: {category}")


# Validation failures (rejected before any state mutation)


class ValidationError(ApprovalKernelError):
    """Base exception for malformed routes, templates and inputs."""

    code: str = "VALIDATION_ERROR"


class InvalidRouteSpecError(ValidationError):
    """Route spec must name exactly one of a template or explicit stages."""

    code: str = "INVALID_ROUTE_SPEC"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid route spec: {reason}")


class NoGatingStageError(ValidationError):
    """Route has no COOPERATION or APPROVAL stage."""

    code: str = "NO_GATING_STAGE"

    def __init__(self, stage_count: int):
        self.stage_count = stage_count
        super().__init__(
            f"Route must contain at least one gating stage "
            f"(got {stage_count} notify-only stage(s))"
        )


class StageOrderError(ValidationError):
    """Stage order indices are duplicated or not contiguous."""

    code: str = "STAGE_ORDER_INVALID"

    def __init__(self, order_indices: tuple[int, ...], reason: str):
        self.order_indices = order_indices
        self.reason = reason
        super().__init__(
            f"Invalid stage order {list(order_indices)}: {reason}"
        )


class EmptyApproverListError(ValidationError):
    """A gating stage was defined without approvers."""

    code: str = "EMPTY_APPROVER_LIST"

    def __init__(self, order_index: int, stage_name: str):
        self.order_index = order_index
        self.stage_name = stage_name
        super().__init__(
            f"Gating stage {order_index} ({stage_name!r}) has no approvers"
        )


class DuplicateApproverError(ValidationError):
    """The same user appears twice in one stage."""

    code: str = "DUPLICATE_APPROVER"

    def __init__(self, order_index: int, user_id: str):
        self.order_index = order_index
        self.user_id = user_id
        super().__init__(
            f"User {user_id} appears more than once in stage {order_index}"
        )


class RouteAlreadyExistsError(ValidationError):
    """Draft already owns a route (1:1)."""

    code: str = "ROUTE_ALREADY_EXISTS"

    def __init__(self, draft_id: str, route_id: str):
        self.draft_id = draft_id
        self.route_id = route_id
        super().__init__(f"Draft {draft_id} already owns route {route_id}")


class InactiveCategoryError(ValidationError):
    """Category exists but is disabled for new drafts."""

    code: str = "INACTIVE_CATEGORY"

    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Category {category} is inactive")


# State failures


class InvalidStateError(ApprovalKernelError):
    """Base exception for operations attempted in the wrong status."""

    code: str = "INVALID_STATE"


class InvalidDraftTransitionError(InvalidStateError):
    """Draft status does not permit the requested operation."""

    code: str = "INVALID_DRAFT_TRANSITION"

    def __init__(self, draft_id: str, current_status: str, operation: str):
        self.draft_id = draft_id
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} draft {draft_id} in status {current_status}"
        )


class StageAlreadyResolvedError(InvalidStateError):
    """Action arrived after the stage reached a terminal status."""

    code: str = "STAGE_ALREADY_RESOLVED"

    def __init__(self, stage_id: str, stage_status: str):
        self.stage_id = stage_id
        self.stage_status = stage_status
        super().__init__(
            f"Stage {stage_id} is already {stage_status}; action not accepted"
        )


class DraftHasHistoryError(InvalidStateError):
    """Draft cannot be deleted because actions reference it."""

    code: str = "DRAFT_HAS_HISTORY"

    def __init__(self, draft_id: str, action_count: int):
        self.draft_id = draft_id
        self.action_count = action_count
        super().__init__(
            f"Draft {draft_id} has {action_count} recorded action(s) "
            "and cannot be deleted"
        )


# Permission failures


class ApprovalPermissionError(ApprovalKernelError):
    """Base exception for actors that may not perform an operation."""

    code: str = "PERMISSION_DENIED"


class ApproverNotEligibleError(ApprovalPermissionError):
    """Approver slot is not currently eligible to act."""

    code: str = "APPROVER_NOT_ELIGIBLE"

    def __init__(self, approver_id: str, reason: str):
        self.approver_id = approver_id
        self.reason = reason
        super().__init__(f"Approver {approver_id} not eligible: {reason}")


class NotDraftOwnerError(ApprovalPermissionError):
    """Actor is neither the draft owner nor the system actor."""

    code: str = "NOT_DRAFT_OWNER"

    def __init__(self, draft_id: str, actor_id: str):
        self.draft_id = draft_id
        self.actor_id = actor_id
        super().__init__(f"Actor {actor_id} does not own draft {draft_id}")


# Concurrency failures


class ConcurrencyError(ApprovalKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """Transaction kept losing serialization races on one draft."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str, draft_id: str, attempts: int):
        self.operation = operation
        self.draft_id = draft_id
        self.attempts = attempts
        super().__init__(
            f"{operation} on draft {draft_id} conflicted with a concurrent "
            f"transaction {attempts} time(s)"
        )


# Immutability failures


class ImmutabilityError(ApprovalKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Audit failures


class AuditError(ApprovalKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class ActionChainBrokenError(AuditError):
    """Recomputed action hash does not match the stored chain."""

    code: str = "ACTION_CHAIN_BROKEN"

    def __init__(self, draft_id: str, seq: int, expected_hash: str, actual_hash: str):
        self.draft_id = draft_id
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Action chain broken for draft {draft_id} at seq {seq}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


class HistoryReplayError(AuditError):
    """Action history cannot be replayed over the draft's route."""

    code: str = "HISTORY_REPLAY_FAILED"

    def __init__(self, draft_id: str, seq: int, reason: str):
        self.draft_id = draft_id
        self.seq = seq
        self.reason = reason
        super().__init__(
            f"Cannot replay action {seq} of draft {draft_id}: {reason}"
        )


# Configuration failures


class ConfigurationError(ApprovalKernelError):
    """Configuration set could not be loaded or failed validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Configuration error in {source}: {reason}")
