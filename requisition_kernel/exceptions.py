"""
Typed Exception Hierarchy for the Requisition Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval workflows are driven from API handlers and bulk jobs that need to
tell "you may not approve this" apart from "somebody else already did".
Parsing message strings for that is fragile, so:
  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        service.approve(...)
    except Exception as e:
        if "not authorized" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        service.approve(...)
    except UnauthorizedApproverError as e:
        api_response(code=e.code, level=e.level, role=e.role)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from RequisitionEngineError:

    RequisitionEngineError (base)
    |
    +-- RequisitionAuthorizationError
    |   +-- UnauthorizedApproverError
    |   +-- UnauthorizedDeletionError
    |
    +-- RequisitionStateError
    |   +-- RequisitionTerminalError
    |   +-- ApprovalAlreadyResolvedError
    |   +-- ApprovalLevelMismatchError
    |   +-- ApprovalNotCompleteError
    |   +-- InvalidRequisitionTransitionError
    |   +-- DeletionAlreadyRequestedError
    |   +-- DeletionNotRequestedError
    |   +-- DeletionPendingError
    |   +-- ChainAlreadyStartedError
    |   +-- StaleRequisitionError
    |
    +-- RequisitionValidationError
    |   +-- MissingReasonError
    |   +-- InvalidApprovalLevelsError
    |   +-- InvalidWorkflowStepsError
    |   +-- InvalidRequisitionDraftError
    |   +-- InvalidHireCountError
    |   +-- BulkLimitExceededError
    |
    +-- NotFoundError
    |   +-- RequisitionNotFoundError
    |   +-- ApprovalConfigNotFoundError
    |
    +-- ConfigurationError
    |   +-- NoApprovalChainError
    |   +-- SettingsError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES
===============================================================================

    Category        | Code                          | Meaning
    ----------------|-------------------------------|------------------------------
    Authorization   | UNAUTHORIZED_APPROVER         | Role/identity not allowed at level
                    | UNAUTHORIZED_DELETION         | Role may not delete/decide deletion
    State           | REQUISITION_TERMINAL          | Requisition is closed/filled/cancelled
                    | APPROVAL_ALREADY_RESOLVED     | Approval already approved/rejected
                    | APPROVAL_LEVEL_MISMATCH       | Caller acted on a stale level
                    | APPROVAL_NOT_COMPLETE         | Recruiting before final approval
                    | INVALID_REQUISITION_TRANSITION| Status change not in the table
                    | DELETION_PENDING              | Paused by a pending deletion request
                    | STALE_REQUISITION             | Concurrent writer won the version race
    Validation      | REASON_REQUIRED               | Reject/delete without a reason
                    | INVALID_APPROVAL_LEVELS       | Levels not contiguous from 1
                    | INVALID_WORKFLOW_STEPS        | Bad step order or missing identity
                    | INVALID_REQUISITION_DRAFT     | Bad quantity/category/position
                    | INVALID_HIRE_COUNT            | Negative or decreasing hire count
                    | BULK_LIMIT_EXCEEDED           | Bulk request over the item cap
    Not found       | REQUISITION_NOT_FOUND         |
                    | APPROVAL_CONFIG_NOT_FOUND     |
    Configuration   | NO_APPROVAL_CHAIN             | Tenant has neither levels nor workflow
                    | INVALID_SETTINGS              | Engine settings failed validation

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Authorization, state and validation errors are raised BEFORE any
   mutation, so a caught error always means "nothing changed".

2. Resolution gaps (no manager configured for an approver step) are NOT
   exceptions.  They surface as skipped steps with a diagnostic reason.

3. The bulk coordinator records ``exc.code`` per failed id, which is why
   every leaf class defines its own code.
"""


class RequisitionEngineError(Exception):
    """
    Base exception for all requisition engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "REQUISITION_ENGINE_ERROR"


# Authorization errors


class RequisitionAuthorizationError(RequisitionEngineError):
    """Base exception for authorization failures."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedApproverError(RequisitionAuthorizationError):
    """Caller is not permitted to decide the requisition's current level."""

    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(
        self,
        requisition_id: str,
        level: int,
        actor_id: str,
        role: str | None,
        reason: str,
    ):
        self.requisition_id = requisition_id
        self.level = level
        self.actor_id = actor_id
        self.role = role
        self.reason = reason
        super().__init__(
            f"Actor {actor_id} (role {role}) may not decide level {level} "
            f"of requisition {requisition_id}: {reason}"
        )


class UnauthorizedDeletionError(RequisitionAuthorizationError):
    """Caller's role may not delete, or decide deletion of, a requisition."""

    code: str = "UNAUTHORIZED_DELETION"

    def __init__(self, requisition_id: str, actor_id: str, role: str | None):
        self.requisition_id = requisition_id
        self.actor_id = actor_id
        self.role = role
        super().__init__(
            f"Actor {actor_id} (role {role}) may not delete requisition "
            f"{requisition_id}"
        )


# State errors


class RequisitionStateError(RequisitionEngineError):
    """Base exception for operations invalid in the current state."""

    code: str = "STATE_ERROR"


class RequisitionTerminalError(RequisitionStateError):
    """Requisition is closed, filled or cancelled."""

    code: str = "REQUISITION_TERMINAL"

    def __init__(self, requisition_id: str, status: str):
        self.requisition_id = requisition_id
        self.status = status
        super().__init__(
            f"Requisition {requisition_id} is terminal (status {status})"
        )


class ApprovalAlreadyResolvedError(RequisitionStateError):
    """Approval chain already finished as approved or rejected."""

    code: str = "APPROVAL_ALREADY_RESOLVED"

    def __init__(self, requisition_id: str, approval_status: str):
        self.requisition_id = requisition_id
        self.approval_status = approval_status
        super().__init__(
            f"Requisition {requisition_id} approval is already "
            f"{approval_status}"
        )


class ApprovalLevelMismatchError(RequisitionStateError):
    """Caller acted on a level other than the recorded current level."""

    code: str = "APPROVAL_LEVEL_MISMATCH"

    def __init__(self, requisition_id: str, expected_level: int, current_level: int):
        self.requisition_id = requisition_id
        self.expected_level = expected_level
        self.current_level = current_level
        super().__init__(
            f"Requisition {requisition_id} is at level {current_level}, "
            f"caller expected level {expected_level}"
        )


class ApprovalNotCompleteError(RequisitionStateError):
    """Recruiting cannot start before the approval chain is approved."""

    code: str = "APPROVAL_NOT_COMPLETE"

    def __init__(self, requisition_id: str, approval_status: str):
        self.requisition_id = requisition_id
        self.approval_status = approval_status
        super().__init__(
            f"Requisition {requisition_id} approval is {approval_status}, "
            "not approved"
        )


class InvalidRequisitionTransitionError(RequisitionStateError):
    """Status change is not in the requisition transition table."""

    code: str = "INVALID_REQUISITION_TRANSITION"

    def __init__(self, requisition_id: str, from_status: str, to_status: str):
        self.requisition_id = requisition_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Requisition {requisition_id} cannot move from {from_status} "
            f"to {to_status}"
        )


class DeletionAlreadyRequestedError(RequisitionStateError):
    """A deletion request is already pending for the requisition."""

    code: str = "DELETION_ALREADY_REQUESTED"

    def __init__(self, requisition_id: str):
        self.requisition_id = requisition_id
        super().__init__(
            f"Deletion already requested for requisition {requisition_id}"
        )


class DeletionNotRequestedError(RequisitionStateError):
    """Deletion decision attempted with no pending request."""

    code: str = "DELETION_NOT_REQUESTED"

    def __init__(self, requisition_id: str):
        self.requisition_id = requisition_id
        super().__init__(
            f"No deletion request pending for requisition {requisition_id}"
        )


class DeletionPendingError(RequisitionStateError):
    """Lifecycle actions are paused while a deletion request is pending."""

    code: str = "DELETION_PENDING"

    def __init__(self, requisition_id: str):
        self.requisition_id = requisition_id
        super().__init__(
            f"Requisition {requisition_id} has a pending deletion request"
        )


class ChainAlreadyStartedError(RequisitionStateError):
    """The approval chain can no longer be re-derived."""

    code: str = "CHAIN_ALREADY_STARTED"

    def __init__(self, requisition_id: str):
        self.requisition_id = requisition_id
        super().__init__(
            f"Requisition {requisition_id} already has approval decisions; "
            "its chain cannot be re-derived"
        )


class StaleRequisitionError(RequisitionStateError):
    """Another transaction modified the requisition first."""

    code: str = "STALE_REQUISITION"

    def __init__(self, requisition_id: str):
        self.requisition_id = requisition_id
        super().__init__(
            f"Requisition {requisition_id} was modified by another "
            "transaction; reload and retry"
        )


# Validation errors


class RequisitionValidationError(RequisitionEngineError):
    """Base exception for missing or malformed input."""

    code: str = "VALIDATION_ERROR"


class MissingReasonError(RequisitionValidationError):
    """A reason is mandatory for this operation."""

    code: str = "REASON_REQUIRED"

    def __init__(self, requisition_id: str, operation: str):
        self.requisition_id = requisition_id
        self.operation = operation
        super().__init__(
            f"A non-empty reason is required to {operation} requisition "
            f"{requisition_id}"
        )


class InvalidApprovalLevelsError(RequisitionValidationError):
    """Approval levels are not contiguous from 1 or lack roles."""

    code: str = "INVALID_APPROVAL_LEVELS"

    def __init__(self, tenant_id: str, brand_id: str | None, reason: str):
        self.tenant_id = tenant_id
        self.brand_id = brand_id
        self.reason = reason
        super().__init__(
            f"Invalid approval levels for tenant {tenant_id} "
            f"brand {brand_id}: {reason}"
        )


class InvalidWorkflowStepsError(RequisitionValidationError):
    """Workflow template steps are malformed."""

    code: str = "INVALID_WORKFLOW_STEPS"

    def __init__(self, workflow_name: str, reason: str):
        self.workflow_name = workflow_name
        self.reason = reason
        super().__init__(f"Invalid workflow '{workflow_name}': {reason}")


class InvalidRequisitionDraftError(RequisitionValidationError):
    """Requisition draft failed validation at intake."""

    code: str = "INVALID_REQUISITION_DRAFT"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid requisition field '{field}': {reason}")


class InvalidHireCountError(RequisitionValidationError):
    """Hire count is negative or lower than the fills already recorded."""

    code: str = "INVALID_HIRE_COUNT"

    def __init__(self, requisition_id: str, hired_count: int, filled_count: int):
        self.requisition_id = requisition_id
        self.hired_count = hired_count
        self.filled_count = filled_count
        super().__init__(
            f"Invalid hire count {hired_count} for requisition {requisition_id}: "
            f"must be >= 0 and not below the {filled_count} already filled"
        )


class BulkLimitExceededError(RequisitionValidationError):
    """Bulk request names more requisitions than one call may process."""

    code: str = "BULK_LIMIT_EXCEEDED"

    def __init__(self, requested: int, limit: int):
        self.requested = requested
        self.limit = limit
        super().__init__(
            f"Bulk operation on {requested} requisitions exceeds the limit of {limit}"
        )


# Not found errors


class NotFoundError(RequisitionEngineError):
    """Base exception for lookups that found nothing."""

    code: str = "NOT_FOUND"


class RequisitionNotFoundError(NotFoundError):
    """Requisition with given ID was not found."""

    code: str = "REQUISITION_NOT_FOUND"

    def __init__(self, requisition_id: str):
        self.requisition_id = requisition_id
        super().__init__(f"Requisition not found: {requisition_id}")


class ApprovalConfigNotFoundError(NotFoundError):
    """No approval configuration for tenant (and brand)."""

    code: str = "APPROVAL_CONFIG_NOT_FOUND"

    def __init__(self, tenant_id: str, brand_id: str | None):
        self.tenant_id = tenant_id
        self.brand_id = brand_id
        super().__init__(
            f"No approval configuration for tenant {tenant_id} brand {brand_id}"
        )


# Configuration errors


class ConfigurationError(RequisitionEngineError):
    """Base exception for configuration problems."""

    code: str = "CONFIGURATION_ERROR"


class NoApprovalChainError(ConfigurationError):
    """Tenant has neither an active workflow template nor role levels."""

    code: str = "NO_APPROVAL_CHAIN"

    def __init__(self, tenant_id: str, brand_id: str | None):
        self.tenant_id = tenant_id
        self.brand_id = brand_id
        super().__init__(
            f"No approval workflow or level configuration for tenant "
            f"{tenant_id} brand {brand_id}"
        )


class SettingsError(ConfigurationError):
    """Engine settings failed validation."""

    code: str = "INVALID_SETTINGS"

    def __init__(self, setting: str, reason: str):
        self.setting = setting
        self.reason = reason
        super().__init__(f"Invalid setting '{setting}': {reason}")


# Audit errors


class AuditError(RequisitionEngineError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at event {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# Immutability


class ImmutabilityViolationError(RequisitionEngineError):
    """Attempted to modify an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
