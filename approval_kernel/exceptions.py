"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED ERRORS
===============================================================================

Every engine and lifecycle failure is attributable to a specific,
correctable input.  Callers must be able to branch on the KIND of failure
(show an inline validation message, log a security event, reload and
retry) without parsing message strings.

  1. Every error has a TYPED class (catch or match by type, not message)
  2. Every error has a CODE attribute (machine-readable, API-safe)
  3. Errors carry structured DATA (not just a message string)

The pure layers (``approval_engines`` and ``approval_kernel.domain``) never
raise these for business failures.  They return them inside a
``Result`` (see ``approval_kernel.domain.results``).  The service layer
unwraps results and raises.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- ConfigurationError
    |
    +-- LifecycleError
    |   +-- InvalidTransitionError
    |   +-- UnauthorizedActorError
    |   +-- InvalidCommentError
    |
    +-- ApprovalError
    |   +-- ChainResolvedError
    |   +-- UnknownSlotError
    |   +-- DuplicateActionError
    |   +-- OutOfSequenceError
    |   +-- SkipNotAllowedError
    |   +-- DelegationError
    |
    +-- UnknownApproverError
    |
    +-- RepositoryError
        +-- RequestNotFoundError
        +-- OptimisticLockError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When
----------------|-----------------------------|-----------------------------------------
Configuration   | INVALID_CONFIGURATION       | Empty chain, duplicate order/id/principal
----------------|-----------------------------|-----------------------------------------
Lifecycle       | INVALID_TRANSITION          | Operation not allowed from current state
                | UNAUTHORIZED_ACTOR          | Cancel/withdraw by an actor not allowed to
                | INVALID_COMMENT             | Blank comment or unknown parent comment
----------------|-----------------------------|-----------------------------------------
Approval        | CHAIN_RESOLVED              | Chain already reached a final outcome
                | UNKNOWN_APPROVER_SLOT       | approver_spec_id not in the config
                | DUPLICATE_APPROVAL_ACTION   | Slot already carries a terminal action
                | OUT_OF_SEQUENCE_ACTION      | Sequential slot acted before its turn
                | SKIP_NOT_ALLOWED            | Skip on a required slot or in any-one mode
                | DELEGATION_NOT_ALLOWED      | Delegation refused for this slot
----------------|-----------------------------|-----------------------------------------
Authorization   | UNKNOWN_APPROVER            | Principal is not configured on the request
----------------|-----------------------------|-----------------------------------------
Repository      | REQUEST_NOT_FOUND           | Request id not stored
                | OPTIMISTIC_LOCK_CONFLICT    | Stale version saved
                | IMMUTABILITY_VIOLATION      | Update/delete of an audit trail row

===============================================================================
HANDLING PATTERNS
===============================================================================

1. MATCH THE RESULT (pure layers):

    result = lifecycle.record_action(...)
    if not result:
        return {"error": result.error.code, "message": str(result.error)}

2. CATCH SPECIFIC EXCEPTIONS (service layer):

    try:
        service.record_action(request_id, approver_id, decision)
    except UnknownApproverError as e:
        security_log.warning("unknown approver %s", e.approver_id)
    except ApprovalError as e:
        show_inline_error(e.code, str(e))

3. RETRY ON CONCURRENCY:

    except OptimisticLockError:
        # reload the request and re-validate against the latest trail
"""


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Configuration


class ConfigurationError(ApprovalKernelError):
    """Malformed approval configuration (fix at the template editor)."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, reason: str, field: str | None = None):
        self.reason = reason
        self.field = field
        super().__init__(f"Invalid configuration: {reason}")


# Lifecycle


class LifecycleError(ApprovalKernelError):
    """Base exception for request lifecycle errors."""

    code: str = "LIFECYCLE_ERROR"


class InvalidTransitionError(LifecycleError):
    """Lifecycle operation attempted from a state that disallows it."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, operation: str, from_state: str, reason: str | None = None):
        self.operation = operation
        self.from_state = from_state
        self.reason = reason
        message = f"Cannot {operation} a request in state '{from_state}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UnauthorizedActorError(LifecycleError):
    """Actor is not allowed to perform the lifecycle operation."""

    code: str = "UNAUTHORIZED_ACTOR"

    def __init__(self, operation: str, actor_id: str):
        self.operation = operation
        self.actor_id = actor_id
        super().__init__(f"Actor {actor_id} is not authorized to {operation} this request")


class InvalidCommentError(LifecycleError):
    """Comment refused: empty body, or reply to a comment not on the request."""

    code: str = "INVALID_COMMENT"

    def __init__(self, reason: str, parent_comment_id: str | None = None):
        self.reason = reason
        self.parent_comment_id = parent_comment_id
        super().__init__(f"Invalid comment: {reason}")


# Approval actions


class ApprovalError(ApprovalKernelError):
    """Base exception for illegal approval actions."""

    code: str = "APPROVAL_ERROR"


class ChainResolvedError(ApprovalError):
    """The approval chain already reached a final outcome."""

    code: str = "CHAIN_RESOLVED"

    def __init__(self, outcome: str):
        self.outcome = outcome
        super().__init__(f"Approval chain already resolved as {outcome}")


class UnknownSlotError(ApprovalError):
    """approver_spec_id does not exist in the approval config."""

    code: str = "UNKNOWN_APPROVER_SLOT"

    def __init__(self, approver_spec_id: str):
        self.approver_spec_id = approver_spec_id
        super().__init__(f"Approver slot not configured: {approver_spec_id}")


class DuplicateActionError(ApprovalError):
    """The slot already carries a terminal (approved/rejected) action."""

    code: str = "DUPLICATE_APPROVAL_ACTION"

    def __init__(self, approver_spec_id: str, existing_decision: str):
        self.approver_spec_id = approver_spec_id
        self.existing_decision = existing_decision
        super().__init__(
            f"Approver slot {approver_spec_id} already acted ({existing_decision})"
        )


class OutOfSequenceError(ApprovalError):
    """Sequential-mode slot acted before its turn."""

    code: str = "OUT_OF_SEQUENCE_ACTION"

    def __init__(self, approver_spec_id: str, pending_spec_ids: tuple[str, ...]):
        self.approver_spec_id = approver_spec_id
        self.pending_spec_ids = pending_spec_ids
        expected = ", ".join(pending_spec_ids) or "none"
        super().__init__(
            f"Approver slot {approver_spec_id} is not pending (pending: {expected})"
        )


class SkipNotAllowedError(ApprovalError):
    """Skip requested where the chain cannot pass over the slot."""

    code: str = "SKIP_NOT_ALLOWED"

    def __init__(self, approver_spec_id: str, reason: str):
        self.approver_spec_id = approver_spec_id
        self.reason = reason
        super().__init__(f"Cannot skip approver slot {approver_spec_id}: {reason}")


class DelegationError(ApprovalError):
    """Delegation refused for the slot."""

    code: str = "DELEGATION_NOT_ALLOWED"

    def __init__(self, approver_spec_id: str, reason: str):
        self.approver_spec_id = approver_spec_id
        self.reason = reason
        super().__init__(f"Cannot delegate approver slot {approver_spec_id}: {reason}")


# Authorization


class UnknownApproverError(ApprovalKernelError):
    """
    Principal is not a configured approver on the request.

    Kept apart from ApprovalError so hosts can log it as a
    security-relevant event.
    """

    code: str = "UNKNOWN_APPROVER"

    def __init__(self, approver_id: str, request_id: str | None = None):
        self.approver_id = approver_id
        self.request_id = request_id
        super().__init__(f"Principal {approver_id} is not an approver on this request")


# Repository


class RepositoryError(ApprovalKernelError):
    """Base exception for request storage errors."""

    code: str = "REPOSITORY_ERROR"


class RequestNotFoundError(RepositoryError):
    """Request with given ID was not found."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Request not found: {request_id}")


class OptimisticLockError(RepositoryError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected_version: int, actual_version: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            f"expected stored version {expected_version}, found {actual_version}"
        )


class ImmutabilityViolationError(RepositoryError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
