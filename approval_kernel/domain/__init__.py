"""
Pure domain layer.

Pure value objects and validation with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (timestamps are passed in)
- I/O

All domain objects are immutable and deterministic.
"""

from approval_kernel.domain.approval import (
    REQUEST_TRANSITIONS,
    TERMINAL_DECISIONS,
    TERMINAL_REQUEST_STATES,
    ApprovalAction,
    ApprovalConfig,
    ApprovalDecision,
    ApprovalMode,
    ApprovalOutcome,
    ApprovalProgress,
    ApproverSpec,
    RequestState,
    Resolution,
    SlotState,
    SlotStatus,
    can_transition,
    validate_config,
)
from approval_kernel.domain.audit_trail import AuditTrail
from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from approval_kernel.domain.request import (
    CommentType,
    Delegation,
    Priority,
    Request,
    RequestComment,
    format_request_number,
)
from approval_kernel.domain.results import Result

__all__ = [
    "REQUEST_TRANSITIONS",
    "TERMINAL_DECISIONS",
    "TERMINAL_REQUEST_STATES",
    "ApprovalAction",
    "ApprovalConfig",
    "ApprovalDecision",
    "ApprovalMode",
    "ApprovalOutcome",
    "ApprovalProgress",
    "ApproverSpec",
    "AuditTrail",
    "Clock",
    "CommentType",
    "Delegation",
    "DeterministicClock",
    "Priority",
    "Request",
    "RequestComment",
    "RequestState",
    "Resolution",
    "Result",
    "SlotState",
    "SlotStatus",
    "SystemClock",
    "can_transition",
    "format_request_number",
    "validate_config",
]
