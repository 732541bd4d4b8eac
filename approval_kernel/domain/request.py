"""
Request record types (``approval_kernel.domain.request``).

Responsibility:
    The request-level data a lifecycle carries around the approval chain:
    identity, requester, form data, timestamps, cancellation details, and
    the optimistic-concurrency ``version`` stamp.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - ``form_data`` is deep-frozen on construction so a lifecycle value
      cannot be mutated through a shared dict.
    - ``state`` is only changed by ``RequestLifecycle`` operations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

from approval_kernel.domain.approval import RequestState

REQUEST_NUMBER_PREFIX = "REQ"


def _deep_freeze_dict(d: Mapping[str, Any]) -> MappingProxyType:
    """
    Deep-freeze a mapping: nested dicts become MappingProxyType and nested
    lists become tuples.
    """
    frozen = {}
    for k, v in d.items():
        frozen[k] = _deep_freeze_value(v)
    return MappingProxyType(frozen)


def _deep_freeze_value(v: Any) -> Any:
    if isinstance(v, Mapping):
        return _deep_freeze_dict(v)
    if isinstance(v, (list, tuple)):
        return tuple(_deep_freeze_value(item) for item in v)
    return v


def thaw(value: Any) -> Any:
    """Inverse of the deep-freeze, for JSON serialization."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


def format_request_number(sequence: int) -> str:
    """``7 -> 'REQ-00007'``."""
    return f"{REQUEST_NUMBER_PREFIX}-{sequence:05d}"


class Priority(str, Enum):
    """Request priority (informational; never affects the chain)."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


@dataclass(frozen=True)
class Delegation:
    """Record of an approver slot handed to another principal."""

    approver_spec_id: str
    from_principal_id: str
    to_principal_id: str
    delegated_at: datetime
    reason: str = ""


@dataclass(frozen=True)
class Request:
    """Immutable snapshot of a request's own fields."""

    request_id: UUID
    request_number: str
    template_id: str
    title: str
    requester_id: str
    created_at: datetime
    state: RequestState = RequestState.DRAFT
    priority: Priority = Priority.NORMAL
    form_data: Mapping[str, Any] = field(default_factory=dict)
    description: str = ""
    updated_at: datetime | None = None
    submitted_at: datetime | None = None
    completed_at: datetime | None = None
    due_date: datetime | None = None
    cancel_reason: str | None = None
    cancelled_by: str | None = None
    config_hash: str | None = None
    version: int = 1

    def __post_init__(self) -> None:
        if not isinstance(self.form_data, MappingProxyType):
            object.__setattr__(self, "form_data", _deep_freeze_dict(self.form_data))


class CommentType(str, Enum):
    """Kind of discussion entry on a request."""

    GENERAL = "general"
    QUESTION = "question"
    RESPONSE = "response"


@dataclass(frozen=True)
class RequestComment:
    """One discussion entry on a request.

    ``parent_comment_id`` threads a reply under an earlier comment on the
    same request.  Internal comments are hidden from the requester's view.
    """

    comment_id: UUID
    author_id: str
    body: str
    created_at: datetime
    comment_type: CommentType = CommentType.GENERAL
    is_internal: bool = False
    parent_comment_id: UUID | None = None
