"""
Module: approval_kernel.models.request
Responsibility: ORM persistence for requests, their approval actions and
    their discussion comments.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ (for DTO conversion).

Invariants enforced:
    - Lifecycle states: DB check constraint limits status values; the
      lifecycle enforces transition rules; an ORM listener prevents any
      mutation of a request that was already in a terminal state.
    - Append-only trail: approval action rows cannot be updated or
      deleted (ImmutabilityViolationError).
    - Comments are append-only in the same way, ordered by UNIQUE(request_id,
      sequence); a reply references a comment on the same request.
    - Action ordering: UNIQUE(request_id, sequence) preserves insertion
      order of the audit trail.
    - The approval config snapshot is stored as JSON next to the request.

Failure modes:
    - IntegrityError on duplicate request number or action sequence.
    - ImmutabilityViolationError on action UPDATE/DELETE, or on any change
      to a request already approved, rejected or cancelled.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.orm.attributes import get_history

from approval_kernel.db.base import Base, UUIDString
from approval_kernel.domain.approval import (
    TERMINAL_REQUEST_STATES,
    ApprovalAction,
    ApprovalConfig,
    ApprovalDecision,
    RequestState,
)
from approval_kernel.domain.request import (
    CommentType,
    Delegation,
    Priority,
    Request,
    RequestComment,
    thaw,
)
from approval_kernel.domain.serialization import (
    config_to_dict,
    delegation_to_dict,
    parse_approval_config,
    parse_delegation,
)
from approval_kernel.exceptions import ImmutabilityViolationError
from approval_kernel.logging_config import get_logger

logger = get_logger("models.request")

_TERMINAL_STATUS_VALUES = frozenset(s.value for s in TERMINAL_REQUEST_STATES)


class RequestModel(Base):
    """Persistent request with its approval-config snapshot.

    Guarantees:
        - request_number is unique.
        - version is the lifecycle's optimistic-concurrency stamp; the
          repository only writes version N+1 over stored version N.
    """

    __tablename__ = "approval_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'pending', 'approved', 'rejected', 'cancelled')",
            name="ck_approval_requests_valid_status",
        ),
        CheckConstraint(
            "priority IN ('low', 'normal', 'high', 'urgent')",
            name="ck_approval_requests_valid_priority",
        ),
        Index("ix_approval_requests_status", "status", "created_at"),
        Index("ix_approval_requests_requester", "requester_id", "status"),
    )

    request_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    request_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    template_id: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    requester_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    form_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    approval_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    delegations: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    config_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    actions: Mapped[list[ApprovalActionModel]] = relationship(
        "ApprovalActionModel",
        back_populates="request",
        primaryjoin="RequestModel.request_id == ApprovalActionModel.request_id",
        order_by="ApprovalActionModel.sequence",
        lazy="selectin",
    )

    comments: Mapped[list[RequestCommentModel]] = relationship(
        "RequestCommentModel",
        back_populates="request",
        primaryjoin="RequestModel.request_id == RequestCommentModel.request_id",
        order_by="RequestCommentModel.sequence",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<Request {self.request_number} {self.template_id} "
            f"status={self.status} v{self.version}>"
        )

    # ------------------------------------------------------------------
    # DTO conversion
    # ------------------------------------------------------------------

    def to_request(self) -> Request:
        """Convert the row to the frozen ``Request`` record."""
        return Request(
            request_id=self.request_id,
            request_number=self.request_number,
            template_id=self.template_id,
            title=self.title,
            description=self.description,
            requester_id=self.requester_id,
            state=RequestState(self.status),
            priority=Priority(self.priority),
            form_data=self.form_data or {},
            created_at=self.created_at,
            updated_at=self.updated_at,
            submitted_at=self.submitted_at,
            completed_at=self.completed_at,
            due_date=self.due_date,
            cancel_reason=self.cancel_reason,
            cancelled_by=self.cancelled_by,
            config_hash=self.config_hash,
            version=self.version,
        )

    def to_config(self) -> ApprovalConfig:
        return parse_approval_config(self.approval_config)

    def to_delegations(self) -> tuple[Delegation, ...]:
        return tuple(parse_delegation(d) for d in self.delegations or ())

    def to_actions(self) -> tuple[ApprovalAction, ...]:
        return tuple(a.to_dto() for a in self.actions)

    def to_comments(self) -> tuple[RequestComment, ...]:
        return tuple(c.to_dto() for c in self.comments)

    @classmethod
    def from_dto(
        cls,
        request: Request,
        config: ApprovalConfig,
        delegations: tuple[Delegation, ...] = (),
    ) -> RequestModel:
        """Create a row from domain values."""
        model = cls(request_id=request.request_id)
        model.apply(request, config, delegations)
        return model

    def apply(
        self,
        request: Request,
        config: ApprovalConfig,
        delegations: tuple[Delegation, ...],
    ) -> None:
        """Copy mutable request fields from domain values onto the row."""
        self.request_number = request.request_number
        self.template_id = request.template_id
        self.title = request.title
        self.description = request.description
        self.requester_id = request.requester_id
        self.status = request.state.value
        self.priority = request.priority.value
        self.form_data = thaw(request.form_data)
        self.approval_config = config_to_dict(config)
        self.delegations = [delegation_to_dict(d) for d in delegations]
        self.config_hash = request.config_hash
        self.created_at = request.created_at
        self.updated_at = request.updated_at
        self.submitted_at = request.submitted_at
        self.completed_at = request.completed_at
        self.due_date = request.due_date
        self.cancel_reason = request.cancel_reason
        self.cancelled_by = request.cancelled_by
        self.version = request.version


class ApprovalActionModel(Base):
    """Persistent approval action. Append-only.

    Guarantees:
        - UNIQUE(request_id, sequence): one row per trail position.
        - Rows are immutable once created -- no UPDATE, no DELETE.
    """

    __tablename__ = "approval_actions"

    __table_args__ = (
        UniqueConstraint("request_id", "sequence", name="uq_approval_actions_sequence"),
        CheckConstraint(
            "decision IN ('approved', 'rejected', 'skipped')",
            name="ck_approval_actions_valid_decision",
        ),
        Index("ix_approval_actions_request_id", "request_id"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_requests.request_id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_spec_id: Mapped[str] = mapped_column(String(100), nullable=False)
    decision: Mapped[str] = mapped_column(String(20), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    signature_present: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    acted_at: Mapped[datetime] = mapped_column(nullable=False)

    request: Mapped[RequestModel] = relationship(
        "RequestModel",
        back_populates="actions",
        foreign_keys=[request_id],
        primaryjoin="ApprovalActionModel.request_id == RequestModel.request_id",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalAction request={self.request_id} #{self.sequence} "
            f"{self.approver_spec_id}={self.decision}>"
        )

    def to_dto(self) -> ApprovalAction:
        return ApprovalAction(
            approver_spec_id=self.approver_spec_id,
            decision=ApprovalDecision(self.decision),
            acted_at=self.acted_at,
            comment=self.comment,
            signature_present=self.signature_present,
            actor_id=self.actor_id,
        )

    @classmethod
    def from_dto(cls, request_id: UUID, sequence: int, dto: ApprovalAction) -> ApprovalActionModel:
        return cls(
            request_id=request_id,
            sequence=sequence,
            approver_spec_id=dto.approver_spec_id,
            decision=dto.decision.value,
            comment=dto.comment,
            signature_present=dto.signature_present,
            actor_id=dto.actor_id,
            acted_at=dto.acted_at,
        )


class RequestCommentModel(Base):
    """Persistent discussion comment. Append-only."""

    __tablename__ = "approval_request_comments"

    __table_args__ = (
        UniqueConstraint("request_id", "sequence", name="uq_approval_request_comments_sequence"),
        CheckConstraint(
            "comment_type IN ('general', 'question', 'response')",
            name="ck_approval_request_comments_valid_type",
        ),
        Index("ix_approval_request_comments_request_id", "request_id"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_requests.request_id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    comment_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    author_id: Mapped[str] = mapped_column(String(100), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    comment_type: Mapped[str] = mapped_column(String(20), nullable=False, default="general")
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parent_comment_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    request: Mapped[RequestModel] = relationship(
        "RequestModel",
        back_populates="comments",
        foreign_keys=[request_id],
        primaryjoin="RequestCommentModel.request_id == RequestModel.request_id",
    )

    def __repr__(self) -> str:
        return f"<RequestComment request={self.request_id} #{self.sequence} by {self.author_id}>"

    def to_dto(self) -> RequestComment:
        return RequestComment(
            comment_id=self.comment_id,
            author_id=self.author_id,
            body=self.body,
            created_at=self.created_at,
            comment_type=CommentType(self.comment_type),
            is_internal=self.is_internal,
            parent_comment_id=self.parent_comment_id,
        )

    @classmethod
    def from_dto(cls, request_id: UUID, sequence: int, dto: RequestComment) -> RequestCommentModel:
        return cls(
            request_id=request_id,
            sequence=sequence,
            comment_id=dto.comment_id,
            author_id=dto.author_id,
            body=dto.body,
            comment_type=dto.comment_type.value,
            is_internal=dto.is_internal,
            parent_comment_id=dto.parent_comment_id,
            created_at=dto.created_at,
        )


# =============================================================================
# ORM-Level Immutability
# =============================================================================


@event.listens_for(ApprovalActionModel, "before_update")
def prevent_action_update(mapper, connection, target):
    """Prevent updates to approval action records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAction",
        entity_id=f"{target.request_id}#{target.sequence}",
        reason="Approval actions are append-only -- cannot modify",
    )


@event.listens_for(ApprovalActionModel, "before_delete")
def prevent_action_delete(mapper, connection, target):
    """Prevent deletion of approval action records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAction",
        entity_id=f"{target.request_id}#{target.sequence}",
        reason="Approval actions are append-only -- cannot delete",
    )


@event.listens_for(RequestCommentModel, "before_update")
@event.listens_for(RequestCommentModel, "before_delete")
def prevent_comment_change(mapper, connection, target):
    """Comments are append-only."""
    raise ImmutabilityViolationError(
        entity_type="RequestComment",
        entity_id=str(target.comment_id),
        reason="Request comments are append-only",
    )


@event.listens_for(RequestModel, "before_update")
def prevent_terminal_request_update(mapper, connection, target):
    """Block any change to a request that was already terminal.

    Checks the status the row WAS in, so the final transition itself
    (pending -> approved, etc.) is still allowed.
    """
    status_history = get_history(target, "status")
    previous = status_history.deleted[0] if status_history.deleted else target.status

    if previous in _TERMINAL_STATUS_VALUES:
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": "Request",
                "entity_id": str(target.request_id),
                "operation": "UPDATE",
            },
        )
        raise ImmutabilityViolationError(
            entity_type="Request",
            entity_id=str(target.request_id),
            reason=f"Request is {previous} -- terminal requests cannot change",
        )


@event.listens_for(RequestModel, "before_delete")
def prevent_request_delete(mapper, connection, target):
    """Requests are never deleted; cancel them instead."""
    raise ImmutabilityViolationError(
        entity_type="Request",
        entity_id=str(target.request_id),
        reason="Requests cannot be deleted -- cancel instead",
    )
