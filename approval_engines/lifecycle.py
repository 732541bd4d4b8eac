"""
approval_engines.lifecycle -- Request lifecycle state machine.

Responsibility:
    Owns request-level state (draft -> pending -> approved/rejected,
    draft|pending -> cancelled) and the guards on who may submit, edit,
    cancel, withdraw and delegate.  Approval bookkeeping is delegated to
    ``approval_engines.chain``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Every operation takes an
    explicit ``at`` timestamp; the service layer supplies it from a Clock.

Invariants enforced:
    - Transitions follow ``REQUEST_TRANSITIONS``; terminal states accept
      no operation.
    - All-or-nothing: every operation returns ``Result[RequestLifecycle]``
      holding a NEW value; the receiver is never modified, on success or
      failure.
    - Config snapshot: ``submit`` freezes the config onto the lifecycle and
      stamps ``config_hash``; later template edits cannot reach it.
    - ``version`` increases by exactly one per successful operation
      (optimistic concurrency stamp for repositories).

Failure modes (returned, not raised):
    - InvalidTransitionError -- operation not allowed in the current state.
    - InvalidTransitionError -- also returned by submit when the chain is
      empty or invalid; the reason names the configuration problem.
    - UnknownApproverError -- principal not configured on this request.
    - ApprovalError subclasses -- illegal action, refused delegation.
    - UnauthorizedActorError -- cancel/withdraw by a disallowed actor.
    - InvalidCommentError -- blank comment, reused id, or unknown parent.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Mapping
from uuid import UUID

from approval_engines import chain
from approval_kernel.domain.approval import (
    TERMINAL_REQUEST_STATES,
    ApprovalAction,
    ApprovalConfig,
    ApprovalDecision,
    ApprovalProgress,
    ApproverSpec,
    RequestState,
    Resolution,
    SlotStatus,
    can_transition,
    validate_config,
)
from approval_kernel.domain.audit_trail import AuditTrail
from approval_kernel.domain.request import (
    CommentType,
    Delegation,
    Priority,
    Request,
    RequestComment,
)
from approval_kernel.domain.results import Result
from approval_kernel.domain.serialization import (
    action_to_dict,
    comment_to_dict,
    config_to_dict,
    delegation_to_dict,
    parse_action,
    parse_approval_config,
    parse_comment,
    parse_delegation,
    parse_request,
    request_to_dict,
)
from approval_kernel.exceptions import (
    DelegationError,
    DuplicateActionError,
    InvalidCommentError,
    InvalidTransitionError,
    UnauthorizedActorError,
    UnknownApproverError,
)
from approval_kernel.utils.hashing import hash_payload

CancelAuthorizer = Callable[["RequestLifecycle", str], bool]


def config_fingerprint(config: ApprovalConfig) -> str:
    """SHA-256 over the canonical config; approver insertion order is ignored."""
    payload = config_to_dict(config)
    payload["approvers"] = sorted(payload["approvers"], key=lambda a: (a["order"], a["id"]))
    return hash_payload(payload)


@dataclass(frozen=True)
class RequestLifecycle:
    """A request with its approval config, audit trail and discussion."""

    request: Request
    config: ApprovalConfig
    trail: AuditTrail = field(default_factory=AuditTrail.empty)
    delegations: tuple[Delegation, ...] = ()
    comments: tuple[RequestComment, ...] = ()

    @classmethod
    def draft(
        cls,
        *,
        request_id: UUID,
        request_number: str,
        template_id: str,
        title: str,
        requester_id: str,
        config: ApprovalConfig,
        created_at: datetime,
        form_data: Mapping[str, Any] | None = None,
        priority: Priority = Priority.NORMAL,
        description: str = "",
        due_date: datetime | None = None,
    ) -> RequestLifecycle:
        """A new Draft request at version 1."""
        request = Request(
            request_id=request_id,
            request_number=request_number,
            template_id=template_id,
            title=title,
            requester_id=requester_id,
            created_at=created_at,
            updated_at=created_at,
            priority=priority,
            form_data=form_data or {},
            description=description,
            due_date=due_date,
        )
        return cls(request=request, config=config)

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def state(self) -> RequestState:
        return self.request.state

    @property
    def version(self) -> int:
        return self.request.version

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_REQUEST_STATES

    def pending_approvers(self) -> Result[tuple[ApproverSpec, ...]]:
        """Slots whose turn it is; empty unless the request is Pending."""
        if self.state != RequestState.PENDING:
            return Result.success(())
        return chain.pending_approvers(self.config, self.trail)

    def is_awaiting(self, principal_id: str) -> bool:
        """True when ``principal_id`` holds a pending slot right now."""
        pending = self.pending_approvers()
        return pending.ok and any(s.principal_id == principal_id for s in pending.value)

    def resolution(self) -> Result[Resolution]:
        return chain.is_resolved(self.config, self.trail)

    def progress(self) -> Result[ApprovalProgress]:
        return chain.approval_progress(self.config, self.trail)

    def timeline(self) -> Result[tuple[SlotStatus, ...]]:
        return chain.chain_status(self.config, self.trail)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(self, *, at: datetime) -> Result[RequestLifecycle]:
        """Draft -> Pending; snapshot the config and start an empty trail."""
        if self.state != RequestState.DRAFT:
            return Result.failure(InvalidTransitionError("submit", self.state.value))

        checked = validate_config(self.config)
        if not checked:
            return Result.failure(
                InvalidTransitionError("submit", self.state.value, checked.error.reason)
            )

        return Result.success(
            self._advance(
                at,
                state=RequestState.PENDING,
                submitted_at=at,
                config_hash=config_fingerprint(self.config),
                trail=AuditTrail.empty(),
            )
        )

    def record_action(
        self,
        approver_id: str,
        decision: ApprovalDecision,
        comment: str | None = None,
        signature_present: bool = False,
        *,
        at: datetime,
    ) -> Result[RequestLifecycle]:
        """Record ``approver_id``'s decision and resolve the request if final."""
        if self.state != RequestState.PENDING:
            return Result.failure(
                InvalidTransitionError("record an approval action on", self.state.value)
            )

        spec = self.config.spec_for_principal(approver_id)
        if spec is None:
            return Result.failure(
                UnknownApproverError(approver_id, str(self.request.request_id))
            )

        action = ApprovalAction(
            approver_spec_id=spec.id,
            decision=decision,
            acted_at=at,
            comment=comment,
            signature_present=signature_present,
            actor_id=approver_id,
        )
        applied = chain.apply_action(self.config, self.trail, action)
        if not applied:
            return Result.failure(applied.error)

        resolution = chain.is_resolved(self.config, applied.value)
        if not resolution:
            return Result.failure(resolution.error)

        if resolution.value.resolved:
            outcome_state = resolution.value.outcome.request_state
            if not can_transition(self.state, outcome_state):
                return Result.failure(
                    InvalidTransitionError(f"move to {outcome_state.value}", self.state.value)
                )
            return Result.success(
                self._advance(
                    at, state=outcome_state, completed_at=at, trail=applied.value,
                )
            )
        return Result.success(self._advance(at, trail=applied.value))

    def cancel(
        self,
        actor_id: str,
        reason: str = "",
        *,
        at: datetime,
        authorized: bool | CancelAuthorizer,
    ) -> Result[RequestLifecycle]:
        """Draft|Pending -> Cancelled.

        ``authorized`` is either a pre-checked boolean or a predicate
        ``(lifecycle, actor_id) -> bool``; the policy itself is external.
        """
        if not can_transition(self.state, RequestState.CANCELLED):
            return Result.failure(InvalidTransitionError("cancel", self.state.value))

        allowed = authorized(self, actor_id) if callable(authorized) else authorized
        if not allowed:
            return Result.failure(UnauthorizedActorError("cancel", actor_id))

        return Result.success(self._cancelled(actor_id, reason, at))

    def withdraw(
        self,
        actor_id: str,
        reason: str = "",
        *,
        at: datetime,
    ) -> Result[RequestLifecycle]:
        """Requester pulls back a submitted request (Pending -> Cancelled)."""
        if self.state != RequestState.PENDING:
            return Result.failure(InvalidTransitionError("withdraw", self.state.value))
        if actor_id != self.request.requester_id:
            return Result.failure(UnauthorizedActorError("withdraw", actor_id))
        return Result.success(self._cancelled(actor_id, reason, at))

    def edit(
        self,
        form_data: Mapping[str, Any],
        *,
        at: datetime,
        title: str | None = None,
        description: str | None = None,
        priority: Priority | None = None,
        due_date: datetime | None = None,
    ) -> Result[RequestLifecycle]:
        """Replace the form data (and optionally header fields) of a Draft."""
        if self.state != RequestState.DRAFT:
            return Result.failure(
                InvalidTransitionError("edit", self.state.value, "only drafts are editable")
            )
        changes: dict[str, Any] = {"form_data": form_data}
        if title is not None:
            changes["title"] = title
        if description is not None:
            changes["description"] = description
        if priority is not None:
            changes["priority"] = priority
        if due_date is not None:
            changes["due_date"] = due_date
        return Result.success(self._advance(at, **changes))

    def update_config(self, config: ApprovalConfig, *, at: datetime) -> Result[RequestLifecycle]:
        """Swap the approval config of a Draft (template re-selection)."""
        if self.state != RequestState.DRAFT:
            return Result.failure(
                InvalidTransitionError("change the approval chain of", self.state.value)
            )
        return Result.success(self._advance(at, config=config))

    def delegate(
        self,
        approver_id: str,
        to_principal_id: str,
        *,
        at: datetime,
        reason: str = "",
        display_name: str | None = None,
    ) -> Result[RequestLifecycle]:
        """Hand ``approver_id``'s slot to ``to_principal_id``.

        The substituted slot keeps its id and order, so the engine treats
        the delegate exactly like the original principal.
        """
        if self.state != RequestState.PENDING:
            return Result.failure(InvalidTransitionError("delegate on", self.state.value))

        spec = self.config.spec_for_principal(approver_id)
        if spec is None:
            return Result.failure(
                UnknownApproverError(approver_id, str(self.request.request_id))
            )
        if not spec.can_delegate:
            return Result.failure(DelegationError(spec.id, "delegation is not allowed for this approver"))
        existing = self.trail.terminal_action_for(spec.id)
        if existing is not None:
            return Result.failure(DuplicateActionError(spec.id, existing.decision.value))
        if self.trail.actions_for(spec.id):
            return Result.failure(DelegationError(spec.id, "approver slot was already skipped"))
        if self.config.spec_for_principal(to_principal_id) is not None:
            return Result.failure(
                DelegationError(spec.id, f"{to_principal_id} is already an approver on this request")
            )

        config = self.config.with_substituted(spec.delegated_to(to_principal_id, display_name))
        delegation = Delegation(
            approver_spec_id=spec.id,
            from_principal_id=approver_id,
            to_principal_id=to_principal_id,
            delegated_at=at,
            reason=reason,
        )
        return Result.success(
            self._advance(
                at,
                config=config,
                config_hash=config_fingerprint(config),
                delegations=self.delegations + (delegation,),
            )
        )

    def add_comment(
        self,
        author_id: str,
        body: str,
        *,
        at: datetime,
        comment_id: UUID,
        comment_type: CommentType = CommentType.GENERAL,
        is_internal: bool = False,
        parent_comment_id: UUID | None = None,
    ) -> Result[RequestLifecycle]:
        """Append a discussion comment to a Draft or Pending request.

        Replies name an earlier comment on the same request through
        ``parent_comment_id``.  Comments are append-only, like the trail.
        """
        if self.is_terminal:
            return Result.failure(InvalidTransitionError("comment on", self.state.value))

        text = body.strip()
        if not text:
            return Result.failure(InvalidCommentError("comment text is required"))
        known_ids = {c.comment_id for c in self.comments}
        if comment_id in known_ids:
            return Result.failure(InvalidCommentError(f"comment {comment_id} already exists"))
        if parent_comment_id is not None and parent_comment_id not in known_ids:
            return Result.failure(
                InvalidCommentError(
                    "parent comment is not on this request", str(parent_comment_id),
                )
            )

        comment = RequestComment(
            comment_id=comment_id,
            author_id=author_id,
            body=text,
            created_at=at,
            comment_type=comment_type,
            is_internal=is_internal,
            parent_comment_id=parent_comment_id,
        )
        return Result.success(self._advance(at, comments=self.comments + (comment,)))

    def visible_comments(self, include_internal: bool = False) -> tuple[RequestComment, ...]:
        if include_internal:
            return self.comments
        return tuple(c for c in self.comments if not c.is_internal)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "request": request_to_dict(self.request),
            "approvalConfig": config_to_dict(self.config),
            "actions": [action_to_dict(a) for a in self.trail],
            "delegations": [delegation_to_dict(d) for d in self.delegations],
            "comments": [comment_to_dict(c) for c in self.comments],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RequestLifecycle:
        return cls(
            request=parse_request(data["request"]),
            config=parse_approval_config(data["approvalConfig"]),
            trail=AuditTrail(entries=tuple(parse_action(a) for a in data.get("actions", ()))),
            delegations=tuple(parse_delegation(d) for d in data.get("delegations", ())),
            comments=tuple(parse_comment(c) for c in data.get("comments", ())),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancelled(self, actor_id: str, reason: str, at: datetime) -> RequestLifecycle:
        return self._advance(
            at,
            state=RequestState.CANCELLED,
            cancel_reason=reason,
            cancelled_by=actor_id,
            completed_at=at,
        )

    def _advance(
        self,
        at: datetime,
        *,
        config: ApprovalConfig | None = None,
        trail: AuditTrail | None = None,
        delegations: tuple[Delegation, ...] | None = None,
        comments: tuple[RequestComment, ...] | None = None,
        **request_changes: Any,
    ) -> RequestLifecycle:
        """New lifecycle with request fields updated and version bumped."""
        request = replace(
            self.request,
            updated_at=at,
            version=self.request.version + 1,
            **request_changes,
        )
        return RequestLifecycle(
            request=request,
            config=config if config is not None else self.config,
            trail=trail if trail is not None else self.trail,
            delegations=delegations if delegations is not None else self.delegations,
            comments=comments if comments is not None else self.comments,
        )
