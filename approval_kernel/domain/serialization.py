"""
Boundary codecs for the inbound/outbound JSON shapes.

Responsibility:
    Converts between the host application's camelCase JSON documents and
    the frozen domain types: approval configs, actions, delegations,
    comments and request records.  Parsing is where malformed, duck-typed input is
    rejected with ``ConfigurationError``; nothing downstream tolerates
    missing keys.

Architecture position:
    Kernel > Domain.  Pure, no I/O (``json.loads`` of embedded strings only).

Accepted config shapes::

    {"mode": "sequential", "approvers": [{"id": 1, "userId": 2, "order": 1,
     "isRequired": true, "canDelegate": true}]}
    {"approverMode": "any", "approvers": "[{\\"userId\\": 2, \\"order\\": 1}]"}
    {"approvers": {"mode": "sequential", "approvers": [...]}}

Failure modes:
    - ConfigurationError on any malformed config (unknown mode, approver
      without ``userId``/``order``, non-integer order, bad JSON string).
    - ValueError on malformed action/request documents.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any, Mapping
from uuid import UUID

from approval_kernel.domain.approval import (
    ApprovalAction,
    ApprovalConfig,
    ApprovalDecision,
    ApprovalMode,
    ApproverSpec,
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
from approval_kernel.exceptions import ConfigurationError

_MODE_ALIASES = {
    "sequential": ApprovalMode.SEQUENTIAL,
    "any": ApprovalMode.ANY_ONE,
    "any_one": ApprovalMode.ANY_ONE,
    "anyone": ApprovalMode.ANY_ONE,
}


# =========================================================================
# Approval config
# =========================================================================


def parse_approval_config(data: Mapping[str, Any]) -> ApprovalConfig:
    """Parse the inbound approval-config shape into an ``ApprovalConfig``.

    Does not check chain integrity (duplicate orders etc.); that is
    ``validate_config``'s job so the engine can report it uniformly.
    """
    if not isinstance(data, Mapping):
        raise ConfigurationError("approval config must be an object")

    approvers_raw: Any = data.get("approvers")
    mode_raw: Any = data.get("mode", data.get("approverMode"))

    # {"approvers": {"approvers": [...], "mode": ...}} -- template-embedded form
    if isinstance(approvers_raw, Mapping):
        mode_raw = approvers_raw.get("mode", approvers_raw.get("approverMode", mode_raw))
        approvers_raw = approvers_raw.get("approvers")

    # approvers stored as a JSON-encoded string
    if isinstance(approvers_raw, str):
        try:
            approvers_raw = json.loads(approvers_raw)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"approvers is not valid JSON: {exc.msg}", field="approvers") from exc

    if approvers_raw is None:
        approvers_raw = []
    if not isinstance(approvers_raw, list):
        raise ConfigurationError("approvers must be a list", field="approvers")

    return ApprovalConfig(
        mode=_parse_mode(mode_raw),
        approvers=tuple(_parse_approver(a) for a in approvers_raw),
    )


def _parse_mode(value: Any) -> ApprovalMode:
    if value is None:
        return ApprovalMode.SEQUENTIAL
    if isinstance(value, ApprovalMode):
        return value
    mode = _MODE_ALIASES.get(str(value).strip().lower())
    if mode is None:
        raise ConfigurationError(f"unknown approval mode {value!r}", field="mode")
    return mode


def _parse_approver(data: Any) -> ApproverSpec:
    if not isinstance(data, Mapping):
        raise ConfigurationError("approver entry must be an object", field="approvers")

    principal = data.get("userId", data.get("principalId"))
    if principal is None or principal == "":
        raise ConfigurationError("approver is missing userId", field="userId")

    order = data.get("order")
    if isinstance(order, bool) or not isinstance(order, (int, str)):
        raise ConfigurationError(f"approver {principal} has invalid order {order!r}", field="order")
    try:
        order = int(order)
    except ValueError as exc:
        raise ConfigurationError(f"approver {principal} has invalid order {order!r}", field="order") from exc

    spec_id = data.get("id")
    return ApproverSpec(
        id=str(spec_id) if spec_id is not None else f"slot-{order}",
        principal_id=str(principal),
        order=order,
        is_required=_parse_flag(data.get("isRequired", True), "isRequired"),
        can_delegate=_parse_flag(data.get("canDelegate", True), "canDelegate"),
        display_name=data.get("userName", data.get("name")),
        role=data.get("userRole", data.get("role")),
        delegated_from=_optional_str(data.get("delegatedFrom")),
    )


def _parse_flag(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigurationError(f"{field} must be a boolean, got {value!r}", field=field)


def config_to_dict(config: ApprovalConfig) -> dict[str, Any]:
    """Outbound shape; ``parse_approval_config`` reads it back unchanged."""
    return {
        "mode": config.mode.value,
        "approvers": [
            {
                "id": spec.id,
                "userId": spec.principal_id,
                "order": spec.order,
                "isRequired": spec.is_required,
                "canDelegate": spec.can_delegate,
                "userName": spec.display_name,
                "userRole": spec.role,
                "delegatedFrom": spec.delegated_from,
            }
            for spec in config.approvers
        ],
    }


# =========================================================================
# Actions, delegations and comments
# =========================================================================


def parse_action(data: Mapping[str, Any]) -> ApprovalAction:
    """Parse ``{approverSpecId, decision, comment?, actedAt, signaturePresent}``."""
    return ApprovalAction(
        approver_spec_id=str(data["approverSpecId"]),
        decision=ApprovalDecision(data["decision"]),
        acted_at=_parse_datetime(data["actedAt"]),
        comment=data.get("comment"),
        signature_present=bool(data.get("signaturePresent", False)),
        actor_id=_optional_str(data.get("actorId")),
    )


def action_to_dict(action: ApprovalAction) -> dict[str, Any]:
    return {
        "approverSpecId": action.approver_spec_id,
        "decision": action.decision.value,
        "comment": action.comment,
        "actedAt": action.acted_at.isoformat(),
        "signaturePresent": action.signature_present,
        "actorId": action.actor_id,
    }


def parse_delegation(data: Mapping[str, Any]) -> Delegation:
    return Delegation(
        approver_spec_id=str(data["approverSpecId"]),
        from_principal_id=str(data["fromUserId"]),
        to_principal_id=str(data["toUserId"]),
        delegated_at=_parse_datetime(data["delegatedAt"]),
        reason=data.get("reason") or "",
    )


def delegation_to_dict(delegation: Delegation) -> dict[str, Any]:
    return {
        "approverSpecId": delegation.approver_spec_id,
        "fromUserId": delegation.from_principal_id,
        "toUserId": delegation.to_principal_id,
        "delegatedAt": delegation.delegated_at.isoformat(),
        "reason": delegation.reason,
    }


def parse_comment(data: Mapping[str, Any]) -> RequestComment:
    """Parse ``{id, authorId, comment, createdAt, commentType?, isInternal?, parentCommentId?}``."""
    parent = data.get("parentCommentId")
    return RequestComment(
        comment_id=UUID(str(data["id"])),
        author_id=str(data["authorId"]),
        body=data["comment"],
        created_at=_parse_datetime(data["createdAt"]),
        comment_type=CommentType(data.get("commentType") or CommentType.GENERAL.value),
        is_internal=bool(data.get("isInternal", False)),
        parent_comment_id=UUID(str(parent)) if parent is not None else None,
    )


def comment_to_dict(comment: RequestComment) -> dict[str, Any]:
    return {
        "id": str(comment.comment_id),
        "authorId": comment.author_id,
        "comment": comment.body,
        "createdAt": comment.created_at.isoformat(),
        "commentType": comment.comment_type.value,
        "isInternal": comment.is_internal,
        "parentCommentId": (
            str(comment.parent_comment_id) if comment.parent_comment_id is not None else None
        ),
    }


# =========================================================================
# Requests
# =========================================================================


def request_to_dict(request: Request) -> dict[str, Any]:
    return {
        "id": str(request.request_id),
        "requestNumber": request.request_number,
        "templateId": request.template_id,
        "title": request.title,
        "description": request.description,
        "requesterId": request.requester_id,
        "status": request.state.value,
        "priority": request.priority.value,
        "formData": thaw(request.form_data),
        "createdAt": _format_datetime(request.created_at),
        "updatedAt": _format_datetime(request.updated_at),
        "submittedAt": _format_datetime(request.submitted_at),
        "completedAt": _format_datetime(request.completed_at),
        "dueDate": _format_datetime(request.due_date),
        "cancelReason": request.cancel_reason,
        "cancelledBy": request.cancelled_by,
        "configHash": request.config_hash,
        "version": request.version,
    }


def parse_request(data: Mapping[str, Any]) -> Request:
    return Request(
        request_id=UUID(str(data["id"])),
        request_number=data["requestNumber"],
        template_id=str(data["templateId"]),
        title=data["title"],
        description=data.get("description") or "",
        requester_id=str(data["requesterId"]),
        state=RequestState(data.get("status", RequestState.DRAFT.value)),
        priority=Priority(data.get("priority", Priority.NORMAL.value)),
        form_data=data.get("formData") or {},
        created_at=_parse_datetime(data["createdAt"]),
        updated_at=_parse_optional_datetime(data.get("updatedAt")),
        submitted_at=_parse_optional_datetime(data.get("submittedAt")),
        completed_at=_parse_optional_datetime(data.get("completedAt")),
        due_date=_parse_optional_datetime(data.get("dueDate")),
        cancel_reason=data.get("cancelReason"),
        cancelled_by=_optional_str(data.get("cancelledBy")),
        config_hash=data.get("configHash"),
        version=int(data.get("version", 1)),
    )


# =========================================================================
# Helpers
# =========================================================================


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _parse_datetime(value: Any) -> datetime:
    """Parse a datetime; values without an offset are taken as UTC."""
    if isinstance(value, str):
        # "2025-08-07T14:30:00Z" -- fromisoformat accepts "Z" on 3.11+
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise ValueError(f"Cannot parse datetime from {value!r}")
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _parse_optional_datetime(value: Any) -> datetime | None:
    return None if value is None else _parse_datetime(value)


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
