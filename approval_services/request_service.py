"""
approval_services.request_service -- Host-facing request operations.

Responsibility:
    Loads a request, runs the pure lifecycle transition, raises the typed
    error on failure, saves the new version, and logs a structured event.
    Supplies wall-clock time (via ``Clock``) and request numbers.

Architecture position:
    Services -- the only layer that holds a repository and reads the clock.
    May import approval_engines and approval_kernel.

Invariants enforced:
    - Every mutation goes through ``RequestLifecycle``; the service never
      edits request fields directly.
    - A failed transition saves nothing.
    - Concurrent writers are serialized by the repository version check
      (OptimisticLockError to the loser).

Failure modes:
    - Any ``ApprovalKernelError`` carried by a failed ``Result``, raised.
    - RequestNotFoundError / OptimisticLockError from the repository.
    - UnknownApproverError is additionally logged at WARNING: it means a
      principal acted on a request they are not configured for.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Mapping, Sequence
from uuid import UUID, uuid4

from approval_engines.lifecycle import CancelAuthorizer, RequestLifecycle
from approval_kernel.domain.approval import (
    ApprovalConfig,
    ApprovalDecision,
    ApprovalProgress,
    ApproverSpec,
    RequestState,
    SlotStatus,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.request import CommentType, Priority, RequestComment
from approval_kernel.domain.results import Result
from approval_kernel.exceptions import ApprovalKernelError, UnknownApproverError
from approval_kernel.logging_config import LogContext, get_logger
from approval_services.repository import RequestRepository

logger = get_logger("services.request")


def requester_only(lifecycle: RequestLifecycle, actor_id: str) -> bool:
    """Default cancel policy: only the requester may cancel."""
    return actor_id == lifecycle.request.requester_id


class RequestService:
    """Runs request operations against a repository."""

    def __init__(
        self,
        repository: RequestRepository,
        clock: Clock | None = None,
        cancel_policy: CancelAuthorizer = requester_only,
    ) -> None:
        self._repository = repository
        self._clock = clock or SystemClock()
        self._cancel_policy = cancel_policy

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_draft(
        self,
        *,
        template_id: str,
        title: str,
        requester_id: str,
        config: ApprovalConfig,
        form_data: Mapping[str, Any] | None = None,
        priority: Priority = Priority.NORMAL,
        description: str = "",
        due_date: datetime | None = None,
        request_id: UUID | None = None,
    ) -> RequestLifecycle:
        """Create and store a new Draft request."""
        request_id = request_id or uuid4()
        with LogContext.bind(
            request_id=str(request_id), actor_id=requester_id, template_id=template_id,
        ):
            lifecycle = RequestLifecycle.draft(
                request_id=request_id,
                request_number=self._repository.next_request_number(),
                template_id=template_id,
                title=title,
                requester_id=requester_id,
                config=config,
                created_at=self._clock.now(),
                form_data=form_data,
                priority=priority,
                description=description,
                due_date=due_date,
            )
            self._repository.save(lifecycle)
            logger.info(
                "request_created",
                extra={"request_number": lifecycle.request.request_number},
            )
        return lifecycle

    def submit(self, request_id: UUID, actor_id: str) -> RequestLifecycle:
        """Submit a Draft for approval."""
        lifecycle = self._transition(
            request_id, actor_id, lambda lc, now: lc.submit(at=now),
        )
        pending = lifecycle.pending_approvers().unwrap()
        logger.info(
            "request_submitted",
            extra={
                "request_id": str(request_id),
                "config_hash": lifecycle.request.config_hash,
                "pending_approvers": [s.principal_id for s in pending],
            },
        )
        return lifecycle

    def record_action(
        self,
        request_id: UUID,
        approver_id: str,
        decision: ApprovalDecision | str,
        comment: str | None = None,
        signature_present: bool = False,
    ) -> RequestLifecycle:
        """Record an approver's decision; resolves the request when final."""
        decision = ApprovalDecision(decision)
        try:
            lifecycle = self._transition(
                request_id,
                approver_id,
                lambda lc, now: lc.record_action(
                    approver_id, decision, comment, signature_present, at=now,
                ),
            )
        except UnknownApproverError:
            logger.warning(
                "unknown_approver_rejected",
                extra={"request_id": str(request_id), "approver_id": approver_id},
            )
            raise

        logger.info(
            "approval_action_recorded",
            extra={
                "request_id": str(request_id),
                "approver_id": approver_id,
                "decision": decision.value,
                "signature_present": signature_present,
            },
        )
        if lifecycle.is_terminal:
            logger.info(
                "request_resolved",
                extra={
                    "request_id": str(request_id),
                    "state": lifecycle.state.value,
                    "reason": lifecycle.resolution().unwrap().reason,
                },
            )
        return lifecycle

    def cancel(
        self,
        request_id: UUID,
        actor_id: str,
        reason: str = "",
        authorized: bool | None = None,
    ) -> RequestLifecycle:
        """Cancel a Draft or Pending request.

        ``authorized`` overrides the service's cancel policy when the host
        has already made the permission decision (e.g. an administrator).
        """
        policy = self._cancel_policy if authorized is None else authorized
        lifecycle = self._transition(
            request_id,
            actor_id,
            lambda lc, now: lc.cancel(actor_id, reason, at=now, authorized=policy),
        )
        logger.info(
            "request_cancelled",
            extra={"request_id": str(request_id), "cancelled_by": actor_id, "reason": reason},
        )
        return lifecycle

    def withdraw(self, request_id: UUID, actor_id: str, reason: str = "") -> RequestLifecycle:
        """Requester pulls back a Pending request."""
        lifecycle = self._transition(
            request_id, actor_id, lambda lc, now: lc.withdraw(actor_id, reason, at=now),
        )
        logger.info(
            "request_withdrawn",
            extra={"request_id": str(request_id), "actor_id": actor_id},
        )
        return lifecycle

    def edit(
        self,
        request_id: UUID,
        actor_id: str,
        form_data: Mapping[str, Any],
        **changes: Any,
    ) -> RequestLifecycle:
        """Edit a Draft's form data (and title/description/priority/due_date)."""
        lifecycle = self._transition(
            request_id, actor_id, lambda lc, now: lc.edit(form_data, at=now, **changes),
        )
        logger.info("request_edited", extra={"request_id": str(request_id)})
        return lifecycle

    def update_config(
        self, request_id: UUID, actor_id: str, config: ApprovalConfig,
    ) -> RequestLifecycle:
        """Replace the approval chain of a Draft."""
        lifecycle = self._transition(
            request_id, actor_id, lambda lc, now: lc.update_config(config, at=now),
        )
        logger.info("request_config_updated", extra={"request_id": str(request_id)})
        return lifecycle

    def delegate(
        self,
        request_id: UUID,
        approver_id: str,
        to_principal_id: str,
        reason: str = "",
        display_name: str | None = None,
    ) -> RequestLifecycle:
        """Hand ``approver_id``'s slot to another principal."""
        lifecycle = self._transition(
            request_id,
            approver_id,
            lambda lc, now: lc.delegate(
                approver_id, to_principal_id, at=now, reason=reason, display_name=display_name,
            ),
        )
        logger.info(
            "approval_delegated",
            extra={
                "request_id": str(request_id),
                "from_principal": approver_id,
                "to_principal": to_principal_id,
            },
        )
        return lifecycle

    def add_comment(
        self,
        request_id: UUID,
        author_id: str,
        body: str,
        comment_type: CommentType | str = CommentType.GENERAL,
        is_internal: bool = False,
        parent_comment_id: UUID | None = None,
    ) -> RequestComment:
        """Post a comment (or a reply) on a Draft or Pending request."""
        comment_type = CommentType(comment_type)
        comment_id = uuid4()
        lifecycle = self._transition(
            request_id,
            author_id,
            lambda lc, now: lc.add_comment(
                author_id,
                body,
                at=now,
                comment_id=comment_id,
                comment_type=comment_type,
                is_internal=is_internal,
                parent_comment_id=parent_comment_id,
            ),
        )
        logger.info(
            "request_comment_added",
            extra={
                "request_id": str(request_id),
                "comment_id": str(comment_id),
                "comment_type": comment_type.value,
                "is_internal": is_internal,
                "is_reply": parent_comment_id is not None,
            },
        )
        return lifecycle.comments[-1]

    def bulk_cancel(
        self,
        request_ids: Sequence[UUID],
        actor_id: str,
        reason: str = "",
        authorized: bool | None = None,
    ) -> dict[UUID, Result[RequestLifecycle]]:
        """Cancel several requests; one request's failure does not stop the rest.

        Returns a result per id: the cancelled lifecycle, or the typed error
        that refused it.
        """
        results: dict[UUID, Result[RequestLifecycle]] = {}
        for request_id in request_ids:
            try:
                results[request_id] = Result.success(
                    self.cancel(request_id, actor_id, reason, authorized)
                )
            except ApprovalKernelError as exc:
                results[request_id] = Result.failure(exc)

        failed = [str(rid) for rid, result in results.items() if not result]
        logger.info(
            "bulk_cancel_completed",
            extra={
                "actor_id": actor_id,
                "requested": len(request_ids),
                "cancelled": len(results) - len(failed),
                "failed_request_ids": failed,
            },
        )
        return results

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def comments(
        self, request_id: UUID, include_internal: bool = False,
    ) -> tuple[RequestComment, ...]:
        """Comments in posting order; internal ones only when asked for."""
        return self._repository.get(request_id).visible_comments(include_internal)

    def get(self, request_id: UUID) -> RequestLifecycle:
        return self._repository.get(request_id)

    def list_requests(
        self,
        state: RequestState | None = None,
        requester_id: str | None = None,
    ) -> Sequence[RequestLifecycle]:
        return self._repository.list(state=state, requester_id=requester_id)

    def pending_for_principal(self, principal_id: str) -> list[RequestLifecycle]:
        """Pending requests on which it is ``principal_id``'s turn (dashboard)."""
        return [
            lc for lc in self._repository.list(state=RequestState.PENDING)
            if lc.is_awaiting(principal_id)
        ]

    def pending_approvers(self, request_id: UUID) -> tuple[ApproverSpec, ...]:
        return self._repository.get(request_id).pending_approvers().unwrap()

    def timeline(self, request_id: UUID) -> tuple[SlotStatus, ...]:
        return self._repository.get(request_id).timeline().unwrap()

    def progress(self, request_id: UUID) -> ApprovalProgress:
        return self._repository.get(request_id).progress().unwrap()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(
        self,
        request_id: UUID,
        actor_id: str,
        operation: Callable[[RequestLifecycle, datetime], Result[RequestLifecycle]],
    ) -> RequestLifecycle:
        """Load, apply ``operation`` at the current time, save on success."""
        with LogContext.bind(request_id=str(request_id), actor_id=actor_id):
            lifecycle = self._repository.get(request_id)
            with LogContext.bind(template_id=lifecycle.request.template_id):
                result = operation(lifecycle, self._clock.now())
                if not result:
                    logger.info(
                        "request_operation_refused",
                        extra={
                            "state": lifecycle.state.value,
                            "error_code": result.code,
                            "error": str(result.error),
                        },
                    )
                updated = result.unwrap()
                self._repository.save(updated)
                return updated
