"""
approval_services.repository -- Request storage with optimistic concurrency.

Responsibility:
    Loads and stores ``RequestLifecycle`` values.  Two implementations share
    one contract: an in-memory store for tests and embedding, and a
    SQLAlchemy store over ``approval_requests`` / ``approval_actions``.

Architecture position:
    Services -- may import approval_engines and approval_kernel (domain,
    models, db).

Invariants enforced:
    - Optimistic concurrency: a new lifecycle is stored only at version 1;
      an existing one only when it is exactly one version ahead of what is
      stored.  Two racing writers built from the same snapshot cannot both
      succeed.
    - Append-only history: the stored action rows must be a prefix of the
      lifecycle's trail, and the stored comments a prefix of its comments;
      only the new tails are inserted.

Failure modes:
    - RequestNotFoundError from ``get`` on an unknown id.
    - OptimisticLockError from ``save`` on a stale or skipped version.
    - ImmutabilityViolationError from ``save`` if a stored action or
      comment would be dropped or rewritten.
"""

from __future__ import annotations

import threading
from typing import Protocol, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from approval_engines.lifecycle import RequestLifecycle
from approval_kernel.domain.approval import RequestState
from approval_kernel.domain.audit_trail import AuditTrail
from approval_kernel.domain.request import format_request_number
from approval_kernel.exceptions import (
    ImmutabilityViolationError,
    OptimisticLockError,
    RequestNotFoundError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.models.request import (
    ApprovalActionModel,
    RequestCommentModel,
    RequestModel,
)

logger = get_logger("services.repository")

_ENTITY = "Request"

_T = TypeVar("_T")


def _check_version(request_id: UUID, stored_version: int, incoming_version: int) -> None:
    """``stored_version`` is 0 when nothing is stored yet."""
    if incoming_version != stored_version + 1:
        logger.warning(
            "optimistic_lock_conflict",
            extra={
                "request_id": str(request_id),
                "stored_version": stored_version,
                "incoming_version": incoming_version,
            },
        )
        raise OptimisticLockError(
            _ENTITY,
            str(request_id),
            expected_version=incoming_version - 1,
            actual_version=stored_version,
        )


def _check_append_only(
    request_id: UUID, what: str, stored: Sequence[_T], incoming: Sequence[_T],
) -> None:
    """``stored`` must be an unchanged prefix of ``incoming``."""
    if tuple(incoming[: len(stored)]) != tuple(stored):
        logger.error(
            "stored_history_rewrite_blocked",
            extra={
                "request_id": str(request_id),
                "history": what,
                "stored_count": len(stored),
                "incoming_count": len(incoming),
            },
        )
        raise ImmutabilityViolationError(
            _ENTITY, str(request_id), f"stored {what} must be kept unchanged"
        )


class RequestRepository(Protocol):
    """Storage contract the request service depends on."""

    def get(self, request_id: UUID) -> RequestLifecycle: ...

    def save(self, lifecycle: RequestLifecycle) -> None: ...

    def list(
        self,
        state: RequestState | None = None,
        requester_id: str | None = None,
    ) -> Sequence[RequestLifecycle]: ...

    def next_request_number(self) -> str: ...


class InMemoryRequestRepository:
    """Dict-backed repository; a lock serializes the version check and write."""

    def __init__(self) -> None:
        self._items: dict[UUID, RequestLifecycle] = {}
        self._sequence = 0
        self._lock = threading.Lock()

    def get(self, request_id: UUID) -> RequestLifecycle:
        with self._lock:
            lifecycle = self._items.get(request_id)
        if lifecycle is None:
            raise RequestNotFoundError(str(request_id))
        return lifecycle

    def save(self, lifecycle: RequestLifecycle) -> None:
        request_id = lifecycle.request.request_id
        with self._lock:
            stored = self._items.get(request_id)
            _check_version(request_id, stored.version if stored else 0, lifecycle.version)
            if stored is not None:
                _check_append_only(
                    request_id, "approval actions", stored.trail.entries, lifecycle.trail.entries,
                )
                _check_append_only(request_id, "comments", stored.comments, lifecycle.comments)
            self._items[request_id] = lifecycle

    def list(
        self,
        state: RequestState | None = None,
        requester_id: str | None = None,
    ) -> Sequence[RequestLifecycle]:
        with self._lock:
            items = tuple(self._items.values())
        return sorted(
            (
                lc for lc in items
                if (state is None or lc.state == state)
                and (requester_id is None or lc.request.requester_id == requester_id)
            ),
            key=lambda lc: (lc.request.created_at, lc.request.request_number),
        )

    def next_request_number(self) -> str:
        with self._lock:
            self._sequence += 1
            return format_request_number(self._sequence)


class SqlAlchemyRequestRepository:
    """Repository over a caller-owned SQLAlchemy ``Session``.

    The caller owns the transaction (see ``approval_kernel.db.session_scope``);
    ``save`` only flushes.  The row is read ``FOR UPDATE`` before the version
    check; dialects without row locks (SQLite) ignore the clause.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, request_id: UUID) -> RequestLifecycle:
        model = self._session.execute(
            select(RequestModel).where(RequestModel.request_id == request_id)
        ).scalar_one_or_none()
        if model is None:
            raise RequestNotFoundError(str(request_id))
        return self._to_lifecycle(model)

    def save(self, lifecycle: RequestLifecycle) -> None:
        request = lifecycle.request
        model = self._session.execute(
            select(RequestModel)
            .where(RequestModel.request_id == request.request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        _check_version(request.request_id, model.version if model else 0, lifecycle.version)

        if model is None:
            model = RequestModel.from_dto(request, lifecycle.config, lifecycle.delegations)
            self._session.add(model)
            stored_actions: tuple = ()
            stored_comments: tuple = ()
        else:
            stored_actions = model.to_actions()
            stored_comments = model.to_comments()
            _check_append_only(
                request.request_id, "approval actions", stored_actions, lifecycle.trail.entries,
            )
            _check_append_only(
                request.request_id, "comments", stored_comments, lifecycle.comments,
            )
            model.apply(request, lifecycle.config, lifecycle.delegations)

        for sequence, action in enumerate(
            lifecycle.trail.entries[len(stored_actions):], start=len(stored_actions) + 1
        ):
            model.actions.append(
                ApprovalActionModel.from_dto(request.request_id, sequence, action)
            )
        for sequence, comment in enumerate(
            lifecycle.comments[len(stored_comments):], start=len(stored_comments) + 1
        ):
            model.comments.append(
                RequestCommentModel.from_dto(request.request_id, sequence, comment)
            )

        self._session.flush()

    def list(
        self,
        state: RequestState | None = None,
        requester_id: str | None = None,
    ) -> Sequence[RequestLifecycle]:
        stmt = select(RequestModel)
        if state is not None:
            stmt = stmt.where(RequestModel.status == state.value)
        if requester_id is not None:
            stmt = stmt.where(RequestModel.requester_id == requester_id)
        stmt = stmt.order_by(RequestModel.created_at, RequestModel.request_number)
        return [self._to_lifecycle(m) for m in self._session.execute(stmt).scalars()]

    def next_request_number(self) -> str:
        """Next number from the row count; requests are never deleted."""
        count = self._session.execute(
            select(func.count()).select_from(RequestModel)
        ).scalar_one()
        return format_request_number(count + 1)

    @staticmethod
    def _to_lifecycle(model: RequestModel) -> RequestLifecycle:
        return RequestLifecycle(
            request=model.to_request(),
            config=model.to_config(),
            trail=AuditTrail(entries=model.to_actions()),
            delegations=model.to_delegations(),
            comments=model.to_comments(),
        )
