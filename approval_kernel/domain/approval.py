"""
Approval domain types (``approval_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the approval-chain engine.  Defines approver
slots and chain configuration, approval actions, the request lifecycle
state machine, and the derived results the engine computes (resolution,
per-slot status, progress).

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* Lifecycle state machine -- ``REQUEST_TRANSITIONS`` defines the only
  valid request state transitions.  Terminal states have no outgoing
  edges.
* Config integrity -- ``validate_config`` rejects empty chains, duplicate
  slot ids, duplicate principals, non-positive orders, and (sequential
  mode) tied orders.  Configs are not validated on construction so that
  the engine can report ``ConfigurationError`` instead of guessing.
* At most one terminal action (approved/rejected) per slot; enforced by
  the engine before append.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from approval_kernel.domain.results import Result
from approval_kernel.exceptions import ConfigurationError


# =========================================================================
# Request Lifecycle
# =========================================================================


class RequestState(str, Enum):
    """Request lifecycle states."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


REQUEST_TRANSITIONS: dict[RequestState, frozenset[RequestState]] = {
    RequestState.DRAFT: frozenset({
        RequestState.PENDING,
        RequestState.CANCELLED,
    }),
    RequestState.PENDING: frozenset({
        RequestState.APPROVED,
        RequestState.REJECTED,
        RequestState.CANCELLED,
    }),
    RequestState.APPROVED: frozenset(),
    RequestState.REJECTED: frozenset(),
    RequestState.CANCELLED: frozenset(),
}

TERMINAL_REQUEST_STATES: frozenset[RequestState] = frozenset({
    RequestState.APPROVED,
    RequestState.REJECTED,
    RequestState.CANCELLED,
})


def can_transition(from_state: RequestState, to_state: RequestState) -> bool:
    """Check a transition against ``REQUEST_TRANSITIONS``."""
    return to_state in REQUEST_TRANSITIONS.get(from_state, frozenset())


# =========================================================================
# Chain Configuration
# =========================================================================


class ApprovalMode(str, Enum):
    """How approver slots combine into a decision."""

    SEQUENTIAL = "sequential"
    ANY_ONE = "any"


class ApprovalDecision(str, Enum):
    """Decisions an approver slot can record."""

    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_DECISIONS


TERMINAL_DECISIONS: frozenset[ApprovalDecision] = frozenset({
    ApprovalDecision.APPROVED,
    ApprovalDecision.REJECTED,
})


class ApprovalOutcome(str, Enum):
    """Final outcome of a resolved chain."""

    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def request_state(self) -> RequestState:
        return RequestState(self.value)


@dataclass(frozen=True)
class ApproverSpec:
    """One slot in an approval chain.

    ``order`` is authoritative in sequential mode and display-only in
    any-one mode.  ``can_delegate`` is informational for the engine;
    delegation substitutes a new spec with the same id and order.
    """

    id: str
    principal_id: str
    order: int
    is_required: bool = True
    can_delegate: bool = True
    display_name: str | None = None
    role: str | None = None
    delegated_from: str | None = None

    def delegated_to(
        self,
        principal_id: str,
        display_name: str | None = None,
        role: str | None = None,
    ) -> ApproverSpec:
        """Return the substituted spec for a delegation to ``principal_id``."""
        return replace(
            self,
            principal_id=principal_id,
            display_name=display_name,
            role=role if role is not None else self.role,
            delegated_from=self.principal_id,
        )


@dataclass(frozen=True)
class ApprovalConfig:
    """Who may approve a request, and in what order/mode.

    Immutable once a request references it: requests snapshot the config
    at submission time.
    """

    mode: ApprovalMode
    approvers: tuple[ApproverSpec, ...] = ()

    @property
    def is_sequential(self) -> bool:
        return self.mode == ApprovalMode.SEQUENTIAL

    def ordered_approvers(self) -> tuple[ApproverSpec, ...]:
        """Slots sorted by ``order`` (stable for ties)."""
        return tuple(sorted(self.approvers, key=lambda s: s.order))

    def required_approvers(self) -> tuple[ApproverSpec, ...]:
        return tuple(s for s in self.ordered_approvers() if s.is_required)

    def spec_by_id(self, approver_spec_id: str) -> ApproverSpec | None:
        for spec in self.approvers:
            if spec.id == approver_spec_id:
                return spec
        return None

    def spec_for_principal(self, principal_id: str) -> ApproverSpec | None:
        for spec in self.approvers:
            if spec.principal_id == principal_id:
                return spec
        return None

    def with_substituted(self, spec: ApproverSpec) -> ApprovalConfig:
        """Return a config with the slot ``spec.id`` replaced in place."""
        return replace(
            self,
            approvers=tuple(spec if s.id == spec.id else s for s in self.approvers),
        )


def validate_config(config: ApprovalConfig) -> Result[ApprovalConfig]:
    """Check structural integrity of an approval config.

    Returns:
        ``Result.success(config)`` or a failure carrying
        ``ConfigurationError`` describing the first problem found.
    """
    if not config.approvers:
        return Result.failure(
            ConfigurationError("at least one approver must be configured", field="approvers")
        )

    seen_ids: set[str] = set()
    seen_principals: set[str] = set()
    for spec in config.approvers:
        if not spec.id:
            return Result.failure(ConfigurationError("approver id is empty", field="id"))
        if spec.id in seen_ids:
            return Result.failure(
                ConfigurationError(f"duplicate approver id '{spec.id}'", field="id")
            )
        seen_ids.add(spec.id)

        if spec.principal_id in seen_principals:
            return Result.failure(
                ConfigurationError(
                    f"duplicate approvers are not allowed ('{spec.principal_id}')",
                    field="principal_id",
                )
            )
        seen_principals.add(spec.principal_id)

        if spec.order < 1:
            return Result.failure(
                ConfigurationError(
                    f"approver '{spec.id}' has non-positive order {spec.order}",
                    field="order",
                )
            )

    if config.is_sequential:
        orders = sorted(s.order for s in config.approvers)
        for prev, cur in zip(orders, orders[1:]):
            if prev == cur:
                return Result.failure(
                    ConfigurationError(
                        f"duplicate order {cur} in sequential mode", field="order"
                    )
                )

    return Result.success(config)


# =========================================================================
# Actions
# =========================================================================


@dataclass(frozen=True)
class ApprovalAction:
    """One audit trail entry. Immutable.

    ``signature_present`` is carried through, never verified.
    ``actor_id`` is the principal that acted (the delegate, after a
    delegation).
    """

    approver_spec_id: str
    decision: ApprovalDecision
    acted_at: datetime
    comment: str | None = None
    signature_present: bool = False
    actor_id: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.decision.is_terminal


# =========================================================================
# Derived Results
# =========================================================================


@dataclass(frozen=True)
class Resolution:
    """Whether the chain reached a final outcome."""

    resolved: bool
    outcome: ApprovalOutcome | None = None
    reason: str = ""

    @classmethod
    def unresolved(cls, reason: str = "") -> Resolution:
        return cls(resolved=False, outcome=None, reason=reason)

    @classmethod
    def approved(cls, reason: str = "") -> Resolution:
        return cls(resolved=True, outcome=ApprovalOutcome.APPROVED, reason=reason)

    @classmethod
    def rejected(cls, reason: str = "") -> Resolution:
        return cls(resolved=True, outcome=ApprovalOutcome.REJECTED, reason=reason)


class SlotState(str, Enum):
    """Display status of one slot in the approval timeline."""

    PENDING = "pending"        # it is this slot's turn
    WAITING = "waiting"        # not yet its turn (sequential) or chain resolved first
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class SlotStatus:
    """One row of the approval timeline."""

    spec: ApproverSpec
    state: SlotState
    action: ApprovalAction | None = None


@dataclass(frozen=True)
class ApprovalProgress:
    """How far a chain has progressed (``current_level`` of ``total_levels``)."""

    current_level: int
    total_levels: int

    @property
    def percent(self) -> int:
        if self.total_levels <= 0:
            return 0
        return min(100, round(self.current_level * 100 / self.total_levels))
