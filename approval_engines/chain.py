"""
approval_engines.chain -- Pure approval-chain state machine.

Responsibility:
    Given an ``ApprovalConfig`` and an ``AuditTrail``, compute whose turn
    it is, whether the chain has resolved (and how), whether a proposed
    action is legal, and the per-slot timeline/progress views.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types and exceptions.

Invariants enforced:
    - Config integrity: every public function validates the config first
      and returns ``ConfigurationError`` rather than guessing precedence.
    - Sequential order: only the lowest-order unsettled slot may act, and
      only once every lower-order required slot has approved.
    - Single terminal action per slot (``DuplicateActionError``).
    - Purity: no clock access, no I/O, no logging.  Same inputs always
      produce equal outputs; inputs are never mutated.

Resolution rules:
    Sequential -- rejected as soon as a required slot rejects; approved
    once every required slot approved (with at least one approval
    overall); rejected when every slot is settled without that.
    Optional slots that reject or skip are passed over.

    Any-one -- approved as soon as any slot approves; rejected only once
    every slot has rejected.

Failure modes:
    Every function returns a ``Result``; nothing is raised for business
    failures.  ``record_action`` is the only exception: it appends without
    validation and cannot fail.
"""

from __future__ import annotations

from approval_kernel.domain.approval import (
    ApprovalAction,
    ApprovalConfig,
    ApprovalDecision,
    ApprovalProgress,
    ApproverSpec,
    Resolution,
    SlotState,
    SlotStatus,
    validate_config,
)
from approval_kernel.domain.audit_trail import AuditTrail
from approval_kernel.domain.results import Result
from approval_kernel.exceptions import (
    ChainResolvedError,
    DuplicateActionError,
    OutOfSequenceError,
    SkipNotAllowedError,
    UnknownSlotError,
)


def pending_approvers(
    config: ApprovalConfig,
    trail: AuditTrail,
) -> Result[tuple[ApproverSpec, ...]]:
    """Slots that may act next.

    Returns:
        Sequential: at most one slot.  Any-one: every slot without a
        terminal action, ordered by ``order``.  Empty once resolved.
    """
    checked = validate_config(config)
    if not checked:
        return Result.failure(checked.error)
    return Result.success(_pending(config, trail, _resolve(config, trail)))


def is_resolved(config: ApprovalConfig, trail: AuditTrail) -> Result[Resolution]:
    """Whether the chain has reached a final outcome."""
    checked = validate_config(config)
    if not checked:
        return Result.failure(checked.error)
    return Result.success(_resolve(config, trail))


def validate_action(
    config: ApprovalConfig,
    trail: AuditTrail,
    approver_spec_id: str,
    decision: ApprovalDecision,
) -> Result[None]:
    """Check that ``approver_spec_id`` may record ``decision`` now.

    Checks run in a fixed order so the reported error is deterministic:
    config, resolution, slot existence, duplicate terminal action, skip
    rules, sequence.
    """
    checked = validate_config(config)
    if not checked:
        return Result.failure(checked.error)

    resolution = _resolve(config, trail)
    if resolution.resolved:
        return Result.failure(ChainResolvedError(resolution.outcome.value))

    spec = config.spec_by_id(approver_spec_id)
    if spec is None:
        return Result.failure(UnknownSlotError(approver_spec_id))

    existing = trail.terminal_action_for(approver_spec_id)
    if existing is not None:
        return Result.failure(
            DuplicateActionError(approver_spec_id, existing.decision.value)
        )

    if decision == ApprovalDecision.SKIPPED:
        if not config.is_sequential:
            return Result.failure(
                SkipNotAllowedError(approver_spec_id, "skipping is not used in any-one mode")
            )
        if spec.is_required:
            return Result.failure(
                SkipNotAllowedError(approver_spec_id, "required approvers cannot be skipped")
            )

    pending = _pending(config, trail, resolution)
    if config.is_sequential and spec not in pending:
        return Result.failure(
            OutOfSequenceError(approver_spec_id, tuple(s.id for s in pending))
        )

    return Result.success(None)


def record_action(trail: AuditTrail, action: ApprovalAction) -> AuditTrail:
    """Append ``action`` without validation.

    Callers must run ``validate_action`` first, or use ``apply_action``.
    """
    return trail.append(action)


def apply_action(
    config: ApprovalConfig,
    trail: AuditTrail,
    action: ApprovalAction,
) -> Result[AuditTrail]:
    """Validate ``action`` against the chain, then append it."""
    checked = validate_action(config, trail, action.approver_spec_id, action.decision)
    if not checked:
        return Result.failure(checked.error)
    return Result.success(record_action(trail, action))


def chain_status(
    config: ApprovalConfig,
    trail: AuditTrail,
) -> Result[tuple[SlotStatus, ...]]:
    """One timeline row per slot, ordered by ``order``."""
    checked = validate_config(config)
    if not checked:
        return Result.failure(checked.error)

    pending = _pending(config, trail, _resolve(config, trail))
    rows: list[SlotStatus] = []
    for spec in config.ordered_approvers():
        action = trail.action_for(spec.id)
        if action is not None and action.decision == ApprovalDecision.APPROVED:
            state = SlotState.APPROVED
        elif action is not None and action.decision == ApprovalDecision.REJECTED:
            state = SlotState.REJECTED
        elif spec in pending:
            state = SlotState.PENDING
        elif action is not None:
            state = SlotState.SKIPPED
        else:
            state = SlotState.WAITING
        rows.append(SlotStatus(spec=spec, state=state, action=action))
    return Result.success(tuple(rows))


def approval_progress(
    config: ApprovalConfig,
    trail: AuditTrail,
) -> Result[ApprovalProgress]:
    """Approval levels completed out of levels needed.

    Sequential counts approved required slots; a chain with no required
    slots needs a single approval, as does any-one mode.
    """
    checked = validate_config(config)
    if not checked:
        return Result.failure(checked.error)

    approved = [s for s in config.approvers if _decision(trail, s) == ApprovalDecision.APPROVED]
    required = config.required_approvers()
    if config.is_sequential and required:
        current = sum(1 for s in required if s in approved)
        return Result.success(ApprovalProgress(current_level=current, total_levels=len(required)))
    return Result.success(
        ApprovalProgress(current_level=1 if approved else 0, total_levels=1)
    )


# =========================================================================
# Internal helpers -- assume a validated config
# =========================================================================


def _decision(trail: AuditTrail, spec: ApproverSpec) -> ApprovalDecision | None:
    """Terminal decision recorded for the slot, if any."""
    action = trail.terminal_action_for(spec.id)
    return action.decision if action is not None else None


def _is_settled(trail: AuditTrail, spec: ApproverSpec) -> bool:
    """A slot is settled once it has approved, rejected, or been skipped."""
    return bool(trail.actions_for(spec.id))


def _resolve(config: ApprovalConfig, trail: AuditTrail) -> Resolution:
    ordered = config.ordered_approvers()

    if config.is_sequential:
        required = config.required_approvers()
        for spec in required:
            if _decision(trail, spec) == ApprovalDecision.REJECTED:
                return Resolution.rejected(f"Rejected by required approver {spec.id}")

        approved = [s for s in ordered if _decision(trail, s) == ApprovalDecision.APPROVED]
        required_done = sum(1 for s in required if s in approved)
        if required_done == len(required) and approved:
            return Resolution.approved("All required approvers approved")

        if all(_is_settled(trail, s) for s in ordered):
            return Resolution.rejected("Approval chain exhausted without approval")

        if required:
            return Resolution.unresolved(f"{required_done}/{len(required)} required approvals")
        return Resolution.unresolved("Awaiting an approval")

    for spec in ordered:
        if _decision(trail, spec) == ApprovalDecision.APPROVED:
            return Resolution.approved(f"Approved by {spec.id}")
    if all(_decision(trail, s) == ApprovalDecision.REJECTED for s in ordered):
        return Resolution.rejected("Rejected by every approver")
    return Resolution.unresolved("Awaiting any approver")


def _pending(
    config: ApprovalConfig,
    trail: AuditTrail,
    resolution: Resolution,
) -> tuple[ApproverSpec, ...]:
    if resolution.resolved:
        return ()

    ordered = config.ordered_approvers()
    if not config.is_sequential:
        return tuple(s for s in ordered if trail.terminal_action_for(s.id) is None)

    for spec in ordered:
        if not _is_settled(trail, spec):
            return (spec,)
        if spec.is_required and _decision(trail, spec) != ApprovalDecision.APPROVED:
            # A lower-order required slot did not approve; nobody is next.
            return ()
    return ()
