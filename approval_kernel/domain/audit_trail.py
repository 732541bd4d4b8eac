"""
AuditTrail -- append-only log of approval actions.

Responsibility:
    Holds every ``ApprovalAction`` recorded against a request, in insertion
    order, and answers the per-slot and chronological queries the engine
    and the approval timeline need.

Architecture position:
    Kernel > Domain -- pure value object, zero I/O.

Invariants enforced:
    - Append-only: ``append`` returns a new trail; entries of an existing
      trail are never altered, so previously returned snapshots stay valid.
    - Duplicate terminal actions are NOT checked here; that guard lives in
      ``approval_engines.chain.validate_action``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from approval_kernel.domain.approval import ApprovalAction


@dataclass(frozen=True)
class AuditTrail:
    """Immutable, insertion-ordered sequence of approval actions."""

    entries: tuple[ApprovalAction, ...] = ()

    @classmethod
    def empty(cls) -> AuditTrail:
        return cls(entries=())

    @classmethod
    def of(cls, *actions: ApprovalAction) -> AuditTrail:
        return cls(entries=tuple(actions))

    def append(self, action: ApprovalAction) -> AuditTrail:
        """Return a new trail with ``action`` appended."""
        return AuditTrail(entries=self.entries + (action,))

    def actions_for(self, approver_spec_id: str) -> tuple[ApprovalAction, ...]:
        """All actions recorded for a slot, in insertion order."""
        return tuple(a for a in self.entries if a.approver_spec_id == approver_spec_id)

    def action_for(self, approver_spec_id: str) -> ApprovalAction | None:
        """The slot's terminal action, else its latest action, else None."""
        actions = self.actions_for(approver_spec_id)
        for action in actions:
            if action.is_terminal:
                return action
        return actions[-1] if actions else None

    def terminal_action_for(self, approver_spec_id: str) -> ApprovalAction | None:
        for action in self.entries:
            if action.approver_spec_id == approver_spec_id and action.is_terminal:
                return action
        return None

    def ordered_entries(self) -> tuple[ApprovalAction, ...]:
        """Entries sorted by ``acted_at``; ties keep insertion order."""
        # sorted() is stable, so equal timestamps keep append order
        return tuple(sorted(self.entries, key=lambda a: a.acted_at))

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[ApprovalAction]:
        return iter(self.entries)
