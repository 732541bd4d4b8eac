"""
Result -- typed success/failure value for the pure layers.

Responsibility:
    Carries either a value or a typed ``ApprovalKernelError`` out of engine
    and lifecycle functions so that business failures are returned, not
    raised.  The host decides whether to surface, log, or retry.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Guarantees:
    - Immutable (frozen dataclass).
    - Exactly one of ``value`` / ``error`` is meaningful: ``ok`` is True
      iff ``error`` is None.
    - ``bool(result) == result.ok``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from approval_kernel.exceptions import ApprovalKernelError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a pure operation: a value, or the error that prevented it."""

    value: T | None = None
    error: ApprovalKernelError | None = None

    @classmethod
    def success(cls, value: T | None = None) -> Result[T]:
        """Create a successful result."""
        return cls(value=value, error=None)

    @classmethod
    def failure(cls, error: ApprovalKernelError) -> Result[T]:
        """Create a failed result."""
        return cls(value=None, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def code(self) -> str | None:
        """Machine-readable error code, or None on success."""
        return self.error.code if self.error is not None else None

    def unwrap(self) -> T:
        """Return the value, raising the carried error on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def map(self, fn: Callable[[T], U]) -> Result[U]:
        """Apply ``fn`` to the value of a successful result."""
        if self.error is not None:
            return Result.failure(self.error)
        return Result.success(fn(self.value))  # type: ignore[arg-type]

    def __bool__(self) -> bool:
        return self.ok
