"""
Module: approval_engines
Responsibility:
    Package entrypoint for the pure approval calculations: the chain
    engine (whose turn, resolution, legality of an action) and the
    request lifecycle built on top of it.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel.domain, approval_kernel.exceptions and
    approval_kernel.utils.  MUST NOT import approval_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``.  Timestamps are passed
      in as explicit parameters by the service layer.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from approval_engines import chain
    from approval_engines.lifecycle import RequestLifecycle
"""

from approval_engines import chain
from approval_engines.lifecycle import RequestLifecycle, config_fingerprint

__all__ = [
    "chain",
    "RequestLifecycle",
    "config_fingerprint",
]
