"""
approval_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the pure approval engines: repositories
    that hold sessions, and the request service that reads the clock.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundaries.py):
        approval_services/ -> approval_engines/  (allowed)
        approval_services/ -> approval_kernel/   (allowed)
        approval_engines/  -> approval_services/ (FORBIDDEN)
        approval_kernel/   -> approval_services/ (FORBIDDEN)
"""

from approval_services.repository import (
    InMemoryRequestRepository,
    RequestRepository,
    SqlAlchemyRequestRepository,
)
from approval_services.request_service import RequestService, requester_only

__all__ = [
    "InMemoryRequestRepository",
    "RequestRepository",
    "RequestService",
    "SqlAlchemyRequestRepository",
    "requester_only",
]
