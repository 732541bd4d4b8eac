"""ORM models for the approval kernel."""

from approval_kernel.models.request import (
    ApprovalActionModel,
    RequestCommentModel,
    RequestModel,
)

__all__ = [
    "ApprovalActionModel",
    "RequestCommentModel",
    "RequestModel",
]
