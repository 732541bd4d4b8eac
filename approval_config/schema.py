"""
Template configuration schema (``approval_config.schema``).

Frozen records produced by ``approval_config.loader``.  A template pairs a
request form (name, category) with the approval chain every request
created from it starts with.
"""

from __future__ import annotations

from dataclasses import dataclass

from approval_kernel.domain.approval import ApprovalConfig


@dataclass(frozen=True)
class TemplateConfig:
    """One request template's approval configuration.

    ``checksum`` is the SHA-256 of the canonical source fragment; it
    changes whenever the YAML content changes.
    """

    template_id: str
    template_name: str
    approval: ApprovalConfig
    checksum: str
    category: str = ""
    description: str = ""
    version: int = 1
    is_active: bool = True
