"""
Template Loader (``approval_config.loader``).

Responsibility
--------------
Loads YAML template fragments and parses them into ``TemplateConfig``
records.  The single public entry point for runtime use is
``approval_config.get_template_config()``; this module is the tooling
underneath it.

Architecture position
---------------------
**Config layer** -- sits above ``approval_kernel`` (it reuses the kernel's
inbound config parser) and below ``approval_services``.  The kernel MUST
NEVER import from ``approval_config``.

Invariants enforced
-------------------
* No silent defaults for required fields: ``template_id``,
  ``template_name`` and ``approval`` must be present.
* The approval chain must pass ``validate_config`` at load time, so a
  broken template is caught before any request is created from it.
* ``compute_checksum`` is deterministic (canonical JSON, SHA-256).

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid approval chain  -> ``ConfigurationError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from approval_config.schema import TemplateConfig
from approval_kernel.domain.approval import validate_config
from approval_kernel.domain.serialization import parse_approval_config
from approval_kernel.utils.hashing import hash_payload


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of a parsed fragment."""
    return hash_payload(data)


def parse_template(data: dict[str, Any]) -> TemplateConfig:
    """
    Parse a ``TemplateConfig`` from a fragment dict.

    Raises:
        KeyError: if ``template_id``, ``template_name`` or ``approval``
            is missing.
        ConfigurationError: if the approval chain is malformed or fails
            validation.
    """
    template_id = str(data["template_id"])
    template_name = data["template_name"]
    approval = parse_approval_config(data["approval"])
    validate_config(approval).unwrap()

    return TemplateConfig(
        template_id=template_id,
        template_name=template_name,
        approval=approval,
        checksum=compute_checksum(data),
        category=data.get("category", ""),
        description=data.get("description", ""),
        version=int(data.get("version", 1)),
        is_active=bool(data.get("is_active", True)),
    )


def load_template(path: Path) -> TemplateConfig:
    """Load and parse one template fragment file."""
    return parse_template(load_yaml_file(path))


def load_templates(config_dir: Path) -> dict[str, TemplateConfig]:
    """
    Load every ``*.yaml`` fragment in ``config_dir``, keyed by template id.

    Raises:
        FileNotFoundError: if ``config_dir`` does not exist.
        ValueError: if two fragments declare the same template id.
    """
    if not config_dir.is_dir():
        raise FileNotFoundError(f"Template directory not found: {config_dir}")

    templates: dict[str, TemplateConfig] = {}
    for path in sorted(config_dir.glob("*.yaml")):
        template = load_template(path)
        if template.template_id in templates:
            raise ValueError(
                f"Duplicate template id {template.template_id!r} in {path.name}"
            )
        templates[template.template_id] = template
    return templates
