"""
approval_config -- single public entrypoint for template approval chains.

Responsibility:
    Provides the ONLY way to obtain a template's approval configuration at
    runtime through ``get_template_config()``.  YAML loading lives in
    ``approval_config.loader`` and is not called by services directly.

Architecture position:
    Configuration -- YAML-driven template chains.  Sits above
    ``approval_kernel`` and below ``approval_services``.  The kernel MUST
    NEVER import from ``approval_config``.

Invariants enforced:
    - Single entrypoint: runtime template configs flow through
      ``get_template_config()``.
    - Load-time validation: a template whose chain fails
      ``validate_config`` is never returned.
    - Deterministic checksum: the same YAML fragment always produces the
      same ``TemplateConfig.checksum``.

Failure modes:
    - ``FileNotFoundError`` -- config directory missing, or no template
      with the requested id.
    - ``ConfigurationError`` -- the template's approval chain is invalid.

Audit relevance:
    Every successful ``get_template_config()`` call emits an
    ``APPROVAL_CONFIG_TRACE`` log entry with the template id, version,
    checksum, mode and approver count, tying each request back to the
    exact template chain it was created from.
"""

from __future__ import annotations

from pathlib import Path

from approval_config.loader import load_templates
from approval_config.schema import TemplateConfig
from approval_kernel.logging_config import LogContext, get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "templates"


def get_template_config(
    template_id: str,
    config_dir: Path | None = None,
) -> TemplateConfig:
    """The ONLY public configuration entrypoint.

    Args:
        template_id: Template identifier declared in a fragment.
        config_dir: Override path to the templates directory.
            Defaults to approval_config/templates/.

    Raises:
        FileNotFoundError: If the directory or the template is missing.
        ConfigurationError: If the template's approval chain is invalid.
    """
    with LogContext.bind(template_id=str(template_id)):
        templates = load_templates(config_dir or _DEFAULT_CONFIG_DIR)
        template = templates.get(str(template_id))
        if template is None:
            _logger.warning("approval_template_not_found")
            raise FileNotFoundError(f"No approval template with id {template_id!r}")

        _logger.info(
            "APPROVAL_CONFIG_TRACE",
            extra={
                "trace_type": "APPROVAL_CONFIG_TRACE",
                "template_version": template.version,
                "checksum": template.checksum,
                "mode": template.approval.mode.value,
                "approver_count": len(template.approval.approvers),
            },
        )
    return template


def list_templates(config_dir: Path | None = None) -> list[TemplateConfig]:
    """Active templates, ordered by id (template picker)."""
    templates = load_templates(config_dir or _DEFAULT_CONFIG_DIR)
    return [t for _, t in sorted(templates.items()) if t.is_active]


__all__ = [
    "TemplateConfig",
    "get_template_config",
    "list_templates",
]
