"""
Layer boundary contract.

Tests that enforce the package layering:

1. approval_kernel/** may NOT import approval_engines, approval_services
   or approval_config. The kernel never depends upward.

2. approval_kernel/domain/** and approval_engines/** are pure: no
   SQLAlchemy, no YAML, no db/models imports, no logging.

3. Only approval_kernel/domain/clock.py reads the wall clock.

4. approval_engines and approval_config never import approval_services.

These tests read source code via AST; they cannot break anything.
"""

import ast
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _relative(path: Path) -> str:
    return path.relative_to(ROOT).as_posix()


def _extract_imports(path: Path) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    tree = ast.parse(path.read_text(), filename=str(path))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for path in _python_files(package):
        for lineno, module in _extract_imports(path):
            if any(module == f or module.startswith(f + ".") for f in forbidden):
                found.append(f"{_relative(path)}:{lineno} imports {module}")
    return found


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestPackagesExist:

    @pytest.mark.parametrize(
        "package",
        ["approval_kernel", "approval_engines", "approval_services", "approval_config"],
    )
    def test_package_has_sources(self, package):
        assert _python_files(package), f"no sources found under {package}/"


class TestKernelNoUpwardDependencies:

    def test_kernel_imports_nothing_above_it(self):
        violations = _violations(
            "approval_kernel",
            ("approval_engines", "approval_services", "approval_config"),
        )
        assert violations == []


class TestPureLayers:

    IMPURE = (
        "sqlalchemy",
        "yaml",
        "logging",
        "approval_kernel.db",
        "approval_kernel.models",
        "approval_kernel.logging_config",
    )

    def test_domain_is_pure(self):
        assert _violations("approval_kernel/domain", self.IMPURE) == []

    def test_engines_are_pure(self):
        assert _violations("approval_engines", self.IMPURE) == []

    def test_engines_do_not_reach_services_or_config(self):
        assert _violations("approval_engines", ("approval_services", "approval_config")) == []

    def test_config_does_not_reach_services(self):
        assert _violations("approval_config", ("approval_services",)) == []


class TestClockDiscipline:

    def test_only_clock_module_reads_wall_clock(self):
        offenders = []
        for package in ("approval_kernel", "approval_engines", "approval_services", "approval_config"):
            for path in _python_files(package):
                if _relative(path) == "approval_kernel/domain/clock.py":
                    continue
                tree = ast.parse(path.read_text(), filename=str(path))
                for node in ast.walk(tree):
                    if (
                        isinstance(node, ast.Call)
                        and isinstance(node.func, ast.Attribute)
                        and node.func.attr in ("now", "utcnow", "today")
                        and isinstance(node.func.value, ast.Name)
                        and node.func.value.id in ("datetime", "date")
                    ):
                        offenders.append(f"{_relative(path)}:{node.lineno}")
        assert offenders == []
