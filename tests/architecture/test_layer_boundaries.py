"""
Import-boundary enforcement for the requisition packages.

Covers:
1. Kernel boundary     -- requisition_kernel/** never imports the engines,
                          services, or config layers.
2. Domain purity       -- requisition_kernel/domain/** imports no ORM, DB
                          drivers, models, or kernel services.
3. Engine purity       -- requisition_engines/** imports no ORM, DB
                          drivers, kernel persistence, services, or config.
4. Engine no-impure    -- engines and domain never read the wall clock or
                          the environment (the Clock protocol does).
5. Config centralisation -- only requisition_config itself touches the
                          loader; everyone else reads settings through the
                          package entrypoint, the schema, or the bridge.

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path


REPO_ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(root: str) -> list[str]:
    """Return all .py files under *root*, sorted for deterministic order."""
    return sorted(glob.glob(f"{REPO_ROOT / root}/**/*.py", recursive=True))


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = ast.parse(Path(filepath).read_text(encoding="utf-8"), filename=filepath)

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module and node.level == 0:
                results.append((node.lineno, node.module))
    return results


def _extract_attribute_calls(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, 'receiver.attr') for two-level attribute nodes."""
    tree = ast.parse(Path(filepath).read_text(encoding="utf-8"), filename=filepath)

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
            results.append((node.lineno, f"{node.value.id}.{node.attr}"))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    """True if *module* equals or is a child of any prefix."""
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(root: str, forbidden: tuple[str, ...]) -> list[str]:
    files = _python_files(root)
    assert files, f"no Python files found under {root}"
    found: list[str] = []
    for filepath in files:
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden):
                found.append(f"  {filepath}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# 1. Kernel boundary
# ---------------------------------------------------------------------------

class TestKernelBoundary:
    """The kernel is the bottom layer; nothing above it leaks down."""

    FORBIDDEN_PREFIXES = (
        "requisition_engines",
        "requisition_services",
        "requisition_config",
    )

    def test_kernel_has_no_upward_imports(self):
        violations = _violations("requisition_kernel", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "Kernel boundary violation: requisition_kernel/** must not import "
            "engines, services, or config:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 2. Domain purity
# ---------------------------------------------------------------------------

class TestDomainPurity:
    """requisition_kernel/domain/** is plain dataclasses and functions."""

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "yaml",
        "requisition_kernel.models",
        "requisition_kernel.db",
        "requisition_kernel.services",
        "requisition_kernel.selectors",
    )

    def test_domain_has_no_persistence_imports(self):
        violations = _violations("requisition_kernel/domain", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "Domain purity violation: requisition_kernel/domain/** must not "
            "import the ORM, DB drivers, or kernel persistence:\n"
            + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 3. Engine purity
# ---------------------------------------------------------------------------

class TestEnginePurity:
    """Engines are pure: directory lookups arrive through a protocol."""

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "requisition_kernel.models",
        "requisition_kernel.db",
        "requisition_kernel.services",
        "requisition_kernel.selectors",
        "requisition_services",
        "requisition_config",
    )

    def test_engine_files_have_no_forbidden_imports(self):
        violations = _violations("requisition_engines", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "Engine purity violation: requisition_engines/** must not import "
            "the ORM, DB drivers, kernel persistence, services, or config:\n"
            + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 4. No wall clock or environment in pure code
# ---------------------------------------------------------------------------

class TestNoImpureFunctions:
    """Pure layers take time from a Clock and settings from their caller.

    Allowed: time.monotonic and time.perf_counter (duration only), and the
    SystemClock implementation itself.
    """

    FORBIDDEN_CALLS = frozenset({
        "datetime.now",
        "datetime.utcnow",
        "date.today",
        "time.time",
        "os.environ",
        "os.getenv",
    })

    ALLOWED_FILES = ("requisition_kernel/domain/clock.py",)

    def test_no_impure_calls(self):
        violations: list[str] = []
        files = _python_files("requisition_engines") + _python_files("requisition_kernel/domain")
        for filepath in files:
            if filepath.endswith(self.ALLOWED_FILES):
                continue
            for lineno, call in _extract_attribute_calls(filepath):
                if call in self.FORBIDDEN_CALLS:
                    violations.append(f"  {filepath}:{lineno} uses '{call}'")

        assert not violations, (
            "Impure call in engines or domain:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 5. Config centralisation
# ---------------------------------------------------------------------------

class TestConfigCentralisation:
    """Only requisition_config/** may import requisition_config.loader."""

    def test_loader_is_internal(self):
        violations: list[str] = []
        for root in ("requisition_kernel", "requisition_engines", "requisition_services"):
            violations.extend(_violations(root, ("requisition_config.loader",)))

        assert not violations, (
            "Config centralisation violation: use requisition_config.get_settings "
            "or the bridges module:\n" + "\n".join(violations)
        )

    def test_config_does_not_import_upper_layers(self):
        violations = _violations(
            "requisition_config",
            ("requisition_services", "requisition_engines", "sqlalchemy"),
        )
        assert not violations, (
            "requisition_config/** must not import services, engines, or "
            "the ORM:\n" + "\n".join(violations)
        )
