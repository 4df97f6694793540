"""
Kernel Boundary & Invariants Contract.

Tests that enforce the kernel's architectural boundaries:

1. warehouse_kernel/** may NOT import warehouse_services or
   warehouse_config. The kernel never depends upward.

2. The pure domain layer performs no I/O: it may not import SQLAlchemy,
   the models, the services or the selectors.

3. Only StockLedger writes InventoryRecord figures; only the ledger creates
   StockMovement rows.

4. The kernel invariants declaration is complete, and every invariant is
   cited by a module that enforces it.

5. Kernel code never commits or rolls back the session; the facade owns
   transaction boundaries.

These tests read source code via AST; they cannot break anything.
"""

import ast
import glob
from pathlib import Path

from warehouse_kernel.invariants import (
    ALL_KERNEL_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    KernelInvariant,
)

REPO_ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(root: str) -> list[str]:
    """Return all .py files under root."""
    return sorted(glob.glob(f"{REPO_ROOT / root}/**/*.py", recursive=True))


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    try:
        source = Path(filepath).read_text()
        tree = ast.parse(source, filename=filepath)
    except (SyntaxError, UnicodeDecodeError):
        return []

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _violations(files: list[str], prefixes: tuple[str, ...]) -> list[str]:
    found = []
    for filepath in files:
        for lineno, module in _extract_imports(filepath):
            for prefix in prefixes:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {filepath}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestKernelNoUpwardDependencies:
    """warehouse_kernel/** must not import the config or the facade."""

    def test_kernel_files_found(self):
        assert _python_files("warehouse_kernel")

    def test_kernel_does_not_import_forbidden_packages(self):
        violations = _violations(_python_files("warehouse_kernel"), FORBIDDEN_KERNEL_IMPORTS)
        assert not violations, (
            "Kernel boundary violation: warehouse_kernel/** must not import "
            "upward packages:\n" + "\n".join(violations)
        )


class TestDomainPurity:
    """warehouse_kernel/domain/** is the functional core."""

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "warehouse_kernel.db",
        "warehouse_kernel.models",
        "warehouse_kernel.services",
        "warehouse_kernel.selectors",
    )

    def test_domain_has_no_io_imports(self):
        violations = _violations(
            _python_files("warehouse_kernel/domain"), self.FORBIDDEN_PREFIXES
        )
        assert not violations, (
            "Domain purity violation:\n" + "\n".join(violations)
        )


class TestLedgerWriteGate:
    """StockMovement rows are only constructed inside the stock ledger."""

    def test_only_ledger_builds_movements(self):
        offenders = []
        for filepath in _python_files("warehouse_kernel") + _python_files("warehouse_services"):
            if filepath.endswith("stock_ledger.py") or "/models/" in filepath:
                continue
            tree = ast.parse(Path(filepath).read_text(), filename=filepath)
            for node in ast.walk(tree):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Name)
                    and node.func.id == "StockMovement"
                ):
                    offenders.append(f"  {filepath}:{node.lineno}")
        assert not offenders, "StockMovement built outside StockLedger:\n" + "\n".join(offenders)


class TestInvariantsDeclared:

    def test_invariants_non_empty(self):
        assert len(ALL_KERNEL_INVARIANTS) == len(KernelInvariant)
        assert KernelInvariant.RESERVATION_COVER in ALL_KERNEL_INVARIANTS
        assert KernelInvariant.SINGLE_APPLICATION in ALL_KERNEL_INVARIANTS

    def test_every_invariant_documented(self):
        source = (REPO_ROOT / "warehouse_kernel" / "invariants.py").read_text()
        for invariant in KernelInvariant:
            assert invariant.name in source

    def test_every_invariant_cited_by_an_enforcing_module(self):
        docstrings = []
        for filepath in _python_files("warehouse_kernel"):
            if filepath.endswith("invariants.py"):
                continue
            tree = ast.parse(Path(filepath).read_text(), filename=filepath)
            docstrings.append(ast.get_docstring(tree) or "")
        text = "\n".join(docstrings)
        uncited = [inv.name for inv in KernelInvariant if inv.name not in text]
        assert not uncited, f"Invariants no module claims to enforce: {uncited}"


class TestTransactionOwnership:
    """Kernel code flushes; only the facade commits or rolls back."""

    @staticmethod
    def _receiver_name(node: ast.expr) -> str:
        if isinstance(node, ast.Name):
            return node.id
        if isinstance(node, ast.Attribute):
            return node.attr
        return ""

    def test_kernel_never_commits_the_session(self):
        # Savepoint commits only release a nested transaction.
        offenders = []
        for filepath in _python_files("warehouse_kernel"):
            tree = ast.parse(Path(filepath).read_text(), filename=filepath)
            for node in ast.walk(tree):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Attribute)
                    and node.func.attr in ("commit", "rollback")
                    and "session" in self._receiver_name(node.func.value)
                ):
                    offenders.append(f"  {filepath}:{node.lineno}")
        assert not offenders, "Kernel code commits a transaction:\n" + "\n".join(offenders)

    def test_db_package_exports_resolve(self):
        import warehouse_kernel.db as db

        for name in db.__all__:
            assert hasattr(db, name), name
