"""System-level static checks for import direction between layers.

Layers, from lowest to highest: ``packages.edudesk_shared``,
``packages.edudesk_sdk``, ``actors``. A module may import its own layer or a
lower one, never a higher one. Dynamic import mechanisms are banned so these
checks stay complete.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parents[2]
_LAYERS = ("packages.edudesk_shared", "packages.edudesk_sdk", "actors")


@dataclass(frozen=True)
class _Violation:
    """One import violation with stable source location."""

    file_path: Path
    line: int
    message: str

    def format(self) -> str:
        """Render violation for assertion output."""
        return f"{self.file_path}:{self.line}: {self.message}"


def test_layers_only_import_downward() -> None:
    """Reject static import edges from a lower layer to a higher one."""
    violations: list[_Violation] = []
    for file_path in _runtime_files():
        caller_layer = _layer_of(_module_name(file_path))
        if caller_layer is None:
            continue
        tree = ast.parse(file_path.read_text(encoding="utf-8"), filename=str(file_path))
        for module_name, line in _imported_modules(tree):
            target_layer = _layer_of(module_name)
            if target_layer is not None and target_layer > caller_layer:
                violations.append(
                    _Violation(
                        file_path=file_path,
                        line=line,
                        message=(
                            f"{_LAYERS[caller_layer]} must not import "
                            f"{module_name}"
                        ),
                    )
                )

    assert not violations, "\n".join(v.format() for v in violations)


def test_runtime_code_disallows_dynamic_imports() -> None:
    violations: list[_Violation] = []
    for file_path in _runtime_files():
        tree = ast.parse(file_path.read_text(encoding="utf-8"), filename=str(file_path))
        for node in ast.walk(tree):
            if isinstance(node, ast.Import) and any(
                alias.name.split(".")[0] == "importlib" for alias in node.names
            ):
                violations.append(
                    _Violation(file_path, node.lineno, "importlib is banned")
                )
            elif isinstance(node, ast.ImportFrom) and (node.module or "").startswith(
                "importlib"
            ):
                violations.append(
                    _Violation(file_path, node.lineno, "importlib is banned")
                )
            elif (
                isinstance(node, ast.Call)
                and isinstance(node.func, ast.Name)
                and node.func.id == "__import__"
            ):
                violations.append(
                    _Violation(file_path, node.lineno, "Builtin '__import__' is banned")
                )

    assert not violations, "\n".join(v.format() for v in violations)


def test_runtime_scan_covers_every_layer() -> None:
    layers = {_layer_of(_module_name(path)) for path in _runtime_files()}

    assert layers == {0, 1, 2}


def _runtime_files() -> tuple[Path, ...]:
    """Return runtime Python files under the package and actor roots."""
    files: set[Path] = set()
    for root_name in ("packages", "actors"):
        for file_path in (_REPO_ROOT / root_name).rglob("*.py"):
            parts = file_path.relative_to(_REPO_ROOT).parts
            if "__pycache__" in parts or "tests" in parts:
                continue
            files.add(file_path)
    return tuple(sorted(files))


def _module_name(file_path: Path) -> str:
    rel = file_path.relative_to(_REPO_ROOT)
    if rel.name == "__init__.py":
        return ".".join(rel.parent.parts)
    return ".".join(rel.with_suffix("").parts)


def _layer_of(module_name: str) -> int | None:
    for index, root in enumerate(_LAYERS):
        if module_name == root or module_name.startswith(f"{root}."):
            return index
    return None


def _imported_modules(tree: ast.AST) -> list[tuple[str, int]]:
    """Return absolute imported module names; relative imports stay in-layer."""
    imports: list[tuple[str, int]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            imports.extend((alias.name, node.lineno) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
            imports.append((node.module, node.lineno))
    return imports
