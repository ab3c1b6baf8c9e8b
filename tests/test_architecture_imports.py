from __future__ import annotations

import ast
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
PACKAGE_ROOT = PROJECT_ROOT / "attendance_sync"

LAYERS = {"domain", "application", "infrastructure", "ui", "core", "bootstrap", "entrypoints"}

# Capa -> capas internas que no puede importar.
FORBIDDEN_LAYER_IMPORTS = {
    "domain": {"application", "infrastructure", "ui", "bootstrap", "entrypoints"},
    "application": {"ui", "entrypoints"},
    "infrastructure": {"application", "ui", "entrypoints"},
}

# Capa -> librerías técnicas que sólo viven en adaptadores.
FORBIDDEN_LIBRARIES = {
    "domain": {"sqlite3", "requests", "PySide6"},
    "application": {"sqlite3", "requests", "PySide6"},
    "infrastructure": {"PySide6"},
}


def _imported_modules(path: Path) -> list[str]:
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    modules: list[str] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            modules.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module and node.level == 0:
            modules.append(node.module)
    return modules


def _violations() -> list[str]:
    found: list[str] = []
    for path in sorted(PACKAGE_ROOT.rglob("*.py")):
        relative = path.relative_to(PACKAGE_ROOT).parts
        layer = relative[0] if len(relative) > 1 else None
        if layer not in FORBIDDEN_LAYER_IMPORTS:
            continue
        for module in _imported_modules(path):
            parts = module.split(".")
            if parts[0] == "attendance_sync" and len(parts) > 1 and parts[1] in FORBIDDEN_LAYER_IMPORTS[layer]:
                found.append(f"{path.relative_to(PROJECT_ROOT).as_posix()} -> {module}")
            if parts[0] in FORBIDDEN_LIBRARIES[layer]:
                found.append(f"{path.relative_to(PROJECT_ROOT).as_posix()} -> {module}")
    return found


def test_layers_only_import_allowed_dependencies() -> None:
    violations = _violations()

    assert not violations, "Imports que cruzan capas:\n" + "\n".join(violations)


def test_every_layer_directory_exists() -> None:
    present = {path.name for path in PACKAGE_ROOT.iterdir() if path.is_dir()}

    assert LAYERS <= present
