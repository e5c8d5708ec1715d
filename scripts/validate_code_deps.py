#!/usr/bin/env python3
"""Validate the import graph of the backtester packages.

Checks:
1. No circular dependencies
2. Layer rules respected (lower → higher forbidden)

Layers run from the error types up to the transports. The core never
imports the CLI or the API.
"""

import ast
import sys
from pathlib import Path

LAYERS = {
    0: ["backtester/core/exceptions.py"],
    1: ["backtester/core/config.py", "backtester/core/logging.py"],
    2: ["backtester/backtest/types.py"],
    3: ["backtester/backtest/indicators.py", "backtester/backtest/io.py"],
    4: ["backtester/backtest/rules.py"],
    5: ["backtester/backtest/strategy.py"],
    6: ["backtester/backtest/simulator.py", "backtester/backtest/metrics.py"],
    7: ["backtester/backtest/engine.py"],
    8: ["api/", "backtester/cli.py"],
}

PACKAGES = ("backtester", "api")


def get_module_layer(module_path: str) -> int | None:
    """Determine which layer a module belongs to."""
    for layer, patterns in LAYERS.items():
        for pattern in patterns:
            if module_path.startswith(pattern.replace(".py", "")):
                return layer
    return None


def extract_imports(file_path: Path) -> list[str]:
    """Extract all imports from a Python file."""
    try:
        tree = ast.parse(file_path.read_text(encoding="utf-8"))
    except (SyntaxError, UnicodeDecodeError):
        return []

    imports = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                imports.append(alias.name)
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                imports.append(node.module)

    return imports


def check_circular_deps(imports: dict[str, set[str]]) -> list[str]:
    """Detect circular dependencies using DFS."""
    errors = []
    done: set[str] = set()

    def visit(module: str, path: list[str]) -> None:
        if module in path:
            cycle = " → ".join(path + [module])
            errors.append(f"CIRCULAR DEPENDENCY: {cycle}")
            return

        if module in done or module not in imports:
            return

        for dep in sorted(imports[module]):
            visit(dep, path + [module])
        done.add(module)

    for module in sorted(imports):
        visit(module, [])

    return errors


def check_layer_violations(file_path: Path, imports: list[str], repo_root: Path) -> list[str]:
    """Check if imports violate layer rules (lower → higher forbidden)."""
    errors = []

    rel_path = file_path.relative_to(repo_root).as_posix()
    module_layer = get_module_layer(rel_path)

    if module_layer is None:
        return []  # Not in layer system (package __init__, tests/)

    for imp in imports:
        if imp.split(".", 1)[0] not in PACKAGES:
            continue  # External import

        import_layer = get_module_layer(imp.replace(".", "/"))
        if import_layer is None:
            continue

        if import_layer > module_layer:
            errors.append(f"LAYER VIOLATION: {rel_path} (layer {module_layer}) imports {imp} (layer {import_layer})")

    return errors


def validate(repo_root: Path) -> tuple[list[str], int]:
    python_files: list[Path] = []
    for pkg in PACKAGES:
        python_files += [p for p in repo_root.glob(f"{pkg}/**/*.py") if "__pycache__" not in p.parts]

    errors: list[str] = []
    all_imports: dict[str, set[str]] = {}

    for file in python_files:
        imports = extract_imports(file)
        module_name = file.relative_to(repo_root).with_suffix("").as_posix().replace("/", ".")
        if module_name.endswith(".__init__"):
            module_name = module_name.removesuffix(".__init__")
        all_imports[module_name] = set(imports)
        errors.extend(check_layer_violations(file, imports, repo_root))

    errors.extend(check_circular_deps(all_imports))
    return errors, len(python_files)


def main() -> int:
    repo_root = Path(__file__).resolve().parent.parent

    print("Validating code dependencies...")
    errors, checked = validate(repo_root)

    if errors:
        print("\nDependency validation failed:\n")
        for error in errors:
            print(f"  {error}")
        print(f"\n{len(errors)} violation(s) found.")
        return 1

    print("No circular dependencies or layer violations detected.")
    print(f"   Checked {checked} Python files.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
