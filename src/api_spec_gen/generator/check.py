"""Checks emitted binding files before they are written.

Python modules are byte-compiled, which also catches errors that only the
compiler reports (duplicate arguments, misplaced ``__future__`` imports).
With a REST name given, each file must also expose that operation's binding.
"""

import ast
from typing import Optional

import yaml

from api_spec_gen.generator.binding import builder_name


def _is_package(filename: str) -> bool:
    return filename.rsplit("/", 1)[-1] == "__init__.py"


def check_python(files: dict[str, str]) -> dict[str, str]:
    """Compile Python files.

    Returns dict of {filename: error_message} for files that do not compile.
    """
    errors = {}
    for filename, content in files.items():
        if not filename.endswith(".py"):
            continue
        if not content.strip():
            continue
        try:
            compile(content, filename, "exec")
        except SyntaxError as e:
            errors[filename] = f"SyntaxError: {e.msg} (line {e.lineno})"
        except ValueError as e:
            errors[filename] = f"ValueError: {e}"
    return errors


def check_yaml(files: dict[str, str]) -> dict[str, str]:
    """Load YAML manifests; each must be a mapping.

    Returns dict of {filename: error_message} for files with errors.
    """
    errors = {}
    for filename, content in files.items():
        if not filename.endswith((".yaml", ".yml")):
            continue
        try:
            manifest = yaml.safe_load(content)
        except yaml.YAMLError as e:
            errors[filename] = f"YAMLError: {e}"
            continue
        if not isinstance(manifest, dict):
            errors[filename] = f"manifest must be a mapping, got {type(manifest).__name__}"
    return errors


def _top_level_names(tree: ast.Module) -> set[str]:
    names = set()
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.ClassDef)):
            names.add(node.name)
        elif isinstance(node, ast.Assign):
            names.update(t.id for t in node.targets if isinstance(t, ast.Name))
        elif isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
            names.add(node.target.id)
    return names


def check_binding(filename: str, content: str, rest_name: str) -> Optional[str]:
    """What an emitted file for ``rest_name`` lacks, or None."""
    if filename.endswith(".py"):
        defined = _top_level_names(ast.parse(content, filename=filename))
        missing = [n for n in ("REQUEST_SPEC", builder_name(rest_name)) if n not in defined]
        if missing:
            return f"binding for '{rest_name}' does not define {', '.join(missing)}"
        return None
    declared = yaml.safe_load(content).get("rest_name")
    if declared != rest_name:
        return f"manifest declares rest_name {declared!r}, expected '{rest_name}'"
    return None


def check_files(files: dict[str, str], rest_name: Optional[str] = None) -> dict[str, str]:
    """Run all checks on emitted files.

    Returns dict of {filename: error_message} for all files with errors.
    """
    errors = {}
    errors.update(check_python(files))
    errors.update(check_yaml(files))
    if rest_name is None:
        return errors
    for filename, content in files.items():
        if filename in errors or _is_package(filename):
            continue
        if not filename.endswith((".py", ".yaml", ".yml")):
            continue
        error = check_binding(filename, content, rest_name)
        if error:
            errors[filename] = error
    return errors
