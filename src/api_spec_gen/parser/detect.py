"""Auto-detect schema file formats and collect corpus files."""

from pathlib import Path

import yaml

SCHEMA_SUFFIXES = (".ts",)


def detect_format(file_path: Path) -> str:
    """Detect the format of a schema file.

    Returns: 'typescript', 'shared' (a shared-type YAML library) or 'unknown'.
    """
    if file_path.suffix in SCHEMA_SUFFIXES:
        return "typescript"

    text = file_path.read_text(encoding="utf-8")

    if file_path.suffix in (".yaml", ".yml", ".json"):
        try:
            data = yaml.safe_load(text)
            if isinstance(data, dict) and isinstance(data.get("types"), dict):
                return "shared"
        except yaml.YAMLError:
            pass

    # Extension-less units still carry the request markers
    if "@rest_spec_name" in text or "interface Request" in text:
        return "typescript"

    return "unknown"


def collect_schema_files(paths: list[Path]) -> list[Path]:
    """Expand directories into the TypeScript schema files they contain.

    The result is sorted and free of duplicates so corpus runs are deterministic.
    """
    found: set[Path] = set()
    for path in paths:
        if path.is_dir():
            for suffix in SCHEMA_SUFFIXES:
                found.update(p for p in path.rglob(f"*{suffix}") if p.is_file())
        elif detect_format(path) == "typescript":
            found.add(path)
    return sorted(found)
