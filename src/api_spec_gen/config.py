"""Run configuration.

Settings come from an optional YAML file (``api-spec-gen.yaml`` in the
working directory unless ``--config`` is given), then environment variables,
then CLI options.
"""

import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_NAME = "api-spec-gen.yaml"

ENV_OVERRIDES = {
    "API_SPEC_GEN_TARGET": "target",
    "API_SPEC_GEN_WORKERS": "workers",
    "API_SPEC_GEN_LOG_LEVEL": "log_level",
}


class Settings(BaseModel):
    shared_types: list[Path] = []  # shared-type YAML libraries seeded before the run
    doc_ids: Optional[Path] = None  # table of known documentation ids
    target: Literal["python", "yaml"] = "python"
    workers: int = Field(default=4, ge=1)
    log_level: str = "WARNING"
    only: list[str] = []  # fnmatch patterns on rest names


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Load settings from a YAML file and the environment."""
    if config_path is None:
        default = Path.cwd() / DEFAULT_CONFIG_NAME
        config_path = default if default.exists() else None

    data: dict = {}
    base = Path.cwd()
    if config_path is not None:
        loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"{config_path}: configuration must be a mapping")
        data = loaded
        base = config_path.parent

    for env_name, key in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            data[key] = value

    settings = Settings(**data)
    return settings.model_copy(
        update={
            "shared_types": [_resolve(base, p) for p in settings.shared_types],
            "doc_ids": _resolve(base, settings.doc_ids) if settings.doc_ids else None,
        }
    )


def _resolve(base: Path, path: Path) -> Path:
    return path if path.is_absolute() else base / path
