"""
Configuration management for nbdocs.

Holds the explicit build configuration (source, staging and publish directories
plus the declared documents) instead of relying on the working directory.

Configuration priority (highest to lowest):
1. Explicit overrides (command-line flags)
2. Environment variables (NBDOCS_*)
3. nbdocs.json file (explicit path, or the one in the working directory)
4. Built-in defaults
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "nbdocs.json"
ENV_PREFIX = "NBDOCS_"

# Default values (used when neither overrides, env vars nor nbdocs.json specify)
DEFAULT_SOURCE_DIR = "notebooks"
DEFAULT_OUTPUT_DIR = "_build"
DEFAULT_PUBLISH_DIR = "docs"
DEFAULT_NOTEBOOK_EXTENSION = "ipynb"

_PATH_KEYS = ("source_dir", "output_dir", "publish_dir")
_TRUE_VALUES = {"1", "true", "yes", "on"}

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class ConfigError(ValueError):
    """Raised when the build configuration cannot be loaded or is invalid."""


def validate_document_names(names: Iterable[str]) -> List[str]:
    """
    Normalize document names: stripped, de-duplicated, order preserved.

    Raises:
        ValueError: a name is empty, hidden, or contains a path separator
    """
    cleaned: List[str] = []
    for raw in names:
        name = raw.strip()
        if not name:
            raise ValueError("document names must not be empty")
        if "/" in name or "\\" in name:
            raise ValueError(f"document name {raw!r} must not contain a path separator")
        if name.startswith("."):
            raise ValueError(f"document name {raw!r} must not start with '.'")
        if name not in cleaned:
            cleaned.append(name)
    return cleaned


class BuildConfig(BaseModel):
    """Explicit configuration for one documentation build."""

    model_config = ConfigDict(extra="forbid")

    source_dir: Path = Path(DEFAULT_SOURCE_DIR)
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    publish_dir: Path = Path(DEFAULT_PUBLISH_DIR)

    # Empty means "every notebook found in source_dir"
    documents: List[str] = Field(default_factory=list)

    notebook_extension: str = DEFAULT_NOTEBOOK_EXTENSION
    incremental: bool = False
    figure_dpi: int = Field(default=100, gt=0)

    @field_validator("documents")
    @classmethod
    def _check_document_names(cls, names: List[str]) -> List[str]:
        return validate_document_names(names)

    @field_validator("notebook_extension")
    @classmethod
    def _check_extension(cls, extension: str) -> str:
        extension = extension.strip().lstrip(".")
        if not extension:
            raise ValueError("notebook_extension must not be empty")
        return extension

    def resolved(self, base_dir: Optional[Path] = None) -> "BuildConfig":
        """Return a copy whose directories are absolute (relative ones are taken from base_dir)."""
        base = Path(base_dir) if base_dir is not None else Path.cwd()
        updates = {}
        for key in _PATH_KEYS:
            path = getattr(self, key).expanduser()
            if not path.is_absolute():
                path = base / path
            updates[key] = path.resolve()
        return self.model_copy(update=updates)

    @property
    def stages_in_publish_dir(self) -> bool:
        """True when rendered documents are written straight into the publish directory."""
        return self.output_dir.resolve() == self.publish_dir.resolve()


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    """Load nbdocs.json, resolving relative paths against the file's directory."""
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{config_path}: invalid JSON ({e})") from e
    except OSError as e:
        raise ConfigError(f"{config_path}: cannot read configuration ({e})") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: expected a JSON object at top level")

    base = config_path.parent
    for key in _PATH_KEYS:
        value = data.get(key)
        if isinstance(value, str) and not Path(value).expanduser().is_absolute():
            data[key] = str(base / value)

    logger.debug(f"Loaded configuration from {config_path}")
    return data


def _read_environment(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Collect NBDOCS_* environment variables."""
    values: Dict[str, Any] = {}

    for key in _PATH_KEYS + ("notebook_extension", "figure_dpi"):
        env_value = environ.get(ENV_PREFIX + key.upper())
        if env_value:
            values[key] = env_value

    documents = environ.get(ENV_PREFIX + "DOCUMENTS")
    if documents:
        values["documents"] = [name for name in documents.split(",") if name.strip()]

    incremental = environ.get(ENV_PREFIX + "INCREMENTAL")
    if incremental:
        values["incremental"] = incremental.strip().lower() in _TRUE_VALUES

    return values


def find_config_file(directory: Optional[Path] = None) -> Optional[Path]:
    """Return nbdocs.json in the given (or current) directory, if present."""
    candidate = Path(directory or Path.cwd()) / CONFIG_FILENAME
    return candidate if candidate.is_file() else None


def load_config(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> BuildConfig:
    """
    Build the effective configuration.

    Args:
        config_path: Explicit nbdocs.json path; it must exist. When omitted, the
                     working directory's nbdocs.json is used if there is one.
        environ: Environment mapping (defaults to os.environ).
        overrides: Highest-priority values, typically from command-line flags.
                   Keys whose value is None are ignored.

    Returns:
        BuildConfig with absolute directories.
    """
    data: Dict[str, Any] = {}

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.is_file():
            raise ConfigError(f"configuration file not found: {config_path}")
    else:
        config_path = find_config_file()

    if config_path is not None:
        data.update(_read_config_file(config_path))

    data.update(_read_environment(os.environ if environ is None else environ))
    data.update({k: v for k, v in (overrides or {}).items() if v is not None})

    try:
        config = BuildConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {e}") from e

    return config.resolved()
