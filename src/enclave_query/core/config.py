"""Engine configuration.

This module centralizes the storage settings, the DuckDB resource profile and
the memory/size thresholds used by the engine. Defaults are tuned for an 8GB
research container (5GB for DuckDB, the rest for Python and the system).

The configuration is built once at process start, from the environment and an
optional YAML file, and then passed explicitly to the session and
materialization layers.

YAML layout (every section and key optional)::

    storage:
      region: us-east-2
      endpoint: null
      use_ssl: true
    resources:
      memory_limit: 5GB
      temp_directory: /tmp
      threads: 4
    thresholds:
      warning_gb: 6.0
      abort_gb: 7.0
      page_size: 100000
      limit_threshold: 1000000
    probe_row_count: true
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigurationError

# ============================================================================
# DEFAULTS
# ============================================================================

DEFAULT_REGION = "us-east-2"

# DuckDB resource profile for an 8GB container
DEFAULT_MEMORY_LIMIT = "5GB"
DEFAULT_TEMP_DIRECTORY = "/tmp"
DEFAULT_THREADS = 4

# Process memory thresholds (GB)
WARNING_GB = 6.0
ABORT_GB = 7.0

# Rows per fetched page when collecting large results (rounded up to whole
# DuckDB vectors of 2048 rows)
PAGE_SIZE = 100_000

# LIMIT values at or below this are treated as a row cap by the classifier
LIMIT_THRESHOLD = 1_000_000

CONFIG_ENV_VAR = "ENCLAVE_QUERY_CONFIG"


# ============================================================================
# SETTINGS
# ============================================================================


@dataclass(frozen=True)
class StorageSettings:
    """Remote object-storage access settings.

    Explicit credentials are used only when both the key id and the secret are
    present; otherwise DuckDB resolves credentials through the AWS chain.
    """

    region: str = DEFAULT_REGION
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    endpoint: Optional[str] = None
    use_ssl: bool = True

    @property
    def has_explicit_credentials(self) -> bool:
        return bool(self.access_key_id) and bool(self.secret_access_key)

    def __repr__(self) -> str:
        # never print the secret
        return (
            f"StorageSettings(region={self.region!r}, endpoint={self.endpoint!r}, "
            f"use_ssl={self.use_ssl!r}, explicit_credentials={self.has_explicit_credentials})"
        )


@dataclass(frozen=True)
class ResourceProfile:
    """DuckDB settings applied to every session."""

    memory_limit: str = DEFAULT_MEMORY_LIMIT
    temp_directory: str = DEFAULT_TEMP_DIRECTORY
    threads: int = DEFAULT_THREADS
    preserve_insertion_order: bool = False
    enable_progress_bar: bool = False


@dataclass(frozen=True)
class Thresholds:
    warning_gb: float = WARNING_GB
    abort_gb: float = ABORT_GB
    page_size: int = PAGE_SIZE
    limit_threshold: int = LIMIT_THRESHOLD

    def __post_init__(self) -> None:
        if self.page_size <= 0:
            raise ConfigurationError(f"page_size must be positive, got {self.page_size}")
        if self.warning_gb > self.abort_gb:
            raise ConfigurationError(
                f"warning_gb ({self.warning_gb}) must not exceed abort_gb ({self.abort_gb})"
            )


@dataclass(frozen=True)
class EngineConfig:
    """Everything a query call needs besides the dataset and the SQL."""

    storage: StorageSettings = field(default_factory=StorageSettings)
    resources: ResourceProfile = field(default_factory=ResourceProfile)
    thresholds: Thresholds = field(default_factory=Thresholds)
    probe_row_count: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Build a configuration from AWS environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            EngineConfig with storage credentials and region filled in and all
            other settings at their defaults.
        """
        env = os.environ if environ is None else environ
        storage = StorageSettings(
            region=env.get("AWS_DEFAULT_REGION") or DEFAULT_REGION,
            access_key_id=env.get("AWS_ACCESS_KEY_ID") or None,
            secret_access_key=env.get("AWS_SECRET_ACCESS_KEY") or None,
        )
        return cls(storage=storage)


# ============================================================================
# YAML LOADING
# ============================================================================

_SECTIONS = ("storage", "resources", "thresholds")


def read_yaml(path: Path) -> Dict[str, Any]:
    """Read a YAML mapping, raising ConfigurationError on any problem."""
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping at top level")
    return data


def _overlay(base: Any, section: str, values: Any) -> Any:
    if not isinstance(values, dict):
        raise ConfigurationError(f"Config section '{section}' must be a mapping")
    known = {f.name for f in fields(base)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown keys in config section '{section}': {', '.join(unknown)}. "
            f"Valid keys: {', '.join(sorted(known))}"
        )
    try:
        return replace(base, **values)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid values in config section '{section}': {e}") from e


def load_config(
    path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None
) -> EngineConfig:
    """Build the engine configuration from the environment and an optional YAML file.

    Args:
        path: YAML file to overlay. When None, ``ENCLAVE_QUERY_CONFIG`` is
            consulted; when that is unset too, only the environment is used.
        environ: Mapping to read environment variables from.

    Returns:
        The merged EngineConfig.

    Raises:
        ConfigurationError: If the file is missing, unparsable or has unknown keys.

    Examples:
        >>> cfg = load_config(environ={"AWS_DEFAULT_REGION": "eu-west-1"})
        >>> cfg.storage.region
        'eu-west-1'
    """
    env = os.environ if environ is None else environ
    config = EngineConfig.from_env(env)
    if path is None and env.get(CONFIG_ENV_VAR):
        path = Path(env[CONFIG_ENV_VAR])
    if path is None:
        return config

    data = read_yaml(Path(path))
    updates: Dict[str, Any] = {}
    for section in _SECTIONS:
        if section in data:
            updates[section] = _overlay(getattr(config, section), section, data[section])
    if "probe_row_count" in data:
        updates["probe_row_count"] = bool(data["probe_row_count"])
    # datasets are read by DatasetRegistry.from_yaml
    unknown = sorted(set(data) - set(_SECTIONS) - {"probe_row_count", "datasets"})
    if unknown:
        raise ConfigurationError(f"Unknown config sections in {path}: {', '.join(unknown)}")
    return replace(config, **updates)


__all__ = [
    "StorageSettings",
    "ResourceProfile",
    "Thresholds",
    "EngineConfig",
    "load_config",
    "read_yaml",
]
