"""Configuration loading and management."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from coldstart.errors import ConfigurationError

# Load .env files
load_dotenv()

# Config directory names
PROJECT_DIR = ".coldstart"
USER_DIR_NAME = ".coldstart"

DEFAULT_URL_PREFIXES: tuple[str, ...] = ("http://sla-ws-func", "http://functiondev")
DEFAULT_API_MARKER = "/api/"
FORWARDER_APP_POOL = "OnDemandConfigAndForwarder"
HOST_PROCESS_MARKER = "Microsoft.Azure.WebJobs.Script.WebHost"
SECONDARY_SERVICE_PROCESS = "DWASSVC"
WORKER_LAUNCHER_PROCESS = "FunctionsNetHost"

# Column width limit of the telemetry sink
TELEMETRY_FIELD_MAX_LENGTH = 2000
COMMAND_LINE_MAX_LENGTH = 100


@dataclass(slots=True)
class AnalyzerConfig:
    """Merged configuration from all sources.

    Priority: CLI args > env vars > project config > user config > defaults
    """
    # Window selection
    url_pattern: str = ""
    default_url_prefixes: tuple[str, ...] = DEFAULT_URL_PREFIXES
    api_marker: str = DEFAULT_API_MARKER
    forwarder_app_pool: str = FORWARDER_APP_POOL

    # Process roles
    host_process_marker: str = HOST_PROCESS_MARKER
    secondary_service_process: str = SECONDARY_SERVICE_PROCESS
    worker_launcher_process: str = WORKER_LAUNCHER_PROCESS

    # Output
    command_line_max_length: int = COMMAND_LINE_MAX_LENGTH
    telemetry_field_max_length: int = TELEMETRY_FIELD_MAX_LENGTH
    output_path: str = ""

    # Logging
    debug: bool = False
    json_logs: bool = False
    log_file: str = ""

    # Paths
    working_directory: str = field(default="", repr=False)


def find_project_root(start: Path | None = None) -> Path | None:
    """Find the project root by looking for .coldstart/ or .git/."""
    current = start or Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / PROJECT_DIR).exists():
            return parent
        if (parent / ".git").exists():
            return parent
    return None


def get_user_config_dir() -> Path:
    """Get the user-level config directory (~/.coldstart/)."""
    return Path.home() / USER_DIR_NAME


def load_json_config(path: Path) -> dict[str, Any]:
    """Load a JSON config file, returning empty dict if not found."""
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}
    except (json.JSONDecodeError, OSError):
        return {}


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load a YAML config file, returning empty dict if not found."""
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}
    except (yaml.YAMLError, OSError):
        return {}


def load_config_dir(directory: Path) -> dict[str, Any]:
    """Load ``config.yaml`` from *directory*, falling back to ``config.json``."""
    data = load_yaml_config(directory / "config.yaml")
    if not data:
        data = load_json_config(directory / "config.json")
    return data


def load_config(
    *,
    cli_args: dict[str, Any] | None = None,
    working_dir: str | None = None,
) -> AnalyzerConfig:
    """Load configuration from all sources with proper priority.

    Priority: CLI args > env vars > project config > user config > defaults
    """
    config = AnalyzerConfig()
    cli_args = cli_args or {}

    config.working_directory = working_dir or os.getcwd()

    # 1. User-level config (~/.coldstart/config.yaml)
    _apply_dict(config, load_config_dir(get_user_config_dir()))

    # 2. Project-level config (.coldstart/config.yaml)
    project_root = find_project_root(Path(config.working_directory))
    if project_root:
        _apply_dict(config, load_config_dir(project_root / PROJECT_DIR))

    # 3. Environment variables
    if url_pattern := os.environ.get("COLDSTART_URL_PATTERN"):
        config.url_pattern = url_pattern
    if debug := os.environ.get("COLDSTART_DEBUG"):
        config.debug = debug.lower() in ("1", "true", "yes")

    # 4. CLI args (highest priority)
    _apply_dict(config, cli_args)

    validate_config(config)
    return config


def validate_config(config: AnalyzerConfig) -> None:
    """Reject values the analyzer cannot work with."""
    if not config.default_url_prefixes:
        raise ConfigurationError("default_url_prefixes must not be empty")
    if not config.api_marker:
        raise ConfigurationError("api_marker must not be empty")
    if config.command_line_max_length <= 0:
        raise ConfigurationError("command_line_max_length must be positive")
    if config.telemetry_field_max_length <= 0:
        raise ConfigurationError("telemetry_field_max_length must be positive")


_CONFIG_FIELDS = frozenset(f.name for f in fields(AnalyzerConfig)) - {"working_directory"}


def _apply_dict(config: AnalyzerConfig, data: dict[str, Any]) -> None:
    """Apply dictionary values to config, only for known fields."""
    for key, value in data.items():
        if key not in _CONFIG_FIELDS or value is None:
            continue
        if key == "default_url_prefixes":
            if isinstance(value, str):
                value = (value,)
            value = tuple(str(v) for v in value)
        elif key in ("command_line_max_length", "telemetry_field_max_length"):
            try:
                value = int(value)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"{key} must be an integer, got {value!r}") from exc
        elif key in ("debug", "json_logs") and isinstance(value, str):
            value = value.lower() in ("1", "true", "yes")
        setattr(config, key, value)
