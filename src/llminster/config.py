# llminster: Environment-driven knobs plus the YAML/JSON config loader. Unlike optional settings, a bad config is fatal, so load_config raises ConfigError instead of returning defaults.

from __future__ import annotations

import os
import pathlib
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from .errors import ConfigError
from .models import AppConfig

# Config file location (YAML; JSON is accepted since it is a YAML subset)
CONFIG_PATH = os.environ.get("LLMINSTER_CONFIG", "").strip()
DEFAULT_CONFIG_CANDIDATES = ("config.yaml", "config.yml", "config.json")

# Logging
LOG_LEVEL = os.environ.get("LLMINSTER_LOG_LEVEL", "DEBUG").upper()
LOG_DIR = os.environ.get("LLMINSTER_LOG_DIR", "").strip()

# Speaker label recorded for user turns
USER_SPEAKER = "User"

# Filenames that are produced by the pipeline and must never trigger it
OUTPUT_SUFFIXES = (".answer.md", ".context.md")
PROMPT_EXTENSION = ".q"
TEMPLATE_EXTENSION = ".razorq"


def find_config_path(explicit: Optional[str] = None, cwd: Optional[pathlib.Path] = None) -> pathlib.Path:
    """
    Locate the config file.

    Precedence: explicit argument, LLMINSTER_CONFIG, then config.yaml / config.yml /
    config.json in cwd.

    Raises:
        ConfigError: If no candidate exists.
    """
    if explicit:
        return pathlib.Path(explicit)
    if CONFIG_PATH:
        return pathlib.Path(CONFIG_PATH)
    base = cwd or pathlib.Path.cwd()
    for name in DEFAULT_CONFIG_CANDIDATES:
        p = base / name
        if p.exists() and p.is_file():
            return p
    raise ConfigError(f"No configuration file found in {base} (tried {', '.join(DEFAULT_CONFIG_CANDIDATES)})")


def parse_config(data: Any) -> AppConfig:
    """Validate an already-parsed mapping into AppConfig, converting validation errors to ConfigError."""
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")
    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def load_config(path: pathlib.Path, overrides: Optional[Dict[str, Any]] = None) -> AppConfig:
    """
    Load and validate the application config from a YAML or JSON file.

    Args:
        path: Config file path.
        overrides: Optional top-level keys replacing file values (e.g. a CLI watch dir).

    Raises:
        ConfigError: On a missing/unreadable file, malformed YAML, or failed validation.
    """
    path = pathlib.Path(path)
    if not path.exists() or not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Could not read configuration file {path}: {e}") from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed configuration file {path}: {e}") from e
    if isinstance(data, dict) and overrides:
        data = {**data, **{k: v for k, v in overrides.items() if v is not None}}
    return parse_config(data)
