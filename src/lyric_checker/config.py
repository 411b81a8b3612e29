"""
Checker configuration loading.

Settings come from config/checker.yaml when present and fall back to the
module-level defaults below for every key the file leaves out.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = Path("config/checker.yaml")

# Rule thresholds
DEFAULT_MAX_LINE_LENGTH = 200
DEFAULT_MAX_HEADER_LENGTH = 256
DEFAULT_MAX_DURATION_SECONDS = 1800

# Canonical lookup
DEFAULT_LOOKUP_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_BACKOFF_SECONDS = 1
DEFAULT_BACKOFF_MULTIPLIER = 2

DEFAULTS: Dict[str, Any] = {
    "rules": {
        "max_line_length": DEFAULT_MAX_LINE_LENGTH,
        "max_header_length": DEFAULT_MAX_HEADER_LENGTH,
        "max_duration_seconds": DEFAULT_MAX_DURATION_SECONDS,
    },
    "conflict": {
        "require_base_revision": False,
    },
    "lookup": {
        "timeout_seconds": DEFAULT_LOOKUP_TIMEOUT_SECONDS,
        "retry": {
            "max_retries": DEFAULT_MAX_RETRIES,
            "initial_backoff_seconds": DEFAULT_INITIAL_BACKOFF_SECONDS,
            "backoff_multiplier": DEFAULT_BACKOFF_MULTIPLIER,
        },
    },
}


class ConfigError(Exception):
    """Raised when the checker configuration file is unreadable or malformed."""
    pass


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _candidate_paths(path: Optional[Path]) -> list:
    if path is not None:
        return [Path(path)]
    env_path = os.environ.get("LYRIC_CHECKER_CONFIG")
    if env_path:
        return [Path(env_path)]
    return [
        DEFAULT_CONFIG_PATH,
        Path(__file__).resolve().parent.parent.parent / DEFAULT_CONFIG_PATH,
    ]


def load_checker_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load checker configuration merged over the defaults.

    Args:
        path: Explicit config file. When given it must exist; otherwise
            $LYRIC_CHECKER_CONFIG and config/checker.yaml are tried in turn.

    Returns:
        Complete config dict

    Raises:
        ConfigError: If an explicit file is missing or any file is malformed
    """
    explicit = path is not None or bool(os.environ.get("LYRIC_CHECKER_CONFIG"))

    for candidate in _candidate_paths(path):
        if not candidate.exists():
            continue
        try:
            with open(candidate, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {candidate}: {e}")
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config {candidate} must be a mapping, got {type(loaded).__name__}")
        logger.debug(f"Loaded checker config from {candidate}")
        config = _merge(DEFAULTS, loaded)
        validate_config(config)
        return config

    if explicit:
        raise ConfigError(f"Config file not found: {_candidate_paths(path)[0]}")

    return copy.deepcopy(DEFAULTS)


def validate_config(config: Dict[str, Any]) -> None:
    """
    Check value types and ranges of a merged config.

    Raises:
        ConfigError: On the first invalid value
    """
    rules = config.get("rules", {})
    for key in ("max_line_length", "max_header_length", "max_duration_seconds"):
        value = rules.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ConfigError(f"rules.{key} must be a positive integer, got {value!r}")

    timeout = config.get("lookup", {}).get("timeout_seconds")
    if not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout <= 0:
        raise ConfigError(f"lookup.timeout_seconds must be a positive number, got {timeout!r}")

    retry = config.get("lookup", {}).get("retry", {})
    max_retries = retry.get("max_retries")
    if not isinstance(max_retries, int) or isinstance(max_retries, bool) or max_retries < 1:
        raise ConfigError(f"lookup.retry.max_retries must be >= 1, got {max_retries!r}")

    if not isinstance(config.get("conflict", {}).get("require_base_revision"), bool):
        raise ConfigError("conflict.require_base_revision must be a boolean")


def resolve_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Complete a caller-supplied config with the defaults.

    Args:
        config: Full or partial config dict; None means all defaults

    Returns:
        New merged dict; the argument is left untouched

    Raises:
        ConfigError: If a merged value is invalid
    """
    if config is None:
        return copy.deepcopy(DEFAULTS)
    merged = _merge(DEFAULTS, config)
    validate_config(merged)
    return merged


def get_rule_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Rule thresholds section of the config, missing keys filled from the defaults."""
    rules = (config or {}).get("rules") or {}
    return _merge(DEFAULTS["rules"], rules)


def get_retry_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Get retry configuration for store lookups.

    Returns:
        Dict with max_retries, initial_backoff_seconds, backoff_multiplier
    """
    config = config if config is not None else DEFAULTS
    retry = config.get("lookup", {}).get("retry", {})
    defaults = DEFAULTS["lookup"]["retry"]
    return {
        "max_retries": retry.get("max_retries", defaults["max_retries"]),
        "initial_backoff_seconds": retry.get("initial_backoff_seconds", defaults["initial_backoff_seconds"]),
        "backoff_multiplier": retry.get("backoff_multiplier", defaults["backoff_multiplier"]),
    }
