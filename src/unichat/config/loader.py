"""
Configuration loader for Unichat.

Loads and merges configuration from multiple sources:
1. Default values
2. Config file (~/.unichat/config.yaml, or the path in UNICHAT_CONFIG)
3. Environment variables (UNICHAT_*)

String values of the form ``${VAR_NAME}`` are replaced with the value of
that environment variable, so secrets can stay out of the file.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from unichat.config.merger import deep_merge, get_nested_value, resolve_key_path, set_nested_value
from unichat.config.schema import UnichatConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "UNICHAT_"

# Read directly, never treated as config overrides
RESERVED_ENV_VARS = frozenset({"UNICHAT_HOME", "UNICHAT_CONFIG"})

_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def get_unichat_home() -> Path:
    """
    Get the Unichat home directory.

    Priority:
    1. UNICHAT_HOME environment variable
    2. ~/.unichat
    """
    env_home = os.environ.get("UNICHAT_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".unichat"


def get_config_path() -> Path:
    """Get the config file path (UNICHAT_CONFIG or <home>/config.yaml)."""
    env_path = os.environ.get("UNICHAT_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return get_unichat_home() / "config.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed configuration dictionary (empty if the file does not exist).

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    try:
        with open(path, encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(f"Top level of {path} must be a mapping")
    return content


def expand_env_vars(value: Any) -> Any:
    """
    Replace ``${VAR}`` references in string values, recursively.

    A value that is exactly one reference to an unset variable becomes None;
    unset references embedded in longer strings become empty.
    """
    if isinstance(value, dict):
        return {key: expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    if not isinstance(value, str):
        return value

    whole = _ENV_REFERENCE.fullmatch(value)
    if whole:
        return os.environ.get(whole.group(1))
    return _ENV_REFERENCE.sub(lambda m: os.environ.get(m.group(1), ""), value)


def apply_env_overrides(
    config: dict[str, Any], defaults: dict[str, Any] | None = None
) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Environment variables follow the pattern:
    UNICHAT_<SECTION>_<KEY>=<value>
    UNICHAT_<SECTION>_<NESTED>_<KEY>=<value>

    e.g. UNICHAT_CHANNELS_SLACK_APP_ID sets channels.slack.app_id.

    Args:
        config: Configuration dictionary to modify.
        defaults: Dictionary whose keys define the valid paths
            (defaults to the config itself).

    Returns:
        Configuration with environment overrides applied.
    """
    known = defaults if defaults is not None else config

    for key, value in sorted(os.environ.items()):
        if not key.startswith(ENV_PREFIX) or key in RESERVED_ENV_VARS:
            continue

        parts = key[len(ENV_PREFIX) :].lower().split("_")
        path = resolve_key_path(known, parts)
        if path is None:
            logger.debug(f"Ignoring unknown config override {key}")
            continue

        current = get_nested_value(known, path)
        config = set_nested_value(config, path, _parse_env_value(value, current))

    return config


def _parse_env_value(value: str, current: Any) -> Any:
    """
    Parse an environment variable value to the type of the current setting.

    Args:
        value: String value from environment.
        current: Existing (default) value at the same path.

    Returns:
        Parsed value (bool or int where the setting is one, else string).
    """
    if isinstance(current, bool):
        if value.lower() in ("true", "yes", "1", "on"):
            return True
        if value.lower() in ("false", "no", "0", "off"):
            return False
        return value

    if isinstance(current, int) and re.match(r"^-?\d+$", value):
        return int(value)

    return value


def load_config(path: Path | None = None, skip_env: bool = False) -> UnichatConfig:
    """
    Load and merge configuration from all sources.

    Loading order (later overrides earlier):
    1. Default values from UnichatConfig model
    2. Config file
    3. Environment variables (UNICHAT_*)

    Args:
        path: Config file to load. Defaults to get_config_path().
        skip_env: Skip environment variable overrides.

    Returns:
        Merged and validated UnichatConfig object.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    defaults = UnichatConfig().model_dump()

    config_path = path or get_config_path()
    file_config = load_yaml_file(config_path)
    if file_config:
        logger.debug(f"Loaded configuration from {config_path}")

    config_dict = deep_merge(defaults, expand_env_vars(file_config))

    if not skip_env:
        config_dict = apply_env_overrides(config_dict, defaults)

    try:
        return UnichatConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e
