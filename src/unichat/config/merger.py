"""
Configuration merging helpers for Unichat.
"""

from typing import Any


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Merge rules:
    - Scalar values: override replaces base
    - Dicts: recursive deep merge
    - null/None value: remove key from result

    Args:
        base: Base configuration dictionary.
        override: Override configuration dictionary.

    Returns:
        Merged configuration dictionary.
    """
    result = base.copy()

    for key, value in override.items():
        if value is None:
            result.pop(key, None)
        elif isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def resolve_key_path(config: dict[str, Any], parts: list[str]) -> list[str] | None:
    """
    Match underscore-split name parts against the keys of a nested dict.

    Keys may themselves contain underscores, so parts are joined greedily
    until they name an existing key.

    Examples:
        >>> resolve_key_path({"channels": {"slack": {"app_id": None}}},
        ...                  ["channels", "slack", "app", "id"])
        ['channels', 'slack', 'app_id']

    Returns:
        The key path, or None if the parts name no existing key.
    """
    if not parts:
        return []
    for end in range(1, len(parts) + 1):
        key = "_".join(parts[:end])
        if key not in config:
            continue
        rest = parts[end:]
        if not rest:
            return [key]
        if isinstance(config[key], dict):
            tail = resolve_key_path(config[key], rest)
            if tail is not None:
                return [key, *tail]
    return None


def get_nested_value(config: dict[str, Any], path: list[str]) -> Any:
    """Get a nested value, or None if any key is missing."""
    current: Any = config
    for key in path:
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def set_nested_value(config: dict[str, Any], path: list[str], value: Any) -> dict[str, Any]:
    """
    Return a copy of ``config`` with ``value`` set at ``path``.

    Intermediate dictionaries are created as needed.
    """
    result = config.copy()
    if len(path) == 1:
        result[path[0]] = value
        return result
    child = result.get(path[0])
    result[path[0]] = set_nested_value(child if isinstance(child, dict) else {}, path[1:], value)
    return result
