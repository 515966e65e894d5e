"""Dotted-path access, deep merge and secret masking for settings documents.

The masking protocol lets a client read settings with secrets replaced by
``MASK_SENTINEL`` and submit the same object back: any sensitive path still
holding the sentinel keeps its stored value (or stays absent), so a secret the
client never saw can be neither exposed nor overwritten by the placeholder.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

MASK_SENTINEL = "••••••••"


class _Missing:
    """Marker for a path that does not resolve to a value."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


@dataclass
class MaskResult:
    """Settings with sensitive values replaced, and which paths were masked."""

    masked_settings: dict[str, Any]
    masked_map: dict[str, bool] = field(default_factory=dict)


def split_path(dotted_path: str) -> list[str]:
    if not isinstance(dotted_path, str):
        return []
    return [part.strip() for part in dotted_path.split(".") if part.strip()]


def deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively merge ``patch`` onto ``base`` without mutating either.

    Nested mappings present on both sides are merged. Any other patch value,
    lists included, replaces the base value wholesale.
    """
    out: dict[str, Any] = copy.deepcopy(base) if isinstance(base, dict) else {}
    if not isinstance(patch, dict):
        return out
    for key, value in patch.items():
        current = out.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            out[key] = deep_merge(current, value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def get_by_path(obj: Any, dotted_path: str) -> Any:
    """Return the value at ``dotted_path`` or ``MISSING``; an empty path is the root."""
    parts = split_path(dotted_path)
    cursor = obj
    for key in parts:
        if not isinstance(cursor, dict) or key not in cursor:
            return MISSING
        cursor = cursor[key]
    return cursor


def set_by_path(obj: dict[str, Any], dotted_path: str, value: Any) -> dict[str, Any]:
    """Set a deep copy of ``value`` at ``dotted_path``, creating intermediates."""
    parts = split_path(dotted_path)
    if not parts:
        return obj
    cursor = obj
    for key in parts[:-1]:
        if not isinstance(cursor.get(key), dict):
            cursor[key] = {}
        cursor = cursor[key]
    cursor[parts[-1]] = copy.deepcopy(value)
    return obj


def delete_by_path(obj: dict[str, Any], dotted_path: str) -> dict[str, Any]:
    parts = split_path(dotted_path)
    if not parts:
        return obj
    cursor: Any = obj
    for key in parts[:-1]:
        if not isinstance(cursor, dict):
            return obj
        cursor = cursor.get(key)
    if isinstance(cursor, dict):
        cursor.pop(parts[-1], None)
    return obj


def _is_empty(value: Any) -> bool:
    if value is MISSING or value is None:
        return True
    if isinstance(value, (str, list)) and len(value) == 0:
        return True
    return False


def mask_sensitive(settings: dict[str, Any], sensitive_paths: list[str]) -> MaskResult:
    """Replace non-empty values at sensitive paths with ``MASK_SENTINEL``."""
    masked = copy.deepcopy(settings)
    masked_map: dict[str, bool] = {}
    for path in sensitive_paths:
        if _is_empty(get_by_path(masked, path)):
            continue
        set_by_path(masked, path, MASK_SENTINEL)
        masked_map[path] = True
    return MaskResult(masked_settings=masked, masked_map=masked_map)


def apply_patch_with_mask_handling(
    existing: dict[str, Any],
    patch: dict[str, Any],
    sensitive_paths: list[str],
) -> dict[str, Any]:
    """
    Merge a client patch that may echo back masked secrets.

    Args:
        existing: Currently stored settings
        patch: Incoming patch, possibly holding ``MASK_SENTINEL`` values
        sensitive_paths: Declared sensitive dotted paths

    Returns:
        New settings document; ``existing`` is not mutated
    """
    sanitized = copy.deepcopy(patch)
    for path in sensitive_paths:
        if get_by_path(sanitized, path) != MASK_SENTINEL:
            continue
        original = get_by_path(existing, path)
        if original is not MISSING:
            set_by_path(sanitized, path, original)
        else:
            delete_by_path(sanitized, path)
    return deep_merge(existing, sanitized)
