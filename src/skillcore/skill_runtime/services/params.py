"""Validation helpers for command parameters."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from ..models.errors import BadParamsError, SkillError


def has_callable(value: Any) -> bool:
    """Return True if ``value`` contains a function anywhere inside it."""
    if callable(value):
        return True
    if isinstance(value, (list, tuple, set)):
        return any(has_callable(item) for item in value)
    if isinstance(value, Mapping):
        return any(has_callable(item) for item in value.values())
    return False


def ensure_non_empty_string(
    value: Any,
    field_name: str,
    error_cls: type[SkillError] = BadParamsError,
) -> str:
    if not isinstance(value, str) or not value.strip():
        raise error_cls(f"Invalid {field_name}: expected non-empty string")
    return value.strip()


def ensure_optional_string(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def ensure_params(value: Any) -> dict[str, Any]:
    """Accept None or a function-free mapping of parameters."""
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise BadParamsError("Expected params to be an object")
    if has_callable(value):
        raise BadParamsError("params must be JSON-safe")
    return dict(value)


def ensure_json_object(
    value: Any,
    field_name: str,
    error_cls: type[SkillError] = BadParamsError,
) -> dict[str, Any]:
    """Return a deep copy of a function-free mapping."""
    if not isinstance(value, Mapping):
        raise error_cls(f"{field_name} must be an object")
    if has_callable(value):
        raise error_cls(f"{field_name} must be JSON-safe")
    return copy.deepcopy(dict(value))


def ensure_bool(value: Any, fallback: bool) -> bool:
    return value if isinstance(value, bool) else fallback
