"""Skill code loading and descriptor normalization."""

from __future__ import annotations

import asyncio
import importlib.util
import itertools
import re
import sys
import types
from collections.abc import Mapping
from dataclasses import is_dataclass
from pathlib import Path
from typing import Any, Protocol

import structlog
from pydantic import ValidationError

from ..models.errors import BadExportError
from ..models.skill import (
    LEGACY_SKILL_VERSION,
    NormalizedSkill,
    ResolvedSkillEntry,
    SkillCapabilities,
    SkillKind,
    SkillSettingsMeta,
)
from .params import ensure_non_empty_string, ensure_optional_string, has_callable

logger = structlog.get_logger()

MODULE_NAMESPACE = "skillcore_loaded_skills"
DESCRIPTOR_FIELDS = (
    "id",
    "version",
    "name",
    "description",
    "settings",
    "settings_meta",
    "capabilities",
    "on_enable",
    "on_disable",
)

_module_counter = itertools.count(1)


class SkillLoader(Protocol):
    """Loads the code behind a resolved skill entry."""

    async def load(self, entry: ResolvedSkillEntry) -> Any:
        """Return the loaded module (or any object exposing its exports)."""
        ...


class FileSkillLoader:
    """Executes a skill entry file as a fresh, uniquely named module.

    Only the most recent load of each skill id stays registered in
    ``sys.modules``.
    """

    def __init__(self) -> None:
        self._module_names: dict[str, str] = {}

    async def load(self, entry: ResolvedSkillEntry) -> types.ModuleType:
        return await asyncio.to_thread(self._load_sync, entry)

    def _load_sync(self, entry: ResolvedSkillEntry) -> types.ModuleType:
        entry_path = Path(entry.entry_path)
        safe_id = re.sub(r"\W", "_", entry.skill_id)
        module_name = f"{MODULE_NAMESPACE}_{safe_id}_{next(_module_counter)}"
        search_locations = [str(entry_path.parent)] if entry_path.name == "__init__.py" else None

        spec = importlib.util.spec_from_file_location(
            module_name,
            entry_path,
            submodule_search_locations=search_locations,
        )
        if spec is None or spec.loader is None:
            raise BadExportError(f"Cannot load skill entry: {entry_path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            _unregister(module_name)
            raise

        previous = self._module_names.get(entry.skill_id)
        if previous is not None:
            _unregister(previous)
        self._module_names[entry.skill_id] = module_name
        logger.debug("skill_module_imported", skill_id=entry.skill_id, module=module_name)
        return module


def _unregister(module_name: str) -> None:
    """Remove a loaded skill module and its submodules from ``sys.modules``."""
    prefix = f"{module_name}."
    for name in [n for n in list(sys.modules) if n == module_name or n.startswith(prefix)]:
        sys.modules.pop(name, None)


def _export(module_exports: Any, name: str) -> Any:
    if isinstance(module_exports, Mapping):
        return module_exports.get(name)
    return getattr(module_exports, name, None)


def _descriptor_fields(value: Any) -> dict[str, Any] | None:
    """Read descriptor fields from a mapping, dataclass or plain object."""
    if isinstance(value, Mapping):
        return dict(value)
    if is_dataclass(value) and not isinstance(value, type):
        return {name: getattr(value, name, None) for name in DESCRIPTOR_FIELDS}
    if value is None or isinstance(value, (str, bytes, int, float, bool, list, tuple)):
        return None
    if callable(value):
        return None
    if hasattr(value, "id") and hasattr(value, "on_enable"):
        return {name: getattr(value, name, None) for name in DESCRIPTOR_FIELDS}
    return None


def normalize_settings_meta(value: Any, skill_id: str) -> SkillSettingsMeta:
    """
    Validate declared settings metadata.

    Raises:
        BadExportError: If defaults, sensitive paths or schema are malformed
    """
    if isinstance(value, SkillSettingsMeta):
        return value.model_copy(deep=True)
    if not isinstance(value, Mapping):
        raise BadExportError(f"skill.settings must be an object: {skill_id}")
    defaults = value.get("defaults")
    if defaults is not None and (not isinstance(defaults, Mapping) or has_callable(defaults)):
        raise BadExportError(f"skill.settings.defaults must be a JSON object: {skill_id}")
    try:
        return SkillSettingsMeta.model_validate(dict(value))
    except ValidationError as e:
        raise BadExportError(
            f"Invalid skill.settings: {skill_id}",
            details={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
        ) from e


def _normalize_capabilities(value: Any) -> SkillCapabilities:
    if isinstance(value, SkillCapabilities):
        return value.model_copy(deep=True)
    if not isinstance(value, Mapping):
        return SkillCapabilities()
    return SkillCapabilities.model_validate(dict(value))


def _normalize_standard(skill_id: str, fields: dict[str, Any]) -> NormalizedSkill:
    declared_id = ensure_non_empty_string(fields.get("id"), "skill.id", BadExportError)
    if declared_id != skill_id:
        raise BadExportError(f"Skill id mismatch. expected={skill_id} got={declared_id}")
    version = ensure_non_empty_string(fields.get("version"), "skill.version", BadExportError)

    on_enable = fields.get("on_enable")
    if not callable(on_enable):
        raise BadExportError("skill.on_enable must be a function")
    on_disable = fields.get("on_disable")

    raw_settings = fields.get("settings")
    if raw_settings is None:
        raw_settings = fields.get("settings_meta")

    return NormalizedSkill(
        kind=SkillKind.STANDARD,
        id=declared_id,
        version=version,
        name=ensure_optional_string(fields.get("name")),
        description=ensure_optional_string(fields.get("description")),
        capabilities=_normalize_capabilities(fields.get("capabilities")),
        settings_meta=None if raw_settings is None else normalize_settings_meta(raw_settings, skill_id),
        on_enable=on_enable,
        on_disable=on_disable if callable(on_disable) else None,
    )


def _legacy_register_fn(module_exports: Any) -> Any:
    named = _export(module_exports, "register_skill")
    if callable(named):
        return named
    default_export = _export(module_exports, "default")
    if callable(default_export):
        return default_export
    nested = _export(default_export, "register_skill") if default_export is not None else None
    if callable(nested):
        return nested
    raise BadExportError("Skill must export `skill` or legacy `register_skill(ctx)`")


def normalize_skill_exports(skill_id: str, module_exports: Any) -> NormalizedSkill:
    """
    Turn whatever a skill module exports into a ``NormalizedSkill``.

    A ``skill`` descriptor is preferred. Modules without one fall back to the
    legacy ``register_skill(ctx)`` shape, which declares no capabilities.

    Raises:
        BadExportError: If neither shape is present or the descriptor is invalid
    """
    if not isinstance(module_exports, (types.ModuleType, Mapping)):
        raise BadExportError("Skill module must export an object")

    fields = _descriptor_fields(_export(module_exports, "skill"))
    if fields is not None:
        return _normalize_standard(skill_id, fields)

    register_skill = _legacy_register_fn(module_exports)
    return NormalizedSkill(
        kind=SkillKind.LEGACY,
        id=skill_id,
        version=LEGACY_SKILL_VERSION,
        capabilities=SkillCapabilities(),
        settings_meta=SkillSettingsMeta(),
        on_enable=register_skill,
    )
