"""Settings module: storage-backed configuration document with secret masking."""

from __future__ import annotations

import copy
from collections.abc import Callable
from typing import Any, ClassVar

import structlog
from pydantic import ValidationError

from ..models.context import ActorRole, KernelCommand
from ..models.errors import BadMetaError
from ..models.skill import SkillSettingsMeta, normalize_string_list
from .capability_guard import CapabilityGuard, read_command_ctx
from .document_store import DocumentStore
from .kernel import EventBus, SkillModule
from .params import (
    ensure_bool,
    ensure_json_object,
    ensure_non_empty_string,
    ensure_optional_string,
    ensure_params,
    has_callable,
)
from .settings_utils import (
    MISSING,
    apply_patch_with_mask_handling,
    deep_merge,
    get_by_path,
    mask_sensitive,
    set_by_path,
)

logger = structlog.get_logger()

SETTINGS_MODULE_NAME = "settings"
SKILL_UPDATED_EVENT = "settings.skill.updated"

DEFAULT_AGENT_NAME = "XBot"
DEFAULT_BUSINESS_NAME = "Ruta1"
DEFAULT_MAX_EXPORT_CHARS = 8000
EXPORT_ROLES = ("owner", "admin")

SkillMetaResolver = Callable[[str], SkillSettingsMeta | dict[str, Any] | None]


def _positive_int(value: Any, fallback: int) -> int:
    try:
        parsed = int(str(value), 10)
    except (TypeError, ValueError):
        return fallback
    return parsed if parsed > 0 else fallback


def normalize_root(source: Any) -> dict[str, Any]:
    """Ensure the well-known root keys of the settings document."""
    root = copy.deepcopy(source) if isinstance(source, dict) else {}

    if not isinstance(root.get("ui"), dict):
        root["ui"] = {}
    if not isinstance(root.get("skills"), dict):
        root["skills"] = {}

    agent = root.get("agent") if isinstance(root.get("agent"), dict) else {}
    agent.setdefault("name", DEFAULT_AGENT_NAME)
    agent.setdefault("business_name", DEFAULT_BUSINESS_NAME)
    root["agent"] = agent

    kb = root.get("kb") if isinstance(root.get("kb"), dict) else {}
    export_roles = [
        role for role in normalize_string_list(kb.get("export_roles")) if role in EXPORT_ROLES
    ]
    kb["allow_export"] = ensure_bool(kb.get("allow_export"), False)
    kb["export_roles"] = export_roles or list(EXPORT_ROLES)
    kb["max_export_chars"] = _positive_int(kb.get("max_export_chars"), DEFAULT_MAX_EXPORT_CHARS)
    root["kb"] = kb

    return root


class SettingsService(SkillModule):
    """Kernel module ``settings``.

    Skill buckets live under ``skills.<skill_id>`` of the document. Reads
    merge the bucket over the skill's declared defaults and mask sensitive
    paths; writes go through the mask-aware patch protocol.
    """

    name: ClassVar[str] = SETTINGS_MODULE_NAME

    def __init__(
        self,
        store: DocumentStore,
        guard: CapabilityGuard,
        event_bus: EventBus | None = None,
        resolve_skill_meta: SkillMetaResolver | None = None,
    ) -> None:
        self._store = store
        self._guard = guard
        self._event_bus = event_bus
        self._resolve_skill_meta = resolve_skill_meta
        self._storage_ready = False

    def set_skill_meta_resolver(self, resolver: SkillMetaResolver | None) -> None:
        self._resolve_skill_meta = resolver

    async def op_init_on_boot(self, command: KernelCommand) -> dict[str, Any]:
        self._guard.require_capability(read_command_ctx(command))
        await self._ensure_storage_ready()
        await self._persist_root(await self._read_root())
        logger.info("settings_initialized")
        return {"ok": True}

    async def op_get(self, command: KernelCommand) -> dict[str, Any]:
        self._guard.require_capability_or_role(read_command_ctx(command), ActorRole.ADMIN)
        await self._ensure_storage_ready()
        params = ensure_params(command.params)
        key = ensure_optional_string(params.get("key"))
        root = await self._read_root()
        if key is None:
            return {"ok": True, "value": root}
        value = get_by_path(root, key)
        return {"ok": True, "value": None if value is MISSING else copy.deepcopy(value)}

    async def op_set(self, command: KernelCommand) -> dict[str, Any]:
        self._guard.require_capability_or_role(read_command_ctx(command), ActorRole.ADMIN)
        await self._ensure_storage_ready()
        params = ensure_params(command.params)
        key = ensure_non_empty_string(params.get("key"), "key")
        root = await self._read_root()
        set_by_path(root, key, params.get("value"))
        await self._persist_root(root)
        return {"ok": True}

    async def op_get_skill(self, command: KernelCommand) -> dict[str, Any]:
        self._guard.require_capability_or_role(read_command_ctx(command), ActorRole.ADMIN)
        await self._ensure_storage_ready()
        params = ensure_params(command.params)
        skill_id = ensure_non_empty_string(params.get("skill_id"), "skill_id")
        include_schema = ensure_bool(params.get("include_schema"), False)
        include_masked = ensure_bool(params.get("include_masked"), True)

        root = await self._read_root()
        stored = get_by_path(root, f"skills.{skill_id}")
        stored = stored if isinstance(stored, dict) else {}
        meta = self.resolve_skill_meta(skill_id)
        defaults = meta.defaults if meta and meta.defaults else {}
        sensitive_paths = meta.sensitive_paths if meta else []

        merged = deep_merge(defaults, stored)
        if include_masked:
            masked = mask_sensitive(merged, sensitive_paths)
            settings, masked_map = masked.masked_settings, masked.masked_map
        else:
            settings, masked_map = merged, {}

        result: dict[str, Any] = {"skill_id": skill_id, "settings": settings, "masked": masked_map}
        if include_schema and meta and meta.settings_schema:
            result["schema"] = meta.settings_schema.model_dump(mode="json", exclude_none=True)
        return {"ok": True, "result": result}

    async def op_set_skill(self, command: KernelCommand) -> dict[str, Any]:
        self._guard.require_capability_or_role(read_command_ctx(command), ActorRole.ADMIN)
        await self._ensure_storage_ready()
        params = ensure_params(command.params)
        skill_id = ensure_non_empty_string(params.get("skill_id"), "skill_id")
        patch = ensure_json_object(params.get("patch") or {}, "patch")
        meta = self.resolve_skill_meta(skill_id)
        sensitive_paths = meta.sensitive_paths if meta else []

        root = await self._read_root()
        skills = root["skills"]
        existing = skills.get(skill_id)
        existing = existing if isinstance(existing, dict) else {}
        skills[skill_id] = apply_patch_with_mask_handling(existing, patch, sensitive_paths)
        await self._persist_root(root)

        logger.info("skill_settings_updated", skill_id=skill_id, keys=sorted(patch))
        self._publish(SKILL_UPDATED_EVENT, {"skill_id": skill_id})
        return {"ok": True}

    async def op_reset_skill(self, command: KernelCommand) -> dict[str, Any]:
        self._guard.require_capability_or_role(read_command_ctx(command), ActorRole.ADMIN)
        await self._ensure_storage_ready()
        params = ensure_params(command.params)
        skill_id = ensure_non_empty_string(params.get("skill_id"), "skill_id")
        root = await self._read_root()
        if skill_id in root["skills"]:
            del root["skills"][skill_id]
            await self._persist_root(root)
            logger.info("skill_settings_reset", skill_id=skill_id)
        self._publish(SKILL_UPDATED_EVENT, {"skill_id": skill_id})
        return {"ok": True}

    async def op_schema(self, command: KernelCommand) -> dict[str, Any]:
        self._guard.require_capability_or_role(read_command_ctx(command), ActorRole.ADMIN)
        await self._ensure_storage_ready()
        params = ensure_params(command.params)
        skill_id = ensure_non_empty_string(params.get("skill_id"), "skill_id")
        meta = self.resolve_skill_meta(skill_id)
        if meta is None or meta.settings_schema is None:
            return {"ok": False, "reason": "no_schema"}
        return {"ok": True, "schema": meta.settings_schema.model_dump(mode="json", exclude_none=True)}

    def resolve_skill_meta(self, skill_id: str) -> SkillSettingsMeta | None:
        """
        Look up and validate the settings metadata a skill declared.

        Raises:
            BadMetaError: If the metadata is malformed
        """
        if self._resolve_skill_meta is None:
            return None
        raw_meta = self._resolve_skill_meta(skill_id)
        if raw_meta is None:
            return None
        if isinstance(raw_meta, SkillSettingsMeta):
            return raw_meta.model_copy(deep=True)
        if not isinstance(raw_meta, dict):
            raise BadMetaError(f"Skill settings meta for '{skill_id}' must be an object")
        if has_callable(raw_meta.get("defaults")):
            raise BadMetaError(f"Skill settings defaults for '{skill_id}' must be JSON-safe")
        try:
            return SkillSettingsMeta.model_validate(raw_meta)
        except ValidationError as e:
            raise BadMetaError(
                f"Invalid skill settings meta for '{skill_id}'",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

    async def _ensure_storage_ready(self) -> None:
        # Only bootstrap the document when nothing is stored; never overwrite
        # an existing one on startup.
        if self._storage_ready:
            return
        if await self._store.read() is None:
            await self._store.write(normalize_root({}))
            logger.info("settings_storage_bootstrapped")
        self._storage_ready = True

    async def _read_root(self) -> dict[str, Any]:
        return normalize_root(await self._store.read())

    async def _persist_root(self, root: dict[str, Any]) -> None:
        await self._store.write(root)

    def _publish(self, event_name: str, payload: dict[str, Any]) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event_name, payload)
