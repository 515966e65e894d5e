"""
Skill manager

Owns the lifecycle of allow-listed skills: trusted resolution, loading,
descriptor validation, sandbox construction, settings defaults bootstrap and
enable/disable hooks. Exposed to the kernel as the ``skills`` module.
"""

from __future__ import annotations

import asyncio
import contextvars
import copy
import inspect
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, ClassVar, Literal

import structlog

from ..models.context import Actor, ActorRole, CommandContext, KernelCommand
from ..models.errors import (
    BadParamsError,
    ModuleDisabledError,
    NoSuchOpError,
    NotAllowlistedError,
    PersistFailedError,
    error_message,
)
from ..models.skill import (
    AgentConfig,
    LoadedSkillRecord,
    NormalizedSkill,
    SkillCapabilities,
    SkillHook,
    SkillKind,
    SkillRuntimeRecord,
    SkillSettingsMeta,
    SkillStatus,
)
from .capability_guard import CTX_KEY, CapabilityGuard, read_command_ctx
from .document_store import DocumentStore
from .kernel import CommandDispatcher, EventBus, ModuleRegistry, SkillModule
from .params import ensure_json_object, ensure_non_empty_string, ensure_params
from .settings_service import SETTINGS_MODULE_NAME
from .skill_context import LegacySkillContext, ModuleOwnership, SkillContext, log_skill
from .skill_loader import SkillLoader, normalize_skill_exports
from .skill_resolver import SkillResolver

logger = structlog.get_logger()

SKILL_MANAGER_MODULE_NAME = "skills"
MANAGER_SOURCE = "skill-manager"

LifecycleSource = Literal["reload", "command"]

# Skill ids whose lifecycle lock the current task (and tasks it spawned) holds.
_held_skill_locks: contextvars.ContextVar[frozenset[str]] = contextvars.ContextVar(
    "skillcore_held_skill_locks", default=frozenset()
)


async def _run_hook(hook: SkillHook, ctx: SkillContext) -> None:
    result = hook(ctx)
    if inspect.isawaitable(result):
        await result


class SkillManager(SkillModule):
    """Kernel module ``skills``.

    Every lifecycle operation on one skill id runs under that id's lock, so
    concurrent enable/disable/reload requests for the same skill are applied
    one after another.
    """

    name: ClassVar[str] = SKILL_MANAGER_MODULE_NAME

    def __init__(
        self,
        *,
        agent_id: str,
        version: str,
        config_store: DocumentStore,
        resolver: SkillResolver,
        loader: SkillLoader,
        guard: CapabilityGuard,
        dispatcher: CommandDispatcher,
        registry: ModuleRegistry,
        event_bus: EventBus,
        capability_token: str,
    ) -> None:
        """
        Initialize skill manager.

        Args:
            agent_id: Identifier exposed to legacy skills
            version: Runtime version exposed to legacy skills
            config_store: Storage of the agent config document
            resolver: Trusted skill resolver
            loader: Code loader for resolved entries
            guard: Capability guard used for command authorization
            dispatcher: Command dispatcher skills call into
            registry: Module registry skills register modules with
            event_bus: Event bus skills emit to
            capability_token: Process capability token
        """
        self._agent_id = agent_id
        self._version = version
        self._config_store = config_store
        self._resolver = resolver
        self._loader = loader
        self._guard = guard
        self._dispatcher = dispatcher
        self._registry = registry
        self._event_bus = event_bus
        self._capability_token = capability_token

        self._config = AgentConfig()
        self._enabled: set[str] = set()
        self._activating: set[str] = set()
        self._loaded: dict[str, LoadedSkillRecord] = {}
        self._ownership = ModuleOwnership()
        self._runtime_by_skill: dict[str, SkillRuntimeRecord] = {}
        self._settings_meta_by_skill: dict[str, SkillSettingsMeta] = {}
        self._locks: dict[str, asyncio.Lock] = {}

        self.logger = logger.bind(component="skill_manager")

    @property
    def config(self) -> AgentConfig:
        return self._config.model_copy(deep=True)

    @property
    def ownership(self) -> ModuleOwnership:
        return self._ownership

    def is_enabled(self, skill_id: str) -> bool:
        return skill_id in self._enabled

    def get_record(self, skill_id: str) -> LoadedSkillRecord | None:
        record = self._loaded.get(skill_id)
        return record.model_copy(deep=True) if record else None

    # Kernel operations

    async def op_list(self, command: KernelCommand) -> dict[str, Any]:
        return {
            "allow": list(self._config.skills.allow),
            "enabled": self._sorted_enabled(),
            "loaded": self._loaded_list(),
        }

    async def op_enable(self, command: KernelCommand) -> dict[str, Any]:
        self._guard.require_capability_or_role(read_command_ctx(command), ActorRole.ADMIN)
        params = ensure_params(command.params)
        skill_id = ensure_non_empty_string(params.get("id"), "id")

        was_enabled = skill_id in self._enabled
        await self.enable_skill(skill_id, "command")
        try:
            await self._persist_enabled()
        except Exception as e:
            if not was_enabled:
                await self._revert(self.disable_skill, skill_id)
            raise PersistFailedError(
                "Failed to save enabled skills to agent config",
                details={"cause": error_message(e)},
            ) from e
        return self._command_result(skill_id)

    async def op_disable(self, command: KernelCommand) -> dict[str, Any]:
        self._guard.require_capability_or_role(read_command_ctx(command), ActorRole.ADMIN)
        params = ensure_params(command.params)
        skill_id = ensure_non_empty_string(params.get("id"), "id")

        was_enabled = skill_id in self._enabled
        await self.disable_skill(skill_id, "command")
        try:
            await self._persist_enabled()
        except Exception as e:
            if was_enabled:
                await self._revert(self.enable_skill, skill_id)
            raise PersistFailedError(
                "Failed to save enabled skills to agent config",
                details={"cause": error_message(e)},
            ) from e
        return self._command_result(skill_id)

    async def op_reload_enabled(self, command: KernelCommand) -> dict[str, Any]:
        self._guard.require_capability(read_command_ctx(command))
        await self.reload_enabled()
        return {"ok": True, **await self.op_list(command)}

    async def op_get_settings(self, command: KernelCommand) -> dict[str, Any]:
        self._guard.require_capability_or_role(read_command_ctx(command), ActorRole.ADMIN)
        params = ensure_params(command.params)
        skill_id = ensure_non_empty_string(params.get("id"), "id")
        self._assert_allowlisted(skill_id)

        settings = await self._read_skill_settings(skill_id, self._forward_ctx(command))
        return {"id": skill_id, "settings": settings}

    async def op_update_settings(self, command: KernelCommand) -> dict[str, Any]:
        self._guard.require_capability_or_role(read_command_ctx(command), ActorRole.ADMIN)
        params = ensure_params(command.params)
        skill_id = ensure_non_empty_string(params.get("id"), "id")
        self._assert_allowlisted(skill_id)
        patch = ensure_json_object(params.get("settings") or {}, "settings")

        forwarded = self._forward_ctx(command)
        await self._dispatcher.execute(
            KernelCommand(
                module=SETTINGS_MODULE_NAME,
                op="set_skill",
                params={"skill_id": skill_id, "patch": patch, CTX_KEY: forwarded},
            )
        )
        settings = await self._read_skill_settings(skill_id, forwarded)
        return {"ok": True, "id": skill_id, "settings": settings}

    # Runtime hooks

    def assert_module_command_allowed(self, module_name: str) -> None:
        """
        Reject commands addressed to a module whose owning skill is not enabled.

        Raises:
            ModuleDisabledError: If the owning skill is disabled or failed
        """
        skill_id = self._ownership.owner_of(module_name)
        if skill_id is None or skill_id in self._enabled:
            return
        raise ModuleDisabledError(
            f"Module '{module_name}' is disabled by skill '{skill_id}' state",
            details={"module": module_name, "skill_id": skill_id},
        )

    def resolve_skill_settings_meta(self, skill_id: str) -> SkillSettingsMeta | None:
        meta = self._settings_meta_by_skill.get(skill_id)
        return meta.model_copy(deep=True) if meta is not None else None

    # Lifecycle

    async def reload_enabled(self) -> None:
        """
        Re-read the agent config and converge on its enabled set.

        Skills no longer targeted are disabled. Failures enabling one skill
        are recorded on its record and do not stop the others.
        """
        self._config = await self._read_agent_config()
        targets = list(self._config.skills.enabled)
        self.logger.info("skills_reloading", enabled=targets)

        for skill_id in sorted(self._enabled - set(targets)):
            await self.disable_skill(skill_id, "reload", require_allowlisted=False)

        for skill_id in targets:
            try:
                await self.enable_skill(skill_id, "reload")
            except Exception as e:
                self.set_error_state(skill_id, error_message(e))
                self.logger.error("skill_enable_failed", skill_id=skill_id, error=error_message(e))

    async def enable_skill(self, skill_id: str, source: LifecycleSource = "command") -> None:
        """
        Enable an allow-listed skill.

        Raises:
            NotAllowlistedError: If the id is not allow-listed
            SkillError: Any resolution, load, validation or hook failure,
                after the error has been recorded on the skill's record
        """
        self._assert_allowlisted(skill_id)
        async with self._serialized(skill_id):
            await self._enable_locked(skill_id, source)

    async def disable_skill(
        self,
        skill_id: str,
        source: LifecycleSource = "command",
        *,
        require_allowlisted: bool = True,
    ) -> None:
        """
        Disable a skill, running its disable hook and its modules' ``disable`` ops.

        Hook failures are logged and do not abort the disable.

        Raises:
            NotAllowlistedError: If ``require_allowlisted`` and the id is not allow-listed
        """
        if require_allowlisted:
            self._assert_allowlisted(skill_id)
        async with self._serialized(skill_id):
            await self._disable_locked(skill_id, source)

    def set_error_state(self, skill_id: str, message: str, source: str | None = None) -> None:
        existing = self._loaded.get(skill_id)
        runtime = self._runtime_by_skill.get(skill_id)
        self._loaded[skill_id] = LoadedSkillRecord(
            id=skill_id,
            version=runtime.version if runtime else (existing.version if existing else None),
            enabled=False,
            status=SkillStatus.ERROR,
            error=message,
            source=source or (existing.source if existing else None) or (runtime.source if runtime else None),
            capabilities=self._capabilities_of(skill_id),
            modules_registered=self._ownership.modules_of(skill_id),
        )

    async def _enable_locked(self, skill_id: str, source: LifecycleSource) -> None:
        existing = self._loaded.get(skill_id)
        if existing and existing.status == SkillStatus.LOADED and skill_id in self._enabled:
            return

        runtime = self._runtime_by_skill.get(skill_id)
        if existing and existing.status == SkillStatus.DISABLED and runtime is not None:
            await self._bootstrap_defaults(skill_id, self._settings_meta_by_skill.get(skill_id))
            await self._call_module_hooks(skill_id, "enable")
            self._enabled.add(skill_id)
            self._loaded[skill_id] = LoadedSkillRecord(
                id=skill_id,
                version=runtime.version,
                enabled=True,
                status=SkillStatus.LOADED,
                source=existing.source or runtime.source,
                capabilities=runtime.capabilities.model_copy(deep=True),
                modules_registered=self._ownership.modules_of(skill_id),
            )
            self.logger.info("skill_enabled", skill_id=skill_id, trigger=source)
            return

        resolved_source: str | None = None
        try:
            resolved = await self._resolver.resolve(skill_id, self._config.skills.resolve)
            resolved_source = resolved.source
            module_exports = await self._loader.load(resolved)
            skill = normalize_skill_exports(skill_id, module_exports)
        except Exception as e:
            self.set_error_state(skill_id, error_message(e), resolved_source)
            raise

        ctx = self._create_context(skill)
        self._activating.add(skill_id)
        try:
            self._settings_meta_by_skill[skill_id] = (
                skill.settings_meta.model_copy(deep=True)
                if skill.settings_meta is not None
                else SkillSettingsMeta()
            )
            await self._bootstrap_defaults(skill_id, skill.settings_meta)
            await _run_hook(skill.on_enable, ctx)
            self._enabled.add(skill_id)

            self._runtime_by_skill[skill_id] = SkillRuntimeRecord(
                id=skill_id,
                version=skill.version,
                kind=skill.kind,
                capabilities=skill.capabilities,
                source=resolved.source,
                context=ctx,
                on_disable=skill.on_disable,
            )
            self._loaded[skill_id] = LoadedSkillRecord(
                id=skill_id,
                version=skill.version,
                enabled=True,
                status=SkillStatus.LOADED,
                source=resolved.source,
                capabilities=skill.capabilities.model_copy(deep=True),
                modules_registered=self._ownership.modules_of(skill_id),
            )
            self.logger.info(
                "skill_loaded",
                skill_id=skill_id,
                version=skill.version,
                kind=skill.kind.value,
                source=resolved.source,
                trigger=source,
            )
        except Exception as e:
            self._enabled.discard(skill_id)
            self.set_error_state(skill_id, error_message(e), resolved.source)
            self._settings_meta_by_skill.pop(skill_id, None)
            raise
        finally:
            self._activating.discard(skill_id)

    async def _disable_locked(self, skill_id: str, source: LifecycleSource) -> None:
        runtime = self._runtime_by_skill.get(skill_id)
        self._enabled.discard(skill_id)

        if runtime is not None and runtime.on_disable is not None:
            try:
                await _run_hook(runtime.on_disable, runtime.context)
            except Exception as e:
                log_skill("warn", skill_id, "skill on_disable failed", {"error": error_message(e)})

        await self._call_module_hooks(skill_id, "disable")

        existing = self._loaded.get(skill_id)
        self._loaded[skill_id] = LoadedSkillRecord(
            id=skill_id,
            version=runtime.version if runtime else (existing.version if existing else None),
            enabled=False,
            status=SkillStatus.DISABLED,
            source=(existing.source if existing else None) or (runtime.source if runtime else None),
            capabilities=self._capabilities_of(skill_id),
            modules_registered=self._ownership.modules_of(skill_id),
        )
        self.logger.info("skill_disabled", skill_id=skill_id, trigger=source)

    def _create_context(self, skill: NormalizedSkill) -> SkillContext:
        kwargs: dict[str, Any] = {
            "dispatcher": self._dispatcher,
            "registry": self._registry,
            "event_bus": self._event_bus,
            "ownership": self._ownership,
            "capability_token": self._capability_token,
            "is_active": self._is_callback_allowed,
        }
        if skill.kind == SkillKind.LEGACY:
            return LegacySkillContext(
                skill.id,
                skill.version,
                skill.capabilities.kernel_ops,
                agent_id=self._agent_id,
                agent_version=self._version,
                **kwargs,
            )
        return SkillContext(skill.id, skill.version, skill.capabilities.kernel_ops, **kwargs)

    def _is_callback_allowed(self, skill_id: str) -> bool:
        return skill_id in self._enabled or skill_id in self._activating

    async def _bootstrap_defaults(self, skill_id: str, meta: SkillSettingsMeta | None) -> None:
        """Write declared defaults unless the settings document already has a bucket."""
        await self._dispatcher.execute(
            KernelCommand(
                module=SETTINGS_MODULE_NAME,
                op="get_skill",
                params={
                    "skill_id": skill_id,
                    "include_masked": False,
                    "include_schema": False,
                    CTX_KEY: self._kernel_ctx(),
                },
            )
        )
        defaults = copy.deepcopy(meta.defaults) if meta is not None and meta.defaults else {}
        if not defaults:
            return

        existing = await self._dispatcher.execute(
            KernelCommand(
                module=SETTINGS_MODULE_NAME,
                op="get",
                params={"key": "skills", CTX_KEY: self._kernel_ctx()},
            )
        )
        bucket = existing.get("value") if isinstance(existing, dict) else None
        if isinstance(bucket, dict) and skill_id in bucket:
            return

        await self._dispatcher.execute(
            KernelCommand(
                module=SETTINGS_MODULE_NAME,
                op="set_skill",
                params={"skill_id": skill_id, "patch": defaults, CTX_KEY: self._kernel_ctx()},
            )
        )
        self.logger.info("skill_settings_defaults_written", skill_id=skill_id)

    async def _call_module_hooks(self, skill_id: str, op: Literal["enable", "disable"]) -> None:
        for module_name in self._ownership.modules_of(skill_id):
            try:
                await self._dispatcher.execute(
                    KernelCommand(
                        module=module_name,
                        op=op,
                        params={
                            "reason": f"skills.{op}",
                            "skill_id": skill_id,
                            CTX_KEY: self._kernel_ctx(),
                        },
                    )
                )
            except NoSuchOpError:
                continue
            except Exception as e:
                log_skill(
                    "warn",
                    skill_id,
                    f"module hook failed {module_name}.{op}",
                    {"error": error_message(e)},
                )

    async def _read_skill_settings(self, skill_id: str, ctx_carrier: dict[str, Any]) -> dict[str, Any]:
        out = await self._dispatcher.execute(
            KernelCommand(
                module=SETTINGS_MODULE_NAME,
                op="get_skill",
                params={
                    "skill_id": skill_id,
                    "include_masked": False,
                    "include_schema": False,
                    CTX_KEY: ctx_carrier,
                },
            )
        )
        result = out.get("result") if isinstance(out, dict) else None
        settings = result.get("settings") if isinstance(result, dict) else None
        return ensure_json_object(settings, "settings") if isinstance(settings, dict) else {}

    # Agent config document

    async def _read_agent_config(self) -> AgentConfig:
        document = await self._config_store.read()
        return AgentConfig.from_document(document or {})

    async def _persist_enabled(self) -> None:
        allow = self._config.skills.allow
        enabled = [skill_id for skill_id in self._sorted_enabled() if skill_id in allow]
        self._config.skills.enabled = list(enabled)

        document = await self._config_store.read() or {}
        skills = document.get("skills")
        skills = dict(skills) if isinstance(skills, dict) else {}
        resolve = skills.get("resolve")
        resolve = dict(resolve) if isinstance(resolve, dict) else {}

        resolve.update(
            package_manager=self._config.skills.resolve.package_manager,
            local_paths=list(self._config.skills.resolve.local_paths),
        )
        skills.update(allow=list(allow), enabled=enabled, resolve=resolve)
        document["skills"] = skills

        await self._config_store.write(document)
        self.logger.info("skills_enabled_persisted", enabled=enabled)

    # Helpers

    def _lock_for(self, skill_id: str) -> asyncio.Lock:
        lock = self._locks.get(skill_id)
        if lock is None:
            lock = self._locks[skill_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def _serialized(self, skill_id: str) -> AsyncIterator[None]:
        """
        Hold ``skill_id``'s lifecycle lock for the duration of the block.

        Raises:
            BadParamsError: If the caller already holds the lock, e.g. a hook
                enabling or disabling its own skill
        """
        held = _held_skill_locks.get()
        if skill_id in held:
            raise BadParamsError(f"Skill lifecycle re-entered from its own hook: {skill_id}")
        async with self._lock_for(skill_id):
            token = _held_skill_locks.set(held | {skill_id})
            try:
                yield
            finally:
                _held_skill_locks.reset(token)

    async def _revert(self, action: Any, skill_id: str) -> None:
        # The persistence error is what the caller reports.
        try:
            await action(skill_id, "command")
        except Exception as e:
            self.logger.warning("skill_revert_failed", skill_id=skill_id, error=error_message(e))

    def _assert_allowlisted(self, skill_id: str) -> None:
        if skill_id not in self._config.skills.allow:
            raise NotAllowlistedError(f"Skill id is not in allowlist: {skill_id}")

    def _capabilities_of(self, skill_id: str) -> SkillCapabilities | None:
        runtime = self._runtime_by_skill.get(skill_id)
        if runtime is not None:
            return runtime.capabilities.model_copy(deep=True)
        existing = self._loaded.get(skill_id)
        if existing is not None and existing.capabilities is not None:
            return existing.capabilities.model_copy(deep=True)
        return None

    def _kernel_ctx(self) -> dict[str, Any]:
        return CommandContext(
            capability_token=self._capability_token,
            actor=Actor(role=ActorRole.SYSTEM, source=MANAGER_SOURCE),
        ).to_carrier()

    def _forward_ctx(self, command: KernelCommand) -> dict[str, Any]:
        return read_command_ctx(command).to_carrier()

    def _sorted_enabled(self) -> list[str]:
        return sorted(self._enabled)

    def _loaded_list(self) -> list[dict[str, Any]]:
        ids = set(self._config.skills.allow) | set(self._loaded)
        return [
            (self._loaded.get(skill_id) or LoadedSkillRecord(id=skill_id)).to_public()
            for skill_id in sorted(ids)
        ]

    def _command_result(self, skill_id: str) -> dict[str, Any]:
        record = self._loaded.get(skill_id)
        result: dict[str, Any] = {"ok": True}
        if record is not None:
            result["skill"] = record.to_public()
        return result
