"""Capability-gated facade through which a skill reaches the runtime."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

import structlog

from ..models.context import Actor, ActorRole, CommandContext, KernelCommand
from ..models.errors import (
    BadModuleError,
    BadParamsError,
    ModuleConflictError,
    SkillDisabledError,
)
from .capability_guard import CTX_KEY
from .kernel import CommandDispatcher, EventBus, ModuleRegistry, SkillModule, module_name_of
from .params import ensure_json_object, ensure_non_empty_string, has_callable

logger = structlog.get_logger()

SkillLogLevel = Literal["debug", "info", "warn", "warning", "error"]


def op_key(module_name: str, op: str) -> str:
    return f"{module_name}.{op}"


class ModuleOwnership:
    """Bidirectional skill <-> module ownership map.

    A module name is owned by at most one skill at any time.
    """

    def __init__(self) -> None:
        self._skill_to_modules: dict[str, set[str]] = {}
        self._module_to_skill: dict[str, str] = {}

    def owner_of(self, module_name: str) -> str | None:
        return self._module_to_skill.get(module_name)

    def modules_of(self, skill_id: str) -> list[str]:
        return sorted(self._skill_to_modules.get(skill_id, set()))

    def claim(self, skill_id: str, module_name: str) -> None:
        current = self._module_to_skill.get(module_name)
        if current is not None and current != skill_id:
            raise ModuleConflictError(
                f"Module '{module_name}' already registered by '{current}'"
            )
        self._skill_to_modules.setdefault(skill_id, set()).add(module_name)
        self._module_to_skill[module_name] = skill_id


@dataclass(frozen=True)
class SkillIdentity:
    id: str
    version: str


class SkillContext:
    """
    Per-skill sandbox built from the skill's declared privileges.

    ``execute`` attaches the process capability token only for operations in
    the skill's ``kernel_ops`` allow-list, and always attributes the call to
    the skill through a system actor.
    """

    def __init__(
        self,
        skill_id: str,
        version: str,
        kernel_ops: list[str],
        *,
        dispatcher: CommandDispatcher,
        registry: ModuleRegistry,
        event_bus: EventBus,
        ownership: ModuleOwnership,
        capability_token: str,
        is_active: Callable[[str], bool],
    ) -> None:
        self.skill = SkillIdentity(id=skill_id, version=version)
        self._kernel_allow = frozenset(kernel_ops)
        self._dispatcher = dispatcher
        self._registry = registry
        self._event_bus = event_bus
        self._ownership = ownership
        self._capability_token = capability_token
        self._is_active = is_active

    @property
    def kernel_ops(self) -> frozenset[str]:
        return self._kernel_allow

    async def execute(
        self,
        module: str,
        op: str,
        params: dict[str, Any] | None = None,
        meta: Any = None,
    ) -> Any:
        """
        Call a kernel module operation on behalf of the skill.

        Raises:
            SkillDisabledError: If the skill is neither enabled nor activating
            BadParamsError: If arguments are malformed or carry functions
        """
        self._assert_active()
        module_name = ensure_non_empty_string(module, "module")
        op_name = ensure_non_empty_string(op, "op")
        call_params = {} if params is None else ensure_json_object(params, "params")

        ctx = CommandContext(
            actor=Actor(role=ActorRole.SYSTEM, source=f"skill:{self.skill.id}"),
        )
        if op_key(module_name, op_name) in self._kernel_allow:
            ctx.capability_token = self._capability_token
        carrier = ctx.to_carrier()
        if meta is not None:
            if has_callable(meta):
                raise BadParamsError("meta must be JSON-safe")
            carrier["meta"] = meta

        call_params[CTX_KEY] = carrier
        return await self._dispatcher.execute(
            KernelCommand(module=module_name, op=op_name, params=call_params)
        )

    def register_module(self, module_instance: SkillModule) -> None:
        """
        Register a module owned by this skill.

        Raises:
            BadModuleError: If the instance is not a named module
            ModuleConflictError: If the name is owned by another skill or
                already exists without an owner
        """
        if not isinstance(module_instance, SkillModule):
            raise BadModuleError("register_module expects a SkillModule instance")
        name = module_name_of(module_instance)
        if name is None:
            raise BadModuleError("Invalid module name: expected non-empty string")

        owner = self._ownership.owner_of(name)
        if owner is not None and owner != self.skill.id:
            raise ModuleConflictError(f"Module '{name}' already registered by '{owner}'")

        if self._registry.get_module(name) is None:
            self._registry.load_module(module_instance)
        elif owner is None:
            raise ModuleConflictError(
                f"Module '{name}' already exists and is not managed by skill '{self.skill.id}'"
            )

        self._ownership.claim(self.skill.id, name)
        logger.info("skill_module_registered", skill_id=self.skill.id, module=name)

    def emit(self, event_name: str, payload: Any = None) -> None:
        self._assert_active()
        name = ensure_non_empty_string(event_name, "event_name")
        if has_callable(payload):
            raise BadParamsError("emit payload must be JSON-safe")
        self._event_bus.publish(name, payload)

    def log(self, level: SkillLogLevel, msg: str, meta: Any = None) -> None:
        log_skill(level, self.skill.id, msg, meta)

    def _assert_active(self) -> None:
        if not self._is_active(self.skill.id):
            raise SkillDisabledError(f"Skill is disabled: {self.skill.id}")


class LegacySkillContext(SkillContext):
    """Context handed to legacy ``register_skill`` functions."""

    def __init__(self, *args: Any, agent_id: str, agent_version: str, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.agent = {"agent_id": agent_id, "version": agent_version}

    async def call(self, module: str, op: str, params: dict[str, Any] | None = None) -> Any:
        return await self.execute(module, op, params)


def log_skill(level: str, skill_id: str, msg: str, meta: Any = None) -> None:
    """Route a skill log line to the matching severity."""
    message = f"[skill:{skill_id}] {msg}"
    extra = {"skill_id": skill_id}
    if meta is not None:
        extra["meta"] = meta
    if level in ("debug", "info"):
        logger.info(message, **extra)
    elif level in ("warn", "warning"):
        logger.warning(message, **extra)
    else:
        logger.error(message, **extra)
