"""
Skill runtime bootstrap

Generates the process capability token, wires the kernel with the settings
and skills modules, boots them, and authorizes commands arriving from a
transport.
"""

from __future__ import annotations

import secrets
import uuid
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog

from .config.settings import Settings, get_settings
from .models.context import Actor, ActorRole, CommandContext, KernelCommand
from .services.capability_guard import CTX_KEY, CapabilityGuard
from .services.document_store import DocumentStore, JsonFileDocumentStore
from .services.envelopes import assert_command_shape, inject_server_ctx
from .services.kernel import Kernel
from .services.settings_service import SETTINGS_MODULE_NAME, SettingsService
from .services.skill_loader import FileSkillLoader, SkillLoader
from .services.skill_manager import SKILL_MANAGER_MODULE_NAME, SkillManager
from .services.skill_resolver import SkillResolver

logger = structlog.get_logger()

CAPABILITY_PREFIX = "kcap_"


def generate_capability_token() -> str:
    """New process capability token: prefix plus 32 random bytes as hex."""
    return f"{CAPABILITY_PREFIX}{secrets.token_hex(32)}"


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:24]}"


class SkillRuntime:
    """Process-level owner of the kernel, guard and skill subsystem."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        kernel: Kernel | None = None,
        config_store: DocumentStore | None = None,
        settings_store: DocumentStore | None = None,
        loader: SkillLoader | None = None,
        guard: CapabilityGuard | None = None,
    ) -> None:
        """
        Initialize runtime.

        Args:
            settings: Runtime settings (defaults to ``get_settings()``)
            kernel: Kernel instance (a fresh one by default)
            config_store: Storage of the agent config document
            settings_store: Storage of the settings document
            loader: Skill code loader
            guard: Capability guard (a fresh one by default)
        """
        self.settings = settings or get_settings()
        self.kernel = kernel or Kernel()
        self.guard = guard or CapabilityGuard(self.settings.kernel_cap_min_length)
        self._capability_token = generate_capability_token()
        self._started = False

        self.settings_service = SettingsService(
            store=settings_store or JsonFileDocumentStore(self.settings.settings_document_path),
            guard=self.guard,
            event_bus=self.kernel,
        )
        self.skill_manager = SkillManager(
            agent_id=self.settings.agent_id,
            version=self.settings.runtime_version,
            config_store=config_store or JsonFileDocumentStore(self.settings.skills_config_path),
            resolver=SkillResolver(Path(self.settings.skills_repo_root)),
            loader=loader or FileSkillLoader(),
            guard=self.guard,
            dispatcher=self.kernel,
            registry=self.kernel,
            event_bus=self.kernel,
            capability_token=self._capability_token,
        )
        self.settings_service.set_skill_meta_resolver(self.skill_manager.resolve_skill_settings_meta)

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Install the capability token, load modules and boot them."""
        if self._started:
            return
        self.guard.initialize(self._capability_token)
        logger.info("kernel_capability_initialized")

        self.kernel.load_module(self.settings_service)
        self.kernel.load_module(self.skill_manager)

        await self.execute_system(SETTINGS_MODULE_NAME, "init_on_boot", source="runtime:start")
        logger.info("settings_init_on_boot_complete")
        await self.execute_system(SKILL_MANAGER_MODULE_NAME, "reload_enabled", source="runtime:start")

        self._started = True
        logger.info(
            "runtime_started",
            agent_id=self.settings.agent_id,
            version=self.settings.runtime_version,
            skills_config_path=str(self.settings.skills_config_path),
        )

    async def execute_system(
        self,
        module: str,
        op: str,
        params: dict[str, Any] | None = None,
        *,
        source: str = "runtime",
    ) -> Any:
        """Execute a command as the runtime itself, holding the capability token."""
        ctx = CommandContext(
            request_id=new_request_id(),
            capability_token=self._capability_token,
            actor=Actor(role=ActorRole.SYSTEM, source=source),
        )
        call_params = dict(params or {})
        call_params[CTX_KEY] = ctx.to_carrier()
        return await self.kernel.execute(KernelCommand(module=module, op=op, params=call_params))

    async def handle_transport_command(
        self,
        raw_command: Mapping[str, Any],
        *,
        session_id: str | None = None,
        actor: Actor | None = None,
    ) -> Any:
        """
        Authorize and execute a command received from a transport.

        Client-supplied context is replaced with a server-built one carrying
        only the session id and the actor the transport authenticated. The
        capability token is never attached.

        Raises:
            BadCommandError: If the command is malformed
            ModuleDisabledError: If the target module belongs to a disabled skill
        """
        command = assert_command_shape(raw_command)
        server_ctx = CommandContext(
            request_id=new_request_id(),
            session_id=session_id,
            actor=actor,
        )
        command = inject_server_ctx(command, server_ctx)
        self.skill_manager.assert_module_command_allowed(command.module)
        logger.debug("transport_command_authorized", module=command.module, op=command.op)
        return await self.kernel.execute(command)
