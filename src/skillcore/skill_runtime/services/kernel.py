"""In-process kernel: module registry, command dispatcher and event bus.

Modules subclass ``SkillModule`` and expose operations as methods named
``op_<name>`` that receive the ``KernelCommand``. The skill runtime only
depends on the three protocols below; ``Kernel`` is the default
implementation wiring them together in one process.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Callable, Mapping
from typing import Any, ClassVar, Protocol

import structlog

from ..models.context import KernelCommand
from ..models.errors import BadModuleError, NoSuchOpError, UnknownModuleError

logger = structlog.get_logger()

OP_PREFIX = "op_"

EventHandler = Callable[[str, Any], Any]


class SkillModule:
    """Base class for modules addressable through the kernel."""

    name: ClassVar[str] = ""

    def get_op(self, op: str) -> Callable[[KernelCommand], Any] | None:
        """Return the handler for ``op`` or None."""
        if not isinstance(op, str) or not op.isidentifier():
            return None
        handler = getattr(self, f"{OP_PREFIX}{op}", None)
        return handler if callable(handler) else None

    def list_ops(self) -> list[str]:
        return sorted(
            attr[len(OP_PREFIX):]
            for attr in dir(self)
            if attr.startswith(OP_PREFIX) and callable(getattr(self, attr))
        )


def module_name_of(instance: Any) -> str | None:
    """Read the declared name of a module instance."""
    name = getattr(instance, "name", None)
    if isinstance(name, str) and name.strip():
        return name.strip()
    return None


class CommandDispatcher(Protocol):
    async def execute(self, command: KernelCommand | Mapping[str, Any]) -> Any: ...


class ModuleRegistry(Protocol):
    def get_module(self, name: str) -> SkillModule | None: ...

    def load_module(self, module: SkillModule) -> None: ...


class EventBus(Protocol):
    def publish(self, event_name: str, payload: Any) -> None: ...


def to_command(command: KernelCommand | Mapping[str, Any]) -> KernelCommand:
    if isinstance(command, KernelCommand):
        return command
    return KernelCommand.model_validate(dict(command))


class Kernel:
    """Module registry, dispatcher and fire-and-forget event bus."""

    def __init__(self) -> None:
        self._modules: dict[str, SkillModule] = {}
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)
        self._pending: set[asyncio.Task[Any]] = set()
        self.logger = logger.bind(component="kernel")

    # Module registry

    def get_module(self, name: str) -> SkillModule | None:
        return self._modules.get(name)

    def load_module(self, module: SkillModule) -> None:
        """
        Register a module under its declared name.

        Raises:
            BadModuleError: If the instance has no usable name
        """
        name = module_name_of(module)
        if name is None:
            raise BadModuleError("load_module expects a module instance with a name")
        if name in self._modules and self._modules[name] is not module:
            self.logger.warning("module_replaced", module=name)
        self._modules[name] = module
        self.logger.info("module_loaded", module=name)

    # Dispatcher

    async def execute(self, command: KernelCommand | Mapping[str, Any]) -> Any:
        """
        Dispatch a command to its module operation.

        Raises:
            UnknownModuleError: If no module is registered under the name
            NoSuchOpError: If the module has no such operation
        """
        cmd = to_command(command)
        module = self._modules.get(cmd.module)
        if module is None:
            raise UnknownModuleError(f"Module not found: {cmd.module}")
        handler = module.get_op(cmd.op)
        if handler is None:
            raise NoSuchOpError(
                f"No such operation '{cmd.op}' on module '{cmd.module}'",
                details={"module": cmd.module, "op": cmd.op},
            )
        result = handler(cmd)
        if inspect.isawaitable(result):
            result = await result
        return result

    # Event bus

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        self._subscribers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event_name: str, payload: Any) -> None:
        """Deliver an event to subscribers without waiting for them."""
        for handler in list(self._subscribers.get(event_name, [])):
            try:
                result = handler(event_name, payload)
            except Exception as e:
                self.logger.error("event_handler_failed", event_name=event_name, error=str(e))
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._on_handler_done)

    def _on_handler_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error("event_handler_failed", error=str(task.exception()))
