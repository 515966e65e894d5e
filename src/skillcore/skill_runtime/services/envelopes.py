"""Transport boundary: command shape checks and server-side context injection."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..models.context import CommandContext, KernelCommand
from ..models.errors import BadCommandError
from .capability_guard import CTX_KEY
from .params import has_callable


def assert_command_shape(raw: Any) -> KernelCommand:
    """
    Validate a transport-originated command.

    Raises:
        BadCommandError: If module or op is missing, params is not an object,
            or the command holds a function anywhere inside it
    """
    if not isinstance(raw, Mapping):
        raise BadCommandError("Command must be an object")
    for field in ("module", "op"):
        value = raw.get(field)
        if not isinstance(value, str) or not value.strip():
            raise BadCommandError(f"Invalid {field}")
    params = raw.get("params")
    if params is not None and not isinstance(params, Mapping):
        raise BadCommandError("Command params must be an object when provided")
    if has_callable(raw):
        raise BadCommandError("Command must be JSON-safe (functions are not allowed)")

    ctx = raw.get("ctx")
    return KernelCommand(
        module=raw["module"].strip(),
        op=raw["op"].strip(),
        params=dict(params or {}),
        ctx=dict(ctx) if isinstance(ctx, Mapping) else None,
    )


def inject_server_ctx(command: KernelCommand, server_ctx: CommandContext) -> KernelCommand:
    """
    Replace both context carriers of ``command`` with ``server_ctx``.

    Transport input is untrusted: any actor or capability token the client
    supplied is dropped.
    """
    carrier = server_ctx.to_carrier()
    params = dict(command.params)
    params[CTX_KEY] = dict(carrier)
    return command.model_copy(update={"params": params, "ctx": dict(carrier)})
