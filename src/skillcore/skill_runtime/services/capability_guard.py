"""Capability guard: process capability token and actor-role checks."""

from __future__ import annotations

import hmac
from collections.abc import Mapping
from typing import Any

import structlog

from ..models.context import Actor, ActorRole, CommandContext, KernelCommand
from ..models.errors import ForbiddenError, InitError

logger = structlog.get_logger()

DEFAULT_MIN_SECRET_LENGTH = 16
CTX_KEY = "_ctx"


class CapabilityGuard:
    """Holds the process capability token and enforces access checks.

    The token is installed once at startup and compared in constant time.
    """

    def __init__(self, min_secret_length: int = DEFAULT_MIN_SECRET_LENGTH) -> None:
        self._min_secret_length = min_secret_length
        self._secret = ""

    @property
    def initialized(self) -> bool:
        return bool(self._secret)

    def initialize(self, secret: str) -> None:
        """
        Install the process-wide capability token.

        Args:
            secret: Shared secret generated by the runtime at startup

        Raises:
            InitError: If the secret is not a string or is too short
        """
        if not isinstance(secret, str) or len(secret.strip()) < self._min_secret_length:
            raise InitError("Invalid kernel capability secret")
        self._secret = secret.strip()
        logger.info("capability_guard_initialized")

    def require_capability(self, ctx: CommandContext) -> None:
        """Fail unless ``ctx`` carries the process capability token."""
        if not self._secret:
            raise InitError("Kernel cap secret is not initialized")
        token = ctx.capability_token
        if not isinstance(token, str) or not token:
            raise ForbiddenError("Missing kernel capability")
        if not hmac.compare_digest(token.encode("utf-8"), self._secret.encode("utf-8")):
            raise ForbiddenError("Invalid kernel capability")

    def require_role(self, ctx: CommandContext, min_role: ActorRole) -> None:
        """Fail unless the actor's role ranks at least ``min_role``."""
        role = ctx.actor.role if ctx.actor is not None else None
        if role is None or role.rank < min_role.rank:
            raise ForbiddenError(f"Missing required actor role: {min_role.value}")

    def require_capability_or_role(self, ctx: CommandContext, min_role: ActorRole) -> None:
        """Accept the capability token, otherwise fall back to the role check."""
        try:
            self.require_capability(ctx)
        except (ForbiddenError, InitError):
            self.require_role(ctx, min_role)


def _ctx_fields(value: Any) -> dict[str, Any]:
    """Pick well-typed context fields from a raw carrier."""
    if not isinstance(value, Mapping):
        return {}
    fields: dict[str, Any] = {}
    for key in ("request_id", "session_id", "capability_token"):
        if isinstance(value.get(key), str):
            fields[key] = value[key]
    raw_actor = value.get("actor")
    if isinstance(raw_actor, Mapping):
        actor: dict[str, Any] = {}
        for key in ("user_id", "channel", "source"):
            if isinstance(raw_actor.get(key), str):
                actor[key] = raw_actor[key]
        role = raw_actor.get("role")
        if isinstance(role, ActorRole):
            actor["role"] = role
        elif isinstance(role, str) and role in ActorRole._value2member_map_:
            actor["role"] = ActorRole(role)
        fields["actor"] = Actor(**actor)
    return fields


def read_command_ctx(command: KernelCommand) -> CommandContext:
    """
    Merge the root-level and parameter-level context carriers.

    Root fields populate first and parameter-level fields override them. An
    actor in the parameter-level carrier takes precedence over a root actor.
    """
    root = _ctx_fields(command.ctx)
    params = _ctx_fields(command.params.get(CTX_KEY))
    merged = {**root, **params}
    actor = params.get("actor") or root.get("actor")
    if actor is not None:
        merged["actor"] = actor
    return CommandContext(**merged)

