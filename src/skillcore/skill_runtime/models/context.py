"""Command and actor context models."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ActorRole(str, Enum):
    """Actor roles in ascending order of privilege."""

    CUSTOMER = "customer"
    ADMIN = "admin"
    OWNER = "owner"
    SYSTEM = "system"

    @property
    def rank(self) -> int:
        """Numeric rank used for hierarchy comparisons."""
        return ROLE_RANK[self]


ROLE_RANK: dict[ActorRole, int] = {
    ActorRole.CUSTOMER: 1,
    ActorRole.ADMIN: 2,
    ActorRole.OWNER: 3,
    ActorRole.SYSTEM: 4,
}


class Actor(BaseModel):
    """Identity attached to a command by the runtime."""

    user_id: str | None = Field(default=None, description="Acting user identifier")
    role: ActorRole | None = Field(default=None, description="Actor role")
    channel: str | None = Field(default=None, description="Originating channel")
    source: str | None = Field(
        default=None,
        description="Component that issued the command (e.g. 'skill:echo')",
    )


class CommandContext(BaseModel):
    """Context carried alongside a command.

    Only context injected by the runtime itself may carry a capability token
    or actor identity; transport-supplied values are replaced at the boundary.
    """

    request_id: str | None = Field(default=None, description="Per-request id")
    session_id: str | None = Field(default=None, description="Transport session id")
    capability_token: str | None = Field(
        default=None,
        description="Process capability token proving an in-process caller",
    )
    actor: Actor | None = Field(default=None, description="Acting identity")

    def to_carrier(self) -> dict[str, Any]:
        """Serialize to the mapping form embedded into commands."""
        return self.model_dump(mode="json", exclude_none=True)


class KernelCommand(BaseModel):
    """A command routed through the kernel dispatcher."""

    module: str = Field(description="Target module name")
    op: str = Field(description="Operation name")
    params: dict[str, Any] = Field(
        default_factory=dict,
        description="Operation parameters (may hold a '_ctx' carrier)",
    )
    ctx: dict[str, Any] | None = Field(
        default=None,
        description="Root-level context carrier",
    )
