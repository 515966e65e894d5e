"""Test doubles and command builders for skill runtime tests."""

from __future__ import annotations

from typing import Any

from skillcore.skill_runtime.models.context import Actor, ActorRole, CommandContext, KernelCommand
from skillcore.skill_runtime.models.errors import ResolveFailedError
from skillcore.skill_runtime.models.skill import ResolvedSkillEntry, SkillResolveConfig
from skillcore.skill_runtime.services.capability_guard import CTX_KEY
from skillcore.skill_runtime.services.document_store import MemoryDocumentStore

CAP_TOKEN = "kcap_" + "ab" * 32


def system_carrier(token: str = CAP_TOKEN, source: str = "test") -> dict[str, Any]:
    return CommandContext(
        capability_token=token,
        actor=Actor(role=ActorRole.SYSTEM, source=source),
    ).to_carrier()


def role_carrier(role: ActorRole) -> dict[str, Any]:
    return CommandContext(actor=Actor(role=role, user_id="u1")).to_carrier()


def command(module: str, op: str, carrier: dict[str, Any] | None = None, **params: Any) -> KernelCommand:
    if carrier is not None:
        params[CTX_KEY] = carrier
    return KernelCommand(module=module, op=op, params=params)


class FakeResolver:
    """Resolves every id it knows to a fake entry."""

    def __init__(self, known: set[str]) -> None:
        self.known = known
        self.calls: list[str] = []

    async def resolve(self, skill_id: str, config: SkillResolveConfig) -> ResolvedSkillEntry:
        self.calls.append(skill_id)
        if skill_id not in self.known:
            raise ResolveFailedError(f"Unable to resolve skill '{skill_id}'", details={"errors": []})
        return ResolvedSkillEntry(
            skill_id=skill_id,
            entry_path=f"/skills/{skill_id}/__init__.py",
            source=f"local:/skills/{skill_id}",
        )


class FakeLoader:
    """Returns pre-built module exports keyed by skill id."""

    def __init__(self, exports: dict[str, Any]) -> None:
        self.exports = exports
        self.loads: list[str] = []

    async def load(self, entry: ResolvedSkillEntry) -> Any:
        self.loads.append(entry.skill_id)
        return self.exports[entry.skill_id]


class FailingWriteStore(MemoryDocumentStore):
    """Memory store whose writes can be switched to fail."""

    def __init__(self, document: dict[str, Any] | None = None) -> None:
        super().__init__(document)
        self.fail_writes = False

    async def write(self, document: dict[str, Any]) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        await super().write(document)
