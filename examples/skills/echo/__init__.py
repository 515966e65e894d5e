"""Echo skill: registers an ``echo`` module and optionally an ``echo`` channel."""

from __future__ import annotations

from typing import Any

from skillcore.skill_runtime.models import BadParamsError, KernelCommand, SkillDescriptor, SkillError
from skillcore.skill_runtime.services import SkillContext, SkillModule


class EchoDisabledError(SkillError):
    """Raised when the echo module is called while its skill is disabled."""


def _text(params: dict[str, Any], field_name: str) -> str:
    value = params.get(field_name)
    if not isinstance(value, str) or not value.strip():
        raise BadParamsError(f"Invalid {field_name}")
    return value.strip()


class EchoModule(SkillModule):
    name = "echo"

    def __init__(self, ctx: SkillContext) -> None:
        self._ctx = ctx
        self._enabled = True
        self._message_seq = 0

    async def op_enable(self, command: KernelCommand) -> dict[str, Any]:
        self._enabled = True
        return {"ok": True}

    async def op_disable(self, command: KernelCommand) -> dict[str, Any]:
        self._enabled = False
        return {"ok": True}

    async def op_say(self, command: KernelCommand) -> dict[str, Any]:
        self._assert_enabled()
        text = _text(command.params, "text")
        settings = await self._ctx.execute("settings", "get_skill", {"skill_id": self._ctx.skill.id})
        prefix = settings["result"]["settings"].get("prefix", "")
        return {"text": f"{prefix}{text}"}

    async def op_send(self, command: KernelCommand) -> dict[str, Any]:
        self._assert_enabled()
        text = _text(command.params, "text")
        thread_id = _text(command.params, "channel_thread_id")
        self._message_seq += 1
        return {
            "accepted": True,
            "channel_thread_id": thread_id,
            "text": text,
            "channel_message_id": f"echo_out_{self._message_seq:06d}",
        }

    def _assert_enabled(self) -> None:
        if not self._enabled:
            raise EchoDisabledError("echo module is disabled")


async def on_enable(ctx: SkillContext) -> None:
    ctx.register_module(EchoModule(ctx))
    ctx.log("info", "echo module registered", {"skill": ctx.skill.id})
    try:
        await ctx.execute("channels", "register", {"channel": "echo", "connector_module": "echo"})
        await ctx.execute("channels", "configure", {"channel": "echo", "config": {"mode": "echo"}})
    except SkillError as e:
        ctx.log("warn", "channels module unavailable, skipping channel setup", {"error": e.message})


async def on_disable(ctx: SkillContext) -> None:
    ctx.log("info", "echo skill disabled", {"skill": ctx.skill.id})


skill = SkillDescriptor(
    id="echo",
    version="0.1.0",
    name="Echo Skill",
    description="Minimal local example skill for validating loading and capability gates.",
    capabilities={
        "kernel_ops": ["settings.get_skill", "channels.configure"],
        "channels": ["echo"],
        "network": False,
    },
    settings={
        "defaults": {"prefix": "", "api_key": ""},
        "sensitive": ["api_key"],
        "schema": {
            "title": "Echo",
            "fields": [
                {"key": "prefix", "label": "Reply prefix", "type": "string"},
                {"key": "api_key", "label": "API key", "type": "string", "secret": True},
            ],
        },
    },
    on_enable=on_enable,
    on_disable=on_disable,
)
