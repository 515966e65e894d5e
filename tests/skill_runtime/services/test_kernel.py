"""Tests for the in-process kernel."""

import asyncio

import pytest

from skillcore.skill_runtime.models.context import KernelCommand
from skillcore.skill_runtime.models.errors import BadModuleError, NoSuchOpError, UnknownModuleError
from skillcore.skill_runtime.services.kernel import Kernel, SkillModule


class CounterModule(SkillModule):
    name = "counter"

    def __init__(self):
        self.value = 0

    async def op_add(self, command):
        self.value += command.params.get("by", 1)
        return {"value": self.value}

    def op_peek(self, command):
        return {"value": self.value}


class TestModules:
    """Test module registration and dispatch."""

    async def test_execute_async_and_sync_ops(self):
        """Test both coroutine and plain operations are dispatched."""
        kernel = Kernel()
        kernel.load_module(CounterModule())
        assert await kernel.execute({"module": "counter", "op": "add", "params": {"by": 2}}) == {"value": 2}
        assert await kernel.execute(KernelCommand(module="counter", op="peek")) == {"value": 2}

    async def test_unknown_module(self):
        """Test dispatching to a missing module fails."""
        with pytest.raises(UnknownModuleError):
            await Kernel().execute(KernelCommand(module="nope", op="x"))

    async def test_unknown_op(self):
        """Test dispatching to a missing operation fails."""
        kernel = Kernel()
        kernel.load_module(CounterModule())
        with pytest.raises(NoSuchOpError):
            await kernel.execute(KernelCommand(module="counter", op="reset"))

    def test_unnamed_module_rejected(self):
        """Test modules must declare a name."""
        with pytest.raises(BadModuleError):
            Kernel().load_module(SkillModule())

    def test_list_ops(self):
        """Test operations are discovered from op_ methods."""
        assert CounterModule().list_ops() == ["add", "peek"]
        assert CounterModule().get_op("__class__") is None


class TestEvents:
    """Test the fire-and-forget event bus."""

    async def test_publish_sync_and_async_handlers(self):
        """Test both handler kinds receive the payload."""
        kernel = Kernel()
        received = []

        async def async_handler(name, payload):
            received.append(("async", payload))

        kernel.subscribe("evt", lambda name, payload: received.append(("sync", payload)))
        kernel.subscribe("evt", async_handler)
        kernel.publish("evt", {"n": 1})
        await asyncio.sleep(0)

        assert ("sync", {"n": 1}) in received
        assert ("async", {"n": 1}) in received

    async def test_failing_handler_isolated(self):
        """Test one failing handler does not stop the others."""
        kernel = Kernel()
        received = []

        def broken(name, payload):
            raise RuntimeError("boom")

        kernel.subscribe("evt", broken)
        kernel.subscribe("evt", lambda name, payload: received.append(payload))
        kernel.publish("evt", 1)
        assert received == [1]

    def test_unsubscribe(self):
        """Test removed handlers are not called."""
        kernel = Kernel()
        received = []

        def handler(name, payload):
            received.append(payload)

        kernel.subscribe("evt", handler)
        kernel.unsubscribe("evt", handler)
        kernel.publish("evt", 1)
        assert received == []
