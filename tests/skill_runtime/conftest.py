"""Shared fixtures for skill runtime tests."""

from __future__ import annotations

from typing import Any

import pytest

from skillcore.skill_runtime.services.capability_guard import CapabilityGuard
from skillcore.skill_runtime.services.document_store import MemoryDocumentStore
from skillcore.skill_runtime.services.kernel import Kernel
from skillcore.skill_runtime.services.settings_service import SettingsService
from skillcore.skill_runtime.services.skill_manager import SkillManager
from tests.skill_runtime.helpers import CAP_TOKEN, FailingWriteStore, FakeLoader, FakeResolver


@pytest.fixture
def guard() -> CapabilityGuard:
    guard = CapabilityGuard()
    guard.initialize(CAP_TOKEN)
    return guard


@pytest.fixture
def kernel() -> Kernel:
    return Kernel()


@pytest.fixture
def settings_store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def settings_service(kernel, guard, settings_store) -> SettingsService:
    service = SettingsService(store=settings_store, guard=guard, event_bus=kernel)
    kernel.load_module(service)
    return service


@pytest.fixture
def make_manager(kernel, guard, settings_service):
    """Build a skill manager over fake resolution and loading."""

    def _make(
        exports: dict[str, Any],
        config: dict[str, Any] | None = None,
        config_store: MemoryDocumentStore | None = None,
    ) -> SkillManager:
        store = config_store if config_store is not None else FailingWriteStore(config or {})
        manager = SkillManager(
            agent_id="agent-test",
            version="9.9.9",
            config_store=store,
            resolver=FakeResolver(set(exports)),
            loader=FakeLoader(exports),
            guard=guard,
            dispatcher=kernel,
            registry=kernel,
            event_bus=kernel,
            capability_token=CAP_TOKEN,
        )
        kernel.load_module(manager)
        settings_service.set_skill_meta_resolver(manager.resolve_skill_settings_meta)
        return manager

    return _make
