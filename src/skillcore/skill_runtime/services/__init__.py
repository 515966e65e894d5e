"""Skill runtime services layer."""

from .capability_guard import CapabilityGuard, read_command_ctx
from .document_store import DocumentStore, JsonFileDocumentStore, MemoryDocumentStore
from .kernel import Kernel, SkillModule
from .settings_service import SettingsService
from .skill_context import LegacySkillContext, SkillContext
from .skill_loader import FileSkillLoader, SkillLoader, normalize_skill_exports
from .skill_manager import SkillManager
from .skill_resolver import SkillResolver

__all__ = [
    "CapabilityGuard",
    "read_command_ctx",
    "DocumentStore",
    "JsonFileDocumentStore",
    "MemoryDocumentStore",
    "Kernel",
    "SkillModule",
    "SettingsService",
    "SkillContext",
    "LegacySkillContext",
    "SkillLoader",
    "FileSkillLoader",
    "normalize_skill_exports",
    "SkillManager",
    "SkillResolver",
]
