"""Skill runtime data models and schemas."""

from .context import Actor, ActorRole, CommandContext, KernelCommand
from .errors import (
    BadCommandError,
    BadConfigError,
    BadExportError,
    BadMetaError,
    BadModuleError,
    BadParamsError,
    ForbiddenError,
    InitError,
    ModuleConflictError,
    ModuleDisabledError,
    NoSuchOpError,
    NotAllowlistedError,
    PathEscapeError,
    PersistFailedError,
    ResolveFailedError,
    SkillDisabledError,
    SkillError,
    SkillErrorCode,
    UnknownModuleError,
)
from .skill import (
    AgentConfig,
    LoadedSkillRecord,
    NormalizedSkill,
    ResolvedSkillEntry,
    SettingsSchema,
    SettingsSchemaField,
    SkillCapabilities,
    SkillDescriptor,
    SkillKind,
    SkillSettingsMeta,
    SkillStatus,
)

__all__ = [
    "Actor",
    "ActorRole",
    "CommandContext",
    "KernelCommand",
    "SkillError",
    "SkillErrorCode",
    "BadCommandError",
    "BadConfigError",
    "BadExportError",
    "BadMetaError",
    "BadModuleError",
    "BadParamsError",
    "ForbiddenError",
    "InitError",
    "ModuleConflictError",
    "ModuleDisabledError",
    "NoSuchOpError",
    "NotAllowlistedError",
    "PathEscapeError",
    "PersistFailedError",
    "ResolveFailedError",
    "SkillDisabledError",
    "UnknownModuleError",
    "AgentConfig",
    "LoadedSkillRecord",
    "NormalizedSkill",
    "ResolvedSkillEntry",
    "SettingsSchema",
    "SettingsSchemaField",
    "SkillCapabilities",
    "SkillDescriptor",
    "SkillKind",
    "SkillSettingsMeta",
    "SkillStatus",
]
