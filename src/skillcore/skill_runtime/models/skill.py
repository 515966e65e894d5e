"""Skill package, settings metadata and lifecycle models."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator

if TYPE_CHECKING:
    from ..services.skill_context import SkillContext

SkillHook = Callable[["SkillContext"], Awaitable[None] | None]

LEGACY_SKILL_VERSION = "0.0.0-legacy"


def normalize_string_list(value: Any) -> list[str]:
    """Trim, de-duplicate and drop empty entries, keeping first-seen order."""
    if not isinstance(value, (list, tuple)):
        return []
    out: list[str] = []
    seen: set[str] = set()
    for item in value:
        if not isinstance(item, str):
            continue
        trimmed = item.strip()
        if not trimmed or trimmed in seen:
            continue
        seen.add(trimmed)
        out.append(trimmed)
    return out


class SkillStatus(str, Enum):
    """Externally visible skill status."""

    LOADED = "loaded"
    DISABLED = "disabled"
    ERROR = "error"


class SkillKind(str, Enum):
    """Shape of the descriptor a skill package exported."""

    STANDARD = "standard"
    LEGACY = "legacy"


class SkillCapabilities(BaseModel):
    """Privileges a skill declares."""

    kernel_ops: list[str] = Field(
        default_factory=list,
        description="'module.op' strings the skill may call with the capability token",
    )
    channels: list[str] = Field(
        default_factory=list,
        description="Channels the skill connects",
    )
    network: bool | None = Field(
        default=None,
        description="Whether the skill needs network access",
    )

    @field_validator("kernel_ops", "channels", mode="before")
    @classmethod
    def normalize_lists(cls, v: Any) -> list[str]:
        """Normalize declared string lists."""
        return normalize_string_list(v)

    @field_validator("network", mode="before")
    @classmethod
    def normalize_network(cls, v: Any) -> bool | None:
        """Ignore non-boolean network flags."""
        return v if isinstance(v, bool) else None


SettingsFieldType = Literal["string", "number", "boolean", "select", "string_list"]


class SettingsSchemaOption(BaseModel):
    """Selectable option of a settings field."""

    label: str = Field(min_length=1, description="Option label")
    value: Any = Field(default=None, description="Option value")

    @field_validator("label")
    @classmethod
    def strip_label(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("label must be a non-empty string")
        return v


class SettingsSchemaField(BaseModel):
    """UI description of one settings field."""

    key: str = Field(description="Dotted settings path")
    label: str = Field(description="Field label")
    type: SettingsFieldType = Field(description="Field type")
    help: str | None = Field(default=None, description="Help text")
    secret: bool | None = Field(default=None, description="Whether value is secret")
    options: list[SettingsSchemaOption] | None = Field(
        default=None,
        description="Options for select fields",
    )
    placeholder: str | None = Field(default=None, description="Input placeholder")

    @field_validator("key", "label")
    @classmethod
    def non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must be a non-empty string")
        return v

    @field_validator("options")
    @classmethod
    def drop_empty_options(
        cls, v: list[SettingsSchemaOption] | None
    ) -> list[SettingsSchemaOption] | None:
        return v or None


class SettingsSchema(BaseModel):
    """UI schema for a skill's settings."""

    title: str | None = Field(default=None, description="Form title")
    fields: list[SettingsSchemaField] = Field(description="Form fields")


class SkillSettingsMeta(BaseModel):
    """Settings metadata declared by a skill."""

    defaults: dict[str, Any] | None = Field(
        default=None,
        description="Default settings written on first enable",
    )
    sensitive_paths: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("sensitive_paths", "sensitive"),
        description="Dotted paths masked on read and protected on write",
    )
    settings_schema: SettingsSchema | None = Field(
        default=None,
        validation_alias=AliasChoices("settings_schema", "schema"),
        serialization_alias="schema",
        description="Optional UI schema",
    )

    @field_validator("sensitive_paths", mode="before")
    @classmethod
    def normalize_paths(cls, v: Any) -> list[str]:
        return normalize_string_list(v)


class LoadedSkillRecord(BaseModel):
    """Externally visible projection of a skill's state."""

    id: str = Field(description="Skill identifier")
    version: str | None = Field(default=None, description="Loaded version")
    enabled: bool = Field(default=False, description="Whether skill is enabled")
    status: SkillStatus = Field(default=SkillStatus.DISABLED, description="Status")
    error: str | None = Field(default=None, description="Last recorded error")
    source: str | None = Field(default=None, description="Resolved source")
    capabilities: SkillCapabilities | None = Field(
        default=None,
        description="Declared capabilities",
    )
    modules_registered: list[str] = Field(
        default_factory=list,
        description="Module names owned by the skill",
    )

    def to_public(self) -> dict[str, Any]:
        """Serialize for command responses."""
        return self.model_dump(mode="json", exclude_none=True)


class SkillResolveConfig(BaseModel):
    """Where skill packages may be resolved from."""

    package_manager: bool = Field(
        default=True,
        description="Try importable installed packages first",
    )
    local_paths: list[str] = Field(
        default_factory=list,
        description="Local roots, relative to the repository root",
    )


class SkillsConfig(BaseModel):
    """The 'skills' section of the agent config document."""

    allow: list[str] = Field(default_factory=list, description="Allow-listed ids")
    enabled: list[str] = Field(default_factory=list, description="Enabled ids")
    resolve: SkillResolveConfig = Field(default_factory=SkillResolveConfig)


class AgentConfig(BaseModel):
    """Agent config document (skills section only)."""

    skills: SkillsConfig = Field(default_factory=SkillsConfig)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> AgentConfig:
        """Normalize a raw agent config document.

        Enabled ids not present in the allow-list are dropped. The
        package-manager flag defaults to on when absent and is otherwise only
        enabled by a literal ``True``.
        """
        raw_skills = document.get("skills")
        if not isinstance(raw_skills, dict):
            raw_skills = {}
        allow = normalize_string_list(raw_skills.get("allow"))
        enabled = [
            skill_id
            for skill_id in normalize_string_list(raw_skills.get("enabled"))
            if skill_id in allow
        ]
        raw_resolve = raw_skills.get("resolve")
        if not isinstance(raw_resolve, dict):
            raw_resolve = {}
        package_manager = raw_resolve.get("package_manager")
        return cls(
            skills=SkillsConfig(
                allow=allow,
                enabled=enabled,
                resolve=SkillResolveConfig(
                    package_manager=True if package_manager is None else package_manager is True,
                    local_paths=normalize_string_list(raw_resolve.get("local_paths")),
                ),
            )
        )


class ResolvedSkillEntry(BaseModel):
    """Outcome of trusted resolution."""

    skill_id: str = Field(description="Requested skill id")
    entry_path: str = Field(description="Absolute path of the entry module file")
    source: str = Field(description="'package_manager' or 'local:<dir>'")


@dataclass
class SkillDescriptor:
    """Descriptor a skill package exports as its module attribute ``skill``."""

    id: str
    version: str
    on_enable: SkillHook
    on_disable: SkillHook | None = None
    name: str | None = None
    description: str | None = None
    settings: dict[str, Any] | SkillSettingsMeta | None = None
    capabilities: dict[str, Any] | SkillCapabilities | None = None


@dataclass
class NormalizedSkill:
    """Validated descriptor in the single shape the manager consumes."""

    kind: SkillKind
    id: str
    version: str
    capabilities: SkillCapabilities
    on_enable: SkillHook
    on_disable: SkillHook | None = None
    settings_meta: SkillSettingsMeta | None = None
    name: str | None = None
    description: str | None = None


@dataclass
class SkillRuntimeRecord:
    """Runtime state retained for a skill after its first successful load."""

    id: str
    version: str
    kind: SkillKind
    capabilities: SkillCapabilities
    source: str
    context: SkillContext
    on_disable: SkillHook | None = None
