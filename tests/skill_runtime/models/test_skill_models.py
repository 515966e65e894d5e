"""Tests for skill runtime data models."""

import pytest
from pydantic import ValidationError

from skillcore.skill_runtime.models.context import ActorRole, CommandContext, Actor
from skillcore.skill_runtime.models.errors import (
    BadConfigError,
    NotAllowlistedError,
    PathEscapeError,
    SkillErrorCode,
    error_message,
)
from skillcore.skill_runtime.models.skill import (
    AgentConfig,
    LoadedSkillRecord,
    SkillCapabilities,
    SkillSettingsMeta,
    SkillStatus,
    normalize_string_list,
)


class TestErrors:
    """Test the error taxonomy."""

    def test_error_codes(self):
        """Test each error class carries its stable code."""
        assert NotAllowlistedError("x").code == SkillErrorCode.NOT_ALLOWLISTED
        assert BadConfigError("x").code.value == "E_SKILLS_BAD_CONFIG"

    def test_path_escape_is_bad_config(self):
        """Test path escapes are reported as configuration errors."""
        error = PathEscapeError("escapes")
        assert isinstance(error, BadConfigError)
        assert error.code == SkillErrorCode.BAD_CONFIG

    def test_to_dict(self):
        """Test serialization includes details only when present."""
        assert NotAllowlistedError("nope").to_dict() == {
            "code": "E_SKILLS_NOT_ALLOWLISTED",
            "message": "nope",
        }
        data = BadConfigError("bad", details={"path": "/x"}).to_dict()
        assert data["details"] == {"path": "/x"}

    def test_error_message(self):
        """Test user-facing message extraction."""
        assert error_message(NotAllowlistedError("  padded  ")) == "padded"
        assert error_message(RuntimeError("boom")) == "boom"
        assert error_message(RuntimeError()) == "RuntimeError"


class TestContextModels:
    """Test actor and command context models."""

    def test_role_rank_order(self):
        """Test roles rank customer < admin < owner < system."""
        ranks = [role.rank for role in (ActorRole.CUSTOMER, ActorRole.ADMIN, ActorRole.OWNER, ActorRole.SYSTEM)]
        assert ranks == [1, 2, 3, 4]

    def test_carrier_drops_unset_fields(self):
        """Test the carrier form omits missing fields."""
        ctx = CommandContext(actor=Actor(role=ActorRole.SYSTEM, source="skill:echo"))
        assert ctx.to_carrier() == {"actor": {"role": "system", "source": "skill:echo"}}


class TestAgentConfig:
    """Test agent config document normalization."""

    def test_empty_document(self):
        """Test defaults for a missing skills section."""
        config = AgentConfig.from_document({})
        assert config.skills.allow == []
        assert config.skills.enabled == []
        assert config.skills.resolve.package_manager is True
        assert config.skills.resolve.local_paths == []

    def test_enabled_filtered_to_allow(self):
        """Test enabled ids outside the allow-list are dropped."""
        config = AgentConfig.from_document(
            {"skills": {"allow": [" a ", "b", "a", ""], "enabled": ["b", "c", 3]}}
        )
        assert config.skills.allow == ["a", "b"]
        assert config.skills.enabled == ["b"]

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(None, True), (True, True), (False, False), ("yes", False), (1, False)],
    )
    def test_package_manager_flag(self, raw, expected):
        """Test only a literal True enables package-manager resolution once set."""
        resolve = {} if raw is None else {"package_manager": raw}
        config = AgentConfig.from_document({"skills": {"resolve": resolve}})
        assert config.skills.resolve.package_manager is expected


class TestSkillModels:
    """Test skill descriptor related models."""

    def test_normalize_string_list(self):
        """Test trimming, de-duplication and type filtering."""
        assert normalize_string_list([" x", "x", "", None, "y "]) == ["x", "y"]
        assert normalize_string_list("x") == []

    def test_capabilities_normalized(self):
        """Test capability lists and network flag normalization."""
        caps = SkillCapabilities.model_validate(
            {"kernel_ops": ["settings.get", " settings.get "], "network": "yes"}
        )
        assert caps.kernel_ops == ["settings.get"]
        assert caps.channels == []
        assert caps.network is None

    def test_settings_meta_aliases(self):
        """Test 'sensitive' and 'schema' keys are accepted."""
        meta = SkillSettingsMeta.model_validate(
            {
                "defaults": {"token": ""},
                "sensitive": ["token"],
                "schema": {"fields": [{"key": "token", "label": "Token", "type": "string"}]},
            }
        )
        assert meta.sensitive_paths == ["token"]
        assert meta.settings_schema is not None
        assert meta.settings_schema.fields[0].key == "token"

    def test_settings_schema_rejects_bad_type(self):
        """Test unknown field types are rejected."""
        with pytest.raises(ValidationError):
            SkillSettingsMeta.model_validate(
                {"schema": {"fields": [{"key": "k", "label": "K", "type": "color"}]}}
            )

    def test_loaded_record_public_form(self):
        """Test the public projection omits unset optional fields."""
        record = LoadedSkillRecord(id="echo")
        assert record.to_public() == {
            "id": "echo",
            "enabled": False,
            "status": SkillStatus.DISABLED.value,
            "modules_registered": [],
        }
