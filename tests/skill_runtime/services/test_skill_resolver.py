"""Tests for trusted skill resolution."""

import json
from unittest.mock import patch

import pytest

from skillcore.skill_runtime.models.errors import BadConfigError, ResolveFailedError
from skillcore.skill_runtime.models.skill import SkillResolveConfig
from skillcore.skill_runtime.services import skill_resolver
from skillcore.skill_runtime.services.skill_resolver import (
    SkillResolver,
    candidate_dirs,
    ensure_safe_skill_id,
    is_path_within,
    resolve_local_root,
    resolve_package_entry,
)


def write_package(directory, descriptor, entry="__init__.py", body="skill = None\n"):
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "skill.json").write_text(json.dumps(descriptor), encoding="utf-8")
    if entry:
        entry_path = directory / entry
        entry_path.parent.mkdir(parents=True, exist_ok=True)
        entry_path.write_text(body, encoding="utf-8")


def local_only(*paths):
    return SkillResolveConfig(package_manager=False, local_paths=list(paths))


class TestContainment:
    """Test the pure path-containment checks."""

    def test_is_path_within(self, tmp_path):
        """Test prefix siblings are not considered inside."""
        root = tmp_path / "repo"
        assert is_path_within(root, root)
        assert is_path_within(root / "a" / "b", root)
        assert not is_path_within(tmp_path / "repo-other", root)
        assert not is_path_within(root / ".." / "x", root)

    def test_local_root_escape(self, tmp_path):
        """Test local paths may not leave the repository root."""
        with pytest.raises(BadConfigError, match="escapes repo root"):
            resolve_local_root(tmp_path, "../elsewhere")
        with pytest.raises(BadConfigError):
            resolve_local_root(tmp_path / "repo", str(tmp_path))

    def test_local_root_relative_and_absolute(self, tmp_path):
        """Test relative roots are anchored at the repository root."""
        assert resolve_local_root(tmp_path, "skills") == str(tmp_path / "skills")
        assert resolve_local_root(tmp_path, str(tmp_path / "skills")) == str(tmp_path / "skills")

    def test_candidate_escape(self, tmp_path):
        """Test derived candidates are checked against the repository root."""
        with pytest.raises(BadConfigError):
            candidate_dirs(tmp_path, str(tmp_path), "../../etc")

    @pytest.mark.parametrize("skill_id", ["../../etc", "a/b", "a\\b", "..", "."])
    def test_path_like_ids_rejected(self, skill_id):
        """Test ids that address paths are rejected."""
        with pytest.raises(BadConfigError):
            ensure_safe_skill_id(skill_id)

    def test_entry_escape(self, tmp_path):
        """Test entries must stay inside their package directory."""
        with pytest.raises(BadConfigError, match="Invalid package entry path"):
            resolve_package_entry(str(tmp_path), {"main": "../outside.py"})

    @pytest.mark.parametrize(
        ("descriptor", "expected"),
        [
            ({"exports": "./entry.py"}, "entry.py"),
            ({"exports": {".": "./dot.py"}}, "dot.py"),
            ({"exports": {".": {"import": "./imp.py"}}}, "imp.py"),
            ({"exports": {"python": "./py.py"}}, "py.py"),
            ({"module": "./mod.py", "main": "./main.py"}, "mod.py"),
            ({"main": "./main.py"}, "main.py"),
            ({}, "__init__.py"),
        ],
    )
    def test_entry_selection(self, tmp_path, descriptor, expected):
        """Test entry precedence: exports, module, main, default."""
        assert resolve_package_entry(str(tmp_path), descriptor) == str(tmp_path / expected)


class TestSkillResolver:
    """Test resolution strategies."""

    async def test_traversal_id_never_touches_filesystem(self, tmp_path):
        """Test '../../etc' fails with BadConfig before any descriptor read."""
        resolver = SkillResolver(tmp_path)
        with patch.object(skill_resolver, "read_package_descriptor") as read:
            with pytest.raises(BadConfigError):
                await resolver.resolve("../../etc", local_only("skills"))
        read.assert_not_called()

    async def test_escaping_local_path_propagates(self, tmp_path):
        """Test configuration escapes are not folded into ResolveFailed."""
        resolver = SkillResolver(tmp_path / "repo")
        with pytest.raises(BadConfigError):
            await resolver.resolve("echo", local_only("../../"))

    async def test_resolve_root_candidate(self, tmp_path):
        """Test a local root that is itself the package."""
        write_package(tmp_path / "skills" / "echo", {"name": "echo"})
        resolved = await SkillResolver(tmp_path).resolve("echo", local_only("skills/echo"))
        assert resolved.entry_path == str(tmp_path / "skills" / "echo" / "__init__.py")
        assert resolved.source == f"local:{tmp_path / 'skills' / 'echo'}"

    async def test_resolve_child_candidate(self, tmp_path):
        """Test packages found in a subdirectory named after the id."""
        write_package(tmp_path / "skills" / "echo", {"name": "echo", "main": "./main.py"}, entry="main.py")
        resolved = await SkillResolver(tmp_path).resolve("echo", local_only("skills"))
        assert resolved.entry_path == str(tmp_path / "skills" / "echo" / "main.py")

    async def test_name_mismatch_not_found(self, tmp_path):
        """Test packages must declare the requested name."""
        write_package(tmp_path / "skills" / "echo", {"name": "other"})
        with pytest.raises(ResolveFailedError) as exc_info:
            await SkillResolver(tmp_path).resolve("echo", local_only("skills"))
        assert exc_info.value.details["errors"] == ["local_path(skills): not found"]

    async def test_missing_entry_file(self, tmp_path):
        """Test a declared entry that is not a file fails resolution."""
        write_package(tmp_path / "skills" / "echo", {"name": "echo"}, entry=None)
        with pytest.raises(ResolveFailedError) as exc_info:
            await SkillResolver(tmp_path).resolve("echo", local_only("skills"))
        assert "not a file" in exc_info.value.details["errors"][0]

    async def test_malformed_descriptor_aggregated(self, tmp_path):
        """Test a broken descriptor in one root does not hide later roots."""
        broken = tmp_path / "a" / "echo"
        broken.mkdir(parents=True)
        (broken / "skill.json").write_text("{", encoding="utf-8")
        write_package(tmp_path / "b" / "echo", {"name": "echo"})

        resolved = await SkillResolver(tmp_path).resolve("echo", local_only("a", "b"))
        assert resolved.source == f"local:{tmp_path / 'b' / 'echo'}"

    async def test_undecodable_descriptor_aggregated(self, tmp_path):
        """Test a descriptor with invalid UTF-8 is reported, not raised raw."""
        broken = tmp_path / "a" / "echo"
        broken.mkdir(parents=True)
        (broken / "skill.json").write_bytes(b'{"name": "\xff"}')

        with pytest.raises(ResolveFailedError) as exc_info:
            await SkillResolver(tmp_path).resolve("echo", local_only("a"))
        assert "encoding" in exc_info.value.details["errors"][0]

    async def test_package_manager_first(self, tmp_path, monkeypatch):
        """Test importable packages win when enabled."""
        (tmp_path / "pm_skill_demo.py").write_text("skill = None\n", encoding="utf-8")
        monkeypatch.syspath_prepend(str(tmp_path))
        write_package(tmp_path / "skills" / "pm-skill-demo", {"name": "pm-skill-demo"})

        resolved = await SkillResolver(tmp_path).resolve(
            "pm-skill-demo",
            SkillResolveConfig(package_manager=True, local_paths=["skills"]),
        )
        assert resolved.source == "package_manager"
        assert resolved.entry_path == str(tmp_path / "pm_skill_demo.py")

    async def test_nothing_resolves(self, tmp_path):
        """Test every attempt is reported when resolution fails."""
        with pytest.raises(ResolveFailedError) as exc_info:
            await SkillResolver(tmp_path).resolve(
                "definitely-not-installed-skill",
                SkillResolveConfig(package_manager=True, local_paths=["skills"]),
            )
        errors = exc_info.value.details["errors"]
        assert errors[0].startswith("package_manager:")
        assert errors[1] == "local_path(skills): not found"
