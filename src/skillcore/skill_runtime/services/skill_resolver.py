"""Trusted resolution of skill packages.

A skill id resolves either to an importable installed package or to a local
package directory under one of the configured roots. Local resolution is
confined to the repository root and to each package's own directory; the
containment checks are pure path computations performed before any
filesystem access.
"""

from __future__ import annotations

import asyncio
import importlib.util
import json
import os
from pathlib import Path
from typing import Any

import structlog

from ..models.errors import BadConfigError, PathEscapeError, ResolveFailedError, error_message
from ..models.skill import ResolvedSkillEntry, SkillResolveConfig
from .params import ensure_non_empty_string, ensure_optional_string

logger = structlog.get_logger()

PACKAGE_DESCRIPTOR = "skill.json"
DEFAULT_ENTRY = "./__init__.py"
PACKAGE_MANAGER_SOURCE = "package_manager"


def normalize_path(path: str | os.PathLike[str]) -> str:
    """Absolute, normalized path computed without touching the filesystem."""
    return os.path.normpath(os.path.abspath(os.fspath(path)))


def is_path_within(target: str | os.PathLike[str], root: str | os.PathLike[str]) -> bool:
    normalized_target = normalize_path(target)
    normalized_root = normalize_path(root)
    if normalized_target == normalized_root:
        return True
    root_with_sep = normalized_root if normalized_root.endswith(os.sep) else normalized_root + os.sep
    return normalized_target.startswith(root_with_sep)


def resolve_local_root(repo_root: str | os.PathLike[str], raw_local_path: str) -> str:
    """
    Turn a configured local path into an absolute root inside the repository.

    Raises:
        PathEscapeError: If the path escapes the repository root
    """
    value = ensure_non_empty_string(raw_local_path, "local_paths[]", BadConfigError)
    if os.path.isabs(value):
        absolute = normalize_path(value)
    else:
        absolute = normalize_path(os.path.join(os.fspath(repo_root), value))
    if not is_path_within(absolute, repo_root):
        raise PathEscapeError(f"local_paths entry escapes repo root: {raw_local_path}")
    return absolute


def candidate_dirs(
    repo_root: str | os.PathLike[str], local_root: str, skill_id: str
) -> list[str]:
    """
    Package directories to probe for ``skill_id`` under ``local_root``.

    Raises:
        PathEscapeError: If a candidate escapes the repository root
    """
    candidates = [local_root, normalize_path(os.path.join(local_root, skill_id))]
    for candidate in candidates:
        if not is_path_within(candidate, repo_root):
            raise PathEscapeError(f"Skill path escapes repo root: {skill_id}")
    return candidates


def _export_entry(exports_field: Any) -> str | None:
    if isinstance(exports_field, str):
        return ensure_optional_string(exports_field)
    if not isinstance(exports_field, dict):
        return None
    root_export = exports_field.get(".", exports_field)
    if isinstance(root_export, str):
        return ensure_optional_string(root_export)
    if isinstance(root_export, dict):
        for key in ("import", "default", "python"):
            entry = ensure_optional_string(root_export.get(key))
            if entry:
                return entry
    return None


def resolve_package_entry(package_dir: str, descriptor: dict[str, Any]) -> str:
    """
    Pick the entry file declared by a package descriptor.

    Raises:
        PathEscapeError: If the entry escapes the package directory
    """
    entry_rel = (
        _export_entry(descriptor.get("exports"))
        or ensure_optional_string(descriptor.get("module"))
        or ensure_optional_string(descriptor.get("main"))
        or DEFAULT_ENTRY
    )
    entry_file = normalize_path(os.path.join(package_dir, entry_rel))
    if not is_path_within(entry_file, package_dir):
        raise PathEscapeError(f"Invalid package entry path: {entry_rel}")
    return entry_file


def package_module_name(skill_id: str) -> str:
    return skill_id.replace("-", "_").replace(".", "_")


def ensure_safe_skill_id(skill_id: str) -> str:
    """
    Reject ids that could address a path outside a package root.

    Raises:
        PathEscapeError: If the id holds a path separator or a dot segment
    """
    if "/" in skill_id or "\\" in skill_id or skill_id in (".", ".."):
        raise PathEscapeError(f"Skill id must not be a path: {skill_id}")
    return skill_id


class SkillResolver:
    """Resolves skill ids to entry files from trusted sources."""

    def __init__(self, repo_root: Path) -> None:
        """
        Initialize resolver.

        Args:
            repo_root: Directory no local skill path may escape
        """
        self._repo_root = normalize_path(repo_root)

    @property
    def repo_root(self) -> str:
        return self._repo_root

    async def resolve(self, skill_id: str, config: SkillResolveConfig) -> ResolvedSkillEntry:
        """
        Resolve a skill id.

        Package-manager resolution runs first when enabled, then each local
        root in order. The first existing entry file wins.

        Raises:
            PathEscapeError: If a configured or derived path escapes its root
            ResolveFailedError: If no strategy resolved the id
        """
        skill_id = ensure_safe_skill_id(ensure_non_empty_string(skill_id, "id"))
        errors: list[str] = []

        if config.package_manager:
            try:
                return await asyncio.to_thread(self._resolve_package_manager, skill_id)
            except ResolveFailedError as e:
                errors.append(f"package_manager: {error_message(e)}")

        for raw_local_path in config.local_paths:
            try:
                resolved = await self._resolve_local(skill_id, raw_local_path)
            except PathEscapeError:
                raise
            except Exception as e:
                errors.append(f"local_path({raw_local_path}): {error_message(e)}")
                continue
            if resolved is not None:
                return resolved
            errors.append(f"local_path({raw_local_path}): not found")

        logger.warning("skill_resolve_failed", skill_id=skill_id, errors=errors)
        raise ResolveFailedError(
            f"Unable to resolve skill '{skill_id}'",
            details={"errors": errors},
        )

    def _resolve_package_manager(self, skill_id: str) -> ResolvedSkillEntry:
        module_name = package_module_name(skill_id)
        if not module_name.isidentifier():
            raise ResolveFailedError(f"Not an importable package name: {skill_id}")
        try:
            spec = importlib.util.find_spec(module_name)
        except (ImportError, ValueError) as e:
            raise ResolveFailedError(str(e)) from e
        if spec is None or not spec.origin or not os.path.isfile(spec.origin):
            raise ResolveFailedError(f"Package not installed: {module_name}")
        return ResolvedSkillEntry(
            skill_id=skill_id,
            entry_path=spec.origin,
            source=PACKAGE_MANAGER_SOURCE,
        )

    async def _resolve_local(self, skill_id: str, raw_local_path: str) -> ResolvedSkillEntry | None:
        local_root = resolve_local_root(self._repo_root, raw_local_path)
        for candidate in candidate_dirs(self._repo_root, local_root, skill_id):
            descriptor = await asyncio.to_thread(read_package_descriptor, candidate)
            if descriptor is None:
                continue
            if ensure_optional_string(descriptor.get("name")) != skill_id:
                continue
            entry_file = resolve_package_entry(candidate, descriptor)
            if not await asyncio.to_thread(os.path.isfile, entry_file):
                raise ResolveFailedError(f"Skill entry is not a file: {entry_file}")
            return ResolvedSkillEntry(
                skill_id=skill_id,
                entry_path=entry_file,
                source=f"local:{candidate}",
            )
        return None


def read_package_descriptor(package_dir: str) -> dict[str, Any] | None:
    """Read ``skill.json`` from a package directory, or None if absent."""
    descriptor_path = Path(package_dir) / PACKAGE_DESCRIPTOR
    try:
        raw = descriptor_path.read_text(encoding="utf-8")
    except (FileNotFoundError, NotADirectoryError):
        return None
    except UnicodeDecodeError as e:
        raise BadConfigError(f"Invalid {PACKAGE_DESCRIPTOR} encoding: {descriptor_path}") from e
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise BadConfigError(f"Invalid {PACKAGE_DESCRIPTOR}: {descriptor_path}") from e
    if not isinstance(parsed, dict):
        raise BadConfigError(f"Invalid {PACKAGE_DESCRIPTOR} object: {descriptor_path}")
    return parsed
