"""Typed error taxonomy for the skill runtime.

Every failure surfaced by a command carries a stable string code and a
human-readable message. Callers branch on the exception class or on
``SkillError.code``; transports serialize with ``SkillError.to_dict()``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class SkillErrorCode(str, Enum):
    """Stable error codes for the skill runtime."""

    # Input validation
    BAD_PARAMS = "E_SKILLS_BAD_PARAMS"  # Malformed or non JSON-safe input
    BAD_COMMAND = "E_AGENT_BAD_COMMAND"  # Transport command has the wrong shape

    # Skill packages
    NOT_ALLOWLISTED = "E_SKILLS_NOT_ALLOWLISTED"
    BAD_EXPORT = "E_SKILLS_BAD_EXPORT"  # Descriptor missing fields or id mismatch
    RESOLVE_FAILED = "E_SKILLS_RESOLVE_FAILED"
    BAD_CONFIG = "E_SKILLS_BAD_CONFIG"  # Path escape or malformed document
    PERSIST_FAILED = "E_SKILLS_PERSIST_FAILED"

    # Sandbox and module ownership
    BAD_MODULE = "E_SKILLS_BAD_MODULE"
    MODULE_CONFLICT = "E_SKILLS_MODULE_CONFLICT"
    MODULE_DISABLED = "E_SKILLS_MODULE_DISABLED"
    SKILL_DISABLED = "E_SKILLS_DISABLED"

    # Guard
    FORBIDDEN = "E_AGENT_FORBIDDEN"
    INIT_ERROR = "E_AGENT_GUARD_INIT"

    # Settings metadata
    BAD_META = "E_SETTINGS_BAD_META"

    # Dispatcher
    UNKNOWN_MODULE = "E_KERNEL_UNKNOWN_MODULE"
    NO_SUCH_OP = "E_KERNEL_NO_SUCH_OP"


class SkillError(Exception):
    """Base exception for all skill runtime errors."""

    code: SkillErrorCode = SkillErrorCode.BAD_PARAMS

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: SkillErrorCode | None = None,
    ) -> None:
        """Initialize error with message and optional structured details."""
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a serializable mapping."""
        data: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code.value}: {self.message})"


class BadParamsError(SkillError):
    code = SkillErrorCode.BAD_PARAMS


class BadCommandError(SkillError):
    code = SkillErrorCode.BAD_COMMAND


class NotAllowlistedError(SkillError):
    code = SkillErrorCode.NOT_ALLOWLISTED


class BadExportError(SkillError):
    code = SkillErrorCode.BAD_EXPORT


class ResolveFailedError(SkillError):
    code = SkillErrorCode.RESOLVE_FAILED


class BadConfigError(SkillError):
    code = SkillErrorCode.BAD_CONFIG


class PathEscapeError(BadConfigError):
    """A configured or derived path leaves its permitted root."""


class PersistFailedError(SkillError):
    code = SkillErrorCode.PERSIST_FAILED


class BadModuleError(SkillError):
    code = SkillErrorCode.BAD_MODULE


class ModuleConflictError(SkillError):
    code = SkillErrorCode.MODULE_CONFLICT


class ModuleDisabledError(SkillError):
    code = SkillErrorCode.MODULE_DISABLED


class SkillDisabledError(SkillError):
    code = SkillErrorCode.SKILL_DISABLED


class ForbiddenError(SkillError):
    code = SkillErrorCode.FORBIDDEN


class InitError(SkillError):
    code = SkillErrorCode.INIT_ERROR


class BadMetaError(SkillError):
    code = SkillErrorCode.BAD_META


class UnknownModuleError(SkillError):
    code = SkillErrorCode.UNKNOWN_MODULE


class NoSuchOpError(SkillError):
    code = SkillErrorCode.NO_SUCH_OP


def error_message(exc: BaseException) -> str:
    """Return the user-facing message of an exception."""
    if isinstance(exc, SkillError) and exc.message.strip():
        return exc.message.strip()
    text = str(exc)
    return text if text else type(exc).__name__
