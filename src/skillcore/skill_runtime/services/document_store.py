"""Durable storage for JSON configuration documents."""

from __future__ import annotations

import asyncio
import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

import structlog

from ..models.errors import BadConfigError

logger = structlog.get_logger()


class DocumentStore(Protocol):
    """Backing storage for a single JSON object document."""

    async def read(self) -> dict[str, Any] | None:
        """Return the stored document, or None if nothing is stored yet."""
        ...

    async def write(self, document: dict[str, Any]) -> None:
        """Replace the stored document."""
        ...


class JsonFileDocumentStore:
    """JSON document stored in a file, replaced atomically on every write."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def read(self) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._read_sync)

    async def write(self, document: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write_sync, document)

    def exists(self) -> bool:
        return self._path.is_file()

    def _read_sync(self) -> dict[str, Any] | None:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise BadConfigError(
                f"Document is not valid UTF-8: {self._path}",
                details={"cause": str(e)},
            ) from e
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as e:
            raise BadConfigError(
                f"Invalid JSON document: {self._path}",
                details={"cause": str(e)},
            ) from e
        if not isinstance(decoded, dict):
            raise BadConfigError(f"Document must be a JSON object: {self._path}")
        return decoded

    def _write_sync(self, document: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(document, indent=2, ensure_ascii=False) + "\n"
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("document_written", path=str(self._path))


class MemoryDocumentStore:
    """In-process document store."""

    def __init__(self, document: dict[str, Any] | None = None) -> None:
        self._document = copy.deepcopy(document) if document is not None else None

    async def read(self) -> dict[str, Any] | None:
        return copy.deepcopy(self._document)

    async def write(self, document: dict[str, Any]) -> None:
        self._document = copy.deepcopy(document)
