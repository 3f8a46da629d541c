"""
Session storage integrations.

The login flow and the refresh coordinator persist the current ``Session``
through the ``SessionStorage`` port. Sessions are replaced as whole values;
adapters never expose field-level updates.
"""

import asyncio
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from peakauth.core.codex import Session
from peakauth.core.immutables import SESSION_FILE_NAME, SESSION_STORAGE_DIR
from peakauth.utils.logger import get_logger

logger = get_logger(__name__)


class SessionStorage(ABC):
    """Asynchronous store holding at most one session."""

    @abstractmethod
    async def get(self) -> Optional[Session]:
        pass

    @abstractmethod
    async def set(self, session: Session) -> None:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass


class InMemorySessionStorage(SessionStorage):
    """Process-local storage. Nothing survives the process."""

    def __init__(self, session: Optional[Session] = None):
        self._session = session

    async def get(self) -> Optional[Session]:
        return self._session

    async def set(self, session: Session) -> None:
        self._session = session

    async def clear(self) -> None:
        self._session = None


class FileSessionStorage(SessionStorage):
    """
    Stores the session as JSON on disk.

    Writes go to a temporary file that atomically replaces the target, so a
    reader never observes a partially written session. File I/O runs in the
    default executor to keep the event loop responsive.
    """

    def __init__(self, storage_path: Optional[Union[str, Path]] = None):
        self._storage_path = Path(storage_path) if storage_path else Path.home() / SESSION_STORAGE_DIR
        self._lock = asyncio.Lock()

    @property
    def file_path(self) -> Path:
        return self._storage_path / SESSION_FILE_NAME

    async def get(self) -> Optional[Session]:
        async with self._lock:
            return await asyncio.to_thread(self._read)

    async def set(self, session: Session) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write, session)

    async def clear(self) -> None:
        async with self._lock:
            await asyncio.to_thread(self._remove)

    def _read(self) -> Optional[Session]:
        try:
            with open(self.file_path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except ValueError as e:
            logger.warning(f"Discarding unreadable session file {self.file_path}: {str(e)}")
            return None
        if not data:
            return None
        return Session.from_dict(data)

    def _write(self, session: Session) -> None:
        self._storage_path.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._storage_path, prefix=".session-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(session.to_dict(), f, indent=2)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.file_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _remove(self) -> None:
        try:
            self.file_path.unlink()
        except FileNotFoundError:
            return
