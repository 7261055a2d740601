from __future__ import annotations

"""Session store contract and non-SQL implementations.

Contract guidelines
-------------------

- All methods are async.
- ``save`` replaces the whole stored session; there is no partial patching.
- ``load`` returns ``None`` for an unknown key.
- Stores keep the JSON text of a session, never live objects, so a loaded
  session shares no state with the one that was saved.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

from ...core.config import settings
from ..schemas.session import Session

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    async def load(self, key: str) -> Optional[Session]: ...

    async def save(self, session: Session) -> None: ...


class InMemorySessionStore:
    """Process-local store; useful for tests and single-process services."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def load(self, key: str) -> Optional[Session]:
        raw = self._data.get(key)
        if raw is None:
            return None
        return Session.from_json(raw)

    async def save(self, session: Session) -> None:
        self._data[session.id] = session.to_json()

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileSessionStore:
    """One ``<session id>.json`` file per session.

    Writes go to a temporary file in the same directory followed by
    ``os.replace``, so readers never see a half written session.
    """

    def __init__(self, directory: Union[str, Path, None] = None) -> None:
        self._dir = Path(directory if directory is not None else settings.persistence.session_dir)

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        if not key or os.sep in key or (os.altsep and os.altsep in key) or key in (".", ".."):
            raise ValueError(f"Invalid session id: {key!r}")
        return self._dir / f"{key}.json"

    async def load(self, key: str) -> Optional[Session]:
        path = self._path(key)
        raw = await asyncio.to_thread(self._read, path)
        if raw is None:
            return None
        return Session.from_json(raw)

    async def save(self, session: Session) -> None:
        await asyncio.to_thread(self._write, self._path(session.id), session.to_json())
        logger.debug("Saved session %s", session.id)

    async def delete(self, key: str) -> None:
        path = self._path(key)
        await asyncio.to_thread(path.unlink, True)

    @staticmethod
    def _read(path: Path) -> Optional[str]:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _write(self, path: Path, raw: str) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=".session-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(raw)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
