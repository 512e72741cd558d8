"""
Persistence for the single sleep session record.

The JSON store writes to a .tmp file and os.replace()s it over the live file,
keeping a .bak of the previous good document. Loads fall back to the backup,
then to an empty record.
"""

import json
import os
from pathlib import Path
from typing import Protocol

import structlog
from pydantic import ValidationError

from sleepcore.domain.errors import SessionStoreError
from sleepcore.domain.models import SleepSession

logger = structlog.get_logger(__name__)

VERSION = 1


class SessionStore(Protocol):
    """Read/write access to the persisted session record."""

    def load(self) -> SleepSession: ...

    def save(self, session: SleepSession) -> None: ...


class InMemorySessionStore:
    """Process-local store, used in tests and demos."""

    def __init__(self, session: SleepSession | None = None) -> None:
        self._session = session or SleepSession()
        self.save_count = 0

    def load(self) -> SleepSession:
        return self._session

    def save(self, session: SleepSession) -> None:
        self._session = session
        self.save_count += 1


class JsonFileSessionStore:
    """Session record as a small JSON document on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.tmp_path = self.path.with_name(self.path.name + ".tmp")
        self.bak_path = self.path.with_name(self.path.name + ".bak")
        self.logger = logger.bind(component="session_store", path=str(self.path))
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> SleepSession:
        """Read the record. Try the backup on failure. Empty record when neither is usable."""
        for path in (self.path, self.bak_path):
            if not path.exists():
                continue
            try:
                data = json.loads(path.read_text())
                if not isinstance(data, dict) or data.get("version") != VERSION:
                    self.logger.warning("session_version_mismatch", file=str(path))
                    continue
                data.pop("version")
                session = SleepSession.model_validate(data)
                self.logger.debug("session_loaded", file=str(path))
                return session
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                self.logger.warning("session_load_failed", file=str(path), error=str(e))

        return SleepSession()

    def save(self, session: SleepSession) -> None:
        data = {"version": VERSION, **session.model_dump(mode="json")}
        try:
            if self.path.exists():
                self.bak_path.write_text(self.path.read_text())
            self.tmp_path.write_text(json.dumps(data, indent=2))
            os.replace(self.tmp_path, self.path)
        except OSError as e:
            if self.tmp_path.is_file():
                self.tmp_path.unlink()
            self.logger.error("session_save_failed", error=str(e))
            raise SessionStoreError(f"Failed to write {self.path}: {e}") from e
