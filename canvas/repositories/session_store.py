"""
Session store: the persistence port for completed study sessions.

Every backend keeps the whole session list under one storage key as a JSON
document. Stores are best effort: `load` never raises (missing or corrupt
data reads as an empty list) and `save`/`clear` log failures instead of
propagating them.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from canvas.exceptions import PersistenceError
from canvas.models.session import Session

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "kleem_sessions"


def _decode_sessions(raw: Optional[str]) -> list[Session]:
    """Parse a stored JSON list; corrupt documents and invalid entries are skipped."""
    if not raw:
        return []
    try:
        items = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Stored sessions are not valid JSON, treating as empty: {e}")
        return []
    if not isinstance(items, list):
        logger.warning("Stored sessions are not a list, treating as empty")
        return []

    sessions = []
    for item in items:
        try:
            sessions.append(Session.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping invalid stored session: {e.error_count()} error(s)")
    return sessions


def _encode_sessions(sessions: list[Session]) -> str:
    return json.dumps([s.model_dump(mode="json") for s in sessions])


class SessionStore(ABC):
    """Flat key-value persistence for the saved session list."""

    def load(self) -> list[Session]:
        try:
            return _decode_sessions(self._read())
        except Exception as e:
            logger.warning(f"Could not load sessions from {self.describe()}: {e}")
            return []

    def save(self, sessions: list[Session]) -> bool:
        try:
            self._write(_encode_sessions(sessions))
            return True
        except Exception as e:
            logger.warning(f"Failed to save {len(sessions)} session(s) to {self.describe()}: {e}")
            return False

    def clear(self) -> bool:
        try:
            self._delete()
            return True
        except Exception as e:
            logger.warning(f"Failed to clear sessions in {self.describe()}: {e}")
            return False

    @abstractmethod
    def _read(self) -> Optional[str]:
        ...

    @abstractmethod
    def _write(self, value: str) -> None:
        ...

    @abstractmethod
    def _delete(self) -> None:
        ...

    def describe(self) -> str:
        return type(self).__name__


class InMemorySessionStore(SessionStore):
    """Process-local store for tests and ephemeral canvases."""

    def __init__(self, initial: Optional[str] = None):
        self.value = initial

    def _read(self) -> Optional[str]:
        return self.value

    def _write(self, value: str) -> None:
        self.value = value

    def _delete(self) -> None:
        self.value = None


class JsonFileSessionStore(SessionStore):
    """
    Key-value JSON file holding one document per storage key.

    The file holds {storage_key: json_string}; other keys are preserved.
    """

    def __init__(self, path: str | Path, storage_key: str = DEFAULT_STORAGE_KEY):
        self.path = Path(path)
        self.storage_key = storage_key

    def describe(self) -> str:
        return f"{self.path}[{self.storage_key}]"

    def _load_document(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        document = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        if not isinstance(document, dict):
            raise ValueError("storage file is not a JSON object")
        return document

    def _store_document(self, document: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise PersistenceError("write", e) from e

    def _read(self) -> Optional[str]:
        return self._load_document().get(self.storage_key)

    def _write(self, value: str) -> None:
        try:
            document = self._load_document()
        except (ValueError, json.JSONDecodeError):
            logger.warning(f"Overwriting unreadable storage file {self.path}")
            document = {}
        document[self.storage_key] = value
        self._store_document(document)

    def _delete(self) -> None:
        document = self._load_document()
        if document.pop(self.storage_key, None) is not None:
            self._store_document(document)


class DatabaseSessionStore(SessionStore):
    """Store backed by the `storage_entries` table."""

    def __init__(self, db_manager, storage_key: str = DEFAULT_STORAGE_KEY):
        self.db_manager = db_manager
        self.storage_key = storage_key

    def describe(self) -> str:
        return f"storage_entries[{self.storage_key}]"

    def _read(self) -> Optional[str]:
        from shared.models.entities import StorageEntry

        with self.db_manager.session_scope() as db:
            entry = db.get(StorageEntry, self.storage_key)
            return entry.value_json if entry else None

    def _write(self, value: str) -> None:
        from shared.models.entities import StorageEntry

        with self.db_manager.session_scope() as db:
            entry = db.get(StorageEntry, self.storage_key)
            if entry is None:
                db.add(StorageEntry(key=self.storage_key, value_json=value))
            else:
                entry.value_json = value
                entry.updated_at = datetime.utcnow()

    def _delete(self) -> None:
        from shared.models.entities import StorageEntry

        with self.db_manager.session_scope() as db:
            entry = db.get(StorageEntry, self.storage_key)
            if entry is not None:
                db.delete(entry)


def build_session_store(settings: Any) -> SessionStore:
    """Pick the configured backend."""
    if settings.session_store_backend == "memory":
        return InMemorySessionStore()
    if settings.session_store_backend == "database":
        from database import get_db_manager

        db_manager = get_db_manager()
        db_manager.create_tables()
        return DatabaseSessionStore(db_manager, storage_key=settings.session_storage_key)
    return JsonFileSessionStore(settings.session_store_path, storage_key=settings.session_storage_key)
