"""Client-side storage for identities and the delivery agent's key.

Stores are small string-keyed maps. The memory store backs tests and
short-lived agents; the JSON file store persists across runs and replaces its
file atomically so a crash mid-write never leaves a truncated identity.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from threading import Lock
from typing import Any, Protocol

from inproto.core.errors import StorageError
from inproto.services import identity

logger = logging.getLogger(__name__)

KEYPAIR_KEY = "inproto:keypair"
PUBLIC_KEY_KEY = "inproto:publicKey"
AGENT_KEY = "curve"


class KeyValueStore(Protocol):
    """Minimal persistent map used by the client components."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyStore:
    """In-process store; contents vanish with the object."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})
        self._lock = Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileKeyStore:
    """Store persisted as a single JSON object on disk."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._lock = Lock()

    def _read(self) -> dict[str, Any]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as err:
            raise StorageError(f"Unable to read key store {self.path}") from err
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except ValueError as err:
            raise StorageError(f"Key store {self.path} is not valid JSON") from err
        if not isinstance(data, dict):
            raise StorageError(f"Key store {self.path} must hold a JSON object")
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except OSError as err:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Unable to write key store {self.path}") from err

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)


class IdentityManager:
    """Loads, creates and forgets the local identity keypair."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def load(self) -> str | None:
        """Return the stored keypair string, or None if there is none."""
        keypair = self.store.get(KEYPAIR_KEY)
        if not isinstance(keypair, str) or not keypair:
            return None
        return keypair

    def public_key(self) -> str | None:
        keypair = self.load()
        if keypair is None:
            return None
        stored = self.store.get(PUBLIC_KEY_KEY)
        if isinstance(stored, str) and stored:
            return stored
        return identity.public_key_of(keypair)

    def generate(self) -> str:
        """Create a new identity, replacing any stored one, and return its keypair."""
        keypair = identity.generate()
        self.store.set(KEYPAIR_KEY, keypair)
        self.store.set(PUBLIC_KEY_KEY, identity.public_key_of(keypair))
        logger.info("Generated identity %s", identity.public_key_of(keypair)[:10])
        return keypair

    def clear(self) -> None:
        self.store.delete(KEYPAIR_KEY)
        self.store.delete(PUBLIC_KEY_KEY)
