# =============================================================================
# PME Notify -- Sequence Cursor
# =============================================================================
#
# Durable record of the last accepted sequence number.  The dashboard kept
# it in browser storage; here persistence is any object with get/set.
# =============================================================================

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Protocol, runtime_checkable

from ._logging import logger
from .constants import CURSOR_STORAGE_KEY
from .errors import NotifyStorageError


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal string key-value persistence.

    Implementations may raise anything on failure; the cursor logs it.
    """

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStore:
    """In-process store. Survives sessions, not process restarts."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class FileStore:
    """JSON file store. Every ``set`` rewrites the file atomically.

    Args:
        path: File holding a flat ``{key: value}`` JSON object. Created
            on first write; parent directories are created as needed.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> str | None:
        value = self._read().get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        tmp = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, self._path)
        except OSError as exc:
            raise NotifyStorageError(f"Cannot write {self._path}: {exc}") from exc

    def _read(self) -> dict[str, str]:
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable cursor file %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}


class SequenceCursor:
    """Last sequence number the client has durably recorded.

    Only the single event-processing path writes it, so no locking.

    Args:
        store: Persistence backend. Defaults to a fresh :class:`MemoryStore`.
        key: Storage key (default ``"ws_last_seq"``).
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        key: str = CURSOR_STORAGE_KEY,
    ) -> None:
        self._store = store if store is not None else MemoryStore()
        self._key = key
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    @property
    def key(self) -> str:
        return self._key

    def load(self) -> int:
        """Read the persisted value. Absent, unreadable or non-decimal -> 0."""
        try:
            raw = self._store.get(self._key)
        except Exception as exc:
            logger.warning("Failed to read cursor under %s: %s", self._key, exc)
            raw = None

        value = 0
        if raw is not None:
            text = str(raw)
            if text.isascii() and text.isdigit():
                value = int(text)
            else:
                logger.warning("Unparseable cursor %r under %s, starting at 0", raw, self._key)
        self._value = value
        if value:
            logger.info("Loaded last sequence %d from storage", value)
        return value

    def save(self, seq: int) -> None:
        """Overwrite the persisted value.

        Store failures of any kind are logged and never propagate; the
        in-memory value still moves so the running session keeps a
        consistent view.
        """
        self._value = seq
        try:
            self._store.set(self._key, str(seq))
        except Exception as exc:
            logger.warning("Failed to persist sequence %d: %s", seq, exc)

    def advance(self, seq: int) -> int:
        """Record *seq* without ever moving the cursor backwards."""
        new_value = max(self._value, seq)
        self.save(new_value)
        return new_value
