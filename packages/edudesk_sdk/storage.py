"""Durable key-value storage backends for session state."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Iterable, Mapping, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStorage(Protocol):
    """String key-value storage contract used by the credential store."""

    def read(self, key: str) -> str | None:
        """Return one stored value, or ``None`` when absent."""

    def write(self, values: Mapping[str, str]) -> None:
        """Store all ``values`` in one atomic step."""

    def delete(self, keys: Iterable[str]) -> None:
        """Remove ``keys``; absent keys are ignored."""


class MemoryStorage:
    """Process-local storage; contents vanish with the process."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def read(self, key: str) -> str | None:
        return self._values.get(key)

    def write(self, values: Mapping[str, str]) -> None:
        self._values = {**self._values, **values}

    def delete(self, keys: Iterable[str]) -> None:
        remaining = dict(self._values)
        for key in keys:
            remaining.pop(key, None)
        self._values = remaining


class JsonFileStorage:
    """Single JSON document on disk, rewritten atomically on every change.

    Writes go to a temporary sibling file that is then renamed over the
    target, so readers observe either the old document or the new one.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        """Return the backing file path."""
        return self._path

    def read(self, key: str) -> str | None:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def write(self, values: Mapping[str, str]) -> None:
        try:
            document = self._load()
        except ValueError:
            # An unreadable document is replaced outright.
            document = {}
        document.update(values)
        self._store(document)

    def delete(self, keys: Iterable[str]) -> None:
        try:
            document = self._load()
        except ValueError:
            self._path.unlink(missing_ok=True)
            return
        changed = False
        for key in keys:
            if key in document:
                del document[key]
                changed = True
        if not changed:
            return
        if document:
            self._store(document)
        else:
            self._path.unlink(missing_ok=True)

    def _load(self) -> dict[str, object]:
        """Read the backing document; a missing file is an empty document."""
        if not self._path.exists():
            return {}
        raw = self._path.read_text(encoding="utf-8")
        if raw.strip() == "":
            return {}
        parsed = json.loads(raw)
        if not isinstance(parsed, dict):
            raise ValueError(f"Storage file must contain a JSON object: {self._path}")
        return parsed

    def _store(self, document: Mapping[str, object]) -> None:
        """Atomically replace the backing document."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", dir=str(self._path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, sort_keys=True)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
