"""
Device-local key-value persistence for envelope key material.

Two backends share one small protocol:
- MemoryKeyStore for tests and single-process use
- FileKeyStore for an installation directory on disk

Both provide an atomic create-if-absent so that two first-use callers racing
to generate a device key end up agreeing on a single stored value.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import threading
from typing import Protocol

logger = logging.getLogger(__name__)


class StorageUnavailable(RuntimeError):
    """The device-local store could not be read or written."""


class KeyValueStore(Protocol):
    def get(self, name: str) -> str | None: ...

    def set(self, name: str, value: str) -> None: ...

    def remove(self, name: str) -> None: ...

    def set_if_absent(self, name: str, value: str) -> str:
        """Store ``value`` unless ``name`` already exists; return what is stored."""
        ...


class MemoryKeyStore:
    """Lock-guarded in-process store."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> str | None:
        with self._lock:
            return self._data.get(name)

    def set(self, name: str, value: str) -> None:
        with self._lock:
            self._data[name] = value

    def remove(self, name: str) -> None:
        with self._lock:
            self._data.pop(name, None)

    def set_if_absent(self, name: str, value: str) -> str:
        with self._lock:
            return self._data.setdefault(name, value)


_VALID_NAME = re.compile(r"^[A-Za-z0-9._-]+$")


class FileKeyStore:
    """
    One file per entry under ``directory``.

    Writes land in a temp file first. ``set`` publishes with ``os.replace``;
    ``set_if_absent`` publishes with ``os.link``, which refuses to overwrite,
    so readers never observe a half-written value.
    """

    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, name: str) -> str:
        if not _VALID_NAME.match(name):
            raise ValueError(f"Invalid store entry name: {name!r}")
        return os.path.join(self.directory, name)

    def _write_temp(self, value: str) -> str:
        os.makedirs(self.directory, mode=0o700, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".tmp-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError:
            os.unlink(tmp_path)
            raise
        return tmp_path

    def get(self, name: str) -> str | None:
        path = self._path(name)
        try:
            with open(path, encoding="utf-8") as fh:
                return fh.read()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageUnavailable(f"Cannot read {name!r}: {exc.strerror}") from exc

    def set(self, name: str, value: str) -> None:
        path = self._path(name)
        try:
            tmp_path = self._write_temp(value)
            os.replace(tmp_path, path)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot write {name!r}: {exc.strerror}") from exc

    def remove(self, name: str) -> None:
        path = self._path(name)
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise StorageUnavailable(f"Cannot remove {name!r}: {exc.strerror}") from exc

    def set_if_absent(self, name: str, value: str) -> str:
        path = self._path(name)
        try:
            tmp_path = self._write_temp(value)
            try:
                os.link(tmp_path, path)
            except FileExistsError:
                logger.debug("Entry %r already present, keeping stored value", name)
            finally:
                os.unlink(tmp_path)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot write {name!r}: {exc.strerror}") from exc

        stored = self.get(name)
        if stored is None:
            raise StorageUnavailable(f"Entry {name!r} vanished after write")
        return stored
