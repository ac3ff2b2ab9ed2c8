"""
Local key/value storage for the device claim guard.

Backends mirror a browser's localStorage: string keys, string values,
synchronous calls. A backend that cannot be used raises
StorageUnavailableError; the guard turns that into a result status
instead of letting it reach the claim flow.
"""

import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union


class StorageUnavailableError(Exception):
    """The storage medium is disabled, unreadable, or unwritable."""
    pass


class LocalStorage(ABC):
    """Abstract string key/value store."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value or None if the key is absent."""
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove a key. Removing an absent key is not an error."""
        pass

    def is_available(self) -> bool:
        """Probe with a write/remove round trip."""
        probe_key = "__storage_probe__"
        try:
            self.set_item(probe_key, "probe")
            self.remove_item(probe_key)
            return True
        except StorageUnavailableError:
            return False


class MemoryStorage(LocalStorage):
    """Process-local storage. Also used as the test double."""

    def __init__(self):
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


class FileStorage(LocalStorage):
    """
    One file per key under a directory.

    Writes go through a temp file and os.replace, so a crash mid-write
    leaves either the old value or the new one, never a torn file.
    """

    def __init__(self, directory: Union[str, Path]):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        return self._directory / f"{_SAFE_KEY.sub('_', key)}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError:
            # Unreadable bytes are a corrupt value, not a broken medium
            return path.read_bytes().decode("utf-8", errors="replace")
        except OSError as e:
            raise StorageUnavailableError(f"Cannot read {path}: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=".tmp-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                    tmp.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StorageUnavailableError(f"Cannot write {path}: {e}") from e

    def remove_item(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageUnavailableError(f"Cannot remove {path}: {e}") from e
