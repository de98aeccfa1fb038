"""
Local Key-Value Storage Implementations

DESIGN DECISION: Collections live in a plain directory, one file per key,
because:
1. The user can see and back up their data directly
2. No database setup required
3. A whole-file replace gives us atomic writes for free

TRADEOFFS:
- No cross-process locking: two sessions writing the same key means
  last write wins
- Whole collection rewritten on every commit (fine for personal volumes)
"""

import os
import re
import tempfile
from pathlib import Path
from typing import Optional

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from invoicescanner.services.storage.interface import (
    KeyValueStoreInterface,
    PersistWriteFailedError,
    StorageError,
)


_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class LocalKeyValueStore(KeyValueStoreInterface):
    """
    Directory-backed key-value store.

    Each key maps to `<directory>/<key>.json`. Writes go to a temporary
    file in the same directory which is then renamed over the target.
    """

    def __init__(self, directory: Path):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._directory / f"{key}.json"

    async def get(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise StorageError(f"{path} is not valid UTF-8 text: {e}") from e
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
        reraise=True,
    )
    def _write_atomic(self, path: Path, value: str) -> None:
        """Write value to path via temp file + rename."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.stem}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    async def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        try:
            self._write_atomic(path, value)
        except OSError as e:
            raise PersistWriteFailedError(f"Failed to write {path}: {e}") from e

    async def delete(self, key: str) -> bool:
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e
        return True


class InMemoryKeyValueStore(KeyValueStoreInterface):
    """
    Process-local store for tests and throwaway sessions.

    `fail_writes` simulates a full or unavailable medium.
    """

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})
        self.fail_writes = False
        self.write_count = 0

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise PersistWriteFailedError(f"Storage quota exceeded writing {key}")
        self._data[key] = value
        self.write_count += 1

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def raw(self, key: str) -> Optional[str]:
        """Direct access to a stored value, bypassing the async API."""
        return self._data.get(key)
