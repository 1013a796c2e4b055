"""Durable key-value blob storage: diskcache (default) or plain JSON files.

Both backends store one string per key and replace it as a whole, so a
reader never observes a half-written collection. Reads decode strictly: a
blob that is not UTF-8 raises UnicodeDecodeError, and `copy` moves the raw
value untouched so it can still be kept aside.
"""

from __future__ import annotations

import contextlib
import fcntl
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from diskcache import Cache

    from steinplan.config import SteinplanConfig


class BlobBackend(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def copy(self, src: str, dst: str) -> None: ...

    def close(self) -> None: ...


def _safe_key(key: str) -> str:
    """Sanitize a key for use as a file name."""
    return key.replace("/", "_").replace(":", "_")


class DiskCacheBackend:
    """Blob store on top of diskcache.Cache (SQLite under the hood)."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)
        self._disk_cache: Cache | None = None

    @property
    def _cache(self) -> Cache:
        """Get or create the diskcache instance (lazy)."""
        if self._disk_cache is None:
            from diskcache import Cache
            self.directory.mkdir(parents=True, exist_ok=True)
            self._disk_cache = Cache(str(self.directory))
        return self._disk_cache

    def get(self, key: str) -> str | None:
        value = self._cache.get(key)
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    def set(self, key: str, value: str) -> None:
        if not self._cache.set(key, value):
            msg = f"diskcache refused to store key {key!r}"
            raise OSError(msg)

    def delete(self, key: str) -> None:
        self._cache.delete(key)

    def copy(self, src: str, dst: str) -> None:
        value = self._cache.get(src)
        if value is not None and not self._cache.set(dst, value):
            msg = f"diskcache refused to store key {dst!r}"
            raise OSError(msg)

    def close(self) -> None:
        if self._disk_cache is not None:
            self._disk_cache.close()
            self._disk_cache = None


class FileBackend:
    """One <key>.json file per key, replaced atomically via tmp + rename."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_safe_key(key)}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return self._read(path).decode("utf-8")

    def _read(self, path: Path) -> bytes:
        with path.open("rb") as f:
            fcntl.flock(f, fcntl.LOCK_SH)
            return f.read()

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        try:
            with tmp.open("wb") as f:
                fcntl.flock(f, fcntl.LOCK_EX)
                f.write(data)
            tmp.replace(path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

    def set(self, key: str, value: str) -> None:
        self._write(self._path(key), value.encode("utf-8"))

    def delete(self, key: str) -> None:
        with contextlib.suppress(FileNotFoundError):
            self._path(key).unlink()

    def copy(self, src: str, dst: str) -> None:
        path = self._path(src)
        if path.exists():
            self._write(self._path(dst), self._read(path))

    def close(self) -> None:
        pass


def get_backend(cfg: SteinplanConfig) -> DiskCacheBackend | FileBackend:
    """Return the blob backend selected by [storage] backend."""
    if cfg.storage.backend == "file":
        return FileBackend(cfg.data_dir)
    return DiskCacheBackend(cfg.cache_dir)
