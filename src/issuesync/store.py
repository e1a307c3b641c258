"""File-backed correspondence store.

The store is a single JSON document mapping bucket name -> key -> value. Every
mutation rewrites the whole document to a temporary file next to the store and
atomically renames it over the previous version, so the file on disk always
holds either the previous or the new state.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Self

from .exceptions import StoreDecodeError, StoreError
from .models import StoreItem

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from types import TracebackType

logger: logging.Logger = logging.getLogger(__name__)

Buckets = dict[str, dict[str, str]]


class ReadWriteLock:
    """Lock allowing many concurrent readers or a single writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextlib.contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextlib.contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def _decode(raw: Any, path: Path) -> Buckets:
    """Validate the decoded JSON document shape."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        msg = f"Correspondence store {path} must hold a JSON object, got {type(raw).__name__}"
        raise StoreDecodeError(msg)
    buckets: Buckets = {}
    for bucket, entries in raw.items():
        if not isinstance(entries, dict) or not all(isinstance(v, str) for v in entries.values()):
            msg = f"Correspondence store {path}: bucket {bucket!r} must map keys to strings"
            raise StoreDecodeError(msg)
        buckets[bucket] = dict(entries)
    return buckets


def _load(path: Path) -> Buckets:
    try:
        with path.open(encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError as e:
        msg = f"Correspondence store {path} does not exist (create it with an empty JSON object first)"
        raise StoreError(msg) from e
    except json.JSONDecodeError as e:
        msg = f"Correspondence store {path} is not valid JSON: {e}"
        raise StoreDecodeError(msg) from e
    except (OSError, UnicodeDecodeError) as e:
        msg = f"Failed to read correspondence store {path}: {e}"
        raise StoreError(msg) from e
    return _decode(raw, path)


def _write_atomically(path: Path, buckets: Buckets) -> None:
    """Write ``buckets`` to ``path`` via a synced temporary file and rename."""
    temp_path: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
        ) as f:
            temp_path = f.name
            json.dump(buckets, f, ensure_ascii=False, indent=2, sort_keys=True)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
        temp_path = None
    except (OSError, TypeError, ValueError) as e:
        msg = f"Failed to write correspondence store {path}: {e}"
        raise StoreError(msg) from e
    finally:
        if temp_path:
            Path(temp_path).unlink(missing_ok=True)


class FileStore:
    """Correspondence store persisted as one JSON file.

    The backing file must exist before the store is opened; use
    ``FileStore.create()`` to start from an empty store. Reads run concurrently,
    writes are serialized and synced to disk before they return.
    """

    path: Path
    _buckets: Buckets
    _lock: ReadWriteLock
    _closed: bool

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._lock = ReadWriteLock()
        self._closed = False
        self._buckets = _load(self.path)
        logger.debug(f"Opened correspondence store {self.path} with {len(self._buckets)} buckets")

    @classmethod
    def create(cls, path: str | os.PathLike[str]) -> Self:
        """Create an empty store file at ``path`` and open it.

        Raises:
            StoreError: If the file already exists or cannot be written
        """
        store_path = Path(path)
        if store_path.exists():
            msg = f"Correspondence store {store_path} already exists"
            raise StoreError(msg)
        _write_atomically(store_path, {})
        logger.info(f"Created empty correspondence store {store_path}")
        return cls(store_path)

    def get(self, bucket: str, key: str) -> str:
        """Return the value stored for (bucket, key), or "" when absent."""
        with self._lock.read():
            return self._buckets.get(bucket, {}).get(key, "")

    def put(self, bucket: str, key: str, value: str) -> None:
        """Store one value and sync it to disk."""
        self.put_many([StoreItem(bucket, key, value)])

    def put_many(self, items: Iterable[StoreItem]) -> None:
        """Store all items and sync them to disk, all or nothing.

        The new state is built on a copy and only replaces the in-memory state
        once it has been written, so a failure leaves memory and disk unchanged.

        Raises:
            StoreError: If an item is invalid, the store is closed or the write fails
        """
        batch = list(items)
        for item in batch:
            if not all(isinstance(part, str) for part in (item.bucket, item.key, item.value)):
                msg = f"Correspondence store items must be strings, got {item!r}"
                raise StoreError(msg)

        with self._lock.write():
            self._ensure_open()
            candidate: Buckets = {bucket: dict(entries) for bucket, entries in self._buckets.items()}
            for item in batch:
                candidate.setdefault(item.bucket, {})[item.key] = item.value
            _write_atomically(self.path, candidate)
            self._buckets = candidate

    def snapshot(self) -> Buckets:
        """Return a copy of the whole mapping."""
        with self._lock.read():
            return {bucket: dict(entries) for bucket, entries in self._buckets.items()}

    def close(self) -> None:
        """Flush the state to disk. Later calls do nothing."""
        with self._lock.write():
            if self._closed:
                return
            _write_atomically(self.path, self._buckets)
            self._closed = True
            logger.debug(f"Closed correspondence store {self.path}")

    def _ensure_open(self) -> None:
        if self._closed:
            msg = f"Correspondence store {self.path} is closed"
            raise StoreError(msg)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()
