"""File-backed key/value state store.

Records live in named buckets inside a single JSON document at
<root>/datacol.db. Each value is stored as its canonical JSON encoding.
Every write replaces the document atomically (write to a temp file,
fsync, rename), so readers never observe a partial write.

The handle holds an exclusive, non-blocking flock on <db>.lock for its
whole lifetime: a second process opening the same store fails with
AlreadyLockedError instead of waiting.
"""

from __future__ import annotations

import dataclasses
import fcntl
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Self, TypeAlias

from loguru import logger

from .constants import CREDENTIAL_MODE, DIR_MODE, STORE_FILE_NAME
from .exceptions import AlreadyLockedError, EncodingError, StoreIOError

STORE_VERSION = 1

Bucket: TypeAlias = dict[str, str]


def encode(value: Any) -> str:
    """Serialize a record to its canonical JSON encoding."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise EncodingError(f"cannot encode {type(value).__name__}: {e}") from e


class Store:
    """Bucketed key/value store rooted at a per-user directory.

    Use as a context manager, or call open() and close() explicitly.
    """

    def __init__(self, root: Path, filename: str = STORE_FILE_NAME) -> None:
        self.root = root
        self.path = root / filename
        self.lock_path = root / f"{filename}.lock"
        self._lock_fd: int | None = None
        self._buckets: dict[str, Bucket] = {}
        self._log = logger.bind(component="store", path=str(self.path))

    @property
    def is_open(self) -> bool:
        return self._lock_fd is not None

    def open(self) -> Self:
        """Create the root directory and store file if needed, then lock it.

        Idempotent for an already open handle.
        """
        if self.is_open:
            return self

        try:
            self.root.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        except OSError as e:
            raise StoreIOError(f"creating state directory {self.root}: {e}") from e

        try:
            fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, CREDENTIAL_MODE)
        except OSError as e:
            raise StoreIOError(f"opening state store {self.path}: {e}") from e

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise AlreadyLockedError(str(self.path)) from None

        self._lock_fd = fd
        try:
            self._buckets = self._load()
        except StoreIOError:
            self.close()
            raise

        self._log.debug("Opened state store")
        return self

    def close(self) -> None:
        if self._lock_fd is None:
            return
        fcntl.flock(self._lock_fd, fcntl.LOCK_UN)
        os.close(self._lock_fd)
        self._lock_fd = None
        self._buckets = {}
        self._log.debug("Closed state store")

    def __enter__(self) -> Self:
        return self.open()

    def __exit__(self, *_: object) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Record access
    # -------------------------------------------------------------------------

    def persist(self, bucket: str, key: str, value: Any) -> None:
        """Encode value and write it under key within bucket."""
        self._require_open()
        encoded = encode(value)

        updated = {name: dict(records) for name, records in self._buckets.items()}
        updated.setdefault(bucket, {})[key] = encoded
        self._write(updated)
        self._buckets = updated
        self._log.debug("Persisted {bucket}/{key}", bucket=bucket, key=key)

    def get(self, bucket: str, key: str) -> Any | None:
        """Return the decoded value under key, or None if absent."""
        self._require_open()
        raw = self._buckets.get(bucket, {}).get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def delete(self, bucket: str, key: str) -> bool:
        """Remove key from bucket. Returns False if it was not present."""
        self._require_open()
        if key not in self._buckets.get(bucket, {}):
            return False

        updated = {name: dict(records) for name, records in self._buckets.items()}
        del updated[bucket][key]
        self._write(updated)
        self._buckets = updated
        self._log.debug("Deleted {bucket}/{key}", bucket=bucket, key=key)
        return True

    def keys(self, bucket: str) -> list[str]:
        self._require_open()
        return sorted(self._buckets.get(bucket, {}))

    # -------------------------------------------------------------------------
    # File handling
    # -------------------------------------------------------------------------

    def _require_open(self) -> None:
        if not self.is_open:
            raise StoreIOError(f"State store {self.path} is not open")

    def _load(self) -> dict[str, Bucket]:
        if not self.path.exists():
            self._write({})
            return {}
        try:
            raw = json.loads(self.path.read_text())
        except OSError as e:
            raise StoreIOError(f"reading state store {self.path}: {e}") from e
        except json.JSONDecodeError as e:
            raise StoreIOError(f"corrupt state store {self.path}: {e}") from e

        if raw.get("version") != STORE_VERSION:
            raise StoreIOError(
                f"Unsupported state store version {raw.get('version')!r} in {self.path}"
            )
        return {name: dict(records) for name, records in raw.get("buckets", {}).items()}

    def _write(self, buckets: dict[str, Bucket]) -> None:
        document = json.dumps({"version": STORE_VERSION, "buckets": buckets}, indent=2)
        tmp_name: str | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self.root, prefix=f".{self.path.name}.", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(document)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.chmod(tmp_name, CREDENTIAL_MODE)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StoreIOError(f"writing state store {self.path}: {e}") from e
