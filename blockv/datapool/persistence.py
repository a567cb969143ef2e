"""
Durable key/value byte storage for region caches.

Responsible for:
- Mapping a region state key onto a filesystem-safe file name
- Reading and atomically writing the cached bytes

Stores raise OSError on failure; regions log and swallow those errors.
"""
from __future__ import annotations

import logging
import os
import re
import tempfile
from typing import Protocol

_LOGGER = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_key(key: str) -> str:
    """Turn a state key such as ``inventory:abc`` into ``inventory_abc``."""
    return _UNSAFE_CHARS.sub("_", key) or "_"


class PersistentStore(Protocol):
    def read_bytes(self, key: str) -> bytes | None: ...

    def write_bytes(self, key: str, data: bytes) -> None: ...


class FileStore:
    """One ``<sanitized key>.json`` file per key inside *directory*."""

    def __init__(self, directory: str) -> None:
        self.directory = directory

    def path_for(self, key: str) -> str:
        return os.path.join(self.directory, sanitize_key(key) + ".json")

    def read_bytes(self, key: str) -> bytes | None:
        path = self.path_for(key)
        try:
            with open(path, "rb") as fh:
                return fh.read()
        except FileNotFoundError:
            _LOGGER.debug("No cache file at %s", path)
            return None

    def write_bytes(self, key: str, data: bytes) -> None:
        os.makedirs(self.directory, exist_ok=True)
        path = self.path_for(key)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_path, path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


class MemoryStore:
    """In-process store; nothing survives the process."""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.write_count = 0

    def read_bytes(self, key: str) -> bytes | None:
        return self.files.get(sanitize_key(key))

    def write_bytes(self, key: str, data: bytes) -> None:
        self.files[sanitize_key(key)] = data
        self.write_count += 1
