"""
Durable key-value storage for Rota Express.

The stop list and the explicit origin are saved under fixed keys so a
courier's route survives an app restart. Storage is a tiny contract,
``get``/``set``/``remove`` over bytes, with two implementations:

    JsonFileStorage – one file per key inside ``<directory>/<namespace>``.
    MemoryStorage   – a dict, for tests and throwaway sessions.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)

STOPS_KEY = "rota_stops_v13"
ORIGIN_KEY = "rota_origin_v13"

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStorage:
    """In-process storage backed by a dict."""

    def __init__(self) -> None:
        self._data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data)


class JsonFileStorage:
    """File-per-key storage rooted at ``directory/namespace``.

    Writes go to a temporary file that is then renamed over the target,
    so a crash mid-write leaves the previous value intact.
    """

    def __init__(self, directory: Path, namespace: str) -> None:
        if not _SAFE_KEY.match(namespace):
            raise ValueError(f"Invalid storage namespace {namespace!r}")
        self.root = Path(directory) / namespace
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid storage key {key!r}")
        return self.root / f"{key}.json"

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(value)
            os.replace(tmp_name, path)
        except OSError:
            logger.exception("Failed to write %s", path)
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug("Wrote %d bytes to %s", len(value), path)

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
