"""Cached JSON documents written with the temp-file + rename pattern.

A reader never sees a half-written file, but nothing here serializes
writers: two processes writing the same path race and the last rename wins.
"""

from __future__ import annotations

import json
import os
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generic, TypeVar

from loguru import logger

from wemp.settings import get_settings

T = TypeVar("T")


def get_data_dir() -> Path:
    """Directory holding all wemp state files (``WEMP_DATA_DIR`` overrides)."""
    return get_settings().data_dir


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def read_json_file(path: Path, default: T) -> T:
    """Load JSON from *path*, or return *default* if missing or unreadable.

    A document whose top-level type differs from *default*'s (``null`` where
    a dict is expected, say) counts as unreadable.
    """
    if not path.exists():
        return default
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.error(f"Failed to read JSON file {path}: {exc}")
        return default
    if default is not None and not isinstance(data, type(default)):
        logger.error(f"Unexpected JSON in {path}: expected {type(default).__name__}, got {type(data).__name__}")
        return default
    return data


def write_json_file(path: Path, data: Any) -> None:
    """Atomically replace *path* with *data* serialized as JSON.

    Raises on serialization, write or rename failure; the temp file is
    removed either way.
    """
    ensure_dir(path.parent)
    tmp = path.with_name(f"{path.name}.{os.getpid()}.{time.time_ns()}.tmp")
    try:
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)
    finally:
        try:
            tmp.unlink(missing_ok=True)
        except OSError as exc:
            logger.debug(f"Could not remove temp file {tmp}: {exc}")


class JsonStore(Generic[T]):
    """One JSON document on disk, cached in memory after the first read.

    Usage::

        store = JsonStore(path, default={})
        store.update(lambda data: {**data, "k": "v"})
    """

    def __init__(self, path: Path, default: T | Callable[[], T]) -> None:
        self.path = Path(path)
        self._default = default
        self._cache: T | None = None

    def _make_default(self) -> T:
        if callable(self._default):
            return self._default()
        # Copy through JSON so callers mutating the result can't touch the default
        return json.loads(json.dumps(self._default))

    def read(self) -> T:
        if self._cache is None:
            self._cache = read_json_file(self.path, self._make_default())
        return self._cache

    def write(self, data: T) -> None:
        self._cache = data
        write_json_file(self.path, data)

    def update(self, updater: Callable[[T], T]) -> T:
        """Read-modify-write. Not atomic across concurrent callers."""
        updated = updater(self.read())
        self.write(updated)
        return updated

    def clear_cache(self) -> None:
        self._cache = None
