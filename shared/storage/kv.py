"""
Key-value storage backends.

The roster, the per-channel hysteresis map and the mirrored live-status
snapshot all live behind the same tiny contract:

    get(key) -> value | None
    set(key, value, ttl=None)
    delete(key)

Values must be JSON-serializable. Expiry is lazy: an expired entry is
reported as absent on the next read. Concurrent readers are fine and the
last writer wins.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
import time
from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple

from shared.logging.logger import get_logger
from shared.storage.paths import get_state_dir

log = get_logger("shared.kv")

_KEY_SAFE_RE = re.compile(r"[^A-Za-z0-9_.-]")


class KVStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Any:
        ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class MemoryKVStore(KVStore):
    """
    Process-local store. Used for tests and for running without a state
    directory; nothing survives a restart.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = Lock()
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return None
            return json.loads(json.dumps(value))

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        # Round-trip through JSON so callers never share mutable state.
        with self._lock:
            self._data[key] = (json.loads(json.dumps(value)), expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileKVStore(KVStore):
    """
    Durable store: one JSON document per key, written atomically.

    File layout:
        <base_dir>/<sanitized key>.json -> {"value": ..., "expires_at": float | null}
    """

    def __init__(
        self,
        base_dir: Path | str | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self._base_dir = get_state_dir(base_dir)
        self._clock = clock
        self._lock = Lock()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _path_for(self, key: str) -> Path:
        return self._base_dir / f"{_KEY_SAFE_RE.sub('_', key)}.json"

    def _write_atomic(self, path: Path, payload: Any) -> None:
        serialized = json.dumps(payload, indent=2)
        path.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.NamedTemporaryFile(
            "w", dir=path.parent, delete=False, encoding="utf-8"
        ) as tmp:
            temp_path = Path(tmp.name)
            try:
                tmp.write(serialized)
                tmp.flush()
                os.fsync(tmp.fileno())
            except Exception:
                tmp.close()
                temp_path.unlink(missing_ok=True)
                raise

        try:
            temp_path.replace(path)
        except Exception:
            temp_path.unlink(missing_ok=True)
            raise

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> Any:
        path = self._path_for(key)
        with self._lock:
            if not path.exists():
                return None
            try:
                document = json.loads(path.read_text(encoding="utf-8"))
            except Exception as e:
                log.warning(f"Failed to read key '{key}' from {path}: {e}")
                return None

        if not isinstance(document, dict):
            log.warning(f"Key '{key}' has an invalid document shape; ignoring")
            return None

        expires_at = document.get("expires_at")
        if isinstance(expires_at, (int, float)) and self._clock() >= expires_at:
            return None

        return document.get("value")

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Persist a value. Raises on I/O failure; callers decide whether a
        lost write is tolerable.
        """
        document = {
            "value": value,
            "expires_at": self._clock() + ttl if ttl else None,
        }
        with self._lock:
            self._write_atomic(self._path_for(key), document)

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
