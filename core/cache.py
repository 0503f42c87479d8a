from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Generic, List, Optional, TypeVar

from core.context import StreamerSnapshot
from shared.logging.logger import get_logger
from shared.platforms.state import any_hot
from shared.storage.kv import KVStore

log = get_logger("core.cache")

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """
    One in-flight call at a time; callers arriving while it runs await the
    same result. A caller being cancelled does not cancel the shared call.
    """

    def __init__(self) -> None:
        self._task: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    async def do(self, fn: Callable[[], Awaitable[T]]) -> T:
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(fn())
            self._task.add_done_callback(self._clear)
        return await asyncio.shield(self._task)

    def _clear(self, task: asyncio.Task) -> None:
        if self._task is task:
            self._task = None

    def reset(self) -> None:
        self._task = None


class SnapshotCache:
    """
    Process-wide cache of the last resolution pass.

    - TTL is adaptive: `fast_ttl` when any channel is live or waiting,
      `normal_ttl` otherwise
    - Misses are coalesced through a SingleFlight slot
    - Optional KV mirror lets a fresh process reuse a still-valid snapshot
    - A failed pass serves the last known snapshot (or an empty list)
    """

    def __init__(
        self,
        resolve: Callable[[], Awaitable[List[StreamerSnapshot]]],
        *,
        fast_ttl: float = 60.0,
        normal_ttl: float = 600.0,
        kv: Optional[KVStore] = None,
        kv_key: str = "live-status:snapshot",
        clock: Callable[[], float] = time.monotonic,
    ):
        self._resolve = resolve
        self._fast_ttl = fast_ttl
        self._normal_ttl = normal_ttl
        self._kv = kv
        self._kv_key = kv_key
        self._clock = clock

        self._flight: SingleFlight[List[StreamerSnapshot]] = SingleFlight()
        self._snapshot: Optional[List[StreamerSnapshot]] = None
        self._stored_at: float = 0.0
        self._ttl: float = 0.0
        # Bumped by reset(); a pass started before it must not store.
        self._generation = 0

    # ------------------------------------------------------------------

    def ttl_for(self, snapshot: List[StreamerSnapshot]) -> float:
        if any_hot(s.status for s in snapshot):
            return self._fast_ttl
        return self._normal_ttl

    def is_fresh(self) -> bool:
        return (
            self._snapshot is not None
            and self._clock() - self._stored_at < self._ttl
        )

    @property
    def snapshot(self) -> Optional[List[StreamerSnapshot]]:
        return self._snapshot

    def invalidate(self) -> None:
        """Force the next call to resolve; the last snapshot stays as fallback."""
        self._ttl = 0.0
        if self._kv is not None:
            try:
                self._kv.delete(self._kv_key)
            except Exception as e:
                log.warning(f"Failed to drop mirrored snapshot: {e}")

    def reset(self) -> None:
        self._generation += 1
        self._snapshot = None
        self._stored_at = 0.0
        self._ttl = 0.0
        self._flight.reset()

    # ------------------------------------------------------------------

    async def get_snapshot(self) -> List[StreamerSnapshot]:
        if self.is_fresh():
            return self._snapshot
        return await self._flight.do(self._refresh)

    async def _refresh(self) -> List[StreamerSnapshot]:
        generation = self._generation
        mirrored = self._read_mirror()
        if mirrored is not None:
            self._store(mirrored)
            return mirrored

        try:
            snapshot = await self._resolve()
        except Exception as e:
            log.error(f"Live-status resolution failed; serving last known snapshot: {e}")
            return self._snapshot if self._snapshot is not None else []

        if generation != self._generation:
            log.debug("Cache reset during resolution; discarding result")
            return snapshot

        self._store(snapshot)
        self._write_mirror(snapshot)
        return snapshot

    def _store(self, snapshot: List[StreamerSnapshot]) -> None:
        self._snapshot = snapshot
        self._stored_at = self._clock()
        self._ttl = self.ttl_for(snapshot)

    # ------------------------------------------------------------------
    # KV mirror
    # ------------------------------------------------------------------

    def _read_mirror(self) -> Optional[List[StreamerSnapshot]]:
        # Only a cold process consults the mirror; a warm one owns the newest data.
        if self._kv is None or self._snapshot is not None:
            return None

        try:
            raw = self._kv.get(self._kv_key)
            if not isinstance(raw, list):
                return None
            snapshot = [StreamerSnapshot.from_dict(entry) for entry in raw]
        except Exception as e:
            log.warning(f"Ignoring unreadable mirrored snapshot: {e}")
            return None

        log.info(f"Reusing mirrored snapshot ({len(snapshot)} channel(s))")
        return snapshot

    def _write_mirror(self, snapshot: List[StreamerSnapshot]) -> None:
        if self._kv is None:
            return

        try:
            self._kv.set(
                self._kv_key,
                [s.to_dict() for s in snapshot],
                ttl=self.ttl_for(snapshot),
            )
        except Exception as e:
            log.warning(f"Failed to mirror snapshot: {e}")
