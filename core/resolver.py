"""
Live-status resolution pass.

One pass, for the enabled roster:

1. probe each channel's feed (depth depends on recent activity), with a
   short grace fallback to the last known video id
2. classify the union of candidate ids in one batched, metered pass
3. apply the per-channel transition sequentially and persist all state
   changes in a single write

Steps 1 and 2 are pure collection; nothing is mutated until step 3.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, List, Optional

from core.context import ChannelConfig, StreamerSnapshot
from core.transitions import ChannelState, transition
from services.youtube.models.stream import VideoObservation
from shared.config.system import ResolverSettings
from shared.logging.logger import get_logger
from shared.platforms.state import StreamerStatus

log = get_logger("core.resolver")


def order_channels(channels: List[ChannelConfig]) -> List[ChannelConfig]:
    """Enabled channels, deduplicated by id, manual order first then roster order."""
    seen = set()
    enabled: List[ChannelConfig] = []
    for channel in channels:
        if channel.enabled and channel.id not in seen:
            seen.add(channel.id)
            enabled.append(channel)

    indexed = list(enumerate(enabled))
    indexed.sort(
        key=lambda pair: (
            pair[1].order is None,
            pair[1].order if pair[1].order is not None else 0,
            pair[0],
        )
    )
    return [channel for _, channel in indexed]


def first_hit(
    candidates: List[str],
    observations: Dict[str, VideoObservation],
) -> Optional[VideoObservation]:
    for video_id in candidates:
        observation = observations.get(video_id)
        if observation is not None:
            return observation
    return None


class LiveStatusResolver:
    def __init__(
        self,
        *,
        registry,
        state_store,
        prober,
        batcher,
        settings: Optional[ResolverSettings] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._registry = registry
        self._state_store = state_store
        self._prober = prober
        self._batcher = batcher
        self._settings = settings or ResolverSettings()
        self._clock = clock

    # ------------------------------------------------------------------
    # PASS
    # ------------------------------------------------------------------

    async def resolve(self) -> List[StreamerSnapshot]:
        try:
            channels = order_channels(self._registry.list())
        except Exception as e:
            log.error(f"Roster unavailable; returning empty snapshot: {e}")
            return []

        if not channels:
            log.info("No enabled channels in roster")
            return []

        now = self._clock()
        stored = self._state_store.load_all()
        priors = {c.id: stored.get(c.id, ChannelState()) for c in channels}

        candidates = await self._collect_candidates(channels, priors, now)

        all_ids = [vid for c in channels for vid in candidates[c.id]]
        try:
            observations = await self._batcher.classify(all_ids)
        except Exception as e:
            log.error(f"Video classification failed; treating all as no-hit: {e}")
            observations = {}

        snapshots: List[StreamerSnapshot] = []
        updates: Dict[str, ChannelState] = {}

        for channel in channels:
            prior = priors[channel.id]
            result = transition(
                prior,
                first_hit(candidates[channel.id], observations),
                now=now,
                offline_confirm_polls=self._settings.offline_confirm_polls,
            )

            if result.state != prior or channel.id not in stored:
                updates[channel.id] = result.state

            if result.status != StreamerStatus.OFFLINE:
                log.debug(
                    f"[{channel.id}] {result.status.value} "
                    f"(offline_polls={result.state.offline_polls}, video={result.live_video_id})"
                )

            snapshots.append(
                StreamerSnapshot(
                    id=channel.id,
                    display_name=channel.display_name,
                    groups=tuple(channel.groups),
                    status=result.status,
                    live_video_id=result.live_video_id,
                    concurrent_viewers=result.concurrent_viewers,
                )
            )

        self._state_store.save_all(updates)

        live = sum(1 for s in snapshots if s.is_live)
        waiting = sum(1 for s in snapshots if s.status == StreamerStatus.WAITING)
        log.info(
            f"Resolved {len(snapshots)} channel(s): {live} live, {waiting} waiting, "
            f"{len(set(all_ids))} candidate video(s)"
        )
        return snapshots

    # ------------------------------------------------------------------
    # CANDIDATES
    # ------------------------------------------------------------------

    async def _collect_candidates(
        self,
        channels: List[ChannelConfig],
        priors: Dict[str, ChannelState],
        now: float,
    ) -> Dict[str, List[str]]:
        semaphore = asyncio.Semaphore(max(1, self._settings.probe_concurrency))

        async def _bounded(channel: ChannelConfig) -> List[str]:
            async with semaphore:
                return await self._candidates_for(channel.id, priors[channel.id], now)

        results = await asyncio.gather(*(_bounded(c) for c in channels))
        return {channel.id: ids for channel, ids in zip(channels, results)}

    def probe_depths(self, state: ChannelState, now: float) -> tuple:
        if state.active_within(self._settings.active_window_seconds, now):
            return tuple(self._settings.active_probe_depths)
        return (self._settings.dormant_probe_depth,)

    async def _candidates_for(
        self,
        channel_id: str,
        state: ChannelState,
        now: float,
    ) -> List[str]:
        for depth in self.probe_depths(state, now):
            try:
                video_ids = await self._prober.probe(channel_id, depth)
            except Exception as e:
                log.warning(f"[{channel_id}] Feed probe failed at depth {depth}: {e}")
                video_ids = []
            if video_ids:
                return list(video_ids)

        if state.last_known_video_id and state.active_within(
            self._settings.rss_grace_seconds, now
        ):
            log.debug(
                f"[{channel_id}] Feed empty; retrying last known video "
                f"{state.last_known_video_id}"
            )
            return [state.last_known_video_id]

        return []
