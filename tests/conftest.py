from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional

import pytest

from core.context import ChannelConfig
from core.registry import ChannelRegistry
from core.resolver import LiveStatusResolver
from core.transitions import ChannelState
from services.youtube.models.stream import VideoObservation, VideoStatus
from shared.config.system import ResolverSettings
from shared.storage.kv import MemoryKVStore
from shared.storage.state_store import ChannelStateStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProber:
    """Feed prober returning canned ids per channel and recording calls."""

    def __init__(self, feeds: Optional[Dict[str, List[str]]] = None, *, delay: float = 0.0) -> None:
        self.feeds = feeds or {}
        self.calls: List[tuple] = []
        self.delay = delay

    async def probe(self, channel_id: str, depth: int) -> List[str]:
        self.calls.append((channel_id, depth))
        if self.delay:
            await asyncio.sleep(self.delay)
        return list(self.feeds.get(channel_id, []))[:depth]

    def depths_for(self, channel_id: str) -> List[int]:
        return [depth for cid, depth in self.calls if cid == channel_id]


class FailingProber:
    def __init__(self) -> None:
        self.calls = 0

    async def probe(self, channel_id: str, depth: int) -> List[str]:
        self.calls += 1
        raise RuntimeError("feed down")


class FakeBatcher:
    def __init__(self, observations: Optional[Dict[str, VideoObservation]] = None) -> None:
        self.observations = observations or {}
        self.requests: List[List[str]] = []

    async def classify(self, video_ids: Iterable[str]) -> Dict[str, VideoObservation]:
        ids = list(video_ids)
        self.requests.append(ids)
        return {vid: self.observations[vid] for vid in ids if vid in self.observations}


class FailingBatcher:
    async def classify(self, video_ids: Iterable[str]) -> Dict[str, VideoObservation]:
        raise RuntimeError("quota exploded")


def live(video_id: str, viewers: Optional[int] = None) -> VideoObservation:
    return VideoObservation(video_id=video_id, status=VideoStatus.LIVE, concurrent_viewers=viewers)


def scheduled(video_id: str) -> VideoObservation:
    return VideoObservation(video_id=video_id, status=VideoStatus.SCHEDULED)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv(clock) -> MemoryKVStore:
    return MemoryKVStore(clock=clock)


@pytest.fixture
def registry(kv, tmp_path) -> ChannelRegistry:
    from core.config_loader import ConfigLoader

    return ChannelRegistry(kv, config_loader=ConfigLoader(tmp_path / "missing-seed.json"))


@pytest.fixture
def state_store(kv) -> ChannelStateStore:
    return ChannelStateStore(kv)


@pytest.fixture
def settings() -> ResolverSettings:
    return ResolverSettings()


@pytest.fixture
def make_resolver(registry, state_store, settings, clock):
    def _make(prober, batcher) -> LiveStatusResolver:
        return LiveStatusResolver(
            registry=registry,
            state_store=state_store,
            prober=prober,
            batcher=batcher,
            settings=settings,
            clock=clock,
        )

    return _make


def add_channel(registry: ChannelRegistry, channel_id: str, **kwargs) -> ChannelConfig:
    config = ChannelConfig(id=channel_id, display_name=kwargs.pop("display_name", channel_id), **kwargs)
    registry.upsert(config)
    return config


def seed_state(state_store: ChannelStateStore, channel_id: str, **kwargs) -> ChannelState:
    state = ChannelState(**kwargs)
    state_store.save_all({channel_id: state})
    return state
