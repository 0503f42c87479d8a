"""
Per-channel status state machine.

States, as seen from the outside:

    offline (fresh)     never active, or confirmed offline
    waiting (confirm)   recently active, missing from this poll, not yet
                        confirmed offline
    waiting (scheduled) matched video has a future scheduled start
    live                matched video is broadcasting

``transition`` is pure: it takes the prior ``ChannelState`` plus this
poll's hit (or ``None``) and returns the next state together with the
status to report. The resolver owns I/O and persistence.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from services.youtube.models.stream import VideoObservation
from shared.platforms.state import StreamerStatus


@dataclass(frozen=True)
class ChannelState:
    offline_polls: int = 0
    last_active_at: Optional[float] = None
    last_known_video_id: Optional[str] = None

    # -------------------------------------------------

    @property
    def ever_active(self) -> bool:
        return self.last_active_at is not None or self.last_known_video_id is not None

    def active_within(self, window: float, now: float) -> bool:
        if self.last_active_at is None:
            return False
        return now - self.last_active_at < window

    # -------------------------------------------------
    # Storage format
    # -------------------------------------------------

    @classmethod
    def from_dict(cls, raw: Any) -> "ChannelState":
        if not isinstance(raw, dict):
            return cls()

        polls = raw.get("offlinePolls", 0)
        last_active_at = raw.get("lastActiveAt")
        video_id = raw.get("lastKnownVideoId")

        return cls(
            offline_polls=max(0, int(polls)) if isinstance(polls, (int, float)) else 0,
            last_active_at=float(last_active_at) if isinstance(last_active_at, (int, float)) else None,
            last_known_video_id=video_id if isinstance(video_id, str) and video_id else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "offlinePolls": self.offline_polls,
            "lastActiveAt": self.last_active_at,
            "lastKnownVideoId": self.last_known_video_id,
        }


@dataclass(frozen=True)
class Transition:
    state: ChannelState
    status: StreamerStatus
    live_video_id: Optional[str] = None
    concurrent_viewers: Optional[int] = None


def transition(
    prior: ChannelState,
    hit: Optional[VideoObservation],
    *,
    now: float,
    offline_confirm_polls: int,
) -> Transition:
    """
    Apply one poll's observation to a channel.

    Misses are counted first and then compared with the threshold: with a
    threshold of 3, misses 1 and 2 report ``waiting`` and the third miss
    reports ``offline``. ``last_active_at`` only moves while waiting.
    """

    if hit is not None and hit.is_live():
        viewers = hit.concurrent_viewers if hit.concurrent_viewers is not None else 0
        return Transition(
            state=ChannelState(
                offline_polls=0,
                last_active_at=now,
                last_known_video_id=hit.video_id,
            ),
            status=StreamerStatus.LIVE,
            live_video_id=hit.video_id,
            concurrent_viewers=viewers,
        )

    if hit is not None and hit.is_scheduled():
        return Transition(
            state=replace(prior, offline_polls=0, last_active_at=now),
            status=StreamerStatus.WAITING,
        )

    if not prior.ever_active:
        return Transition(state=prior, status=StreamerStatus.OFFLINE)

    polls = prior.offline_polls + 1

    if polls < offline_confirm_polls:
        return Transition(
            state=replace(prior, offline_polls=polls, last_active_at=now),
            status=StreamerStatus.WAITING,
        )

    return Transition(
        state=replace(prior, offline_polls=polls),
        status=StreamerStatus.OFFLINE,
    )
