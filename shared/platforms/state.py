"""Streamer status definitions and helpers.

This module centralizes the service's interpretation of a channel's
externally visible status:

- LIVE      : A matched video is broadcasting right now
- WAITING   : A matched video is scheduled, or a recently active channel is
              inside its offline confirmation window
- SCHEDULED : Reserved for a scheduled video known by id but absent from the
              feed; no resolver path produces it yet
- OFFLINE   : Nothing live or pending

LIVE and WAITING are "hot": a snapshot containing either is refreshed on
the fast cache cadence.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable


class StreamerStatus(Enum):
    LIVE = "live"
    WAITING = "waiting"
    SCHEDULED = "scheduled"
    OFFLINE = "offline"

    @classmethod
    def from_value(
        cls, value: Any, *, default: "StreamerStatus" = None
    ) -> "StreamerStatus":
        if isinstance(value, cls):
            return value

        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if normalized in {member.name.lower(), member.value}:
                    return member

        return default or cls.OFFLINE

    @property
    def is_hot(self) -> bool:
        return self in HOT_STATUSES


HOT_STATUSES = frozenset({StreamerStatus.LIVE, StreamerStatus.WAITING})


def any_hot(statuses: Iterable[StreamerStatus]) -> bool:
    """True when at least one status warrants the fast refresh cadence."""

    return any(status.is_hot for status in statuses)


__all__ = [
    "StreamerStatus",
    "HOT_STATUSES",
    "any_hot",
]
