from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from shared.platforms.state import StreamerStatus


@dataclass
class ChannelConfig:
    # -------------------------------------------------
    # CORE
    # -------------------------------------------------
    id: str
    display_name: str
    groups: List[str] = field(default_factory=list)
    enabled: bool = True

    # Manual dashboard ordering; unordered channels sort after ordered ones
    order: Optional[int] = None

    # -------------------------------------------------

    def __post_init__(self):
        if not self.id or not isinstance(self.id, str):
            raise RuntimeError("ChannelConfig.id is REQUIRED")
        if not self.display_name:
            self.display_name = self.id
        # Group tags behave as a set but keep their authored order
        self.groups = list(dict.fromkeys(str(g) for g in self.groups or []))

    # -------------------------------------------------
    # Wire format (roster record)
    # -------------------------------------------------

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ChannelConfig":
        channel_id = raw.get("channelId") or raw.get("id")
        order = raw.get("order")
        enabled = raw.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ValueError(f"ChannelConfig.enabled must be a boolean, got {enabled!r}")
        return cls(
            id=channel_id,
            display_name=raw.get("name") or raw.get("displayName") or channel_id,
            groups=raw.get("groups") or [],
            enabled=enabled,
            order=int(order) if isinstance(order, (int, float)) and not isinstance(order, bool) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.display_name,
            "channelId": self.id,
            "groups": list(self.groups),
            "enabled": self.enabled,
        }
        if self.order is not None:
            payload["order"] = self.order
        return payload


@dataclass(frozen=True)
class StreamerSnapshot:
    """
    Externally visible status of one enabled channel for one poll.
    """

    id: str
    display_name: str
    groups: tuple
    status: StreamerStatus
    live_video_id: Optional[str] = None
    concurrent_viewers: Optional[int] = None

    @property
    def is_live(self) -> bool:
        return self.status == StreamerStatus.LIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "groups": list(self.groups),
            "status": self.status.value,
            "liveVideoId": self.live_video_id,
            "concurrentViewers": self.concurrent_viewers,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "StreamerSnapshot":
        return cls(
            id=raw["id"],
            display_name=raw.get("displayName") or raw["id"],
            groups=tuple(raw.get("groups") or ()),
            status=StreamerStatus.from_value(raw.get("status")),
            live_video_id=raw.get("liveVideoId"),
            concurrent_viewers=raw.get("concurrentViewers"),
        )
