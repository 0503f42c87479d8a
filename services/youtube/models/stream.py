from dataclasses import dataclass
from enum import Enum
from typing import Optional


class VideoStatus(Enum):
    LIVE = "live"
    SCHEDULED = "scheduled"
    # Never materialized by the batcher: an ended video simply has no entry.
    ENDED = "ended"


@dataclass(frozen=True)
class VideoObservation:
    """
    Per-poll classification of one video id.

    Produced by the video status batcher, consumed once by the resolver and
    then discarded.
    """

    video_id: str
    status: VideoStatus
    concurrent_viewers: Optional[int] = None

    def is_live(self) -> bool:
        return self.status == VideoStatus.LIVE

    def is_scheduled(self) -> bool:
        return self.status == VideoStatus.SCHEDULED
