import asyncio
import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx

from services.youtube.models.stream import VideoObservation, VideoStatus
from shared.logging.logger import get_logger
from shared.runtime.quotas import VIDEOS_LIST_COST, QuotaTracker, charge

log = get_logger("youtube.videos")

MAX_IDS_PER_CALL = 50


def parse_timestamp(value: Any) -> Optional[float]:
    """RFC 3339 timestamp from the Data API -> unix seconds."""
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def classify_item(item: Dict[str, Any], *, now: float) -> Optional[VideoObservation]:
    """
    Classify one `videos` resource.

    - started and not ended          -> LIVE (viewers default to 0)
    - not started, scheduled ahead   -> SCHEDULED
    - anything else                  -> None
    """
    video_id = item.get("id")
    details = item.get("liveStreamingDetails") or {}
    if not video_id or not isinstance(details, dict):
        return None

    if details.get("actualStartTime") and not details.get("actualEndTime"):
        try:
            viewers = int(details.get("concurrentViewers") or 0)
        except (TypeError, ValueError):
            viewers = 0
        return VideoObservation(
            video_id=video_id,
            status=VideoStatus.LIVE,
            concurrent_viewers=viewers,
        )

    if not details.get("actualStartTime"):
        scheduled_at = parse_timestamp(details.get("scheduledStartTime"))
        if scheduled_at is not None and scheduled_at > now:
            return VideoObservation(video_id=video_id, status=VideoStatus.SCHEDULED)

    return None


def chunk(items: List[str], size: int) -> List[List[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class VideoStatusBatcher:
    """
    Quota-metered live/scheduled classification (Data API v3 `videos`).

    Responsibilities:
    - Deduplicate ids and split them into `videos.list` sized batches
    - Run batches with bounded concurrency
    - Fail open per batch: a failed batch yields no observations
    """

    VIDEOS_URL = "https://www.googleapis.com/youtube/v3/videos"

    def __init__(
        self,
        *,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        batch_size: int = MAX_IDS_PER_CALL,
        concurrency: int = 2,
        timeout: float = 10.0,
        quota: Optional[QuotaTracker] = None,
        clock: Callable[[], float] = time.time,
    ):
        if not api_key:
            raise RuntimeError("YouTube API key is required")
        self.api_key = api_key
        self._client = client
        self._batch_size = max(1, min(batch_size, MAX_IDS_PER_CALL))
        self._concurrency = max(1, concurrency)
        self._timeout = timeout
        self._quota = quota
        self._clock = clock

    # ------------------------------------------------------------

    async def classify(self, video_ids: Iterable[str]) -> Dict[str, VideoObservation]:
        unique = [vid for vid in dict.fromkeys(video_ids) if vid]
        if not unique:
            return {}

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(batch: List[str]) -> Dict[str, VideoObservation]:
            async with semaphore:
                return await self._classify_batch(batch)

        results = await asyncio.gather(
            *(_bounded(batch) for batch in chunk(unique, self._batch_size))
        )

        observations: Dict[str, VideoObservation] = {}
        for result in results:
            observations.update(result)

        log.debug(
            f"Classified {len(unique)} video(s): "
            f"{sum(1 for o in observations.values() if o.is_live())} live, "
            f"{sum(1 for o in observations.values() if o.is_scheduled())} scheduled"
        )
        return observations

    # ------------------------------------------------------------
    # Batch call
    # ------------------------------------------------------------

    async def _classify_batch(self, batch: List[str]) -> Dict[str, VideoObservation]:
        if not charge(self._quota, VIDEOS_LIST_COST, what=f"videos.list ({len(batch)} ids)"):
            return {}

        params = {
            "part": "liveStreamingDetails",
            "id": ",".join(batch),
            "key": self.api_key,
        }

        try:
            data = await self._get_json(params)
        except Exception as e:
            log.warning(f"YouTube videos batch error ({len(batch)} ids): {e}")
            return {}

        items = data.get("items", []) if isinstance(data, dict) else []
        if not isinstance(items, list):
            log.warning("YouTube videos payload has no item list; ignoring batch")
            return {}

        now = self._clock()
        observations: Dict[str, VideoObservation] = {}
        for item in items:
            if not isinstance(item, dict):
                continue
            observation = classify_item(item, now=now)
            if observation is not None:
                observations[observation.video_id] = observation

        return observations

    async def _get_json(self, params: Dict[str, str]) -> Any:
        if self._client is not None:
            r = await self._client.get(self.VIDEOS_URL, params=params)
            r.raise_for_status()
            return r.json()

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            r = await client.get(self.VIDEOS_URL, params=params)
            r.raise_for_status()
            return r.json()
