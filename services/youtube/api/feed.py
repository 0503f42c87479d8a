from typing import List, Optional

import feedparser
import httpx

from shared.logging.logger import get_logger

log = get_logger("youtube.feed")


class FeedProber:
    """
    Recent-uploads probe backed by the public channel RSS feed.

    Responsibilities:
    - Fetch https://www.youtube.com/feeds/videos.xml?channel_id=<id>
    - Return up to `depth` video ids, most recent first
    - Degrade to an empty list on any fetch or parse failure

    Unauthenticated and unmetered, so it is the first signal for every
    channel on every poll.
    """

    FEED_URL = "https://www.youtube.com/feeds/videos.xml"
    VIDEO_ID_PREFIX = "yt:video:"

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._client = client
        self._timeout = timeout

    # ------------------------------------------------------------

    async def probe(self, channel_id: str, depth: int) -> List[str]:
        if depth <= 0:
            return []

        body = await self._fetch(channel_id)
        if body is None:
            return []

        try:
            return self._extract_video_ids(body, depth)
        except Exception as e:
            log.warning(f"[{channel_id}] Feed parse error: {e}")
            return []

    # ------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------

    async def _fetch(self, channel_id: str) -> Optional[str]:
        params = {"channel_id": channel_id}

        try:
            if self._client is not None:
                r = await self._client.get(self.FEED_URL, params=params)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    r = await client.get(self.FEED_URL, params=params)
            r.raise_for_status()
        except Exception as e:
            log.warning(f"[{channel_id}] Feed fetch error: {e}")
            return None

        return r.text

    # ------------------------------------------------------------
    # Parse
    # ------------------------------------------------------------

    def _extract_video_ids(self, body: str, depth: int) -> List[str]:
        feed = feedparser.parse(body)

        if feed.bozo and not feed.entries:
            raise ValueError(f"malformed feed ({feed.get('bozo_exception')})")

        video_ids: List[str] = []
        for entry in feed.entries:
            video_id = entry.get("yt_videoid")
            if not video_id:
                raw_id = entry.get("id", "")
                if raw_id.startswith(self.VIDEO_ID_PREFIX):
                    video_id = raw_id[len(self.VIDEO_ID_PREFIX):]
            if video_id and video_id not in video_ids:
                video_ids.append(video_id)
            if len(video_ids) >= depth:
                break

        return video_ids
