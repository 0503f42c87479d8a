from typing import Optional

import httpx

from shared.logging.logger import get_logger
from shared.runtime.quotas import CHANNELS_LIST_COST, QuotaExceeded, QuotaTracker, charge

log = get_logger("youtube.channels")


class YouTubeChannelsAPI:
    """
    Channel metadata lookups (Data API v3 `channels`).

    Used by the admin roster surface to fill in and refresh display names.
    Read-only and safe to call repeatedly.

    - lookup_channel_name: raises on transport, HTTP or quota failure;
      None only when the channel does not exist
    - fetch_channel_name: same lookup, None on any failure
    """

    CHANNELS_URL = "https://www.googleapis.com/youtube/v3/channels"

    def __init__(
        self,
        *,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        quota: Optional[QuotaTracker] = None,
    ):
        if not api_key:
            raise RuntimeError("YouTube API key is required")
        self.api_key = api_key
        self._client = client
        self._timeout = timeout
        self._quota = quota

    # ------------------------------------------------------------

    async def lookup_channel_name(self, channel_id: str) -> Optional[str]:
        if not channel_id:
            return None

        if not charge(self._quota, CHANNELS_LIST_COST, what=f"channels.list ({channel_id})"):
            raise QuotaExceeded(f"channels.list skipped for {channel_id}")

        params = {
            "part": "snippet",
            "id": channel_id,
            "key": self.api_key,
        }

        if self._client is not None:
            r = await self._client.get(self.CHANNELS_URL, params=params)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                r = await client.get(self.CHANNELS_URL, params=params)
        r.raise_for_status()
        data = r.json()

        items = data.get("items", []) if isinstance(data, dict) else []
        if not items:
            log.info(f"YouTube channel not found: {channel_id}")
            return None

        return (items[0].get("snippet") or {}).get("title")

    async def fetch_channel_name(self, channel_id: str) -> Optional[str]:
        """
        Resolve a channel's current title. Returns None on any failure.
        """
        try:
            return await self.lookup_channel_name(channel_id)
        except Exception as e:
            log.warning(f"[{channel_id}] YouTube channel lookup error: {e}")
            return None
