from typing import Any, Dict, List, Optional

import httpx

from shared.logging.logger import get_logger
from shared.runtime.quotas import SEARCH_LIST_COST, QuotaTracker, charge
from shared.storage.kv import KVStore

log = get_logger("youtube.search")


class HashtagSearch:
    """
    Live videos tagged with a community hashtag (Data API v3 `search`).

    `search.list` costs 100 quota units, so non-empty results are cached in
    the key-value store for `cache_ttl` seconds. Empty results are not
    cached, which lets the next request retry.
    """

    SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"

    def __init__(
        self,
        *,
        api_key: str,
        hashtag: str,
        kv: KVStore,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        cache_ttl: float = 2 * 60 * 60,
        max_results: int = 50,
        cache_key_prefix: str = "hashtag:search:",
        quota: Optional[QuotaTracker] = None,
    ):
        if not api_key:
            raise RuntimeError("YouTube API key is required")
        if not hashtag:
            raise RuntimeError("Hashtag is required")
        self.api_key = api_key
        self.hashtag = hashtag.lstrip("#")
        self._kv = kv
        self._client = client
        self._timeout = timeout
        self._cache_ttl = cache_ttl
        self._max_results = max_results
        self._cache_key = f"{cache_key_prefix}{self.hashtag.lower()}"
        self._quota = quota

    # ------------------------------------------------------------

    async def search(self) -> List[Dict[str, Any]]:
        try:
            cached = self._kv.get(self._cache_key)
        except Exception as e:
            log.warning(f"Hashtag cache read failed: {e}")
            cached = None

        if isinstance(cached, list):
            return cached

        results = await self._search_live()

        if results:
            try:
                self._kv.set(self._cache_key, results, ttl=self._cache_ttl)
            except Exception as e:
                log.error(f"Failed to cache hashtag results: {e}")

        return results

    # ------------------------------------------------------------

    async def _search_live(self) -> List[Dict[str, Any]]:
        if not charge(self._quota, SEARCH_LIST_COST, what=f"search.list (#{self.hashtag})"):
            return []

        params = {
            "part": "snippet",
            "q": f"#{self.hashtag}",
            "type": "video",
            "eventType": "live",
            "maxResults": self._max_results,
            "order": "relevance",
            "key": self.api_key,
        }

        try:
            if self._client is not None:
                r = await self._client.get(self.SEARCH_URL, params=params)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    r = await client.get(self.SEARCH_URL, params=params)
            r.raise_for_status()
            data = r.json()
        except Exception as e:
            log.warning(f"YouTube hashtag search error (#{self.hashtag}): {e}")
            return []

        results: List[Dict[str, Any]] = []
        for item in data.get("items", []) if isinstance(data, dict) else []:
            video_id = (item.get("id") or {}).get("videoId")
            if not video_id:
                continue
            snippet = item.get("snippet") or {}
            thumbnails = snippet.get("thumbnails") or {}
            thumbnail = (
                (thumbnails.get("medium") or {}).get("url")
                or (thumbnails.get("default") or {}).get("url")
                or ""
            )
            results.append({
                "videoId": video_id,
                "title": snippet.get("title"),
                "channelName": snippet.get("channelTitle"),
                "channelId": snippet.get("channelId"),
                "thumbnailUrl": thumbnail,
            })

        return results
