"""Transport-free handlers for the live-status and roster admin API."""

from __future__ import annotations

import hmac
import json
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Dict, List, Mapping, Optional

from core.cache import SnapshotCache
from core.config_loader import streamer_entry_errors
from core.context import ChannelConfig
from core.registry import ChannelRegistry, RosterError
from services.youtube.api.channels import YouTubeChannelsAPI
from services.youtube.api.search import HashtagSearch
from shared.logging.logger import get_logger
from shared.runtime.quotas import QuotaTracker

log = get_logger("services.status_api.routes")


@dataclass
class ApiResponse:
    status: int
    payload: Any

    @property
    def is_json(self) -> bool:
        return not isinstance(self.payload, str)


def _text(status: HTTPStatus, message: str) -> ApiResponse:
    return ApiResponse(int(status), message)


def _json(payload: Any, status: HTTPStatus = HTTPStatus.OK) -> ApiResponse:
    return ApiResponse(int(status), payload)


class StatusApiRoutes:
    def __init__(
        self,
        *,
        cache: SnapshotCache,
        registry: ChannelRegistry,
        channels_api: Optional[YouTubeChannelsAPI] = None,
        hashtag_search: Optional[HashtagSearch] = None,
        quota: Optional[QuotaTracker] = None,
        admin_token: Optional[str] = None,
        cron_secret: Optional[str] = None,
    ) -> None:
        self._cache = cache
        self._registry = registry
        self._channels_api = channels_api
        self._hashtag_search = hashtag_search
        self._quota = quota
        self._admin_token = admin_token
        self._cron_secret = cron_secret

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def authorize_admin(self, authorization: Optional[str]) -> bool:
        if not self._admin_token or not authorization:
            return False
        return hmac.compare_digest(authorization, f"Bearer {self._admin_token}")

    def authorize_cron(self, secret: Optional[str]) -> bool:
        if not self._cron_secret or not secret:
            return False
        return hmac.compare_digest(secret, self._cron_secret)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(
        self,
        method: str,
        path: str,
        *,
        query: Optional[Mapping[str, List[str]]] = None,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[bytes] = None,
    ) -> ApiResponse:
        query = query or {}
        authorization = (headers or {}).get("Authorization")
        route = path.rstrip("/")

        if route == "/api/live-status" and method == "GET":
            return await self.live_status()

        if route == "/api/streamers":
            if method == "GET":
                refresh = (query.get("refresh") or [None])[0] == "true"
                if refresh:
                    return await self.cron_refresh((query.get("secret") or [None])[0])
                return self.get_streamers(authorization)
            if method == "POST":
                return await self.post_streamer(authorization, body)
            if method == "PUT":
                return await self.put_streamers(authorization)
            if method == "DELETE":
                return self.delete_streamer(authorization, body)
            return _text(HTTPStatus.METHOD_NOT_ALLOWED, "Method Not Allowed")

        if route == "/api/hashtag-search" and method == "GET":
            return await self.hashtag_search()

        if route == "/api/quota" and method == "GET":
            return self.quota_snapshot()

        return _text(HTTPStatus.NOT_FOUND, "Unknown endpoint")

    # ------------------------------------------------------------------
    # Live status
    # ------------------------------------------------------------------

    async def live_status(self) -> ApiResponse:
        try:
            snapshot = await self._cache.get_snapshot()
        except Exception as e:  # pragma: no cover - cache already fails open
            log.error(f"Live status unavailable: {e}")
            snapshot = []
        return _json([s.to_dict() for s in snapshot])

    # ------------------------------------------------------------------
    # Roster
    # ------------------------------------------------------------------

    async def _lookup_name(self, channel_id: str) -> Optional[str]:
        if self._channels_api is None:
            return None
        return await self._channels_api.fetch_channel_name(channel_id)

    async def _refresh_name(self, channel_id: str) -> Optional[str]:
        # Raises on lookup failure so refresh_names can count it.
        if self._channels_api is None:
            return None
        return await self._channels_api.lookup_channel_name(channel_id)

    def get_streamers(self, authorization: Optional[str]) -> ApiResponse:
        if not self.authorize_admin(authorization):
            return _text(HTTPStatus.UNAUTHORIZED, "Unauthorized")
        try:
            return _json(self._registry.load_roster())
        except RosterError as e:
            log.error(str(e))
            return _json({"error": "roster unavailable"}, HTTPStatus.SERVICE_UNAVAILABLE)

    async def cron_refresh(self, secret: Optional[str]) -> ApiResponse:
        if not self.authorize_cron(secret):
            return _text(HTTPStatus.UNAUTHORIZED, "Unauthorized")
        try:
            await self._registry.refresh_names(self._refresh_name)
        except RosterError as e:
            log.error(str(e))
            return _json({"error": "roster unavailable"}, HTTPStatus.SERVICE_UNAVAILABLE)
        self._cache.invalidate()
        return _json({"ok": True, "refreshed": True})

    async def post_streamer(self, authorization: Optional[str], body: Optional[bytes]) -> ApiResponse:
        if not self.authorize_admin(authorization):
            return _text(HTTPStatus.UNAUTHORIZED, "Unauthorized")

        payload = _parse_json_object(body)
        if payload is None:
            return _text(HTTPStatus.BAD_REQUEST, "Invalid JSON body")

        channel_id = payload.get("channelId")
        if not channel_id or not isinstance(channel_id, str):
            return _text(HTTPStatus.BAD_REQUEST, "channelId required")

        errors = streamer_entry_errors(payload)
        if errors:
            return _text(HTTPStatus.BAD_REQUEST, f"Invalid streamer: {errors[0]}")

        name = payload.get("name") or await self._lookup_name(channel_id) or channel_id

        config = ChannelConfig(
            id=channel_id,
            display_name=name,
            groups=payload.get("groups") or [],
            enabled=payload.get("enabled", True),
            order=payload.get("order"),
        )

        try:
            self._registry.upsert(config)
        except RosterError as e:
            log.error(str(e))
            return _json({"error": "roster unavailable"}, HTTPStatus.SERVICE_UNAVAILABLE)

        self._cache.invalidate()
        return _json({"ok": True})

    async def put_streamers(self, authorization: Optional[str]) -> ApiResponse:
        if not self.authorize_admin(authorization):
            return _text(HTTPStatus.UNAUTHORIZED, "Unauthorized")

        try:
            if self._registry.stored_roster() is None:
                return _json({"error": "Config not found"}, HTTPStatus.NOT_FOUND)
            updated, failed, total = await self._registry.refresh_names(self._refresh_name)
        except RosterError as e:
            log.error(str(e))
            return _json({"error": "roster unavailable"}, HTTPStatus.SERVICE_UNAVAILABLE)

        self._cache.invalidate()
        return _json({
            "ok": True,
            "updated": updated,
            "failed": failed,
            "total": total,
            "message": f"Refreshed {total} streamers. Updated: {updated}, Failed: {failed}",
        })

    def delete_streamer(self, authorization: Optional[str], body: Optional[bytes]) -> ApiResponse:
        if not self.authorize_admin(authorization):
            return _text(HTTPStatus.UNAUTHORIZED, "Unauthorized")

        payload = _parse_json_object(body)
        if payload is None:
            return _text(HTTPStatus.BAD_REQUEST, "Invalid JSON body")

        channel_id = payload.get("channelId")
        if not channel_id or not isinstance(channel_id, str):
            return _text(HTTPStatus.BAD_REQUEST, "channelId required")

        try:
            if self._registry.stored_roster() is None:
                return _text(HTTPStatus.NOT_FOUND, "Config not found")
            if not self._registry.remove(channel_id):
                return _text(HTTPStatus.NOT_FOUND, "Streamer not found")
        except RosterError as e:
            log.error(str(e))
            return _json({"error": "roster unavailable"}, HTTPStatus.SERVICE_UNAVAILABLE)

        self._cache.invalidate()
        return _json({"ok": True})

    # ------------------------------------------------------------------
    # Extras
    # ------------------------------------------------------------------

    async def hashtag_search(self) -> ApiResponse:
        if self._hashtag_search is None:
            return _json([])
        try:
            return _json(await self._hashtag_search.search())
        except Exception as e:  # pragma: no cover - search already fails open
            log.error(f"Hashtag search error: {e}")
            return _json([])

    def quota_snapshot(self) -> ApiResponse:
        if self._quota is None:
            return _json({})
        return _json(self._quota.snapshot())


def _parse_json_object(body: Optional[bytes]) -> Optional[Dict[str, Any]]:
    if not body:
        return None
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    return payload if isinstance(payload, dict) else None
