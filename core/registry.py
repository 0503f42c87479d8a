from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from core.config_loader import ConfigLoader
from core.context import ChannelConfig
from shared.logging.logger import get_logger
from shared.storage.kv import KVStore

log = get_logger("core.registry")

DEFAULT_CONFIG_KEY = "streamers:config"

NameLookup = Callable[[str], Awaitable[Optional[str]]]


class RosterError(RuntimeError):
    """Raised when the roster record cannot be read or written."""


class ChannelRegistry:
    """
    Durable roster of tracked channels.

    Stored as a single KV record:
        {"groups": [...], "streamers": [{"name", "channelId", "groups", "enabled", "order"}]}

    When the record is absent, reads fall back to the seed file; the first
    write persists the (seeded) record.
    """

    def __init__(
        self,
        kv: KVStore,
        *,
        key: str = DEFAULT_CONFIG_KEY,
        config_loader: Optional[ConfigLoader] = None,
        default_groups: Optional[List[str]] = None,
    ):
        self._kv = kv
        self._key = key
        self._config_loader = config_loader or ConfigLoader()
        self._default_groups = list(default_groups or [])

    # ------------------------------------------------------------------
    # RAW RECORD
    # ------------------------------------------------------------------

    def stored_roster(self) -> Optional[Dict[str, Any]]:
        """Return the persisted record, or None when nothing was saved yet."""
        try:
            raw = self._kv.get(self._key)
        except Exception as e:
            raise RosterError(f"Failed to read roster: {e}") from e

        if raw is None:
            return None

        if not isinstance(raw, dict) or not isinstance(raw.get("streamers"), list):
            log.warning("Stored roster has an invalid shape; treating as absent")
            return None

        raw.setdefault("groups", list(self._default_groups))
        return raw

    def load_roster(self) -> Dict[str, Any]:
        stored = self.stored_roster()
        if stored is not None:
            return stored
        return self._config_loader.load_roster_seed(self._default_groups)

    def save_roster(self, roster: Dict[str, Any]) -> None:
        try:
            self._kv.set(self._key, roster)
        except Exception as e:
            raise RosterError(f"Failed to persist roster: {e}") from e

    # ------------------------------------------------------------------
    # CHANNELS
    # ------------------------------------------------------------------

    def list(self) -> List[ChannelConfig]:
        channels: List[ChannelConfig] = []
        for entry in self.load_roster().get("streamers", []):
            if not isinstance(entry, dict):
                log.warning("Skipping invalid roster entry (expected object)")
                continue
            try:
                channels.append(ChannelConfig.from_dict(entry))
            except Exception as e:
                log.warning(f"Skipping invalid roster entry: {e}")
        return channels

    def get(self, channel_id: str) -> Optional[ChannelConfig]:
        for channel in self.list():
            if channel.id == channel_id:
                return channel
        return None

    def upsert(self, config: ChannelConfig) -> bool:
        """Insert or replace by channel id. Returns True when newly added."""
        roster = self.load_roster()
        streamers = roster.setdefault("streamers", [])
        entry = config.to_dict()

        for idx, existing in enumerate(streamers):
            if isinstance(existing, dict) and existing.get("channelId") == config.id:
                streamers[idx] = entry
                self.save_roster(roster)
                log.info(f"[{config.id}] Roster entry updated")
                return False

        streamers.append(entry)
        self.save_roster(roster)
        log.info(f"[{config.id}] Roster entry added")
        return True

    def remove(self, channel_id: str) -> bool:
        roster = self.stored_roster()
        if roster is None:
            return False

        before = len(roster["streamers"])
        roster["streamers"] = [
            s for s in roster["streamers"]
            if not (isinstance(s, dict) and s.get("channelId") == channel_id)
        ]

        if len(roster["streamers"]) == before:
            return False

        self.save_roster(roster)
        log.info(f"[{channel_id}] Roster entry removed")
        return True

    # ------------------------------------------------------------------
    # DISPLAY NAME REFRESH
    # ------------------------------------------------------------------

    async def refresh_names(self, lookup: NameLookup) -> Tuple[int, int, int]:
        """
        Re-resolve every display name through ``lookup``.

        Returns (updated, failed, total). A lookup that raises counts as a
        failure and keeps the old name; a lookup returning None keeps the old
        name silently.
        """
        roster = self.load_roster()
        streamers = roster.get("streamers", [])
        updated = 0
        failed = 0

        for entry in streamers:
            if not isinstance(entry, dict) or not entry.get("channelId"):
                continue
            channel_id = entry["channelId"]
            try:
                fresh = await lookup(channel_id)
            except Exception as e:
                log.error(f"[{channel_id}] Failed to fetch channel name: {e}")
                failed += 1
                continue

            if fresh and fresh != entry.get("name"):
                log.info(f"[{channel_id}] Renamed: {entry.get('name')} -> {fresh}")
                entry["name"] = fresh
                updated += 1

        self.save_roster(roster)
        return updated, failed, len(streamers)
