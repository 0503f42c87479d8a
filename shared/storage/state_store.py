from typing import Dict, Mapping

from core.transitions import ChannelState
from shared.logging.logger import get_logger
from shared.storage.kv import KVStore

_log = get_logger("shared.state_store")

DEFAULT_STATE_KEY = "channels:state"


class ChannelStateStore:
    """
    Durable map of channel id -> ChannelState.

    The whole map is one KV record: read once at the start of a resolution
    pass, written once at the end. Entries for channels that left the roster
    are kept as-is.
    """

    def __init__(self, kv: KVStore, *, key: str = DEFAULT_STATE_KEY):
        self._kv = kv
        self._key = key

    # ======================================================================
    # LOAD
    # ======================================================================

    def load_all(self) -> Dict[str, ChannelState]:
        try:
            raw = self._kv.get(self._key)
        except Exception as e:
            _log.warning(f"Failed to load channel state, starting fresh: {e}")
            return {}

        if raw is None:
            return {}

        if not isinstance(raw, dict):
            _log.warning("Channel state record is not an object; starting fresh")
            return {}

        return {
            str(channel_id): ChannelState.from_dict(entry)
            for channel_id, entry in raw.items()
        }

    def get(self, channel_id: str) -> ChannelState:
        return self.load_all().get(channel_id, ChannelState())

    # ======================================================================
    # SAVE
    # ======================================================================

    def save_all(self, updates: Mapping[str, ChannelState]) -> bool:
        """
        Merge updates into the stored map in a single write.

        Returns False (after logging) when the write fails; the next pass
        simply starts from the older state.
        """
        if not updates:
            return True

        merged = self.load_all()
        merged.update(updates)

        try:
            self._kv.set(
                self._key,
                {channel_id: state.to_dict() for channel_id, state in merged.items()},
            )
        except Exception as e:
            _log.error(f"Failed to persist channel state: {e}")
            return False

        return True
