"""
Roster seed loader with schema validation.

The channel roster normally lives in the key-value store and is edited via
the admin API. On a fresh deployment the store is empty, so the registry
falls back to a hand-written seed file. Failures are treated as warnings so
the service can still boot with an empty roster.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import Draft7Validator

from shared.logging.logger import get_logger

log = get_logger("core.config_loader")

SCHEMA_DIR = Path(__file__).resolve().parent.parent / "schemas"
ROSTER_SCHEMA_PATH = SCHEMA_DIR / "channels.schema.json"


# ----------------------------------------------------------------------
# Schema helpers
# ----------------------------------------------------------------------

@lru_cache(maxsize=None)
def _load_schema(schema_path: Path) -> Optional[Dict[str, Any]]:
    if not schema_path.exists():
        log.debug(f"Schema not found at {schema_path}; skipping validation")
        return None

    try:
        return json.loads(schema_path.read_text(encoding="utf-8"))
    except Exception as e:  # pragma: no cover - defensive
        log.warning(f"Failed to load schema {schema_path} ({e}); skipping validation")
        return None


def validation_errors(payload: Any, schema: Optional[Dict[str, Any]]) -> List[str]:
    """Draft 7 validation messages, prefixed with the JSON path."""
    if schema is None:
        return []

    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(payload), key=lambda e: list(e.path))
    messages = []
    for err in errors:
        loc = "/".join(str(p) for p in err.path)
        messages.append(f"'{loc}': {err.message}" if loc else err.message)
    return messages


def streamer_entry_errors(
    payload: Any,
    schema_path: Path = ROSTER_SCHEMA_PATH,
) -> List[str]:
    """Validate one roster entry (admin request body) against the roster schema."""
    schema = _load_schema(schema_path)
    if schema is None:
        return []

    entry_schema = {
        "$ref": "#/definitions/streamer",
        "definitions": schema.get("definitions", {}),
    }
    return validation_errors(payload, entry_schema)


class ConfigLoader:
    """
    Loads, validates and sanitizes the roster seed document.

    Expected shape (same as the stored roster record):
        {
            "groups": ["A4A", "NMC"],
            "streamers": [
                {"name": "...", "channelId": "UC...", "groups": [...], "enabled": true, "order": 0}
            ]
        }

    Validation:
      - schemas/channels.schema.json; failures are logged as warnings and
        offending entries are skipped during sanitizing
    """

    DEFAULT_SEED_PATH = Path("shared/config/channels.json")

    def __init__(
        self,
        seed_path: Path | str | None = None,
        *,
        schema_path: Path | str | None = None,
    ) -> None:
        self.seed_path = Path(seed_path) if seed_path else self.DEFAULT_SEED_PATH
        self.schema_path = Path(schema_path) if schema_path else ROSTER_SCHEMA_PATH

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_json(self, path: Path, name: str) -> Dict[str, Any]:
        if not path.exists():
            log.info(f"{name} not found at {path}; using defaults")
            return {}

        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
                if isinstance(data, dict):
                    return data
                log.warning(f"{name} root is not an object; ignoring")
        except Exception as e:  # pragma: no cover - defensive path
            log.warning(f"Failed to load {name} ({e}); using defaults")

        return {}

    def _validate(self, payload: Dict[str, Any], name: str) -> None:
        for message in validation_errors(payload, _load_schema(self.schema_path)):
            log.warning(f"{name} validation warning at {message}")

    @staticmethod
    def _normalize_streamer_entry(entry: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(entry, dict):
            return None

        channel_id = entry.get("channelId") or entry.get("id")
        if not channel_id or not isinstance(channel_id, str):
            return None

        enabled = entry.get("enabled", True)
        if not isinstance(enabled, bool):
            return None

        groups = entry.get("groups") or []
        if not isinstance(groups, list):
            groups = []

        normalized: Dict[str, Any] = {
            "name": entry.get("name") or channel_id,
            "channelId": channel_id,
            "groups": [str(g) for g in groups],
            "enabled": enabled,
        }

        order = entry.get("order")
        if isinstance(order, int) and not isinstance(order, bool):
            normalized["order"] = order

        return normalized

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load_roster_seed(self, default_groups: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Return a sanitized roster record. Invalid entries are skipped with
        warnings; duplicate channel ids keep the last occurrence.
        """

        data = self._load_json(self.seed_path, "roster seed")
        if data:
            self._validate(data, "roster seed")

        groups = data.get("groups")
        if not isinstance(groups, list):
            groups = list(default_groups or [])

        entries = data.get("streamers", [])
        if not isinstance(entries, list):
            log.warning("roster seed missing 'streamers' array; using empty list")
            entries = []

        by_id: Dict[str, Dict[str, Any]] = {}
        for entry in entries:
            normalized = self._normalize_streamer_entry(entry)
            if normalized:
                by_id[normalized["channelId"]] = normalized
            else:
                log.warning("Skipping invalid streamer entry (expected object with channelId)")

        return {
            "groups": [str(g) for g in groups],
            "streamers": list(by_id.values()),
        }
