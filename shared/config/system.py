from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from shared.logging.logger import get_logger

log = get_logger("shared.config.system")

_CONFIG_PATH = Path(__file__).parent / "system.json"


@dataclass
class ResolverSettings:
    active_window_seconds: float = 15 * 60
    rss_grace_seconds: float = 2 * 60
    offline_confirm_polls: int = 3
    active_probe_depths: Tuple[int, ...] = (3, 1)
    dormant_probe_depth: int = 1
    probe_concurrency: int = 4


@dataclass
class YouTubeSettings:
    batch_size: int = 50
    batch_concurrency: int = 2
    request_timeout: float = 10.0
    daily_quota_units: int = 10_000
    quota_buffer_units: int = 500


@dataclass
class CacheSettings:
    fast_ttl_seconds: float = 60.0
    normal_ttl_seconds: float = 600.0
    snapshot_key: str = "live-status:snapshot"


@dataclass
class RosterSettings:
    config_key: str = "streamers:config"
    state_key: str = "channels:state"
    default_groups: List[str] = field(default_factory=list)
    seed_path: str = "shared/config/channels.json"


@dataclass
class ApiSettings:
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8210
    allow_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class HashtagSettings:
    enabled: bool = False
    hashtag: str = ""
    cache_ttl_seconds: float = 2 * 60 * 60
    max_results: int = 50
    cache_key_prefix: str = "hashtag:search:"


@dataclass
class SystemConfig:
    resolver: ResolverSettings = field(default_factory=ResolverSettings)
    youtube: YouTubeSettings = field(default_factory=YouTubeSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    roster: RosterSettings = field(default_factory=RosterSettings)
    api: ApiSettings = field(default_factory=ApiSettings)
    hashtag: HashtagSettings = field(default_factory=HashtagSettings)
    state_dir: Optional[str] = None


def _load_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        log.warning(f"system.json not found at {path}; using defaults")
        return {}

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
            return data if isinstance(data, dict) else {}
    except Exception as e:  # pragma: no cover - defensive
        log.warning(f"Failed to load system.json ({e}); using defaults")
        return {}


# ------------------------------------------------------------
# Field coercion (per-field fallback, never fatal)
# ------------------------------------------------------------

def _number(raw: Dict[str, Any], key: str, default, *, minimum=0, cast=float):
    if key not in raw:
        return default
    value = raw.get(key)
    if isinstance(value, bool):
        value = None
    try:
        coerced = cast(value)
    except Exception:
        log.warning(f"'{key}' must be numeric; using default {default}")
        return default
    if coerced < minimum:
        log.warning(f"'{key}' must be >= {minimum}; using default {default}")
        return default
    return coerced


def _string_list(raw: Dict[str, Any], key: str, default: List[str]) -> List[str]:
    value = raw.get(key)
    if value is None:
        return list(default)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    log.warning(f"'{key}' must be a list of strings; using default")
    return list(default)


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = raw.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        log.warning(f"system.json '{name}' section is not an object; using defaults")
        return {}
    return section


def _load_resolver(raw: Dict[str, Any]) -> ResolverSettings:
    defaults = ResolverSettings()

    depths = raw.get("active_probe_depths", defaults.active_probe_depths)
    if (
        isinstance(depths, (list, tuple))
        and depths
        and all(isinstance(d, int) and not isinstance(d, bool) and d > 0 for d in depths)
    ):
        depths = tuple(depths)
    else:
        log.warning("active_probe_depths must be a non-empty list of positive ints; using default")
        depths = defaults.active_probe_depths

    return ResolverSettings(
        active_window_seconds=_number(raw, "active_window_seconds", defaults.active_window_seconds),
        rss_grace_seconds=_number(raw, "rss_grace_seconds", defaults.rss_grace_seconds),
        offline_confirm_polls=_number(raw, "offline_confirm_polls", defaults.offline_confirm_polls, cast=int),
        active_probe_depths=depths,
        dormant_probe_depth=_number(raw, "dormant_probe_depth", defaults.dormant_probe_depth, minimum=1, cast=int),
        probe_concurrency=_number(raw, "probe_concurrency", defaults.probe_concurrency, minimum=1, cast=int),
    )


def _load_youtube(raw: Dict[str, Any]) -> YouTubeSettings:
    defaults = YouTubeSettings()
    batch_size = _number(raw, "batch_size", defaults.batch_size, minimum=1, cast=int)
    if batch_size > 50:
        log.warning("batch_size exceeds the videos.list id limit; clamping to 50")
        batch_size = 50

    return YouTubeSettings(
        batch_size=batch_size,
        batch_concurrency=_number(raw, "batch_concurrency", defaults.batch_concurrency, minimum=1, cast=int),
        request_timeout=_number(raw, "request_timeout", defaults.request_timeout),
        daily_quota_units=_number(raw, "daily_quota_units", defaults.daily_quota_units, cast=int),
        quota_buffer_units=_number(raw, "quota_buffer_units", defaults.quota_buffer_units, cast=int),
    )


def _load_cache(raw: Dict[str, Any]) -> CacheSettings:
    defaults = CacheSettings()
    fast = _number(raw, "fast_ttl_seconds", defaults.fast_ttl_seconds)
    normal = _number(raw, "normal_ttl_seconds", defaults.normal_ttl_seconds)
    if fast >= normal:
        log.warning("fast_ttl_seconds must be shorter than normal_ttl_seconds; using defaults")
        fast, normal = defaults.fast_ttl_seconds, defaults.normal_ttl_seconds

    return CacheSettings(
        fast_ttl_seconds=fast,
        normal_ttl_seconds=normal,
        snapshot_key=str(raw.get("snapshot_key", defaults.snapshot_key)),
    )


def _load_roster(raw: Dict[str, Any]) -> RosterSettings:
    defaults = RosterSettings()
    return RosterSettings(
        config_key=str(raw.get("config_key", defaults.config_key)),
        state_key=str(raw.get("state_key", defaults.state_key)),
        default_groups=_string_list(raw, "default_groups", defaults.default_groups),
        seed_path=str(raw.get("seed_path", defaults.seed_path)),
    )


def _load_api(raw: Dict[str, Any]) -> ApiSettings:
    defaults = ApiSettings()
    enabled = raw.get("enabled", defaults.enabled)
    if not isinstance(enabled, bool):
        log.warning("api.enabled must be boolean; defaulting to true")
        enabled = defaults.enabled

    return ApiSettings(
        enabled=enabled,
        host=str(raw.get("host", defaults.host)),
        port=_number(raw, "port", defaults.port, cast=int),
        allow_origins=_string_list(raw, "allow_origins", defaults.allow_origins),
    )


def _load_hashtag(raw: Dict[str, Any]) -> HashtagSettings:
    defaults = HashtagSettings()
    hashtag = str(raw.get("hashtag", defaults.hashtag)).lstrip("#").strip()
    enabled = raw.get("enabled", bool(hashtag))
    if not isinstance(enabled, bool):
        log.warning("hashtag.enabled must be boolean; disabling")
        enabled = False

    return HashtagSettings(
        enabled=enabled and bool(hashtag),
        hashtag=hashtag,
        cache_ttl_seconds=_number(raw, "cache_ttl_seconds", defaults.cache_ttl_seconds),
        max_results=min(50, _number(raw, "max_results", defaults.max_results, minimum=1, cast=int)),
        cache_key_prefix=str(raw.get("cache_key_prefix", defaults.cache_key_prefix)),
    )


def load_system_config(raw: Optional[Dict[str, Any]] = None) -> SystemConfig:
    raw = raw if raw is not None else _load_json(_CONFIG_PATH)
    if not isinstance(raw, dict):
        raw = {}

    state_dir = raw.get("state_dir")

    return SystemConfig(
        resolver=_load_resolver(_section(raw, "resolver")),
        youtube=_load_youtube(_section(raw, "youtube")),
        cache=_load_cache(_section(raw, "cache")),
        roster=_load_roster(_section(raw, "roster")),
        api=_load_api(_section(raw, "api")),
        hashtag=_load_hashtag(_section(raw, "hashtag")),
        state_dir=str(state_dir) if isinstance(state_dir, str) and state_dir else None,
    )
