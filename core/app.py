import asyncio
import os
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx
from dotenv import load_dotenv

from core.cache import SnapshotCache
from core.config_loader import ConfigLoader
from core.registry import ChannelRegistry
from core.resolver import LiveStatusResolver
from services.status_api import StatusApiRoutes, StatusApiServer
from services.youtube.api.channels import YouTubeChannelsAPI
from services.youtube.api.feed import FeedProber
from services.youtube.api.search import HashtagSearch
from services.youtube.api.videos import VideoStatusBatcher
from shared.config.system import SystemConfig, load_system_config
from shared.logging.logger import get_logger
from shared.runtime.quotas import QuotaTracker, build_youtube_quota
from shared.storage.kv import JsonFileKVStore, KVStore
from shared.storage.state_store import ChannelStateStore

log = get_logger("core.app")


@dataclass
class Runtime:
    config: SystemConfig
    kv: KVStore
    client: httpx.AsyncClient
    quota: QuotaTracker
    registry: ChannelRegistry
    resolver: LiveStatusResolver
    cache: SnapshotCache
    routes: StatusApiRoutes


def resolve_api_key() -> Optional[str]:
    return os.getenv("YT_API_KEY") or os.getenv("YOUTUBE_API_KEY")


def build_runtime(
    config: SystemConfig,
    *,
    api_key: str,
    admin_token: Optional[str] = None,
    cron_secret: Optional[str] = None,
    kv: Optional[KVStore] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Runtime:
    """Wire every component from config; nothing is started here."""

    if not api_key:
        raise RuntimeError("YT_API_KEY is required")

    kv = kv or JsonFileKVStore(config.state_dir)
    client = client or httpx.AsyncClient(
        timeout=config.youtube.request_timeout,
        follow_redirects=True,
    )
    quota = build_youtube_quota(
        max_units=config.youtube.daily_quota_units,
        buffer_units=config.youtube.quota_buffer_units,
    )

    registry = ChannelRegistry(
        kv,
        key=config.roster.config_key,
        config_loader=ConfigLoader(Path(config.roster.seed_path)),
        default_groups=config.roster.default_groups,
    )

    resolver = LiveStatusResolver(
        registry=registry,
        state_store=ChannelStateStore(kv, key=config.roster.state_key),
        prober=FeedProber(client=client, timeout=config.youtube.request_timeout),
        batcher=VideoStatusBatcher(
            api_key=api_key,
            client=client,
            batch_size=config.youtube.batch_size,
            concurrency=config.youtube.batch_concurrency,
            timeout=config.youtube.request_timeout,
            quota=quota,
        ),
        settings=config.resolver,
    )

    cache = SnapshotCache(
        resolver.resolve,
        fast_ttl=config.cache.fast_ttl_seconds,
        normal_ttl=config.cache.normal_ttl_seconds,
        kv=kv,
        kv_key=config.cache.snapshot_key,
    )

    hashtag_search = None
    if config.hashtag.enabled:
        hashtag_search = HashtagSearch(
            api_key=api_key,
            hashtag=config.hashtag.hashtag,
            kv=kv,
            client=client,
            cache_ttl=config.hashtag.cache_ttl_seconds,
            max_results=config.hashtag.max_results,
            cache_key_prefix=config.hashtag.cache_key_prefix,
            quota=quota,
        )

    routes = StatusApiRoutes(
        cache=cache,
        registry=registry,
        channels_api=YouTubeChannelsAPI(api_key=api_key, client=client, quota=quota),
        hashtag_search=hashtag_search,
        quota=quota,
        admin_token=admin_token,
        cron_secret=cron_secret,
    )

    return Runtime(
        config=config,
        kv=kv,
        client=client,
        quota=quota,
        registry=registry,
        resolver=resolver,
        cache=cache,
        routes=routes,
    )


async def main(stop_event: asyncio.Event):
    # --------------------------------------------------
    # ENV + CONFIG
    # --------------------------------------------------
    load_dotenv()
    log.info("Environment variables loaded")
    log.info("Multiview live-status service booting")

    config = load_system_config()

    admin_token = os.getenv("ADMIN_TOKEN")
    cron_secret = os.getenv("CRON_SECRET")
    if not admin_token:
        log.warning("ADMIN_TOKEN not set; roster admin endpoints will reject all requests")

    runtime = build_runtime(
        config,
        api_key=resolve_api_key(),
        admin_token=admin_token,
        cron_secret=cron_secret,
    )
    log.info(f"Loaded {len(runtime.registry.list())} roster channel(s)")

    # --------------------------------------------------
    # HTTP SURFACE
    # --------------------------------------------------
    server = StatusApiServer(config.api, runtime.routes, asyncio.get_running_loop())
    server.start()

    # --------------------------------------------------
    # BLOCK UNTIL SHUTDOWN SIGNAL
    # --------------------------------------------------
    await stop_event.wait()

    log.info("Shutdown initiated")

    try:
        server.stop()
    except Exception as e:
        log.warning(f"Status API shutdown error ignored: {e}")

    try:
        await runtime.client.aclose()
    except Exception as e:
        log.warning(f"HTTP client shutdown error ignored: {e}")

    log.info("Multiview live-status service stopped")


# ----------------------------------------------------------------------
# SIGNAL HANDLING (WINDOWS-SAFE)
# ----------------------------------------------------------------------

def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    stop_event: asyncio.Event,
):
    """
    Windows-safe Ctrl+C handler.
    Uses signal.signal + asyncio.Event to unwind cleanly.
    """

    def _handler(signum, frame):
        try:
            loop.call_soon_threadsafe(stop_event.set)
        except RuntimeError:
            stop_event.set()

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except (ValueError, OSError) as e:
        log.warning(f"Signal handlers not installed: {e}")


# ----------------------------------------------------------------------
# ENTRYPOINT
# ----------------------------------------------------------------------

def run():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    stop_event = asyncio.Event()
    _install_signal_handlers(loop, stop_event)

    try:
        loop.run_until_complete(main(stop_event))

    except KeyboardInterrupt:
        log.info("KeyboardInterrupt received; shutdown initiated")

    finally:
        # --------------------------------------------------
        # CANCEL REMAINING TASKS (CLEANLY)
        # --------------------------------------------------
        pending = [t for t in asyncio.all_tasks(loop) if not t.done()]
        for task in pending:
            task.cancel()

        if pending:
            loop.run_until_complete(
                asyncio.gather(*pending, return_exceptions=True)
            )

        loop.run_until_complete(loop.shutdown_asyncgens())

        asyncio.set_event_loop(None)
        loop.close()


if __name__ == "__main__":
    run()
    sys.exit(0)
