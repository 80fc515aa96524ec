"""Command-line entry point.

Usage::

    python -m formation_tracker ingest [YYYY-MM-DD]     # IMAP → raw-message table
    python -m formation_tracker analyze [--force]       # classify + extract pending emails
    python -m formation_tracker fuse [--no-geocode]     # analyzed emails → formations
    python -m formation_tracker geocache <stats|clear-failed|clear|preload|reapply>
    python -m formation_tracker llm-cache <count|invalidate-stale>
"""

from __future__ import annotations

import asyncio
import signal
import sys
from datetime import UTC, datetime

import structlog

from .config import TrackerConfig
from .extraction_cache import ExtractionCache
from .geocoding import GeocodingCache, build_registry
from .logging import setup_logging
from .store import TrackerStore, open_store

logger = structlog.get_logger()

USAGE = (
    "Usage: python -m formation_tracker "
    "<ingest|analyze|fuse|geocache|llm-cache> [options]"
)

GEOCACHE_ACTIONS = ("stats", "clear-failed", "clear", "preload", "reapply")
LLM_CACHE_ACTIONS = ("count", "invalidate-stale")


def _stop_on_signals(stop_event: asyncio.Event) -> None:
    """Set *stop_event* on SIGTERM or SIGINT; a stopped fusion keeps what it wrote."""
    loop = asyncio.get_running_loop()

    def _stop(sig: signal.Signals) -> None:
        logger.info("stop_signal_received", signal=sig.name)
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _stop, sig)


async def _ingest(config: TrackerConfig, store: TrackerStore, args: list[str]) -> None:
    from .mail import AsyncImapClient, MailIngestor

    since = datetime.strptime(args[0], "%Y-%m-%d").replace(tzinfo=UTC) if args else None
    async with AsyncImapClient(config.imap) as client:
        report = await MailIngestor(client, store.messages).ingest(since)
    print(report.model_dump_json(indent=2))


async def _analyze(config: TrackerConfig, store: TrackerStore, args: list[str]) -> None:
    from .llm import EmailAnalyzer, LLMClient

    cache = ExtractionCache(store.extraction_cache, config.llm.model_version)
    client = LLMClient(config.llm, config.retry)
    try:
        analyzer = EmailAnalyzer(client, cache, store.messages, config.llm)
        report = await analyzer.analyze_pending(force="--force" in args)
    finally:
        await client.aclose()
    print(report.model_dump_json(indent=2))


async def _fuse(config: TrackerConfig, store: TrackerStore, args: list[str]) -> None:
    from .fusion import FusionOrchestrator, FusionProgress, StoreMessageSource

    stop_event = asyncio.Event()
    _stop_on_signals(stop_event)

    def report_progress(progress: FusionProgress) -> None:
        logger.info("fusion_progress", status=progress.status.value, message=progress.message)

    registry = build_registry(config.geocoding)
    try:
        orchestrator = FusionOrchestrator(
            StoreMessageSource(store.messages),
            ExtractionCache(store.extraction_cache, config.llm.model_version),
            store.formations,
            geocoder=GeocodingCache(store.geocache, registry.select(config.geocoding.provider)),
            on_progress=report_progress,
            stop_event=stop_event,
        )
        report = await orchestrator.run(geocode=config.geocode and "--no-geocode" not in args)
    finally:
        await registry.aclose()
    print(report.model_dump_json(indent=2))
    if not report.success:
        sys.exit(2)


async def _geocache(config: TrackerConfig, store: TrackerStore, args: list[str]) -> None:
    if not args or args[0] not in GEOCACHE_ACTIONS:
        print(f"Usage: python -m formation_tracker geocache <{'|'.join(GEOCACHE_ACTIONS)}>", file=sys.stderr)
        sys.exit(1)

    registry = build_registry(config.geocoding)
    cache = GeocodingCache(store.geocache, registry.select(config.geocoding.provider))
    try:
        action = args[0]
        if action == "stats":
            print((await cache.stats()).model_dump_json(indent=2))
        elif action == "clear-failed":
            print(f"{await cache.clear_failed_entries()} failed entries removed")
        elif action == "clear":
            await cache.clear_all()
            print("geocache cleared")
        elif action == "preload":
            print(f"{await cache.preload_known_locations()} known locations added")
        elif action == "reapply":
            print(f"{await cache.reapply_to_formations(store.formations)} formations updated")
    finally:
        await registry.aclose()


async def _llm_cache(config: TrackerConfig, store: TrackerStore, args: list[str]) -> None:
    if not args or args[0] not in LLM_CACHE_ACTIONS:
        print(f"Usage: python -m formation_tracker llm-cache <{'|'.join(LLM_CACHE_ACTIONS)}>", file=sys.stderr)
        sys.exit(1)

    cache = ExtractionCache(store.extraction_cache, config.llm.model_version)
    if args[0] == "count":
        print(await cache.count())
    else:
        print(f"{await cache.invalidate_stale()} stale entries removed")


COMMANDS = {
    "ingest": _ingest,
    "analyze": _analyze,
    "fuse": _fuse,
    "geocache": _geocache,
    "llm-cache": _llm_cache,
}


async def _run(command: str, args: list[str]) -> None:
    config = TrackerConfig()
    setup_logging(json=config.log_json, level=config.log_level)
    store = await open_store(config.store)
    try:
        await COMMANDS[command](config, store, args)
    finally:
        await store.close()


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        print(USAGE, file=sys.stderr)
        sys.exit(1)
    asyncio.run(_run(sys.argv[1], sys.argv[2:]))


if __name__ == "__main__":
    main()
