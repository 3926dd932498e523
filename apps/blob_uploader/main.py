"""Blob uploader service: Redis channel in, time-partitioned append objects out."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal

from apps.blob_uploader.subscriber import BusSubscriber
from core.bus import Bus
from core.config import Config, load_config
from core.logging import setup_json_logging
from storage.factory import build_store
from uploader.saver import BlobSaver


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Buffer channel records into append-only blobs")
    parser.add_argument(
        "--config-root",
        default=".",
        help="Directory containing config/ (defaults to current working directory)",
    )
    parser.add_argument(
        "--channel",
        default=None,
        help="Override the Redis channel from config",
    )
    return parser


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):  # non-posix event loops
            loop.add_signal_handler(sig, stop.set)


async def run(cfg: Config, stop: asyncio.Event, channel: str | None = None) -> None:
    logger = setup_json_logging(cfg.logging.log_dir, cfg.logging.level, service=cfg.app.name)

    store = build_store(cfg.storage)
    created = await store.ensure_container(cfg.storage.public_container)
    saver = BlobSaver.from_config(store, cfg.batching)
    bus = Bus(cfg.redis.url)
    subscriber = BusSubscriber(bus, saver, channel or cfg.redis.channel)

    logger.info(
        "blob_uploader.start",
        backend=cfg.storage.backend,
        container=cfg.storage.container,
        container_created=created,
        channel=subscriber.channel,
        hourly=cfg.batching.use_hourly_partitioning,
    )

    try:
        subscriber.start()
        await stop.wait()
        logger.info("blob_uploader.stopping", pending=saver.pending)
    finally:
        await subscriber.stop()
        await store.close()
        await bus.close()
        logger.info("blob_uploader.stop")


async def serve(config_root: str, channel: str | None = None) -> None:
    cfg = load_config(config_root)
    stop = asyncio.Event()
    _install_signal_handlers(stop)
    await run(cfg, stop, channel)


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        asyncio.run(serve(args.config_root, args.channel))
    except (FileNotFoundError, ValueError) as exc:
        parser.error(str(exc))


if __name__ == "__main__":  # pragma: no cover - manual execution path
    main()
