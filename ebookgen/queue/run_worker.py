#!/usr/bin/env python3
"""
Page worker process.

Run any number of these side by side; each pops pages from the shared
dispatch queue independently.

Usage:
    python -m ebookgen.queue.run_worker                  # run forever
    python -m ebookgen.queue.run_worker --burst          # drain the queue and exit
    python -m ebookgen.queue.run_worker --burst -m 5     # process at most 5 pages
"""

import argparse
import asyncio
import os
import signal
import socket
import sys

from ebookgen.config import config
from ebookgen.errors import StoreError
from ebookgen.generation.engine import ChunkedGenerationEngine, GenerationSettings
from ebookgen.generation.generator import AnthropicGenerator
from ebookgen.queue.worker import PageWorker
from ebookgen.store.connection import close_redis_connection, get_redis_connection
from ebookgen.store.repository import EbookStore
from ebookgen.utils.logging import LogLevel, configure_logging, get_log_buffer, worker_logger as logger


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run an ebook page worker")
    parser.add_argument(
        "--burst",
        "-b",
        action="store_true",
        help="Process queued pages until the queue is empty, then exit"
    )
    parser.add_argument(
        "--max-items",
        "-m",
        type=int,
        default=None,
        help="With --burst, stop after this many pages"
    )
    parser.add_argument(
        "--name",
        "-n",
        default=None,
        help="Worker name (defaults to host:pid)"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging"
    )
    return parser.parse_args(argv)


async def build_worker(name: str) -> PageWorker:
    store = EbookStore(await get_redis_connection())
    engine = ChunkedGenerationEngine(
        AnthropicGenerator(),
        store,
        GenerationSettings.from_config(config),
    )
    return PageWorker(store, engine, name=name)


async def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging("DEBUG" if args.verbose else config.LOG_LEVEL)

    if not config.redis_configured:
        print("❌ ERROR: REDIS_URL environment variable is required")
        return 1
    if not config.generator_configured:
        logger.warning("ANTHROPIC_API_KEY is not set; every page will fail")

    name = args.name or f"{socket.gethostname()}:{os.getpid()}"

    try:
        worker = await build_worker(name)
    except StoreError as e:
        print(f"❌ Worker error: {e}")
        return 1

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, worker.stop)

    print(f"🚀 Worker {name} starting {'(burst mode)' if args.burst else ''}")
    print(f"📋 Listening on queue: {worker.store.queue_name}")
    print("-" * 50)

    try:
        if args.burst:
            results = await worker.run_burst(max_items=args.max_items)
            completed = sum(1 for r in results if r.outcome == "completed")
            print(f"✅ Burst finished: {len(results)} processed, {completed} completed")
            for result in results:
                if result.outcome in ("completed", "skipped") or not result.job_id:
                    continue
                print(f"⚠️  {result.job_id} page {result.unit_index + 1}: {result.outcome} ({result.error})")
                for entry in get_log_buffer().get_recent(limit=3, level=LogLevel.ERROR, job_id=result.job_id):
                    print(f"     {entry['source']}: {entry['message']}")
        else:
            await worker.run()
    finally:
        await close_redis_connection()

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
