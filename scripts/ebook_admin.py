#!/usr/bin/env python3
"""
Ebook Admin Helper

Create ebooks, inspect their progress, requeue failed pages and export
finished text from the command line.

Usage:
    python scripts/ebook_admin.py health
    python scripts/ebook_admin.py create "Title" --description "..." --pages 10 --mode MEDIUM
    python scripts/ebook_admin.py status <job_id>
    python scripts/ebook_admin.py list
    python scripts/ebook_admin.py requeue <job_id> [--page N]
    python scripts/ebook_admin.py reconcile [<job_id>]
    python scripts/ebook_admin.py export <job_id> [--output book.md]

Requirements:
    - REDIS_URL (and ANTHROPIC_API_KEY for `create`) in the environment or .env
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from ebookgen.config import config
from ebookgen.errors import EbookError
from ebookgen.export import render_markdown
from ebookgen.generation import AnthropicGenerator, create_job_from_outline, generate_description
from ebookgen.jobs import JobRegistry, Reconciler
from ebookgen.store import EbookStore, close_redis_connection, get_redis_connection, redis_health_check
from ebookgen.utils.logging import LogLevel, get_log_buffer


def print_job(job, units):
    print(f"\n📘 {job.title}  ({job.id})")
    print(f"   Status: {job.status.value}  |  {job.progress_percent}% done  |  mode {job.content_mode.value}")
    print(
        f"   Pages: {job.total_units} total, {job.queued} queued, {job.processing} processing, "
        f"{job.completed} completed, {job.failed} failed"
    )
    for unit in units:
        line = f"   {unit.index + 1:>3}. [{unit.status.value:<10}] {unit.title}"
        if unit.error:
            line += f"  ⚠️  {unit.error} (attempts: {unit.attempts})"
        print(line)


async def run(args) -> int:
    if args.command == "health":
        health = await redis_health_check()
        print(health)
        return 0 if health["connected"] else 1

    store = EbookStore(await get_redis_connection())
    registry = JobRegistry(store)

    if args.command == "create":
        generator = AnthropicGenerator()
        description = args.description or await generate_description(generator, args.title)
        job_id, job = await create_job_from_outline(
            registry, generator, args.title, description, args.mode, args.pages
        )
        print(f"✅ Queued {job.total_units} page(s) as {job_id}")
        print_job(job, await registry.get_units(job_id))

    elif args.command == "status":
        job = await registry.get_job(args.job_id)
        print_job(job, await registry.get_units(args.job_id))

    elif args.command == "list":
        for job in await registry.list_jobs(limit=args.limit):
            print(f"{job.id}  {job.status.value:<10} {job.progress_percent:>3}%  {job.title}")

    elif args.command == "requeue":
        if args.page is not None:
            await registry.requeue_unit(args.job_id, args.page - 1)
            print(f"🔁 Requeued page {args.page}")
        else:
            count = await registry.requeue_failed(args.job_id)
            print(f"🔁 Requeued {count} failed page(s)")

    elif args.command == "reconcile":
        reconciler = Reconciler(store)
        if args.job_id:
            results = [await reconciler.reconcile_job(args.job_id)]
        else:
            results = await reconciler.reconcile_all()
        for result in results:
            print(result.to_dict())

    elif args.command == "export":
        job = await registry.get_job(args.job_id)
        text = render_markdown(job, await registry.get_units(args.job_id))
        if args.output:
            Path(args.output).write_text(text, encoding="utf-8")
            print(f"💾 Wrote {args.output}")
        else:
            print(text)

    return 0


def main():
    parser = argparse.ArgumentParser(description="Ebook queue admin helper")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("health", help="Check the Redis connection")

    create = sub.add_parser("create", help="Generate an outline and queue an ebook")
    create.add_argument("title")
    create.add_argument("--description", default=None, help="Generated when omitted")
    create.add_argument("--pages", type=int, default=10)
    create.add_argument("--mode", default="MEDIUM", help="FULL, MEDIUM, MINIMAL or ULTRA_MINIMAL")

    status = sub.add_parser("status", help="Show job and page status")
    status.add_argument("job_id")

    listing = sub.add_parser("list", help="List recent jobs")
    listing.add_argument("--limit", type=int, default=20)

    requeue = sub.add_parser("requeue", help="Requeue failed pages")
    requeue.add_argument("job_id")
    requeue.add_argument("--page", type=int, default=None, help="1-based page number")

    reconcile = sub.add_parser("reconcile", help="Recompute job counters from pages")
    reconcile.add_argument("job_id", nargs="?")

    export = sub.add_parser("export", help="Export the ebook as markdown")
    export.add_argument("job_id")
    export.add_argument("--output", "-o", default=None)

    args = parser.parse_args()

    if args.command != "health" and not config.redis_configured:
        print("❌ REDIS_URL is not configured")
        return 1

    async def runner():
        try:
            return await run(args)
        finally:
            await close_redis_connection()

    try:
        return asyncio.run(runner())
    except EbookError as e:
        print(f"❌ {e}")
        errors = get_log_buffer().get_recent(limit=5, level=LogLevel.ERROR)
        for entry in errors:
            print(f"   {entry['timestamp']} {entry['source']}: {entry['message']}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
