"""
Ebook generation queue.

Ebooks are split into pages, queued in Redis, and generated chunk by chunk
by any number of worker processes.

Usage:
    from ebookgen.store import EbookStore, get_redis_connection
    from ebookgen.jobs import JobRegistry

    store = EbookStore(await get_redis_connection())
    job_id, job = await JobRegistry(store).create_job(title, description, "MEDIUM", titles)
"""

__version__ = "0.1.0"
