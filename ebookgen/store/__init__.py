"""
Durable store for jobs, pages, the dispatch queue and the chunk cache.

Usage:
    from ebookgen.store import EbookStore, get_redis_connection
    store = EbookStore(await get_redis_connection())
"""

from ebookgen.store.connection import (
    get_redis_connection,
    close_redis_connection,
    redis_health_check,
)
from ebookgen.store.models import (
    UnitStatus,
    JobStatus,
    ContentMode,
    ModeConfig,
    CONTENT_MODES,
    Job,
    WorkUnit,
    DispatchRecord,
    derive_job_status,
)
from ebookgen.store.repository import EbookStore

__all__ = [
    # Connection
    "get_redis_connection",
    "close_redis_connection",
    "redis_health_check",

    # Records
    "UnitStatus",
    "JobStatus",
    "ContentMode",
    "ModeConfig",
    "CONTENT_MODES",
    "Job",
    "WorkUnit",
    "DispatchRecord",
    "derive_job_status",

    # Access layer
    "EbookStore",
]
