"""
Worker processes for ebook page generation.

Usage:
    python -m ebookgen.queue.run_worker       # page worker (run several)
    python -m ebookgen.queue.run_scheduler    # counter reconciler / stale page reaper
"""

from .worker import PageWorker, ProcessResult

__all__ = [
    "PageWorker",
    "ProcessResult",
]
