"""
Ebook job lifecycle.

Components:
- JobRegistry: creates jobs, reads status, requeues failed pages
- UnitStateMachine: the single writer of page status and job counters
- Reconciler: recomputes counters and fails stale pages

Usage:
    registry = JobRegistry(store)
    job_id, job = await registry.create_job(title, description, "MEDIUM", titles)
    job = await registry.get_job(job_id)
"""

from ebookgen.jobs.state_machine import UnitStateMachine
from ebookgen.jobs.registry import JobRegistry
from ebookgen.jobs.reconciler import Reconciler, ReconcileResult

__all__ = [
    "UnitStateMachine",
    "JobRegistry",
    "Reconciler",
    "ReconcileResult",
]
