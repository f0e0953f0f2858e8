"""
Counter reconciliation and stale-page recovery.

Counters are maintained incrementally by the state machine. This module is
the consistency backstop: it recomputes them from the page records and
fails pages whose worker died while holding them.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List

from ebookgen.errors import EbookError, NotFound
from ebookgen.jobs.state_machine import UnitStateMachine
from ebookgen.store.models import (
    COUNTER_FIELDS,
    UnitStatus,
    derive_job_status,
    now_ms,
)
from ebookgen.store.repository import EbookStore
from ebookgen.utils.logging import scheduler_logger as logger


@dataclass
class ReconcileResult:
    """Outcome of reconciling one job."""
    job_id: str
    drifted: bool
    applied: bool
    before: Dict[str, int] = field(default_factory=dict)
    after: Dict[str, int] = field(default_factory=dict)
    status: str = ""
    missing_units: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "drifted": self.drifted,
            "applied": self.applied,
            "before": self.before,
            "after": self.after,
            "status": self.status,
            "missing_units": self.missing_units,
        }


class Reconciler:
    """
    Recomputes job counters from page records.

    Usage:
        reconciler = Reconciler(store)
        await reconciler.reconcile_all()
        await reconciler.reap_stale_processing(threshold_seconds=900)
    """

    def __init__(self, store: EbookStore, state_machine: UnitStateMachine | None = None):
        self.store = store
        self.state_machine = state_machine or UnitStateMachine(store)

    async def reconcile_job(self, job_id: str) -> ReconcileResult:
        job = await self.store.get_job(job_id)
        units = await self.store.get_units(job_id, job.total_units)

        counts = {name: 0 for name in COUNTER_FIELDS.values()}
        for unit in units:
            counts[COUNTER_FIELDS[unit.status]] += 1

        # Pages that never got written can never be processed
        missing = job.total_units - len(units)
        if missing > 0:
            counts[COUNTER_FIELDS[UnitStatus.FAILED]] += missing
            logger.warning("Job has missing page records", job_id=job_id, missing=missing)

        before = {
            "queued": job.queued,
            "processing": job.processing,
            "completed": job.completed,
            "failed": job.failed,
        }
        status = derive_job_status(
            counts["queued"], counts["processing"], counts["completed"], counts["failed"],
            job.total_units,
        )

        drifted = counts != before or status != job.status
        applied = False
        if drifted:
            applied = await self.store.replace_counters(job_id, counts, status.value, expected=before)
            if applied:
                logger.warning(
                    "Reconciled job counters",
                    job_id=job_id,
                    before=before,
                    after=counts,
                    status=status.value,
                )
            else:
                # A transition landed while we were counting; next pass will retry
                logger.info("Job changed during reconcile, skipped", job_id=job_id)

        return ReconcileResult(
            job_id=job_id,
            drifted=drifted,
            applied=applied,
            before=before,
            after=counts,
            status=status.value,
            missing_units=max(missing, 0),
        )

    async def reconcile_all(self) -> List[ReconcileResult]:
        results = []
        for job_id in await self.store.list_job_ids():
            try:
                results.append(await self.reconcile_job(job_id))
            except EbookError as e:
                logger.error("Reconcile failed", job_id=job_id, error=str(e))
        return results

    async def reap_stale_processing(self, threshold_seconds: int) -> int:
        """
        Fail pages that have been in `processing` longer than the threshold.

        Pages are failed rather than requeued; requeueing stays an explicit
        decision so two workers never race on the same page.

        Returns:
            Number of pages marked failed
        """
        cutoff = now_ms() - threshold_seconds * 1000
        reaped = 0

        for job_id in await self.store.list_job_ids():
            try:
                job = await self.store.get_job(job_id)
                units = await self.store.get_units(job_id, job.total_units)
            except EbookError as e:
                logger.error("Could not scan job for stale pages", job_id=job_id, error=str(e))
                continue

            # Page records decide; the processing counter may have drifted
            for unit in units:
                if unit.status != UnitStatus.PROCESSING or unit.updated_at >= cutoff:
                    continue
                try:
                    await self.state_machine.transition(
                        job_id,
                        unit.index,
                        UnitStatus.FAILED,
                        error_message=f"Processing timed out after {threshold_seconds}s without completion",
                    )
                    reaped += 1
                    logger.warning("Failed stale page", job_id=job_id, unit_index=unit.index)
                except NotFound:
                    continue
                except EbookError as e:
                    logger.error("Could not fail stale page", job_id=job_id, unit_index=unit.index, error=str(e))

        return reaped
