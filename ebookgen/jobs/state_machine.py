"""
Page state machine.

    queued -> processing -> completed
                         -> failed
    failed -> queued        (explicit requeue only)

transition() is the only code path that writes a page's status, content or
error, and the only one that moves the job counters.

The page write and the counter update are two separate Redis operations.
A crash between them leaves the counters off by one until the reconciler
recomputes them from the page records (see jobs/reconciler.py).
"""

from typing import Optional

from ebookgen.errors import ValidationError
from ebookgen.store.models import (
    COUNTER_FIELDS,
    JobStatus,
    UnitStatus,
    WorkUnit,
    now_ms,
)
from ebookgen.store.repository import EbookStore
from ebookgen.utils.logging import worker_logger as logger

ALLOWED_TRANSITIONS = {
    UnitStatus.QUEUED: {UnitStatus.PROCESSING, UnitStatus.FAILED},
    UnitStatus.PROCESSING: {UnitStatus.COMPLETED, UnitStatus.FAILED},
    UnitStatus.COMPLETED: set(),
    UnitStatus.FAILED: {UnitStatus.QUEUED, UnitStatus.FAILED},
}


class UnitStateMachine:
    """Applies page transitions and keeps the job counters in step."""

    def __init__(self, store: EbookStore, strict: bool = False):
        # strict=False logs unexpected transitions instead of rejecting them,
        # so a worker can always record a failure for the page it holds.
        self.store = store
        self.strict = strict

    async def transition(
        self,
        job_id: str,
        unit_index: int,
        new_status: UnitStatus,
        content: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> WorkUnit:
        """
        Move a page to `new_status`.

        Raises:
            NotFound: the page record does not exist
            StoreError: Redis failed or the record is malformed
            ValidationError: strict mode and the transition is not allowed
        """
        new_status = UnitStatus(new_status)
        unit = await self.store.get_unit(job_id, unit_index)
        previous = unit.status

        if new_status not in ALLOWED_TRANSITIONS[previous]:
            message = f"Unexpected page transition {previous.value} -> {new_status.value}"
            if self.strict:
                raise ValidationError(message)
            logger.warning(message, job_id=job_id, unit_index=unit_index)

        unit.status = new_status
        if new_status == UnitStatus.COMPLETED:
            unit.content = content or ""
        if new_status == UnitStatus.FAILED:
            unit.error = error_message or "Unknown error"
            unit.attempts += 1
        else:
            unit.error = None
        unit.updated_at = now_ms()

        await self.store.save_unit(unit)

        # HINCRBY on a missing job hash would create a stub record
        if not await self.store.job_exists(job_id):
            logger.warning("Page updated but its job is missing", job_id=job_id, unit_index=unit_index)
            return unit

        if previous != new_status:
            await self.store.adjust_counters(
                job_id,
                decrement=COUNTER_FIELDS[previous],
                increment=COUNTER_FIELDS[new_status],
            )
        else:
            await self.store.adjust_counters(job_id)

        if new_status == UnitStatus.PROCESSING:
            await self.store.set_job_status_if(
                job_id, JobStatus.QUEUED.value, JobStatus.PROCESSING.value
            )
        else:
            await self.refresh_job_status(job_id)

        logger.debug(
            "Page transition",
            job_id=job_id,
            unit_index=unit_index,
            previous=previous.value,
            new=new_status.value,
        )
        return unit

    async def refresh_job_status(self, job_id: str) -> JobStatus:
        """Recompute the job status from its counters and store it if it changed."""
        job = await self.store.get_job(job_id)
        derived = job.derived_status()
        if derived != job.status:
            # A concurrent refresh that already moved the status wins
            await self.store.set_job_status_if(job_id, job.status.value, derived.value)
        return derived
