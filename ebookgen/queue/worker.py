"""
Page worker.

Pops dispatch records and drives each page through
queued -> processing -> completed/failed. Popping a record is the hand-off:
from then until the terminal transition this worker alone owns the page.

Nothing that happens while processing a page is allowed to stop the loop.
Failures are logged (store and unexpected errors followed by a pause), and
the in-flight page is marked failed unless it already reached a terminal state.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional

from ebookgen.config import config
from ebookgen.errors import EbookError, NotFound, StoreError
from ebookgen.generation.engine import ChunkedGenerationEngine, GenerationReport
from ebookgen.jobs.state_machine import UnitStateMachine
from ebookgen.store.models import DispatchRecord, UnitStatus
from ebookgen.store.repository import EbookStore
from ebookgen.utils.logging import worker_logger as logger


@dataclass
class ProcessResult:
    """What happened to one dispatch record."""
    job_id: Optional[str]
    unit_index: Optional[int]
    outcome: str  # completed | failed | skipped | store_error | error
    error: Optional[str] = None
    report: Optional[GenerationReport] = None

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "unit_index": self.unit_index,
            "outcome": self.outcome,
            "error": self.error,
        }


class PageWorker:
    """
    Processes pages from the dispatch queue until stopped.

    Usage:
        worker = PageWorker(store, engine)
        await worker.run()          # forever
        await worker.run_burst()    # until the queue is empty
    """

    def __init__(
        self,
        store: EbookStore,
        engine: ChunkedGenerationEngine,
        state_machine: Optional[UnitStateMachine] = None,
        poll_seconds: Optional[int] = None,
        error_backoff_seconds: Optional[float] = None,
        name: Optional[str] = None,
    ):
        self.store = store
        self.engine = engine
        self.state_machine = state_machine or UnitStateMachine(store)
        self.poll_seconds = poll_seconds or config.WORKER_POLL_SECONDS
        self.error_backoff = (
            config.WORKER_ERROR_BACKOFF_SECONDS if error_backoff_seconds is None else error_backoff_seconds
        )
        self.name = name or "worker"

        self._shutdown = asyncio.Event()
        self._in_flight: Optional[DispatchRecord] = None
        self.processed = 0

    @property
    def current_page(self) -> Optional[DispatchRecord]:
        return self._in_flight

    def stop(self):
        self._shutdown.set()

    async def run(self):
        """Loop until stop() is called. Idle time is spent inside BRPOP."""
        logger.info("Worker started", worker=self.name, queue=self.store.queue_name)
        while not self._shutdown.is_set():
            await self.run_once(block=True)
        logger.info("Worker stopped", worker=self.name, processed=self.processed)

    async def run_burst(self, max_items: Optional[int] = None) -> List[ProcessResult]:
        """Process records until the queue is empty (or `max_items` were handled)."""
        results = []
        while max_items is None or len(results) < max_items:
            if self._shutdown.is_set():
                break
            result = await self.run_once(block=False)
            if result is None:
                break
            results.append(result)
            if result.outcome in ("store_error", "error") and result.job_id is None:
                break
        return results

    async def run_once(self, block: bool = False) -> Optional[ProcessResult]:
        """
        One loop iteration. Never raises for anything that happens to a page.

        Returns:
            None if the queue was empty, otherwise what happened to the record
        """
        try:
            if block:
                record = await self.store.pop_dispatch_blocking(self.poll_seconds)
            else:
                record = await self.store.pop_dispatch()
            if record is None:
                return None

            self._in_flight = record
            result = await self.process(record)
            self.processed += 1
            return result

        except StoreError as e:
            logger.error("Store error in worker loop", worker=self.name, **self._in_flight_context(), error=str(e))
            await asyncio.sleep(self.error_backoff)
            return await self._abandon(f"Store error while processing page: {e}", "store_error", e)

        except EbookError as e:
            # e.g. the page record vanished between transitions
            logger.error("Page could not be processed", worker=self.name, **self._in_flight_context(), error=str(e))
            return await self._abandon(str(e), "failed", e)

        except Exception as e:
            logger.critical(
                "Unexpected error in worker loop",
                worker=self.name,
                **self._in_flight_context(),
                error=f"{e.__class__.__name__}: {e}",
            )
            await asyncio.sleep(self.error_backoff)
            return await self._abandon(f"Unexpected error while processing page: {e}", "error", e)

        finally:
            self._in_flight = None

    def _in_flight_context(self) -> dict:
        record = self._in_flight
        return {
            "job_id": record.job_id if record else None,
            "unit_index": record.unit_index if record else None,
        }

    async def _abandon(self, message: str, outcome: str, error: Exception) -> ProcessResult:
        """Fail the page this worker still owns, if any, and report the outcome."""
        record = self._in_flight
        if record is not None:
            await self._mark_failed_safely(record, message)
        return ProcessResult(
            job_id=record.job_id if record else None,
            unit_index=record.unit_index if record else None,
            outcome=outcome,
            error=str(error) or error.__class__.__name__,
        )

    async def process(self, record: DispatchRecord) -> ProcessResult:
        job_id, unit_index = record.job_id, record.unit_index

        try:
            job = await self.store.get_job(job_id)
        except NotFound:
            logger.error("Job not found for dispatched page", job_id=job_id, unit_index=unit_index)
            await self._mark_failed_safely(record, f"Job {job_id} not found")
            return ProcessResult(job_id, unit_index, "failed", error="job not found")

        try:
            unit = await self.store.get_unit(job_id, unit_index)
        except NotFound:
            logger.error("Page not found for dispatched record", job_id=job_id, unit_index=unit_index)
            return ProcessResult(job_id, unit_index, "failed", error="page not found")

        if unit.status != UnitStatus.QUEUED:
            logger.warning(
                "Skipping dispatch record for page that is not queued",
                job_id=job_id,
                unit_index=unit_index,
                status=unit.status.value,
            )
            return ProcessResult(job_id, unit_index, "skipped", error=f"page is {unit.status.value}")

        units = await self.store.get_units(job_id, job.total_units)
        all_titles = [u.title for u in units]

        await self.state_machine.transition(job_id, unit_index, UnitStatus.PROCESSING)
        logger.info("Processing page", worker=self.name, job_id=job_id, unit_index=unit_index, title=unit.title)

        try:
            report = await self.engine.generate_unit(job, unit, all_titles)
        except StoreError:
            raise
        except Exception as e:
            error_msg = str(e) or e.__class__.__name__
            logger.error("Page generation failed", job_id=job_id, unit_index=unit_index, error=error_msg)
            await self.state_machine.transition(
                job_id, unit_index, UnitStatus.FAILED, error_message=error_msg
            )
            return ProcessResult(job_id, unit_index, "failed", error=error_msg)

        await self.state_machine.transition(
            job_id, unit_index, UnitStatus.COMPLETED, content=report.content
        )
        # Terminal state recorded; a later store error must not fail this page
        self._in_flight = None

        try:
            await self.engine.discard_cache(job, unit_index)
        except StoreError as e:
            logger.warning("Could not discard chunk cache", job_id=job_id, unit_index=unit_index, error=str(e))

        logger.info("Page completed", worker=self.name, job_id=job_id, unit_index=unit_index)
        return ProcessResult(job_id, unit_index, "completed", report=report)

    async def _mark_failed_safely(self, record: DispatchRecord, message: str):
        try:
            # A page whose terminal state was already written keeps it; the
            # reconciler repairs any counter update that was lost with it.
            unit = await self.store.get_unit(record.job_id, record.unit_index)
            if unit.status not in (UnitStatus.QUEUED, UnitStatus.PROCESSING):
                logger.warning(
                    "Page already terminal, not marking failed",
                    job_id=record.job_id,
                    unit_index=record.unit_index,
                    status=unit.status.value,
                )
                return
            await self.state_machine.transition(
                record.job_id, record.unit_index, UnitStatus.FAILED, error_message=message
            )
        except NotFound:
            logger.warning(
                "Page to mark failed does not exist",
                job_id=record.job_id,
                unit_index=record.unit_index,
            )
        except Exception as e:
            logger.critical(
                "Could not mark page failed",
                job_id=record.job_id,
                unit_index=record.unit_index,
                error=str(e),
            )
