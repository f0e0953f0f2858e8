"""
Job registry.

Creates ebooks and their pages, answers status reads, and performs the
explicit requeue of failed pages.
"""

import uuid
from typing import List, Optional, Tuple

from ebookgen.errors import NotFound, ValidationError
from ebookgen.jobs.state_machine import UnitStateMachine
from ebookgen.store.models import (
    ContentMode,
    DispatchRecord,
    Job,
    JobStatus,
    UnitStatus,
    WorkUnit,
    now_ms,
)
from ebookgen.store.repository import EbookStore
from ebookgen.utils.logging import registry_logger as logger


def new_job_id() -> str:
    return f"ebook_{uuid.uuid4().hex[:12]}"


class JobRegistry:
    """
    High-level interface for creating and reading ebook jobs.

    Usage:
        registry = JobRegistry(store)
        job_id, job = await registry.create_job(title, description, "MEDIUM", titles)
        job = await registry.get_job(job_id)
        pages = await registry.get_units(job_id)
    """

    def __init__(self, store: EbookStore, state_machine: Optional[UnitStateMachine] = None):
        self.store = store
        self.state_machine = state_machine or UnitStateMachine(store)

    async def create_job(
        self,
        title: str,
        description: str,
        content_mode,
        unit_titles: List[str],
    ) -> Tuple[str, Job]:
        """
        Create a job with one queued page per title and enqueue every page.

        The job hash, page hashes and dispatch records are written in one
        MULTI/EXEC: either the whole job exists and is queued, or nothing does.

        Raises:
            ValidationError: empty title, no pages, blank page title or unknown mode
            StoreError: Redis failed; nothing was created
        """
        if not title or not title.strip():
            raise ValidationError("Title is required")
        if not unit_titles:
            raise ValidationError("At least one page title is required")
        for index, unit_title in enumerate(unit_titles):
            if not isinstance(unit_title, str) or not unit_title.strip():
                raise ValidationError(f"Page {index + 1} has an empty title")

        mode = ContentMode.parse(content_mode)
        job_id = new_job_id()
        created = now_ms()

        job = Job(
            id=job_id,
            title=title.strip(),
            description=(description or "").strip(),
            content_mode=mode,
            total_units=len(unit_titles),
            queued=len(unit_titles),
            status=JobStatus.QUEUED,
            created_at=created,
            updated_at=created,
        )
        units = [
            WorkUnit(
                job_id=job_id,
                index=index,
                title=unit_title.strip(),
                created_at=created,
                updated_at=created,
            )
            for index, unit_title in enumerate(unit_titles)
        ]

        await self.store.write_job_with_units(job, units)

        logger.info(
            "Job created",
            job_id=job_id,
            pages=job.total_units,
            content_mode=mode.value,
        )
        return job_id, job

    async def get_job(self, job_id: str) -> Job:
        """Raises NotFound if the job does not exist."""
        return await self.store.get_job(job_id)

    async def get_units(self, job_id: str) -> List[WorkUnit]:
        """Pages of a job in index order. Raises NotFound if the job does not exist."""
        job = await self.store.get_job(job_id)
        return await self.store.get_units(job_id, job.total_units)

    async def list_jobs(self, limit: int = 20) -> List[Job]:
        """Most recent jobs first."""
        jobs = []
        for job_id in await self.store.list_job_ids():
            try:
                jobs.append(await self.store.get_job(job_id))
            except NotFound:
                continue
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    async def requeue_unit(self, job_id: str, unit_index: int) -> WorkUnit:
        """
        Put a failed page back on the dispatch queue.

        Only failed pages can be requeued; this is never done automatically.

        Raises:
            NotFound: the page does not exist
            ValidationError: the page is not failed
        """
        unit = await self.store.get_unit(job_id, unit_index)
        if unit.status != UnitStatus.FAILED:
            raise ValidationError(
                f"Only failed pages can be requeued (page {unit_index} is {unit.status.value})"
            )

        unit = await self.state_machine.transition(job_id, unit_index, UnitStatus.QUEUED)
        await self.store.push_dispatch(DispatchRecord(job_id, unit_index))

        logger.info("Page requeued", job_id=job_id, unit_index=unit_index, attempts=unit.attempts)
        return unit

    async def requeue_failed(self, job_id: str) -> int:
        """Requeue every failed page of a job. Returns the number requeued."""
        count = 0
        for unit in await self.get_units(job_id):
            if unit.status == UnitStatus.FAILED:
                await self.requeue_unit(job_id, unit.index)
                count += 1
        return count
