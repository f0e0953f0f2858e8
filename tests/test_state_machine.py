import pytest

from ebookgen.errors import NotFound, ValidationError
from ebookgen.jobs.state_machine import UnitStateMachine
from ebookgen.store.models import JobStatus, UnitStatus, derive_job_status
from ebookgen.store.repository import job_key


def counters(job):
    return job.queued, job.processing, job.completed, job.failed


@pytest.mark.parametrize(
    "q,p,c,f,total,expected",
    [
        (3, 0, 0, 0, 3, JobStatus.QUEUED),
        (2, 1, 0, 0, 3, JobStatus.PROCESSING),
        (1, 0, 2, 0, 3, JobStatus.PROCESSING),
        (0, 0, 3, 0, 3, JobStatus.COMPLETED),
        (0, 0, 0, 3, 3, JobStatus.FAILED),
        (0, 0, 2, 1, 3, JobStatus.PARTIAL),
        (0, 1, 1, 1, 3, JobStatus.PROCESSING),
    ],
)
def test_derive_job_status(q, p, c, f, total, expected):
    assert derive_job_status(q, p, c, f, total) == expected


@pytest.mark.asyncio
async def test_counters_always_sum_to_total(registry, state_machine, store):
    job_id, _ = await registry.create_job("Sums", "", "MINIMAL", ["a", "b", "c"])

    steps = [
        (0, UnitStatus.PROCESSING),
        (1, UnitStatus.PROCESSING),
        (0, UnitStatus.COMPLETED),
        (1, UnitStatus.FAILED),
        (2, UnitStatus.PROCESSING),
        (1, UnitStatus.QUEUED),
        (2, UnitStatus.COMPLETED),
    ]
    for index, status in steps:
        await state_machine.transition(job_id, index, status, content="text")
        job = await store.get_job(job_id)
        assert sum(counters(job)) == job.total_units
        assert min(counters(job)) >= 0

    assert counters(await store.get_job(job_id)) == (1, 0, 2, 0)


@pytest.mark.asyncio
async def test_first_processing_moves_job_to_processing(registry, state_machine, store):
    job_id, _ = await registry.create_job("Status", "", "MINIMAL", ["a", "b"])

    await state_machine.transition(job_id, 0, UnitStatus.PROCESSING)

    job = await store.get_job(job_id)
    assert job.status == JobStatus.PROCESSING
    assert counters(job) == (1, 1, 0, 0)


@pytest.mark.asyncio
async def test_job_status_follows_terminal_transitions(registry, state_machine, store):
    job_id, _ = await registry.create_job("Mixed", "", "MINIMAL", ["a", "b"])

    await state_machine.transition(job_id, 0, UnitStatus.PROCESSING)
    await state_machine.transition(job_id, 0, UnitStatus.COMPLETED, content="done")
    assert (await store.get_job(job_id)).status == JobStatus.PROCESSING

    await state_machine.transition(job_id, 1, UnitStatus.PROCESSING)
    await state_machine.transition(job_id, 1, UnitStatus.FAILED, error_message="boom")
    assert (await store.get_job(job_id)).status == JobStatus.PARTIAL


@pytest.mark.asyncio
async def test_completed_stores_content_and_failed_stores_error(registry, state_machine, store):
    job_id, _ = await registry.create_job("Fields", "", "MINIMAL", ["a", "b"])

    await state_machine.transition(job_id, 0, UnitStatus.PROCESSING)
    done = await state_machine.transition(job_id, 0, UnitStatus.COMPLETED, content="Page body")
    assert done.content == "Page body"
    assert done.attempts == 0

    await state_machine.transition(job_id, 1, UnitStatus.PROCESSING)
    failed = await state_machine.transition(job_id, 1, UnitStatus.FAILED, error_message="timeout")

    reloaded = await store.get_unit(job_id, 1)
    assert reloaded.status == UnitStatus.FAILED
    assert reloaded.error == "timeout"
    assert reloaded.attempts == failed.attempts == 1

    # failed -> failed records another attempt without moving counters
    await state_machine.transition(job_id, 1, UnitStatus.FAILED)
    reloaded = await store.get_unit(job_id, 1)
    assert reloaded.attempts == 2
    assert reloaded.error == "Unknown error"
    assert counters(await store.get_job(job_id)) == (0, 0, 1, 1)


@pytest.mark.asyncio
async def test_requeue_clears_error(registry, state_machine, store):
    job_id, _ = await registry.create_job("Clear", "", "MINIMAL", ["a"])
    await state_machine.transition(job_id, 0, UnitStatus.FAILED, error_message="bad")

    await state_machine.transition(job_id, 0, UnitStatus.QUEUED)

    unit = await store.get_unit(job_id, 0)
    assert unit.error is None
    assert unit.attempts == 1
    assert (await store.get_job(job_id)).status == JobStatus.QUEUED


@pytest.mark.asyncio
async def test_strict_mode_rejects_unexpected_transition(registry, store):
    job_id, _ = await registry.create_job("Strict", "", "MINIMAL", ["a"])
    strict = UnitStateMachine(store, strict=True)

    with pytest.raises(ValidationError):
        await strict.transition(job_id, 0, UnitStatus.COMPLETED, content="skip ahead")

    assert (await store.get_unit(job_id, 0)).status == UnitStatus.QUEUED


@pytest.mark.asyncio
async def test_missing_unit_raises_not_found(registry, state_machine):
    job_id, _ = await registry.create_job("Missing", "", "MINIMAL", ["a"])

    with pytest.raises(NotFound):
        await state_machine.transition(job_id, 5, UnitStatus.PROCESSING)


@pytest.mark.asyncio
async def test_transition_does_not_recreate_deleted_job(registry, state_machine, store, redis_client):
    job_id, _ = await registry.create_job("Orphan", "", "MINIMAL", ["a"])
    await redis_client.delete(job_key(job_id))

    unit = await state_machine.transition(job_id, 0, UnitStatus.PROCESSING)

    assert unit.status == UnitStatus.PROCESSING
    assert not await store.job_exists(job_id)
