import pytest

from ebookgen.errors import NotFound, ValidationError
from ebookgen.store.models import ContentMode, DispatchRecord, JobStatus, UnitStatus
from ebookgen.store.repository import job_key, unit_key

TITLES = ["Getting Started", "Core Ideas", "Going Further", "Wrapping Up"]


@pytest.mark.asyncio
async def test_create_job_writes_job_units_and_dispatch_records(registry, store, redis_client):
    job_id, job = await registry.create_job("Home Brewing", "A beginner guide", "MEDIUM", TITLES)

    assert job_id.startswith("ebook_")
    assert job.total_units == 4
    assert job.queued == 4
    assert job.processing == job.completed == job.failed == 0
    assert job.status == JobStatus.QUEUED

    stored = await store.get_job(job_id)
    assert stored.title == "Home Brewing"
    assert stored.content_mode == ContentMode.MEDIUM
    assert stored.counters_consistent

    units = await registry.get_units(job_id)
    assert [u.index for u in units] == [0, 1, 2, 3]
    assert [u.title for u in units] == TITLES
    assert all(u.status == UnitStatus.QUEUED for u in units)
    assert all(u.content == "" and u.attempts == 0 and u.error is None for u in units)

    assert await store.queue_length() == 4
    assert await redis_client.exists(job_key(job_id), unit_key(job_id, 3)) == 2


@pytest.mark.asyncio
async def test_dispatch_records_come_out_in_creation_order(registry, store):
    job_id, _ = await registry.create_job("Order", "", "MINIMAL", TITLES)

    popped = [await store.pop_dispatch() for _ in TITLES]

    assert popped == [DispatchRecord(job_id, i) for i in range(len(TITLES))]
    assert await store.pop_dispatch() is None


@pytest.mark.asyncio
async def test_content_mode_is_case_insensitive(registry):
    _, job = await registry.create_job("Modes", "", "ultra_minimal", ["Only page"])
    assert job.content_mode == ContentMode.ULTRA_MINIMAL


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "title,mode,titles",
    [
        ("", "MEDIUM", ["One"]),
        ("   ", "MEDIUM", ["One"]),
        ("Book", "MEDIUM", []),
        ("Book", "MEDIUM", ["One", "  "]),
        ("Book", "HUGE", ["One"]),
    ],
)
async def test_create_job_rejects_invalid_input(registry, store, title, mode, titles):
    with pytest.raises(ValidationError):
        await registry.create_job(title, "", mode, titles)

    assert await store.list_job_ids() == []
    assert await store.queue_length() == 0


@pytest.mark.asyncio
async def test_get_job_missing_raises_not_found(registry):
    with pytest.raises(NotFound) as exc_info:
        await registry.get_job("ebook_missing")
    assert exc_info.value.key == "job:ebook_missing"


@pytest.mark.asyncio
async def test_list_jobs_newest_first(registry, store):
    first_id, _ = await registry.create_job("First", "", "MINIMAL", ["a"])
    second_id, _ = await registry.create_job("Second", "", "MINIMAL", ["a"])
    await store.set_job_fields(first_id, {"createdAt": "1000"})
    await store.set_job_fields(second_id, {"createdAt": "2000"})

    jobs = await registry.list_jobs()
    assert [j.id for j in jobs] == [second_id, first_id]

    assert [j.id for j in await registry.list_jobs(limit=1)] == [second_id]


@pytest.mark.asyncio
async def test_requeue_only_from_failed(registry, state_machine, store):
    job_id, _ = await registry.create_job("Requeue", "", "MINIMAL", ["a", "b"])
    # drain the creation dispatch records
    while await store.pop_dispatch():
        pass

    with pytest.raises(ValidationError):
        await registry.requeue_unit(job_id, 0)

    await state_machine.transition(job_id, 0, UnitStatus.PROCESSING)
    await state_machine.transition(job_id, 0, UnitStatus.FAILED, error_message="boom")

    unit = await registry.requeue_unit(job_id, 0)

    assert unit.status == UnitStatus.QUEUED
    assert unit.error is None
    assert unit.attempts == 1
    assert await store.pop_dispatch() == DispatchRecord(job_id, 0)

    job = await registry.get_job(job_id)
    assert (job.queued, job.processing, job.completed, job.failed) == (2, 0, 0, 0)


@pytest.mark.asyncio
async def test_requeue_failed_requeues_every_failed_page(registry, state_machine, store):
    job_id, _ = await registry.create_job("Requeue all", "", "MINIMAL", ["a", "b", "c"])
    for index in (0, 2):
        await state_machine.transition(job_id, index, UnitStatus.FAILED, error_message="nope")

    count = await registry.requeue_failed(job_id)

    assert count == 2
    job = await registry.get_job(job_id)
    assert job.queued == 3
    assert job.failed == 0
    assert await store.queue_length() == 5
