import pytest

from ebookgen.errors import StoreError, ValidationError
from ebookgen.store.models import ContentMode, DispatchRecord, Job, WorkUnit


@pytest.mark.parametrize(
    "mode,max_tokens,chunks,per_chunk",
    [
        (ContentMode.FULL, 600, 4, 150),
        (ContentMode.MEDIUM, 450, 3, 150),
        (ContentMode.MINIMAL, 300, 2, 150),
        (ContentMode.ULTRA_MINIMAL, 150, 1, 150),
    ],
)
def test_content_mode_budgets(mode, max_tokens, chunks, per_chunk):
    settings = mode.settings
    assert settings.max_tokens == max_tokens
    assert settings.chunks_per_page == chunks
    assert settings.tokens_per_chunk == per_chunk


def test_unknown_content_mode_raises():
    with pytest.raises(ValidationError):
        ContentMode.parse("EPIC")


def test_job_hash_with_bad_counter_is_rejected():
    job = Job(id="ebook_1", title="T", description="", content_mode=ContentMode.FULL, total_units=1)
    data = job.to_hash()
    data["completed"] = "lots"

    with pytest.raises(StoreError):
        Job.from_hash(data)


def test_unit_hash_without_status_is_rejected():
    data = WorkUnit(job_id="ebook_1", index=0, title="T").to_hash()
    del data["status"]

    with pytest.raises(StoreError):
        WorkUnit.from_hash(data)


@pytest.mark.parametrize(
    "payload",
    ["", "nope", "[]", '{"jobId": "ebook_1"}', '{"jobId": "", "unitIndex": 0}', '{"jobId": "ebook_1", "unitIndex": "0"}'],
)
def test_invalid_dispatch_payloads_are_rejected(payload):
    with pytest.raises(StoreError):
        DispatchRecord.decode(payload)


def test_dispatch_record_encoding():
    record = DispatchRecord("ebook_1", 7)
    assert record.encode() == '{"jobId": "ebook_1", "unitIndex": 7}'
    assert DispatchRecord.decode(record.encode()) == record
