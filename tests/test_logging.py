from ebookgen.utils.logging import AppLogger, LogLevel, get_log_buffer


def test_messages_are_buffered_with_metadata():
    logger = AppLogger("test")

    logger.info("Page completed", job_id="ebook_1", unit_index=2)
    logger.error("Page failed", job_id="ebook_1")

    recent = get_log_buffer().get_recent(limit=10, source="test")
    assert [e["message"] for e in recent] == ["Page failed", "Page completed"]
    assert recent[1]["metadata"] == {"job_id": "ebook_1", "unit_index": 2}


def test_recent_entries_filter_by_level_and_job():
    logger = AppLogger("filters")
    logger.error("first job broke", job_id="ebook_1")
    logger.error("second job broke", job_id="ebook_2")
    logger.warning("first job slow", job_id="ebook_1")
    logger.debug("noise")

    buffer = get_log_buffer()
    errors = buffer.get_recent(level=LogLevel.ERROR)
    assert [e["message"] for e in errors] == ["second job broke", "first job broke"]

    first_job = buffer.get_recent(job_id="ebook_1")
    assert [e["message"] for e in first_job] == ["first job slow", "first job broke"]

    assert [e["message"] for e in buffer.get_recent(limit=1)] == ["noise"]
