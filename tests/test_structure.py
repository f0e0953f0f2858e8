import pytest

from ebookgen.errors import ValidationError
from ebookgen.generation.structure import (
    GENERIC_TITLES,
    create_job_from_outline,
    generate_description,
    generate_outline,
    pad_titles,
    parse_outline,
)

from tests.conftest import ScriptedGenerator

OUTLINE = """Here is the structure you asked for:

1. Why Sleep Matters
2) The Science of Sleep Cycles
3 - [Building an Evening Routine]
Some commentary the model added.
4: **Final Thoughts**
"""


def test_parse_outline_reads_numbered_lines():
    assert parse_outline(OUTLINE, 10) == [
        "Why Sleep Matters",
        "The Science of Sleep Cycles",
        "Building an Evening Routine",
        "Final Thoughts",
    ]


def test_parse_outline_stops_at_page_count():
    assert parse_outline(OUTLINE, 2) == ["Why Sleep Matters", "The Science of Sleep Cycles"]


def test_pad_titles_ends_with_closing_titles():
    padded = pad_titles(["Intro"], 3)
    assert padded == [
        "Intro",
        "Future Trends (Placeholder)",
        "Final Thoughts (Placeholder)",
    ]


def test_pad_titles_from_nothing_uses_every_generic_title():
    padded = pad_titles([], len(GENERIC_TITLES))
    assert padded == [f"{t} (Placeholder)" for t in GENERIC_TITLES]


@pytest.mark.asyncio
async def test_generate_outline_pads_short_answers():
    generator = ScriptedGenerator(["1. Why Sleep Matters\n2. Sleep Cycles"])

    titles = await generate_outline(generator, "Sleep", "Better rest", 4)

    assert len(titles) == 4
    assert titles[:2] == ["Why Sleep Matters", "Sleep Cycles"]
    assert titles[-1] == "Final Thoughts (Placeholder)"


@pytest.mark.asyncio
@pytest.mark.parametrize("page_count", [0, 201])
async def test_generate_outline_rejects_out_of_range_page_count(page_count):
    with pytest.raises(ValidationError):
        await generate_outline(ScriptedGenerator([]), "Sleep", "", page_count)


@pytest.mark.asyncio
async def test_generate_description_strips_text():
    generator = ScriptedGenerator(["  A practical guide to better sleep.  \n"])
    assert await generate_description(generator, "Sleep") == "A practical guide to better sleep."


@pytest.mark.asyncio
async def test_create_job_from_outline_queues_one_page_per_title(registry, store):
    generator = ScriptedGenerator([OUTLINE])

    job_id, job = await create_job_from_outline(registry, generator, "Sleep", "Better rest", "FULL", 5)

    assert job.total_units == 5
    units = await registry.get_units(job_id)
    assert units[0].title == "Why Sleep Matters"
    assert units[4].title == "Final Thoughts (Placeholder)"
    assert await store.queue_length() == 5
