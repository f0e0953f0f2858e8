"""
Ebook outline and description generation.

Produces the page titles a job is created from. When the model returns
fewer titles than requested the outline is padded with generic titles so
the job always has the requested number of pages.
"""

import re
from typing import List, Tuple

from ebookgen.errors import GenerationError, ValidationError
from ebookgen.generation.generator import Generator
from ebookgen.generation.prompts import description_prompt, outline_prompt
from ebookgen.jobs.registry import JobRegistry
from ebookgen.store.models import Job
from ebookgen.utils.logging import registry_logger as logger

MAX_PAGES = 200

GENERIC_TITLES = [
    "Introduction to the Topic",
    "Historical Context",
    "Fundamental Concepts",
    "Main Challenges",
    "Effective Strategies",
    "Practical Applications",
    "Case Studies",
    "Tools and Resources",
    "Future Trends",
    "Final Thoughts",
]

_NUMBERED_LINE = re.compile(r"^\s*\d+\s*[.)\-:]\s*(.+?)\s*$")


def parse_outline(text: str, page_count: int) -> List[str]:
    """Extract up to `page_count` titles from a numbered list."""
    titles = []
    for line in text.splitlines():
        match = _NUMBERED_LINE.match(line)
        if not match:
            continue
        title = match.group(1).strip().strip("[]*\"' ").strip()
        if title:
            titles.append(title)
        if len(titles) == page_count:
            break
    return titles


def pad_titles(titles: List[str], page_count: int) -> List[str]:
    """Fill up to `page_count` with generic titles, ending on the closing ones."""
    padded = list(titles[:page_count])
    while len(padded) < page_count:
        generic_index = (len(padded) - (page_count - len(GENERIC_TITLES))) % len(GENERIC_TITLES)
        padded.append(f"{GENERIC_TITLES[generic_index]} (Placeholder)")
    return padded


async def generate_outline(
    generator: Generator,
    title: str,
    description: str,
    page_count: int,
) -> List[str]:
    """
    Ask the generator for exactly `page_count` page titles.

    Raises:
        ValidationError: page_count out of range
        GenerationError: the generator failed
    """
    if page_count < 1 or page_count > MAX_PAGES:
        raise ValidationError(f"Page count must be between 1 and {MAX_PAGES}")

    text = await generator.generate(
        outline_prompt(title, description, page_count),
        1000 + page_count * 10,
    )
    titles = parse_outline(text, page_count)

    if len(titles) < page_count:
        logger.warning(
            "Outline shorter than requested, padding with generic titles",
            requested=page_count,
            received=len(titles),
        )
    return pad_titles(titles, page_count)


async def generate_description(generator: Generator, title: str) -> str:
    """
    Ask the generator for a short description of the ebook.

    Raises:
        ValidationError: empty title
        GenerationError: the generator failed or returned nothing
    """
    if not title or not title.strip():
        raise ValidationError("Title is required")

    text = await generator.generate(description_prompt(title.strip()), 300)
    if not text or not text.strip():
        raise GenerationError("Generator returned an empty description")
    return text.strip()


async def create_job_from_outline(
    registry: JobRegistry,
    generator: Generator,
    title: str,
    description: str,
    content_mode,
    page_count: int = 10,
) -> Tuple[str, Job]:
    """Generate the outline for an ebook and queue one page per title."""
    titles = await generate_outline(generator, title, description, page_count)
    return await registry.create_job(title, description, content_mode, titles)
