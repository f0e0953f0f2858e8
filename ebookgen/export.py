"""
Plain-text export of a finished (or partially finished) ebook.
"""

from typing import List

from ebookgen.store.models import Job, UnitStatus, WorkUnit

MISSING_CONTENT = "[Content not generated]"


def ebook_sections(job: Job, units: List[WorkUnit]) -> List[str]:
    """Title, description, then a heading and body per page."""
    sections = [f"# {job.title}"]
    if job.description:
        sections.append(job.description)

    for unit in sorted(units, key=lambda u: u.index):
        sections.append(f"## Page {unit.index + 1}: {unit.title}")
        if unit.status == UnitStatus.COMPLETED and unit.content:
            sections.append(unit.content)
        else:
            sections.append(MISSING_CONTENT)
    return sections


def render_markdown(job: Job, units: List[WorkUnit]) -> str:
    return "\n\n".join(ebook_sections(job, units)) + "\n"
