"""
Prompt templates for page, outline and description generation.
"""

from typing import List

from ebookgen.store.models import ModeConfig

# Characters of already-written text shown to the model when continuing a page
CONTINUATION_TAIL_CHARS = 1500

CURRENT_PAGE_MARKER = "<-- YOU ARE HERE"


def table_of_contents(titles: List[str], current_index: int) -> str:
    lines = []
    for index, title in enumerate(titles):
        marker = f" {CURRENT_PAGE_MARKER}" if index == current_index else ""
        lines.append(f"{index + 1}. {title}{marker}")
    return "\n".join(lines)


def chunk_prompt(
    ebook_title: str,
    ebook_description: str,
    page_title: str,
    page_index: int,
    all_titles: List[str],
    mode: ModeConfig,
    chunk_index: int,
    previous_text: str,
    max_tokens: int,
) -> str:
    """Prompt for one chunk of a page, continuing from the chunks already written."""
    toc = table_of_contents(all_titles, page_index)
    total_chunks = mode.chunks_per_page

    if total_chunks == 1:
        scope = f"Write the complete content of page {page_index + 1}. {mode.prompt_suffix}"
    else:
        scope = (
            f"The page is written in {total_chunks} parts. Write part {chunk_index + 1} "
            f"of {total_chunks} (about {max_tokens} tokens). Across all parts: {mode.prompt_suffix}"
        )

    if previous_text.strip():
        tail = previous_text[-CONTINUATION_TAIL_CHARS:]
        continuation = f"""The page so far (continue it coherently, do not repeat it):
\"\"\"
{tail}
\"\"\"
"""
    else:
        continuation = "This is the beginning of the page.\n"

    if chunk_index == total_chunks - 1:
        ending = "This is the last part: bring the page to a natural close."
    else:
        ending = "Do not conclude the page yet; more parts follow."

    return f"""You are an expert writer creating the content of an ebook.
Ebook title: "{ebook_title}"
Description: "{ebook_description}"

Full table of contents:
{toc}

Your task is to write content ONLY for page {page_index + 1}, titled "{page_title}".

{continuation}
Important instructions:
1. Use the table of contents for context and avoid covering topics that belong to other pages.
2. Stay strictly on the topic of "{page_title}".
3. {scope}
4. {ending}
5. Do NOT include the page title or page number. Write only the page text.
6. Use clear, engaging language.

Content:"""


def fallback_prompt(
    ebook_title: str,
    page_title: str,
    page_index: int,
    chunk_index: int,
    max_tokens: int,
) -> str:
    """Reduced prompt used once all regular attempts at a chunk have failed."""
    return (
        f'Write one short paragraph (under {max_tokens} tokens) for page {page_index + 1} '
        f'of the ebook "{ebook_title}". The page is titled "{page_title}"'
        f'{" and this paragraph continues it" if chunk_index > 0 else ""}. '
        "Write only the paragraph."
    )


def placeholder_text(page_title: str) -> str:
    return f"[Content for \"{page_title}\" could not be generated at this time.]"


def outline_prompt(title: str, description: str, page_count: int) -> str:
    return f"""Create a simple structure for an ebook of exactly {page_count} pages titled "{title}" with the following description:

"{description}"

Provide a numbered list of exactly {page_count} pages, each with a short, specific title.

The first pages should introduce the subject.
The middle pages should cover the main content, split into logical chapters.
The last pages should be dedicated to the conclusion and final thoughts.

Each title must describe exactly what that page covers.

Expected format:
1. [Title of page 1]
2. [Title of page 2]
...
{page_count}. [Title of page {page_count}]"""


def description_prompt(title: str) -> str:
    return (
        f'Write a short, compelling description for an ebook titled "{title}". '
        "The description should be 100 to 150 words and explain what the reader will learn, "
        "who the ebook is for, and the main benefits of reading it."
    )
