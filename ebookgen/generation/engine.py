"""
Chunked page generation.

A page is written as N chunks (N from the job's content mode). Each chunk
is generated under retry_with_backoff, streamed into the chunk cache as it
arrives, and degraded step by step when retries run out:

    finished cache hit -> generate (with retries) -> streamed partial
        -> reduced fallback prompt -> placeholder text

If every chunk of a page ends up as a placeholder nothing usable was
produced, and the page fails with GenerationError.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from ebookgen.config import AppConfig, config as default_config
from ebookgen.errors import GenerationError, GeneratorConfigError, StoreError
from ebookgen.generation.cache import ChunkCache
from ebookgen.generation.generator import Generator
from ebookgen.generation.prompts import chunk_prompt, fallback_prompt, placeholder_text
from ebookgen.generation.retry import RetryPolicy, retry_with_backoff
from ebookgen.store.models import Job, ModeConfig, WorkUnit
from ebookgen.store.repository import EbookStore
from ebookgen.utils.logging import generation_logger as logger


@dataclass
class GenerationSettings:
    """Retry, timeout and cache thresholds for chunk generation."""
    max_retries: int = 4
    timeout_seconds: float = 15.0
    timeout_max_seconds: float = 60.0
    backoff_multiplier: float = 1.5
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0
    min_chunk_chars: int = 20
    min_partial_chars: int = 120

    @classmethod
    def from_config(cls, app_config: AppConfig = default_config) -> "GenerationSettings":
        return cls(
            max_retries=app_config.MAX_RETRIES,
            timeout_seconds=app_config.CHUNK_TIMEOUT_SECONDS,
            timeout_max_seconds=app_config.CHUNK_TIMEOUT_MAX_SECONDS,
            backoff_multiplier=app_config.BACKOFF_MULTIPLIER,
            retry_base_delay=app_config.RETRY_BASE_DELAY_SECONDS,
            retry_max_delay=app_config.RETRY_MAX_DELAY_SECONDS,
            min_chunk_chars=app_config.MIN_CHUNK_CHARS,
            min_partial_chars=app_config.MIN_PARTIAL_CHARS,
        )

    @property
    def policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_retries,
            timeout=self.timeout_seconds,
            timeout_multiplier=self.backoff_multiplier,
            max_timeout=self.timeout_max_seconds,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
        )


class ChunkSource(str, Enum):
    """Where a chunk's text came from"""
    CACHED = "cached"
    GENERATED = "generated"
    PARTIAL = "partial"
    FALLBACK = "fallback"
    PLACEHOLDER = "placeholder"


@dataclass
class GenerationReport:
    """Result of generating one page."""
    content: str
    sources: List[ChunkSource] = field(default_factory=list)
    failed_attempts: int = 0

    @property
    def chunks_reused(self) -> int:
        return sum(1 for s in self.sources if s == ChunkSource.CACHED)

    @property
    def chunks_generated(self) -> int:
        return sum(1 for s in self.sources if s != ChunkSource.CACHED)

    @property
    def placeholders(self) -> int:
        return sum(1 for s in self.sources if s == ChunkSource.PLACEHOLDER)

    def to_dict(self) -> dict:
        return {
            "chunks": [s.value for s in self.sources],
            "failed_attempts": self.failed_attempts,
            "content_length": len(self.content),
        }


@dataclass
class PageContext:
    job: Job
    unit: WorkUnit
    all_titles: List[str]

    @property
    def mode(self) -> ModeConfig:
        return self.job.content_mode.settings


class ChunkedGenerationEngine:
    """
    Produces page content chunk by chunk with retries and a resumable cache.

    Usage:
        engine = ChunkedGenerationEngine(generator, store)
        content = await engine.generate_unit_content(job, unit, titles)
    """

    def __init__(
        self,
        generator: Generator,
        store: EbookStore,
        settings: Optional[GenerationSettings] = None,
    ):
        self.generator = generator
        self.settings = settings or GenerationSettings.from_config()
        self.cache = ChunkCache(
            store,
            min_chunk_chars=self.settings.min_chunk_chars,
            min_partial_chars=self.settings.min_partial_chars,
        )

    async def generate_unit_content(self, job: Job, unit: WorkUnit, all_titles: List[str]) -> str:
        report = await self.generate_unit(job, unit, all_titles)
        return report.content

    async def generate_unit(self, job: Job, unit: WorkUnit, all_titles: List[str]) -> GenerationReport:
        """
        Generate every chunk of a page and join them in order.

        Raises:
            GeneratorConfigError: the generator cannot run at all
            StoreError: the chunk cache could not be read or written
            GenerationError: no chunk produced any real text
        """
        ctx = PageContext(job=job, unit=unit, all_titles=all_titles)
        total_chunks = ctx.mode.chunks_per_page
        report = GenerationReport(content="")
        chunks: List[str] = []

        for chunk_index in range(total_chunks):
            cached = await self.cache.reusable(job.id, unit.index, chunk_index)
            if cached is not None:
                chunks.append(cached)
                report.sources.append(ChunkSource.CACHED)
                continue

            text, source, failures = await self.generate_chunk(ctx, chunk_index, chunks)
            report.failed_attempts += failures
            report.sources.append(source)
            chunks.append(text)

            # Placeholders are not cached so a later run tries again
            if source != ChunkSource.PLACEHOLDER:
                await self.cache.write_final(job.id, unit.index, chunk_index, text)

        if report.placeholders == total_chunks:
            raise GenerationError(
                f"No content could be generated for page {unit.index + 1} ('{unit.title}') "
                f"after {report.failed_attempts} failed attempts"
            )

        report.content = "\n\n".join(chunk.strip() for chunk in chunks)

        logger.info(
            "Page content generated",
            job_id=job.id,
            unit_index=unit.index,
            **report.to_dict(),
        )
        return report

    async def generate_chunk(
        self,
        ctx: PageContext,
        chunk_index: int,
        previous_chunks: List[str],
    ) -> Tuple[str, ChunkSource, int]:
        """
        Generate one chunk, never raising for generation failures.

        Returns:
            (text, source, number of failed attempts)
        """
        job, unit, mode = ctx.job, ctx.unit, ctx.mode
        max_tokens = mode.tokens_per_chunk
        prompt = chunk_prompt(
            ebook_title=job.title,
            ebook_description=job.description,
            page_title=unit.title,
            page_index=unit.index,
            all_titles=ctx.all_titles,
            mode=mode,
            chunk_index=chunk_index,
            previous_text="\n\n".join(previous_chunks),
            max_tokens=max_tokens,
        )

        # Longest partial seen so far, seeded from an interrupted earlier run
        cached = await self.cache.load(job.id, unit.index, chunk_index)
        best_partial = cached.text if cached else ""
        failures = 0

        def record_failure(attempt: int, error: Exception):
            nonlocal failures
            failures += 1

        async def attempt(attempt_number: int) -> str:
            nonlocal best_partial
            text = ""
            async for piece in self.generator.stream(prompt, max_tokens):
                text += piece
                if len(text) > len(best_partial):
                    best_partial = text
                    await self.cache.write_partial(job.id, unit.index, chunk_index, text)
            if not text.strip():
                raise GenerationError("Generator returned empty text")
            return text

        label = f"chunk {chunk_index + 1}/{mode.chunks_per_page} of page {unit.index + 1}"
        try:
            text = await retry_with_backoff(
                attempt,
                self.settings.policy,
                on_failure=record_failure,
                label=label,
            )
            return text, ChunkSource.GENERATED, failures
        except (GeneratorConfigError, StoreError):
            raise
        except GenerationError as e:
            logger.warning(
                f"Retries exhausted for {label}",
                job_id=job.id,
                error=str(e),
            )

        if self.cache.acceptable_partial(best_partial):
            logger.info(f"Using partial text for {label}", job_id=job.id, length=len(best_partial))
            return best_partial, ChunkSource.PARTIAL, failures

        text = await self._fallback(ctx, chunk_index, max_tokens)
        if text:
            return text, ChunkSource.FALLBACK, failures

        logger.error(f"Substituting placeholder for {label}", job_id=job.id)
        return placeholder_text(unit.title), ChunkSource.PLACEHOLDER, failures

    async def _fallback(self, ctx: PageContext, chunk_index: int, max_tokens: int) -> Optional[str]:
        """One reduced-scope attempt with a smaller budget and simpler prompt."""
        reduced_tokens = max(max_tokens // 2, 32)
        prompt = fallback_prompt(
            ebook_title=ctx.job.title,
            page_title=ctx.unit.title,
            page_index=ctx.unit.index,
            chunk_index=chunk_index,
            max_tokens=reduced_tokens,
        )
        try:
            text = await asyncio.wait_for(
                self.generator.generate(prompt, reduced_tokens),
                timeout=self.settings.timeout_max_seconds,
            )
        except (GeneratorConfigError, StoreError):
            raise
        except asyncio.TimeoutError:
            logger.warning("Fallback generation timed out", job_id=ctx.job.id, unit_index=ctx.unit.index)
            return None
        except Exception as e:
            logger.warning(
                "Fallback generation failed",
                job_id=ctx.job.id,
                unit_index=ctx.unit.index,
                error=str(e),
            )
            return None
        return text if text and text.strip() else None

    async def discard_cache(self, job: Job, unit_index: int) -> None:
        await self.cache.discard(job.id, unit_index, job.content_mode.settings.chunks_per_page)
