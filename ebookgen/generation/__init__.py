"""
Page content generation.

Components:
- Generator / AnthropicGenerator: text generation capability
- retry_with_backoff: the retry combinator used for every chunk
- ChunkCache: resumable per-chunk cache in Redis
- ChunkedGenerationEngine: builds a page from its chunks
- generate_outline / generate_description: job set-up helpers
"""

from ebookgen.generation.generator import Generator, AnthropicGenerator
from ebookgen.generation.retry import RetryPolicy, RetryExhausted, retry_with_backoff
from ebookgen.generation.cache import ChunkCache, CachedChunk
from ebookgen.generation.engine import (
    ChunkedGenerationEngine,
    ChunkSource,
    GenerationReport,
    GenerationSettings,
)
from ebookgen.generation.structure import (
    generate_outline,
    generate_description,
    create_job_from_outline,
)

__all__ = [
    "Generator",
    "AnthropicGenerator",
    "RetryPolicy",
    "RetryExhausted",
    "retry_with_backoff",
    "ChunkCache",
    "CachedChunk",
    "ChunkedGenerationEngine",
    "ChunkSource",
    "GenerationReport",
    "GenerationSettings",
    "generate_outline",
    "generate_description",
    "create_job_from_outline",
]
