"""
Chunk cache backed by the durable store.

Each (job, page, chunk) keeps the best text produced so far and whether it
was a finished generation or a partial stream cut short by a timeout.
Surviving in Redis, the cache lets a restarted worker resume a page
without regenerating finished chunks.
"""

from dataclasses import dataclass
from typing import Optional

from ebookgen.store.repository import EbookStore


@dataclass
class CachedChunk:
    text: str
    final: bool

    @property
    def length(self) -> int:
        return len(self.text.strip())


class ChunkCache:
    """
    Write-through cache of chunk text.

    Usage:
        cache = ChunkCache(store, min_chunk_chars=20, min_partial_chars=120)
        text = await cache.reusable(job_id, 0, 1)
    """

    def __init__(self, store: EbookStore, min_chunk_chars: int = 20, min_partial_chars: int = 120):
        self.store = store
        self.min_chunk_chars = min_chunk_chars
        self.min_partial_chars = min_partial_chars

    async def load(self, job_id: str, unit_index: int, chunk_index: int) -> Optional[CachedChunk]:
        data = await self.store.get_chunk(job_id, unit_index, chunk_index)
        if not data or "text" not in data:
            return None
        return CachedChunk(text=data["text"], final=data.get("final") == "1")

    async def reusable(self, job_id: str, unit_index: int, chunk_index: int) -> Optional[str]:
        """Finished chunk text long enough to reuse on resume, else None."""
        cached = await self.load(job_id, unit_index, chunk_index)
        if cached and cached.final and cached.length >= self.min_chunk_chars:
            return cached.text
        return None

    def acceptable_partial(self, text: Optional[str]) -> bool:
        return bool(text) and len(text.strip()) >= self.min_partial_chars

    async def write_partial(self, job_id: str, unit_index: int, chunk_index: int, text: str) -> None:
        await self.store.write_chunk(job_id, unit_index, chunk_index, text, final=False)

    async def write_final(self, job_id: str, unit_index: int, chunk_index: int, text: str) -> None:
        await self.store.write_chunk(job_id, unit_index, chunk_index, text, final=True)

    async def discard(self, job_id: str, unit_index: int, chunk_count: int) -> None:
        await self.store.delete_chunks(job_id, unit_index, chunk_count)
