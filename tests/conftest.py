"""Shared fixtures: an in-process Redis and scripted generators."""

import asyncio
from typing import AsyncIterator, Callable, List, Optional, Union

import fakeredis
import pytest
import pytest_asyncio

from ebookgen.errors import GenerationError
from ebookgen.generation.engine import ChunkedGenerationEngine, GenerationSettings
from ebookgen.generation.generator import Generator
from ebookgen.jobs.registry import JobRegistry
from ebookgen.jobs.state_machine import UnitStateMachine
from ebookgen.queue.worker import PageWorker
from ebookgen.store.repository import EbookStore
from ebookgen.utils.logging import get_log_buffer

QUEUE = "test:dispatch"


def page_text(n: int) -> str:
    return f"Generated paragraph number {n} with enough words to be kept."


class CountingGenerator(Generator):
    """Always succeeds with distinct text per call."""

    def __init__(self):
        self.calls = 0
        self.prompts: List[str] = []

    async def generate(self, prompt: str, max_tokens: int) -> str:
        self.calls += 1
        self.prompts.append(prompt)
        return page_text(self.calls)


class FailingGenerator(Generator):
    """Fails every call, or only calls whose prompt matches `when`."""

    def __init__(self, when: Optional[Callable[[str], bool]] = None, error: Exception = None):
        self.calls = 0
        self.when = when
        self.error = error or GenerationError("model unavailable")

    async def generate(self, prompt: str, max_tokens: int) -> str:
        self.calls += 1
        if self.when is None or self.when(prompt):
            raise self.error
        return page_text(self.calls)


class ScriptedGenerator(Generator):
    """Plays back a list of results in order; exceptions are raised."""

    def __init__(self, script: List[Union[str, Exception]]):
        self.script = list(script)
        self.calls = 0

    async def generate(self, prompt: str, max_tokens: int) -> str:
        self.calls += 1
        if not self.script:
            return page_text(self.calls)
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class SlowGenerator(Generator):
    def __init__(self, delay: float):
        self.delay = delay
        self.calls = 0

    async def generate(self, prompt: str, max_tokens: int) -> str:
        self.calls += 1
        await asyncio.sleep(self.delay)
        return page_text(self.calls)


class BrokenStreamGenerator(Generator):
    """Streams `partial` and then dies; the non-streaming path returns `fallback`."""

    def __init__(self, partial: str = "", fallback: Optional[str] = None):
        self.partial = partial
        self.fallback = fallback
        self.stream_calls = 0
        self.generate_calls = 0

    async def generate(self, prompt: str, max_tokens: int) -> str:
        self.generate_calls += 1
        if self.fallback is None:
            raise GenerationError("fallback unavailable")
        return self.fallback

    async def stream(self, prompt: str, max_tokens: int) -> AsyncIterator[str]:
        self.stream_calls += 1
        if self.partial:
            yield self.partial
        raise GenerationError("connection reset mid-stream")


def fast_settings(**overrides) -> GenerationSettings:
    values = dict(
        max_retries=3,
        timeout_seconds=1.0,
        timeout_max_seconds=1.0,
        backoff_multiplier=1.5,
        retry_base_delay=0,
        retry_max_delay=0,
        min_chunk_chars=10,
        min_partial_chars=40,
    )
    values.update(overrides)
    return GenerationSettings(**values)


@pytest_asyncio.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def store(redis_client) -> EbookStore:
    return EbookStore(redis_client, queue_name=QUEUE)


@pytest.fixture
def state_machine(store) -> UnitStateMachine:
    return UnitStateMachine(store)


@pytest.fixture
def registry(store, state_machine) -> JobRegistry:
    return JobRegistry(store, state_machine)


@pytest.fixture
def make_worker(store, state_machine):
    def _make(generator: Generator, **settings) -> PageWorker:
        engine = ChunkedGenerationEngine(generator, store, fast_settings(**settings))
        return PageWorker(
            store,
            engine,
            state_machine=state_machine,
            poll_seconds=1,
            error_backoff_seconds=0,
            name="test-worker",
        )
    return _make


@pytest.fixture(autouse=True)
def clear_log_buffer():
    get_log_buffer().clear()
    yield
