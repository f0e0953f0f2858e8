"""
Durable store access layer.

EbookStore is the only place that issues Redis commands. Every Redis
failure is translated into StoreError so callers never depend on redis
exception types.

Key layout:
    job:{id}                      job hash (title, counters, status, ...)
    unit:{id}:{index}             page hash
    chunk:{id}:{index}:{chunk}    chunk cache hash (text, final, updatedAt)
    <DISPATCH_QUEUE_NAME>         list of dispatch records (LPUSH / RPOP)
"""

from contextlib import contextmanager
from typing import Dict, List, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from ebookgen.config import config
from ebookgen.errors import NotFound, StoreError
from ebookgen.store.models import DispatchRecord, Job, WorkUnit, now_ms
from ebookgen.utils.logging import store_logger as logger

JOB_PREFIX = "job:"
UNIT_PREFIX = "unit:"
CHUNK_PREFIX = "chunk:"

# Optimistic-lock retries for compare-and-set on the job hash
CAS_ATTEMPTS = 5


def job_key(job_id: str) -> str:
    return f"{JOB_PREFIX}{job_id}"


def unit_key(job_id: str, unit_index: int) -> str:
    return f"{UNIT_PREFIX}{job_id}:{unit_index}"


def chunk_key(job_id: str, unit_index: int, chunk_index: int) -> str:
    return f"{CHUNK_PREFIX}{job_id}:{unit_index}:{chunk_index}"


@contextmanager
def store_errors(operation: str):
    """Translate Redis failures into StoreError."""
    try:
        yield
    except RedisError as e:
        raise StoreError(f"{operation} failed: {e}") from e


class EbookStore:
    """
    Typed access to jobs, pages, the dispatch queue and the chunk cache.

    Usage:
        store = EbookStore(await get_redis_connection())
        job = await store.get_job(job_id)
    """

    def __init__(self, client: Redis, queue_name: Optional[str] = None):
        self.client = client
        self.queue_name = queue_name or config.DISPATCH_QUEUE_NAME

    # =========================================================================
    # Job creation
    # =========================================================================

    async def write_job_with_units(self, job: Job, units: List[WorkUnit]) -> None:
        """
        Persist a job, all of its pages and one dispatch record per page
        in a single MULTI/EXEC, so readers never observe a half-created job.
        """
        with store_errors(f"create job {job.id}"):
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(job_key(job.id), mapping=job.to_hash())
                for unit in units:
                    pipe.hset(unit_key(unit.job_id, unit.index), mapping=unit.to_hash())
                    pipe.lpush(self.queue_name, DispatchRecord(unit.job_id, unit.index).encode())
                await pipe.execute()

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_job(self, job_id: str) -> Job:
        with store_errors(f"read job {job_id}"):
            data = await self.client.hgetall(job_key(job_id))
        if not data:
            raise NotFound(job_key(job_id), f"Job {job_id} not found")
        return Job.from_hash(data)

    async def job_exists(self, job_id: str) -> bool:
        with store_errors(f"check job {job_id}"):
            return bool(await self.client.exists(job_key(job_id)))

    async def get_unit(self, job_id: str, unit_index: int) -> WorkUnit:
        key = unit_key(job_id, unit_index)
        with store_errors(f"read {key}"):
            data = await self.client.hgetall(key)
        if not data:
            raise NotFound(key, f"Page {unit_index} of job {job_id} not found")
        return WorkUnit.from_hash(data)

    async def get_units(self, job_id: str, total_units: int) -> List[WorkUnit]:
        """Load every page of a job in index order. Missing pages are skipped."""
        if total_units <= 0:
            return []

        with store_errors(f"read pages of job {job_id}"):
            async with self.client.pipeline(transaction=False) as pipe:
                for index in range(total_units):
                    pipe.hgetall(unit_key(job_id, index))
                results = await pipe.execute()

        units = []
        for index, data in enumerate(results):
            if not data:
                logger.warning("Page record missing", job_id=job_id, unit_index=index)
                continue
            units.append(WorkUnit.from_hash(data))

        units.sort(key=lambda u: u.index)
        return units

    async def list_job_ids(self) -> List[str]:
        with store_errors("scan jobs"):
            keys = [key async for key in self.client.scan_iter(match=f"{JOB_PREFIX}*")]
        return [key[len(JOB_PREFIX):] for key in keys]

    # =========================================================================
    # Writes
    # =========================================================================

    async def save_unit(self, unit: WorkUnit) -> None:
        key = unit_key(unit.job_id, unit.index)
        with store_errors(f"write {key}"):
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping=unit.to_hash())
                if unit.error is None:
                    pipe.hdel(key, "error")
                await pipe.execute()

    async def adjust_counters(
        self,
        job_id: str,
        decrement: Optional[str] = None,
        increment: Optional[str] = None,
    ) -> None:
        """Move one page between status counters and refresh updatedAt."""
        key = job_key(job_id)
        with store_errors(f"adjust counters of job {job_id}"):
            async with self.client.pipeline(transaction=True) as pipe:
                if decrement:
                    pipe.hincrby(key, decrement, -1)
                if increment:
                    pipe.hincrby(key, increment, 1)
                pipe.hset(key, "updatedAt", str(now_ms()))
                await pipe.execute()

    async def set_job_fields(self, job_id: str, fields: Dict[str, str]) -> None:
        with store_errors(f"update job {job_id}"):
            await self.client.hset(job_key(job_id), mapping=fields)

    async def set_job_status_if(self, job_id: str, expected: str, new: str) -> bool:
        """
        Compare-and-set the job status using WATCH/MULTI.

        Returns:
            True if the status was changed, False if it was not `expected`
        """
        key = job_key(job_id)
        with store_errors(f"compare-and-set status of job {job_id}"):
            async with self.client.pipeline(transaction=True) as pipe:
                for _ in range(CAS_ATTEMPTS):
                    try:
                        await pipe.watch(key)
                        current = await pipe.hget(key, "status")
                        if current != expected:
                            await pipe.unwatch()
                            return False
                        pipe.multi()
                        pipe.hset(key, mapping={"status": new, "updatedAt": str(now_ms())})
                        await pipe.execute()
                        return True
                    except WatchError:
                        continue
        logger.warning("Status compare-and-set gave up under contention", job_id=job_id)
        return False

    async def replace_counters(
        self,
        job_id: str,
        counters: Dict[str, int],
        status: str,
        expected: Dict[str, int],
    ) -> bool:
        """
        Overwrite counters and status only if the job's counters still equal
        `expected` (guards the reconciler against concurrent transitions).
        """
        key = job_key(job_id)
        fields = list(expected.keys())
        with store_errors(f"reconcile job {job_id}"):
            async with self.client.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    current = await pipe.hmget(key, fields)
                    observed = {f: int(v or 0) for f, v in zip(fields, current)}
                    if observed != expected:
                        await pipe.unwatch()
                        return False
                    pipe.multi()
                    mapping = {f: str(v) for f, v in counters.items()}
                    mapping["status"] = status
                    mapping["updatedAt"] = str(now_ms())
                    pipe.hset(key, mapping=mapping)
                    await pipe.execute()
                    return True
                except WatchError:
                    return False

    # =========================================================================
    # Dispatch queue
    # =========================================================================

    async def push_dispatch(self, record: DispatchRecord) -> None:
        with store_errors("push dispatch record"):
            await self.client.lpush(self.queue_name, record.encode())

    async def pop_dispatch(self) -> Optional[DispatchRecord]:
        """Non-blocking FIFO pop. Returns None when the queue is empty."""
        while True:
            try:
                with store_errors("pop dispatch record"):
                    payload = await self.client.rpop(self.queue_name)
            except UnicodeDecodeError as e:
                # Popped server-side; only the client could not decode it
                logger.error("Dropping undecodable dispatch record", error=str(e))
                continue
            if payload is None:
                return None
            record = self._decode_or_drop(payload)
            if record is not None:
                return record

    async def pop_dispatch_blocking(self, timeout: int) -> Optional[DispatchRecord]:
        """Blocking FIFO pop. Returns None when nothing arrived within `timeout` seconds."""
        try:
            with store_errors("blocking pop dispatch record"):
                result = await self.client.brpop([self.queue_name], timeout=timeout)
        except UnicodeDecodeError as e:
            logger.error("Dropping undecodable dispatch record", error=str(e))
            return None
        if not result:
            return None
        _, payload = result
        return self._decode_or_drop(payload)

    def _decode_or_drop(self, payload: str) -> Optional[DispatchRecord]:
        try:
            return DispatchRecord.decode(payload)
        except StoreError as e:
            logger.error("Dropping invalid dispatch record", payload=payload, error=str(e))
            return None

    async def queue_length(self) -> int:
        with store_errors("read queue length"):
            return await self.client.llen(self.queue_name)

    # =========================================================================
    # Chunk cache
    # =========================================================================

    async def get_chunk(self, job_id: str, unit_index: int, chunk_index: int) -> Optional[Dict[str, str]]:
        key = chunk_key(job_id, unit_index, chunk_index)
        with store_errors(f"read {key}"):
            data = await self.client.hgetall(key)
        return data or None

    async def write_chunk(
        self,
        job_id: str,
        unit_index: int,
        chunk_index: int,
        text: str,
        final: bool,
    ) -> None:
        key = chunk_key(job_id, unit_index, chunk_index)
        with store_errors(f"write {key}"):
            await self.client.hset(key, mapping={
                "text": text,
                "final": "1" if final else "0",
                "updatedAt": str(now_ms()),
            })

    async def delete_chunks(self, job_id: str, unit_index: int, chunk_count: int) -> None:
        keys = [chunk_key(job_id, unit_index, i) for i in range(chunk_count)]
        if not keys:
            return
        with store_errors(f"delete chunks of page {unit_index} of job {job_id}"):
            await self.client.delete(*keys)
