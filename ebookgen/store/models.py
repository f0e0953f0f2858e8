"""
Records persisted in the durable store.

Jobs and pages are stored as Redis hashes whose values are all strings;
timestamps are epoch milliseconds. from_hash() raises StoreError when a
hash is missing required fields or holds values that do not parse.
"""

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional

from ebookgen.errors import StoreError, ValidationError


def now_ms() -> int:
    return int(time.time() * 1000)


class UnitStatus(str, Enum):
    """Lifecycle of a single page"""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStatus(str, Enum):
    """Overall status of an ebook, derived from its page counters"""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"


class ContentMode(str, Enum):
    """How much text each page gets"""
    FULL = "FULL"
    MEDIUM = "MEDIUM"
    MINIMAL = "MINIMAL"
    ULTRA_MINIMAL = "ULTRA_MINIMAL"

    @classmethod
    def parse(cls, value) -> "ContentMode":
        if isinstance(value, ContentMode):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValidationError(f"Unknown content mode {value!r} (expected one of: {valid})")

    @property
    def settings(self) -> "ModeConfig":
        return CONTENT_MODES[self]


@dataclass(frozen=True)
class ModeConfig:
    """Token budget and chunking for one content mode."""
    name: str
    max_tokens: int
    chunks_per_page: int
    prompt_suffix: str
    estimated_seconds_per_page: int

    @property
    def tokens_per_chunk(self) -> int:
        return self.max_tokens // self.chunks_per_page


CONTENT_MODES: Dict[ContentMode, ModeConfig] = {
    ContentMode.FULL: ModeConfig(
        name="Full",
        max_tokens=600,
        chunks_per_page=4,
        prompt_suffix="Write detailed content of roughly 400-500 words.",
        estimated_seconds_per_page=30,
    ),
    ContentMode.MEDIUM: ModeConfig(
        name="Medium",
        max_tokens=450,
        chunks_per_page=3,
        prompt_suffix="Write concise content of roughly 250-300 words.",
        estimated_seconds_per_page=20,
    ),
    ContentMode.MINIMAL: ModeConfig(
        name="Minimal",
        max_tokens=300,
        chunks_per_page=2,
        prompt_suffix="Write brief content of roughly 150-200 words.",
        estimated_seconds_per_page=15,
    ),
    ContentMode.ULTRA_MINIMAL: ModeConfig(
        name="Ultra-minimal",
        max_tokens=150,
        chunks_per_page=1,
        prompt_suffix="Write a single short paragraph of roughly 50-100 words.",
        estimated_seconds_per_page=10,
    ),
}


# Counter field on the job hash for each page status
COUNTER_FIELDS: Dict[UnitStatus, str] = {
    UnitStatus.QUEUED: "queued",
    UnitStatus.PROCESSING: "processing",
    UnitStatus.COMPLETED: "completed",
    UnitStatus.FAILED: "failed",
}


def derive_job_status(
    queued: int,
    processing: int,
    completed: int,
    failed: int,
    total: int
) -> JobStatus:
    """Overall job status from page counters."""
    if total <= 0:
        return JobStatus.QUEUED
    if queued == total:
        return JobStatus.QUEUED
    if completed == total:
        return JobStatus.COMPLETED
    if failed == total:
        return JobStatus.FAILED
    if completed + failed == total and completed > 0 and failed > 0:
        return JobStatus.PARTIAL
    return JobStatus.PROCESSING


def _require(data: Dict[str, str], key: str, name: str) -> str:
    value = data.get(key)
    if value is None or value == "":
        raise StoreError(f"Malformed record {name}: missing field '{key}'")
    return value


def _as_int(data: Dict[str, str], key: str, name: str, default: Optional[int] = None) -> int:
    raw = data.get(key)
    if raw is None or raw == "":
        if default is not None:
            return default
        raise StoreError(f"Malformed record {name}: missing field '{key}'")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise StoreError(f"Malformed record {name}: field '{key}' is not an integer ({raw!r})")


@dataclass
class Job:
    """One requested ebook and its aggregate page progress."""
    id: str
    title: str
    description: str
    content_mode: ContentMode
    total_units: int
    queued: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    status: JobStatus = JobStatus.QUEUED
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    @property
    def counters_consistent(self) -> bool:
        return self.queued + self.processing + self.completed + self.failed == self.total_units

    @property
    def progress_percent(self) -> int:
        if self.total_units <= 0:
            return 0
        return int(round(100 * (self.completed + self.failed) / self.total_units))

    def derived_status(self) -> JobStatus:
        return derive_job_status(
            self.queued, self.processing, self.completed, self.failed, self.total_units
        )

    def to_hash(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "contentMode": self.content_mode.value,
            "totalUnits": str(self.total_units),
            "queued": str(self.queued),
            "processing": str(self.processing),
            "completed": str(self.completed),
            "failed": str(self.failed),
            "status": self.status.value,
            "createdAt": str(self.created_at),
            "updatedAt": str(self.updated_at),
        }

    @classmethod
    def from_hash(cls, data: Dict[str, str]) -> "Job":
        name = f"job:{data.get('id', '?')}"
        job_id = _require(data, "id", name)
        try:
            mode = ContentMode.parse(data.get("contentMode") or ContentMode.MEDIUM.value)
            status = JobStatus(data.get("status") or JobStatus.QUEUED.value)
        except (ValidationError, ValueError) as e:
            raise StoreError(f"Malformed record {name}: {e}")

        return cls(
            id=job_id,
            title=_require(data, "title", name),
            description=data.get("description", ""),
            content_mode=mode,
            total_units=_as_int(data, "totalUnits", name),
            queued=_as_int(data, "queued", name, default=0),
            processing=_as_int(data, "processing", name, default=0),
            completed=_as_int(data, "completed", name, default=0),
            failed=_as_int(data, "failed", name, default=0),
            status=status,
            created_at=_as_int(data, "createdAt", name),
            updated_at=_as_int(data, "updatedAt", name),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "content_mode": self.content_mode.value,
            "status": self.status.value,
            "total_units": self.total_units,
            "queued": self.queued,
            "processing": self.processing,
            "completed": self.completed,
            "failed": self.failed,
            "progress_percent": self.progress_percent,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class WorkUnit:
    """One page of a job, addressed by (job_id, index)."""
    job_id: str
    index: int
    title: str
    status: UnitStatus = UnitStatus.QUEUED
    content: str = ""
    error: Optional[str] = None
    attempts: int = 0
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def to_hash(self) -> Dict[str, str]:
        data = {
            "jobId": self.job_id,
            "index": str(self.index),
            "title": self.title,
            "status": self.status.value,
            "content": self.content,
            "attempts": str(self.attempts),
            "createdAt": str(self.created_at),
            "updatedAt": str(self.updated_at),
        }
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_hash(cls, data: Dict[str, str]) -> "WorkUnit":
        name = f"unit:{data.get('jobId', '?')}:{data.get('index', '?')}"
        try:
            status = UnitStatus(_require(data, "status", name))
        except ValueError as e:
            raise StoreError(f"Malformed record {name}: {e}")

        return cls(
            job_id=_require(data, "jobId", name),
            index=_as_int(data, "index", name),
            title=_require(data, "title", name),
            status=status,
            content=data.get("content", ""),
            error=data.get("error") or None,
            attempts=_as_int(data, "attempts", name, default=0),
            created_at=_as_int(data, "createdAt", name),
            updated_at=_as_int(data, "updatedAt", name),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "index": self.index,
            "title": self.title,
            "status": self.status.value,
            "content": self.content,
            "error": self.error,
            "attempts": self.attempts,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class DispatchRecord:
    """Opaque queue reference to a page awaiting processing."""
    job_id: str
    unit_index: int

    def encode(self) -> str:
        return json.dumps({"jobId": self.job_id, "unitIndex": self.unit_index})

    @classmethod
    def decode(cls, payload: str) -> "DispatchRecord":
        try:
            data = json.loads(payload)
        except (TypeError, ValueError) as e:
            raise StoreError(f"Invalid dispatch payload {payload!r}: {e}")

        if (
            not isinstance(data, dict)
            or not isinstance(data.get("jobId"), str)
            or not data["jobId"]
            or not isinstance(data.get("unitIndex"), int)
            or isinstance(data.get("unitIndex"), bool)
        ):
            raise StoreError(f"Invalid dispatch payload {payload!r}")

        return cls(job_id=data["jobId"], unit_index=data["unitIndex"])
