from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.STOPPED})
ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.RUNNING, JobStatus.PAUSED})


class ItemType(str, Enum):
    FOLDER = "folder"
    FILE = "file"


class Outcome(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class MediaKind(str, Enum):
    PHOTO = "photo"
    VIDEO = "video"


@dataclass(frozen=True, slots=True)
class TaskResult:
    item: str
    item_type: ItemType
    outcome: Outcome
    duration_seconds: float
    started_at: datetime
    error: Optional[str] = None
    warning: Optional[str] = None


@dataclass(frozen=True, slots=True)
class JobSnapshot:
    id: UUID
    status: JobStatus
    path: str
    created_at: datetime
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    total_tasks: int
    remaining_tasks: int
    results: tuple[TaskResult, ...] = field(default_factory=tuple)
    reason: Optional[str] = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> UUID:
    """Return a UUID whose leading 48 bits are the current time in milliseconds."""
    millis = time.time_ns() // 1_000_000
    value = (millis & 0xFFFF_FFFF_FFFF) << 80
    value |= int.from_bytes(os.urandom(10), "big") & ((1 << 80) - 1)
    # version 7, RFC 4122 variant
    value = (value & ~(0xF << 76)) | (0x7 << 76)
    value = (value & ~(0x3 << 62)) | (0x2 << 62)
    return UUID(int=value)
