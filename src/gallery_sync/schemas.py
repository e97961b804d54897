"""API schemas for request/response models."""
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from gallery_sync.models import ItemType, JobSnapshot, JobStatus, Outcome, TaskResult


class CamelModel(BaseModel):
    """Serializes with camelCase keys and accepts either spelling on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Sync API schemas
class StartSyncRequest(CamelModel):
    """Request model for starting a sync job."""
    path: str = Field(..., min_length=1, description="Directory to sync, relative to the data root.")


class StartSyncResponse(CamelModel):
    """Response model for a newly created sync job."""
    id: UUID


class TaskResultResponse(CamelModel):
    """Outcome of one processed unit."""
    item: str
    item_type: ItemType
    outcome: Outcome
    error: Optional[str] = None
    warning: Optional[str] = None
    duration_seconds: float

    @classmethod
    def from_result(cls, result: TaskResult) -> "TaskResultResponse":
        return cls(
            item=result.item,
            item_type=result.item_type,
            outcome=result.outcome,
            error=result.error,
            warning=result.warning,
            duration_seconds=result.duration_seconds,
        )


class JobSnapshotResponse(CamelModel):
    """Point-in-time view of a sync job."""
    id: UUID
    status: JobStatus
    path: str
    reason: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_tasks: int
    remaining_tasks: int
    results: List[TaskResultResponse]

    @classmethod
    def from_snapshot(cls, snapshot: JobSnapshot) -> "JobSnapshotResponse":
        return cls(
            id=snapshot.id,
            status=snapshot.status,
            path=snapshot.path,
            reason=snapshot.reason,
            created_at=snapshot.created_at,
            started_at=snapshot.started_at,
            completed_at=snapshot.completed_at,
            total_tasks=snapshot.total_tasks,
            remaining_tasks=snapshot.remaining_tasks,
            results=[TaskResultResponse.from_result(result) for result in snapshot.results],
        )


class ListJobsResponse(CamelModel):
    jobs: List[JobSnapshotResponse]


class JobStatsResponse(CamelModel):
    """Number of tracked jobs per status."""
    counts: Dict[str, int]
    total: int


class StopJobResponse(CamelModel):
    message: str
    job_id: UUID


class JobActionRequest(CamelModel):
    """Bulk action over all tracked jobs."""
    action: str = Field(..., pattern="^(cancel|clear)$")


class JobActionResponse(CamelModel):
    action: str
    affected: int


# Album API schemas
class AlbumResponse(CamelModel):
    """Response model for album details."""
    id: str
    path: str
    name: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    thumbnail_id: Optional[str] = None
    children: List[str] = Field(default_factory=list)
    media: List[str] = Field(default_factory=list)


class HealthResponse(CamelModel):
    status: str
    version: str


# Error responses
class ErrorResponse(BaseModel):
    """Generic error response model."""
    error: str
    detail: Optional[str] = None
