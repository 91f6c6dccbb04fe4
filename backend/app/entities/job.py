"""Analysis job entity. Jobs are written by the analysis pipeline and only observed here."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import model_validator

from .base import BaseEntity


class JobType(str, Enum):
    INITIAL_INGESTION = "initial-ingestion"
    PR_ANALYSIS = "pr-analysis"
    PUSH_ANALYSIS = "push-analysis"
    DELTA_ANALYSIS = "delta-analysis"


class JobStatus(str, Enum):
    """queued -> dispatched -> in-progress -> completed | failed"""

    QUEUED = "queued"
    DISPATCHED = "dispatched"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class Job(BaseEntity):
    job_type: JobType
    status: JobStatus = JobStatus.QUEUED

    repo_id: str
    repo_full_name: str
    pr_number: Optional[int] = None

    error: Optional[str] = None
    completed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_terminal_fields(self) -> "Job":
        if self.status.is_terminal != (self.completed_at is not None):
            raise ValueError(
                f"completed_at must be set exactly when the job is terminal (status={self.status.value})"
            )
        if self.error is not None and self.status != JobStatus.FAILED:
            raise ValueError("error is only allowed on failed jobs")
        return self
