"""Repository, job and dashboard response DTOs"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.entities.job import Job, JobStatus, JobType
from app.entities.job_result import AnalysisSummary, DocumentationSection, JobResult
from app.entities.repository import ConnectedRepository, RepositoryStats


class RepositoryResponse(BaseModel):
    id: str
    external_repo_id: str
    full_name: str
    name: str
    owner_login: str
    description: Optional[str] = None
    is_private: bool = False
    language: Optional[str] = None
    default_branch: str = "main"
    webhook_id: Optional[str] = None
    last_analyzed_sha: Optional[str] = None
    last_analyzed_at: Optional[datetime] = None
    stats: RepositoryStats = Field(default_factory=RepositoryStats)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, repo: ConnectedRepository) -> "RepositoryResponse":
        # webhook_secret never leaves the backend
        return cls.model_validate(repo.model_dump(exclude={"webhook_secret"}))


class JobResponse(BaseModel):
    id: str
    job_type: JobType
    status: JobStatus
    repo_id: str
    repo_full_name: str
    pr_number: Optional[int] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, job: Job) -> "JobResponse":
        return cls.model_validate(job.model_dump())


class JobResultResponse(BaseModel):
    id: str
    job_id: str
    repo_id: str
    status: str
    analysis: Optional[AnalysisSummary] = None
    documentation: Dict[str, DocumentationSection] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, result: JobResult) -> "JobResultResponse":
        return cls.model_validate(result.model_dump())


class DashboardSummaryResponse(BaseModel):
    total_repos: int = 0
    private_repos: int = 0
    total_docs: int = 0
    files_analyzed: int = 0
    average_coverage: float = 0.0
    analyzed_repos: int = 0
    languages: Dict[str, int] = Field(default_factory=dict)
    recent_repositories: List[RepositoryResponse] = Field(default_factory=list)
    analysis_metrics: Dict[str, Any] = Field(default_factory=dict)
