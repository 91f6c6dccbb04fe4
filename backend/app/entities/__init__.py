"""Entity models - the typed shape of documents in the remote store"""

from .base import BaseEntity
from .job import Job, JobStatus, JobType
from .job_result import AnalysisSummary, DocumentationSection, JobResult
from .repository import ConnectedRepository, RepositoryStats
from .user_profile import UserPreferences, UserProfile, UserStats

__all__ = [
    "BaseEntity",
    # Repositories
    "ConnectedRepository",
    "RepositoryStats",
    # Jobs
    "Job",
    "JobStatus",
    "JobType",
    "JobResult",
    "AnalysisSummary",
    "DocumentationSection",
    # Users
    "UserProfile",
    "UserPreferences",
    "UserStats",
]
