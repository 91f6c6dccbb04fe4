"""Read-only access to analysis jobs and their results."""

from typing import List, Optional, Sequence

from app.entities.job import Job
from app.entities.job_result import JobResult
from app.store.base import QueryDescriptor, RemoteStore, SortKey, eq, is_in

from .base import BaseRepository

JOBS_COLLECTION = "jobs"
JOB_RESULTS_COLLECTION = "job_results"

DEFAULT_FEED_LIMIT = 10


class JobRepository(BaseRepository[Job]):
    def __init__(self, store: RemoteStore):
        super().__init__(store, JOBS_COLLECTION, Job)

    def recent(
        self,
        repo_id: Optional[str] = None,
        repo_ids: Optional[Sequence[str]] = None,
        limit: int = DEFAULT_FEED_LIMIT,
    ) -> QueryDescriptor:
        """
        Most recent jobs first, for one repository or a set of repositories.

        Without either argument every job is visible, as the pipeline's
        operators see it.
        """
        filters = []
        if repo_id:
            filters.append(eq("repo_id", repo_id))
        elif repo_ids is not None:
            filters.append(is_in("repo_id", list(repo_ids)))
        return self.descriptor(
            filters=filters,
            sort=SortKey("created_at", descending=True),
            limit=limit,
        )

    async def list_recent(
        self,
        repo_id: Optional[str] = None,
        repo_ids: Optional[Sequence[str]] = None,
        limit: int = DEFAULT_FEED_LIMIT,
    ) -> List[Job]:
        return await self.find_many(self.recent(repo_id=repo_id, repo_ids=repo_ids, limit=limit))


class JobResultRepository(BaseRepository[JobResult]):
    def __init__(self, store: RemoteStore):
        super().__init__(store, JOB_RESULTS_COLLECTION, JobResult)

    async def find_by_job(self, job_id: str) -> Optional[JobResult]:
        return await self.find_one(self.descriptor(filters=[eq("job_id", job_id)]))
