"""Analysis job feed and results."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_job_repo, get_job_result_repo, get_repository_repo
from app.api.repos import load_owned_repository
from app.config import settings
from app.dtos.repository import JobResponse, JobResultResponse
from app.middleware.auth import get_current_identity
from app.repositories.connected_repository import ConnectedRepositoryRepository
from app.repositories.job import JobRepository, JobResultRepository
from app.services.identity.base import Identity

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.get("", response_model=List[JobResponse])
async def list_jobs(
    repo_id: Optional[str] = Query(None, description="Only jobs of this repository"),
    limit: int = Query(settings.JOBS_FEED_LIMIT, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),
    repo_repo: ConnectedRepositoryRepository = Depends(get_repository_repo),
    job_repo: JobRepository = Depends(get_job_repo),
):
    """Most recent jobs for one repository, or across the user's active repositories."""
    if repo_id:
        await load_owned_repository(repo_repo, repo_id, identity)
        jobs = await job_repo.list_recent(repo_id=repo_id, limit=limit)
    else:
        repo_ids = [r.id for r in await repo_repo.list_active(identity.uid)]
        if not repo_ids:
            return []
        jobs = await job_repo.list_recent(repo_ids=repo_ids, limit=limit)
    return [JobResponse.from_entity(j) for j in jobs]


@router.get("/{job_id}/result", response_model=JobResultResponse)
async def get_job_result(
    job_id: str,
    identity: Identity = Depends(get_current_identity),
    repo_repo: ConnectedRepositoryRepository = Depends(get_repository_repo),
    result_repo: JobResultRepository = Depends(get_job_result_repo),
):
    """Analysis summary and generated documentation of one job."""
    result = await result_repo.find_by_job(job_id)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job result not found",
        )
    await load_owned_repository(repo_repo, result.repo_id, identity, include_inactive=True)
    return JobResultResponse.from_entity(result)
