"""Repository management endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, status

from app.api.deps import get_repository_repo
from app.dtos.repository import RepositoryResponse
from app.entities.repository import ConnectedRepository
from app.middleware.auth import get_current_identity
from app.repositories.connected_repository import ConnectedRepositoryRepository
from app.services.identity.base import Identity

router = APIRouter(prefix="/repos", tags=["Repositories"])


async def load_owned_repository(
    repo_repo: ConnectedRepositoryRepository,
    repo_id: str,
    identity: Identity,
    include_inactive: bool = False,
) -> ConnectedRepository:
    repo = await repo_repo.find_by_id(repo_id)
    if (
        repo is None
        or repo.user_id != identity.uid
        or (not repo.is_active and not include_inactive)
    ):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Repository not found",
        )
    return repo


@router.get("", response_model=List[RepositoryResponse])
async def list_repositories(
    identity: Identity = Depends(get_current_identity),
    repo_repo: ConnectedRepositoryRepository = Depends(get_repository_repo),
):
    """Active repositories of the signed-in user, newest first."""
    repos = await repo_repo.list_active(identity.uid)
    return [RepositoryResponse.from_entity(r) for r in repos]


@router.get("/{repo_id}", response_model=RepositoryResponse)
async def get_repository(
    repo_id: str = Path(..., description="Repository id"),
    identity: Identity = Depends(get_current_identity),
    repo_repo: ConnectedRepositoryRepository = Depends(get_repository_repo),
):
    repo = await load_owned_repository(repo_repo, repo_id, identity)
    return RepositoryResponse.from_entity(repo)


@router.delete("/{repo_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_repository(
    repo_id: str = Path(..., description="Repository id"),
    identity: Identity = Depends(get_current_identity),
    repo_repo: ConnectedRepositoryRepository = Depends(get_repository_repo),
):
    """Soft delete: the record stays with is_active=false. Repeating it is harmless."""
    repo = await load_owned_repository(repo_repo, repo_id, identity, include_inactive=True)
    await repo_repo.soft_delete(repo.id)
