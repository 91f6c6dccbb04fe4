"""Repository onboarding workflow endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import (
    get_analysis_client,
    get_onboarding_registry,
    get_repository_repo,
)
from app.config import settings
from app.dtos.onboarding import (
    OnboardingCreatedResponse,
    OnboardingSnapshot,
    ToggleSelectionRequest,
)
from app.middleware.auth import get_current_identity, get_github_token, get_session
from app.repositories.connected_repository import ConnectedRepositoryRepository
from app.services.analysis_client import AnalysisClient
from app.services.github.github_client import GithubClient
from app.services.identity.base import Identity
from app.services.onboarding_exceptions import FetchCandidatesFailed
from app.services.onboarding_service import OnboardingOrchestrator, OnboardingRegistry
from app.services.session import SessionContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboarding", tags=["Onboarding"])


def _snapshot(orchestrator: OnboardingOrchestrator, q: Optional[str] = None) -> OnboardingSnapshot:
    snapshot = orchestrator.snapshot()
    if q:
        snapshot.candidates = orchestrator.filter_candidates(q)
    return snapshot


@router.post("", response_model=OnboardingCreatedResponse, status_code=status.HTTP_201_CREATED)
async def start_onboarding(
    identity: Identity = Depends(get_current_identity),
    token: str = Depends(get_github_token),
    session: SessionContext = Depends(get_session),
    repo_repo: ConnectedRepositoryRepository = Depends(get_repository_repo),
    analysis: AnalysisClient = Depends(get_analysis_client),
    registry: OnboardingRegistry = Depends(get_onboarding_registry),
):
    """Open a workflow and load the candidate repositories. A failed load is reported in ``error``."""
    orchestrator = registry.add(
        OnboardingOrchestrator(
            session=session,
            source=GithubClient.from_settings(token, settings),
            repositories=repo_repo,
            analysis=analysis,
            item_delay=settings.ONBOARDING_ITEM_DELAY_SECONDS,
        )
    )
    logger.info(f"Onboarding workflow {orchestrator.workflow_id} opened for {identity.uid}")
    try:
        await orchestrator.fetch_candidates()
    except FetchCandidatesFailed:
        pass  # surfaced through the snapshot error
    return OnboardingCreatedResponse(
        workflow_id=orchestrator.workflow_id, state=orchestrator.snapshot()
    )


@router.get("/{workflow_id}", response_model=OnboardingSnapshot)
def get_onboarding(
    workflow_id: str,
    q: Optional[str] = Query(None, description="Filter candidates by name or description"),
    identity: Identity = Depends(get_current_identity),
    registry: OnboardingRegistry = Depends(get_onboarding_registry),
):
    return _snapshot(registry.get(workflow_id), q)


@router.post("/{workflow_id}/candidates", response_model=OnboardingSnapshot)
async def reload_candidates(
    workflow_id: str,
    identity: Identity = Depends(get_current_identity),
    registry: OnboardingRegistry = Depends(get_onboarding_registry),
):
    """Re-fetch the candidate list (retry after a failed load)."""
    orchestrator = registry.get(workflow_id)
    try:
        await orchestrator.fetch_candidates(force=True)
    except FetchCandidatesFailed:
        pass  # surfaced through the snapshot error
    return orchestrator.snapshot()


@router.post("/{workflow_id}/toggle", response_model=OnboardingSnapshot)
def toggle_selection(
    workflow_id: str,
    payload: ToggleSelectionRequest,
    identity: Identity = Depends(get_current_identity),
    registry: OnboardingRegistry = Depends(get_onboarding_registry),
):
    orchestrator = registry.get(workflow_id)
    orchestrator.toggle_select(payload.external_id)
    return orchestrator.snapshot()


@router.post(
    "/{workflow_id}/confirm",
    response_model=OnboardingSnapshot,
    status_code=status.HTTP_202_ACCEPTED,
)
async def confirm_selection(
    workflow_id: str,
    identity: Identity = Depends(get_current_identity),
    registry: OnboardingRegistry = Depends(get_onboarding_registry),
):
    """
    Start connecting the selection. Returns at once; progress is streamed on
    ``/api/sse/onboarding/{workflow_id}``.
    """
    registry.start_confirm(workflow_id)
    return registry.get(workflow_id).snapshot()


@router.post("/{workflow_id}/cancel", response_model=OnboardingSnapshot)
def cancel_onboarding(
    workflow_id: str,
    identity: Identity = Depends(get_current_identity),
    registry: OnboardingRegistry = Depends(get_onboarding_registry),
):
    orchestrator = registry.get(workflow_id)
    orchestrator.cancel()
    return orchestrator.snapshot()


@router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
def discard_onboarding(
    workflow_id: str,
    identity: Identity = Depends(get_current_identity),
    registry: OnboardingRegistry = Depends(get_onboarding_registry),
):
    registry.discard(workflow_id)
