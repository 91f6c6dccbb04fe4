"""Dashboard analytics endpoints."""
from fastapi import APIRouter, Depends

from app.api.deps import get_analysis_client, get_repository_repo
from app.dtos.repository import DashboardSummaryResponse
from app.middleware.auth import get_current_identity
from app.repositories.connected_repository import ConnectedRepositoryRepository
from app.services.analysis_client import AnalysisClient
from app.services.analytics import compute_dashboard_summary
from app.services.identity.base import Identity

router = APIRouter()


@router.get("/summary", response_model=DashboardSummaryResponse)
async def get_dashboard_summary(
    identity: Identity = Depends(get_current_identity),
    repo_repo: ConnectedRepositoryRepository = Depends(get_repository_repo),
    analysis: AnalysisClient = Depends(get_analysis_client),
):
    """Return aggregated dashboard metrics derived from the user's repositories."""
    repos = await repo_repo.list_active(identity.uid)
    metrics = await analysis.get_metrics()
    return compute_dashboard_summary(repos, metrics)
