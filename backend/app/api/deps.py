"""Shared FastAPI dependencies backed by objects built at startup."""

from fastapi import Depends, Request

from app.repositories.connected_repository import ConnectedRepositoryRepository
from app.repositories.job import JobRepository, JobResultRepository
from app.services.analysis_client import AnalysisClient
from app.services.live_view import LiveViewCache
from app.services.onboarding_service import OnboardingRegistry
from app.store.base import RemoteStore


def get_store(request: Request) -> RemoteStore:
    return request.app.state.store


def get_live_views(request: Request) -> LiveViewCache:
    return request.app.state.live_views


def get_analysis_client(request: Request) -> AnalysisClient:
    return request.app.state.analysis_client


def get_onboarding_registry(request: Request) -> OnboardingRegistry:
    return request.app.state.onboarding


def get_repository_repo(store: RemoteStore = Depends(get_store)) -> ConnectedRepositoryRepository:
    return ConnectedRepositoryRepository(store)


def get_job_repo(store: RemoteStore = Depends(get_store)) -> JobRepository:
    return JobRepository(store)


def get_job_result_repo(store: RemoteStore = Depends(get_store)) -> JobResultRepository:
    return JobResultRepository(store)
