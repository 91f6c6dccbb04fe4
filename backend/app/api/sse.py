"""
SSE (Server-Sent Events) API for live views.

Each stream sends full snapshots, never deltas:
- the signed-in user's active repositories
- the recent job feed (one repository, or all of the user's repositories)
- progress of one onboarding workflow
"""

import asyncio
import json
import logging
from typing import Any, AsyncGenerator, Callable, List, Optional, Tuple

from fastapi import APIRouter, Depends, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse

from app.api.deps import (
    get_live_views,
    get_job_repo,
    get_onboarding_registry,
    get_repository_repo,
)
from app.api.repos import load_owned_repository
from app.config import settings
from app.dtos.onboarding import OnboardingSnapshot, OnboardingStep
from app.dtos.repository import JobResponse, RepositoryResponse
from app.middleware.auth import get_current_identity
from app.repositories.connected_repository import ConnectedRepositoryRepository
from app.repositories.job import JobRepository
from app.services.identity.base import Identity
from app.services.live_view import LiveQuery, LiveViewCache
from app.services.onboarding_service import OnboardingRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["SSE"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}

FINAL_ONBOARDING_STEPS = (OnboardingStep.COMPLETE, OnboardingStep.CANCELLED)


def format_sse(data: Any, event: Optional[str] = None) -> str:
    """Format data as SSE message."""
    lines = []
    if event:
        lines.append(f"event: {event}")
    lines.append(f"data: {json.dumps(jsonable_encoder(data))}")
    lines.append("")  # Empty line to end message
    return "\n".join(lines) + "\n"


def snapshot_event(items: List[Any], serialize: Callable[[Any], Any]) -> str:
    return format_sse({"type": "snapshot", "items": [serialize(i) for i in items]}, "snapshot")


def error_event(exc: Exception) -> str:
    # The previous snapshot stays valid on the client
    return format_sse({"type": "error", "message": str(exc)}, "error")


async def _next_event(queue: asyncio.Queue) -> Optional[Tuple[str, Any]]:
    """Next queued event, or ``None`` once the heartbeat interval passes."""
    try:
        return await asyncio.wait_for(queue.get(), timeout=settings.SSE_HEARTBEAT_SECONDS)
    except asyncio.TimeoutError:
        return None


async def sse_live_query_generator(
    request: Request,
    live_query: LiveQuery,
    serialize: Callable[[Any], Any],
    name: str,
) -> AsyncGenerator[str, None]:
    """Stream every snapshot of ``live_query`` until the client goes away."""
    queue: asyncio.Queue = asyncio.Queue()
    live_query.add_listener(lambda items: queue.put_nowait(("snapshot", items)))
    live_query.add_error_listener(lambda exc: queue.put_nowait(("error", exc)))

    yield format_sse({"type": "connected", "stream": name})
    try:
        await live_query.start()
        while True:
            if await request.is_disconnected():
                break

            event = await _next_event(queue)
            if event is None:
                yield format_sse({"type": "heartbeat"})
                continue

            kind, payload = event
            if kind == "error":
                yield error_event(payload)
            else:
                yield snapshot_event(payload, serialize)
    except asyncio.CancelledError:
        logger.info(f"SSE {name} stream cancelled")
        raise
    finally:
        live_query.close()
        logger.info(f"SSE {name} stream disconnected")


async def sse_user_jobs_generator(
    request: Request,
    cache: LiveViewCache,
    repo_repo: ConnectedRepositoryRepository,
    job_repo: JobRepository,
    identity: Identity,
    limit: int,
) -> AsyncGenerator[str, None]:
    """
    Job feed across the user's active repositories.

    The job query filters on repository id membership, so it is rebuilt
    whenever the set of active repositories changes. Snapshots from a
    replaced job query are dropped.
    """
    queue: asyncio.Queue = asyncio.Queue()
    repos: LiveQuery = LiveQuery(
        cache, repo_repo.active_for_user(identity.uid), decode=repo_repo.decode_many
    )
    repos.add_listener(lambda items: queue.put_nowait(("repos", 0, items)))
    repos.add_error_listener(lambda exc: queue.put_nowait(("error", 0, exc)))

    jobs: Optional[LiveQuery] = None
    generation = 0
    repo_ids: Optional[List[str]] = None

    yield format_sse({"type": "connected", "stream": "jobs"})
    try:
        await repos.start()
        while True:
            if await request.is_disconnected():
                break

            event = await _next_event(queue)
            if event is None:
                yield format_sse({"type": "heartbeat"})
                continue

            kind, event_generation, payload = event
            if kind == "error":
                yield error_event(payload)
            elif kind == "repos":
                ids = [r.id for r in payload]
                if ids == repo_ids:
                    continue
                repo_ids = ids
                if jobs is not None:
                    jobs.close()
                generation += 1
                if not ids:
                    jobs = None
                    yield snapshot_event([], JobResponse.from_entity)
                    continue
                current = generation
                jobs = LiveQuery(
                    cache,
                    job_repo.recent(repo_ids=ids, limit=limit),
                    decode=job_repo.decode_many,
                )
                jobs.add_listener(lambda items, g=current: queue.put_nowait(("jobs", g, items)))
                jobs.add_error_listener(lambda exc, g=current: queue.put_nowait(("error", g, exc)))
                await jobs.start()
            elif kind == "jobs" and event_generation == generation:
                yield snapshot_event(payload, JobResponse.from_entity)
    except asyncio.CancelledError:
        logger.info("SSE jobs stream cancelled")
        raise
    finally:
        repos.close()
        if jobs is not None:
            jobs.close()
        logger.info("SSE jobs stream disconnected")


async def sse_onboarding_generator(
    request: Request,
    registry: OnboardingRegistry,
    workflow_id: str,
) -> AsyncGenerator[str, None]:
    """Stream workflow snapshots; the stream ends once the workflow is complete or cancelled."""
    orchestrator = registry.get(workflow_id)
    queue: asyncio.Queue = asyncio.Queue()
    remove = orchestrator.add_listener(queue.put_nowait)

    yield format_sse({"type": "connected", "workflow_id": workflow_id})
    try:
        snapshot: OnboardingSnapshot = orchestrator.snapshot()
        yield format_sse(snapshot, "snapshot")
        while snapshot.step not in FINAL_ONBOARDING_STEPS:
            if await request.is_disconnected():
                break
            try:
                snapshot = await asyncio.wait_for(
                    queue.get(), timeout=settings.SSE_HEARTBEAT_SECONDS
                )
            except asyncio.TimeoutError:
                yield format_sse({"type": "heartbeat"})
                continue
            yield format_sse(snapshot, "snapshot")
    finally:
        remove()
        logger.info(f"SSE onboarding stream for {workflow_id} closed")


@router.get("/sse/repositories")
async def sse_repositories(
    request: Request,
    identity: Identity = Depends(get_current_identity),  # noqa: B008
    cache: LiveViewCache = Depends(get_live_views),  # noqa: B008
    repo_repo: ConnectedRepositoryRepository = Depends(get_repository_repo),  # noqa: B008
):
    """Live list of the user's active repositories, newest first."""
    live_query: LiveQuery = LiveQuery(
        cache, repo_repo.active_for_user(identity.uid), decode=repo_repo.decode_many
    )
    return StreamingResponse(
        sse_live_query_generator(
            request, live_query, RepositoryResponse.from_entity, "repositories"
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/sse/jobs")
async def sse_jobs(
    request: Request,
    repo_id: Optional[str] = Query(None, description="Only jobs of this repository"),
    limit: int = Query(settings.JOBS_FEED_LIMIT, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),  # noqa: B008
    cache: LiveViewCache = Depends(get_live_views),  # noqa: B008
    repo_repo: ConnectedRepositoryRepository = Depends(get_repository_repo),  # noqa: B008
    job_repo: JobRepository = Depends(get_job_repo),  # noqa: B008
):
    """Live feed of the most recent analysis jobs."""
    if repo_id:
        await load_owned_repository(repo_repo, repo_id, identity)
        live_query: LiveQuery = LiveQuery(
            cache, job_repo.recent(repo_id=repo_id, limit=limit), decode=job_repo.decode_many
        )
        generator = sse_live_query_generator(
            request, live_query, JobResponse.from_entity, f"jobs:{repo_id}"
        )
    else:
        generator = sse_user_jobs_generator(
            request, cache, repo_repo, job_repo, identity, limit
        )
    return StreamingResponse(generator, media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/sse/onboarding/{workflow_id}")
async def sse_onboarding(
    workflow_id: str,
    request: Request,
    identity: Identity = Depends(get_current_identity),  # noqa: B008
    registry: OnboardingRegistry = Depends(get_onboarding_registry),  # noqa: B008
):
    """
    SSE endpoint for onboarding progress.

    Sends the current state right away, then a snapshot after every change
    (selection, per-item step, item outcome). Closes after the final state.
    """
    registry.get(workflow_id)  # 404 before the stream opens
    return StreamingResponse(
        sse_onboarding_generator(request, registry, workflow_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
