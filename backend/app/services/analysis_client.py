"""Client for the external analysis pipeline (job trigger and metrics)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from app.entities.job import JobType
from app.entities.repository import ConnectedRepository

logger = logging.getLogger(__name__)


def empty_metrics() -> Dict[str, Any]:
    return {
        "success": True,
        "current": {
            "webhooks": {"total": 0},
            "jobs": {"total": 0, "success_rate": 0},
        },
        "recent": {"jobs": []},
        "history": [],
    }


class AnalysisClient:
    def __init__(
        self,
        base_url: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self.transport = transport

    async def trigger_initial_analysis(self, repository: ConnectedRepository) -> None:
        """
        Ask the pipeline to ingest a freshly connected repository.

        Without a configured pipeline URL the push webhook is left to enqueue
        the first job.
        """
        if not self.base_url:
            logger.info(
                f"ANALYSIS_API_URL not set, initial analysis for {repository.full_name} "
                "will start from the webhook"
            )
            return

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                f"{self.base_url}/jobs/trigger",
                json={
                    "job_type": JobType.INITIAL_INGESTION.value,
                    "repo_full_name": repository.full_name,
                    "repo_id": repository.id,
                },
            )
        response.raise_for_status()
        logger.info(f"Initial analysis queued for {repository.full_name}")

    async def get_metrics(self) -> Dict[str, Any]:
        """Pipeline metrics; an all-zero payload when the pipeline cannot be reached."""
        if not self.base_url:
            return empty_metrics()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(f"{self.base_url}/getMetrics")
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Failed to fetch analysis metrics: {exc}")
            return empty_metrics()
