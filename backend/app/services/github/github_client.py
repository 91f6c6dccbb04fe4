"""GitHub REST client for the calls the onboarding workflow needs."""

from __future__ import annotations

import logging
import secrets
import time
from typing import Any, Dict, List, Optional

import httpx

from app.dtos.github import CandidateRepository, WebhookRegistration
from app.services.github.exceptions import (
    GithubConfigurationError,
    GithubError,
    GithubNotFoundError,
    GithubPermissionError,
    GithubRateLimitError,
    GithubRetryableError,
)
from app.services.identity.base import Identity

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("message") or response.text
    except ValueError:
        return response.text


def raise_for_github_status(response: httpx.Response) -> None:
    if response.is_success:
        return

    status = response.status_code
    message = f"GitHub API {status}: {_error_message(response)}"

    if status in (403, 429) and (
        response.headers.get("x-ratelimit-remaining") == "0"
        or "retry-after" in response.headers
    ):
        retry_after: Optional[float] = None
        if "retry-after" in response.headers:
            retry_after = float(response.headers["retry-after"])
        elif "x-ratelimit-reset" in response.headers:
            retry_after = max(0.0, float(response.headers["x-ratelimit-reset"]) - time.time())
        raise GithubRateLimitError(message, retry_after=retry_after)
    if status in (401, 403):
        raise GithubPermissionError(message)
    if status == 404:
        raise GithubNotFoundError(message)
    if status >= 500:
        raise GithubRetryableError(message)
    raise GithubError(message)


class GithubClient:
    """
    Thin async wrapper over the GitHub REST API, authenticated as the
    signed-in user.
    """

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.github.com",
        page_size: int = 100,
        max_pages: int = 10,
        webhook_url: Optional[str] = None,
        webhook_events: Optional[List[str]] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.page_size = page_size
        self.max_pages = max_pages
        self.webhook_url = webhook_url
        self.webhook_events = webhook_events or ["push", "pull_request"]
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, token: str, settings) -> "GithubClient":
        return cls(
            token=token,
            api_url=settings.GITHUB_API_URL,
            page_size=settings.GITHUB_REPOS_PAGE_SIZE,
            max_pages=settings.GITHUB_REPOS_MAX_PAGES,
            webhook_url=settings.WEBHOOK_CALLBACK_URL,
            webhook_events=settings.WEBHOOK_EVENTS,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {self.token}",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )

    async def _request(
        self, client: httpx.AsyncClient, method: str, path: str, **kwargs: Any
    ) -> httpx.Response:
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise GithubRetryableError(f"GitHub request {method} {path} failed: {exc}") from exc
        raise_for_github_status(response)
        return response

    async def list_repositories_for_user(
        self, identity: Optional[Identity] = None
    ) -> List[CandidateRepository]:
        """All repositories the user can see, most recently updated first."""
        repos: List[CandidateRepository] = []
        async with self._client() as client:
            for page in range(1, self.max_pages + 1):
                response = await self._request(
                    client,
                    "GET",
                    "/user/repos",
                    params={
                        "per_page": self.page_size,
                        "page": page,
                        "sort": "updated",
                        "affiliation": "owner,collaborator,organization_member",
                    },
                )
                items: List[Dict[str, Any]] = response.json()
                repos.extend(CandidateRepository.from_github(item) for item in items)
                if len(items) < self.page_size:
                    break
            else:
                logger.warning(
                    f"Stopped listing repositories after {self.max_pages} pages ({len(repos)} repos)"
                )

        who = identity.login if identity else "current user"
        logger.info(f"Fetched {len(repos)} GitHub repositories for {who}")
        return repos

    async def register_webhook(self, full_name: str) -> WebhookRegistration:
        """Create a repository hook pointing at the analysis pipeline."""
        if not self.webhook_url:
            raise GithubConfigurationError("WEBHOOK_CALLBACK_URL is not configured")

        secret = secrets.token_hex(20)
        async with self._client() as client:
            response = await self._request(
                client,
                "POST",
                f"/repos/{full_name}/hooks",
                json={
                    "name": "web",
                    "active": True,
                    "events": self.webhook_events,
                    "config": {
                        "url": self.webhook_url,
                        "content_type": "json",
                        "secret": secret,
                        "insecure_ssl": "0",
                    },
                },
            )
        hook = response.json()
        logger.info(f"Registered webhook {hook['id']} for {full_name}")
        return WebhookRegistration(webhook_id=str(hook["id"]), webhook_secret=secret)
