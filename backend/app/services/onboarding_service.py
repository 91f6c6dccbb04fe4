"""
Repository onboarding workflow: select repositories, then connect them.

Connecting one repository is three dependent remote calls:

1. register a webhook on the source host,
2. persist the repository record with the webhook id/secret,
3. ask the analysis pipeline for the initial ingestion.

Items run one at a time in selection order with a fixed pause in between.
A failure in step 1 or 2 fails only that item. Once step 2 succeeds the
record exists and the item counts as connected even if step 3 fails; the
pipeline can pick the repository up later.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from app.dtos.github import CandidateRepository, WebhookRegistration
from app.dtos.onboarding import (
    ConnectStage,
    ItemOutcome,
    ItemStatus,
    OnboardingSnapshot,
    OnboardingStep,
)
from app.core.tracing import TracingContext
from app.entities.repository import ConnectedRepository
from app.repositories.connected_repository import ConnectedRepositoryRepository
from app.services.identity.base import Identity
from app.services.onboarding_exceptions import (
    FetchCandidatesFailed,
    InvalidOnboardingTransition,
    ItemConnectFailed,
    OnboardingError,
    WorkflowAborted,
    WorkflowNotFound,
)
from app.services.session import SessionContext
from app.store.exceptions import StoreConflictError

logger = logging.getLogger(__name__)

FETCH_FAILED_MESSAGE = "Failed to load repositories. Please try again."
ALREADY_CONNECTED = "Repository is already connected"


class SourceHostingClient(Protocol):
    async def list_repositories_for_user(self, identity: Identity) -> List[CandidateRepository]:
        ...

    async def register_webhook(self, full_name: str) -> WebhookRegistration:
        ...


class AnalysisTrigger(Protocol):
    async def trigger_initial_analysis(self, repository: ConnectedRepository) -> None:
        ...


OnboardingListener = Callable[[OnboardingSnapshot], None]


class OnboardingOrchestrator:
    """State for one onboarding interaction. Not shared between workflows."""

    def __init__(
        self,
        session: SessionContext,
        source: SourceHostingClient,
        repositories: ConnectedRepositoryRepository,
        analysis: AnalysisTrigger,
        item_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        workflow_id: Optional[str] = None,
    ):
        self.session = session
        self.source = source
        self.repositories = repositories
        self.analysis = analysis
        self.item_delay = item_delay
        self._sleep = sleep
        self.workflow_id = workflow_id or uuid.uuid4().hex

        self.step = OnboardingStep.SELECTING
        self.loading = False
        self.error: Optional[str] = None
        self.candidates: List[CandidateRepository] = []
        # dict keeps selection order
        self._selected: Dict[str, None] = {}
        self._outcomes: Dict[str, ItemOutcome] = {}
        self._listeners: List[OnboardingListener] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def selected(self) -> List[str]:
        return list(self._selected)

    @property
    def outcomes(self) -> List[ItemOutcome]:
        return [o.model_copy() for o in self._outcomes.values()]

    @property
    def connected_count(self) -> int:
        return sum(1 for o in self._outcomes.values() if o.status == ItemStatus.CONNECTED)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self._outcomes.values() if o.status == ItemStatus.FAILED)

    def snapshot(self) -> OnboardingSnapshot:
        return OnboardingSnapshot(
            workflow_id=self.workflow_id,
            step=self.step,
            loading=self.loading,
            candidates=list(self.candidates),
            selected=self.selected,
            outcomes=self.outcomes,
            connected_count=self.connected_count,
            failed_count=self.failed_count,
            error=self.error,
        )

    def add_listener(self, listener: OnboardingListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception(f"Onboarding listener failed for workflow {self.workflow_id}")

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def _ensure_step(self, action: str, expected: OnboardingStep) -> None:
        if self.step == OnboardingStep.CANCELLED:
            raise WorkflowAborted(f"Cannot {action}: onboarding was cancelled")
        if self.step != expected:
            raise InvalidOnboardingTransition(
                f"Cannot {action} while {self.step.value}", step=self.step.value
            )

    def _require_identity(self) -> Identity:
        identity = self.session.current_identity
        if identity is None:
            raise OnboardingError("Sign in before connecting repositories")
        return identity

    async def fetch_candidates(self, force: bool = False) -> List[CandidateRepository]:
        """Load the repositories the user can connect. A failed load can simply be retried."""
        self._ensure_step("load repositories", OnboardingStep.SELECTING)
        if self.candidates and not force:
            return list(self.candidates)

        identity = self._require_identity()
        self.loading = True
        self.error = None
        self._notify()
        try:
            candidates = await self.source.list_repositories_for_user(identity)
        except Exception as exc:
            logger.warning(f"Failed to load repositories for workflow {self.workflow_id}: {exc}")
            self.error = FETCH_FAILED_MESSAGE
            raise FetchCandidatesFailed(FETCH_FAILED_MESSAGE) from exc
        else:
            self.candidates = list(candidates)
            known = {c.external_id for c in self.candidates}
            for external_id in [s for s in self._selected if s not in known]:
                del self._selected[external_id]
        finally:
            self.loading = False
            self._notify()
        return list(self.candidates)

    def filter_candidates(self, query: str) -> List[CandidateRepository]:
        """Case-insensitive match on name or description."""
        needle = (query or "").strip().lower()
        if not needle:
            return list(self.candidates)
        return [
            c
            for c in self.candidates
            if needle in c.name.lower() or needle in (c.description or "").lower()
        ]

    def toggle_select(self, external_id: str) -> bool:
        """Flip membership of ``external_id`` in the selection; returns the new membership."""
        self._ensure_step("change the selection", OnboardingStep.SELECTING)
        external_id = str(external_id)
        if external_id not in {c.external_id for c in self.candidates}:
            raise OnboardingError(f"Unknown repository {external_id}")

        if external_id in self._selected:
            del self._selected[external_id]
            selected = False
        else:
            self._selected[external_id] = None
            selected = True
        self._notify()
        return selected

    def cancel(self) -> None:
        if self.step == OnboardingStep.CANCELLED:
            return
        self._ensure_step("cancel", OnboardingStep.SELECTING)
        self.step = OnboardingStep.CANCELLED
        logger.info(f"Onboarding workflow {self.workflow_id} cancelled")
        self._notify()

    async def confirm(self) -> OnboardingSnapshot:
        """Connect every selected repository, strictly one after another."""
        return await self.begin_confirm()

    def begin_confirm(self) -> Awaitable[OnboardingSnapshot]:
        """
        Validate and switch to connecting right away; return the connect loop.

        Lets a caller reject a bad confirm synchronously and run the loop in
        the background.
        """
        self._ensure_step("confirm", OnboardingStep.SELECTING)
        if not self._selected:
            raise InvalidOnboardingTransition(
                "Select at least one repository", step=self.step.value
            )
        identity = self._require_identity()

        by_id = {c.external_id: c for c in self.candidates}
        items = [by_id[external_id] for external_id in self._selected]

        self.step = OnboardingStep.CONNECTING
        self.error = None
        self._outcomes = {
            c.external_id: ItemOutcome(external_id=c.external_id, full_name=c.full_name)
            for c in items
        }
        self._notify()
        return self._connect_all(identity, items)

    async def _connect_all(
        self, identity: Identity, items: List[CandidateRepository]
    ) -> OnboardingSnapshot:
        TracingContext.set(workflow_id=self.workflow_id, user_id=identity.uid)
        logger.info(f"Connecting {len(items)} repositories")

        for index, candidate in enumerate(items):
            if index > 0:
                await self._sleep(self.item_delay)
            await self._connect_item(identity, candidate)

        self.step = OnboardingStep.COMPLETE
        logger.info(
            f"Onboarding finished: {self.connected_count} connected, {self.failed_count} failed"
        )
        self._notify()
        return self.snapshot()

    # ------------------------------------------------------------------
    # Per-item sequence
    # ------------------------------------------------------------------

    def _enter(self, outcome: ItemOutcome, stage: ConnectStage) -> None:
        outcome.stage = stage
        self._notify()

    async def _connect_item(self, identity: Identity, candidate: CandidateRepository) -> None:
        outcome = self._outcomes[candidate.external_id]
        TracingContext.set(repo_id=candidate.full_name)
        try:
            record = await self._persist_with_webhook(identity, candidate, outcome)

            # The record is saved: from here on the item is connected
            outcome.repository_id = record.id
            self._enter(outcome, ConnectStage.TRIGGER_ANALYSIS)
            try:
                await self.analysis.trigger_initial_analysis(record)
            except Exception as exc:
                logger.warning(f"Initial analysis for {candidate.full_name} not queued: {exc}")
                outcome.analysis_error = str(exc) or exc.__class__.__name__

            outcome.status = ItemStatus.CONNECTED
            outcome.stage = ConnectStage.DONE
            logger.info(f"Connected {candidate.full_name} as {record.id}")
        except ItemConnectFailed as exc:
            outcome.status = ItemStatus.FAILED
            outcome.reason = exc.reason
            logger.warning(f"Failed to connect {candidate.full_name}: {exc.reason}")
        finally:
            TracingContext.clear_repo()
            self._notify()

    async def _persist_with_webhook(
        self,
        identity: Identity,
        candidate: CandidateRepository,
        outcome: ItemOutcome,
    ) -> ConnectedRepository:
        self._enter(outcome, ConnectStage.CHECK)
        try:
            existing = await self.repositories.find_active_by_external_id(
                identity.uid, candidate.external_id
            )
        except Exception as exc:
            raise ItemConnectFailed(f"Could not check existing repositories: {exc}", "check") from exc
        if existing is not None:
            raise ItemConnectFailed(ALREADY_CONNECTED, "check")

        self._enter(outcome, ConnectStage.REGISTER_WEBHOOK)
        try:
            hook = await self.source.register_webhook(candidate.full_name)
        except Exception as exc:
            raise ItemConnectFailed(f"Webhook registration failed: {exc}", "register_webhook") from exc

        self._enter(outcome, ConnectStage.PERSIST_RECORD)
        try:
            return await self.repositories.add_repository(
                identity.uid,
                {
                    "external_repo_id": candidate.external_id,
                    "full_name": candidate.full_name,
                    "name": candidate.name,
                    "owner_login": candidate.owner_login,
                    "description": candidate.description,
                    "is_private": candidate.is_private,
                    "language": candidate.language,
                    "default_branch": candidate.default_branch,
                    "webhook_id": hook.webhook_id,
                    "webhook_secret": hook.webhook_secret,
                },
            )
        except StoreConflictError as exc:
            raise ItemConnectFailed(ALREADY_CONNECTED, "persist_record") from exc
        except Exception as exc:
            raise ItemConnectFailed(f"Could not save repository: {exc}", "persist_record") from exc


class OnboardingRegistry:
    """
    Open onboarding workflows by id, plus their background connect loops.

    Workflows expire on their own: a complete or cancelled one
    ``finished_ttl`` seconds after its last change or lookup, one still
    selecting after ``idle_ttl`` seconds without activity. A workflow that
    is connecting is never evicted. Expired entries are dropped lazily on
    ``add`` and ``get``.
    """

    def __init__(
        self,
        finished_ttl: float = 300.0,
        idle_ttl: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.finished_ttl = finished_ttl
        self.idle_ttl = idle_ttl
        self._clock = clock
        self._workflows: Dict[str, OnboardingOrchestrator] = {}
        self._touched: Dict[str, float] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._workflows)

    def add(self, orchestrator: OnboardingOrchestrator) -> OnboardingOrchestrator:
        self.prune()
        workflow_id = orchestrator.workflow_id
        self._workflows[workflow_id] = orchestrator
        self._touch(workflow_id)
        orchestrator.add_listener(lambda snapshot: self._touch(workflow_id))
        return orchestrator

    def get(self, workflow_id: str) -> OnboardingOrchestrator:
        self.prune()
        orchestrator = self._workflows.get(workflow_id)
        if orchestrator is None:
            raise WorkflowNotFound(f"Onboarding workflow {workflow_id} not found")
        self._touch(workflow_id)
        return orchestrator

    def discard(self, workflow_id: str) -> None:
        orchestrator = self.get(workflow_id)
        if orchestrator.step == OnboardingStep.CONNECTING:
            raise InvalidOnboardingTransition(
                "Cannot discard while connecting", step=orchestrator.step.value
            )
        self._remove(workflow_id)

    def prune(self) -> int:
        """Drop expired workflows; returns how many were dropped."""
        now = self._clock()
        expired = []
        for workflow_id, orchestrator in self._workflows.items():
            idle = now - self._touched.get(workflow_id, now)
            if orchestrator.step in (OnboardingStep.COMPLETE, OnboardingStep.CANCELLED):
                if idle >= self.finished_ttl:
                    expired.append(workflow_id)
            elif orchestrator.step == OnboardingStep.SELECTING and idle >= self.idle_ttl:
                expired.append(workflow_id)

        for workflow_id in expired:
            logger.info(f"Onboarding workflow {workflow_id} expired")
            self._remove(workflow_id)
        return len(expired)

    def _touch(self, workflow_id: str) -> None:
        if workflow_id in self._workflows:
            self._touched[workflow_id] = self._clock()

    def _remove(self, workflow_id: str) -> None:
        self._workflows.pop(workflow_id, None)
        self._touched.pop(workflow_id, None)
        self._tasks.pop(workflow_id, None)

    def start_confirm(self, workflow_id: str) -> asyncio.Task:
        """Validate the confirm now and run the connect loop as a task."""
        orchestrator = self.get(workflow_id)
        connect = orchestrator.begin_confirm()
        task = asyncio.get_running_loop().create_task(connect)
        self._tasks[workflow_id] = task
        task.add_done_callback(lambda t: self._on_connect_done(workflow_id, t))
        return task

    def _on_connect_done(self, workflow_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(workflow_id) is task:
            del self._tasks[workflow_id]
        self._touch(workflow_id)
        if task.cancelled():
            logger.warning(f"Onboarding workflow {workflow_id} stopped before finishing")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Onboarding workflow {workflow_id} crashed: {exc}")

    async def close(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._workflows.clear()
        self._touched.clear()
