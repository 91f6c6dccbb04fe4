"""
Tracing Context - per-task context for log correlation.

Every request, live subscription and onboarding workflow runs in its own
asyncio task, and contextvars give each task its own copy of these values.

Usage:
    # Set context when a workflow starts processing an item
    TracingContext.set(workflow_id="wf-123", repo_id="octo/hello")

    # Get context (automatically added to JSONFormatter logs)
    ctx = TracingContext.get()

    # Clear context at the end
    TracingContext.clear()
"""

import uuid
from contextvars import ContextVar
from typing import Dict

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
_user_id: ContextVar[str] = ContextVar("user_id", default="")
_repo_id: ContextVar[str] = ContextVar("repo_id", default="")
_workflow_id: ContextVar[str] = ContextVar("workflow_id", default="")


class TracingContext:
    """Task-local tracing context."""

    @staticmethod
    def set(
        correlation_id: str = "",
        user_id: str = "",
        repo_id: str = "",
        workflow_id: str = "",
    ) -> None:
        """Set tracing context for current execution."""
        if correlation_id:
            _correlation_id.set(correlation_id)
        if user_id:
            _user_id.set(user_id)
        if repo_id:
            _repo_id.set(repo_id)
        if workflow_id:
            _workflow_id.set(workflow_id)

    @staticmethod
    def get() -> Dict[str, str]:
        """Get current tracing context as dict."""
        return {
            "correlation_id": _correlation_id.get(),
            "user_id": _user_id.get(),
            "repo_id": _repo_id.get(),
            "workflow_id": _workflow_id.get(),
        }

    @staticmethod
    def get_or_create_correlation_id() -> str:
        corr_id = _correlation_id.get()
        if not corr_id:
            corr_id = str(uuid.uuid4())
            _correlation_id.set(corr_id)
        return corr_id

    @staticmethod
    def clear_repo() -> None:
        _repo_id.set("")

    @staticmethod
    def clear() -> None:
        """Clear all tracing context."""
        _correlation_id.set("")
        _user_id.set("")
        _repo_id.set("")
        _workflow_id.set("")
