"""Custom exceptions for the repository onboarding workflow."""
from __future__ import annotations


class OnboardingError(Exception):
    """Base exception for onboarding failures."""


class FetchCandidatesFailed(OnboardingError):
    """Raised when the candidate repository list could not be loaded. Retryable."""


class ItemConnectFailed(OnboardingError):
    """Raised for one repository whose connect sequence failed; siblings continue."""

    def __init__(self, reason: str, step: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.step = step


class WorkflowNotFound(OnboardingError):
    """Raised when no onboarding workflow exists under the given id."""


class WorkflowAborted(OnboardingError):
    """Raised for intents sent to a workflow the user cancelled."""


class InvalidOnboardingTransition(OnboardingError):
    """Raised when an intent is not allowed in the workflow's current step."""

    def __init__(self, message: str, step: str):
        super().__init__(message)
        self.step = step
