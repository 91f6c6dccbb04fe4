"""Onboarding workflow DTOs"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from app.dtos.github import CandidateRepository


class OnboardingStep(str, Enum):
    SELECTING = "selecting"
    CONNECTING = "connecting"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class ItemStatus(str, Enum):
    PENDING = "pending"
    CONNECTED = "connected"
    FAILED = "failed"


class ConnectStage(str, Enum):
    """Where an item is in its connect sequence (or where it stopped)."""

    CHECK = "check_existing"
    REGISTER_WEBHOOK = "register_webhook"
    PERSIST_RECORD = "persist_record"
    TRIGGER_ANALYSIS = "trigger_analysis"
    DONE = "done"


class ItemOutcome(BaseModel):
    external_id: str
    full_name: str
    status: ItemStatus = ItemStatus.PENDING
    stage: Optional[ConnectStage] = None
    reason: Optional[str] = None
    repository_id: Optional[str] = None
    # Set when the record was saved but the first analysis could not be queued
    analysis_error: Optional[str] = None


class OnboardingSnapshot(BaseModel):
    workflow_id: str
    step: OnboardingStep
    loading: bool = False
    candidates: List[CandidateRepository] = Field(default_factory=list)
    selected: List[str] = Field(default_factory=list)
    outcomes: List[ItemOutcome] = Field(default_factory=list)
    connected_count: int = 0
    failed_count: int = 0
    error: Optional[str] = None


class ToggleSelectionRequest(BaseModel):
    external_id: str


class OnboardingCreatedResponse(BaseModel):
    workflow_id: str
    state: OnboardingSnapshot
