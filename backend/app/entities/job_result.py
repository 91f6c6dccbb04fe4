"""Job result entity - analysis summary and generated documentation for one job."""

from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field

from .base import BaseEntity


class AnalysisSummary(BaseModel):
    files_analyzed: Optional[int] = None
    total_files: Optional[int] = None
    lines_of_code: Optional[int] = None
    docs_generated: Optional[int] = None


class DocumentationSection(BaseModel):
    title: str
    content: str


class JobResult(BaseEntity):
    job_id: str
    repo_id: str
    status: Literal["completed", "failed"]
    analysis: Optional[AnalysisSummary] = None
    # Keyed by section name, e.g. "onboarding", "architecture"
    documentation: Dict[str, DocumentationSection] = Field(default_factory=dict)
