"""Analytics helpers to power dashboard endpoints."""
from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List, Sequence

from app.dtos.repository import DashboardSummaryResponse, RepositoryResponse
from app.entities.repository import ConnectedRepository

RECENT_REPOSITORIES = 5


def compute_dashboard_summary(
    repositories: Sequence[ConnectedRepository],
    analysis_metrics: Dict[str, Any] | None = None,
) -> DashboardSummaryResponse:
    """Aggregate the user's active repositories; ``repositories`` is newest first."""
    if not repositories:
        return DashboardSummaryResponse(analysis_metrics=analysis_metrics or {})

    languages: Counter = Counter()
    total_docs = 0
    files_analyzed = 0
    coverage_sum = 0.0
    analyzed: List[ConnectedRepository] = []

    for repo in repositories:
        total_docs += repo.stats.docs_count
        files_analyzed += repo.stats.files_analyzed
        if repo.language:
            languages[repo.language] += 1
        if repo.last_analyzed_at is not None or repo.stats.files_analyzed:
            analyzed.append(repo)
            coverage_sum += repo.stats.coverage

    # Coverage is averaged over repositories the pipeline has looked at
    average_coverage = round(coverage_sum / len(analyzed), 2) if analyzed else 0.0

    return DashboardSummaryResponse(
        total_repos=len(repositories),
        private_repos=sum(1 for r in repositories if r.is_private),
        total_docs=total_docs,
        files_analyzed=files_analyzed,
        average_coverage=average_coverage,
        analyzed_repos=len(analyzed),
        languages=dict(languages.most_common()),
        recent_repositories=[
            RepositoryResponse.from_entity(r) for r in repositories[:RECENT_REPOSITORIES]
        ],
        analysis_metrics=analysis_metrics or {},
    )
