"""RepoScout domain models — re-exports all public model classes."""

from __future__ import annotations

from reposcout.models.discovery import (
    AnalysisRecord,
    DiscoverySession,
    QueueDelivery,
    RelevanceAssessment,
    RepositoryCandidate,
    SearchTask,
    SearchTaskMessage,
    SessionStatus,
    SessionStatusReport,
    TaskStatus,
)

__all__ = [
    "AnalysisRecord",
    "DiscoverySession",
    "QueueDelivery",
    "RelevanceAssessment",
    "RepositoryCandidate",
    "SearchTask",
    "SearchTaskMessage",
    "SessionStatus",
    "SessionStatusReport",
    "TaskStatus",
]
