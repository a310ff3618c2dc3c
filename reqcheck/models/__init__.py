"""Pydantic models module."""

from reqcheck.models.analysis import (
    AnalysisOptions,
    AnalysisRequest,
    AnalysisResponse,
    AnalysisTask,
    AnalysisTaskUpdate,
    ComparisonResultCreate,
    ComparisonResultRecord,
    ContradictionResult,
    NLILabel,
    NLIScores,
    ProjectRequirement,
    RequirementInfo,
    RequirementText,
    TaskStatus,
    TaskStatusResponse,
)

__all__ = [
    # Input
    "AnalysisOptions",
    "AnalysisRequest",
    "RequirementText",
    # NLI
    "NLILabel",
    "NLIScores",
    # Storage
    "AnalysisTask",
    "AnalysisTaskUpdate",
    "ComparisonResultCreate",
    "ComparisonResultRecord",
    "ProjectRequirement",
    "TaskStatus",
    # Responses
    "AnalysisResponse",
    "ContradictionResult",
    "RequirementInfo",
    "TaskStatusResponse",
]
