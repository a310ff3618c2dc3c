"""Requirement contradiction analysis models.

Pydantic models for:
- Analysis input (requirement texts, per-request threshold overrides)
- NLI provider scores
- Persisted comparison rows and analysis tasks
- API responses (analysis results, task status)

Task status fields are exposed in camelCase (``totalComparisons``) while the
analysis response keeps snake_case keys (``comparisons_made``), matching the
client contract.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Enums
# =============================================================================


class TaskStatus(str, Enum):
    """Analysis task status.

    States:
    - PENDING: Task created, background run not started yet
    - PROCESSING: Background run is sweeping pairs
    - COMPLETED: All pairs visited, or sweep ended early with an error summary
    - FAILED: Run aborted by an error outside the pair loop
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class NLILabel(str, Enum):
    """Labels produced by the NLI provider."""

    ENTAILMENT = "entailment"
    NEUTRAL = "neutral"
    CONTRADICTION = "contradiction"


# =============================================================================
# Input Models
# =============================================================================


class RequirementText(BaseModel):
    """A requirement statement to analyze, optionally tied to a stored requirement."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Requirement statement")
    id: str | None = Field(None, description="Persisted requirement ID")


class AnalysisOptions(BaseModel):
    """Thresholds applied to one analysis run."""

    similarity_threshold: float = Field(0.0001, ge=0.0, le=1.0)
    nli_threshold: float = Field(0.8, ge=0.0, le=1.0)
    max_requirements: int = Field(100, ge=2)


class AnalysisRequest(BaseModel):
    """Request body for contradiction analysis."""

    model_config = ConfigDict(populate_by_name=True)

    requirements: list[str | RequirementText] = Field(
        ..., description="Requirement statements, as strings or {text, id} objects"
    )
    project_id: str | None = Field(None, alias="projectId", description="Project UUID")
    run_async: bool = Field(
        default=False,
        alias="async",
        description="Run in the background and return a task ID",
    )
    similarity_threshold_override: float | None = Field(None, ge=0.0, le=1.0)
    nli_threshold_override: float | None = Field(None, ge=0.0, le=1.0)
    max_requirements_override: int | None = Field(None, ge=2)

    def requirement_texts(self) -> list[RequirementText]:
        """Normalize mixed string/object input into RequirementText items."""
        return [
            item if isinstance(item, RequirementText) else RequirementText(text=item)
            for item in self.requirements
        ]


# =============================================================================
# NLI Scores
# =============================================================================


class NLIScores(BaseModel):
    """Entailment/neutral/contradiction scores for one (premise, hypothesis) evaluation.

    Scores are nominally in [0, 1] but are not guaranteed to sum to 1.
    """

    model_config = ConfigDict(frozen=True)

    entailment: float = 0.0
    neutral: float = 0.0
    contradiction: float = 0.0

    def dominant_label(self) -> NLILabel | None:
        """Return the label whose score is strictly greater than both others."""
        scores = {
            NLILabel.ENTAILMENT: self.entailment,
            NLILabel.NEUTRAL: self.neutral,
            NLILabel.CONTRADICTION: self.contradiction,
        }
        for label, score in scores.items():
            others = [s for other, s in scores.items() if other != label]
            if all(score > s for s in others):
                return label
        return None


# =============================================================================
# Storage Models
# =============================================================================


class ProjectRequirement(BaseModel):
    """Requirement row as seen by the analysis engine."""

    id: str
    project_id: str
    text: str
    updated_at: datetime


class ComparisonResultCreate(BaseModel):
    """Comparison row written for every admitted pair."""

    project_id: str
    requirement_id_1: str | None = None
    requirement_id_2: str | None = None
    requirement_text_1: str
    requirement_text_2: str
    similarity_score: float = Field(..., ge=0.0, le=1.0)
    contradiction_score: float = Field(..., ge=0.0, le=1.0)
    is_contradiction: bool


class ComparisonResultRecord(ComparisonResultCreate):
    """Persisted comparison row."""

    id: str
    created_at: datetime


class AnalysisTask(BaseModel):
    """Background analysis job tracked per project."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Task ID")
    project_id: str = Field(..., alias="projectId")
    status: TaskStatus = TaskStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    total_comparisons: int = Field(default=0, ge=0, alias="totalComparisons")
    completed_comparisons: int = Field(default=0, ge=0, alias="completedComparisons")
    current_requirement_1: int | None = Field(None, alias="currentRequirement1")
    current_requirement_2: int | None = Field(None, alias="currentRequirement2")
    error: str | None = None
    is_current: bool = Field(default=True, alias="isCurrent")
    started_at: datetime = Field(..., alias="startedAt")
    completed_at: datetime | None = Field(None, alias="completedAt")


class AnalysisTaskUpdate(BaseModel):
    """Partial update applied to an AnalysisTask.

    Only fields that are explicitly set are written (``exclude_unset``).
    """

    status: TaskStatus | None = None
    progress: int | None = Field(None, ge=0, le=100)
    completed_comparisons: int | None = Field(None, ge=0)
    current_requirement_1: int | None = None
    current_requirement_2: int | None = None
    error: str | None = None
    is_current: bool | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


# =============================================================================
# Response Models
# =============================================================================


class RequirementInfo(BaseModel):
    """One side of a detected contradiction."""

    index: int = Field(..., description="Position in the analyzed input, -1 when unknown")
    text: str
    id: str | None = None


class ContradictionResult(BaseModel):
    """A requirement pair judged contradictory."""

    requirement1: RequirementInfo
    requirement2: RequirementInfo
    similarity_score: float
    nli_contradiction_score: float
    model_used: str | None = None


class AnalysisResponse(BaseModel):
    """Result of a contradiction analysis, or the handle of a background run."""

    contradictions: list[ContradictionResult] = Field(default_factory=list)
    processing_time_seconds: float = 0.0
    comparisons_made: int = 0
    nli_checks_made: int = 0
    provider_calls_made: int = 0
    errors: str | None = None
    is_complete: bool
    task_id: str | None = None
    project_id: str | None = None
    excluded_requirements: int = Field(
        default=0, description="Requirements dropped by the max_requirements cap"
    )


class TaskStatusResponse(BaseModel):
    """Polling view of an AnalysisTask, including derived staleness."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    project_id: str = Field(..., alias="projectId")
    status: TaskStatus
    progress: int
    total_comparisons: int = Field(..., alias="totalComparisons")
    completed_comparisons: int = Field(..., alias="completedComparisons")
    current_requirement_1: int | None = Field(None, alias="currentRequirement1")
    current_requirement_2: int | None = Field(None, alias="currentRequirement2")
    error: str | None = None
    started_at: datetime = Field(..., alias="startedAt")
    completed_at: datetime | None = Field(None, alias="completedAt")
    is_stale: bool = False
