from datetime import date, datetime
from enum import Enum
from typing import Optional

from ninja import Field, Schema
from pydantic import model_validator

from .models import Role, TaskSize, TaskStatus


class TransitionError(str, Enum):
    """Reason codes for a rejected status transition."""
    INVALID_TRANSITION  = "INVALID_TRANSITION"
    NOT_OWNER           = "NOT_OWNER"
    ROLE_NOT_ALLOWED    = "ROLE_NOT_ALLOWED"
    NOT_MANAGER         = "NOT_MANAGER"
    SELF_APPROVAL       = "SELF_APPROVAL"
    REASON_TOO_SHORT    = "REASON_TOO_SHORT"
    REVIEW_REQUIRED     = "REVIEW_REQUIRED"
    REVIEW_NOT_REQUIRED = "REVIEW_NOT_REQUIRED"


class TransitionContext(Schema):
    """Who is asking for a transition, and with what justification."""
    task_owner_id: int
    current_user_id: int
    current_user_role: Role
    is_manager: bool = False  # current user manages the task owner
    reason: Optional[str] = None
    on_hold_reason: Optional[str] = None
    requires_review: bool = True


class ValidationResult(Schema):
    """Outcome of a transition check. `error` and `code` are set only when invalid."""
    valid: bool
    error: Optional[str] = None
    code: Optional[TransitionError] = None


# Scoring inputs

class ScoredTask(Schema):
    id: int
    status: TaskStatus
    size: TaskSize
    completed_at: Optional[datetime] = None
    deadline: datetime
    requires_review: bool = False
    kpi_bucket_id: Optional[int] = None
    carry_forward_count: int = 0


class StatusEvent(Schema):
    """One row of a task's status log. `id` breaks ties between equal timestamps."""
    id: int = 0
    task_id: int
    from_status: Optional[TaskStatus] = None
    to_status: TaskStatus
    created_at: datetime


class CarryForwardEntry(Schema):
    task_id: int
    user_id: int
    created_at: datetime


class PlanningDay(Schema):
    session_date: date
    morning_completed: bool


class ScoringWeights(Schema):
    output_weight: float
    quality_weight: float
    reliability_weight: float
    consistency_weight: float


class ScoringData(Schema):
    """Everything the scoring engine needs for one user and one window."""
    completed_tasks: list[ScoredTask]
    active_tasks: list[ScoredTask]
    status_history: list[StatusEvent]
    carry_forwards: list[CarryForwardEntry]
    planning_days: list[PlanningDay]
    assigned_kpi_bucket_ids: list[int]
    weights: ScoringWeights
    weekly_output_target: int


# Scoring outputs

class OutputResult(Schema):
    score: float
    points: int
    target: float


class QualityResult(Schema):
    score: float
    first_pass_rate: float
    reopen_rate: float
    reviewed_count: int
    first_pass_count: int
    reopened_count: int


class ReliabilityResult(Schema):
    score: float
    on_time_rate: float
    on_time_count: int
    penalty: float


class ConsistencyResult(Schema):
    score: float
    planning_ratio: float
    kpi_spread_ratio: float
    planned_days: int
    total_workdays: int
    active_kpi_buckets: int


class PillarScores(Schema):
    output: float
    quality: float
    reliability: float
    consistency: float


class ProductivityMeta(Schema):
    """Diagnostic block shown next to the scores on dashboards."""
    total_points: int = 0
    target_points: float = 0.0
    completed_task_count: int = 0
    reviewed_task_count: int = 0
    first_pass_count: int = 0
    first_pass_rate: float = 0.0
    reopened_count: int = 0
    reopen_rate: float = 0.0
    review_ratio: float = 0.0
    on_time_count: int = 0
    on_time_rate: float = 0.0
    carry_forward_total: int = 0
    carry_forward_penalty: float = 0.0
    active_task_count: int = 0
    planned_days: int = 0
    total_workdays: int = 0
    planning_ratio: float = 0.0
    active_kpi_buckets: int = 0
    assigned_kpi_buckets: int = 0
    kpi_spread_ratio: float = 0.0


class ProductivityResult(Schema):
    output: float
    quality: float
    reliability: float
    consistency: float
    composite: float
    window_start: datetime
    window_end: datetime
    meta: ProductivityMeta


class BatchResult(Schema):
    processed: int = 0
    errors: list[str] = []
    cancelled: bool = False


class SnapshotSchema(Schema):
    week_start_date: date
    output: float
    quality: float
    reliability: float
    consistency: float
    composite: float


class TrendsResponseSchema(Schema):
    trends: list[SnapshotSchema]


class ScoringConfigSchema(Schema):
    department_id: int
    department_name: str
    weekly_output_target: int
    output_weight: float
    quality_weight: float
    reliability_weight: float
    consistency_weight: float
    updated_at: Optional[datetime] = None


class ScoringConfigListSchema(Schema):
    configs: list[ScoringConfigSchema]


class ScoringConfigUpdateSchema(Schema):
    """Admin update of a department's scoring config. Weights go together and sum to 1."""
    weekly_output_target: Optional[int] = Field(None, ge=1, le=100)
    output_weight: Optional[float] = Field(None, ge=0, le=1)
    quality_weight: Optional[float] = Field(None, ge=0, le=1)
    reliability_weight: Optional[float] = Field(None, ge=0, le=1)
    consistency_weight: Optional[float] = Field(None, ge=0, le=1)

    @model_validator(mode="after")
    def check_weights(self):
        weights = [
            w for w in (
                self.output_weight,
                self.quality_weight,
                self.reliability_weight,
                self.consistency_weight,
            )
            if w is not None
        ]
        if 0 < len(weights) < 4:
            raise ValueError("All 4 weights must be provided and sum to 1.0")
        if len(weights) == 4 and abs(sum(weights) - 1) >= 0.01:
            raise ValueError("All 4 weights must be provided and sum to 1.0")
        return self

    def has_weights(self) -> bool:
        return self.output_weight is not None


# Task API payloads

class TransitionRequestSchema(Schema):
    to_status: TaskStatus
    reason: Optional[str] = None
    on_hold_reason: Optional[str] = None


class CarryForwardRequestSchema(Schema):
    new_deadline: date
    reason: str = Field(..., min_length=10, max_length=500)


class TaskStateSchema(Schema):
    id: int
    title: str
    status: TaskStatus
    deadline: datetime
    start_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    carry_forward_count: int
    is_carried_forward: bool


class AvailableTransitionsSchema(Schema):
    status: TaskStatus
    transitions: list[TaskStatus]
    requires_reason: list[TaskStatus]
