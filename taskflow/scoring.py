"""Four-pillar productivity scoring.

Each pillar is a pure function of plain records and the window bounds, so the
same inputs always give the same scores. All scores live in [0, 100] and are
rounded to one decimal place.

Fallbacks for empty inputs:

- no weekly target             -> output 100
- no review-required tasks     -> first-pass rate 1.0
- no completed tasks           -> on-time rate 0.5 (reliability 50 before penalty)
- no KPI buckets assigned      -> KPI spread 0
"""
from collections import defaultdict
from datetime import date, datetime, timedelta

from .models import TaskSize, TaskStatus
from .schemas import (
    CarryForwardEntry, ConsistencyResult, OutputResult, PillarScores, PlanningDay,
    QualityResult, ReliabilityResult, ScoredTask, ScoringWeights, StatusEvent,
)

SIZE_POINTS = {
    TaskSize.EASY: 1,
    TaskSize.MEDIUM: 2,
    TaskSize.DIFFICULT: 3,
}

DEFAULT_WEIGHTS = ScoringWeights(
    output_weight=0.35,
    quality_weight=0.25,
    reliability_weight=0.25,
    consistency_weight=0.15,
)
DEFAULT_WEEKLY_OUTPUT_TARGET = 15
DEFAULT_WINDOW_DAYS = 28

NO_ACTIVITY_ON_TIME_RATE = 0.5
CARRY_FORWARD_PENALTY = 5
MAX_CARRY_FORWARD_PENALTY = 30
WORKDAYS_PER_WEEK = 5


def _round(value: float) -> float:
    return round(value, 1)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def window_days(window_start: datetime, window_end: datetime) -> float:
    """Length of the window in (possibly fractional) days."""
    return max(0.0, (window_end - window_start).total_seconds() / 86400)


def count_workdays(window_start: datetime, window_end: datetime) -> int:
    """Workdays in the window: five per full week, plus up to five leftover days."""
    days = int(round(window_days(window_start, window_end)))
    weeks, leftover = divmod(days, 7)
    return weeks * WORKDAYS_PER_WEEK + min(leftover, WORKDAYS_PER_WEEK)


def iso_week_start(moment) -> date:
    """Monday of the ISO week containing `moment`."""
    day = moment.date() if isinstance(moment, datetime) else moment
    return day - timedelta(days=day.weekday())


def calculate_output_score(completed_tasks: list[ScoredTask], weekly_target: float,
                           window_start: datetime, window_end: datetime) -> OutputResult:
    """Size-weighted points against the target scaled to the window length."""
    points = sum(SIZE_POINTS[TaskSize(task.size)] for task in completed_tasks)
    target = weekly_target * window_days(window_start, window_end) / 7

    if target <= 0:
        return OutputResult(score=100.0, points=points, target=0.0)

    score = min(100.0, 100 * points / target)
    return OutputResult(score=_round(score), points=points, target=target)


def _group_history(status_history: list[StatusEvent]) -> dict[int, list[StatusEvent]]:
    by_task: dict[int, list[StatusEvent]] = defaultdict(list)
    # Stable: events with equal (created_at, id) keep their log order.
    ordered = sorted(status_history, key=lambda e: (e.created_at, e.id))
    for event in ordered:
        by_task[event.task_id].append(event)
    return by_task


def _is_first_pass(history: list[StatusEvent]) -> bool:
    """No REOPENED event before the final approval."""
    closed_at = [i for i, e in enumerate(history) if e.to_status == TaskStatus.CLOSED_APPROVED]
    cutoff = closed_at[-1] if closed_at else len(history)
    return not any(e.to_status == TaskStatus.REOPENED for e in history[:cutoff])


def calculate_quality_score(completed_tasks: list[ScoredTask],
                            status_history: list[StatusEvent]) -> QualityResult:
    """First-pass approval rate of review-required work.

    The reopen rate over all completed tasks is reported but not scored, so
    tasks that never went through review are not penalised twice.
    """
    history_by_task = _group_history(status_history)

    reviewed = [task for task in completed_tasks if task.requires_review]
    first_pass_count = sum(1 for task in reviewed if _is_first_pass(history_by_task.get(task.id, [])))
    first_pass_rate = first_pass_count / len(reviewed) if reviewed else 1.0

    reopened_count = sum(
        1 for task in completed_tasks
        if any(e.to_status == TaskStatus.REOPENED for e in history_by_task.get(task.id, []))
    )
    reopen_rate = reopened_count / len(completed_tasks) if completed_tasks else 0.0

    return QualityResult(
        score=_round(100 * first_pass_rate),
        first_pass_rate=first_pass_rate,
        reopen_rate=reopen_rate,
        reviewed_count=len(reviewed),
        first_pass_count=first_pass_count,
        reopened_count=reopened_count,
    )


def calculate_reliability_score(completed_tasks: list[ScoredTask],
                                carry_forwards: list[CarryForwardEntry]) -> ReliabilityResult:
    """On-time completion rate minus a capped carry-forward penalty."""
    on_time_count = sum(
        1 for task in completed_tasks
        if task.completed_at is not None and task.completed_at <= task.deadline
    )
    if completed_tasks:
        on_time_rate = on_time_count / len(completed_tasks)
    else:
        on_time_rate = NO_ACTIVITY_ON_TIME_RATE

    penalty = min(MAX_CARRY_FORWARD_PENALTY, CARRY_FORWARD_PENALTY * len(carry_forwards))
    score = _clamp(100 * on_time_rate - penalty)

    return ReliabilityResult(
        score=_round(score),
        on_time_rate=on_time_rate,
        on_time_count=on_time_count,
        penalty=float(penalty),
    )


def calculate_consistency_score(planning_days: list[PlanningDay], assigned_kpi_bucket_ids: list[int],
                                completed_tasks: list[ScoredTask], window_start: datetime,
                                window_end: datetime) -> ConsistencyResult:
    """Mean of daily-planning regularity and KPI bucket coverage."""
    total_workdays = count_workdays(window_start, window_end)
    planned_days = len({day.session_date for day in planning_days if day.morning_completed})
    planning_ratio = min(1.0, planned_days / total_workdays) if total_workdays else 0.0

    assigned = set(assigned_kpi_bucket_ids)
    touched = {task.kpi_bucket_id for task in completed_tasks if task.kpi_bucket_id is not None}
    kpi_spread_ratio = min(1.0, len(touched) / len(assigned)) if assigned else 0.0

    return ConsistencyResult(
        score=_round(100 * (planning_ratio + kpi_spread_ratio) / 2),
        planning_ratio=planning_ratio,
        kpi_spread_ratio=kpi_spread_ratio,
        planned_days=planned_days,
        total_workdays=total_workdays,
        active_kpi_buckets=len(touched),
    )


def calculate_composite(pillars: PillarScores, weights: ScoringWeights) -> float:
    """Weighted sum of the pillars. Weights are used as given, not renormalised."""
    composite = (
        pillars.output * weights.output_weight
        + pillars.quality * weights.quality_weight
        + pillars.reliability * weights.reliability_weight
        + pillars.consistency * weights.consistency_weight
    )
    return _round(composite)
