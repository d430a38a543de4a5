import math
from datetime import date, datetime, time, timedelta
from typing import Optional

import structlog
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from .exceptions import (
    CarryForwardRejected, DepartmentNotFound, MemberNotFound, PermissionDenied,
    TaskNotFound, TransitionRejected,
)
from .models import (
    CarryForwardLog, DailyPlanningSession, Department, Member, ProductivityScore,
    ProductivitySnapshot, Role, ScoringConfig, Task, TaskStatus, TaskStatusHistory, UserKpi,
)
from .schemas import (
    BatchResult, CarryForwardEntry, PillarScores, PlanningDay, ProductivityMeta,
    ProductivityResult, ScoredTask, ScoringConfigSchema, ScoringConfigUpdateSchema, SnapshotSchema,
    ScoringData, ScoringWeights, StatusEvent, TransitionContext,
)
from .scoring import (
    DEFAULT_WEEKLY_OUTPUT_TARGET, DEFAULT_WEIGHTS, DEFAULT_WINDOW_DAYS,
    calculate_composite, calculate_consistency_score, calculate_output_score,
    calculate_quality_score, calculate_reliability_score, iso_week_start,
)
from .state_machine import list_available_transitions, pick_reason, validate_transition

logger = structlog.get_logger(__name__)

MAX_CARRY_FORWARD = 10
CARRY_FORWARD_REASON_MIN = 10
CARRY_FORWARD_REASON_MAX = 500


class AccessPolicy:
    """Who may look at whose productivity data, and who may administer scoring."""

    @staticmethod
    def ensure_can_view(viewer: Member, target: Member) -> None:
        if viewer.id == target.id:
            return
        if not viewer.is_manager_or_above():
            raise PermissionDenied("Access denied")
        if viewer.role == Role.MANAGER and not viewer.manages(target):
            raise PermissionDenied("Access denied")
        if viewer.role == Role.DEPARTMENT_HEAD and viewer.department_id != target.department_id:
            raise PermissionDenied("Access denied")

    @staticmethod
    def ensure_admin(member: Member) -> None:
        if member.role != Role.ADMIN:
            raise PermissionDenied("Admin access required")


class TaskWorkflowService:
    """Service class for task lifecycle operations."""

    @staticmethod
    def _locked_task(task_id: int) -> Task:
        task = Task.objects.select_for_update().filter(id=task_id, deleted_at__isnull=True).first()
        if task is None:
            raise TaskNotFound(task_id)
        return task

    @staticmethod
    def get_task(task_id: int) -> Task:
        task = Task.objects.select_related("owner").filter(id=task_id, deleted_at__isnull=True).first()
        if task is None:
            raise TaskNotFound(task_id)
        return task

    @staticmethod
    @transaction.atomic
    def create_task(owner: Member, title: str, deadline: datetime, assigner: Optional[Member] = None,
                    **fields) -> Task:
        """Create a task in NEW and record its creation event."""
        fields.pop("status", None)
        task = Task.objects.create(
            owner=owner,
            assigner=assigner,
            title=title,
            deadline=deadline,
            status=TaskStatus.NEW,
            **fields
        )
        TaskStatusHistory.objects.create(
            task=task,
            from_status=None,
            to_status=TaskStatus.NEW,
            changed_by=assigner or owner,
            created_at=task.created_at,
        )
        logger.info("task_created", task_id=task.id, owner_id=owner.id,
                    assigner_id=assigner.id if assigner else None)
        return task

    @staticmethod
    def build_context(task: Task, actor: Member, reason: Optional[str] = None,
                      on_hold_reason: Optional[str] = None) -> TransitionContext:
        return TransitionContext(
            task_owner_id=task.owner_id,
            current_user_id=actor.id,
            current_user_role=actor.role,
            is_manager=actor.manages(task.owner),
            reason=reason,
            on_hold_reason=on_hold_reason,
            requires_review=task.requires_review,
        )

    @classmethod
    def available_transitions(cls, task_id: int, actor: Member) -> tuple[Task, set[TaskStatus]]:
        task = cls.get_task(task_id)
        return task, list_available_transitions(task.status, cls.build_context(task, actor))

    @classmethod
    def transition(cls, task_id: int, actor: Member, to_status: TaskStatus, reason: Optional[str] = None,
                   on_hold_reason: Optional[str] = None, now: Optional[datetime] = None) -> Task:
        """
        Validate and apply a status change.
        The task update and its history row are written in one transaction;
        a rejected transition writes nothing.
        """
        to_status = TaskStatus(to_status)
        now = now or timezone.now()

        with transaction.atomic():
            task = cls._locked_task(task_id)
            context = cls.build_context(task, actor, reason, on_hold_reason)
            result = validate_transition(task.status, to_status, context)
            if not result.valid:
                logger.info("transition_rejected", task_id=task.id, actor_id=actor.id,
                            from_status=task.status, to_status=to_status.value, code=result.code.value)
                raise TransitionRejected(result)

            from_status = TaskStatus(task.status)
            task.status = to_status

            if to_status == TaskStatus.ON_HOLD:
                event_reason = pick_reason(on_hold_reason, reason)
                task.on_hold_reason = event_reason
            else:
                event_reason = pick_reason(reason, on_hold_reason)

            if to_status == TaskStatus.REOPENED:
                task.rejection_reason = event_reason
                if from_status == TaskStatus.CLOSED_APPROVED:
                    task.completed_at = None

            if to_status == TaskStatus.IN_PROGRESS and task.start_date is None:
                task.start_date = now

            # Undo start
            if to_status == TaskStatus.ACCEPTED and from_status == TaskStatus.IN_PROGRESS:
                task.start_date = None

            if to_status == TaskStatus.CLOSED_APPROVED:
                task.completed_at = now

            task.save()
            TaskStatusHistory.objects.create(
                task=task,
                from_status=from_status,
                to_status=to_status,
                changed_by=actor,
                reason=event_reason,
                created_at=now,
            )

        logger.info("task_transitioned", task_id=task.id, actor_id=actor.id,
                    from_status=from_status.value, to_status=to_status.value)
        return task

    @staticmethod
    def _end_of_day(day: date) -> datetime:
        return timezone.make_aware(datetime.combine(day, time(23, 59, 59)))

    @classmethod
    def carry_forward(cls, task_id: int, actor: Member, new_deadline: date, reason: str,
                      today: Optional[date] = None) -> Task:
        """Push an open task's deadline forward. Status and status history are left alone."""
        reason = (reason or "").strip()
        if len(reason) < CARRY_FORWARD_REASON_MIN:
            raise CarryForwardRejected(f"Reason must be at least {CARRY_FORWARD_REASON_MIN} characters")
        if len(reason) > CARRY_FORWARD_REASON_MAX:
            raise CarryForwardRejected(f"Reason must not exceed {CARRY_FORWARD_REASON_MAX} characters")

        today = today or timezone.localdate()

        with transaction.atomic():
            task = cls._locked_task(task_id)

            if task.owner_id != actor.id:
                raise PermissionDenied("Only task owner can carry forward the task")
            if task.status == TaskStatus.CLOSED_APPROVED:
                raise CarryForwardRejected("Cannot carry forward a completed task")
            if new_deadline < today:
                raise CarryForwardRejected("New deadline must be today or in the future")
            if task.carry_forward_count >= MAX_CARRY_FORWARD:
                raise CarryForwardRejected(
                    f"Task has been carried forward too many times (max {MAX_CARRY_FORWARD})"
                )

            previous_deadline = task.deadline
            task.deadline = cls._end_of_day(new_deadline)
            task.original_deadline = task.original_deadline or previous_deadline
            task.is_carried_forward = True
            task.carry_forward_count += 1
            task.save(update_fields=[
                "deadline", "original_deadline", "is_carried_forward", "carry_forward_count",
            ])

            CarryForwardLog.objects.create(
                task=task,
                user=actor,
                from_date=previous_deadline,
                to_date=task.deadline,
                reason=reason,
            )

        logger.info("task_carried_forward", task_id=task.id, actor_id=actor.id,
                    carry_forward_count=task.carry_forward_count)
        return task


class ScoringConfigService:
    """Service class for per-department scoring configuration."""

    @staticmethod
    def _effective(config: Optional[ScoringConfig]) -> tuple[ScoringWeights, int]:
        if config is None:
            return DEFAULT_WEIGHTS, DEFAULT_WEEKLY_OUTPUT_TARGET

        raw = (config.output_weight, config.quality_weight,
               config.reliability_weight, config.consistency_weight)
        if any(w is None or not math.isfinite(w) or w < 0 for w in raw):
            logger.warning("malformed_scoring_weights", department_id=config.department_id)
            weights = DEFAULT_WEIGHTS
        else:
            weights = ScoringWeights(
                output_weight=config.output_weight,
                quality_weight=config.quality_weight,
                reliability_weight=config.reliability_weight,
                consistency_weight=config.consistency_weight,
            )

        target = config.weekly_output_target
        if target is None or target < 0:
            target = DEFAULT_WEEKLY_OUTPUT_TARGET
        return weights, target

    @classmethod
    def get_for_department(cls, department_id: Optional[int]) -> tuple[ScoringWeights, int]:
        """Weights and weekly output target for a department, falling back to defaults."""
        if department_id is None:
            return cls._effective(None)
        return cls._effective(ScoringConfig.objects.filter(department_id=department_id).first())

    @classmethod
    def list_configs(cls) -> list[ScoringConfigSchema]:
        departments = Department.objects.filter(
            deleted_at__isnull=True
        ).select_related("scoring_config").order_by("name")

        configs = []
        for department in departments:
            config = getattr(department, "scoring_config", None)
            weights, target = cls._effective(config)
            configs.append(ScoringConfigSchema(
                department_id=department.id,
                department_name=department.name,
                weekly_output_target=target,
                updated_at=config.updated_at if config else None,
                **weights.model_dump()
            ))
        return configs

    @staticmethod
    def update_config(department_id: int, payload: ScoringConfigUpdateSchema) -> ScoringConfig:
        """Create or update a department's config. Payload validation enforces the weight sum."""
        department = Department.objects.filter(id=department_id).first()
        if department is None:
            raise DepartmentNotFound(department_id)

        config, _ = ScoringConfig.objects.get_or_create(department=department)
        if payload.weekly_output_target is not None:
            config.weekly_output_target = payload.weekly_output_target
        if payload.has_weights():
            config.output_weight = payload.output_weight
            config.quality_weight = payload.quality_weight
            config.reliability_weight = payload.reliability_weight
            config.consistency_weight = payload.consistency_weight
        config.save()

        logger.info("scoring_config_updated", department_id=department_id,
                    weekly_output_target=config.weekly_output_target)
        return config


class ScoringDataFetcher:
    """Assembles the windowed dataset the scoring engine reads."""

    @staticmethod
    def _scored(task: Task) -> ScoredTask:
        return ScoredTask(
            id=task.id,
            status=task.status,
            size=task.size,
            completed_at=task.completed_at,
            deadline=task.deadline,
            requires_review=task.requires_review,
            kpi_bucket_id=task.kpi_bucket_id,
            carry_forward_count=task.carry_forward_count,
        )

    @classmethod
    def fetch_for_user(cls, user_id: int, department_id: Optional[int], window_start: datetime,
                       window_end: datetime) -> ScoringData:
        tasks = Task.objects.filter(owner_id=user_id, deleted_at__isnull=True)

        completed = list(tasks.filter(
            status=TaskStatus.CLOSED_APPROVED,
            completed_at__gte=window_start,
            completed_at__lte=window_end,
        ).order_by("id"))

        active = list(tasks.exclude(status=TaskStatus.NEW).filter(
            (Q(created_at__lte=window_end) & ~Q(status=TaskStatus.CLOSED_APPROVED))
            | Q(completed_at__gte=window_start, completed_at__lte=window_end)
        ).order_by("id"))

        history = TaskStatusHistory.objects.filter(
            task_id__in=[task.id for task in completed]
        ).order_by("created_at", "id") if completed else []

        carry_forwards = CarryForwardLog.objects.filter(
            user_id=user_id,
            created_at__gte=window_start,
            created_at__lte=window_end,
        ).order_by("created_at", "id")

        planning = DailyPlanningSession.objects.filter(
            user_id=user_id,
            session_date__gte=window_start.date(),
            session_date__lte=window_end.date(),
        ).order_by("session_date")

        kpi_bucket_ids = UserKpi.objects.filter(
            user_id=user_id
        ).order_by("kpi_bucket_id").values_list("kpi_bucket_id", flat=True)

        weights, weekly_target = ScoringConfigService.get_for_department(department_id)

        return ScoringData(
            completed_tasks=[cls._scored(task) for task in completed],
            active_tasks=[cls._scored(task) for task in active],
            status_history=[
                StatusEvent(id=h.id, task_id=h.task_id, from_status=h.from_status,
                            to_status=h.to_status, created_at=h.created_at)
                for h in history
            ],
            carry_forwards=[
                CarryForwardEntry(task_id=c.task_id, user_id=c.user_id, created_at=c.created_at)
                for c in carry_forwards
            ],
            planning_days=[
                PlanningDay(session_date=p.session_date, morning_completed=p.morning_completed)
                for p in planning
            ],
            assigned_kpi_bucket_ids=list(kpi_bucket_ids),
            weights=weights,
            weekly_output_target=weekly_target,
        )

    @staticmethod
    def active_users() -> list[tuple[int, Optional[int]]]:
        """(user id, department id) for every active, non-deleted member."""
        return list(Member.objects.filter(
            is_active=True,
            deleted_at__isnull=True,
        ).order_by("id").values_list("id", "department_id"))


class ProductivityService:
    """Service class for productivity scoring operations."""

    @staticmethod
    def score(data: ScoringData, window_start: datetime, window_end: datetime) -> ProductivityResult:
        """Run the four pillars and the composite over an already fetched dataset."""
        output = calculate_output_score(data.completed_tasks, data.weekly_output_target,
                                        window_start, window_end)
        quality = calculate_quality_score(data.completed_tasks, data.status_history)
        reliability = calculate_reliability_score(data.completed_tasks, data.carry_forwards)
        consistency = calculate_consistency_score(data.planning_days, data.assigned_kpi_bucket_ids,
                                                  data.completed_tasks, window_start, window_end)

        pillars = PillarScores(
            output=output.score,
            quality=quality.score,
            reliability=reliability.score,
            consistency=consistency.score,
        )
        completed_count = len(data.completed_tasks)

        meta = ProductivityMeta(
            total_points=output.points,
            target_points=output.target,
            completed_task_count=completed_count,
            reviewed_task_count=quality.reviewed_count,
            first_pass_count=quality.first_pass_count,
            first_pass_rate=quality.first_pass_rate,
            reopened_count=quality.reopened_count,
            reopen_rate=quality.reopen_rate,
            review_ratio=quality.reviewed_count / completed_count if completed_count else 0.0,
            on_time_count=reliability.on_time_count,
            on_time_rate=reliability.on_time_rate,
            carry_forward_total=len(data.carry_forwards),
            carry_forward_penalty=reliability.penalty,
            active_task_count=len(data.active_tasks),
            planned_days=consistency.planned_days,
            total_workdays=consistency.total_workdays,
            planning_ratio=consistency.planning_ratio,
            active_kpi_buckets=consistency.active_kpi_buckets,
            assigned_kpi_buckets=len(set(data.assigned_kpi_bucket_ids)),
            kpi_spread_ratio=consistency.kpi_spread_ratio,
        )

        return ProductivityResult(
            **pillars.model_dump(),
            composite=calculate_composite(pillars, data.weights),
            window_start=window_start,
            window_end=window_end,
            meta=meta,
        )

    @classmethod
    def calculate_for_user(cls, user_id: int, department_id: Optional[int],
                           window_start: Optional[datetime] = None, window_end: Optional[datetime] = None,
                           now: Optional[datetime] = None) -> ProductivityResult:
        """Score one user over a window, by default the last 28 days."""
        if window_end is None:
            window_end = now or timezone.now()
        if window_start is None:
            window_start = window_end - timedelta(days=DEFAULT_WINDOW_DAYS)

        data = ScoringDataFetcher.fetch_for_user(user_id, department_id, window_start, window_end)
        return cls.score(data, window_start, window_end)

    @staticmethod
    def save_weekly_snapshot(user_id: int, week_start_date: date,
                             result: ProductivityResult) -> ProductivitySnapshot:
        snapshot, _ = ProductivitySnapshot.objects.update_or_create(
            user_id=user_id,
            week_start_date=week_start_date,
            defaults={
                "output": result.output,
                "quality": result.quality,
                "reliability": result.reliability,
                "consistency": result.consistency,
                "composite": result.composite,
                "task_count": result.meta.completed_task_count,
                "reviewed_task_count": result.meta.reviewed_task_count,
            },
        )
        return snapshot

    @classmethod
    def calculate_and_save_for_user(cls, user_id: int, department_id: Optional[int],
                                    now: Optional[datetime] = None) -> ProductivityResult:
        """Score the trailing 28 days and upsert the user's score and this week's snapshot."""
        window_end = now or timezone.now()
        window_start = window_end - timedelta(days=DEFAULT_WINDOW_DAYS)

        with transaction.atomic():
            result = cls.calculate_for_user(user_id, department_id, window_start, window_end)
            ProductivityScore.objects.update_or_create(
                user_id=user_id,
                defaults={
                    "output": result.output,
                    "quality": result.quality,
                    "reliability": result.reliability,
                    "consistency": result.consistency,
                    "composite": result.composite,
                    "window_start": window_start,
                    "window_end": window_end,
                    "calculated_at": window_end,
                },
            )
            cls.save_weekly_snapshot(user_id, iso_week_start(window_end), result)

        logger.info("productivity_score_saved", user_id=user_id, composite=result.composite)
        return result

    @classmethod
    def calculate_and_save_for_all(cls, cancel_event=None, now: Optional[datetime] = None) -> BatchResult:
        """
        Score every active user. One user's failure is recorded and skipped.
        Setting `cancel_event` stops new users from being started.
        """
        batch = BatchResult()
        users = ScoringDataFetcher.active_users()
        logger.info("productivity_batch_started", user_count=len(users))

        for user_id, department_id in users:
            if cancel_event is not None and cancel_event.is_set():
                batch.cancelled = True
                logger.warning("productivity_batch_cancelled", processed=batch.processed)
                break
            try:
                cls.calculate_and_save_for_user(user_id, department_id, now=now)
                batch.processed += 1
            except Exception as exc:
                logger.exception("productivity_user_failed", user_id=user_id)
                batch.errors.append(f"User {user_id}: {exc}")

        logger.info("productivity_batch_finished", processed=batch.processed, errors=len(batch.errors))
        return batch

    @staticmethod
    def get_member(user_id: int) -> Member:
        member = Member.objects.filter(id=user_id, deleted_at__isnull=True).first()
        if member is None:
            raise MemberNotFound(user_id)
        return member

    @staticmethod
    def get_trends(user_id: int, weeks: int = 12, today: Optional[date] = None):
        """Weekly snapshots from the last `weeks` weeks, oldest first."""
        today = today or timezone.localdate()
        since = today - timedelta(days=weeks * 7)
        snapshots = ProductivitySnapshot.objects.filter(
            user_id=user_id,
            week_start_date__gte=since,
        ).order_by("week_start_date")
        return [SnapshotSchema.from_orm(snapshot) for snapshot in snapshots]
