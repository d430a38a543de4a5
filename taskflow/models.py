from django.conf import settings
from django.db import models
from django.utils import timezone


class Role(models.TextChoices):
    EMPLOYEE        = "EMPLOYEE", "Employee"
    MANAGER         = "MANAGER", "Manager"
    DEPARTMENT_HEAD = "DEPARTMENT_HEAD", "Department Head"
    ADMIN           = "ADMIN", "Admin"


class TaskStatus(models.TextChoices):
    NEW                      = "NEW", "New"
    ACCEPTED                 = "ACCEPTED", "Accepted"
    IN_PROGRESS              = "IN_PROGRESS", "In Progress"
    ON_HOLD                  = "ON_HOLD", "On Hold"
    COMPLETED_PENDING_REVIEW = "COMPLETED_PENDING_REVIEW", "Pending Review"
    REOPENED                 = "REOPENED", "Reopened"
    CLOSED_APPROVED          = "CLOSED_APPROVED", "Completed"


class TaskPriority(models.TextChoices):
    URGENT_IMPORTANT         = "URGENT_IMPORTANT", "Urgent & Important"
    URGENT_NOT_IMPORTANT     = "URGENT_NOT_IMPORTANT", "Urgent, Not Important"
    NOT_URGENT_IMPORTANT     = "NOT_URGENT_IMPORTANT", "Important, Not Urgent"
    NOT_URGENT_NOT_IMPORTANT = "NOT_URGENT_NOT_IMPORTANT", "Neither"


class TaskSize(models.TextChoices):
    EASY      = "EASY", "Easy"
    MEDIUM    = "MEDIUM", "Medium"
    DIFFICULT = "DIFFICULT", "Difficult"


class Department(models.Model):
    id         = models.BigAutoField(primary_key=True)
    name       = models.CharField(max_length=100, unique=True)
    deleted_at = models.DateTimeField(null=True, blank=True)


class Member(models.Model):
    id         = models.BigAutoField(primary_key=True)
    user       = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="member"
    )
    role       = models.CharField(max_length=20, choices=Role.choices, default=Role.EMPLOYEE)
    department = models.ForeignKey(
        Department,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name="members"
    )
    manager    = models.ForeignKey(
        "self",
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name="reports"
    )
    is_active  = models.BooleanField(default=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    def is_manager_or_above(self) -> bool:
        return self.role in (Role.MANAGER, Role.DEPARTMENT_HEAD, Role.ADMIN)

    def manages(self, other: "Member") -> bool:
        """True if this member is the direct manager of `other`."""
        return other.manager_id is not None and other.manager_id == self.id


class KpiBucket(models.Model):
    id         = models.BigAutoField(primary_key=True)
    name       = models.CharField(max_length=100)
    department = models.ForeignKey(
        Department,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name="kpi_buckets"
    )


class Task(models.Model):
    id                  = models.BigAutoField(primary_key=True)
    title               = models.CharField(max_length=200)
    description         = models.TextField(blank=True, default="")
    status              = models.CharField(
        max_length=30,
        choices=TaskStatus.choices,
        default=TaskStatus.NEW,
        db_index=True
    )
    priority            = models.CharField(
        max_length=30,
        choices=TaskPriority.choices,
        default=TaskPriority.NOT_URGENT_IMPORTANT
    )
    size                = models.CharField(max_length=10, choices=TaskSize.choices, default=TaskSize.MEDIUM)
    estimated_minutes   = models.PositiveIntegerField(default=0)
    actual_minutes      = models.PositiveIntegerField(default=0)
    deadline            = models.DateTimeField()
    original_deadline   = models.DateTimeField(null=True, blank=True)
    start_date          = models.DateTimeField(null=True, blank=True)
    completed_at        = models.DateTimeField(null=True, blank=True)
    requires_review     = models.BooleanField(default=True)
    kpi_bucket          = models.ForeignKey(
        KpiBucket,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name="tasks"
    )
    carry_forward_count = models.PositiveIntegerField(default=0)
    is_carried_forward  = models.BooleanField(default=False)
    on_hold_reason      = models.TextField(null=True, blank=True)
    rejection_reason    = models.TextField(null=True, blank=True)
    owner               = models.ForeignKey(
        Member,
        on_delete=models.CASCADE,
        related_name="owned_tasks"
    )
    assigner            = models.ForeignKey(
        Member,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name="assigned_tasks"
    )
    reviewer            = models.ForeignKey(
        Member,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name="review_tasks"
    )
    created_at          = models.DateTimeField(default=timezone.now)
    deleted_at          = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["owner", "status"], name="task_owner_status_idx"),
            models.Index(fields=["owner", "completed_at"], name="task_owner_completed_idx"),
        ]


class TaskStatusHistory(models.Model):
    """Append-only log of every status change, including creation."""
    id          = models.BigAutoField(primary_key=True)
    task        = models.ForeignKey(
        Task,
        on_delete=models.CASCADE,
        related_name="status_history"
    )
    from_status = models.CharField(max_length=30, choices=TaskStatus.choices, null=True, blank=True)
    to_status   = models.CharField(max_length=30, choices=TaskStatus.choices)
    changed_by  = models.ForeignKey(
        Member,
        on_delete=models.CASCADE,
        related_name="status_changes"
    )
    reason      = models.TextField(null=True, blank=True)
    created_at  = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=["task", "created_at"], name="history_task_created_idx"),
        ]


class CarryForwardLog(models.Model):
    id         = models.BigAutoField(primary_key=True)
    task       = models.ForeignKey(
        Task,
        on_delete=models.CASCADE,
        related_name="carry_forwards"
    )
    user       = models.ForeignKey(
        Member,
        on_delete=models.CASCADE,
        related_name="carry_forwards"
    )
    from_date  = models.DateTimeField()
    to_date    = models.DateTimeField()
    reason     = models.TextField()
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=["user", "created_at"], name="carry_user_created_idx"),
        ]


class DailyPlanningSession(models.Model):
    id                = models.BigAutoField(primary_key=True)
    user              = models.ForeignKey(
        Member,
        on_delete=models.CASCADE,
        related_name="planning_sessions"
    )
    session_date      = models.DateField()
    morning_completed = models.BooleanField(default=False)

    class Meta:
        unique_together = ("user", "session_date")


class UserKpi(models.Model):
    id         = models.BigAutoField(primary_key=True)
    user       = models.ForeignKey(
        Member,
        on_delete=models.CASCADE,
        related_name="kpis"
    )
    kpi_bucket = models.ForeignKey(
        KpiBucket,
        on_delete=models.CASCADE,
        related_name="assignments"
    )

    class Meta:
        unique_together = ("user", "kpi_bucket")


class ScoringConfig(models.Model):
    id                   = models.BigAutoField(primary_key=True)
    department           = models.OneToOneField(
        Department,
        on_delete=models.CASCADE,
        related_name="scoring_config"
    )
    weekly_output_target = models.PositiveIntegerField(default=15)
    output_weight        = models.FloatField(default=0.35)
    quality_weight       = models.FloatField(default=0.25)
    reliability_weight   = models.FloatField(default=0.25)
    consistency_weight   = models.FloatField(default=0.15)
    updated_at           = models.DateTimeField(auto_now=True)


class ProductivityScore(models.Model):
    """Current-state cache, overwritten on every recalculation."""
    id            = models.BigAutoField(primary_key=True)
    user          = models.OneToOneField(
        Member,
        on_delete=models.CASCADE,
        related_name="productivity_score"
    )
    output        = models.FloatField()
    quality       = models.FloatField()
    reliability   = models.FloatField()
    consistency   = models.FloatField()
    composite     = models.FloatField()
    window_start  = models.DateTimeField()
    window_end    = models.DateTimeField()
    calculated_at = models.DateTimeField()


class ProductivitySnapshot(models.Model):
    id                  = models.BigAutoField(primary_key=True)
    user                = models.ForeignKey(
        Member,
        on_delete=models.CASCADE,
        related_name="productivity_snapshots"
    )
    week_start_date     = models.DateField()
    output              = models.FloatField()
    quality             = models.FloatField()
    reliability         = models.FloatField()
    consistency         = models.FloatField()
    composite           = models.FloatField()
    task_count          = models.PositiveIntegerField(default=0)
    reviewed_task_count = models.PositiveIntegerField(default=0)

    class Meta:
        unique_together = ("user", "week_start_date")
