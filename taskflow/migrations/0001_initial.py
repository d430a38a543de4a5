import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

STATUS_CHOICES = [
    ("NEW", "New"),
    ("ACCEPTED", "Accepted"),
    ("IN_PROGRESS", "In Progress"),
    ("ON_HOLD", "On Hold"),
    ("COMPLETED_PENDING_REVIEW", "Pending Review"),
    ("REOPENED", "Reopened"),
    ("CLOSED_APPROVED", "Completed"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Department",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=100, unique=True)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
            ],
        ),
        migrations.CreateModel(
            name="KpiBucket",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=100)),
                ("department", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="kpi_buckets", to="taskflow.department")),
            ],
        ),
        migrations.CreateModel(
            name="Member",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("role", models.CharField(choices=[("EMPLOYEE", "Employee"), ("MANAGER", "Manager"), ("DEPARTMENT_HEAD", "Department Head"), ("ADMIN", "Admin")], default="EMPLOYEE", max_length=20)),
                ("is_active", models.BooleanField(default=True)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
                ("department", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="members", to="taskflow.department")),
                ("manager", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="reports", to="taskflow.member")),
                ("user", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="member", to=settings.AUTH_USER_MODEL)),
            ],
        ),
        migrations.CreateModel(
            name="Task",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True, default="")),
                ("status", models.CharField(choices=STATUS_CHOICES, db_index=True, default="NEW", max_length=30)),
                ("priority", models.CharField(choices=[("URGENT_IMPORTANT", "Urgent & Important"), ("URGENT_NOT_IMPORTANT", "Urgent, Not Important"), ("NOT_URGENT_IMPORTANT", "Important, Not Urgent"), ("NOT_URGENT_NOT_IMPORTANT", "Neither")], default="NOT_URGENT_IMPORTANT", max_length=30)),
                ("size", models.CharField(choices=[("EASY", "Easy"), ("MEDIUM", "Medium"), ("DIFFICULT", "Difficult")], default="MEDIUM", max_length=10)),
                ("estimated_minutes", models.PositiveIntegerField(default=0)),
                ("actual_minutes", models.PositiveIntegerField(default=0)),
                ("deadline", models.DateTimeField()),
                ("original_deadline", models.DateTimeField(blank=True, null=True)),
                ("start_date", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("requires_review", models.BooleanField(default=True)),
                ("carry_forward_count", models.PositiveIntegerField(default=0)),
                ("is_carried_forward", models.BooleanField(default=False)),
                ("on_hold_reason", models.TextField(blank=True, null=True)),
                ("rejection_reason", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
                ("assigner", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="assigned_tasks", to="taskflow.member")),
                ("kpi_bucket", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="tasks", to="taskflow.kpibucket")),
                ("owner", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="owned_tasks", to="taskflow.member")),
                ("reviewer", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="review_tasks", to="taskflow.member")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["owner", "status"], name="task_owner_status_idx"),
                    models.Index(fields=["owner", "completed_at"], name="task_owner_completed_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="TaskStatusHistory",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("from_status", models.CharField(blank=True, choices=STATUS_CHOICES, max_length=30, null=True)),
                ("to_status", models.CharField(choices=STATUS_CHOICES, max_length=30)),
                ("reason", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("changed_by", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="status_changes", to="taskflow.member")),
                ("task", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="status_history", to="taskflow.task")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["task", "created_at"], name="history_task_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CarryForwardLog",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("from_date", models.DateTimeField()),
                ("to_date", models.DateTimeField()),
                ("reason", models.TextField()),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("task", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="carry_forwards", to="taskflow.task")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="carry_forwards", to="taskflow.member")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["user", "created_at"], name="carry_user_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DailyPlanningSession",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("session_date", models.DateField()),
                ("morning_completed", models.BooleanField(default=False)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="planning_sessions", to="taskflow.member")),
            ],
            options={
                "unique_together": {("user", "session_date")},
            },
        ),
        migrations.CreateModel(
            name="UserKpi",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("kpi_bucket", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="assignments", to="taskflow.kpibucket")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="kpis", to="taskflow.member")),
            ],
            options={
                "unique_together": {("user", "kpi_bucket")},
            },
        ),
        migrations.CreateModel(
            name="ScoringConfig",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("weekly_output_target", models.PositiveIntegerField(default=15)),
                ("output_weight", models.FloatField(default=0.35)),
                ("quality_weight", models.FloatField(default=0.25)),
                ("reliability_weight", models.FloatField(default=0.25)),
                ("consistency_weight", models.FloatField(default=0.15)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("department", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="scoring_config", to="taskflow.department")),
            ],
        ),
        migrations.CreateModel(
            name="ProductivityScore",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("output", models.FloatField()),
                ("quality", models.FloatField()),
                ("reliability", models.FloatField()),
                ("consistency", models.FloatField()),
                ("composite", models.FloatField()),
                ("window_start", models.DateTimeField()),
                ("window_end", models.DateTimeField()),
                ("calculated_at", models.DateTimeField()),
                ("user", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="productivity_score", to="taskflow.member")),
            ],
        ),
        migrations.CreateModel(
            name="ProductivitySnapshot",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("week_start_date", models.DateField()),
                ("output", models.FloatField()),
                ("quality", models.FloatField()),
                ("reliability", models.FloatField()),
                ("consistency", models.FloatField()),
                ("composite", models.FloatField()),
                ("task_count", models.PositiveIntegerField(default=0)),
                ("reviewed_task_count", models.PositiveIntegerField(default=0)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="productivity_snapshots", to="taskflow.member")),
            ],
            options={
                "unique_together": {("user", "week_start_date")},
            },
        ),
    ]
