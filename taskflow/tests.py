import json
import random
import threading
from datetime import date, datetime, timedelta, timezone as dt_timezone
from io import StringIO
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase
from django.test.client import Client
from django.utils import timezone

from .exceptions import CarryForwardRejected, PermissionDenied, TransitionRejected
from .models import (
    CarryForwardLog, DailyPlanningSession, Department, KpiBucket, Member, ProductivityScore,
    ProductivitySnapshot, Role, ScoringConfig, Task, TaskSize, TaskStatus, TaskStatusHistory, UserKpi,
)
from .schemas import (
    CarryForwardEntry, PillarScores, PlanningDay, ScoredTask, ScoringConfigUpdateSchema,
    ScoringWeights, StatusEvent, TransitionContext, TransitionError,
)
from .scoring import (
    DEFAULT_WEIGHTS, calculate_composite, calculate_consistency_score, calculate_output_score,
    calculate_quality_score, calculate_reliability_score, count_workdays, iso_week_start,
)
from .services import (
    ProductivityService, ScoringConfigService, ScoringDataFetcher, TaskWorkflowService,
)
from .state_machine import (
    TRANSITIONS, get_status_label, list_available_transitions, list_valid_transitions,
    transition_requires_manager_approval, transition_requires_reason, validate_transition,
)

OWNER = 1
MANAGER = 2
OUTSIDER = 3
LONG_REASON = "Waiting on the vendor to reply"

NOW = datetime(2025, 3, 28, 12, 0, tzinfo=dt_timezone.utc)
WINDOW_START = NOW - timedelta(days=28)


def ctx(**overrides) -> TransitionContext:
    values = {
        "task_owner_id": OWNER,
        "current_user_id": OWNER,
        "current_user_role": Role.EMPLOYEE,
        "is_manager": False,
        "requires_review": True,
    }
    values.update(overrides)
    return TransitionContext(**values)


def manager_ctx(**overrides) -> TransitionContext:
    return ctx(current_user_id=MANAGER, current_user_role=Role.MANAGER, is_manager=True, **overrides)


S = TaskStatus

# (from, to, context satisfying the guards, context violating ownership/role)
TABLE_CASES = [
    (S.NEW, S.ACCEPTED, ctx(), ctx(current_user_id=OUTSIDER)),
    (S.NEW, S.IN_PROGRESS, ctx(), ctx(current_user_id=OUTSIDER)),
    (S.ACCEPTED, S.IN_PROGRESS, ctx(), ctx(current_user_id=OUTSIDER)),
    (S.IN_PROGRESS, S.ACCEPTED, ctx(), ctx(current_user_id=OUTSIDER)),
    (S.IN_PROGRESS, S.ON_HOLD, ctx(on_hold_reason=LONG_REASON),
     ctx(current_user_id=OUTSIDER, on_hold_reason=LONG_REASON)),
    (S.ON_HOLD, S.IN_PROGRESS, ctx(), ctx(current_user_id=OUTSIDER)),
    (S.IN_PROGRESS, S.COMPLETED_PENDING_REVIEW, ctx(), ctx(current_user_id=OUTSIDER)),
    (S.IN_PROGRESS, S.CLOSED_APPROVED, ctx(requires_review=False),
     ctx(current_user_id=OUTSIDER, requires_review=False)),
    (S.COMPLETED_PENDING_REVIEW, S.IN_PROGRESS, ctx(), ctx(current_user_id=OUTSIDER)),
    (S.COMPLETED_PENDING_REVIEW, S.CLOSED_APPROVED, manager_ctx(),
     ctx(current_user_id=OUTSIDER, current_user_role=Role.EMPLOYEE)),
    (S.COMPLETED_PENDING_REVIEW, S.REOPENED, manager_ctx(reason=LONG_REASON),
     ctx(current_user_id=OUTSIDER, current_user_role=Role.EMPLOYEE, reason=LONG_REASON)),
    (S.REOPENED, S.IN_PROGRESS, ctx(), ctx(current_user_id=OUTSIDER)),
    (S.CLOSED_APPROVED, S.REOPENED, ctx(reason=LONG_REASON),
     ctx(current_user_id=OUTSIDER, reason=LONG_REASON)),
]

GUARD_CODES = {
    TransitionError.NOT_OWNER,
    TransitionError.ROLE_NOT_ALLOWED,
    TransitionError.NOT_MANAGER,
    TransitionError.SELF_APPROVAL,
}


class TransitionTableTest(SimpleTestCase):
    """Test every legal pair in the transition table."""

    def test_table_matches_cases(self):
        """Test that the cases cover exactly the declared transitions."""
        self.assertEqual(set(TRANSITIONS), {(f, t) for f, t, _, _ in TABLE_CASES})

    def test_valid_under_satisfying_context(self):
        for from_status, to_status, good, _ in TABLE_CASES:
            with self.subTest(from_status=from_status, to_status=to_status):
                result = validate_transition(from_status, to_status, good)
                self.assertTrue(result.valid, result.error)
                self.assertIsNone(result.error)

    def test_ownership_or_role_violation_fails(self):
        """Test guard violations fail whether or not a reason is supplied."""
        for from_status, to_status, _, bad in TABLE_CASES:
            for reason in (None, LONG_REASON):
                with self.subTest(from_status=from_status, to_status=to_status, reason=reason):
                    context = bad.model_copy(update={"reason": reason, "on_hold_reason": reason})
                    result = validate_transition(from_status, to_status, context)
                    self.assertFalse(result.valid)
                    self.assertIn(result.code, GUARD_CODES)

    def test_unlisted_pair_is_invalid(self):
        result = validate_transition(S.NEW, S.CLOSED_APPROVED, ctx())
        self.assertFalse(result.valid)
        self.assertEqual(result.code, TransitionError.INVALID_TRANSITION)
        self.assertEqual(result.error, "Invalid transition from NEW to CLOSED_APPROVED")

    def test_unknown_status_does_not_raise(self):
        result = validate_transition("ARCHIVED", S.NEW, ctx())
        self.assertFalse(result.valid)
        self.assertEqual(result.error, "Invalid transition from ARCHIVED to NEW")

    def test_string_statuses_accepted(self):
        self.assertTrue(validate_transition("NEW", "ACCEPTED", ctx()).valid)


class TransitionGuardTest(SimpleTestCase):
    """Test the individual guard rules."""

    def test_self_approval_rejected_even_for_managers(self):
        for role in (Role.MANAGER, Role.DEPARTMENT_HEAD, Role.ADMIN):
            with self.subTest(role=role):
                context = ctx(current_user_role=role, is_manager=True)
                result = validate_transition(S.COMPLETED_PENDING_REVIEW, S.CLOSED_APPROVED, context)
                self.assertFalse(result.valid)
                self.assertEqual(result.code, TransitionError.SELF_APPROVAL)
                self.assertEqual(result.error, "Cannot approve your own task")

    def test_manager_of_someone_else_cannot_approve(self):
        context = ctx(current_user_id=MANAGER, current_user_role=Role.MANAGER, is_manager=False)
        result = validate_transition(S.COMPLETED_PENDING_REVIEW, S.CLOSED_APPROVED, context)
        self.assertFalse(result.valid)
        self.assertEqual(result.code, TransitionError.NOT_MANAGER)

    def test_elevated_roles_can_approve_any_task(self):
        for role in (Role.DEPARTMENT_HEAD, Role.ADMIN):
            with self.subTest(role=role):
                context = ctx(current_user_id=OUTSIDER, current_user_role=role, is_manager=False)
                result = validate_transition(S.COMPLETED_PENDING_REVIEW, S.CLOSED_APPROVED, context)
                self.assertTrue(result.valid)

    def test_employee_cannot_approve(self):
        context = ctx(current_user_id=OUTSIDER, current_user_role=Role.EMPLOYEE)
        result = validate_transition(S.COMPLETED_PENDING_REVIEW, S.CLOSED_APPROVED, context)
        self.assertEqual(result.code, TransitionError.ROLE_NOT_ALLOWED)
        self.assertEqual(result.error, "Role EMPLOYEE cannot perform this transition")

    def test_on_hold_reason_boundary(self):
        """Test reasons of 0-9 characters fail and 10 characters pass."""
        for length in range(10):
            with self.subTest(length=length):
                result = validate_transition(S.IN_PROGRESS, S.ON_HOLD, ctx(on_hold_reason="x" * length))
                self.assertFalse(result.valid)
                self.assertEqual(result.code, TransitionError.REASON_TOO_SHORT)
                self.assertIn("10", result.error)

        self.assertTrue(validate_transition(S.IN_PROGRESS, S.ON_HOLD, ctx(on_hold_reason="x" * 10)).valid)

    def test_reason_is_trimmed(self):
        result = validate_transition(S.IN_PROGRESS, S.ON_HOLD, ctx(on_hold_reason="   short     "))
        self.assertEqual(result.code, TransitionError.REASON_TOO_SHORT)

    def test_on_hold_accepts_generic_reason(self):
        self.assertTrue(validate_transition(S.IN_PROGRESS, S.ON_HOLD, ctx(reason=LONG_REASON)).valid)

    def test_blank_on_hold_reason_falls_back_to_reason(self):
        context = ctx(on_hold_reason="      ", reason=LONG_REASON)
        self.assertTrue(validate_transition(S.IN_PROGRESS, S.ON_HOLD, context).valid)

    def test_ownership_reported_before_reason(self):
        result = validate_transition(S.IN_PROGRESS, S.ON_HOLD, ctx(current_user_id=OUTSIDER))
        self.assertEqual(result.code, TransitionError.NOT_OWNER)

    def test_reject_requires_reason(self):
        result = validate_transition(S.COMPLETED_PENDING_REVIEW, S.REOPENED, manager_ctx(reason="too short"))
        self.assertEqual(result.code, TransitionError.REASON_TOO_SHORT)
        self.assertEqual(result.error, "Rejection reason must be at least 10 characters")

    def test_review_flag_selects_completion_path(self):
        self.assertEqual(
            validate_transition(S.IN_PROGRESS, S.CLOSED_APPROVED, ctx(requires_review=True)).code,
            TransitionError.REVIEW_REQUIRED,
        )
        self.assertEqual(
            validate_transition(S.IN_PROGRESS, S.COMPLETED_PENDING_REVIEW, ctx(requires_review=False)).code,
            TransitionError.REVIEW_NOT_REQUIRED,
        )

    def test_manager_can_reopen_closed_task(self):
        self.assertTrue(validate_transition(S.CLOSED_APPROVED, S.REOPENED, manager_ctx(reason=LONG_REASON)).valid)


class ListValidTransitionsTest(SimpleTestCase):
    """Test enumeration of available actions."""

    def test_new_task_for_owner(self):
        self.assertEqual(list_valid_transitions(S.NEW, ctx()), {S.ACCEPTED, S.IN_PROGRESS})

    def test_new_task_for_outsider(self):
        self.assertEqual(list_valid_transitions(S.NEW, ctx(current_user_id=OUTSIDER)), set())

    def test_in_progress_depends_on_review_flag(self):
        self.assertEqual(
            list_valid_transitions(S.IN_PROGRESS, ctx(on_hold_reason=LONG_REASON)),
            {S.ACCEPTED, S.ON_HOLD, S.COMPLETED_PENDING_REVIEW},
        )
        self.assertEqual(
            list_valid_transitions(S.IN_PROGRESS, ctx(requires_review=False)),
            {S.ACCEPTED, S.CLOSED_APPROVED},
        )

    def test_pending_review_for_manager(self):
        self.assertEqual(list_valid_transitions(S.COMPLETED_PENDING_REVIEW, manager_ctx()), {S.CLOSED_APPROVED})
        self.assertEqual(
            list_valid_transitions(S.COMPLETED_PENDING_REVIEW, manager_ctx(reason=LONG_REASON)),
            {S.CLOSED_APPROVED, S.REOPENED},
        )

    def test_list_agrees_with_validate(self):
        contexts = [ctx(), manager_ctx(reason=LONG_REASON), ctx(requires_review=False, reason=LONG_REASON)]
        for status in TaskStatus:
            for context in contexts:
                expected = {t for t in TaskStatus if validate_transition(status, t, context).valid}
                self.assertEqual(list_valid_transitions(status, context), expected)

    def test_requires_reason_lookup(self):
        self.assertTrue(transition_requires_reason(S.IN_PROGRESS, S.ON_HOLD))
        self.assertTrue(transition_requires_reason(S.CLOSED_APPROVED, S.REOPENED))
        self.assertFalse(transition_requires_reason(S.NEW, S.ACCEPTED))
        self.assertFalse(transition_requires_reason(S.NEW, S.CLOSED_APPROVED))

    def test_requires_manager_approval_lookup(self):
        self.assertTrue(transition_requires_manager_approval(S.COMPLETED_PENDING_REVIEW, S.CLOSED_APPROVED))
        self.assertTrue(transition_requires_manager_approval(S.COMPLETED_PENDING_REVIEW, S.REOPENED))
        self.assertFalse(transition_requires_manager_approval(S.CLOSED_APPROVED, S.REOPENED))
        self.assertFalse(transition_requires_manager_approval(S.IN_PROGRESS, S.CLOSED_APPROVED))
        self.assertFalse(transition_requires_manager_approval("ARCHIVED", S.NEW))

    def test_status_labels(self):
        self.assertEqual(get_status_label(S.COMPLETED_PENDING_REVIEW), "Pending Review")
        self.assertEqual(get_status_label("CLOSED_APPROVED"), "Completed")
        self.assertEqual(get_status_label(S.IN_PROGRESS), "In Progress")


class ListAvailableTransitionsTest(SimpleTestCase):
    """Test the action list, which leaves reason checks until the action is taken."""

    def test_owner_offered_hold_without_reason(self):
        self.assertEqual(
            list_available_transitions(S.IN_PROGRESS, ctx()),
            {S.ACCEPTED, S.ON_HOLD, S.COMPLETED_PENDING_REVIEW},
        )

    def test_manager_offered_reject_without_reason(self):
        self.assertEqual(
            list_available_transitions(S.COMPLETED_PENDING_REVIEW, manager_ctx()),
            {S.CLOSED_APPROVED, S.REOPENED},
        )

    def test_owner_offered_reopen(self):
        self.assertEqual(list_available_transitions(S.CLOSED_APPROVED, ctx()), {S.REOPENED})

    def test_other_guards_still_apply(self):
        self.assertEqual(list_available_transitions(S.IN_PROGRESS, ctx(current_user_id=OUTSIDER)), set())
        self.assertEqual(list_available_transitions(S.COMPLETED_PENDING_REVIEW, ctx()), {S.IN_PROGRESS})
        self.assertEqual(list_available_transitions(S.CLOSED_APPROVED, ctx(current_user_id=OUTSIDER)), set())

    def test_superset_of_valid_transitions(self):
        for status in TaskStatus:
            for context in (ctx(), manager_ctx(), ctx(requires_review=False)):
                self.assertLessEqual(list_valid_transitions(status, context),
                                     list_available_transitions(status, context))


def scored(task_id, size=TaskSize.MEDIUM, completed_at=NOW - timedelta(days=1), deadline=NOW,
           requires_review=False, kpi_bucket_id=None):
    return ScoredTask(
        id=task_id,
        status=S.CLOSED_APPROVED,
        size=size,
        completed_at=completed_at,
        deadline=deadline,
        requires_review=requires_review,
        kpi_bucket_id=kpi_bucket_id,
    )


def events(task_id, *statuses, start=WINDOW_START):
    history = []
    previous = None
    for offset, status in enumerate(statuses):
        history.append(StatusEvent(
            task_id=task_id, from_status=previous, to_status=status,
            created_at=start + timedelta(hours=offset),
        ))
        previous = status
    return history


FIRST_PASS = (S.NEW, S.IN_PROGRESS, S.COMPLETED_PENDING_REVIEW, S.CLOSED_APPROVED)
SENT_BACK = (S.NEW, S.IN_PROGRESS, S.COMPLETED_PENDING_REVIEW, S.REOPENED, S.IN_PROGRESS,
             S.COMPLETED_PENDING_REVIEW, S.CLOSED_APPROVED)


class OutputPillarTest(SimpleTestCase):

    def test_points_against_window_target(self):
        """Test 42 points against a 60 point target scores 70."""
        tasks = [scored(i, size=TaskSize.DIFFICULT) for i in range(14)]
        result = calculate_output_score(tasks, 15, WINDOW_START, NOW)
        self.assertEqual(result.points, 42)
        self.assertEqual(result.target, 60)
        self.assertEqual(result.score, 70.0)

    def test_size_drives_points(self):
        tasks = [scored(1, size=TaskSize.EASY), scored(2, size=TaskSize.MEDIUM), scored(3, size=TaskSize.DIFFICULT)]
        self.assertEqual(calculate_output_score(tasks, 15, WINDOW_START, NOW).points, 6)

    def test_capped_at_100(self):
        tasks = [scored(i, size=TaskSize.DIFFICULT) for i in range(40)]
        self.assertEqual(calculate_output_score(tasks, 15, WINDOW_START, NOW).score, 100.0)

    def test_zero_target_scores_100(self):
        self.assertEqual(calculate_output_score([], 0, WINDOW_START, NOW).score, 100.0)


class QualityPillarTest(SimpleTestCase):

    def test_no_reviewed_tasks_is_not_penalised(self):
        result = calculate_quality_score([scored(1), scored(2)], [])
        self.assertEqual(result.first_pass_rate, 1.0)
        self.assertEqual(result.score, 100.0)

    def test_first_pass_rate_from_history(self):
        tasks = [scored(1, requires_review=True), scored(2, requires_review=True)]
        history = events(1, *FIRST_PASS) + events(2, *SENT_BACK)
        result = calculate_quality_score(tasks, history)
        self.assertEqual(result.reviewed_count, 2)
        self.assertEqual(result.first_pass_count, 1)
        self.assertEqual(result.score, 50.0)

    def test_reopen_after_approval_loses_first_pass(self):
        tasks = [scored(1, requires_review=True)]
        history = events(1, *FIRST_PASS, S.REOPENED, S.IN_PROGRESS, S.COMPLETED_PENDING_REVIEW, S.CLOSED_APPROVED)
        self.assertEqual(calculate_quality_score(tasks, history).first_pass_count, 0)

    def test_reopen_rate_is_diagnostic_only(self):
        """Test a reopened unreviewed task counts in reopen rate but not the score."""
        tasks = [scored(1, requires_review=True), scored(2, requires_review=False)]
        history = events(1, *FIRST_PASS) + events(2, S.NEW, S.IN_PROGRESS, S.CLOSED_APPROVED, S.REOPENED,
                                                  S.IN_PROGRESS, S.CLOSED_APPROVED)
        result = calculate_quality_score(tasks, history)
        self.assertEqual(result.reopened_count, 1)
        self.assertEqual(result.reopen_rate, 0.5)
        self.assertEqual(result.score, 100.0)

    def test_history_order_does_not_matter(self):
        tasks = [scored(1, requires_review=True), scored(2, requires_review=True)]
        history = events(1, *FIRST_PASS) + events(2, *SENT_BACK)
        shuffled = history[:]
        random.Random(7).shuffle(shuffled)
        self.assertEqual(calculate_quality_score(tasks, history), calculate_quality_score(tasks, shuffled))

    def test_tied_timestamps_replay_in_log_order(self):
        """Test a send-back stamped at the same instant as the approval is still seen."""
        stamps = [WINDOW_START] * 3 + [NOW] * 4
        history = [
            StatusEvent(id=i + 1, task_id=1, from_status=previous, to_status=status, created_at=stamps[i])
            for i, (previous, status) in enumerate(zip((None,) + SENT_BACK[:-1], SENT_BACK))
        ]
        tasks = [scored(1, requires_review=True)]

        for ordering in (history, list(reversed(history))):
            result = calculate_quality_score(tasks, ordering)
            self.assertEqual(result.first_pass_count, 0)
            self.assertEqual(result.score, 0.0)


class ReliabilityPillarTest(SimpleTestCase):

    def carry_forwards(self, count):
        return [CarryForwardEntry(task_id=i, user_id=OWNER, created_at=NOW) for i in range(count)]

    def test_on_time_rate_minus_penalty(self):
        """Test 8 of 10 on time with 2 carry-forwards scores 70."""
        late = NOW + timedelta(hours=1)
        tasks = [scored(i) for i in range(8)] + [scored(i, completed_at=late) for i in range(8, 10)]
        result = calculate_reliability_score(tasks, self.carry_forwards(2))
        self.assertEqual(result.on_time_count, 8)
        self.assertEqual(result.penalty, 10)
        self.assertEqual(result.score, 70.0)

    def test_completed_exactly_at_deadline_is_on_time(self):
        result = calculate_reliability_score([scored(1, completed_at=NOW, deadline=NOW)], [])
        self.assertEqual(result.score, 100.0)

    def test_no_completions_scores_midpoint(self):
        self.assertEqual(calculate_reliability_score([], []).score, 50.0)

    def test_penalty_capped_and_score_clamped(self):
        result = calculate_reliability_score([scored(1, completed_at=NOW + timedelta(days=1))], self.carry_forwards(9))
        self.assertEqual(result.penalty, 30)
        self.assertEqual(result.score, 0.0)


class ConsistencyPillarTest(SimpleTestCase):

    def planning(self, days):
        return [PlanningDay(session_date=(WINDOW_START + timedelta(days=d)).date(), morning_completed=True)
                for d in range(days)]

    def test_workdays_per_week(self):
        self.assertEqual(count_workdays(WINDOW_START, NOW), 20)
        self.assertEqual(count_workdays(NOW - timedelta(days=7), NOW), 5)
        self.assertEqual(count_workdays(NOW - timedelta(days=10), NOW), 8)
        self.assertEqual(count_workdays(NOW - timedelta(days=13), NOW), 10)

    def test_planning_and_kpi_spread_averaged(self):
        tasks = [scored(1, kpi_bucket_id=10), scored(2, kpi_bucket_id=10), scored(3, kpi_bucket_id=11)]
        result = calculate_consistency_score(self.planning(10), [10, 11, 12, 13], tasks, WINDOW_START, NOW)
        self.assertEqual(result.planning_ratio, 0.5)
        self.assertEqual(result.kpi_spread_ratio, 0.5)
        self.assertEqual(result.score, 50.0)

    def test_unplanned_mornings_do_not_count(self):
        days = [PlanningDay(session_date=NOW.date(), morning_completed=False)]
        self.assertEqual(calculate_consistency_score(days, [], [], WINDOW_START, NOW).planned_days, 0)

    def test_no_assigned_kpis_gives_zero_spread(self):
        result = calculate_consistency_score(self.planning(20), [], [scored(1, kpi_bucket_id=10)], WINDOW_START, NOW)
        self.assertEqual(result.kpi_spread_ratio, 0.0)
        self.assertEqual(result.score, 50.0)

    def test_ratios_capped(self):
        tasks = [scored(1, kpi_bucket_id=10), scored(2, kpi_bucket_id=11)]
        result = calculate_consistency_score(self.planning(28), [10], tasks, WINDOW_START, NOW)
        self.assertEqual(result.score, 100.0)


class CompositeTest(SimpleTestCase):

    def test_weighted_sum(self):
        pillars = PillarScores(output=70, quality=80, reliability=60, consistency=90)
        self.assertEqual(calculate_composite(pillars, DEFAULT_WEIGHTS), 73.0)

    def test_weights_not_renormalised(self):
        pillars = PillarScores(output=100, quality=100, reliability=100, consistency=100)
        weights = ScoringWeights(output_weight=0.5, quality_weight=0.5, reliability_weight=0.5, consistency_weight=0)
        self.assertEqual(calculate_composite(pillars, weights), 150.0)

    def test_iso_week_start(self):
        self.assertEqual(iso_week_start(NOW), date(2025, 3, 24))
        self.assertEqual(iso_week_start(date(2025, 3, 24)), date(2025, 3, 24))


class ScoringConfigSchemaTest(SimpleTestCase):

    def test_weights_must_sum_to_one(self):
        with self.assertRaises(ValueError):
            ScoringConfigUpdateSchema(output_weight=0.5, quality_weight=0.5,
                                      reliability_weight=0.5, consistency_weight=0.5)

    def test_weights_go_together(self):
        with self.assertRaises(ValueError):
            ScoringConfigUpdateSchema(output_weight=1.0)

    def test_target_only_is_fine(self):
        payload = ScoringConfigUpdateSchema(weekly_output_target=20)
        self.assertFalse(payload.has_weights())


class TaskflowTestBase(TestCase):
    """Base test class with a small org chart."""

    def setUp(self):
        """Set up common test data"""
        self.client = Client()
        self.department = Department.objects.create(name="Engineering")
        self.admin = self.make_member("admin", Role.ADMIN)
        self.manager = self.make_member("manager", Role.MANAGER, department=self.department)
        self.employee = self.make_member("employee", Role.EMPLOYEE, department=self.department,
                                         manager=self.manager)
        self.peer = self.make_member("peer", Role.EMPLOYEE, department=self.department)

    def make_member(self, username, role, department=None, manager=None):
        user = get_user_model().objects.create_user(username=username, password="pass12345")
        return Member.objects.create(user=user, role=role, department=department, manager=manager)

    def make_task(self, owner=None, **fields):
        fields.setdefault("deadline", timezone.now() + timedelta(days=3))
        return TaskWorkflowService.create_task(owner or self.employee, "Write report", **fields)

    def make_completed(self, owner, completed_at, size=TaskSize.MEDIUM, deadline=None, requires_review=False,
                       kpi_bucket=None):
        return Task.objects.create(
            owner=owner,
            title="Done task",
            status=TaskStatus.CLOSED_APPROVED,
            size=size,
            deadline=deadline or completed_at + timedelta(days=1),
            completed_at=completed_at,
            requires_review=requires_review,
            kpi_bucket=kpi_bucket,
            created_at=completed_at - timedelta(days=2),
        )


class TaskWorkflowServiceTest(TaskflowTestBase):
    """Test persisted transitions."""

    def test_create_task_records_creation_event(self):
        task = self.make_task(assigner=self.manager)
        self.assertEqual(task.status, TaskStatus.NEW)
        event = TaskStatusHistory.objects.get(task=task)
        self.assertIsNone(event.from_status)
        self.assertEqual(event.to_status, TaskStatus.NEW)
        self.assertEqual(event.changed_by, self.manager)

    def test_create_task_ignores_requested_status(self):
        task = self.make_task(status=TaskStatus.CLOSED_APPROVED)
        self.assertEqual(task.status, TaskStatus.NEW)

    def test_full_review_cycle(self):
        task = self.make_task()
        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.IN_PROGRESS, now=NOW)
        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.COMPLETED_PENDING_REVIEW, now=NOW)
        task = TaskWorkflowService.transition(task.id, self.manager, TaskStatus.CLOSED_APPROVED,
                                              now=NOW + timedelta(hours=1))

        self.assertEqual(task.status, TaskStatus.CLOSED_APPROVED)
        self.assertEqual(task.start_date, NOW)
        self.assertEqual(task.completed_at, NOW + timedelta(hours=1))
        statuses = list(TaskStatusHistory.objects.filter(task=task).order_by("id").values_list("to_status", flat=True))
        self.assertEqual(statuses, ["NEW", "IN_PROGRESS", "COMPLETED_PENDING_REVIEW", "CLOSED_APPROVED"])

    def test_rejected_transition_writes_nothing(self):
        task = self.make_task()
        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.IN_PROGRESS)
        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.COMPLETED_PENDING_REVIEW)
        history_count = TaskStatusHistory.objects.filter(task=task).count()

        with self.assertRaises(TransitionRejected) as raised:
            TaskWorkflowService.transition(task.id, self.employee, TaskStatus.CLOSED_APPROVED)

        self.assertEqual(raised.exception.result.code, TransitionError.SELF_APPROVAL)
        task.refresh_from_db()
        self.assertEqual(task.status, TaskStatus.COMPLETED_PENDING_REVIEW)
        self.assertIsNone(task.completed_at)
        self.assertEqual(TaskStatusHistory.objects.filter(task=task).count(), history_count)

    def test_other_manager_cannot_approve(self):
        other_manager = self.make_member("other", Role.MANAGER, department=self.department)
        task = self.make_task()
        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.IN_PROGRESS)
        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.COMPLETED_PENDING_REVIEW)
        with self.assertRaises(TransitionRejected) as raised:
            TaskWorkflowService.transition(task.id, other_manager, TaskStatus.CLOSED_APPROVED)
        self.assertEqual(raised.exception.result.code, TransitionError.NOT_MANAGER)

    def test_on_hold_and_undo_start(self):
        task = self.make_task()
        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.IN_PROGRESS)
        task = TaskWorkflowService.transition(task.id, self.employee, TaskStatus.ON_HOLD, on_hold_reason=LONG_REASON)
        self.assertEqual(task.on_hold_reason, LONG_REASON)
        self.assertEqual(TaskStatusHistory.objects.filter(task=task).last().reason, LONG_REASON)

        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.IN_PROGRESS)
        task = TaskWorkflowService.transition(task.id, self.employee, TaskStatus.ACCEPTED)
        self.assertIsNone(task.start_date)

    def test_reopen_closed_task_clears_completion(self):
        task = self.make_task(requires_review=False)
        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.IN_PROGRESS)
        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.CLOSED_APPROVED)
        task = TaskWorkflowService.transition(task.id, self.employee, TaskStatus.REOPENED, reason=LONG_REASON)
        self.assertIsNone(task.completed_at)
        self.assertEqual(task.rejection_reason, LONG_REASON)

    def test_on_hold_records_hold_reason(self):
        task = self.make_task()
        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.IN_PROGRESS)
        task = TaskWorkflowService.transition(task.id, self.employee, TaskStatus.ON_HOLD,
                                              reason="General status update", on_hold_reason=LONG_REASON)
        self.assertEqual(task.on_hold_reason, LONG_REASON)
        self.assertEqual(TaskStatusHistory.objects.filter(task=task).last().reason, LONG_REASON)

    def test_blank_hold_reason_uses_reason(self):
        task = self.make_task()
        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.IN_PROGRESS)
        task = TaskWorkflowService.transition(task.id, self.employee, TaskStatus.ON_HOLD,
                                              reason=f"  {LONG_REASON}  ", on_hold_reason="   ")
        self.assertEqual(task.on_hold_reason, LONG_REASON)
        self.assertEqual(TaskStatusHistory.objects.filter(task=task).last().reason, LONG_REASON)

    def test_available_transitions(self):
        task = self.make_task()
        _, targets = TaskWorkflowService.available_transitions(task.id, self.employee)
        self.assertEqual(targets, {TaskStatus.ACCEPTED, TaskStatus.IN_PROGRESS})
        _, targets = TaskWorkflowService.available_transitions(task.id, self.peer)
        self.assertEqual(targets, set())

    def test_available_transitions_include_reason_actions(self):
        task = self.make_task()
        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.IN_PROGRESS)
        _, targets = TaskWorkflowService.available_transitions(task.id, self.employee)
        self.assertIn(TaskStatus.ON_HOLD, targets)

        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.COMPLETED_PENDING_REVIEW)
        _, targets = TaskWorkflowService.available_transitions(task.id, self.manager)
        self.assertEqual(targets, {TaskStatus.CLOSED_APPROVED, TaskStatus.REOPENED})


class CarryForwardTest(TaskflowTestBase):
    """Test deadline carry-forward."""

    def setUp(self):
        super().setUp()
        self.task = self.make_task()
        self.today = timezone.localdate()

    def test_carry_forward_updates_deadline_only(self):
        original = self.task.deadline
        new_day = self.today + timedelta(days=5)
        task = TaskWorkflowService.carry_forward(self.task.id, self.employee, new_day, LONG_REASON)

        self.assertEqual(task.deadline.date(), new_day)
        self.assertEqual(task.original_deadline, original)
        self.assertTrue(task.is_carried_forward)
        self.assertEqual(task.carry_forward_count, 1)
        self.assertEqual(task.status, TaskStatus.NEW)
        self.assertEqual(CarryForwardLog.objects.filter(task=task).count(), 1)
        self.assertEqual(TaskStatusHistory.objects.filter(task=task).count(), 1)

        TaskWorkflowService.carry_forward(self.task.id, self.employee, new_day + timedelta(days=1), LONG_REASON)
        self.task.refresh_from_db()
        self.assertEqual(self.task.original_deadline, original)
        self.assertEqual(self.task.carry_forward_count, 2)

    def test_only_owner(self):
        with self.assertRaises(PermissionDenied):
            TaskWorkflowService.carry_forward(self.task.id, self.manager, self.today, LONG_REASON)

    def test_rejections(self):
        with self.assertRaises(CarryForwardRejected):
            TaskWorkflowService.carry_forward(self.task.id, self.employee, self.today, "short")
        with self.assertRaises(CarryForwardRejected):
            TaskWorkflowService.carry_forward(self.task.id, self.employee, self.today - timedelta(days=1),
                                              LONG_REASON)

        Task.objects.filter(id=self.task.id).update(carry_forward_count=10)
        with self.assertRaises(CarryForwardRejected):
            TaskWorkflowService.carry_forward(self.task.id, self.employee, self.today, LONG_REASON)

    def test_closed_task_cannot_carry_forward(self):
        Task.objects.filter(id=self.task.id).update(status=TaskStatus.CLOSED_APPROVED)
        with self.assertRaises(CarryForwardRejected):
            TaskWorkflowService.carry_forward(self.task.id, self.employee, self.today, LONG_REASON)


class ScoringConfigServiceTest(TaskflowTestBase):

    def test_defaults_without_config(self):
        weights, target = ScoringConfigService.get_for_department(self.department.id)
        self.assertEqual(weights, DEFAULT_WEIGHTS)
        self.assertEqual(target, 15)
        self.assertEqual(ScoringConfigService.get_for_department(None), (DEFAULT_WEIGHTS, 15))

    def test_department_config_used(self):
        ScoringConfig.objects.create(department=self.department, weekly_output_target=10, output_weight=0.4,
                                     quality_weight=0.2, reliability_weight=0.2, consistency_weight=0.2)
        weights, target = ScoringConfigService.get_for_department(self.department.id)
        self.assertEqual(weights.output_weight, 0.4)
        self.assertEqual(target, 10)

    def test_malformed_weights_fall_back(self):
        ScoringConfig.objects.create(department=self.department, output_weight=-1)
        weights, _ = ScoringConfigService.get_for_department(self.department.id)
        self.assertEqual(weights, DEFAULT_WEIGHTS)

    def test_update_config(self):
        payload = ScoringConfigUpdateSchema(weekly_output_target=20, output_weight=0.4, quality_weight=0.3,
                                            reliability_weight=0.2, consistency_weight=0.1)
        config = ScoringConfigService.update_config(self.department.id, payload)
        self.assertEqual(config.weekly_output_target, 20)
        self.assertEqual(config.quality_weight, 0.3)

        config = ScoringConfigService.update_config(self.department.id,
                                                    ScoringConfigUpdateSchema(weekly_output_target=25))
        self.assertEqual(config.weekly_output_target, 25)
        self.assertEqual(config.output_weight, 0.4)
        self.assertEqual(ScoringConfig.objects.count(), 1)


class ProductivityServiceTest(TaskflowTestBase):
    """Test scoring against persisted activity."""

    def test_empty_activity_populates_meta(self):
        result = ProductivityService.calculate_for_user(self.peer.id, None, WINDOW_START, NOW)
        self.assertEqual(result.output, 0.0)
        self.assertEqual(result.quality, 100.0)
        self.assertEqual(result.reliability, 50.0)
        self.assertEqual(result.consistency, 0.0)

        meta = result.meta.model_dump()
        self.assertTrue(all(value is not None for value in meta.values()))
        self.assertEqual(meta["completed_task_count"], 0)
        self.assertEqual(meta["target_points"], 60)
        self.assertEqual(meta["total_workdays"], 20)
        self.assertEqual(meta["review_ratio"], 0.0)

    def test_default_window_is_28_days(self):
        result = ProductivityService.calculate_for_user(self.peer.id, None, now=NOW)
        self.assertEqual(result.window_end, NOW)
        self.assertEqual(result.window_start, WINDOW_START)

    def test_scores_from_persisted_history(self):
        bucket_a = KpiBucket.objects.create(name="Delivery", department=self.department)
        bucket_b = KpiBucket.objects.create(name="Support", department=self.department)
        UserKpi.objects.create(user=self.employee, kpi_bucket=bucket_a)
        UserKpi.objects.create(user=self.employee, kpi_bucket=bucket_b)

        clean = self.make_completed(self.employee, NOW - timedelta(days=3), size=TaskSize.DIFFICULT,
                                    requires_review=True, kpi_bucket=bucket_a)
        reworked = self.make_completed(self.employee, NOW - timedelta(days=2), size=TaskSize.EASY,
                                       requires_review=True, deadline=NOW - timedelta(days=4))
        for task, statuses in ((clean, FIRST_PASS), (reworked, SENT_BACK)):
            for event in events(task.id, *statuses, start=task.created_at):
                TaskStatusHistory.objects.create(task=task, from_status=event.from_status,
                                                 to_status=event.to_status, changed_by=self.employee,
                                                 created_at=event.created_at)
        # Outside the window
        self.make_completed(self.employee, NOW - timedelta(days=40))

        CarryForwardLog.objects.create(task=reworked, user=self.employee, from_date=NOW, to_date=NOW,
                                       reason=LONG_REASON, created_at=NOW - timedelta(days=5))
        for day in range(5):
            DailyPlanningSession.objects.create(user=self.employee, session_date=(NOW - timedelta(days=day)).date(),
                                                morning_completed=True)

        result = ProductivityService.calculate_for_user(self.employee.id, self.department.id, WINDOW_START, NOW)

        self.assertEqual(result.meta.completed_task_count, 2)
        self.assertEqual(result.meta.total_points, 4)
        self.assertEqual(result.output, round(100 * 4 / 60, 1))
        self.assertEqual(result.meta.first_pass_count, 1)
        self.assertEqual(result.meta.reopened_count, 1)
        self.assertEqual(result.quality, 50.0)
        self.assertEqual(result.meta.on_time_count, 1)
        self.assertEqual(result.reliability, 45.0)
        self.assertEqual(result.meta.planned_days, 5)
        self.assertEqual(result.meta.active_kpi_buckets, 1)
        self.assertEqual(result.meta.assigned_kpi_buckets, 2)
        self.assertEqual(result.consistency, 37.5)

    def test_send_back_at_same_instant_is_not_first_pass(self):
        stamp = NOW - timedelta(days=1)
        task = self.make_task(created_at=stamp)
        steps = [
            (self.employee, TaskStatus.IN_PROGRESS, None),
            (self.employee, TaskStatus.COMPLETED_PENDING_REVIEW, None),
            (self.manager, TaskStatus.REOPENED, LONG_REASON),
            (self.employee, TaskStatus.IN_PROGRESS, None),
            (self.employee, TaskStatus.COMPLETED_PENDING_REVIEW, None),
            (self.manager, TaskStatus.CLOSED_APPROVED, None),
        ]
        for actor, to_status, reason in steps:
            TaskWorkflowService.transition(task.id, actor, to_status, reason=reason, now=stamp)

        result = ProductivityService.calculate_for_user(self.employee.id, self.department.id, WINDOW_START, NOW)
        self.assertEqual(result.meta.reviewed_task_count, 1)
        self.assertEqual(result.meta.first_pass_count, 0)
        self.assertEqual(result.meta.reopened_count, 1)
        self.assertEqual(result.quality, 0.0)

    def test_recalculation_is_identical(self):
        self.make_completed(self.employee, NOW - timedelta(days=3), size=TaskSize.DIFFICULT)
        first = ProductivityService.calculate_for_user(self.employee.id, self.department.id, WINDOW_START, NOW)
        second = ProductivityService.calculate_for_user(self.employee.id, self.department.id, WINDOW_START, NOW)
        self.assertEqual(first.model_dump(), second.model_dump())

    def test_save_upserts_score_and_snapshot(self):
        self.make_completed(self.employee, NOW - timedelta(days=3))
        ProductivityService.calculate_and_save_for_user(self.employee.id, self.department.id, now=NOW)
        self.make_completed(self.employee, NOW - timedelta(days=1))
        result = ProductivityService.calculate_and_save_for_user(self.employee.id, self.department.id, now=NOW)

        score = ProductivityScore.objects.get(user=self.employee)
        self.assertEqual(score.composite, result.composite)
        self.assertEqual(score.window_start, WINDOW_START)
        self.assertEqual(score.window_end, NOW)

        snapshot = ProductivitySnapshot.objects.get(user=self.employee)
        self.assertEqual(snapshot.week_start_date, date(2025, 3, 24))
        self.assertEqual(snapshot.task_count, 2)

        ProductivityService.calculate_and_save_for_user(self.employee.id, self.department.id,
                                                        now=NOW + timedelta(days=7))
        self.assertEqual(ProductivityScore.objects.filter(user=self.employee).count(), 1)
        self.assertEqual(ProductivitySnapshot.objects.filter(user=self.employee).count(), 2)

    def test_trends_oldest_first(self):
        today = date(2025, 3, 28)
        for weeks_ago in (3, 1, 20):
            result = ProductivityService.calculate_for_user(self.employee.id, None, WINDOW_START, NOW)
            ProductivityService.save_weekly_snapshot(self.employee.id, iso_week_start(today) - timedelta(weeks=weeks_ago),
                                                     result)
        trends = ProductivityService.get_trends(self.employee.id, weeks=12, today=today)
        self.assertEqual([t.week_start_date for t in trends],
                         [date(2025, 3, 3), date(2025, 3, 17)])


class BatchScoringTest(TestCase):
    """Test calculate-and-save for every user."""

    def setUp(self):
        self.members = []
        for i in range(10):
            user = get_user_model().objects.create_user(username=f"user{i}", password="pass12345")
            self.members.append(Member.objects.create(user=user))
        retired = get_user_model().objects.create_user(username="retired", password="pass12345")
        Member.objects.create(user=retired, is_active=False)

    def test_all_active_users_processed(self):
        batch = ProductivityService.calculate_and_save_for_all(now=NOW)
        self.assertEqual(batch.processed, 10)
        self.assertEqual(batch.errors, [])
        self.assertEqual(ProductivityScore.objects.count(), 10)

    def test_one_failure_does_not_abort(self):
        failing = self.members[4]
        original = ScoringDataFetcher.fetch_for_user

        def fetch(user_id, department_id, window_start, window_end):
            if user_id == failing.id:
                raise RuntimeError("database timeout")
            return original(user_id, department_id, window_start, window_end)

        with patch.object(ScoringDataFetcher, "fetch_for_user", fetch):
            batch = ProductivityService.calculate_and_save_for_all(now=NOW)

        self.assertEqual(batch.processed, 9)
        self.assertEqual(batch.errors, [f"User {failing.id}: database timeout"])
        self.assertEqual(ProductivityScore.objects.count(), 9)
        self.assertFalse(ProductivityScore.objects.filter(user=failing).exists())

    def test_cancel_stops_new_users(self):
        cancel = threading.Event()
        original = ProductivityService.calculate_and_save_for_user

        def save(user_id, department_id, now=None):
            result = original(user_id, department_id, now=now)
            if user_id == self.members[2].id:
                cancel.set()
            return result

        with patch.object(ProductivityService, "calculate_and_save_for_user", save):
            batch = ProductivityService.calculate_and_save_for_all(cancel_event=cancel, now=NOW)

        self.assertTrue(batch.cancelled)
        self.assertEqual(batch.processed, 3)
        self.assertEqual(ProductivityScore.objects.count(), 3)

    def test_management_command(self):
        out = StringIO()
        call_command("calculate_productivity", stdout=out)
        self.assertIn("Processed 10 users, 0 errors.", out.getvalue())

        out = StringIO()
        call_command("calculate_productivity", "--user", str(self.members[0].id), stdout=out)
        self.assertIn(f"User {self.members[0].id}: composite", out.getvalue())


class TaskflowAPITest(TaskflowTestBase):
    """Test the HTTP surface."""

    def post_json(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type="application/json")

    def test_requires_login(self):
        task = self.make_task()
        response = self.client.get(f"/api/tasks/{task.id}/transitions")
        self.assertEqual(response.status_code, 401)

    def test_transition_endpoint(self):
        task = self.make_task()
        self.client.force_login(self.employee.user)

        response = self.post_json(f"/api/tasks/{task.id}/transition", {"to_status": "ACCEPTED"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ACCEPTED")

        response = self.post_json(f"/api/tasks/{task.id}/transition", {"to_status": "CLOSED_APPROVED"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_TRANSITION")

    def test_transition_missing_task(self):
        self.client.force_login(self.employee.user)
        response = self.post_json("/api/tasks/9999/transition", {"to_status": "ACCEPTED"})
        self.assertEqual(response.status_code, 404)

    def test_available_transitions_endpoint(self):
        task = self.make_task()
        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.IN_PROGRESS)
        self.client.force_login(self.employee.user)

        data = self.client.get(f"/api/tasks/{task.id}/transitions").json()
        self.assertEqual(data["status"], "IN_PROGRESS")
        self.assertEqual(data["transitions"], ["ACCEPTED", "COMPLETED_PENDING_REVIEW", "ON_HOLD"])
        self.assertEqual(data["requires_reason"], ["ON_HOLD"])

    def test_manager_offered_reject_with_reason(self):
        task = self.make_task()
        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.IN_PROGRESS)
        TaskWorkflowService.transition(task.id, self.employee, TaskStatus.COMPLETED_PENDING_REVIEW)
        self.client.force_login(self.manager.user)

        data = self.client.get(f"/api/tasks/{task.id}/transitions").json()
        self.assertEqual(data["transitions"], ["CLOSED_APPROVED", "REOPENED"])
        self.assertEqual(data["requires_reason"], ["REOPENED"])

    def test_carry_forward_endpoint(self):
        task = self.make_task()
        self.client.force_login(self.employee.user)
        new_day = (timezone.localdate() + timedelta(days=2)).isoformat()

        response = self.post_json(f"/api/tasks/{task.id}/carry-forward",
                                  {"new_deadline": new_day, "reason": LONG_REASON})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["carry_forward_count"], 1)

        self.client.force_login(self.manager.user)
        response = self.post_json(f"/api/tasks/{task.id}/carry-forward",
                                  {"new_deadline": new_day, "reason": LONG_REASON})
        self.assertEqual(response.status_code, 403)

    def test_score_access(self):
        self.client.force_login(self.manager.user)
        response = self.client.get(f"/api/productivity/scores/{self.employee.id}")
        self.assertEqual(response.status_code, 200)
        self.assertIn("meta", response.json())
        self.assertEqual(response.json()["meta"]["total_workdays"], 20)

        self.client.force_login(self.peer.user)
        response = self.client.get(f"/api/productivity/scores/{self.employee.id}")
        self.assertEqual(response.status_code, 403)

    def test_calculate_admin_only(self):
        self.client.force_login(self.manager.user)
        self.assertEqual(self.client.post("/api/productivity/calculate").status_code, 403)

        self.client.force_login(self.admin.user)
        response = self.client.post("/api/productivity/calculate")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"processed": 4, "errors": [], "cancelled": False})

    def test_trends_endpoint(self):
        ProductivityService.calculate_and_save_for_user(self.employee.id, self.department.id)
        self.client.force_login(self.employee.user)
        data = self.client.get("/api/productivity/trends").json()
        self.assertEqual(len(data["trends"]), 1)
        self.assertEqual(data["trends"][0]["week_start_date"], iso_week_start(timezone.now()).isoformat())

    def test_config_endpoints(self):
        self.client.force_login(self.admin.user)
        data = self.client.get("/api/productivity/config").json()
        self.assertEqual(data["configs"][0]["department_name"], "Engineering")
        self.assertEqual(data["configs"][0]["output_weight"], 0.35)

        url = f"/api/productivity/config/{self.department.id}"
        bad = {"output_weight": 0.5, "quality_weight": 0.5, "reliability_weight": 0.5, "consistency_weight": 0.5}
        response = self.client.patch(url, data=json.dumps(bad), content_type="application/json")
        self.assertEqual(response.status_code, 422)

        good = {"weekly_output_target": 12, "output_weight": 0.4, "quality_weight": 0.2,
                "reliability_weight": 0.2, "consistency_weight": 0.2}
        response = self.client.patch(url, data=json.dumps(good), content_type="application/json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["weekly_output_target"], 12)

        response = self.client.patch("/api/productivity/config/9999", data=json.dumps(good),
                                     content_type="application/json")
        self.assertEqual(response.status_code, 404)
