from django.http import HttpRequest
from ninja import NinjaAPI, Swagger
from ninja.security import django_auth

from .exceptions import PermissionDenied, TaskflowError
from .models import Member
from .schemas import (
    AvailableTransitionsSchema, BatchResult, CarryForwardRequestSchema, ProductivityResult,
    ScoringConfigListSchema, ScoringConfigSchema, ScoringConfigUpdateSchema, TaskStateSchema,
    TransitionRequestSchema, TrendsResponseSchema,
)
from .services import (
    AccessPolicy, ProductivityService, ScoringConfigService, TaskWorkflowService,
)
from .state_machine import transition_requires_reason

api = NinjaAPI(
    auth=django_auth,
    docs=Swagger(settings={"persistAuthorization": True}),
    urls_namespace="taskflow",
)


@api.exception_handler(TaskflowError)
def taskflow_error(request: HttpRequest, exc: TaskflowError):
    body = {"detail": str(exc)}
    result = getattr(exc, "result", None)
    if result is not None and result.code is not None:
        body["code"] = result.code.value
    return api.create_response(request, body, status=exc.status_code)


def current_member(request: HttpRequest) -> Member:
    member = Member.objects.filter(
        user=request.auth, is_active=True, deleted_at__isnull=True
    ).first()
    if member is None:
        raise PermissionDenied("No active member profile for this user")
    return member


@api.post("/tasks/{task_id}/transition", response=TaskStateSchema)
def transition_task(request: HttpRequest, task_id: int, payload: TransitionRequestSchema):
    """
    Move a task to another workflow status.
    Rejected transitions return 400 with the guard's error message and code.
    """
    actor = current_member(request)
    return TaskWorkflowService.transition(
        task_id, actor, payload.to_status,
        reason=payload.reason,
        on_hold_reason=payload.on_hold_reason,
    )


@api.get("/tasks/{task_id}/transitions", response=AvailableTransitionsSchema)
def available_transitions(request: HttpRequest, task_id: int):
    """
    List the statuses the current user can move this task to.
    Statuses that need a reason are included and repeated in `requires_reason`.
    """
    actor = current_member(request)
    task, targets = TaskWorkflowService.available_transitions(task_id, actor)
    ordered = sorted(targets, key=lambda s: s.value)
    return AvailableTransitionsSchema(
        status=task.status,
        transitions=ordered,
        requires_reason=[s for s in ordered if transition_requires_reason(task.status, s)],
    )


@api.post("/tasks/{task_id}/carry-forward", response=TaskStateSchema)
def carry_forward_task(request: HttpRequest, task_id: int, payload: CarryForwardRequestSchema):
    actor = current_member(request)
    return TaskWorkflowService.carry_forward(task_id, actor, payload.new_deadline, payload.reason)


@api.get("/productivity/scores/{user_id}", response=ProductivityResult)
def user_score(request: HttpRequest, user_id: int):
    """Live score over the trailing 28 days, with diagnostics."""
    viewer = current_member(request)
    target = ProductivityService.get_member(user_id)
    AccessPolicy.ensure_can_view(viewer, target)
    return ProductivityService.calculate_for_user(target.id, target.department_id)


@api.post("/productivity/calculate", response=BatchResult)
def calculate_all(request: HttpRequest):
    """Recalculate and store scores for every active user (admin only)."""
    AccessPolicy.ensure_admin(current_member(request))
    return ProductivityService.calculate_and_save_for_all()


@api.get("/productivity/trends", response=TrendsResponseSchema)
def trends(request: HttpRequest, user_id: int | None = None, weeks: int = 12):
    viewer = current_member(request)
    target = ProductivityService.get_member(user_id) if user_id else viewer
    AccessPolicy.ensure_can_view(viewer, target)
    weeks = max(1, min(52, weeks))
    return TrendsResponseSchema(trends=ProductivityService.get_trends(target.id, weeks))


@api.get("/productivity/config", response=ScoringConfigListSchema)
def list_scoring_configs(request: HttpRequest):
    AccessPolicy.ensure_admin(current_member(request))
    return ScoringConfigListSchema(configs=ScoringConfigService.list_configs())


@api.patch("/productivity/config/{department_id}", response=ScoringConfigSchema)
def update_scoring_config(request: HttpRequest, department_id: int, payload: ScoringConfigUpdateSchema):
    """Update a department's weights and weekly target. All four weights must sum to 1.0."""
    AccessPolicy.ensure_admin(current_member(request))
    config = ScoringConfigService.update_config(department_id, payload)
    return ScoringConfigSchema(
        department_id=config.department_id,
        department_name=config.department.name,
        weekly_output_target=config.weekly_output_target,
        output_weight=config.output_weight,
        quality_weight=config.quality_weight,
        reliability_weight=config.reliability_weight,
        consistency_weight=config.consistency_weight,
        updated_at=config.updated_at,
    )
