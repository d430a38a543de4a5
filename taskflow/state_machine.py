"""Task workflow state machine.

Every legal ``(from, to)`` pair lives in ``TRANSITIONS`` together with the
guards that must hold for it. Guards run in table order and the first
failure is reported, so each entry lists ownership guards before role
guards before reason-length guards.

``validate_transition`` and ``list_valid_transitions`` are pure: they read
nothing but their arguments and never raise.
"""
from dataclasses import dataclass
from typing import Callable, Optional

from .models import Role, TaskStatus
from .schemas import TransitionContext, TransitionError, ValidationResult

MIN_REASON_LENGTH = 10

ELEVATED_ROLES = (Role.DEPARTMENT_HEAD, Role.ADMIN)
MANAGER_ROLES  = (Role.MANAGER, Role.DEPARTMENT_HEAD, Role.ADMIN)

Guard = Callable[[TransitionContext], Optional[ValidationResult]]

_VALID = ValidationResult(valid=True)


def _reject(code: TransitionError, error: str) -> ValidationResult:
    return ValidationResult(valid=False, error=error, code=code)


def _is_owner(ctx: TransitionContext) -> bool:
    return ctx.task_owner_id == ctx.current_user_id


def _is_manager_of_owner(ctx: TransitionContext) -> bool:
    # Department heads and admins may act on any task.
    return ctx.is_manager or ctx.current_user_role in ELEVATED_ROLES


def owner_only(action: str) -> Guard:
    def guard(ctx):
        if not _is_owner(ctx):
            return _reject(TransitionError.NOT_OWNER, f"Only task owner can {action}")
        return None
    return guard


def not_owner(verb: str) -> Guard:
    def guard(ctx):
        if _is_owner(ctx):
            return _reject(TransitionError.SELF_APPROVAL, f"Cannot {verb} your own task")
        return None
    return guard


def owner_or_manager(action: str) -> Guard:
    def guard(ctx):
        if not (_is_owner(ctx) or _is_manager_of_owner(ctx)):
            return _reject(
                TransitionError.NOT_OWNER,
                f"Only the task owner or their manager can {action}",
            )
        return None
    return guard


def roles(*allowed: Role) -> Guard:
    def guard(ctx):
        if ctx.current_user_role not in allowed:
            return _reject(
                TransitionError.ROLE_NOT_ALLOWED,
                f"Role {Role(ctx.current_user_role).value} cannot perform this transition",
            )
        return None
    return guard


def manager_of_owner(verb: str) -> Guard:
    def guard(ctx):
        if not _is_manager_of_owner(ctx):
            return _reject(TransitionError.NOT_MANAGER, f"Only the employee's manager can {verb}")
        return None
    return guard


def review_flag(required: bool) -> Guard:
    def guard(ctx):
        if required and not ctx.requires_review:
            return _reject(
                TransitionError.REVIEW_NOT_REQUIRED,
                "Task does not require review; close it directly",
            )
        if not required and ctx.requires_review:
            return _reject(
                TransitionError.REVIEW_REQUIRED,
                "Task requires review before it can be closed",
            )
        return None
    return guard


def pick_reason(*values: Optional[str]) -> Optional[str]:
    """First value that is not blank, stripped."""
    return next((v.strip() for v in values if v and v.strip()), None)


def reason_at_least(label: str, *fields: str) -> Guard:
    """Require the first non-blank of `fields` to hold a long enough reason."""
    def guard(ctx):
        text = pick_reason(*(getattr(ctx, f) for f in fields))
        if not text or len(text) < MIN_REASON_LENGTH:
            return _reject(
                TransitionError.REASON_TOO_SHORT,
                f"{label} must be at least {MIN_REASON_LENGTH} characters",
            )
        return None
    guard.checks_reason = True
    return guard


@dataclass(frozen=True)
class Transition:
    from_status: TaskStatus
    to_status: TaskStatus
    guards: tuple[Guard, ...]
    requires_reason: bool = False
    requires_manager_approval: bool = False


def _table(*transitions: Transition) -> dict[tuple[TaskStatus, TaskStatus], Transition]:
    return {(t.from_status, t.to_status): t for t in transitions}


TRANSITIONS = _table(
    Transition(
        TaskStatus.NEW, TaskStatus.ACCEPTED,
        guards=(owner_only("accept the task"),),
    ),
    # Self-assigned work may skip ACCEPTED.
    Transition(
        TaskStatus.NEW, TaskStatus.IN_PROGRESS,
        guards=(owner_only("start the task"),),
    ),
    Transition(
        TaskStatus.ACCEPTED, TaskStatus.IN_PROGRESS,
        guards=(owner_only("start the task"),),
    ),
    Transition(
        TaskStatus.IN_PROGRESS, TaskStatus.ACCEPTED,
        guards=(owner_only("undo the start of the task"),),
    ),
    Transition(
        TaskStatus.IN_PROGRESS, TaskStatus.ON_HOLD,
        guards=(
            owner_only("put task on hold"),
            reason_at_least("On-hold reason", "on_hold_reason", "reason"),
        ),
        requires_reason=True,
    ),
    Transition(
        TaskStatus.ON_HOLD, TaskStatus.IN_PROGRESS,
        guards=(owner_only("resume the task"),),
    ),
    Transition(
        TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED_PENDING_REVIEW,
        guards=(owner_only("mark task for review"), review_flag(required=True)),
    ),
    Transition(
        TaskStatus.IN_PROGRESS, TaskStatus.CLOSED_APPROVED,
        guards=(owner_only("complete the task"), review_flag(required=False)),
    ),
    Transition(
        TaskStatus.COMPLETED_PENDING_REVIEW, TaskStatus.IN_PROGRESS,
        guards=(owner_only("withdraw the task from review"),),
    ),
    Transition(
        TaskStatus.COMPLETED_PENDING_REVIEW, TaskStatus.CLOSED_APPROVED,
        guards=(not_owner("approve"), roles(*MANAGER_ROLES), manager_of_owner("approve")),
        requires_manager_approval=True,
    ),
    Transition(
        TaskStatus.COMPLETED_PENDING_REVIEW, TaskStatus.REOPENED,
        guards=(
            not_owner("reject"),
            roles(*MANAGER_ROLES),
            manager_of_owner("reject"),
            reason_at_least("Rejection reason", "reason"),
        ),
        requires_reason=True,
        requires_manager_approval=True,
    ),
    Transition(
        TaskStatus.REOPENED, TaskStatus.IN_PROGRESS,
        guards=(owner_only("resume reopened task"),),
    ),
    Transition(
        TaskStatus.CLOSED_APPROVED, TaskStatus.REOPENED,
        guards=(
            owner_or_manager("reopen a completed task"),
            reason_at_least("Reopen reason", "reason"),
        ),
        requires_reason=True,
    ),
)


def _coerce(status) -> Optional[TaskStatus]:
    try:
        return TaskStatus(status)
    except ValueError:
        return None


def _label(status) -> str:
    return status.value if isinstance(status, TaskStatus) else str(status)


def get_transition(from_status, to_status) -> Optional[Transition]:
    return TRANSITIONS.get((_coerce(from_status), _coerce(to_status)))


def _first_failure(transition: Transition, context: TransitionContext,
                   skip_reason: bool = False) -> Optional[ValidationResult]:
    for guard in transition.guards:
        if skip_reason and getattr(guard, "checks_reason", False):
            continue
        failure = guard(context)
        if failure is not None:
            return failure
    return None


def validate_transition(from_status, to_status, context: TransitionContext) -> ValidationResult:
    """Check one requested transition against the table."""
    transition = get_transition(from_status, to_status)
    if transition is None:
        return _reject(
            TransitionError.INVALID_TRANSITION,
            f"Invalid transition from {_label(from_status)} to {_label(to_status)}",
        )
    failure = _first_failure(transition, context)
    return failure if failure is not None else _VALID


def list_valid_transitions(from_status, context: TransitionContext) -> set[TaskStatus]:
    """Every target status `validate_transition` would accept right now."""
    source = _coerce(from_status)
    return {
        to_status
        for (from_, to_status) in TRANSITIONS
        if from_ == source and validate_transition(from_, to_status, context).valid
    }


def list_available_transitions(from_status, context: TransitionContext) -> set[TaskStatus]:
    """
    Targets the current user may offer as actions.
    Reason guards are skipped; the reason is collected when the action is taken.
    """
    source = _coerce(from_status)
    return {
        transition.to_status
        for (from_, _), transition in TRANSITIONS.items()
        if from_ == source and _first_failure(transition, context, skip_reason=True) is None
    }


def transition_requires_reason(from_status, to_status) -> bool:
    transition = get_transition(from_status, to_status)
    return transition.requires_reason if transition else False


def transition_requires_manager_approval(from_status, to_status) -> bool:
    transition = get_transition(from_status, to_status)
    return transition.requires_manager_approval if transition else False


def get_status_label(status) -> str:
    return TaskStatus(status).label
