from .schemas import ValidationResult


class TaskflowError(Exception):
    """Base class for errors raised by taskflow services."""
    status_code = 400


class TaskNotFound(TaskflowError):
    status_code = 404

    def __init__(self, task_id):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class MemberNotFound(TaskflowError):
    status_code = 404

    def __init__(self, member_id):
        super().__init__(f"User {member_id} not found")
        self.member_id = member_id


class DepartmentNotFound(TaskflowError):
    status_code = 404

    def __init__(self, department_id):
        super().__init__(f"Department {department_id} not found")
        self.department_id = department_id


class PermissionDenied(TaskflowError):
    status_code = 403


class TransitionRejected(TaskflowError):
    """A status change failed validation; nothing was written."""

    def __init__(self, result: ValidationResult):
        super().__init__(result.error or "Invalid transition")
        self.result = result


class CarryForwardRejected(TaskflowError):
    pass
