"""Recoverable rejections reported to callers as structured errors."""
from rest_framework import status


class TaskGraphError(Exception):
    code = "error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail, **extra):
        super().__init__(detail)
        self.detail = detail
        self.extra = extra

    def as_payload(self):
        payload = {"error": self.code, "detail": self.detail}
        payload.update(self.extra)
        return payload


class NotFound(TaskGraphError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, task_ids):
        if isinstance(task_ids, (list, tuple, set)):
            ids = [str(t) for t in task_ids]
        else:
            ids = [str(task_ids)]
        super().__init__("Task not found", ids=ids)


class CircularDependency(TaskGraphError):
    code = "circular_dependency"

    def __init__(self, task_id, dependency_ids):
        super().__init__(
            "Circular dependencies detected",
            task_id=str(task_id),
            dependencies=[str(d) for d in dependency_ids],
        )


class IncompleteDependencies(TaskGraphError):
    code = "incomplete_dependencies"

    def __init__(self, task_id, blocking):
        super().__init__(
            "Cannot complete this task until all dependencies are finished",
            task_id=str(task_id),
            incomplete_dependencies=blocking,
        )


class InvalidInput(TaskGraphError):
    code = "invalid_input"
