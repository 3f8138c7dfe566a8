"""Task status policy: canonical statuses and the completion gate."""
from dataclasses import dataclass, field

from .exceptions import InvalidInput
from .graph import as_id, read_field

STATUS_TODO = "todo"
STATUS_IN_PROGRESS = "in_progress"
STATUS_DONE = "done"

STATUS_CHOICES = [
    (STATUS_TODO, "To do"),
    (STATUS_IN_PROGRESS, "In progress"),
    (STATUS_DONE, "Done"),
]

STATUS_ALIASES = {
    "todo": STATUS_TODO,
    "to-do": STATUS_TODO,
    "in_progress": STATUS_IN_PROGRESS,
    "in-progress": STATUS_IN_PROGRESS,
    "done": STATUS_DONE,
}


def normalize_status(value):
    key = str(value or "").strip().lower()
    if key not in STATUS_ALIASES:
        raise InvalidInput(f"unknown status {value!r}", allowed=[c[0] for c in STATUS_CHOICES])
    return STATUS_ALIASES[key]


def is_done(task):
    return str(read_field(task, "status") or "").lower() == STATUS_DONE


@dataclass
class GateResult:
    allowed: bool
    blocking: list = field(default_factory=list)


def can_complete(task, dependency_tasks):
    """
    A task may move to done only when every dependency is done.

    Reopening a dependency later does not touch dependents that are already
    done; this gate only runs on the transition into done.
    """
    blocking = [
        {
            "id": as_id(dep),
            "title": read_field(dep, "title", ""),
            "status": read_field(dep, "status"),
        }
        for dep in dependency_tasks
        if dep is not None and not is_done(dep)
    ]
    return GateResult(allowed=not blocking, blocking=blocking)
