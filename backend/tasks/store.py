# backend/tasks/store.py
"""
Task storage on top of the ORM.

Graph functions in ``graph.py`` and ``scheduling.py`` only ever see
snapshots built here. Every mutation that can change dependency edges or
completion state runs as read snapshot -> validate -> write under one
process-wide lock and one transaction, so two proposals cannot each pass the
cycle check and together close a cycle.
"""
import logging
import threading
import uuid

from django.db import transaction
from django.utils import timezone

from . import graph as dag
from . import scheduling
from .exceptions import CircularDependency, IncompleteDependencies, InvalidInput, NotFound
from .logic import STATUS_DONE, can_complete, normalize_status
from .models import Task

logger = logging.getLogger(__name__)

_MUTATION_LOCK = threading.RLock()


def _clean_ids(ids):
    """Validate a collection of task ids; returns unique str ids, order kept."""
    if ids is None:
        return []
    if isinstance(ids, (str, bytes, dict)) or not hasattr(ids, "__iter__"):
        raise InvalidInput("dependencies must be a list of task ids")
    cleaned = []
    for raw in ids:
        try:
            value = str(uuid.UUID(str(raw)))
        except (TypeError, ValueError, AttributeError):
            raise InvalidInput(f"invalid task id {raw!r}")
        if value not in cleaned:
            cleaned.append(value)
    return cleaned


class TaskStore:

    def queryset(self):
        return Task.objects.prefetch_related("dependencies", "dependents")

    def list_tasks(self):
        return list(self.queryset())

    def get_task(self, task_id):
        try:
            return self.queryset().get(pk=uuid.UUID(str(task_id)))
        except (ValueError, Task.DoesNotExist):
            raise NotFound(task_id)

    def snapshot(self):
        return dag.build_graph(self.list_tasks())

    def _require_existing(self, ids):
        found = {str(pk) for pk in Task.objects.filter(pk__in=ids).values_list("pk", flat=True)}
        missing = [i for i in ids if i not in found]
        if missing:
            raise NotFound(missing)

    # --- creation / deletion ---
    def create_task(self, title, due_date, description="", dependencies=None, status=None):
        """No cycle check: nothing existing can depend on a brand-new id."""
        if not title or not str(title).strip():
            raise InvalidInput("title is required")
        if due_date is None:
            raise InvalidInput("due_date is required")
        dependency_ids = _clean_ids(dependencies)
        with transaction.atomic():
            self._require_existing(dependency_ids)
            task = Task.objects.create(
                title=str(title).strip(),
                description=description or "",
                due_date=due_date,
            )
            if dependency_ids:
                task.dependencies.set(dependency_ids)
            if status is not None:
                self._apply_status(task, normalize_status(status))
                task.save()
        logger.info("created task %s (%s) with %d dependencies", task.pk, task.title, len(dependency_ids))
        return self.get_task(task.pk)

    def delete_task(self, task_id):
        with _MUTATION_LOCK, transaction.atomic():
            task = self.get_task(task_id)
            dependents = [str(pk) for pk in task.dependents.values_list("pk", flat=True)]
            # join rows on both sides go with the task
            task.delete()
        logger.info("deleted task %s; removed it from %d dependent(s)", task_id, len(dependents))
        return dependents

    # --- dependency edges ---
    def _commit_dependencies(self, task, dependency_ids, stays_done=None):
        """
        Cycle-check and write a full dependency set. A task that is (and
        stays) done may only depend on tasks that are done.
        """
        self._require_existing(dependency_ids)
        if stays_done is None:
            stays_done = task.status == STATUS_DONE
        if stays_done:
            result = can_complete(task, list(Task.objects.filter(pk__in=dependency_ids)))
            if not result.allowed:
                logger.warning(
                    "rejected dependencies for done task %s: %d incomplete",
                    task.pk, len(result.blocking),
                )
                raise IncompleteDependencies(task.pk, result.blocking)
        graph = self.snapshot()
        if dag.would_create_cycle(graph, task.pk, dependency_ids):
            logger.warning("rejected dependencies %s for task %s: cycle", dependency_ids, task.pk)
            raise CircularDependency(task.pk, dependency_ids)
        task.dependencies.set(dependency_ids)

    def set_dependencies(self, task_id, dependency_ids):
        """Replace the full dependency set; all-or-nothing."""
        dependency_ids = _clean_ids(dependency_ids)
        with _MUTATION_LOCK, transaction.atomic():
            task = self.get_task(task_id)
            self._commit_dependencies(task, dependency_ids)
        logger.info("task %s now depends on %s", task.pk, dependency_ids)
        return self.get_task(task.pk)

    def add_dependencies(self, task_id, dependency_ids):
        dependency_ids = _clean_ids(dependency_ids)
        with _MUTATION_LOCK:
            task = self.get_task(task_id)
            current = [str(d.pk) for d in task.dependencies.all()]
            return self.set_dependencies(task_id, current + [d for d in dependency_ids if d not in current])

    def remove_dependencies(self, task_id, dependency_ids):
        dependency_ids = _clean_ids(dependency_ids)
        with _MUTATION_LOCK:
            task = self.get_task(task_id)
            current = [str(d.pk) for d in task.dependencies.all()]
            return self.set_dependencies(task_id, [d for d in current if d not in dependency_ids])

    # --- status ---
    def _apply_status(self, task, new_status):
        if new_status == STATUS_DONE:
            if task.status != STATUS_DONE:
                result = can_complete(task, list(task.dependencies.all()))
                if not result.allowed:
                    logger.warning(
                        "blocked completion of task %s: %d incomplete dependencies",
                        task.pk, len(result.blocking),
                    )
                    raise IncompleteDependencies(task.pk, result.blocking)
                task.completed_at = timezone.now()
        else:
            # reopening never cascades to dependents that are already done
            task.completed_at = None
        task.status = new_status

    def transition_status(self, task_id, new_status):
        new_status = normalize_status(new_status)
        with _MUTATION_LOCK, transaction.atomic():
            task = self.get_task(task_id)
            previous = task.status
            self._apply_status(task, new_status)
            task.save(update_fields=["status", "completed_at", "updated_at"])
        logger.info("task %s status %s -> %s", task.pk, previous, new_status)
        return self.get_task(task.pk)

    def update_task(self, task_id, title=None, description=None, due_date=None, status=None, dependencies=None):
        """
        Apply field, dependency and status changes as one step. Dependencies
        are committed first so completion is judged against the new set; any
        rejection rolls the whole update back.
        """
        if status is not None:
            status = normalize_status(status)
        if dependencies is not None:
            dependencies = _clean_ids(dependencies)
        if title is not None and not str(title).strip():
            raise InvalidInput("title must not be empty")

        with _MUTATION_LOCK, transaction.atomic():
            task = self.get_task(task_id)
            if dependencies is not None:
                stays_done = task.status == STATUS_DONE and status in (None, STATUS_DONE)
                self._commit_dependencies(task, dependencies, stays_done=stays_done)
                task = self.get_task(task.pk)
            if status is not None:
                self._apply_status(task, status)
            if title is not None:
                task.title = str(title).strip()
            if description is not None:
                task.description = description
            if due_date is not None:
                task.due_date = due_date
            task.save()
        logger.info("updated task %s", task.pk)
        return self.get_task(task.pk)

    # --- analysis ---
    def analyze(self, now=None):
        return scheduling.analyze(self.list_tasks(), now=now)

    def layout(self):
        tasks = self.list_tasks()
        graph = dag.build_graph(tasks)
        chains = dag.longest_chains(graph)
        layout = dag.build_layout(
            graph,
            critical_ids=dag.critical_path(graph, chains),
            levels=dag.assign_levels(graph, chains),
            titles={str(t.pk): t.title for t in tasks},
        )
        layout["cycle"] = dag.find_cycle(graph)
        return layout
