# backend/tasks/scheduling.py
import datetime
import logging
import math
from dataclasses import dataclass, field

from . import graph as dag
from .logic import is_done

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def parse_timestamp(value):
    """ISO 8601 timestamp or date; a trailing "Z" means UTC."""
    value = value.strip()
    if value[-1:] in ("Z", "z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.datetime.fromisoformat(value)
    except ValueError:
        return datetime.date.fromisoformat(value)


def to_datetime(value):
    """
    Coerce a date, datetime or ISO string to an aware UTC datetime.
    Calendar dates are taken at midnight UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = parse_timestamp(value)
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value
    return datetime.datetime.combine(value, datetime.time.min, tzinfo=datetime.timezone.utc)


def _now():
    return datetime.datetime.now(datetime.timezone.utc)


def finish_estimate(task, upstream=None):
    """
    When a task is expected to be finished: its completion time once done,
    otherwise the later of its due date and ``upstream`` (the earliest it can
    start given its own dependencies).
    """
    completed_at = to_datetime(dag.read_field(task, "completed_at"))
    if is_done(task) and completed_at is not None:
        return completed_at
    candidates = [d for d in (to_datetime(dag.read_field(task, "due_date")), upstream) if d is not None]
    return max(candidates) if candidates else None


def earliest_start_dates(tasks, now=None, graph=None):
    """
    Forward pass in topological order.

    Tasks without (known) dependencies start at ``now``. Any other task starts
    at the latest finish estimate among its dependencies, and those estimates
    already include everything upstream of them.
    """
    tasks = list(tasks)
    now = _now() if now is None else to_datetime(now)
    records = {dag.as_id(t): t for t in tasks}
    if graph is None:
        graph = dag.build_graph(tasks)

    start, finish = {}, {}
    for tid in dag.topological_order(graph):
        known = [d for d in graph[tid] if d in graph]
        if not known:
            start[tid] = now
            finish[tid] = finish_estimate(records[tid])
            continue
        upstream = [finish[d] for d in known if finish.get(d) is not None]
        start[tid] = max(upstream) if upstream else now
        finish[tid] = finish_estimate(records[tid], start[tid])
    return start


def task_duration_days(task, now):
    # every task counts for at least one day, overdue ones included
    due = to_datetime(dag.read_field(task, "due_date"))
    if due is None:
        return 1
    days = math.ceil((due - now).total_seconds() / SECONDS_PER_DAY)
    return max(1, days)


def critical_path_duration(records, path_ids, now):
    return sum(task_duration_days(records[tid], now) for tid in path_ids if tid in records)


@dataclass
class ScheduleAnalysis:
    now: datetime.datetime
    earliest_start: dict = field(default_factory=dict)
    critical_path: list = field(default_factory=list)
    critical_path_ids: list = field(default_factory=list)
    total_duration: int = 0
    levels: dict = field(default_factory=dict)

    def as_dict(self):
        return {
            "now": self.now.isoformat(),
            "earliest_start_dates": {tid: d.isoformat() for tid, d in self.earliest_start.items()},
            "critical_path": list(self.critical_path),
            "critical_path_ids": list(self.critical_path_ids),
            "total_duration": self.total_duration,
            "levels": dict(self.levels),
        }


def analyze(tasks, now=None):
    """
    tasks: list of task dicts or Task instances (id, title, status, due_date,
           completed_at, dependencies)
    returns: ScheduleAnalysis
    """
    tasks = list(tasks)
    now = _now() if now is None else to_datetime(now)
    records = {dag.as_id(t): t for t in tasks}

    graph = dag.build_graph(tasks)
    chains = dag.longest_chains(graph)
    path_ids = dag.critical_path(graph, chains)

    analysis = ScheduleAnalysis(
        now=now,
        earliest_start=earliest_start_dates(tasks, now=now, graph=graph),
        critical_path=[dag.read_field(records[tid], "title", tid) for tid in path_ids],
        critical_path_ids=path_ids,
        total_duration=critical_path_duration(records, path_ids, now),
        levels=dag.assign_levels(graph, chains),
    )
    logger.debug(
        "analyzed %d task(s): critical path of %d task(s), %d day(s)",
        len(tasks), len(path_ids), analysis.total_duration,
    )
    return analysis
