# backend/tasks/graph.py
"""
Pure functions over a dependency graph snapshot.

A snapshot is an ordered mapping ``{task_id: [dependency_id, ...]}`` where an
edge ``A -> B`` means "A depends on B". Every function here treats ids that
are not keys of the snapshot as dead ends, never as errors.
"""
import logging
from collections import deque

logger = logging.getLogger(__name__)


def read_field(record, key, default=None):
    """Read ``key`` from a mapping or an object (model instance)."""
    if record is None:
        return default
    if isinstance(record, dict):
        return record.get(key, default)
    return getattr(record, key, default)


def as_id(value):
    if isinstance(value, dict):
        value = value.get("id")
    else:
        value = getattr(value, "pk", value)
    return str(value)


def _dependency_records(task):
    deps = read_field(task, "dependencies") or []
    # related managers (model instances) need .all()
    if hasattr(deps, "all"):
        deps = deps.all()
    return deps


def build_graph(tasks):
    """
    tasks: iterable of task dicts or Task instances
    returns: {task_id: [dependency ids, duplicates removed, order kept]}
    """
    graph = {}
    for t in tasks:
        deps = []
        for dep in _dependency_records(t):
            dep_id = as_id(dep)
            if dep_id not in deps:
                deps.append(dep_id)
        graph[as_id(t)] = deps
    return graph


# --- Cycle guard ---
def would_create_cycle(graph, task_id, candidate_ids):
    """
    Return True if replacing ``task_id``'s dependencies with ``candidate_ids``
    would leave a directed cycle reachable from ``task_id``.

    ``candidate_ids`` is the full proposed set, not a delta. A task listed as
    its own dependency is reported like any other cycle.
    """
    task_id = str(task_id)
    proposed = dict(graph)
    proposed[task_id] = [str(d) for d in candidate_ids]

    visited = set()
    on_stack = {task_id}
    stack = [(task_id, iter(proposed[task_id]))]
    while stack:
        node, deps = stack[-1]
        descended = False
        for dep in deps:
            if dep in on_stack:
                logger.debug("back-edge %s -> %s while checking %s", node, dep, task_id)
                return True
            if dep in visited or dep not in proposed:
                continue
            on_stack.add(dep)
            stack.append((dep, iter(proposed[dep])))
            descended = True
            break
        if not descended:
            stack.pop()
            on_stack.discard(node)
            visited.add(node)
    return False


def find_cycle(graph):
    """
    Return the first cycle found in ``graph`` as ``[a, b, ..., a]``, or ``[]``
    when the snapshot is acyclic.
    """
    visited = set()
    for root in graph:
        if root in visited:
            continue
        path = [root]
        on_path = {root}
        stack = [iter(graph[root])]
        while stack:
            descended = False
            for dep in stack[-1]:
                if dep in on_path:
                    cycle = path[path.index(dep):] + [dep]
                    logger.warning("cycle found in dependency graph: %s", cycle)
                    return cycle
                if dep in visited or dep not in graph:
                    continue
                path.append(dep)
                on_path.add(dep)
                stack.append(iter(graph[dep]))
                descended = True
                break
            if not descended:
                stack.pop()
                done = path.pop()
                on_path.discard(done)
                visited.add(done)
    return []


def topological_order(graph):
    """Dependencies before dependents, stable with respect to snapshot order."""
    indegree = {tid: 0 for tid in graph}
    dependents = {tid: [] for tid in graph}
    for tid, deps in graph.items():
        for dep in deps:
            if dep in graph:
                indegree[tid] += 1
                dependents[dep].append(tid)

    queue = deque(tid for tid, n in indegree.items() if n == 0)
    order = []
    while queue:
        node = queue.popleft()
        order.append(node)
        for child in dependents[node]:
            indegree[child] -= 1
            if indegree[child] == 0:
                queue.append(child)

    if len(order) != len(graph):
        placed = set(order)
        leftover = [tid for tid in graph if tid not in placed]
        logger.warning("dependency graph is not acyclic; %d task(s) left unordered", len(leftover))
        order.extend(leftover)
    return order


# --- Longest chains (shared by critical path and levels) ---
def longest_chains(graph):
    """
    For every task, the length (in tasks) of the longest dependency chain
    ending at it, and the predecessor on that chain.

    returns: {task_id: (length, predecessor_id or None)}

    Memoised depth-first search with an explicit stack. Roots are taken in
    snapshot order and dependencies in list order; a later chain only wins
    when strictly longer, so the first chain found wins ties. A dependency
    that is still being computed (malformed cyclic input) counts as a chain
    of one with no predecessor.
    """
    chains = {}
    in_progress = set()
    for root in graph:
        if root in chains:
            continue
        in_progress.add(root)
        # frame: [node, dependency iterator, best length, best predecessor]
        stack = [[root, iter(graph[root]), 1, None]]
        while stack:
            frame = stack[-1]
            descended = False
            for dep in frame[1]:
                if dep not in graph:
                    continue
                if dep in chains:
                    length, pred = chains[dep][0] + 1, dep
                elif dep in in_progress:
                    length, pred = 2, None
                else:
                    in_progress.add(dep)
                    stack.append([dep, iter(graph[dep]), 1, None])
                    descended = True
                    break
                if length > frame[2]:
                    frame[2], frame[3] = length, pred
            if descended:
                continue
            stack.pop()
            node, length, pred = frame[0], frame[2], frame[3]
            in_progress.discard(node)
            chains[node] = (length, pred)
            if stack:
                parent = stack[-1]
                if length + 1 > parent[2]:
                    parent[2], parent[3] = length + 1, node
    return chains


def critical_path(graph, chains=None):
    """Longest chain by task count, most upstream task first."""
    if chains is None:
        chains = longest_chains(graph)
    end, best = None, 0
    for tid in graph:
        if chains[tid][0] > best:
            end, best = tid, chains[tid][0]

    path = []
    seen = set()
    while end is not None and end not in seen:
        seen.add(end)
        path.append(end)
        end = chains[end][1]
    path.reverse()
    return path


def assign_levels(graph, chains=None):
    """0 for tasks without dependencies, else 1 + the deepest dependency's level."""
    if chains is None:
        chains = longest_chains(graph)
    return {tid: chains[tid][0] - 1 for tid in graph}


def build_layout(graph, critical_ids=(), levels=None, titles=None):
    """
    Place tasks into level columns for drawing.

    Nodes carry their level, their row inside the level column (snapshot
    order) and whether they sit on the critical path. An edge is critical
    when its two ends are consecutive on the critical path.
    """
    if levels is None:
        levels = assign_levels(graph)
    titles = titles or {}
    position = {tid: idx for idx, tid in enumerate(critical_ids)}

    rows = {}
    nodes = []
    for tid in graph:
        level = levels.get(tid, 0)
        row = rows.get(level, 0)
        rows[level] = row + 1
        nodes.append({
            "id": tid,
            "title": titles.get(tid, tid),
            "level": level,
            "row": row,
            "is_critical": tid in position,
        })

    edges = []
    for tid, deps in graph.items():
        for dep in deps:
            if dep not in graph:
                continue
            is_critical = (
                dep in position and tid in position and position[tid] == position[dep] + 1
            )
            edges.append({"from": dep, "to": tid, "is_critical": is_critical})

    return {
        "levels": dict(levels),
        "columns": (max(rows) + 1) if rows else 0,
        "nodes": nodes,
        "edges": edges,
    }
