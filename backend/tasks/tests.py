# backend/tasks/tests.py
import datetime
import threading
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.db import connections
from django.test import SimpleTestCase, TestCase, TransactionTestCase
from rest_framework.test import APITestCase

from . import graph as dag
from .exceptions import CircularDependency, IncompleteDependencies, InvalidInput, NotFound
from .logic import can_complete, normalize_status
from .models import Task
from .scheduling import analyze, earliest_start_dates, to_datetime
from .store import TaskStore

UTC = datetime.timezone.utc
NOW = datetime.datetime(2025, 1, 1, tzinfo=UTC)


def day(n):
    return NOW + datetime.timedelta(days=n)


class CycleGuardTests(SimpleTestCase):
    def setUp(self):
        self.graph = {"A": [], "B": ["A"], "C": ["B"]}

    def test_closing_edge_is_detected(self):
        self.assertTrue(dag.would_create_cycle(self.graph, "A", ["C"]))

    def test_self_dependency_is_a_cycle(self):
        self.assertTrue(dag.would_create_cycle(self.graph, "A", ["A"]))
        self.assertTrue(dag.would_create_cycle({}, "new", ["new"]))

    def test_one_bad_edge_rejects_the_whole_set(self):
        graph = dict(self.graph, D=[])
        self.assertTrue(dag.would_create_cycle(graph, "A", ["D", "C"]))

    def test_safe_edges(self):
        self.assertFalse(dag.would_create_cycle(self.graph, "C", ["A", "B"]))
        self.assertFalse(dag.would_create_cycle(self.graph, "C", []))

    def test_diamond_is_not_a_cycle(self):
        graph = {"A": [], "B": ["A"], "C": ["A"], "D": []}
        self.assertFalse(dag.would_create_cycle(graph, "D", ["B", "C"]))

    def test_unknown_ids_are_dead_ends(self):
        self.assertFalse(dag.would_create_cycle(self.graph, "C", ["ghost"]))
        graph = {"A": ["ghost"], "B": ["A"]}
        self.assertFalse(dag.would_create_cycle(graph, "B", ["A", "ghost"]))

    def test_snapshot_is_not_modified(self):
        dag.would_create_cycle(self.graph, "A", ["C"])
        self.assertEqual(self.graph, {"A": [], "B": ["A"], "C": ["B"]})

    def test_find_cycle(self):
        self.assertEqual(dag.find_cycle({"a": ["b"], "b": ["c"], "c": ["a"]}), ["a", "b", "c", "a"])
        self.assertEqual(dag.find_cycle(self.graph), [])


class GraphTraversalTests(SimpleTestCase):
    def test_build_graph_from_dicts(self):
        tasks = [
            {"id": 1, "dependencies": [2, 2, "3"]},
            {"id": 2, "dependencies": [{"id": 3}]},
            {"id": 3},
        ]
        self.assertEqual(dag.build_graph(tasks), {"1": ["2", "3"], "2": ["3"], "3": []})

    def test_topological_order(self):
        graph = {"c": ["b"], "b": ["a"], "a": [], "d": ["ghost"]}
        order = dag.topological_order(graph)
        self.assertEqual(set(order), {"a", "b", "c", "d"})
        self.assertLess(order.index("a"), order.index("b"))
        self.assertLess(order.index("b"), order.index("c"))

    def test_topological_order_terminates_on_cycle(self):
        order = dag.topological_order({"a": ["b"], "b": ["a"], "c": []})
        self.assertEqual(sorted(order), ["a", "b", "c"])

    def test_linear_chain_critical_path(self):
        graph = {"A": [], "B": ["A"], "C": ["B"], "D": ["C"]}
        self.assertEqual(dag.critical_path(graph), ["A", "B", "C", "D"])
        reversed_graph = {"D": ["C"], "C": ["B"], "B": ["A"], "A": []}
        self.assertEqual(dag.critical_path(reversed_graph), ["A", "B", "C", "D"])

    def test_longest_of_independent_chains(self):
        graph = {
            "a1": [], "a2": ["a1"],
            "b1": [], "b2": ["b1"], "b3": ["b2"], "b4": ["b3"],
        }
        self.assertEqual(dag.critical_path(graph), ["b1", "b2", "b3", "b4"])

    def test_first_found_chain_wins_ties(self):
        graph = {"x1": [], "x2": ["x1"], "y1": [], "y2": ["y1"]}
        self.assertEqual(dag.critical_path(graph), ["x1", "x2"])
        graph = {"m": [], "n": [], "o": ["m", "n"]}
        self.assertEqual(dag.critical_path(graph), ["m", "o"])

    def test_empty_graph(self):
        self.assertEqual(dag.critical_path({}), [])
        self.assertEqual(dag.assign_levels({}), {})

    def test_levels(self):
        graph = {"p": [], "q": ["p"], "r": ["q"], "s": ["q", "r"], "lonely": ["ghost"]}
        levels = dag.assign_levels(graph)
        self.assertEqual(levels, {"p": 0, "q": 1, "r": 2, "s": 3, "lonely": 0})

    def test_levels_terminate_on_cyclic_input(self):
        levels = dag.assign_levels({"a": ["b"], "b": ["a"]})
        self.assertEqual(set(levels), {"a", "b"})
        self.assertTrue(all(isinstance(v, int) and v >= 0 for v in levels.values()))
        self.assertLessEqual(len(dag.critical_path({"a": ["b"], "b": ["a"]})), 2)

    def test_layout(self):
        graph = {"A": [], "B": ["A"], "C": ["B"], "X": [], "Y": ["X", "A"]}
        layout = dag.build_layout(graph, critical_ids=["A", "B", "C"], titles={"A": "Alpha"})
        nodes = {n["id"]: n for n in layout["nodes"]}
        self.assertEqual(layout["columns"], 3)
        self.assertEqual((nodes["A"]["level"], nodes["A"]["row"]), (0, 0))
        self.assertEqual((nodes["X"]["level"], nodes["X"]["row"]), (0, 1))
        self.assertEqual((nodes["Y"]["level"], nodes["Y"]["row"]), (1, 1))
        self.assertEqual(nodes["A"]["title"], "Alpha")
        self.assertTrue(nodes["C"]["is_critical"])
        self.assertFalse(nodes["X"]["is_critical"])
        critical_edges = [(e["from"], e["to"]) for e in layout["edges"] if e["is_critical"]]
        self.assertEqual(critical_edges, [("A", "B"), ("B", "C")])
        self.assertEqual(len(layout["edges"]), 4)


class CompletionGateTests(SimpleTestCase):
    def test_all_dependencies_done(self):
        deps = [{"id": "a", "title": "A", "status": "done"}]
        result = can_complete({"id": "b"}, deps)
        self.assertTrue(result.allowed)
        self.assertEqual(result.blocking, [])

    def test_no_dependencies(self):
        self.assertTrue(can_complete({"id": "b"}, []).allowed)

    def test_blocking_dependencies_are_listed(self):
        deps = [
            {"id": "a", "title": "A", "status": "done"},
            {"id": "c", "title": "C", "status": "todo"},
            {"id": "d", "title": "D", "status": "in_progress"},
        ]
        result = can_complete({"id": "b"}, deps)
        self.assertFalse(result.allowed)
        self.assertEqual([b["id"] for b in result.blocking], ["c", "d"])
        self.assertEqual(result.blocking[0]["title"], "C")

    def test_normalize_status(self):
        self.assertEqual(normalize_status("in-progress"), "in_progress")
        self.assertEqual(normalize_status("DONE"), "done")
        with self.assertRaises(InvalidInput):
            normalize_status("finished")


class ScheduleAnalyzerTests(SimpleTestCase):
    def test_to_datetime(self):
        self.assertEqual(to_datetime(datetime.date(2025, 1, 2)), day(1))
        self.assertEqual(to_datetime("2025-01-02"), day(1))
        self.assertEqual(to_datetime(datetime.datetime(2025, 1, 2)), day(1))
        self.assertIsNone(to_datetime(None))

    def test_utc_designator(self):
        self.assertEqual(to_datetime("2025-01-02T00:00:00Z"), day(1))
        self.assertEqual(to_datetime("2025-01-02T06:00:00z"), day(1) + datetime.timedelta(hours=6))
        tasks = [
            {"id": "x", "status": "done", "due_date": "2024-12-20", "completed_at": "2025-01-06T00:00:00Z"},
            {"id": "y", "status": "todo", "due_date": "2025-02-01", "dependencies": ["x"]},
        ]
        self.assertEqual(analyze(tasks, now="2025-01-01T00:00:00Z").earliest_start["y"], day(5))

    def test_no_dependencies_start_now(self):
        tasks = [{"id": "a", "status": "todo", "due_date": datetime.date(2025, 3, 1)}]
        self.assertEqual(earliest_start_dates(tasks, now=NOW), {"a": NOW})

    def test_completed_dependency_uses_completion_time(self):
        tasks = [
            {"id": "x", "status": "done", "due_date": datetime.date(2024, 12, 20), "completed_at": day(5)},
            {"id": "y", "status": "todo", "due_date": datetime.date(2025, 2, 1), "dependencies": ["x"]},
        ]
        starts = earliest_start_dates(tasks, now=NOW)
        self.assertGreaterEqual(starts["y"], day(5))
        self.assertEqual(starts["y"], day(5))

    def test_incomplete_dependency_uses_due_date(self):
        tasks = [
            {"id": "x", "status": "in_progress", "due_date": datetime.date(2025, 1, 10)},
            {"id": "y", "status": "todo", "due_date": datetime.date(2025, 2, 1), "dependencies": ["x"]},
        ]
        self.assertEqual(earliest_start_dates(tasks, now=NOW)["y"], day(9))

    def test_done_without_completion_time_uses_due_date(self):
        tasks = [
            {"id": "x", "status": "done", "due_date": datetime.date(2025, 1, 3)},
            {"id": "y", "status": "todo", "due_date": datetime.date(2025, 2, 1), "dependencies": ["x"]},
        ]
        self.assertEqual(earliest_start_dates(tasks, now=NOW)["y"], day(2))

    def test_start_dates_propagate_through_the_chain(self):
        tasks = [
            {"id": "c", "status": "todo", "due_date": datetime.date(2025, 2, 1), "dependencies": ["b"]},
            {"id": "b", "status": "todo", "due_date": datetime.date(2025, 1, 5), "dependencies": ["a"]},
            {"id": "a", "status": "todo", "due_date": datetime.date(2025, 1, 20)},
        ]
        starts = earliest_start_dates(tasks, now=NOW)
        self.assertEqual(starts["a"], NOW)
        self.assertEqual(starts["b"], day(19))
        # one hop would give b's due date (Jan 5); a is not due until Jan 20
        self.assertEqual(starts["c"], day(19))

    def test_unknown_dependency_is_ignored(self):
        tasks = [{"id": "y", "status": "todo", "due_date": datetime.date(2025, 2, 1), "dependencies": ["ghost"]}]
        self.assertEqual(earliest_start_dates(tasks, now=NOW)["y"], NOW)

    def test_analyze_chain_duration(self):
        tasks = [
            {"id": "a", "title": "Alpha", "status": "todo", "due_date": datetime.date(2025, 1, 4)},
            {"id": "b", "title": "Beta", "status": "todo", "due_date": datetime.date(2024, 12, 30),
             "dependencies": ["a"]},
            {"id": "c", "title": "Gamma", "status": "todo", "due_date": datetime.date(2025, 1, 1),
             "dependencies": ["b"]},
            {"id": "z", "title": "Solo", "status": "todo", "due_date": datetime.date(2025, 6, 1)},
        ]
        result = analyze(tasks, now=NOW)
        self.assertEqual(result.critical_path, ["Alpha", "Beta", "Gamma"])
        self.assertEqual(result.critical_path_ids, ["a", "b", "c"])
        # 3 days + overdue (1) + due now (1)
        self.assertEqual(result.total_duration, 5)
        self.assertEqual(result.levels, {"a": 0, "b": 1, "c": 2, "z": 0})

    def test_partial_days_round_up(self):
        tasks = [{"id": "a", "title": "A", "status": "todo", "due_date": datetime.date(2025, 1, 3)}]
        result = analyze(tasks, now=NOW + datetime.timedelta(hours=12))
        self.assertEqual(result.total_duration, 2)

    def test_empty_analysis(self):
        result = analyze([], now=NOW)
        self.assertEqual(result.critical_path, [])
        self.assertEqual(result.total_duration, 0)
        self.assertEqual(result.earliest_start, {})

    def test_as_dict(self):
        tasks = [{"id": "a", "title": "A", "status": "todo", "due_date": datetime.date(2025, 1, 3)}]
        data = analyze(tasks, now=NOW).as_dict()
        self.assertEqual(data["earliest_start_dates"], {"a": NOW.isoformat()})
        self.assertEqual(data["critical_path"], ["A"])
        self.assertEqual(data["total_duration"], 2)


class TaskStoreTests(TestCase):
    def setUp(self):
        self.store = TaskStore()

    def make(self, title, deps=(), due=datetime.date(2025, 1, 10)):
        return self.store.create_task(title, due, dependencies=[d.pk for d in deps])

    def dep_ids(self, task):
        return sorted(str(pk) for pk in Task.objects.get(pk=task.pk).dependencies.values_list("pk", flat=True))

    def test_create_task_with_dependencies(self):
        a = self.make("A")
        b = self.make("B", [a])
        self.assertEqual(self.dep_ids(b), [str(a.pk)])
        self.assertEqual([t.pk for t in Task.objects.get(pk=a.pk).dependents.all()], [b.pk])
        self.assertEqual(b.status, "todo")

    def test_create_requires_title_and_due_date(self):
        with self.assertRaises(InvalidInput):
            self.store.create_task("", datetime.date(2025, 1, 1))
        with self.assertRaises(InvalidInput):
            self.store.create_task("A", None)

    def test_create_with_unknown_dependency(self):
        with self.assertRaises(NotFound):
            self.store.create_task("A", datetime.date(2025, 1, 1), dependencies=["00000000-0000-0000-0000-000000000000"])
        self.assertEqual(Task.objects.count(), 0)

    def test_same_dependency_set_twice_is_idempotent(self):
        a, b = self.make("A"), self.make("B")
        c = self.make("C")
        self.store.set_dependencies(c.pk, [a.pk, b.pk, a.pk])
        self.store.set_dependencies(c.pk, [a.pk, b.pk])
        self.assertEqual(self.dep_ids(c), sorted([str(a.pk), str(b.pk)]))
        self.assertEqual(Task.dependencies.through.objects.filter(from_task=c).count(), 2)

    def test_cycle_rejection_leaves_store_unchanged(self):
        a = self.make("A")
        b = self.make("B", [a])
        c = self.make("C", [b])
        d = self.make("D")
        self.store.set_dependencies(a.pk, [d.pk])
        before = self.store.snapshot()
        with self.assertRaises(CircularDependency) as ctx:
            self.store.set_dependencies(a.pk, [d.pk, c.pk])
        self.assertEqual(ctx.exception.code, "circular_dependency")
        self.assertEqual(self.store.snapshot(), before)
        self.assertEqual(self.dep_ids(a), [str(d.pk)])

    def test_self_dependency_rejected(self):
        a = self.make("A")
        with self.assertRaises(CircularDependency):
            self.store.set_dependencies(a.pk, [a.pk])
        self.assertEqual(self.dep_ids(a), [])

    def test_accepted_updates_keep_graph_acyclic(self):
        tasks = [self.make(f"T{i}") for i in range(5)]
        proposals = [
            (1, [0]), (2, [1]), (3, [2, 0]), (0, [3]), (4, [3]), (1, [4]), (2, [0, 1]), (0, [2]),
        ]
        for target, deps in proposals:
            try:
                self.store.set_dependencies(tasks[target].pk, [tasks[i].pk for i in deps])
            except CircularDependency:
                pass
            self.assertEqual(dag.find_cycle(self.store.snapshot()), [])

    def test_invalid_and_unknown_ids(self):
        a = self.make("A")
        with self.assertRaises(InvalidInput):
            self.store.set_dependencies(a.pk, ["not-a-uuid"])
        with self.assertRaises(InvalidInput):
            self.store.set_dependencies(a.pk, "not-a-list")
        with self.assertRaises(NotFound):
            self.store.set_dependencies(a.pk, ["00000000-0000-0000-0000-000000000000"])
        with self.assertRaises(NotFound):
            self.store.get_task("00000000-0000-0000-0000-000000000000")
        with self.assertRaises(NotFound):
            self.store.get_task("nope")

    def test_add_and_remove_dependencies(self):
        a, b, c = self.make("A"), self.make("B"), self.make("C")
        self.store.add_dependencies(c.pk, [a.pk])
        self.store.add_dependencies(c.pk, [b.pk, a.pk])
        self.assertEqual(self.dep_ids(c), sorted([str(a.pk), str(b.pk)]))
        self.store.remove_dependencies(c.pk, [a.pk])
        self.assertEqual(self.dep_ids(c), [str(b.pk)])
        with self.assertRaises(CircularDependency):
            self.store.add_dependencies(b.pk, [c.pk])

    def test_completion_is_gated(self):
        a = self.make("A")
        b = self.make("B", [a])
        with self.assertRaises(IncompleteDependencies) as ctx:
            self.store.transition_status(b.pk, "done")
        blocking = ctx.exception.extra["incomplete_dependencies"]
        self.assertEqual([x["id"] for x in blocking], [str(a.pk)])
        self.assertEqual(Task.objects.get(pk=b.pk).status, "todo")

        self.store.transition_status(b.pk, "in-progress")
        self.store.transition_status(a.pk, "done")
        b = self.store.transition_status(b.pk, "done")
        self.assertEqual(b.status, "done")
        self.assertIsNotNone(b.completed_at)

    def test_reopening_a_dependency_does_not_cascade(self):
        a = self.make("A")
        b = self.make("B", [a])
        self.store.transition_status(a.pk, "done")
        self.store.transition_status(b.pk, "done")
        a = self.store.transition_status(a.pk, "todo")
        self.assertIsNone(a.completed_at)
        self.assertEqual(Task.objects.get(pk=b.pk).status, "done")

    def test_done_task_cannot_gain_incomplete_dependency(self):
        a = self.make("A")
        b = self.make("B")
        self.store.transition_status(b.pk, "done")
        with self.assertRaises(IncompleteDependencies) as ctx:
            self.store.set_dependencies(b.pk, [a.pk])
        self.assertEqual([x["id"] for x in ctx.exception.extra["incomplete_dependencies"]], [str(a.pk)])
        with self.assertRaises(IncompleteDependencies):
            self.store.add_dependencies(b.pk, [a.pk])
        with self.assertRaises(IncompleteDependencies):
            self.store.update_task(b.pk, dependencies=[a.pk])
        self.assertEqual(self.dep_ids(b), [])
        self.assertEqual(Task.objects.get(pk=b.pk).status, "done")

        self.store.transition_status(a.pk, "done")
        self.store.set_dependencies(b.pk, [a.pk])
        self.assertEqual(self.dep_ids(b), [str(a.pk)])

    def test_reopen_and_add_dependency_in_one_update(self):
        a = self.make("A")
        b = self.make("B")
        self.store.transition_status(b.pk, "done")
        b = self.store.update_task(b.pk, status="in-progress", dependencies=[a.pk])
        self.assertEqual(b.status, "in_progress")
        self.assertIsNone(b.completed_at)
        self.assertEqual(self.dep_ids(b), [str(a.pk)])

    def test_rejected_update_rolls_back(self):
        a = self.make("A")
        b = self.make("B")
        with self.assertRaises(IncompleteDependencies):
            self.store.update_task(b.pk, title="Renamed", status="done", dependencies=[a.pk])
        b = Task.objects.get(pk=b.pk)
        self.assertEqual(b.title, "B")
        self.assertEqual(self.dep_ids(b), [])

    def test_update_fields(self):
        a = self.make("A")
        a = self.store.update_task(a.pk, title="A2", due_date=datetime.date(2025, 5, 1), description="x")
        self.assertEqual((a.title, a.due_date, a.description), ("A2", datetime.date(2025, 5, 1), "x"))

    def test_delete_cascades_edges(self):
        a, b = self.make("A"), self.make("B")
        c = self.make("C", [a, b])
        released = self.store.delete_task(a.pk)
        self.assertEqual(released, [str(c.pk)])
        self.assertEqual(self.dep_ids(c), [str(b.pk)])
        snapshot = self.store.snapshot()
        self.assertNotIn(str(a.pk), snapshot)
        self.assertTrue(all(str(a.pk) not in deps for deps in snapshot.values()))
        with self.assertRaises(NotFound):
            self.store.delete_task(a.pk)

    def test_analyze_and_layout(self):
        a = self.make("A", due=datetime.date(2025, 1, 3))
        b = self.make("B", [a], due=datetime.date(2025, 1, 2))
        self.make("Solo")
        result = self.store.analyze(now=NOW)
        self.assertEqual(result.critical_path, ["A", "B"])
        self.assertEqual(result.total_duration, 3)
        self.assertEqual(result.earliest_start[str(b.pk)], day(2))

        layout = self.store.layout()
        self.assertEqual(layout["cycle"], [])
        self.assertEqual(layout["levels"][str(b.pk)], 1)
        self.assertEqual(layout["edges"], [{"from": str(a.pk), "to": str(b.pk), "is_critical": True}])


class TaskAPITests(APITestCase):
    def create(self, title, due="2025-01-10", deps=()):
        resp = self.client.post(
            "/api/tasks/", {"title": title, "due_date": due, "dependencies": list(deps)}, format="json"
        )
        self.assertEqual(resp.status_code, 201, resp.data)
        return resp.data["id"]

    def test_create_and_fetch(self):
        a = self.create("A")
        b = self.create("B", deps=[a])
        resp = self.client.get(f"/api/tasks/{b}/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["title"], "B")
        self.assertEqual([d["id"] for d in resp.data["dependencies"]], [a])
        resp = self.client.get(f"/api/tasks/{a}/")
        self.assertEqual([d["id"] for d in resp.data["dependents"]], [b])
        self.assertEqual(len(self.client.get("/api/tasks/").data), 2)

    def test_create_validation(self):
        resp = self.client.post("/api/tasks/", {"title": "No date"}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["error"], "invalid_input")
        self.assertIn("due_date", resp.data["validation_errors"])

        resp = self.client.post("/api/tasks/", {"title": "A", "due_date": "2025-01-01", "dependencies": "x"},
                                format="json")
        self.assertEqual(resp.status_code, 400)

    def test_circular_dependency_rejected(self):
        a = self.create("A")
        b = self.create("B", deps=[a])
        resp = self.client.put(f"/api/tasks/{a}/dependencies/", {"dependencies": [b]}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["error"], "circular_dependency")
        resp = self.client.put(f"/api/tasks/{a}/", {"dependencies": [a]}, format="json")
        self.assertEqual(resp.data["error"], "circular_dependency")

    def test_dependency_endpoints(self):
        a, b = self.create("A"), self.create("B")
        c = self.create("C")
        resp = self.client.post(f"/api/tasks/{c}/dependencies/", {"dependencies": [a, b]}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.data["dependencies"]), 2)
        resp = self.client.delete(f"/api/tasks/{c}/dependencies/", {"dependencies": [a]}, format="json")
        self.assertEqual([d["id"] for d in resp.data["dependencies"]], [b])
        resp = self.client.put(f"/api/tasks/{c}/dependencies/", {"dependencies": ["bogus"]}, format="json")
        self.assertEqual(resp.data["error"], "invalid_input")

    def test_completion_gate(self):
        a = self.create("A")
        b = self.create("B", deps=[a])
        resp = self.client.put(f"/api/tasks/{b}/status/", {"status": "done"}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["error"], "incomplete_dependencies")
        self.assertEqual(resp.data["incomplete_dependencies"][0]["title"], "A")

        self.client.put(f"/api/tasks/{a}/status/", {"status": "done"}, format="json")
        resp = self.client.put(f"/api/tasks/{b}/status/", {"status": "done"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["status"], "done")
        self.assertIsNotNone(resp.data["completed_at"])

        resp = self.client.put(f"/api/tasks/{b}/status/", {"status": "archived"}, format="json")
        self.assertEqual(resp.data["error"], "invalid_input")

    def test_analysis_and_layout(self):
        a = self.create("Research topic", due="2025-01-03")
        b = self.create("Write report", due="2025-01-05", deps=[a])
        self.create("Make slides", due="2025-01-07", deps=[a, b])
        self.create("Collect data", due="2025-01-02")

        resp = self.client.get("/api/tasks/analysis/", {"now": "2025-01-01T00:00:00+00:00"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["critical_path"], ["Research topic", "Write report", "Make slides"])
        self.assertEqual(resp.data["total_duration"], 2 + 4 + 6)
        self.assertEqual(resp.data["levels"][b], 1)

        resp = self.client.get("/api/tasks/layout/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["columns"], 3)
        self.assertEqual(sum(1 for e in resp.data["edges"] if e["is_critical"]), 2)

        resp = self.client.get("/api/tasks/analysis/", {"now": "2025-01-01T00:00:00Z"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["total_duration"], 2 + 4 + 6)

        resp = self.client.get("/api/tasks/analysis/", {"now": "yesterday"})
        self.assertEqual(resp.status_code, 400)

    def test_delete(self):
        a = self.create("A")
        b = self.create("B", deps=[a])
        resp = self.client.delete(f"/api/tasks/{a}/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["released_dependents"], [b])
        resp = self.client.get(f"/api/tasks/{a}/")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data["error"], "not_found")
        self.assertEqual(self.client.get(f"/api/tasks/{b}/").data["dependencies"], [])


class SerializedMutationTests(TransactionTestCase):
    def test_opposite_edges_cannot_both_commit(self):
        store = TaskStore()
        a = store.create_task("A", datetime.date(2025, 1, 10))
        b = store.create_task("B", datetime.date(2025, 1, 10))
        outcome = {}

        def propose_reverse_edge():
            try:
                store.set_dependencies(b.pk, [a.pk])
                outcome["reverse"] = "accepted"
            except CircularDependency:
                outcome["reverse"] = "rejected"
            finally:
                connections.close_all()

        worker = threading.Thread(target=propose_reverse_edge)
        original_snapshot = TaskStore.snapshot

        def snapshot_while_racing(self):
            graph = original_snapshot(self)
            if not outcome.get("started"):
                # the competing proposal must wait until this one has committed
                outcome["started"] = True
                worker.start()
                worker.join(timeout=0.2)
                outcome["blocked"] = worker.is_alive()
            return graph

        with mock.patch.object(TaskStore, "snapshot", snapshot_while_racing):
            store.set_dependencies(a.pk, [b.pk])
            worker.join(timeout=10)

        self.assertFalse(worker.is_alive())
        self.assertTrue(outcome["blocked"])
        self.assertEqual(outcome["reverse"], "rejected")
        graph = store.snapshot()
        self.assertEqual(graph[str(a.pk)], [str(b.pk)])
        self.assertEqual(graph[str(b.pk)], [])
        self.assertEqual(dag.find_cycle(graph), [])


class SeedCommandTests(TestCase):
    def test_seed_tasks(self):
        TaskStore().create_task("Leftover", datetime.date(2025, 1, 1))
        out = StringIO()
        call_command("seed_tasks", "--clear", stdout=out)
        self.assertEqual(Task.objects.count(), 5)
        self.assertFalse(Task.objects.filter(title="Leftover").exists())
        result = TaskStore().analyze()
        self.assertEqual(result.critical_path, ["Research topic", "Write report", "Make slides"])
        self.assertIn("Seeded 5 tasks", out.getvalue())
