from django.test import SimpleTestCase, override_settings
from django.urls import reverse
from rest_framework.test import APISimpleTestCase

from .graph import (
    analyze,
    build_graph,
    critical_path,
    decode_dependencies,
    earliest_start,
    find_cycle_conflicts,
    find_cycles,
    visualize,
    would_create_cycle,
)

# 1 depends on 2, 2 on 3, 3 on 4
CHAIN = [
    {"id": 1, "title": "A", "dependencies": [2]},
    {"id": 2, "title": "B", "dependencies": [3]},
    {"id": 3, "title": "C", "dependencies": [4]},
    {"id": 4, "title": "D", "dependencies": []},
]

# B and C depend on A, D depends on both
DIAMOND = [
    {"id": 1, "title": "A", "dependencies": []},
    {"id": 2, "title": "B", "dependencies": [1]},
    {"id": 3, "title": "C", "dependencies": [1]},
    {"id": 4, "title": "D", "dependencies": [2, 3]},
]


def make_chain(n):
    """Tasks 1..n where task i depends on task i + 1."""
    return [{"id": i, "title": f"T{i}", "dependencies": [i + 1] if i < n else []} for i in range(1, n + 1)]


def make_ladder(layers):
    """Stacked diamonds: each layer forks from one task and joins again in the next."""
    tasks = [{"id": 1, "title": "T1", "dependencies": []}]
    for k in range(layers):
        top = 3 * k + 1
        tasks.append({"id": top + 1, "title": f"T{top + 1}", "dependencies": [top]})
        tasks.append({"id": top + 2, "title": f"T{top + 2}", "dependencies": [top]})
        tasks.append({"id": top + 3, "title": f"T{top + 3}", "dependencies": [top + 1, top + 2]})
    return tasks


class GraphBuilderTests(SimpleTestCase):
    def test_builds_one_entry_per_task_in_input_order(self):
        graph = build_graph(CHAIN)
        self.assertEqual(list(graph.keys()), [1, 2, 3, 4])
        self.assertEqual(graph[1], [2])
        self.assertEqual(graph[4], [])

    def test_json_text_dependencies_are_decoded(self):
        graph = build_graph([{"id": 7, "title": "X", "dependencies": "[3, 1, 2]"}])
        self.assertEqual(graph, {7: [3, 1, 2]})

    def test_malformed_dependencies_only_affect_their_task(self):
        tasks = [
            {"id": 1, "title": "bad json", "dependencies": "[1,"},
            {"id": 2, "title": "not a list", "dependencies": {"a": 1}},
            {"id": 3, "title": "fine", "dependencies": [1, 2]},
            {"id": 4, "title": "missing"},
        ]
        with self.assertLogs("todos.graph", level="WARNING"):
            graph = build_graph(tasks)
        self.assertEqual(graph, {1: [], 2: [], 3: [1, 2], 4: []})

    def test_non_integer_ids_are_rejected(self):
        with self.assertLogs("todos.graph", level="WARNING"):
            self.assertEqual(decode_dependencies([1, "2"], 5), [])
        with self.assertLogs("todos.graph", level="WARNING"):
            self.assertEqual(decode_dependencies([True], 5), [])
        self.assertEqual(decode_dependencies(""), [])
        self.assertEqual(decode_dependencies((4, 5)), [4, 5])

    def test_bytes_blob_is_decoded(self):
        self.assertEqual(decode_dependencies(b"[2, 1]", 3), [2, 1])
        with self.assertLogs("todos.graph", level="WARNING"):
            self.assertEqual(decode_dependencies(b"\xff[", 3), [])


class CycleDetectorTests(SimpleTestCase):
    def test_closing_a_chain_is_a_cycle(self):
        graph = build_graph(CHAIN[:3])
        self.assertTrue(would_create_cycle(graph, 3, 1))

    def test_unrelated_dependency_is_not_a_cycle(self):
        graph = build_graph(CHAIN[:3])
        self.assertFalse(would_create_cycle(graph, 1, 99))

    def test_self_dependency_is_a_cycle(self):
        self.assertTrue(would_create_cycle({1: []}, 1, 1))

    def test_graph_is_not_mutated(self):
        graph = build_graph(DIAMOND)
        before = {k: list(v) for k, v in graph.items()}
        would_create_cycle(graph, 1, 4)
        find_cycle_conflicts(graph, 4, [2, 3])
        self.assertEqual(graph, before)

    def test_shared_dependencies_are_visited_once(self):
        graph = build_graph(DIAMOND)
        self.assertTrue(would_create_cycle(graph, 1, 4))
        self.assertFalse(would_create_cycle(graph, 4, 1))

    def test_keeping_an_existing_dependency_is_not_flagged(self):
        graph = build_graph(CHAIN)
        self.assertEqual(find_cycle_conflicts(graph, 2, [3]), [])

    def test_every_conflicting_dependency_is_reported(self):
        graph = build_graph(CHAIN)
        # 4 taking on 1 and 2 would loop back through the chain, 99 is harmless
        self.assertEqual(find_cycle_conflicts(graph, 4, [1, 99, 2]), [1, 2])

    def test_new_task_without_id_never_conflicts(self):
        self.assertEqual(find_cycle_conflicts(build_graph(CHAIN), None, [1, 4]), [])

    def test_find_cycles_reports_rotated_paths(self):
        graph = {1: [2], 2: [3], 3: [1], 4: [4], 5: []}
        self.assertEqual(find_cycles(graph), [[1, 2, 3, 1], [4, 4]])
        self.assertEqual(find_cycles(build_graph(DIAMOND)), [])

    def test_find_cycles_on_long_chain(self):
        graph = build_graph(make_chain(5000))
        self.assertEqual(find_cycles(graph), [])
        graph[5000] = [1]
        self.assertEqual(find_cycles(graph), [list(range(1, 5001)) + [1]])


class CriticalPathTests(SimpleTestCase):
    def test_no_edges_gives_empty_path(self):
        tasks = [{"id": 1, "title": "A"}, {"id": 2, "title": "B", "dependencies": []}]
        self.assertEqual(critical_path(build_graph(tasks), tasks), {"path": [], "length": 0})

    def test_linear_chain(self):
        result = critical_path(build_graph(CHAIN), CHAIN)
        self.assertEqual(result, {"path": [1, 2, 3, 4], "length": 3})

    def test_equal_candidates_keep_first_predecessor(self):
        tasks = [
            {"id": 1, "title": "A", "dependencies": [2, 3]},
            {"id": 2, "title": "B", "dependencies": [4]},
            {"id": 3, "title": "C", "dependencies": [4]},
            {"id": 4, "title": "D", "dependencies": []},
        ]
        self.assertEqual(critical_path(build_graph(tasks), tasks), {"path": [1, 2, 4], "length": 2})

    def test_equal_distances_end_at_smallest_id(self):
        tasks = [
            {"id": 5, "title": "E", "dependencies": [6]},
            {"id": 6, "title": "F", "dependencies": []},
            {"id": 1, "title": "A", "dependencies": [2]},
            {"id": 2, "title": "B", "dependencies": []},
        ]
        self.assertEqual(critical_path(build_graph(tasks), tasks), {"path": [1, 2], "length": 1})

    def test_long_chain(self):
        tasks = make_chain(5000)
        result = critical_path(build_graph(tasks), tasks)
        self.assertEqual(result["length"], 4999)
        self.assertEqual(result["path"], list(range(1, 5001)))

    def test_dangling_dependency_is_a_leaf(self):
        tasks = [{"id": 1, "title": "A", "dependencies": [99]}]
        self.assertEqual(critical_path(build_graph(tasks), tasks), {"path": [1, 99], "length": 1})

    def test_cyclic_graph_terminates_with_warning(self):
        tasks = [
            {"id": 1, "title": "A", "dependencies": [2]},
            {"id": 2, "title": "B", "dependencies": [1]},
        ]
        with self.assertLogs("todos.graph", level="WARNING"):
            result = critical_path(build_graph(tasks), tasks)
        self.assertEqual(result, {"path": [], "length": 0})


class EarliestStartTests(SimpleTestCase):
    def test_no_edges_all_zero(self):
        tasks = [{"id": 1, "title": "A"}, {"id": 2, "title": "B"}]
        self.assertEqual(earliest_start(build_graph(tasks), tasks), {1: 0, 2: 0})

    def test_linear_chain(self):
        self.assertEqual(earliest_start(build_graph(CHAIN), CHAIN), {1: 3, 2: 2, 3: 1, 4: 0})

    def test_diamond(self):
        self.assertEqual(earliest_start(build_graph(DIAMOND), DIAMOND), {1: 0, 2: 1, 3: 1, 4: 2})

    def test_dangling_dependency_counts_as_leaf(self):
        tasks = [{"id": 1, "title": "A", "dependencies": [42]}, {"id": 2, "title": "B", "dependencies": [1]}]
        self.assertEqual(earliest_start(build_graph(tasks), tasks), {1: 1, 2: 2})

    def test_malformed_dependencies_start_at_zero(self):
        tasks = [{"id": 1, "title": "A", "dependencies": "oops"}, {"id": 2, "title": "B", "dependencies": [1]}]
        with self.assertLogs("todos.graph", level="WARNING"):
            graph = build_graph(tasks)
        self.assertEqual(earliest_start(graph, tasks), {1: 0, 2: 1})

    def test_long_chain(self):
        tasks = make_chain(5000)
        starts = earliest_start(build_graph(tasks), tasks)
        self.assertEqual(starts[1], 4999)
        self.assertEqual(starts[5000], 0)
        self.assertEqual(starts[2500], 2500)

    def test_cyclic_graph_does_not_fail(self):
        tasks = [
            {"id": 1, "title": "A", "dependencies": [2]},
            {"id": 2, "title": "B", "dependencies": [1]},
        ]
        self.assertEqual(earliest_start(build_graph(tasks), tasks), {1: 2, 2: 1})


class VisualizationTests(SimpleTestCase):
    def test_nodes_and_edges(self):
        result = visualize(build_graph(DIAMOND), DIAMOND)
        self.assertEqual(
            result["nodes"][3],
            {"id": 4, "label": "D", "level": 2, "dependencies": [2, 3]},
        )
        self.assertEqual(result["edges"], [
            {"from": 1, "to": 2},
            {"from": 1, "to": 3},
            {"from": 2, "to": 4},
            {"from": 3, "to": 4},
        ])

    def test_levels_mirror_earliest_start_on_a_chain(self):
        graph = build_graph(CHAIN)
        levels = {n["id"]: n["level"] for n in visualize(graph, CHAIN)["nodes"]}
        self.assertEqual(levels, earliest_start(graph, CHAIN))

    def test_dangling_dependency_level(self):
        tasks = [{"id": 1, "title": "A", "dependencies": [42]}]
        result = visualize(build_graph(tasks), tasks)
        self.assertEqual(result["nodes"][0]["level"], 1)
        self.assertEqual(result["edges"], [{"from": 42, "to": 1}])

    def test_cyclic_graph_gives_approximate_levels(self):
        tasks = [
            {"id": 1, "title": "A", "dependencies": [2]},
            {"id": 2, "title": "B", "dependencies": [1]},
        ]
        levels = [n["level"] for n in visualize(build_graph(tasks), tasks)["nodes"]]
        self.assertEqual(levels, [2, 2])

    def test_no_edges_all_levels_zero(self):
        tasks = [{"id": 1, "title": "A"}, {"id": 2, "title": "B", "dependencies": []}]
        levels = [n["level"] for n in visualize(build_graph(tasks), tasks)["nodes"]]
        self.assertEqual(levels, [0, 0])

    def test_diamond_levels(self):
        levels = {n["id"]: n["level"] for n in visualize(build_graph(DIAMOND), DIAMOND)["nodes"]}
        self.assertEqual(levels, {1: 0, 2: 1, 3: 1, 4: 2})

    def test_long_chain(self):
        tasks = make_chain(5000)
        nodes = visualize(build_graph(tasks), tasks)["nodes"]
        self.assertEqual(nodes[0]["level"], 4999)
        self.assertEqual(nodes[-1]["level"], 0)

    def test_stacked_diamonds_stay_linear(self):
        tasks = make_ladder(40)
        graph = build_graph(tasks)
        levels = {n["id"]: n["level"] for n in visualize(graph, tasks)["nodes"]}
        self.assertEqual(levels[121], 80)
        self.assertEqual(levels, earliest_start(graph, tasks))

    def test_repeated_calls_are_identical(self):
        self.assertEqual(analyze(DIAMOND), analyze(DIAMOND))
        self.assertEqual(analyze(CHAIN)["critical_path"], analyze(CHAIN)["critical_path"])


class TaskGraphApiTests(APISimpleTestCase):
    def test_returns_derived_structures(self):
        resp = self.client.post(reverse("task-graph"), CHAIN[1:], format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["critical_path"], {"path": [2, 3, 4], "length": 2})
        self.assertEqual(resp.data["earliest_start"], {2: 2, 3: 1, 4: 0})
        self.assertEqual(len(resp.data["visualization"]["nodes"]), 3)

    def test_long_chain_is_served(self):
        resp = self.client.post(reverse("task-graph"), make_chain(5000), format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["critical_path"]["length"], 4999)
        self.assertEqual(resp.data["earliest_start"][1], 4999)
        self.assertEqual(resp.data["visualization"]["nodes"][0]["level"], 4999)

    def test_malformed_dependencies_do_not_fail_the_request(self):
        tasks = [{"id": 1, "title": "A", "dependencies": "not json"}, {"id": 2, "title": "B", "dependencies": "[1]"}]
        with self.assertLogs("todos.graph", level="WARNING"):
            resp = self.client.post(reverse("task-graph"), tasks, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["graph"], {1: [], 2: [1]})

    def test_cyclic_snapshot_is_rejected(self):
        tasks = [{"id": 1, "title": "A", "dependencies": [2]}, {"id": 2, "title": "B", "dependencies": [1]}]
        resp = self.client.post(reverse("task-graph"), tasks, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["cycles"], [[1, 2, 1]])

    @override_settings(TASK_GRAPH={"REJECT_CYCLIC_SNAPSHOTS": False})
    def test_cyclic_snapshot_allowed_when_configured(self):
        tasks = [{"id": 1, "title": "A", "dependencies": [2]}, {"id": 2, "title": "B", "dependencies": [1]}]
        with self.assertLogs("todos.graph", level="WARNING"):
            resp = self.client.post(reverse("task-graph"), tasks, format="json")
        self.assertEqual(resp.status_code, 200)

    def test_duplicate_ids_are_invalid(self):
        tasks = [{"id": 1, "title": "A"}, {"id": 1, "title": "B"}]
        resp = self.client.post(reverse("task-graph"), tasks, format="json")
        self.assertEqual(resp.status_code, 400)

    def test_title_is_required(self):
        resp = self.client.post(reverse("task-graph"), [{"id": 1, "title": "  "}], format="json")
        self.assertEqual(resp.status_code, 400)


class CheckDependenciesApiTests(APISimpleTestCase):
    def test_editing_with_unchanged_dependency_is_accepted(self):
        body = {"tasks": CHAIN, "task": {"id": 1, "dependencies": [2]}}
        resp = self.client.post(reverse("check-dependencies"), body, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data, {"ok": True})

    def test_closing_a_loop_is_rejected(self):
        body = {"tasks": CHAIN, "task": {"id": 4, "dependencies": [1]}}
        resp = self.client.post(reverse("check-dependencies"), body, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["conflicts"], [1])

    def test_new_task_is_accepted(self):
        body = {"tasks": CHAIN, "task": {"dependencies": [1, 4]}}
        resp = self.client.post(reverse("check-dependencies"), body, format="json")
        self.assertEqual(resp.status_code, 200)
