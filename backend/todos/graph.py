"""Task dependency graph utilities.

Contains utilities for:
- decoding the dependency ids stored on a task,
- building the adjacency map (task id -> dependency ids),
- checking whether a new dependency edge would close a cycle,
- computing the critical path (longest dependency chain),
- computing the earliest start step of every task,
- generating leveled node/edge data for rendering the graph.

Every function here is pure: it reads a snapshot of tasks and returns fresh
structures. Bad dependency data on one task never aborts the computation for
the others; it is logged and treated as "no dependencies".
"""

import json
import logging
from collections import deque
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

logger = logging.getLogger(__name__)

TaskGraph = Dict[int, List[int]]

_DONE = object()    # exhausted-iterator marker for the explicit DFS stacks


def decode_dependencies(raw: Any, task_id: Optional[int] = None) -> List[int]:
    """Normalize a task's raw dependency data to an ordered list of ids.

    Accepts:
      - None / empty string -> []
      - list or tuple of ints -> copied as a list, order kept
      - JSON text (str or bytes) encoding such a list
    Anything else is logged and treated as [].
    """
    if raw is None:
        return []
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        if not raw.strip():
            return []
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            logger.warning("Error parsing dependencies for task %s: %s", task_id, exc)
            return []

    if not isinstance(raw, (list, tuple)):
        logger.warning("Dependencies for task %s are not a list: %r", task_id, raw)
        return []
    # bool is an int subclass but never a valid id
    if any(isinstance(d, bool) or not isinstance(d, int) for d in raw):
        logger.warning("Dependencies for task %s contain non-integer ids: %r", task_id, raw)
        return []
    return list(raw)


def build_graph(tasks: Sequence[Mapping[str, Any]]) -> TaskGraph:
    """Build the adjacency map of the snapshot.

    Args:
        tasks: sequence of task dictionaries, each with an 'id' and an optional
               'dependencies' entry (list of ids or a JSON-encoded list).

    Returns:
        Dict keyed by task id, in input order, whose values are the ids that
        task depends on.
    """
    graph: TaskGraph = {}
    for t in tasks:
        tid = t["id"]
        graph[tid] = decode_dependencies(t.get("dependencies"), tid)
    return graph


def would_create_cycle(graph: Mapping[int, Sequence[int]], dependent: int, dependency: int) -> bool:
    """Return True if adding the edge ``dependent -> dependency`` closes a cycle.

    Walks breadth-first from ``dependency`` along the existing dependencies;
    reaching ``dependent`` means the new edge would loop back. Ids missing
    from ``graph`` have no dependencies. ``graph`` is not modified.
    """
    queue = deque([dependency])
    visited: Set[int] = set()

    while queue:
        current = queue.popleft()
        if current == dependent:
            return True
        if current in visited:
            continue
        visited.add(current)
        queue.extend(graph.get(current, ()))
    return False


def without_task_edges(graph: Mapping[int, Sequence[int]], task_id: int) -> TaskGraph:
    """Copy of ``graph`` with ``task_id``'s own dependency list emptied."""
    trimmed = {tid: list(deps) for tid, deps in graph.items()}
    if task_id in trimmed:
        trimmed[task_id] = []
    return trimmed


def find_cycle_conflicts(graph: Mapping[int, Sequence[int]],
                         task_id: Optional[int],
                         dependency_ids: Iterable[int]) -> List[int]:
    """Check every dependency a created or edited task declares.

    The task's previously stored edges are removed first, so keeping an
    existing dependency is never reported. Returns the offending dependency
    ids in declaration order; the write may only be committed when the
    result is empty.
    """
    base = without_task_edges(graph, task_id)
    conflicts: List[int] = []
    for dep in dependency_ids:
        if dep not in conflicts and would_create_cycle(base, task_id, dep):
            conflicts.append(dep)
    return conflicts


def find_cycles(graph: Mapping[int, Sequence[int]]) -> List[List[int]]:
    """Detect cycles already present in the graph.

    Returns:
        A list of cycles. Each cycle is the closed path of ids rotated to start
        at its smallest id (e.g. [4, 4] for a self-dependency, or [1, 2, 3, 1]
        for a 3-node cycle).
    """
    visited: Set[int] = set()         # nodes already expanded
    cycles: List[List[int]] = []
    seen_cycles: set = set()

    def record(cycle: List[int]) -> None:
        min_idx = min(range(len(cycle) - 1), key=lambda i: cycle[i])
        ordered = cycle[min_idx:-1] + cycle[:min_idx] + [cycle[min_idx]]
        key = tuple(ordered)
        if key not in seen_cycles:
            seen_cycles.add(key)
            cycles.append(ordered)

    for root in graph:
        if root in visited:
            continue
        # explicit DFS so that long chains do not hit the recursion limit
        visited.add(root)
        path: List[int] = [root]
        position: Dict[int, int] = {root: 0}     # node -> index in path
        frames = [iter(graph.get(root, ()))]

        while frames:
            dep = next(frames[-1], _DONE)
            if dep is _DONE:
                frames.pop()
                del position[path.pop()]
            elif dep in position:
                record(path[position[dep]:] + [dep])
            elif dep not in visited:
                visited.add(dep)
                position[dep] = len(path)
                path.append(dep)
                frames.append(iter(graph.get(dep, ())))

    return cycles


def critical_path(graph: Mapping[int, Sequence[int]],
                  tasks: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """Longest dependency chain of the snapshot, measured in edges.

    Tasks nothing depends on are processed first; distances are pushed down
    their dependencies in topological order. Equal candidate distances keep
    the first predecessor processed. When several ids share the maximum
    distance, the smallest id ends the path.

    Returns:
        {"path": [...], "length": n}. ``path`` starts at the task that began
        the chain and ends at its deepest dependency. Both are empty/0 when the
        graph has no edges.
    """
    in_degree: Dict[int, int] = {}
    distance: Dict[int, int] = {}
    predecessor: Dict[int, int] = {}

    for t in tasks:
        in_degree[t["id"]] = 0
        distance[t["id"]] = 0

    for deps in graph.values():
        for dep in deps:
            in_degree[dep] = in_degree.get(dep, 0) + 1

    queue = deque(t["id"] for t in tasks if in_degree[t["id"]] == 0)
    processed = 0

    while queue:
        current = queue.popleft()
        processed += 1
        for dep in graph.get(current, ()):
            candidate = distance[current] + 1
            if candidate > distance.get(dep, 0):
                distance[dep] = candidate
                predecessor[dep] = current
            in_degree[dep] -= 1
            if in_degree[dep] == 0:
                queue.append(dep)

    if processed < len(in_degree):
        stuck = [tid for tid, deg in in_degree.items() if deg > 0]
        logger.warning("Critical path computed over a cyclic graph; unprocessed tasks: %s", stuck)

    length = max(distance.values(), default=0)
    end: Optional[int] = None
    if length > 0:
        end = min(tid for tid, dist in distance.items() if dist == length)

    path: List[int] = []
    current = end
    while current is not None:
        path.append(current)
        current = predecessor.get(current)
    path.reverse()

    return {"path": path, "length": length}


def earliest_start(graph: Mapping[int, Sequence[int]],
                   tasks: Sequence[Mapping[str, Any]]) -> Dict[int, int]:
    """Minimum number of sequential steps before each task can begin.

    A task without dependencies starts at 0; otherwise one step after its
    latest dependency. Each id is computed once per call: the visited set and
    the memo persist across all tasks, so shared sub-dependencies are not
    recomputed. Unknown dependency ids count as 0.
    """
    memo: Dict[int, int] = {}
    visited: Set[int] = set()

    for t in tasks:
        if t["id"] in visited:
            continue
        visited.add(t["id"])
        # post-order walk; each frame is [task id, dependency iterator, start so far]
        stack = [[t["id"], iter(graph.get(t["id"], ())), 0]]

        while stack:
            frame = stack[-1]
            dep = next(frame[1], _DONE)
            if dep is _DONE:
                stack.pop()
                memo[frame[0]] = frame[2]
                if stack:
                    stack[-1][2] = max(stack[-1][2], frame[2] + 1)
            elif dep in visited:
                # still in progress only when the snapshot is cyclic
                frame[2] = max(frame[2], memo.get(dep, 0) + 1)
            else:
                visited.add(dep)
                stack.append([dep, iter(graph.get(dep, ())), 0])

    return {t["id"]: memo.get(t["id"], 0) for t in tasks}


def _task_level(graph: Mapping[int, Sequence[int]], task_id: int, memo: Dict[int, int]) -> int:
    """Level of one task with a cycle guard local to the current path.

    A dependency already on the path counts as level 0. Levels of nodes whose
    walk never met such a dependency do not depend on the path, so they are
    kept in ``memo`` and reused for the rest of the ``visualize`` call.
    """
    if task_id in memo:
        return memo[task_id]

    on_path: Set[int] = {task_id}
    # frame: [task id, dependency iterator, level so far, met a node on the path]
    stack = [[task_id, iter(graph.get(task_id, ())), 0, False]]
    level = 0

    while stack:
        frame = stack[-1]
        dep = next(frame[1], _DONE)
        if dep is _DONE:
            stack.pop()
            on_path.discard(frame[0])
            level = frame[2]
            if not frame[3]:
                memo[frame[0]] = level
            if stack:
                parent = stack[-1]
                parent[2] = max(parent[2], level + 1)
                parent[3] = parent[3] or frame[3]
        elif dep in on_path:
            frame[2] = max(frame[2], 1)
            frame[3] = True
        elif dep in memo:
            frame[2] = max(frame[2], memo[dep] + 1)
        else:
            on_path.add(dep)
            stack.append([dep, iter(graph.get(dep, ())), 0, False])

    return level


def visualize(graph: Mapping[int, Sequence[int]],
              tasks: Sequence[Mapping[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Generate node and edge data for rendering the dependency graph.

    A node's level is the longest dependency chain ending at it. Levels are
    computed per task with a path-local cycle guard, so a cyclic snapshot
    yields approximate levels instead of an error. The level cache is
    separate from the one ``earliest_start`` uses and lives for this call only.
    Edges run from the dependency to the dependent.
    """
    nodes: List[Dict[str, Any]] = []
    edges: List[Dict[str, int]] = []
    levels: Dict[int, int] = {}

    for t in tasks:
        tid = t["id"]
        deps = list(graph.get(tid, ()))
        nodes.append({
            "id": tid,
            "label": t.get("title", ""),
            "level": _task_level(graph, tid, levels),
            "dependencies": deps,
        })
        for dep in deps:
            edges.append({"from": dep, "to": tid})

    return {"nodes": nodes, "edges": edges}


def analyze(tasks: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """Build the graph once and compute every derived structure for a snapshot."""
    graph = build_graph(tasks)
    return {
        "graph": graph,
        "critical_path": critical_path(graph, tasks),
        "earliest_start": earliest_start(graph, tasks),
        "visualization": visualize(graph, tasks),
    }


# -----------------------
# Quick manual check helper (run directly for ad-hoc checks)
# -----------------------
if __name__ == "__main__":
    sample = [
        {"id": 1, "title": "Ship release", "dependencies": [2, 3]},
        {"id": 2, "title": "Write docs", "dependencies": "[4]"},
        {"id": 3, "title": "Fix bugs", "dependencies": [4]},
        {"id": 4, "title": "Freeze features", "dependencies": None},
    ]
    report = analyze(sample)
    print("Critical path:", report["critical_path"])
    print("Earliest start:", report["earliest_start"])
    print("Would 4 -> 1 create a cycle?", would_create_cycle(report["graph"], 4, 1))
