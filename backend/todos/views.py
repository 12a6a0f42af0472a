# views.py
import logging
from typing import List, Dict, Any

from django.conf import settings
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status

from .serializers import TaskSnapshotSerializer, DependencyCheckSerializer
from .graph import analyze, build_graph, find_cycles, find_cycle_conflicts

logger = logging.getLogger(__name__)

DEFAULT_TASK_GRAPH = {
    "REJECT_CYCLIC_SNAPSHOTS": True,
}


def task_graph_setting(name: str) -> Any:
    """Read a TASK_GRAPH option from Django settings, falling back to the defaults."""
    configured = getattr(settings, "TASK_GRAPH", {}) or {}
    return configured.get(name, DEFAULT_TASK_GRAPH[name])


def check_and_respond_cycles(tasks: List[Dict[str, Any]]):
    """Detect cycles and, if present, return a DRF Response with 400 and cycle details; otherwise None."""
    cycles = find_cycles(build_graph(tasks))
    if cycles:
        logger.info("Rejected task snapshot with %d cycle(s): %s", len(cycles), cycles)
        return Response({"error": "Circular dependencies detected", "cycles": cycles},
                        status=status.HTTP_400_BAD_REQUEST)
    return None


class TaskGraphView(APIView):
    """
    POST /api/tasks/graph/
    Accepts the current list of tasks and returns the adjacency map, critical
    path, earliest start of every task and the leveled visualization.
    """

    def post(self, request):
        serializer = TaskSnapshotSerializer(data=request.data, many=True)
        serializer.is_valid(raise_exception=True)
        tasks = serializer.validated_data

        if task_graph_setting("REJECT_CYCLIC_SNAPSHOTS"):
            cycle_resp = check_and_respond_cycles(tasks)
            if cycle_resp:
                return cycle_resp

        return Response(analyze(tasks), status=status.HTTP_200_OK)


class CheckDependenciesView(APIView):
    """
    POST /api/tasks/check-dependencies/
    Body: {"tasks": [...], "task": {"id": <existing id, optional>, "dependencies": [...]}}
    Answers whether the task may be saved with the given dependencies. Any
    conflicting dependency rejects the whole write.
    """

    def post(self, request):
        serializer = DependencyCheckSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        candidate = data["task"]
        graph = build_graph(data["tasks"])
        conflicts = find_cycle_conflicts(graph, candidate.get("id"), candidate["dependencies"])
        if conflicts:
            logger.info("Dependencies %s of task %s would create a cycle", conflicts, candidate.get("id"))
            return Response({"error": "Circular dependency detected", "conflicts": conflicts},
                            status=status.HTTP_400_BAD_REQUEST)
        return Response({"ok": True}, status=status.HTTP_200_OK)
