# backend/tasks/views.py
import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import InvalidInput, TaskGraphError
from .scheduling import to_datetime
from .serializers import (
    DependencySetSerializer,
    StatusInputSerializer,
    TaskInputSerializer,
    TaskSerializer,
    TaskUpdateSerializer,
)
from .store import TaskStore

logger = logging.getLogger(__name__)

store = TaskStore()


def error_response(exc):
    return Response(exc.as_payload(), status=exc.status_code)


def validation_error_response(errors):
    return Response(
        {"error": InvalidInput.code, "validation_errors": errors},
        status=status.HTTP_400_BAD_REQUEST,
    )


def parse_now(request):
    # optional ?now=<ISO timestamp> pins the moment of analysis
    now_str = request.query_params.get("now")
    if not now_str:
        return None
    try:
        return to_datetime(now_str.replace(" ", "+"))
    except ValueError:
        raise InvalidInput("now must be an ISO 8601 timestamp")


class TaskListCreateAPIView(APIView):
    def get(self, request):
        tasks = store.list_tasks()
        return Response(TaskSerializer(tasks, many=True).data, status=status.HTTP_200_OK)

    def post(self, request):
        if not isinstance(request.data, dict):
            return Response({"error": InvalidInput.code, "detail": "expected a JSON object"},
                            status=status.HTTP_400_BAD_REQUEST)
        ser = TaskInputSerializer(data=request.data)
        if not ser.is_valid():
            return validation_error_response(ser.errors)
        try:
            task = store.create_task(**ser.validated_data)
        except TaskGraphError as exc:
            return error_response(exc)
        return Response(TaskSerializer(task).data, status=status.HTTP_201_CREATED)


class TaskDetailAPIView(APIView):
    def get(self, request, task_id):
        try:
            task = store.get_task(task_id)
        except TaskGraphError as exc:
            return error_response(exc)
        return Response(TaskSerializer(task).data, status=status.HTTP_200_OK)

    def put(self, request, task_id):
        ser = TaskUpdateSerializer(data=request.data)
        if not ser.is_valid():
            return validation_error_response(ser.errors)
        try:
            task = store.update_task(task_id, **ser.validated_data)
        except TaskGraphError as exc:
            return error_response(exc)
        return Response(TaskSerializer(task).data, status=status.HTTP_200_OK)

    patch = put

    def delete(self, request, task_id):
        try:
            dependents = store.delete_task(task_id)
        except TaskGraphError as exc:
            return error_response(exc)
        return Response(
            {"message": "Task deleted successfully", "id": str(task_id), "released_dependents": dependents},
            status=status.HTTP_200_OK,
        )


class TaskStatusAPIView(APIView):
    def put(self, request, task_id):
        ser = StatusInputSerializer(data=request.data)
        if not ser.is_valid():
            return validation_error_response(ser.errors)
        try:
            task = store.transition_status(task_id, ser.validated_data["status"])
        except TaskGraphError as exc:
            return error_response(exc)
        return Response(TaskSerializer(task).data, status=status.HTTP_200_OK)


class TaskDependenciesAPIView(APIView):
    """
    PUT replaces the whole dependency set, POST adds to it and DELETE removes
    from it. Every variant is checked for cycles as a full proposed set.
    """

    def _handle(self, request, task_id, operation):
        ser = DependencySetSerializer(data=request.data)
        if not ser.is_valid():
            return validation_error_response(ser.errors)
        try:
            task = operation(task_id, ser.validated_data["dependencies"])
        except TaskGraphError as exc:
            return error_response(exc)
        return Response(TaskSerializer(task).data, status=status.HTTP_200_OK)

    def put(self, request, task_id):
        return self._handle(request, task_id, store.set_dependencies)

    def post(self, request, task_id):
        return self._handle(request, task_id, store.add_dependencies)

    def delete(self, request, task_id):
        return self._handle(request, task_id, store.remove_dependencies)


class AnalysisAPIView(APIView):
    def get(self, request):
        try:
            analysis = store.analyze(now=parse_now(request))
        except TaskGraphError as exc:
            return error_response(exc)
        return Response(analysis.as_dict(), status=status.HTTP_200_OK)


class LayoutAPIView(APIView):
    def get(self, request):
        try:
            layout = store.layout()
        except TaskGraphError as exc:
            return error_response(exc)
        if layout["cycle"]:
            logger.error("layout requested over a cyclic graph: %s", layout["cycle"])
        return Response(layout, status=status.HTTP_200_OK)
