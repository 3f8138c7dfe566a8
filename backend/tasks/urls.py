from django.urls import path

from .views import (
    AnalysisAPIView,
    LayoutAPIView,
    TaskDependenciesAPIView,
    TaskDetailAPIView,
    TaskListCreateAPIView,
    TaskStatusAPIView,
)

urlpatterns = [
    path("", TaskListCreateAPIView.as_view(), name="task-list"),
    path("analysis/", AnalysisAPIView.as_view(), name="task-analysis"),
    path("layout/", LayoutAPIView.as_view(), name="task-layout"),
    path("<str:task_id>/", TaskDetailAPIView.as_view(), name="task-detail"),
    path("<str:task_id>/status/", TaskStatusAPIView.as_view(), name="task-status"),
    path("<str:task_id>/dependencies/", TaskDependenciesAPIView.as_view(), name="task-dependencies"),
]
