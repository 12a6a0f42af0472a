from django.urls import path

from .views import TaskGraphView, CheckDependenciesView

urlpatterns = [
    path('tasks/graph/', TaskGraphView.as_view(), name='task-graph'),
    path('tasks/check-dependencies/', CheckDependenciesView.as_view(), name='check-dependencies'),
]
