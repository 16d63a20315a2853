"""Persistence interface for tasks, projects and task types, plus an in-memory implementation."""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from src.models.task import Project, Task, TaskType


class TaskStore(ABC):
    """Async persistence collaborator consumed by the task service and the agent."""

    # Tasks
    @abstractmethod
    async def create_tasks(self, tasks: list[Task]) -> list[str]:
        """Insert new tasks; returns their ids in order."""

    @abstractmethod
    async def get_task(self, task_id: str) -> Optional[Task]:
        ...

    @abstractmethod
    async def put_task(self, task: Task) -> None:
        """Insert or replace a task by id."""

    @abstractmethod
    async def delete_task(self, task_id: str) -> None:
        ...

    @abstractmethod
    async def bulk_delete_tasks(self, task_ids: list[str]) -> None:
        ...

    @abstractmethod
    async def bulk_put_tasks(self, tasks: list[Task]) -> None:
        ...

    @abstractmethod
    async def list_tasks(self) -> list[Task]:
        ...

    @abstractmethod
    async def count_tasks_by(self, *, project_id: Optional[str] = None, task_type_id: Optional[str] = None) -> int:
        ...

    # Projects
    @abstractmethod
    async def list_projects(self) -> list[Project]:
        ...

    @abstractmethod
    async def get_project(self, project_id: str) -> Optional[Project]:
        ...

    @abstractmethod
    async def put_project(self, project: Project) -> None:
        ...

    @abstractmethod
    async def delete_project(self, project_id: str) -> None:
        ...

    # Task types
    @abstractmethod
    async def list_task_types(self) -> list[TaskType]:
        """All task types ordered by display order."""

    @abstractmethod
    async def get_task_type(self, task_type_id: str) -> Optional[TaskType]:
        ...

    @abstractmethod
    async def put_task_type(self, task_type: TaskType) -> None:
        ...

    @abstractmethod
    async def delete_task_type(self, task_type_id: str) -> None:
        ...


def _copies(models: Iterable):
    return [model.model_copy(deep=True) for model in models]


class InMemoryTaskStore(TaskStore):
    """Process-local store. Hands out copies so callers never alias stored records."""

    def __init__(
        self,
        tasks: Optional[list[Task]] = None,
        projects: Optional[list[Project]] = None,
        task_types: Optional[list[TaskType]] = None,
    ):
        self.tasks: dict[str, Task] = {task.id: task for task in _copies(tasks or [])}
        self.projects: dict[str, Project] = {project.id: project for project in _copies(projects or [])}
        self.task_types: dict[str, TaskType] = {
            task_type.id: task_type for task_type in _copies(task_types or [])
        }

    async def create_tasks(self, tasks: list[Task]) -> list[str]:
        for task in tasks:
            if task.id in self.tasks:
                raise ValueError(f"Task already exists: {task.id}")
        for task in _copies(tasks):
            self.tasks[task.id] = task
        return [task.id for task in tasks]

    async def get_task(self, task_id: str) -> Optional[Task]:
        task = self.tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def put_task(self, task: Task) -> None:
        self.tasks[task.id] = task.model_copy(deep=True)

    async def delete_task(self, task_id: str) -> None:
        self.tasks.pop(task_id, None)

    async def bulk_delete_tasks(self, task_ids: list[str]) -> None:
        for task_id in task_ids:
            self.tasks.pop(task_id, None)

    async def bulk_put_tasks(self, tasks: list[Task]) -> None:
        for task in _copies(tasks):
            self.tasks[task.id] = task

    async def list_tasks(self) -> list[Task]:
        return _copies(self.tasks.values())

    async def count_tasks_by(self, *, project_id: Optional[str] = None, task_type_id: Optional[str] = None) -> int:
        return sum(
            1
            for task in self.tasks.values()
            if (project_id is None or task.project_id == project_id)
            and (task_type_id is None or task.task_type_id == task_type_id)
        )

    async def list_projects(self) -> list[Project]:
        return _copies(self.projects.values())

    async def get_project(self, project_id: str) -> Optional[Project]:
        project = self.projects.get(project_id)
        return project.model_copy(deep=True) if project else None

    async def put_project(self, project: Project) -> None:
        self.projects[project.id] = project.model_copy(deep=True)

    async def delete_project(self, project_id: str) -> None:
        self.projects.pop(project_id, None)

    async def list_task_types(self) -> list[TaskType]:
        return sorted(_copies(self.task_types.values()), key=lambda task_type: task_type.order)

    async def get_task_type(self, task_type_id: str) -> Optional[TaskType]:
        task_type = self.task_types.get(task_type_id)
        return task_type.model_copy(deep=True) if task_type else None

    async def put_task_type(self, task_type: TaskType) -> None:
        self.task_types[task_type.id] = task_type.model_copy(deep=True)

    async def delete_task_type(self, task_type_id: str) -> None:
        self.task_types.pop(task_type_id, None)
