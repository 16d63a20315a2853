"""Task, project and task type models."""

from enum import Enum
from typing import Any, Optional
from datetime import datetime
from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class TaskStatus(str, Enum):
    """Task lifecycle status."""
    NOT_DONE = "NOT_DONE"
    ON_HOLD = "ON_HOLD"
    DONE = "DONE"


class RecurrencePattern(str, Enum):
    """Repeat pattern of a recurring creation request."""
    NONE = "NONE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class Task(BaseModel):
    """Task model - one calendar entry."""
    id: str = Field(..., description="Task ID (text)")
    title: str = Field(..., description="Task title")
    content: str = Field(default="", description="Free-text body")
    project_id: str = Field(..., description="Owning project ID")
    task_type_id: str = Field(..., description="Task type ID")
    status: TaskStatus = Field(default=TaskStatus.NOT_DONE, description="Status: NOT_DONE, ON_HOLD, DONE")
    start_at: AwareDatetime = Field(..., description="Start instant")
    end_at: Optional[AwareDatetime] = Field(None, description="End instant, never before start")
    is_major: bool = Field(default=False, description="Importance flag")
    created_at: AwareDatetime
    updated_at: AwareDatetime
    completed_at: Optional[AwareDatetime] = Field(None, description="Set while status is DONE")
    recurrence_pattern: Optional[RecurrencePattern] = None
    recurrence_group_id: Optional[str] = Field(None, description="Shared by all instances of one recurring request")
    recurrence_index: Optional[int] = Field(None, ge=0, description="Zero-based instance index")

    def model_post_init(self, __context: Any) -> None:
        """Validate that the end instant never precedes the start instant."""
        if self.end_at is not None and self.end_at < self.start_at:
            raise ValueError("end_at must not be earlier than start_at")


class Project(BaseModel):
    """Project grouping tasks."""
    id: str = Field(..., description="Project ID (text)")
    name: str = Field(..., description="Display name")
    color: str = Field(..., description="Display color (hex)")
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TaskType(BaseModel):
    """Task type (category) with display order."""
    id: str = Field(..., description="Task type ID (text)")
    name: str = Field(..., description="Display name")
    color: str = Field(..., description="Display color (hex)")
    is_default: bool = Field(default=False, description="Seeded default types cannot be deleted")
    is_active: bool = True
    order: int = Field(default=0, description="Display order")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TaskInput(BaseModel):
    """Form-level task input used by direct edits and applied agent operations."""
    title: str
    content: str = ""
    task_type_id: str
    project_id: str
    status: TaskStatus = TaskStatus.NOT_DONE
    start_at: AwareDatetime
    end_at: Optional[AwareDatetime] = None
    is_major: bool = False
    recurrence_pattern: RecurrencePattern = RecurrencePattern.NONE
    recurrence_count: int = 1

    @classmethod
    def from_task(cls, task: Task) -> "TaskInput":
        return cls(
            title=task.title,
            content=task.content,
            task_type_id=task.task_type_id,
            project_id=task.project_id,
            status=task.status,
            start_at=task.start_at,
            end_at=task.end_at,
            is_major=task.is_major,
        )


class DomainSnapshot(BaseModel):
    """Immutable view of tasks, projects and task types for one agent run."""
    model_config = ConfigDict(frozen=True)

    tasks: tuple[Task, ...] = ()
    projects: tuple[Project, ...] = ()
    task_types: tuple[TaskType, ...] = ()

    def find_task(self, task_id: str) -> Optional[Task]:
        return next((task for task in self.tasks if task.id == task_id), None)

    def project_map(self) -> dict[str, Project]:
        return {project.id: project for project in self.projects}

    def task_type_map(self) -> dict[str, TaskType]:
        return {task_type.id: task_type for task_type in self.task_types}

    def active_projects(self) -> list[Project]:
        return [project for project in self.projects if project.is_active]

    def active_task_types(self) -> list[TaskType]:
        return [task_type for task_type in self.task_types if task_type.is_active]
