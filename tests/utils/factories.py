"""Test data factories using Faker."""

from faker import Faker
from typing import Optional
from datetime import datetime, timedelta, timezone

from src.models.task import Project, Task, TaskStatus, TaskType
from src.services.task_service import generate_id
from src.utils.constants import DEFAULT_PROJECT_ID

fake = Faker()

BASE_TIME = datetime(2026, 2, 11, 9, 0, tzinfo=timezone.utc)


def create_task(
    task_id: Optional[str] = None,
    title: Optional[str] = None,
    start_at: Optional[datetime] = None,
    end_at: Optional[datetime] = None,
    status: TaskStatus = TaskStatus.NOT_DONE,
    project_id: str = DEFAULT_PROJECT_ID,
    task_type_id: str = "type-write",
    updated_at: Optional[datetime] = None,
    **overrides
) -> Task:
    """Create a test task; defaults to a one-hour slot at BASE_TIME."""
    start_at = start_at or BASE_TIME
    return Task(
        id=task_id or generate_id("task"),
        title=title or fake.sentence(nb_words=3).rstrip("."),
        content=overrides.pop("content", fake.text(max_nb_chars=80)),
        project_id=project_id,
        task_type_id=task_type_id,
        status=status,
        start_at=start_at,
        end_at=end_at if end_at is not None else start_at + timedelta(hours=1),
        is_major=overrides.pop("is_major", False),
        created_at=BASE_TIME - timedelta(days=1),
        updated_at=updated_at or BASE_TIME - timedelta(days=1),
        **overrides
    )


def create_project(project_id: Optional[str] = None, name: Optional[str] = None, is_active: bool = True) -> Project:
    return Project(
        id=project_id or generate_id("project"),
        name=name or fake.company(),
        color=fake.hex_color(),
        is_active=is_active,
    )


def create_task_type(task_type_id: Optional[str] = None, name: Optional[str] = None,
                     is_active: bool = True, order: int = 10) -> TaskType:
    return TaskType(
        id=task_type_id or generate_id("type"),
        name=name or fake.word().capitalize(),
        color=fake.hex_color(),
        is_active=is_active,
        order=order,
    )


def create_operation_data(
    title: Optional[str] = None,
    project_id: str = DEFAULT_PROJECT_ID,
    task_type_id: str = "type-write",
    start_at: str = "2026-02-12T09:00:00.000Z",
    end_at: Optional[str] = "2026-02-12T10:00:00.000Z",
) -> dict:
    """Raw create_task operation as the model would send it."""
    data = {
        "action": "create_task",
        "title": title or fake.sentence(nb_words=3).rstrip("."),
        "content": fake.text(max_nb_chars=60),
        "taskTypeId": task_type_id,
        "projectId": project_id,
        "status": "NOT_DONE",
        "startAt": start_at,
        "isMajor": False,
    }
    if end_at is not None:
        data["endAt"] = end_at
    return data
