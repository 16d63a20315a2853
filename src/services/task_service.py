"""Task service - the mutation facade shared by direct edits and applied agent proposals."""

import os
from typing import Optional
from ulid import ULID

from src.models.task import DomainSnapshot, Project, RecurrencePattern, Task, TaskInput, TaskStatus, TaskType
from src.models.undo import DeleteTasksUndo, UndoEntry, UpsertTasksUndo
from src.services.supabase_client import SupabaseTaskStore
from src.services.task_store import InMemoryTaskStore, TaskStore
from src.services.undo_stack import UndoStack
from src.utils.constants import DEFAULT_PROJECT, DEFAULT_PROJECT_ID, DEFAULT_TASK_TYPES
from src.utils.dates import shift_by_pattern, utc_now
from src.utils.errors import (
    InvalidTimeRangeError,
    ReferentialIntegrityError,
    StoreError,
    TaskNotFoundError,
    ValidationFailedError,
)
from src.utils.logging import get_structured_logger, preview_text

logger = get_structured_logger(__name__)

MAX_RECURRENCE_COUNT = 60


def generate_id(prefix: str) -> str:
    """Generate a text ID: kind prefix plus ULID."""
    return f"{prefix}-{ULID()}"


def clamp_recurrence_count(value: Optional[int]) -> int:
    if value is None:
        return 1
    return max(1, min(MAX_RECURRENCE_COUNT, int(value)))


def _equality_key(task: Task) -> tuple:
    return (
        task.title,
        task.content,
        task.task_type_id,
        task.project_id,
        task.status,
        task.start_at,
        task.end_at,
        task.is_major,
        task.recurrence_pattern or RecurrencePattern.NONE,
    )


class TaskService:
    """Validates and commits task/project/type mutations and records undo entries."""

    def __init__(self, store: TaskStore, undo_stack: Optional[UndoStack] = None):
        self.store = store
        self.undo_stack = undo_stack if undo_stack is not None else UndoStack()

    async def bootstrap(self) -> None:
        """Seed default task types and the default project into an empty store."""
        now = utc_now()
        if not await self.store.list_task_types():
            for task_type in DEFAULT_TASK_TYPES:
                await self.store.put_task_type(task_type.model_copy(update={"created_at": now, "updated_at": now}))
            logger.info("Default task types seeded", task_type_count=len(DEFAULT_TASK_TYPES))

        if not await self.store.list_projects():
            await self.store.put_project(DEFAULT_PROJECT.model_copy(update={"created_at": now, "updated_at": now}))
            logger.info("Default project seeded", project_id=DEFAULT_PROJECT_ID)

    async def snapshot(self) -> DomainSnapshot:
        return DomainSnapshot(
            tasks=tuple(await self.store.list_tasks()),
            projects=tuple(await self.store.list_projects()),
            task_types=tuple(await self.store.list_task_types()),
        )

    async def _ensure_references(self, project_id: str, task_type_id: str) -> None:
        if await self.store.get_project(project_id) is None:
            raise ReferentialIntegrityError(f"Project not found: {project_id}")
        if await self.store.get_task_type(task_type_id) is None:
            raise ReferentialIntegrityError(f"Task type not found: {task_type_id}")

    @staticmethod
    def _normalize(task_input: TaskInput) -> TaskInput:
        title = task_input.title.strip()
        if not title:
            raise ValidationFailedError("Task title is required")
        if task_input.end_at is not None and task_input.end_at < task_input.start_at:
            raise InvalidTimeRangeError("End time is earlier than start time")
        return task_input.model_copy(update={"title": title, "content": task_input.content.strip()})

    async def create_task(self, task_input: TaskInput) -> list[str]:
        """
        Create a task, or every instance of a recurring request.

        Pushes one undo entry covering all created ids.
        """
        normalized = self._normalize(task_input)
        await self._ensure_references(normalized.project_id, normalized.task_type_id)

        now = utc_now()
        pattern = normalized.recurrence_pattern
        count = 1 if pattern == RecurrencePattern.NONE else clamp_recurrence_count(normalized.recurrence_count)
        effective_pattern = pattern if count > 1 else RecurrencePattern.NONE
        group_id = None if effective_pattern == RecurrencePattern.NONE else generate_id("recurrence")

        records = [
            Task(
                id=generate_id("task"),
                title=normalized.title,
                content=normalized.content,
                task_type_id=normalized.task_type_id,
                project_id=normalized.project_id,
                status=normalized.status,
                start_at=shift_by_pattern(normalized.start_at, effective_pattern, index),
                end_at=(
                    shift_by_pattern(normalized.end_at, effective_pattern, index)
                    if normalized.end_at is not None
                    else None
                ),
                is_major=normalized.is_major,
                created_at=now,
                updated_at=now,
                completed_at=now if normalized.status == TaskStatus.DONE else None,
                recurrence_pattern=effective_pattern,
                recurrence_group_id=group_id,
                recurrence_index=None if effective_pattern == RecurrencePattern.NONE else index,
            )
            for index in range(count)
        ]

        created_ids = await self.store.create_tasks(records)

        self.undo_stack.push(DeleteTasksUndo(
            created_at=now,
            description=(
                f"Add {count} recurring tasks" if count > 1 else f"Add task: {normalized.title}"
            ),
            task_ids=created_ids,
        ))

        logger.info(
            "Tasks created",
            task_count=len(created_ids),
            recurrence_pattern=effective_pattern.value,
            title=preview_text(normalized.title, max_length=80)
        )
        return created_ids

    async def update_task(self, task_id: str, task_input: TaskInput) -> Optional[Task]:
        """
        Replace the editable fields of a task.

        Returns the written task, or None when nothing user-visible changed.
        """
        existing = await self.store.get_task(task_id)
        if existing is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")

        normalized = self._normalize(task_input)
        await self._ensure_references(normalized.project_id, normalized.task_type_id)

        now = utc_now()
        if normalized.status == TaskStatus.DONE:
            completed_at = existing.completed_at or now
        else:
            completed_at = None

        next_task = existing.model_copy(update={
            "title": normalized.title,
            "content": normalized.content,
            "task_type_id": normalized.task_type_id,
            "project_id": normalized.project_id,
            "status": normalized.status,
            "start_at": normalized.start_at,
            "end_at": normalized.end_at,
            "is_major": normalized.is_major,
            "completed_at": completed_at,
            "updated_at": now,
        })

        if _equality_key(existing) == _equality_key(next_task):
            logger.debug("Task update skipped, no visible change", task_id=task_id)
            return None

        await self.store.put_task(next_task)

        self.undo_stack.push(UpsertTasksUndo(
            created_at=now,
            description=f"Update task: {existing.title}",
            tasks=[existing],
        ))

        logger.info("Task updated", task_id=task_id, status=next_task.status.value)
        return next_task

    async def remove_task(self, task_id: str) -> Task:
        existing = await self.store.get_task(task_id)
        if existing is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")

        await self.store.delete_task(task_id)

        self.undo_stack.push(UpsertTasksUndo(
            created_at=utc_now(),
            description=f"Delete task: {existing.title}",
            tasks=[existing],
        ))

        logger.info("Task deleted", task_id=task_id)
        return existing

    async def undo_last_change(self) -> Optional[UndoEntry]:
        return await self.undo_stack.pop_and_invert(self.store)

    async def upsert_project(
        self,
        name: str,
        color: str,
        *,
        project_id: Optional[str] = None,
        description: Optional[str] = None,
        is_active: bool = True,
    ) -> Optional[Project]:
        """Create a project, or edit one by id. Editing a missing project is a no-op."""
        name = name.strip()
        if not name:
            raise ValidationFailedError("Project name is required")

        now = utc_now()
        description = description.strip() if description else None

        if project_id:
            existing = await self.store.get_project(project_id)
            if existing is None:
                return None
            project = existing.model_copy(update={
                "name": name,
                "color": color,
                "description": description,
                "is_active": is_active,
                "updated_at": now,
            })
        else:
            project = Project(
                id=generate_id("project"),
                name=name,
                color=color,
                description=description,
                is_active=is_active,
                created_at=now,
                updated_at=now,
            )

        await self.store.put_project(project)
        return project

    async def delete_project(self, project_id: str) -> None:
        if project_id == DEFAULT_PROJECT_ID:
            raise ReferentialIntegrityError("The default project cannot be deleted")
        if await self.store.count_tasks_by(project_id=project_id) > 0:
            raise ReferentialIntegrityError("The project still has tasks and cannot be deleted")
        await self.store.delete_project(project_id)
        logger.info("Project deleted", project_id=project_id)

    async def upsert_task_type(
        self,
        name: str,
        color: str,
        *,
        task_type_id: Optional[str] = None,
        is_active: bool = True,
    ) -> Optional[TaskType]:
        """Create a task type at the end of the display order, or edit one by id."""
        name = name.strip()
        if not name:
            raise ValidationFailedError("Task type name is required")

        now = utc_now()

        if task_type_id:
            existing = await self.store.get_task_type(task_type_id)
            if existing is None:
                return None
            task_type = existing.model_copy(update={
                "name": name,
                "color": color,
                "is_active": is_active,
                "updated_at": now,
            })
        else:
            task_types = await self.store.list_task_types()
            highest_order = max((item.order for item in task_types), default=0)
            task_type = TaskType(
                id=generate_id("type"),
                name=name,
                color=color,
                is_default=False,
                is_active=is_active,
                order=highest_order + 1,
                created_at=now,
                updated_at=now,
            )

        await self.store.put_task_type(task_type)
        return task_type

    async def delete_task_type(self, task_type_id: str) -> None:
        task_type = await self.store.get_task_type(task_type_id)
        if task_type is None:
            return
        if task_type.is_default:
            raise ReferentialIntegrityError("Default task types cannot be deleted")
        if await self.store.count_tasks_by(task_type_id=task_type_id) > 0:
            raise ReferentialIntegrityError("The task type still has tasks and cannot be deleted")
        await self.store.delete_task_type(task_type_id)
        logger.info("Task type deleted", task_type_id=task_type_id)


# Global task store instance
_task_store: Optional[TaskStore] = None


def get_task_store() -> TaskStore:
    """Get or create the configured task store (TASK_STORE=memory|supabase)."""
    global _task_store
    if _task_store is None:
        backend = os.environ.get("TASK_STORE", "memory").lower()
        if backend == "supabase":
            _task_store = SupabaseTaskStore()
        elif backend == "memory":
            _task_store = InMemoryTaskStore()
        else:
            raise StoreError(f"Unsupported task store: {backend}")
        logger.info("Task store initialized", task_store=backend)
    return _task_store
