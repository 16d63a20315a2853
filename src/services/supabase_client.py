"""Supabase client wrapper and the Supabase-backed task store."""

import os
from typing import Optional
from supabase import create_client, Client
from supabase.client import ClientOptions

from src.models.task import Project, Task, TaskType
from src.services.task_store import TaskStore
from src.utils.errors import StoreError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

# Global client instance (singleton pattern)
_client: Optional[Client] = None

TASKS_TABLE = "tasks"
PROJECTS_TABLE = "projects"
TASK_TYPES_TABLE = "task_types"


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise StoreError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", supabase_url=url)

    return _client


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                error_type=exc_type.__name__
            )
        return False


def _row(model) -> dict:
    return model.model_dump(mode="json")


class SupabaseTaskStore(TaskStore):
    """TaskStore over the `tasks`, `projects` and `task_types` tables."""

    async def create_tasks(self, tasks: list[Task]) -> list[str]:
        if not tasks:
            return []
        async with SupabaseClient() as client:
            try:
                result = client.table(TASKS_TABLE).insert([_row(task) for task in tasks]).execute()
            except Exception as e:
                raise StoreError(f"Failed to create tasks: {e}")
            if not result.data:
                raise StoreError("Failed to create tasks: no data returned")
            return [row["id"] for row in result.data]

    async def get_task(self, task_id: str) -> Optional[Task]:
        async with SupabaseClient() as client:
            try:
                result = client.table(TASKS_TABLE).select("*").eq("id", task_id).execute()
            except Exception as e:
                raise StoreError(f"Failed to get task: {e}")
            return Task.model_validate(result.data[0]) if result.data else None

    async def put_task(self, task: Task) -> None:
        await self.bulk_put_tasks([task])

    async def delete_task(self, task_id: str) -> None:
        async with SupabaseClient() as client:
            try:
                client.table(TASKS_TABLE).delete().eq("id", task_id).execute()
            except Exception as e:
                raise StoreError(f"Failed to delete task: {e}")

    async def bulk_delete_tasks(self, task_ids: list[str]) -> None:
        if not task_ids:
            return
        async with SupabaseClient() as client:
            try:
                client.table(TASKS_TABLE).delete().in_("id", task_ids).execute()
            except Exception as e:
                raise StoreError(f"Failed to delete tasks: {e}")

    async def bulk_put_tasks(self, tasks: list[Task]) -> None:
        if not tasks:
            return
        async with SupabaseClient() as client:
            try:
                client.table(TASKS_TABLE).upsert([_row(task) for task in tasks]).execute()
            except Exception as e:
                raise StoreError(f"Failed to upsert tasks: {e}")

    async def list_tasks(self) -> list[Task]:
        async with SupabaseClient() as client:
            try:
                result = client.table(TASKS_TABLE).select("*").execute()
            except Exception as e:
                raise StoreError(f"Failed to list tasks: {e}")
            return [Task.model_validate(row) for row in result.data or []]

    async def count_tasks_by(self, *, project_id: Optional[str] = None, task_type_id: Optional[str] = None) -> int:
        async with SupabaseClient() as client:
            try:
                query = client.table(TASKS_TABLE).select("id", count="exact")
                if project_id is not None:
                    query = query.eq("project_id", project_id)
                if task_type_id is not None:
                    query = query.eq("task_type_id", task_type_id)
                result = query.execute()
            except Exception as e:
                raise StoreError(f"Failed to count tasks: {e}")
            return result.count if result.count is not None else len(result.data or [])

    async def list_projects(self) -> list[Project]:
        async with SupabaseClient() as client:
            try:
                result = client.table(PROJECTS_TABLE).select("*").execute()
            except Exception as e:
                raise StoreError(f"Failed to list projects: {e}")
            return [Project.model_validate(row) for row in result.data or []]

    async def get_project(self, project_id: str) -> Optional[Project]:
        async with SupabaseClient() as client:
            try:
                result = client.table(PROJECTS_TABLE).select("*").eq("id", project_id).execute()
            except Exception as e:
                raise StoreError(f"Failed to get project: {e}")
            return Project.model_validate(result.data[0]) if result.data else None

    async def put_project(self, project: Project) -> None:
        async with SupabaseClient() as client:
            try:
                client.table(PROJECTS_TABLE).upsert(_row(project)).execute()
            except Exception as e:
                raise StoreError(f"Failed to save project: {e}")

    async def delete_project(self, project_id: str) -> None:
        async with SupabaseClient() as client:
            try:
                client.table(PROJECTS_TABLE).delete().eq("id", project_id).execute()
            except Exception as e:
                raise StoreError(f"Failed to delete project: {e}")

    async def list_task_types(self) -> list[TaskType]:
        async with SupabaseClient() as client:
            try:
                result = client.table(TASK_TYPES_TABLE).select("*").order("order").execute()
            except Exception as e:
                raise StoreError(f"Failed to list task types: {e}")
            return [TaskType.model_validate(row) for row in result.data or []]

    async def get_task_type(self, task_type_id: str) -> Optional[TaskType]:
        async with SupabaseClient() as client:
            try:
                result = client.table(TASK_TYPES_TABLE).select("*").eq("id", task_type_id).execute()
            except Exception as e:
                raise StoreError(f"Failed to get task type: {e}")
            return TaskType.model_validate(result.data[0]) if result.data else None

    async def put_task_type(self, task_type: TaskType) -> None:
        async with SupabaseClient() as client:
            try:
                client.table(TASK_TYPES_TABLE).upsert(_row(task_type)).execute()
            except Exception as e:
                raise StoreError(f"Failed to save task type: {e}")

    async def delete_task_type(self, task_type_id: str) -> None:
        async with SupabaseClient() as client:
            try:
                client.table(TASK_TYPES_TABLE).delete().eq("id", task_type_id).execute()
            except Exception as e:
                raise StoreError(f"Failed to delete task type: {e}")
