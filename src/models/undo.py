"""Undo entry models - inverses of committed task mutations."""

from typing import Annotated, Literal, Union
from datetime import datetime
from pydantic import BaseModel, Field

from src.models.task import Task


class DeleteTasksUndo(BaseModel):
    """Inverse of a creation: remove these task ids."""
    kind: Literal["delete_tasks"] = "delete_tasks"
    created_at: datetime
    description: str
    task_ids: list[str] = Field(default_factory=list)


class UpsertTasksUndo(BaseModel):
    """Inverse of an update or delete: restore these full prior snapshots."""
    kind: Literal["upsert_tasks"] = "upsert_tasks"
    created_at: datetime
    description: str
    tasks: list[Task] = Field(default_factory=list)


UndoEntry = Annotated[Union[DeleteTasksUndo, UpsertTasksUndo], Field(discriminator="kind")]
