"""Bounded, batch-aware undo stack for task mutations."""

from datetime import timedelta
from typing import Optional

from src.models.undo import DeleteTasksUndo, UndoEntry, UpsertTasksUndo
from src.services.task_store import TaskStore
from src.utils.dates import utc_now
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

MAX_UNDO_STACK = 80
UPDATE_UNDO_MERGE_WINDOW = timedelta(seconds=15)


class UndoStack:
    """
    Process-local undo history.

    Only the UI thread writes to it, so no locking is done. Consecutive
    single-task updates of the same task inside the merge window collapse
    into the earlier entry, which keeps the oldest prior snapshot.
    """

    def __init__(self, max_depth: int = MAX_UNDO_STACK, merge_window: timedelta = UPDATE_UNDO_MERGE_WINDOW):
        self.max_depth = max_depth
        self.merge_window = merge_window
        self.entries: list[UndoEntry] = []

    @property
    def can_undo(self) -> bool:
        return bool(self.entries)

    @property
    def description(self) -> Optional[str]:
        return self.entries[-1].description if self.entries else None

    def push(self, entry: UndoEntry) -> None:
        if self._merges_into_top(entry):
            logger.debug(
                "Undo entry merged into previous update",
                task_id=entry.tasks[0].id,
                stack_depth=len(self.entries)
            )
            return

        self.entries.append(entry)
        if len(self.entries) > self.max_depth:
            dropped = len(self.entries) - self.max_depth
            del self.entries[:dropped]
            logger.debug("Oldest undo entries dropped", dropped_count=dropped)

    def _merges_into_top(self, entry: UndoEntry) -> bool:
        if not isinstance(entry, UpsertTasksUndo) or len(entry.tasks) != 1 or not self.entries:
            return False
        last = self.entries[-1]
        return (
            isinstance(last, UpsertTasksUndo)
            and len(last.tasks) == 1
            and last.tasks[0].id == entry.tasks[0].id
            and utc_now() - last.created_at < self.merge_window
        )

    def pop(self) -> Optional[UndoEntry]:
        return self.entries.pop() if self.entries else None

    async def pop_and_invert(self, store: TaskStore) -> Optional[UndoEntry]:
        """Remove the newest entry and apply its inverse. Returns None when idle."""
        entry = self.pop()
        if entry is None:
            logger.info("Nothing to undo")
            return None

        if isinstance(entry, DeleteTasksUndo):
            await store.bulk_delete_tasks(entry.task_ids)
            affected = len(entry.task_ids)
        else:
            await store.bulk_put_tasks(entry.tasks)
            affected = len(entry.tasks)

        logger.info(
            "Undo applied",
            undo_kind=entry.kind,
            undo_description=entry.description,
            tasks_affected=affected,
            stack_depth=len(self.entries)
        )
        return entry

    def clear(self) -> None:
        self.entries.clear()
