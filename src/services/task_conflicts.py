"""
Time-overlap detection among active tasks.

UI-facing helpers: the calendar view marks conflicting tasks and the edit
form warns about overlaps. The agent reaches the same information through
the task times in its tool results.
"""

from datetime import datetime
from typing import Iterable, Optional, Union

from src.models.task import Task, TaskStatus
from src.utils.dates import parse_iso_datetime

TimeRange = tuple[datetime, datetime]


def to_time_range(start_at: datetime, end_at: Union[datetime, str, None] = None) -> TimeRange:
    """End defaults to start when absent or unparseable and is clamped to >= start."""
    end = parse_iso_datetime(end_at) if end_at is not None else None
    if end is None:
        end = start_at
    return start_at, max(start_at, end)


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    # Inclusive on both bounds: touching endpoints count as a conflict
    return a[0] <= b[1] and b[0] <= a[1]


def _active(tasks: Iterable[Task]) -> list[Task]:
    return [task for task in tasks if task.status != TaskStatus.DONE]


def build_task_conflict_map(tasks: Iterable[Task]) -> dict[str, set[str]]:
    """Map each non-DONE task id to the ids of the tasks it overlaps."""
    active_tasks = _active(tasks)
    conflict_map: dict[str, set[str]] = {task.id: set() for task in active_tasks}
    ranges = [to_time_range(task.start_at, task.end_at) for task in active_tasks]

    for i, task_a in enumerate(active_tasks):
        for j in range(i + 1, len(active_tasks)):
            task_b = active_tasks[j]
            if task_a.id == task_b.id or not overlaps(ranges[i], ranges[j]):
                continue
            conflict_map[task_a.id].add(task_b.id)
            conflict_map[task_b.id].add(task_a.id)

    return conflict_map


def find_task_conflicts_for_range(
    tasks: Iterable[Task],
    start_at: datetime,
    end_at: Optional[datetime] = None,
    exclude_task_id: Optional[str] = None,
) -> list[Task]:
    """Active tasks overlapping a candidate interval, earliest start first."""
    target = to_time_range(start_at, end_at)
    return sorted(
        (
            task
            for task in _active(tasks)
            if task.id != exclude_task_id and overlaps(target, to_time_range(task.start_at, task.end_at))
        ),
        key=lambda task: task.start_at,
    )
