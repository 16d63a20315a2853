"""
Proposal applier - commit a user-selected subset of a proposal.

Every selected operation is applied on its own through the task service:
a failure is recorded and the next operation is still attempted. Failed
and unselected operations stay behind in a residual proposal.
"""

from datetime import datetime
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from src.models.agent import (
    AgentOperation,
    AgentProposal,
    CreateTaskOperation,
    DeleteTaskOperation,
    UpdateTaskOperation,
)
from src.models.task import TaskInput
from src.services.task_service import TaskService
from src.utils.dates import parse_iso_datetime
from src.utils.errors import (
    InvalidTimeRangeError,
    NothingSelectedError,
    ScheduleAgentError,
    TaskNotFoundError,
)
from src.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)


class ApplyResult(BaseModel):
    """Tally of one apply pass."""
    succeeded: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    failed_indexes: list[int] = Field(default_factory=list)
    residual: Optional[AgentProposal] = None

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    def summary_text(self) -> str:
        parts = []
        if self.succeeded:
            parts.append(f"Succeeded {self.success_count}")
        if self.failed:
            parts.append(f"Failed {self.failure_count}")
        return ", ".join(parts) if parts else "No changes were applied."

    def log_text(self) -> str:
        """Multi-line report appended to the conversation."""
        lines = [f"Apply result: {self.summary_text()}"]
        if self.succeeded:
            lines.append(f"Succeeded: {', '.join(self.succeeded)}")
        if self.failed:
            lines.append(f"Failed: {', '.join(self.failed)}")
        return "\n".join(lines)


def _parse_required(value: str, field_name: str) -> datetime:
    parsed = parse_iso_datetime(value)
    if parsed is None:
        raise InvalidTimeRangeError(f"{field_name} is not a valid ISO-8601 timestamp")
    return parsed


def _check_range(start_at: datetime, end_at: Optional[datetime]) -> None:
    if end_at is not None and end_at < start_at:
        raise InvalidTimeRangeError("End time is earlier than start time")


async def apply_create(operation: CreateTaskOperation, service: TaskService) -> None:
    start_at = _parse_required(operation.start_at, "Start time")
    end_at = _parse_required(operation.end_at, "End time") if operation.end_at else None
    _check_range(start_at, end_at)

    await service.create_task(TaskInput(
        title=operation.title,
        content=operation.content,
        task_type_id=operation.task_type_id,
        project_id=operation.project_id,
        status=operation.status,
        start_at=start_at,
        end_at=end_at,
        is_major=operation.is_major,
    ))


async def apply_update(operation: UpdateTaskOperation, service: TaskService) -> None:
    """Merge the sparse change-set onto the task as currently stored."""
    current = await service.store.get_task(operation.task_id)
    if current is None:
        raise TaskNotFoundError(f"Task to update not found: {operation.task_id}")

    changes = operation.changes
    fields_set = changes.model_fields_set
    updates = {}

    for name in ("title", "content", "task_type_id", "project_id", "status", "is_major"):
        value = getattr(changes, name)
        if name in fields_set and value is not None:
            updates[name] = value

    if "start_at" in fields_set and changes.start_at is not None:
        updates["start_at"] = _parse_required(changes.start_at, "Start time")
    if "end_at" in fields_set:
        updates["end_at"] = _parse_required(changes.end_at, "End time") if changes.end_at is not None else None

    next_input = TaskInput.from_task(current).model_copy(update=updates)
    _check_range(next_input.start_at, next_input.end_at)

    await service.update_task(operation.task_id, next_input)


async def apply_delete(operation: DeleteTaskOperation, service: TaskService) -> None:
    if await service.store.get_task(operation.task_id) is None:
        raise TaskNotFoundError(f"Task to delete not found: {operation.task_id}")
    await service.remove_task(operation.task_id)


_APPLIERS = {
    "create_task": apply_create,
    "update_task": apply_update,
    "delete_task": apply_delete,
}


async def apply_operation(operation: AgentOperation, service: TaskService) -> None:
    await _APPLIERS[operation.action](operation, service)


async def apply_proposal(
    proposal: AgentProposal,
    selected_indexes: Iterable[int],
    service: TaskService,
) -> ApplyResult:
    """
    Apply the selected operations in proposal order.

    Args:
        proposal: Proposal under review
        selected_indexes: Positions of the operations the user kept
        service: Task service that validates, persists and records undo entries

    Returns:
        ApplyResult with success/failure labels and the residual proposal

    Raises:
        NothingSelectedError: when no valid index is selected
    """
    selected = {index for index in selected_indexes if 0 <= index < len(proposal.operations)}
    if not selected:
        raise NothingSelectedError("Select at least one change to apply.")

    result = ApplyResult()

    with log_timing("apply_proposal", logger=logger, operation_count=len(selected)):
        for index, operation in enumerate(proposal.operations):
            if index not in selected:
                continue
            try:
                await apply_operation(operation, service)
            except ScheduleAgentError as e:
                logger.warning(
                    "Proposal operation failed",
                    operation_index=index,
                    action=operation.action,
                    error=str(e),
                    error_type=type(e).__name__
                )
                result.failed.append(f"{operation.label()} ({e})")
                result.failed_indexes.append(index)
            except Exception as e:
                # Store and driver errors still fail only this operation
                logger.exception(
                    "Proposal operation failed unexpectedly",
                    operation_index=index,
                    action=operation.action,
                    error_type=type(e).__name__
                )
                result.failed.append(f"{operation.label()} ({e})")
                result.failed_indexes.append(index)
            else:
                result.succeeded.append(operation.label())

    failed = set(result.failed_indexes)
    remaining = [
        operation
        for index, operation in enumerate(proposal.operations)
        if index not in selected or index in failed
    ]
    if remaining:
        result.residual = AgentProposal(summary=f"Remaining changes: {len(remaining)}", operations=remaining)

    logger.info(
        "Proposal applied",
        success_count=result.success_count,
        failure_count=result.failure_count,
        remaining_count=len(remaining)
    )
    return result
