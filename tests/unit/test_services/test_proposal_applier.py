"""Tests for applying a selected subset of a proposal."""

import pytest
from datetime import datetime, timezone

from src.models.agent import (
    AgentProposal,
    CreateTaskOperation,
    DeleteTaskOperation,
    TaskChanges,
    UpdateTaskOperation,
)
from src.models.task import TaskStatus
from src.services.proposal_applier import ApplyResult, apply_proposal
from src.services.response_parser import parse_proposal
from src.services.task_service import TaskService
from src.services.task_store import InMemoryTaskStore
from src.services.undo_stack import UndoStack
from src.utils.constants import DEFAULT_PROJECT_ID
from src.utils.errors import NothingSelectedError
from tests.utils.assertions import assert_apply_counts
from tests.utils.factories import create_operation_data, create_task


def create_op(**overrides) -> CreateTaskOperation:
    data = {
        "title": "Send invoice",
        "task_type_id": "type-submit",
        "project_id": DEFAULT_PROJECT_ID,
        "start_at": "2026-02-12T09:00:00.000Z",
        "end_at": "2026-02-12T10:00:00.000Z",
    }
    data.update(overrides)
    return CreateTaskOperation(**data)


@pytest.fixture
async def existing_task(task_service):
    task = create_task(task_id="task-existing", title="Status meeting")
    await task_service.store.put_task(task)
    return task


@pytest.mark.unit
@pytest.mark.asyncio
async def test_deleted_project_fails_only_its_operation(task_service):
    """One stale reference fails; the valid sibling still applies; residual keeps the failure."""
    project = await task_service.upsert_project("Launch", "#ff0000")
    stale = create_op(title="Launch prep", project_id=project.id)
    valid = create_op(title="Send invoice")
    proposal = AgentProposal(summary="Two changes", operations=[stale, valid])

    await task_service.delete_project(project.id)
    result = await apply_proposal(proposal, [0, 1], task_service)

    assert_apply_counts(result, succeeded=1, failed=1)
    assert result.succeeded == ["Add task: Send invoice"]
    assert result.failed[0].startswith("Add task: Launch prep (Project not found")
    assert result.residual.operations == [stale]
    assert result.residual.summary == "Remaining changes: 1"
    assert result.summary_text() == "Succeeded 1, Failed 1"
    assert len(task_service.store.tasks) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unselected_operations_stay_in_residual(task_service):
    first, second, third = create_op(title="One"), create_op(title="Two"), create_op(title="Three")
    proposal = AgentProposal(summary="Three", operations=[first, second, third])

    result = await apply_proposal(proposal, [1], task_service)

    assert_apply_counts(result, succeeded=1, failed=0)
    assert result.residual.operations == [first, third]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_all_succeeded_leaves_no_residual(task_service):
    proposal = AgentProposal(summary="One", operations=[create_op()])

    result = await apply_proposal(proposal, [0], task_service)

    assert result.residual is None
    assert result.summary_text() == "Succeeded 1"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_nothing_selected_raises(task_service):
    proposal = AgentProposal(summary="One", operations=[create_op()])

    with pytest.raises(NothingSelectedError):
        await apply_proposal(proposal, [], task_service)
    with pytest.raises(NothingSelectedError):
        await apply_proposal(proposal, [5], task_service)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_then_delete_round_trip(task_service):
    """Applying create then delete of the new id restores the task count."""
    before = len(await task_service.store.list_tasks())
    proposal = parse_proposal({"summary": "Add", "operations": [create_operation_data(title="Temp")]})

    await apply_proposal(proposal, [0], task_service)
    [created] = [task for task in await task_service.store.list_tasks() if task.title == "Temp"]

    delete = AgentProposal(summary="Remove", operations=[DeleteTaskOperation(task_id=created.id)])
    result = await apply_proposal(delete, [0], task_service)

    assert result.success_count == 1
    assert len(await task_service.store.list_tasks()) == before


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unparseable_timestamps_fail(task_service):
    proposal = AgentProposal(summary="Bad", operations=[
        create_op(start_at="next tuesday"),
        create_op(end_at="someday"),
        create_op(start_at="2026-02-12T10:00:00Z", end_at="2026-02-12T09:00:00Z"),
    ])

    result = await apply_proposal(proposal, [0, 1, 2], task_service)

    assert_apply_counts(result, succeeded=0, failed=3)
    assert result.residual.operations == proposal.operations
    assert task_service.store.tasks == {}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_merges_sparse_changes(task_service, existing_task):
    changes = TaskChanges(status=TaskStatus.DONE, is_major=True)
    proposal = AgentProposal(summary="Done", operations=[
        UpdateTaskOperation(task_id=existing_task.id, changes=changes)
    ])

    result = await apply_proposal(proposal, [0], task_service)

    updated = await task_service.store.get_task(existing_task.id)
    assert result.succeeded == ["Update task: task-existing"]
    assert updated.status == TaskStatus.DONE
    assert updated.is_major is True
    assert updated.title == existing_task.title
    assert updated.start_at == existing_task.start_at
    assert updated.end_at == existing_task.end_at


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_explicit_null_end_clears_end(task_service, existing_task):
    proposal = parse_proposal({"operations": [
        {"action": "update_task", "taskId": existing_task.id, "changes": {"endAt": None}},
    ]})

    await apply_proposal(proposal, [0], task_service)

    assert (await task_service.store.get_task(existing_task.id)).end_at is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_start_after_existing_end_fails(task_service, existing_task):
    proposal = AgentProposal(summary="Move", operations=[
        UpdateTaskOperation(task_id=existing_task.id, changes=TaskChanges(start_at="2026-03-01T09:00:00Z"))
    ])

    result = await apply_proposal(proposal, [0], task_service)

    assert result.failure_count == 1
    assert "End time is earlier than start time" in result.failed[0]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_with_new_start_parses_offset(task_service, existing_task):
    proposal = AgentProposal(summary="Move", operations=[
        UpdateTaskOperation(
            task_id=existing_task.id,
            changes=TaskChanges(start_at="2026-02-11T17:00:00+09:00", end_at="2026-02-11T18:30:00+09:00"),
        )
    ])

    await apply_proposal(proposal, [0], task_service)

    updated = await task_service.store.get_task(existing_task.id)
    assert updated.start_at == datetime(2026, 2, 11, 8, 0, tzinfo=timezone.utc)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_and_delete_missing_task_fail(task_service):
    proposal = AgentProposal(summary="Ghosts", operations=[
        UpdateTaskOperation(task_id="task-ghost", changes=TaskChanges(title="x")),
        DeleteTaskOperation(task_id="task-ghost", reason="cleanup"),
    ])

    result = await apply_proposal(proposal, [0, 1], task_service)

    assert_apply_counts(result, succeeded=0, failed=2)
    assert result.failed[1].startswith("Delete task: task-ghost (Task to delete not found")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_each_applied_operation_records_undo(task_service, existing_task):
    proposal = AgentProposal(summary="Mixed", operations=[
        create_op(title="New one"),
        DeleteTaskOperation(task_id=existing_task.id),
    ])

    await apply_proposal(proposal, [0, 1], task_service)
    assert len(task_service.undo_stack.entries) == 2

    await task_service.undo_last_change()
    assert await task_service.store.get_task(existing_task.id) is not None


@pytest.mark.unit
def test_apply_result_text_without_changes():
    result = ApplyResult()

    assert result.summary_text() == "No changes were applied."
    assert result.log_text() == "Apply result: No changes were applied."


@pytest.mark.unit
def test_apply_result_log_text_lists_labels():
    result = ApplyResult(succeeded=["Add task: A"], failed=["Delete task: x (Task to delete not found: x)"])

    assert result.log_text() == (
        "Apply result: Succeeded 1, Failed 1\n"
        "Succeeded: Add task: A\n"
        "Failed: Delete task: x (Task to delete not found: x)"
    )


class UnavailableDeleteStore(InMemoryTaskStore):
    """Store whose deletes fail with a driver-level error."""

    async def delete_task(self, task_id: str) -> None:
        raise RuntimeError("storage unavailable")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unexpected_store_error_fails_only_its_operation(caplog):
    """A non-domain error is recorded as a failure and later operations still run."""
    store = UnavailableDeleteStore()
    service = TaskService(store, UndoStack())
    await service.bootstrap()
    await store.put_task(create_task(task_id="task-old", title="Old sync"))
    delete = DeleteTaskOperation(task_id="task-old")
    proposal = AgentProposal(summary="Replace the sync", operations=[delete, create_op(title="New sync")])

    result = await apply_proposal(proposal, [0, 1], service)

    assert_apply_counts(result, succeeded=1, failed=1)
    assert result.failed == ["Delete task: task-old (storage unavailable)"]
    assert result.succeeded == ["Add task: New sync"]
    assert result.residual.operations == [delete]
    assert await store.get_task("task-old") is not None
    assert any(record.getMessage() == "Proposal operation failed unexpectedly" for record in caplog.records)
