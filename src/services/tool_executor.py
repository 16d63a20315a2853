"""Read-only tools the model may call against the run's domain snapshot."""

import math
from typing import Any

from src.models.agent import ToolCall, ToolExecutionResult, ToolName
from src.models.task import DomainSnapshot, Task, TaskStatus
from src.utils.dates import to_iso, to_iso_now
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

DEFAULT_SEARCH_LIMIT = 20
MIN_SEARCH_LIMIT = 1
MAX_SEARCH_LIMIT = 50
TASK_NOT_FOUND_MESSAGE = "Task not found."
_STATUS_VALUES = {status.value for status in TaskStatus}


def _task_view(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "content": task.content,
        "status": task.status.value,
        "startAt": to_iso(task.start_at),
        "endAt": to_iso(task.end_at) if task.end_at else None,
        "taskTypeId": task.task_type_id,
        "projectId": task.project_id,
        "isMajor": task.is_major,
        "updatedAt": to_iso(task.updated_at),
    }


def _is_status(value: Any) -> bool:
    return isinstance(value, str) and value in _STATUS_VALUES


def _clamp_limit(value: Any) -> int:
    # bool is an int subclass but never a meaningful limit
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        value = DEFAULT_SEARCH_LIMIT
    elif isinstance(value, float) and not math.isfinite(value):
        value = DEFAULT_SEARCH_LIMIT
    return max(MIN_SEARCH_LIMIT, min(MAX_SEARCH_LIMIT, math.floor(value)))


def list_projects(snapshot: DomainSnapshot) -> list[dict[str, Any]]:
    return [
        {"id": project.id, "name": project.name, "isActive": project.is_active}
        for project in snapshot.active_projects()
    ]


def list_task_types(snapshot: DomainSnapshot) -> list[dict[str, Any]]:
    return [
        {"id": task_type.id, "name": task_type.name, "isActive": task_type.is_active}
        for task_type in snapshot.active_task_types()
    ]


def search_tasks(snapshot: DomainSnapshot, args: dict[str, Any]) -> list[dict[str, Any]]:
    """
    Case-insensitive keyword search over title, body, project name and type name.

    Optional ``projectId`` and ``status`` filters; newest ``updatedAt`` first;
    ``limit`` clamped to [1, 50].
    """
    keyword = args["keyword"].strip().lower() if isinstance(args.get("keyword"), str) else ""
    project_id = args["projectId"] if isinstance(args.get("projectId"), str) else ""
    status = args["status"] if _is_status(args.get("status")) else None
    limit = _clamp_limit(args.get("limit"))

    project_map = snapshot.project_map()
    task_type_map = snapshot.task_type_map()

    def project_name(task: Task) -> str:
        project = project_map.get(task.project_id)
        return project.name if project else ""

    def task_type_name(task: Task) -> str:
        task_type = task_type_map.get(task.task_type_id)
        return task_type.name if task_type else ""

    def matches(task: Task) -> bool:
        if project_id and task.project_id != project_id:
            return False
        if status and task.status.value != status:
            return False
        if not keyword:
            return True
        haystack = f"{task.title} {task.content} {project_name(task)} {task_type_name(task)}".lower()
        return keyword in haystack

    found = sorted(filter(matches, snapshot.tasks), key=lambda task: task.updated_at, reverse=True)[:limit]

    return [
        {
            "id": task.id,
            "title": task.title,
            "status": task.status.value,
            "startAt": to_iso(task.start_at),
            "endAt": to_iso(task.end_at) if task.end_at else None,
            "projectId": task.project_id,
            "projectName": project_name(task),
            "taskTypeId": task.task_type_id,
            "taskTypeName": task_type_name(task),
            "isMajor": task.is_major,
            "updatedAt": to_iso(task.updated_at),
        }
        for task in found
    ]


def execute_tool_call(call: ToolCall, snapshot: DomainSnapshot) -> ToolExecutionResult:
    """Run one whitelisted tool; never raises for a missing task."""
    if call.tool == ToolName.LIST_PROJECTS:
        result, ok = list_projects(snapshot), True
    elif call.tool == ToolName.LIST_TASK_TYPES:
        result, ok = list_task_types(snapshot), True
    elif call.tool == ToolName.CURRENT_DATETIME:
        result, ok = {"now": to_iso_now()}, True
    elif call.tool == ToolName.GET_TASK:
        task_id = call.args.get("taskId") if isinstance(call.args.get("taskId"), str) else ""
        task = snapshot.find_task(task_id)
        ok = task is not None
        result = _task_view(task) if task else {"message": TASK_NOT_FOUND_MESSAGE}
    else:
        result, ok = search_tasks(snapshot, call.args), True

    logger.debug(
        "Tool executed",
        tool=call.tool.value,
        ok=ok,
        result_count=len(result) if isinstance(result, list) else None
    )
    return ToolExecutionResult(tool=call.tool, args=call.args, ok=ok, result=result)


def execute_tool_calls(calls: list[ToolCall], snapshot: DomainSnapshot) -> list[ToolExecutionResult]:
    return [execute_tool_call(call, snapshot) for call in calls]
