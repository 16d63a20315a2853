"""
Extract and validate the structured payload of a model response.

The model is an unreliable producer, so validation is field-level: a
malformed field or operation is dropped and logged, never the whole
response. Only an unparseable or non-object payload is fatal.
"""

import json
import re
from typing import Any, Optional, Union

from src.models.agent import (
    AgentProposal,
    CreateTaskOperation,
    DeleteTaskOperation,
    TaskChanges,
    ToolCall,
    ToolName,
    UpdateTaskOperation,
)
from src.models.task import TaskStatus
from src.utils.errors import ProtocolError
from src.utils.logging import get_structured_logger, preview_text

logger = get_structured_logger(__name__)

MAX_TOOL_CALLS_PER_ROUND = 4
DEFAULT_PROPOSAL_SUMMARY = "Proposed changes"

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_ALLOWED_TOOLS = {tool.value for tool in ToolName}
_VALID_STATUSES = {status.value for status in TaskStatus}

Operation = Union[CreateTaskOperation, UpdateTaskOperation, DeleteTaskOperation]


def _is_text(value: Any) -> bool:
    return isinstance(value, str)


def _is_non_empty_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_bool(value: Any) -> bool:
    return isinstance(value, bool)


def _is_status(value: Any) -> bool:
    return isinstance(value, str) and value in _VALID_STATUSES


def extract_json_text(raw: str) -> str:
    """
    Locate the JSON object inside arbitrary model text.

    Order: the whole trimmed text when it already looks like an object,
    then the first fenced block, then first "{" to last "}", else the
    trimmed text unchanged so that parsing fails explicitly.
    """
    trimmed = raw.strip()
    if trimmed.startswith("{") and trimmed.endswith("}"):
        return trimmed

    fenced = _FENCED_BLOCK.search(trimmed)
    if fenced and fenced.group(1):
        return fenced.group(1).strip()

    start = trimmed.find("{")
    end = trimmed.rfind("}")
    if start >= 0 and end > start:
        return trimmed[start:end + 1].strip()

    return trimmed


def parse_model_payload(raw: str) -> dict[str, Any]:
    json_text = extract_json_text(raw)
    try:
        parsed = json.loads(json_text)
    except (ValueError, RecursionError) as e:
        logger.warning(
            "Model returned invalid JSON",
            error=str(e),
            raw_preview=preview_text(raw)
        )
        raise ProtocolError(f"Model response is not valid JSON: {e}")

    if not isinstance(parsed, dict):
        raise ProtocolError("Model response is not a JSON object")
    return parsed


def parse_tool_calls(value: Any) -> list[ToolCall]:
    """Keep only well-formed calls to whitelisted tools."""
    if not isinstance(value, list):
        return []

    calls = []
    for item in value:
        if not isinstance(item, dict) or not _is_text(item.get("tool")):
            logger.debug("Malformed tool call dropped")
            continue
        if item["tool"] not in _ALLOWED_TOOLS:
            # TODO: count dropped tool names as a metric once the agent has telemetry
            logger.debug("Unknown tool call dropped", tool=item["tool"])
            continue
        args = item.get("args")
        calls.append(ToolCall(tool=ToolName(item["tool"]), args=args if isinstance(args, dict) else {}))
    return calls


def parse_create_operation(value: Any) -> Optional[CreateTaskOperation]:
    if not isinstance(value, dict) or value.get("action") != "create_task":
        return None

    required = ("title", "taskTypeId", "projectId", "startAt")
    if not all(_is_non_empty_text(value.get(key)) for key in required):
        logger.debug(
            "create_task dropped, required field missing",
            missing_fields=[key for key in required if not _is_non_empty_text(value.get(key))]
        )
        return None

    return CreateTaskOperation(
        title=value["title"],
        content=value["content"] if _is_text(value.get("content")) else "",
        task_type_id=value["taskTypeId"],
        project_id=value["projectId"],
        status=value["status"] if _is_status(value.get("status")) else TaskStatus.NOT_DONE,
        start_at=value["startAt"],
        end_at=value["endAt"] if _is_text(value.get("endAt")) else None,
        is_major=value["isMajor"] if _is_bool(value.get("isMajor")) else False,
    )


_CHANGE_FIELDS = (
    ("title", _is_text),
    ("content", _is_text),
    ("taskTypeId", _is_text),
    ("projectId", _is_text),
    ("status", _is_status),
    ("startAt", _is_text),
    ("isMajor", _is_bool),
)


def parse_update_operation(value: Any) -> Optional[UpdateTaskOperation]:
    if not isinstance(value, dict) or value.get("action") != "update_task" or not _is_text(value.get("taskId")):
        return None

    source = value.get("changes") if isinstance(value.get("changes"), dict) else {}
    changes: dict[str, Any] = {key: source[key] for key, check in _CHANGE_FIELDS if check(source.get(key))}
    if "endAt" in source and (source["endAt"] is None or _is_text(source["endAt"])):
        changes["endAt"] = source["endAt"]

    if not changes:
        logger.debug("update_task dropped, no recognized change", task_id=value["taskId"])
        return None

    return UpdateTaskOperation(task_id=value["taskId"], changes=TaskChanges(**changes))


def parse_delete_operation(value: Any) -> Optional[DeleteTaskOperation]:
    if not isinstance(value, dict) or value.get("action") != "delete_task" or not _is_text(value.get("taskId")):
        return None

    return DeleteTaskOperation(
        task_id=value["taskId"],
        reason=value["reason"] if _is_text(value.get("reason")) else None,
    )


_OPERATION_PARSERS = {
    "create_task": parse_create_operation,
    "update_task": parse_update_operation,
    "delete_task": parse_delete_operation,
}


def parse_operation(value: Any) -> Optional[Operation]:
    """Validate one raw operation; None when it must be dropped."""
    if not isinstance(value, dict):
        return None
    action = value.get("action")
    parser = _OPERATION_PARSERS.get(action) if _is_text(action) else None
    if parser is None:
        logger.debug("Operation with unknown action dropped", action=str(action))
        return None
    return parser(value)


def parse_proposal(value: Any) -> Optional[AgentProposal]:
    """A proposal with no valid operation is treated as absent."""
    if not isinstance(value, dict):
        return None

    raw_operations = value.get("operations") if isinstance(value.get("operations"), list) else []
    operations = [op for op in (parse_operation(item) for item in raw_operations) if op is not None]

    if len(operations) < len(raw_operations):
        logger.info(
            "Proposal operations dropped during validation",
            operations_received=len(raw_operations),
            operations_kept=len(operations)
        )

    if not operations:
        return None

    return AgentProposal(
        summary=value["summary"] if _is_text(value.get("summary")) else DEFAULT_PROPOSAL_SUMMARY,
        operations=operations,
    )
