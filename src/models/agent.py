"""Agent protocol models: tool calls, proposal operations and run results."""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.models.task import TaskStatus


class ToolName(str, Enum):
    """Whitelisted read-only tools the model may call."""
    LIST_PROJECTS = "list_projects"
    LIST_TASK_TYPES = "list_task_types"
    SEARCH_TASKS = "search_tasks"
    GET_TASK = "get_task"
    CURRENT_DATETIME = "current_datetime"


class ToolCall(BaseModel):
    """One tool invocation requested by the model."""
    tool: ToolName
    args: dict[str, Any] = Field(default_factory=dict)


class ToolExecutionResult(BaseModel):
    """Tool output fed back to the model in the next round."""
    tool: ToolName
    args: dict[str, Any] = Field(default_factory=dict)
    ok: bool
    result: Any = None


class ConversationMessage(BaseModel):
    """One turn of the visible conversation."""
    role: Literal["user", "assistant"]
    content: str


class ChatMessage(BaseModel):
    """Role-tagged message sent to the model endpoint."""
    role: Literal["system", "user", "assistant"]
    content: str


class _WireModel(BaseModel):
    """Operations are exchanged with the model in camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateTaskOperation(_WireModel):
    """Create one task."""
    action: Literal["create_task"] = "create_task"
    title: str
    content: str = ""
    task_type_id: str
    project_id: str
    status: TaskStatus = TaskStatus.NOT_DONE
    start_at: str
    end_at: Optional[str] = None
    is_major: bool = False

    def label(self) -> str:
        return f"Add task: {self.title}"

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TaskChanges(_WireModel):
    """Sparse change-set; only explicitly set fields are applied."""
    title: Optional[str] = None
    content: Optional[str] = None
    task_type_id: Optional[str] = None
    project_id: Optional[str] = None
    status: Optional[TaskStatus] = None
    start_at: Optional[str] = None
    # None with the field set means "clear the end time"
    end_at: Optional[str] = None
    is_major: Optional[bool] = None

    def is_empty(self) -> bool:
        return not self.model_fields_set

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class UpdateTaskOperation(_WireModel):
    """Patch one existing task."""
    action: Literal["update_task"] = "update_task"
    task_id: str
    changes: TaskChanges

    def label(self) -> str:
        return f"Update task: {self.task_id}"

    def to_payload(self) -> dict[str, Any]:
        return {"action": self.action, "taskId": self.task_id, "changes": self.changes.to_payload()}


class DeleteTaskOperation(_WireModel):
    """Delete one existing task."""
    action: Literal["delete_task"] = "delete_task"
    task_id: str
    reason: Optional[str] = None

    def label(self) -> str:
        return f"Delete task: {self.task_id}"

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


AgentOperation = Annotated[
    Union[CreateTaskOperation, UpdateTaskOperation, DeleteTaskOperation],
    Field(discriminator="action"),
]


class AgentProposal(BaseModel):
    """Reviewable batch of operations; list order is application order."""
    summary: str
    operations: list[AgentOperation] = Field(default_factory=list)


class AgentRunResult(BaseModel):
    """Outcome of one agent run: a question, a proposal, or just a message."""
    assistant_message: str
    needs_user_input: bool = False
    question: Optional[str] = None
    proposal: Optional[AgentProposal] = None
