"""Agent orchestrator - bounded round trips between the model, read-only tools and the parser."""

import json
from typing import Optional

from src.models.agent import (
    AgentRunResult,
    ChatMessage,
    ConversationMessage,
    ToolExecutionResult,
)
from src.models.task import DomainSnapshot, TaskStatus
from src.services.llm_transport import ModelTransport, get_model_transport
from src.services.response_parser import (
    MAX_TOOL_CALLS_PER_ROUND,
    parse_model_payload,
    parse_proposal,
    parse_tool_calls,
)
from src.services.tool_executor import execute_tool_calls
from src.utils.dates import to_iso_now
from src.utils.errors import RoundBudgetExceededError
from src.utils.logging import (
    get_structured_logger,
    log_timing,
    preview_text,
    run_context,
    set_agent_round,
)

logger = get_structured_logger(__name__)

MAX_ROUNDS = 4
CONVERSATION_WINDOW = 8

PROPOSAL_FALLBACK_MESSAGE = "I prepared a change proposal based on your request. Please review it."
DEFAULT_FALLBACK_MESSAGE = "I interpreted your request."

SYSTEM_PROMPT = """
You are the agent of a work-schedule management app.
Output a single JSON object only. Never output any text outside the JSON.

Rules:
1) Output schema:
{
  "assistantMessage": "string",
  "needsUserInput": true|false,
  "userQuestion": "string, optional",
  "toolCalls": [{"tool":"...","args":{...}}],
  "proposal": {
    "summary": "string",
    "operations": [
      {"action":"create_task","title":"...","content":"...","taskTypeId":"...","projectId":"...","status":"NOT_DONE","startAt":"...","endAt":"...","isMajor":false},
      {"action":"update_task","taskId":"...","changes":{...}},
      {"action":"delete_task","taskId":"...","reason":"..."}
    ]
  }
}

2) Never put toolCalls and proposal in the same response.
3) Before updating or deleting, look up the candidate tasks with toolCalls first, read toolResults, then build the proposal.
4) If the request is ambiguous, set needsUserInput=true and ask in userQuestion.
5) The proposal is a draft for review. The user decides what is applied.
6) status must be exactly one of NOT_DONE / ON_HOLD / DONE.
7) Times are ISO-8601 date-time strings with an offset (e.g. 2026-02-11T09:00:00.000Z). In update_task changes, "endAt": null clears the end time.

Available tools:
- list_projects: {}
- list_task_types: {}
- search_tasks: { "keyword"?: string, "projectId"?: string, "status"?: "NOT_DONE"|"ON_HOLD"|"DONE", "limit"?: number }
- get_task: { "taskId": string }
- current_datetime: {}
""".strip()


def build_prompt_messages(
    user_message: str,
    conversation: list[ConversationMessage],
    snapshot: DomainSnapshot,
    tool_results: list[ToolExecutionResult],
) -> list[ChatMessage]:
    """One system instruction plus one user turn carrying the whole run context."""
    user_payload = {
        "now": to_iso_now(),
        "conversation": [message.model_dump() for message in conversation[-CONVERSATION_WINDOW:]],
        "userRequest": user_message,
        "knownChoices": {
            "status": [status.value for status in TaskStatus],
            "projectList": [
                {"id": project.id, "name": project.name, "isActive": project.is_active}
                for project in snapshot.active_projects()
            ],
            "taskTypeList": [
                {"id": task_type.id, "name": task_type.name, "isActive": task_type.is_active}
                for task_type in snapshot.active_task_types()
            ],
        },
        "toolResults": [result.model_dump(mode="json") for result in tool_results],
    }

    return [
        ChatMessage(role="system", content=SYSTEM_PROMPT),
        ChatMessage(role="user", content=json.dumps(user_payload, indent=2, ensure_ascii=False)),
    ]


class ScheduleAgent:
    """Turns one user utterance into a clarifying question or a reviewable proposal."""

    def __init__(self, transport: Optional[ModelTransport] = None, max_rounds: int = MAX_ROUNDS):
        self.transport = transport if transport is not None else get_model_transport()
        self.max_rounds = max_rounds

    async def run(
        self,
        user_message: str,
        conversation: list[ConversationMessage],
        snapshot: DomainSnapshot,
    ) -> AgentRunResult:
        with run_context():
            logger.info(
                "Agent run started",
                message_preview=preview_text(user_message, max_length=100),
                conversation_turns=len(conversation),
                task_count=len(snapshot.tasks)
            )
            with log_timing("agent_run", logger=logger):
                return await self._run_rounds(user_message, conversation, snapshot)

    async def _run_rounds(
        self,
        user_message: str,
        conversation: list[ConversationMessage],
        snapshot: DomainSnapshot,
    ) -> AgentRunResult:
        tool_results: list[ToolExecutionResult] = []

        for round_index in range(self.max_rounds):
            set_agent_round(round_index + 1)
            messages = build_prompt_messages(user_message, conversation, snapshot, tool_results)
            raw = await self.transport.complete(messages)
            payload = parse_model_payload(raw)

            tool_calls = parse_tool_calls(payload.get("toolCalls"))[:MAX_TOOL_CALLS_PER_ROUND]
            if tool_calls:
                if payload.get("proposal") is not None:
                    logger.info("Proposal ignored, tool calls take precedence")
                round_results = execute_tool_calls(tool_calls, snapshot)
                tool_results.extend(round_results)
                logger.info(
                    "Agent round executed tools",
                    tools=[call.tool.value for call in tool_calls],
                    accumulated_results=len(tool_results)
                )
                continue

            result = self._final_result(payload)
            logger.info(
                "Agent run finished",
                rounds_used=round_index + 1,
                needs_user_input=result.needs_user_input,
                operation_count=len(result.proposal.operations) if result.proposal else 0
            )
            return result

        logger.warning("Agent round budget exhausted", max_rounds=self.max_rounds)
        raise RoundBudgetExceededError(
            "The model kept calling tools and never produced a final proposal."
        )

    @staticmethod
    def _final_result(payload: dict) -> AgentRunResult:
        proposal = parse_proposal(payload.get("proposal"))

        assistant_message = payload.get("assistantMessage")
        if not isinstance(assistant_message, str) or not assistant_message.strip():
            assistant_message = PROPOSAL_FALLBACK_MESSAGE if proposal else DEFAULT_FALLBACK_MESSAGE

        question = payload.get("userQuestion")
        return AgentRunResult(
            assistant_message=assistant_message,
            needs_user_input=payload.get("needsUserInput") is True,
            question=question if isinstance(question, str) else None,
            proposal=proposal,
        )


async def run_schedule_agent(
    user_message: str,
    conversation: list[ConversationMessage],
    snapshot: DomainSnapshot,
    transport: Optional[ModelTransport] = None,
) -> AgentRunResult:
    """Run one agent turn with the configured (or given) transport."""
    return await ScheduleAgent(transport=transport).run(user_message, conversation, snapshot)
