"""Assistant session - conversation, pending proposal and selection state for one user."""

from typing import Iterable, Optional

from src.models.agent import AgentProposal, AgentRunResult, ConversationMessage
from src.models.undo import UndoEntry
from src.services.llm_transport import HttpChatTransport, ModelTransport
from src.services.proposal_applier import ApplyResult, apply_proposal
from src.services.schedule_agent import ScheduleAgent
from src.services.task_service import TaskService
from src.utils.errors import (
    NothingSelectedError,
    ProtocolError,
    RoundBudgetExceededError,
    TransportError,
)
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

HISTORY_WINDOW = 10

GREETING = (
    "Describe the schedule change you need in plain language. I will look up what I need "
    "and show you a change proposal to review before anything is applied."
)
NETWORK_HINT = "Check the model server connection and try again."
_NETWORK_MARKERS = ("failed to fetch", "network", "econnrefused", "connect")


def to_friendly_error(error: Exception) -> str:
    """Error text shown in the conversation; network failures get a connection hint."""
    raw = str(error) or "An error occurred while processing the request."
    lower = raw.lower()
    if any(marker in lower for marker in _NETWORK_MARKERS):
        return f"{raw}\n{NETWORK_HINT}"
    return raw


def format_assistant_reply(result: AgentRunResult) -> str:
    if result.needs_user_input and result.question:
        return f"{result.assistant_message}\n\nQuestion: {result.question}"
    return result.assistant_message


class AssistantSession:
    """
    Conversation workspace around the agent.

    Holds the visible conversation, the proposal under review with its
    selected operation indexes, and the last user message for replay.
    """

    def __init__(self, service: TaskService, agent: Optional[ScheduleAgent] = None):
        self.service = service
        self.agent = agent if agent is not None else ScheduleAgent()
        self.conversation: list[ConversationMessage] = [
            ConversationMessage(role="assistant", content=GREETING)
        ]
        self.pending_proposal: Optional[AgentProposal] = None
        self.selected_indexes: set[int] = set()
        self.last_user_message = ""
        self.error = ""
        self.apply_result = ""
        self.endpoint_status = "checking"
        self.endpoint_message = ""

    def _say(self, content: str) -> None:
        self.conversation.append(ConversationMessage(role="assistant", content=content))

    def _set_proposal(self, proposal: Optional[AgentProposal]) -> None:
        self.pending_proposal = proposal
        self.selected_indexes = set(range(len(proposal.operations))) if proposal else set()

    async def check_endpoint(self, transport: Optional[ModelTransport] = None) -> bool:
        """Probe the HTTP model endpoint; other transports are assumed reachable."""
        transport = transport if transport is not None else self.agent.transport
        if not isinstance(transport, HttpChatTransport):
            self.endpoint_status, self.endpoint_message = "ok", "OK"
            return True

        try:
            await transport.probe()
        except TransportError as e:
            self.endpoint_status, self.endpoint_message = "error", to_friendly_error(e)
            logger.warning("Model endpoint probe failed", status_code=e.status_code)
            return False

        self.endpoint_status, self.endpoint_message = "ok", "OK"
        return True

    async def send(self, message: str) -> Optional[AgentRunResult]:
        """Run the agent for one user message. Blank input is ignored."""
        user_message = message.strip()
        if not user_message:
            return None

        history = self.conversation[-HISTORY_WINDOW:]
        self.error = ""
        self.apply_result = ""
        self.last_user_message = user_message
        self.conversation.append(ConversationMessage(role="user", content=user_message))

        try:
            snapshot = await self.service.snapshot()
            result = await self.agent.run(user_message, history, snapshot)
        except (TransportError, ProtocolError, RoundBudgetExceededError) as e:
            friendly = to_friendly_error(e)
            logger.warning("Agent run failed", error=str(e), error_type=type(e).__name__)
            self.error = friendly
            self._say(f"Failed to process the request: {friendly}")
            self.endpoint_status, self.endpoint_message = "error", friendly
            return None

        self._say(format_assistant_reply(result))
        self._set_proposal(result.proposal)
        self.endpoint_status, self.endpoint_message = "ok", "OK"
        return result

    async def retry(self) -> Optional[AgentRunResult]:
        """Replay the last user message."""
        if not self.last_user_message:
            return None
        return await self.send(self.last_user_message)

    def toggle_operation(self, index: int) -> None:
        if self.pending_proposal is None or not 0 <= index < len(self.pending_proposal.operations):
            return
        self.selected_indexes ^= {index}

    def select_all(self) -> None:
        self._set_proposal(self.pending_proposal)

    def clear_selection(self) -> None:
        self.selected_indexes = set()

    def discard_proposal(self) -> None:
        self._set_proposal(None)

    async def apply_selected(self, indexes: Optional[Iterable[int]] = None) -> Optional[ApplyResult]:
        """
        Apply the selected operations and keep the residual proposal for review.

        Returns None (and records an error) when nothing is pending or selected.
        """
        if self.pending_proposal is None:
            return None

        try:
            result = await apply_proposal(
                self.pending_proposal,
                self.selected_indexes if indexes is None else indexes,
                self.service,
            )
        except NothingSelectedError as e:
            self.error = str(e)
            return None

        self.error = ""
        self.apply_result = result.summary_text()
        self._say(result.log_text())
        self._set_proposal(result.residual)
        return result

    async def undo(self) -> Optional[UndoEntry]:
        entry = await self.service.undo_last_change()
        if entry is None:
            self.apply_result = "Nothing to undo."
        else:
            self.apply_result = f"Undone: {entry.description}"
        return entry
