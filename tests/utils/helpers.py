"""Test helper functions."""

import json
from typing import Any, Dict, List, Union

import httpx

from src.models.agent import ChatMessage
from src.services.llm_transport import ModelTransport


class ScriptedTransport(ModelTransport):
    """Fake model transport replaying canned replies and recording every request."""

    def __init__(self, *replies: Union[str, dict, Exception]):
        self.replies = list(replies)
        self.requests: List[List[ChatMessage]] = []

    async def complete(self, messages: List[ChatMessage]) -> str:
        self.requests.append(messages)
        if not self.replies:
            raise AssertionError("ScriptedTransport ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply if isinstance(reply, str) else json.dumps(reply)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def user_payload(self, call_index: int) -> Dict[str, Any]:
        """Decoded user-turn payload of the n-th request."""
        return json.loads(self.requests[call_index][-1].content)


def create_tool_round(*calls: Dict[str, Any], message: str = "Looking that up.") -> Dict[str, Any]:
    """Model reply that only requests tool calls."""
    return {
        "assistantMessage": message,
        "needsUserInput": False,
        "toolCalls": list(calls),
    }


def create_proposal_round(*operations: Dict[str, Any], summary: str = "Proposed changes",
                          message: str = "Here is the proposal.") -> Dict[str, Any]:
    """Model reply carrying a final proposal."""
    return {
        "assistantMessage": message,
        "needsUserInput": False,
        "proposal": {"summary": summary, "operations": list(operations)},
    }


def chat_completion_body(content: Any) -> Dict[str, Any]:
    """OpenAI-style chat completions response body."""
    return {"choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]}


def create_mock_http_client(responses: List[httpx.Response], captured: List[httpx.Request]) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered in order from ``responses``."""
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return queue.pop(0)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
