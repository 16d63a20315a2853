"""Model transport - send role-tagged messages to a language model and return its raw text."""

import os
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from src.models.agent import ChatMessage
from src.utils.constants import LLM_CHAT_COMPLETIONS_URL, LLM_DEFAULT_MODEL
from src.utils.errors import TransportError
from src.utils.logging import get_structured_logger, mask_api_key

logger = get_structured_logger(__name__)

TEMPERATURE = 0.1
ERROR_BODY_EXCERPT_CHARS = 240
PROBE_BODY_EXCERPT_CHARS = 120
PROBE_TIMEOUT_SECONDS = 5.0
DEFAULT_TIMEOUT_SECONDS = 60.0

_MISSING = object()


def read_text_content(content: Any) -> str:
    """
    Flatten a model content field into text.

    Accepts a plain string, a list of parts (strings or objects with a
    ``text`` field, joined by newlines), or an object with ``text``/``content``.
    """
    if isinstance(content, str):
        return content

    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and isinstance(item.get("text"), str):
                parts.append(item["text"])
        return "\n".join(part for part in parts if part)

    if isinstance(content, dict):
        if isinstance(content.get("text"), str):
            return content["text"]
        if isinstance(content.get("content"), str):
            return content["content"]

    return ""


def _get_path(payload: Any, *path: Any) -> Any:
    current = payload
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return _MISSING
            current = current[key]
        else:
            if not isinstance(current, dict) or current.get(key) is None:
                return _MISSING
            current = current[key]
    return current


def extract_response_text(payload: Any) -> str:
    """Assistant text from choices[0].message.content, else message.content, else content."""
    for path in (("choices", 0, "message", "content"), ("message", "content"), ("content",)):
        value = _get_path(payload, *path)
        if value is not _MISSING:
            return read_text_content(value)
    return ""


class ModelTransport(ABC):
    """Opaque request/response collaborator for the agent orchestrator."""

    @abstractmethod
    async def complete(self, messages: list[ChatMessage]) -> str:
        """Return the trimmed, non-empty assistant text for ``messages``."""


class HttpChatTransport(ModelTransport):
    """Chat-completions style endpoint over HTTP POST."""

    def __init__(
        self,
        url: str = LLM_CHAT_COMPLETIONS_URL,
        model: str = LLM_DEFAULT_MODEL,
        api_key: str = "",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.model = model.strip() or LLM_DEFAULT_MODEL
        self.api_key = api_key.strip()
        self.timeout = timeout
        self._client = client
        self.log = logger.bind(llm_url=url, llm_model=self.model)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, body: dict, timeout: float) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.post(self.url, json=body, headers=self._headers(), timeout=timeout)
            async with httpx.AsyncClient(timeout=timeout) as client:
                return await client.post(self.url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            raise TransportError(f"Network error calling model endpoint: {e}")

    async def complete(self, messages: list[ChatMessage]) -> str:
        body = {
            "model": self.model,
            "messages": [message.model_dump() for message in messages],
            "stream": False,
            "temperature": TEMPERATURE,
        }

        self.log.info(
            "Model request started",
            message_count=len(messages),
            has_api_key=bool(self.api_key)
        )
        start_time = time.time()
        response = await self._post(body, self.timeout)
        latency_ms = round((time.time() - start_time) * 1000, 2)

        if not response.is_success:
            excerpt = response.text[:ERROR_BODY_EXCERPT_CHARS]
            self.log.warning(
                "Model request failed",
                status_code=response.status_code,
                llm_latency_ms=latency_ms
            )
            raise TransportError(
                f"Model call failed ({response.status_code}): {excerpt}",
                status_code=response.status_code,
                body_excerpt=excerpt,
            )

        try:
            payload = response.json()
        except ValueError:
            raise TransportError(
                "Model endpoint returned a non-JSON body",
                status_code=response.status_code,
                body_excerpt=response.text[:ERROR_BODY_EXCERPT_CHARS],
            )

        content = extract_response_text(payload).strip()
        if not content:
            raise TransportError("No text found in model response", status_code=response.status_code)

        self.log.info(
            "Model response received",
            llm_latency_ms=latency_ms,
            response_length=len(content)
        )
        return content

    async def probe(self) -> None:
        """Send a tiny ping request; raises TransportError when the endpoint is unhealthy."""
        body = {
            "model": self.model,
            "messages": [{"role": "user", "content": "ping"}],
            "stream": False,
            "temperature": 0,
            "max_tokens": 2,
        }
        response = await self._post(body, PROBE_TIMEOUT_SECONDS)
        if not response.is_success:
            excerpt = response.text[:PROBE_BODY_EXCERPT_CHARS]
            raise TransportError(
                f"Connection check failed ({response.status_code}): {excerpt}",
                status_code=response.status_code,
                body_excerpt=excerpt,
            )


def get_llm_model():
    """Get the configured LangChain chat model."""
    provider = os.environ.get("LLM_PROVIDER", "anthropic").lower()

    logger.debug("Getting LLM model", llm_provider=provider)

    if provider == "anthropic":
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise TransportError("ANTHROPIC_API_KEY not set")
        model_name = os.environ.get("LLM_MODEL", "claude-sonnet-4-20250514")
        return ChatAnthropic(model=model_name, api_key=api_key, temperature=TEMPERATURE)
    elif provider == "openai":
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise TransportError("OPENAI_API_KEY not set")
        model_name = os.environ.get("LLM_MODEL", LLM_DEFAULT_MODEL)
        return ChatOpenAI(model=model_name, api_key=api_key, temperature=TEMPERATURE)
    else:
        raise TransportError(f"Unsupported LLM provider: {provider}")


_LANGCHAIN_ROLES = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}


class LangChainChatTransport(ModelTransport):
    """Hosted provider through a LangChain chat model."""

    def __init__(self, model=None):
        self.model = model if model is not None else get_llm_model()

    async def complete(self, messages: list[ChatMessage]) -> str:
        lc_messages: list[BaseMessage] = [
            _LANGCHAIN_ROLES[message.role](content=message.content) for message in messages
        ]

        start_time = time.time()
        try:
            response = await self.model.ainvoke(lc_messages)
        except Exception as e:
            raise TransportError(f"LLM provider call failed: {e}")

        content = read_text_content(getattr(response, "content", response)).strip()
        logger.info(
            "LLM provider response received",
            llm_latency_ms=round((time.time() - start_time) * 1000, 2),
            response_length=len(content)
        )
        if not content:
            raise TransportError("No text found in model response")
        return content


# Global transport instance
_model_transport: Optional[ModelTransport] = None


def get_model_transport() -> ModelTransport:
    """Get or create the configured transport (LLM_TRANSPORT=http|langchain)."""
    global _model_transport
    if _model_transport is None:
        kind = os.environ.get("LLM_TRANSPORT", "http").lower()
        if kind == "langchain":
            _model_transport = LangChainChatTransport()
        elif kind == "http":
            api_key = os.environ.get("LLM_API_KEY", "")
            _model_transport = HttpChatTransport(
                url=os.environ.get("LLM_CHAT_COMPLETIONS_URL", LLM_CHAT_COMPLETIONS_URL),
                model=os.environ.get("LLM_MODEL", LLM_DEFAULT_MODEL),
                api_key=api_key,
                timeout=float(os.environ.get("LLM_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS))),
            )
            logger.info("HTTP model transport initialized", llm_api_key=mask_api_key(api_key))
        else:
            raise TransportError(f"Unsupported LLM transport: {kind}")
    return _model_transport
