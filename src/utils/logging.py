"""
Structured logging for agent runs.

Every record logged inside ``run_context`` carries the run id, and inside a
model round also the round number, so one request can be followed across
the transport, the tools and the applier. Free text is redacted before it
reaches a handler.
"""

import logging
import re
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional

from src.utils.logging_config import LoggingConfig, get_logger


_run_id_var: ContextVar[Optional[str]] = ContextVar("run_id", default=None)
_agent_round_var: ContextVar[Optional[int]] = ContextVar("agent_round", default=None)

# No phone pattern here: it would also match the ISO timestamps in task text
_REDACTIONS = (
    (re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE), "[REDACTED_EMAIL]"),
    (re.compile(r"(?i)bearer\s+[A-Za-z0-9._-]+"), "Bearer [REDACTED]"),
    (re.compile(r"sk-[A-Za-z0-9_-]{8,}"), "[REDACTED_API_KEY]"),
    (
        re.compile(r"(?i)(api[_-]?key|token|secret|password)([\"']?\s*[:=]\s*[\"']?)([A-Za-z0-9._-]{12,})"),
        r"\1\2[REDACTED]",
    ),
)


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex[:12]}"


def get_run_id() -> Optional[str]:
    return _run_id_var.get()


def get_agent_round() -> Optional[int]:
    return _agent_round_var.get()


def set_agent_round(round_number: Optional[int]) -> None:
    """Tag subsequent records of the current run with a 1-based model round."""
    _agent_round_var.set(round_number)


@contextmanager
def run_context(run_id: Optional[str] = None) -> Iterator[str]:
    """Scope one agent run; nested runs get their own id and round counter."""
    run_token = _run_id_var.set(run_id or new_run_id())
    round_token = _agent_round_var.set(None)
    try:
        yield _run_id_var.get()
    finally:
        _agent_round_var.reset(round_token)
        _run_id_var.reset(run_token)


def redact(text: str) -> str:
    """Replace e-mail addresses and credentials in free text."""
    if not text or not LoggingConfig.LOG_MASK_SENSITIVE:
        return text
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def mask_api_key(api_key: Optional[str]) -> Optional[str]:
    """Reduce an API key to a presence marker plus its last four characters."""
    if not api_key:
        return None
    if not LoggingConfig.LOG_MASK_SENSITIVE:
        return api_key
    return f"...{api_key[-4:]}" if len(api_key) > 8 else "[SET]"


def preview_text(text: str, max_length: Optional[int] = None) -> Optional[str]:
    """
    Loggable preview of a user utterance or model reply.

    None when message content logging is switched off or the text is empty.
    """
    if not LoggingConfig.LOG_MESSAGE_CONTENT or not text:
        return None

    limit = max_length if max_length is not None else LoggingConfig.LOG_PREVIEW_CHARS
    if len(text) > limit:
        text = text[:limit] + "..."
    return redact(text)


class StructuredLogger:
    """
    Keyword arguments become record attributes.

    ``bind`` returns a child that repeats the given fields on every record.
    """

    def __init__(self, logger: logging.Logger, **bound: Any):
        self.logger = logger
        self.bound = bound

    def bind(self, **fields: Any) -> "StructuredLogger":
        return StructuredLogger(self.logger, **{**self.bound, **fields})

    def _fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        extra: Dict[str, Any] = {}
        run_id = get_run_id()
        if run_id:
            extra["run_id"] = run_id
        agent_round = get_agent_round()
        if agent_round is not None:
            extra["agent_round"] = agent_round
        extra.update(self.bound)
        extra.update(fields)
        return extra

    def _log(self, level: int, message: str, exc_info: bool = False, **fields: Any) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, message, extra=self._fields(fields), exc_info=exc_info)

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, message, exc_info=exc_info, **fields)

    def exception(self, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, message, exc_info=True, **fields)


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))


@contextmanager
def log_timing(operation_name: str, logger: Optional[StructuredLogger] = None, **context: Any):
    """Log duration and outcome of the wrapped block; warn past the slow threshold."""
    if logger is None:
        logger = get_structured_logger(__name__)

    start_time = time.perf_counter()
    outcome = "error"
    try:
        yield
        outcome = "ok"
    finally:
        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.info(
            f"Completed {operation_name}",
            operation=operation_name,
            outcome=outcome,
            duration_ms=duration_ms,
            **context
        )
        if duration_ms > LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                f"Slow operation: {operation_name}",
                operation=operation_name,
                duration_ms=duration_ms,
                threshold_ms=LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS,
                **context
            )


def setup_logging() -> logging.Logger:
    """Configure handlers from the environment and return the package logger."""
    LoggingConfig.setup_logging()
    return get_logger("src")
