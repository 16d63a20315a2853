"""Logging configuration read from the environment."""

import os
import logging
import sys
from pythonjsonlogger import jsonlogger

# Client libraries whose per-request records drown out the agent's own
QUIET_LOGGERS = ("httpx", "httpcore", "urllib3", "supabase", "postgrest", "anthropic", "openai", "langchain")


class LoggingConfig:
    """Logging switches, read once at import."""

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    # Include previews of user utterances and model replies
    LOG_MESSAGE_CONTENT = os.environ.get("LOG_MESSAGE_CONTENT", "true").lower() == "true"
    LOG_MASK_SENSITIVE = os.environ.get("LOG_MASK_SENSITIVE", "true").lower() == "true"
    LOG_PREVIEW_CHARS = int(os.environ.get("LOG_PREVIEW_CHARS", "200"))
    LOG_SLOW_OPERATION_THRESHOLD_MS = int(os.environ.get("LOG_SLOW_OPERATION_THRESHOLD_MS", "5000"))

    @classmethod
    def level(cls) -> int:
        return getattr(logging, cls.LOG_LEVEL, logging.INFO)

    @classmethod
    def build_formatter(cls) -> logging.Formatter:
        if cls.LOG_FORMAT == "json":
            return jsonlogger.JsonFormatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s",
                rename_fields={"asctime": "time", "levelname": "level"},
            )
        return logging.Formatter("%(asctime)s %(levelname)-7s %(name)s [%(run_id)s] %(message)s")

    @classmethod
    def setup_logging(cls) -> None:
        """Route every record through one stdout handler on the root logger."""
        root_logger = logging.getLogger()
        root_logger.setLevel(cls.level())
        root_logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(cls.level())
        handler.setFormatter(cls.build_formatter())
        handler.addFilter(_RunIdDefault())
        root_logger.addHandler(handler)

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


class _RunIdDefault(logging.Filter):
    """Text format needs run_id on records logged outside an agent run."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "run_id"):
            record.run_id = "-"
        return True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
