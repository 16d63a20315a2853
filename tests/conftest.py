"""Shared pytest fixtures and configuration."""

import os
import pytest

from src.services.task_service import TaskService
from src.services.task_store import InMemoryTaskStore
from src.services.undo_stack import UndoStack

# Keep tests off real model endpoints and databases
os.environ.setdefault("TASK_STORE", "memory")
os.environ.setdefault("LLM_TRANSPORT", "http")
os.environ.setdefault("LLM_CHAT_COMPLETIONS_URL", "http://llm.test/api/chat/completions")
os.environ.setdefault("LLM_MODEL", "gpt-4o-mini")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")


@pytest.fixture
def memory_store():
    """Empty in-memory task store."""
    return InMemoryTaskStore()


@pytest.fixture
def undo_stack():
    return UndoStack()


@pytest.fixture
async def task_service(memory_store, undo_stack):
    """Task service over a store seeded with the default project and task types."""
    service = TaskService(memory_store, undo_stack)
    await service.bootstrap()
    return service

