"""Seed data and fixed identifiers."""

from src.models.task import Project, TaskType

DEFAULT_PROJECT_ID = "project-general"

# Fixed for intranet deployment; override with LLM_CHAT_COMPLETIONS_URL
LLM_CHAT_COMPLETIONS_URL = "http://127.0.0.1:3000/api/chat/completions"
LLM_DEFAULT_MODEL = "gpt-4o-mini"

DEFAULT_PROJECT = Project(
    id=DEFAULT_PROJECT_ID,
    name="General",
    color="#334155",
    description="Default project",
    is_active=True,
)

DEFAULT_TASK_TYPES = [
    TaskType(id="type-write", name="Write", color="#2563eb", is_default=True, order=1),
    TaskType(id="type-submit", name="Submit", color="#dc2626", is_default=True, order=2),
    TaskType(id="type-report", name="Report", color="#0f766e", is_default=True, order=3),
    TaskType(id="type-event", name="Event", color="#f59e0b", is_default=True, order=4),
    TaskType(id="type-trip", name="Business trip", color="#7c3aed", is_default=True, order=5),
    TaskType(id="type-leave", name="Leave", color="#0ea5e9", is_default=True, order=6),
    TaskType(id="type-etc", name="Other", color="#6b7280", is_default=True, order=7),
]
