"""Gang workflow engine: teams of LLM-backed members run over a workflow graph."""

from .core import (
    GangEngine,
    WorkflowEngineError,
    create_gang,
    create_member,
    create_squad,
    create_workflow,
)

__version__ = "1.0.0"

__all__ = [
    "GangEngine",
    "WorkflowEngineError",
    "create_gang",
    "create_member",
    "create_squad",
    "create_workflow",
]
