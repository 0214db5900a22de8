"""Core gang workflow engine components."""

from .exceptions import (
    WorkflowEngineError,
    ConfigurationError,
    MissingFieldError,
    EmptyMemberListError,
    UnknownEntryError,
    DuplicateNodeError,
    UnknownSquadMemberError,
    InvalidConfigError,
    ToolRegistryError,
    UnknownToolError,
    CustomToolNotFoundError,
    ExecutionEngineError,
    UnknownNodeError,
    NoTestsDefinedError,
    LLMCapabilityError,
)
from .logging import setup_logging, get_logger
from .memory import GangMemory
from .observer import GangObserver
from .tool_registry import ToolRegistry
from .member_runner import MemberRunner, parse_member_output
from .engine import (
    GangEngine,
    create_gang,
    create_member,
    create_squad,
    create_workflow,
)

__all__ = [
    "WorkflowEngineError",
    "ConfigurationError",
    "MissingFieldError",
    "EmptyMemberListError",
    "UnknownEntryError",
    "DuplicateNodeError",
    "UnknownSquadMemberError",
    "InvalidConfigError",
    "ToolRegistryError",
    "UnknownToolError",
    "CustomToolNotFoundError",
    "ExecutionEngineError",
    "UnknownNodeError",
    "NoTestsDefinedError",
    "LLMCapabilityError",
    "setup_logging",
    "get_logger",
    "GangMemory",
    "GangObserver",
    "ToolRegistry",
    "MemberRunner",
    "parse_member_output",
    "GangEngine",
    "create_gang",
    "create_member",
    "create_squad",
    "create_workflow",
]
