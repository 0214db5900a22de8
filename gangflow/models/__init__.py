"""Data models for the gang workflow engine."""

from .core import (
    ALWAYS,
    SquadMode,
    EventType,
    LLMOptions,
    MemberDefinition,
    SquadDefinition,
    WorkflowStep,
    WorkflowGraph,
    MarkdownReportConfig,
    ObservabilityConfig,
    CustomToolDefinition,
    ToolsConfig,
    AssertionDefinition,
    TestDefinition,
    WorkflowConfig,
    StructuredOutput,
    MemberOutput,
    MemberNodeResult,
    SquadNodeResult,
    NodeResult,
    RunRecord,
    ObservabilityEvent,
    AssertionResult,
    TestCaseResult,
)

__all__ = [
    "ALWAYS",
    "SquadMode",
    "EventType",
    "LLMOptions",
    "MemberDefinition",
    "SquadDefinition",
    "WorkflowStep",
    "WorkflowGraph",
    "MarkdownReportConfig",
    "ObservabilityConfig",
    "CustomToolDefinition",
    "ToolsConfig",
    "AssertionDefinition",
    "TestDefinition",
    "WorkflowConfig",
    "StructuredOutput",
    "MemberOutput",
    "MemberNodeResult",
    "SquadNodeResult",
    "NodeResult",
    "RunRecord",
    "ObservabilityEvent",
    "AssertionResult",
    "TestCaseResult",
]
