"""Core Pydantic models for the gang workflow engine."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


ALWAYS = "always"


class SquadMode(str, Enum):
    """Execution mode of a squad."""
    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"


class EventType(str, Enum):
    """Enumeration of observability event types."""
    RUN_START = "run_start"
    RUN_END = "run_end"
    NODE_START = "node_start"
    NODE_END = "node_end"
    MEMBER_MESSAGE = "member_message"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"


class _ConfigModel(BaseModel):
    """Base for configuration models: immutable, camelCase aliases accepted."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @model_validator(mode='before')
    @classmethod
    def drop_null_optionals(cls, data):
        """An explicit null for an optional key (e.g. an empty YAML `squads:`) means the key is absent."""
        if not isinstance(data, dict):
            return data
        optional = set()
        for name, field in cls.model_fields.items():
            if not field.is_required():
                optional.update({name, field.alias or name})
        return {k: v for k, v in data.items() if not (v is None and k in optional)}


class LLMOptions(_ConfigModel):
    """Options passed to the LLM capability factory."""
    model: Optional[str] = Field(None, description="Model identifier")
    temperature: float = Field(0.4, description="Sampling temperature")


class MemberDefinition(_ConfigModel):
    """Definition of a gang member."""
    name: str = Field(..., description="Unique member name")
    role: str = Field("", description="Role persona text")
    tools: List[str] = Field(default_factory=list, description="Names of tools the member may call")
    memory_id: str = Field("shared", alias="memoryId", description="Memory bucket shared with same-id members")

    @field_validator('name')
    @classmethod
    def validate_name(cls, name):
        """Ensure member name is not empty."""
        if not name or not name.strip():
            raise ValueError("Member name cannot be empty")
        return name.strip()


class SquadDefinition(_ConfigModel):
    """Definition of a squad: members executed together."""
    name: str = Field(..., description="Unique squad name")
    members: List[str] = Field(..., description="Ordered member names")
    mode: SquadMode = Field(SquadMode.PARALLEL, description="parallel fan-out or sequential chaining")

    @field_validator('name')
    @classmethod
    def validate_name(cls, name):
        """Ensure squad name is not empty."""
        if not name or not name.strip():
            raise ValueError("Squad name cannot be empty")
        return name.strip()


class WorkflowStep(_ConfigModel):
    """Directed, conditionally labeled edge of the workflow graph."""
    from_node: str = Field(..., alias="from", description="Source node name")
    to: Optional[str] = Field(None, description="Target node name; null ends the run")
    when: Optional[str] = Field(None, description="Hint token or the 'always' sentinel")


class WorkflowGraph(_ConfigModel):
    """Entry node plus ordered steps."""
    entry: Optional[str] = Field(None, description="Name of the first member or squad")
    steps: List[WorkflowStep] = Field(default_factory=list, description="Ordered edges")


class MarkdownReportConfig(_ConfigModel):
    """Markdown transcript settings."""
    enabled: bool = False
    file: Optional[str] = None


class ObservabilityConfig(_ConfigModel):
    """Observer settings."""
    enabled: bool = True
    log_level: str = Field("info", alias="logLevel")
    markdown_report: Optional[MarkdownReportConfig] = Field(None, alias="markdownReport")


class CustomToolDefinition(_ConfigModel):
    """A tool loaded from an export of a caller-supplied module."""
    name: str
    module: str
    export: str


class ToolsConfig(_ConfigModel):
    """Tool declarations beyond the built-ins."""
    custom: List[CustomToolDefinition] = Field(default_factory=list)


class AssertionDefinition(_ConfigModel):
    """A single assertion over a test run."""
    type: str
    target: Optional[str] = None
    value: Optional[str] = None

    @field_validator('value', mode='before')
    @classmethod
    def coerce_value(cls, value):
        """Expected values are compared as text."""
        if value is None or isinstance(value, str):
            return value
        return str(value)


class TestDefinition(_ConfigModel):
    """A regression test: an input plus assertions over member outputs."""
    __test__: ClassVar[bool] = False

    name: Optional[str] = None
    input: str = ""
    asserts: List[AssertionDefinition] = Field(default_factory=list)


class WorkflowConfig(_ConfigModel):
    """Complete gang configuration."""
    name: str = Field("unnamed-gang", description="Workflow name, used for report file names")
    version: Union[int, str] = Field(..., description="Configuration version")
    llm: LLMOptions = Field(..., description="LLM options")
    members: List[MemberDefinition] = Field(..., description="Ordered member definitions")
    squads: List[SquadDefinition] = Field(default_factory=list)
    workflow: WorkflowGraph = Field(..., description="Workflow graph")
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    tests: List[TestDefinition] = Field(default_factory=list)

    def node_names(self) -> List[str]:
        """Return member names followed by squad names, in declaration order."""
        return [m.name for m in self.members] + [s.name for s in self.squads]


class StructuredOutput(BaseModel):
    """A member's output parsed from the model's raw text."""
    model_config = ConfigDict(populate_by_name=True)

    content: str = ""
    next_hint: Optional[str] = Field(None, alias="next")
    actions: List[Any] = Field(default_factory=list)
    raw: str = ""
    parsed: Optional[Dict[str, Any]] = None


class MemberOutput(StructuredOutput):
    """Structured output tagged with the member that produced it."""
    member: str


class MemberNodeResult(BaseModel):
    """Result of visiting a member node."""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["member"] = "member"
    node_name: str = Field(..., alias="nodeName")
    output: StructuredOutput
    next_hint: Optional[str] = Field(None, alias="next")


class SquadNodeResult(BaseModel):
    """Result of visiting a squad node."""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["squad"] = "squad"
    node_name: str = Field(..., alias="nodeName")
    mode: SquadMode
    outputs: List[MemberOutput] = Field(default_factory=list)
    next_hint: Optional[str] = Field(None, alias="next")


NodeResult = Annotated[Union[MemberNodeResult, SquadNodeResult], Field(discriminator="type")]


class RunRecord(BaseModel):
    """Everything a single graph execution produced."""
    model_config = ConfigDict(populate_by_name=True)

    run_id: str = Field(..., alias="runId")
    workflow: str
    input: str
    nodes: List[NodeResult] = Field(default_factory=list)
    final: Optional[NodeResult] = None
    visited: int = 0
    started_at: datetime = Field(default_factory=datetime.utcnow, alias="startedAt")
    completed_at: Optional[datetime] = Field(None, alias="completedAt")


class ObservabilityEvent(BaseModel):
    """A timestamped event recorded by the observer."""
    type: EventType
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    payload: Dict[str, Any] = Field(default_factory=dict)


class AssertionResult(BaseModel):
    """Outcome of evaluating one assertion."""
    model_config = ConfigDict(populate_by_name=True)

    type: str
    target: Optional[str] = None
    value: Optional[str] = None
    passed: bool
    actual_snippet: Optional[str] = Field(None, alias="actualSnippet")
    error: Optional[str] = None


class TestCaseResult(BaseModel):
    """A test definition, the run it produced and its assertion outcomes."""
    __test__: ClassVar[bool] = False

    test: TestDefinition
    run: RunRecord
    assertions: List[AssertionResult] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(a.passed for a in self.assertions)
