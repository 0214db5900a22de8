"""Custom exceptions for the gang workflow engine with detailed error information."""

from datetime import datetime
from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for better classification."""
    VALIDATION = "validation"
    EXECUTION = "execution"
    NETWORK = "network"
    CONFIGURATION = "configuration"


class WorkflowEngineError(Exception):
    """Base exception for all gang workflow engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.EXECUTION,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.category = category
        self.details = details or {}
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__
        }

    def add_context(self, **kwargs):
        """Add additional context to the exception."""
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs):
        """Add additional details to the exception."""
        self.details.update(kwargs)
        return self


class ConfigurationError(WorkflowEngineError):
    """Raised when a gang configuration is invalid or incomplete."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.CONFIGURATION)
        super().__init__(message, **kwargs)
        if config_key:
            self.add_context(config_key=config_key)


class MissingFieldError(ConfigurationError):
    """Raised when a required top-level configuration field is absent."""

    def __init__(self, field: str, **kwargs):
        super().__init__(
            f"Missing required gang config field: {field}",
            config_key=field,
            **kwargs
        )
        self.field = field


class EmptyMemberListError(ConfigurationError):
    """Raised when a gang declares no members."""

    def __init__(self, **kwargs):
        super().__init__("Gang must have at least one member", config_key="members", **kwargs)


class UnknownEntryError(ConfigurationError):
    """Raised when workflow.entry names neither a member nor a squad."""

    def __init__(self, entry: Optional[str], **kwargs):
        super().__init__(
            f"Workflow entry '{entry}' is not a defined member or squad",
            config_key="workflow.entry",
            **kwargs
        )
        self.entry = entry


class DuplicateNodeError(ConfigurationError):
    """Raised when a member or squad name is declared more than once."""

    def __init__(self, name: str, **kwargs):
        super().__init__(
            f"Node name '{name}' is declared more than once across members and squads",
            **kwargs
        )
        self.add_context(node_name=name)


class UnknownSquadMemberError(ConfigurationError):
    """Raised when a squad lists a member that is not declared."""

    def __init__(self, squad: str, member: str, **kwargs):
        super().__init__(f"Unknown member in squad {squad}: {member}", **kwargs)
        self.add_context(squad=squad, member=member)


class InvalidConfigError(ConfigurationError):
    """Raised when the configuration does not match the expected schema."""

    def __init__(
        self,
        message: str,
        validation_errors: Optional[List[str]] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.validation_errors = validation_errors or []
        if validation_errors:
            self.add_details(validation_errors=validation_errors)


class ToolRegistryError(WorkflowEngineError):
    """Raised when tool registry operations fail."""

    def __init__(
        self,
        message: str,
        tool_name: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if tool_name:
            self.add_context(tool_name=tool_name)
        if operation:
            self.add_context(operation=operation)


class UnknownToolError(ToolRegistryError):
    """Raised when a tool name does not resolve to a registered capability."""

    def __init__(self, tool_name: str, **kwargs):
        super().__init__(f"Unknown tool: {tool_name}", tool_name=tool_name, operation="get", **kwargs)


class CustomToolNotFoundError(ToolRegistryError):
    """Raised when a custom tool module lacks the declared export."""

    def __init__(self, export: str, module: str, **kwargs):
        super().__init__(
            f'Custom tool export "{export}" not found in {module}',
            tool_name=export,
            operation="load_custom_tools",
            **kwargs
        )
        self.add_context(module=module)


class ExecutionEngineError(WorkflowEngineError):
    """Raised when graph execution fails."""

    def __init__(
        self,
        message: str,
        run_id: Optional[str] = None,
        workflow: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.EXECUTION,
            **kwargs
        )
        if run_id:
            self.add_context(run_id=run_id)
        if workflow:
            self.add_context(workflow=workflow)


class UnknownNodeError(ExecutionEngineError):
    """Raised when the graph transitions to a name that is neither member nor squad."""

    def __init__(self, node_name: str, **kwargs):
        super().__init__(f"Unknown node (neither member nor squad): {node_name}", **kwargs)
        self.node_name = node_name
        self.add_context(node_name=node_name)


class NoTestsDefinedError(WorkflowEngineError):
    """Raised when the test harness is invoked without any test definitions."""

    def __init__(self, workflow: Optional[str] = None, **kwargs):
        super().__init__(
            "No tests array defined in gang configuration",
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.VALIDATION,
            **kwargs
        )
        if workflow:
            self.add_context(workflow=workflow)


class LLMCapabilityError(WorkflowEngineError):
    """Raised by the HTTP LLM capability on transport or API failures."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.NETWORK,
            **kwargs
        )
        self.status_code = status_code
        if endpoint:
            self.add_context(endpoint=endpoint)
        if status_code is not None:
            self.add_details(status_code=status_code)


def create_error_response(error: WorkflowEngineError) -> Dict[str, Any]:
    """Create a standardized error response from a WorkflowEngineError."""
    return {
        "error": error.error_code,
        "message": error.message,
        "details": {
            **error.details,
            "severity": error.severity.value,
            "category": error.category.value,
            "timestamp": error.timestamp.isoformat()
        },
        "context": error.context
    }
