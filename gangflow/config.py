"""Configuration management for the gang workflow engine."""

import json
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from .core.exceptions import ConfigurationError
from .core.logging import DEFAULT_FORMAT


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AppConfig(BaseModel):
    """Application configuration settings."""

    # Application settings
    app_name: str = Field(default="Gang Workflow Engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Filesystem settings
    base_dir: str = Field(default=".", description="Directory reports and custom tool modules resolve against")
    reports_dir: str = Field(default="gang_reports", description="Directory for test reports, relative to base_dir")

    # LLM settings
    llm_base_url: str = Field(
        default="https://api.groq.com/openai/v1",
        description="Base URL of an OpenAI-compatible chat completions API"
    )
    llm_api_key: Optional[str] = Field(default=None, description="API key for the LLM endpoint")
    llm_default_model: str = Field(default="openai/gpt-oss-120b", description="Model used when a gang names none")
    llm_max_concurrency: int = Field(default=1, description="Maximum in-flight LLM requests")
    llm_timeout: float = Field(default=120.0, description="LLM request timeout in seconds")

    # Tool settings
    mcp_server_url: Optional[str] = Field(default=None, description="JSON-RPC endpoint for the mcp_call tool")
    mcp_auth_token: Optional[str] = Field(default=None, description="Bearer token for the JSON-RPC endpoint")
    tool_timeout: float = Field(default=30.0, description="HTTP timeout for built-in tools in seconds")

    # Logging settings
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(
        default=DEFAULT_FORMAT,
        description="Log message format"
    )
    log_file: Optional[str] = Field(default=None, description="Log file path")
    structured_logs: bool = Field(default=False, description="Emit JSON log lines")

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        """Validate port number."""
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator('llm_max_concurrency')
    @classmethod
    def validate_llm_max_concurrency(cls, v):
        """Validate the LLM request bound."""
        if v < 1:
            raise ValueError("LLM max concurrency must be at least 1")
        return v

    @field_validator('llm_timeout', 'tool_timeout')
    @classmethod
    def validate_timeouts(cls, v):
        """Validate timeout values."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @property
    def reports_path(self) -> Path:
        """Absolute directory for test reports."""
        return (Path(self.base_dir) / self.reports_dir).resolve()

    def get_uvicorn_config(self) -> Dict[str, Any]:
        """Get Uvicorn server configuration."""
        return {
            "host": self.host,
            "port": self.port,
            "log_level": self.log_level.value.lower(),
            "access_log": self.debug
        }

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Create configuration from environment variables."""
        def get_env(key: str, default=None, type_func=str):
            """Get environment variable with type conversion."""
            value = os.getenv(f"GANGFLOW_{key}")
            if value is None:
                return default
            if type_func == bool:
                return str(value).lower() in ('true', '1', 'yes', 'on')
            return type_func(value)

        return cls(
            app_name=get_env("APP_NAME", "Gang Workflow Engine"),
            app_version=get_env("APP_VERSION", "1.0.0"),
            debug=get_env("DEBUG", False, bool),
            host=get_env("HOST", "0.0.0.0"),
            port=get_env("PORT", 8000, int),
            base_dir=get_env("BASE_DIR", "."),
            reports_dir=get_env("REPORTS_DIR", "gang_reports"),
            llm_base_url=get_env("LLM_BASE_URL", "https://api.groq.com/openai/v1"),
            llm_api_key=get_env("LLM_API_KEY", None),
            llm_default_model=get_env("LLM_DEFAULT_MODEL", "openai/gpt-oss-120b"),
            llm_max_concurrency=get_env("LLM_MAX_CONCURRENCY", 1, int),
            llm_timeout=get_env("LLM_TIMEOUT", 120.0, float),
            mcp_server_url=get_env("MCP_SERVER_URL", None),
            mcp_auth_token=get_env("MCP_AUTH_TOKEN", None),
            tool_timeout=get_env("TOOL_TIMEOUT", 30.0, float),
            log_level=LogLevel(get_env("LOG_LEVEL", "INFO").upper()),
            log_format=get_env("LOG_FORMAT", DEFAULT_FORMAT),
            log_file=get_env("LOG_FILE", None),
            structured_logs=get_env("STRUCTURED_LOGS", False, bool)
        )


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> AppConfig:
    """Load configuration from a .env file (if any) and environment variables."""
    global _config

    from dotenv import load_dotenv
    if config_file and os.path.exists(config_file):
        load_dotenv(config_file)
    elif os.path.exists('.env'):
        load_dotenv('.env')

    _config = AppConfig.from_env()

    return _config


def reset_config():
    """Reset the global configuration instance (mainly for testing)."""
    global _config
    _config = None


def load_workflow_config(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a gang configuration mapping from a JSON or YAML file.

    Raises:
        ConfigurationError: If the file is missing, has an unknown suffix or does not hold a mapping
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise ConfigurationError(f"Gang configuration file not found: {file_path}")

    text = file_path.read_text(encoding="utf-8")
    suffix = file_path.suffix.lower()
    try:
        if suffix == ".json":
            data = json.loads(text)
        elif suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            raise ConfigurationError(
                f"Unsupported gang configuration format '{suffix}'; use .json, .yaml or .yml"
            )
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot parse gang configuration {file_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Gang configuration {file_path} must contain a mapping")
    return data


# Built-in gang templates, runnable by name from the command line
PREDEFINED_GANGS: Dict[str, Dict[str, Any]] = {
    "research": {
        "name": "research-gang",
        "version": 1,
        "llm": {"model": "openai/gpt-oss-120b", "temperature": 0.4},
        "members": [
            {"name": "researcher", "role": "Research specialist who finds and analyzes information", "tools": [], "memoryId": "shared"},
            {"name": "writer", "role": "Content creator who synthesizes research into clear output", "tools": [], "memoryId": "shared"},
        ],
        "workflow": {"entry": "researcher", "steps": []},
        "observability": {"enabled": False},
        "tests": [
            {
                "name": "basic research test",
                "input": "Research AI trends",
                "asserts": [{"type": "contains", "target": "researcher", "value": "response"}],
            }
        ],
    },
    "analysis": {
        "name": "analysis-gang",
        "version": 1,
        "llm": {"model": "openai/gpt-oss-120b", "temperature": 0.3},
        "members": [
            {"name": "analyzer", "role": "Data analysis specialist", "tools": [], "memoryId": "shared"},
            {"name": "reporter", "role": "Report generation specialist", "tools": [], "memoryId": "shared"},
        ],
        "workflow": {"entry": "analyzer", "steps": []},
        "observability": {"enabled": False},
        "tests": [
            {
                "name": "basic analysis test",
                "input": "Analyze project files",
                "asserts": [{"type": "contains", "target": "analyzer", "value": "response"}],
            }
        ],
    },
}


def resolve_gang_config(name_or_path: str) -> Dict[str, Any]:
    """Return a predefined template by name, otherwise load the named file.

    Raises:
        ConfigurationError: If neither a template nor a readable file matches
    """
    if name_or_path in PREDEFINED_GANGS:
        return json.loads(json.dumps(PREDEFINED_GANGS[name_or_path]))
    path = Path(name_or_path)
    if path.suffix.lower() in (".json", ".yaml", ".yml"):
        return load_workflow_config(path)
    raise ConfigurationError(
        f"Unknown predefined gang: {name_or_path}. Available: {', '.join(sorted(PREDEFINED_GANGS))}"
    )
