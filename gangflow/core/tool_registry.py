"""Tool Registry component resolving tool names to capabilities."""

import importlib
import importlib.util
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

from ..models.core import CustomToolDefinition
from ..tools import ToolCapability, as_tool, builtin_tools
from .exceptions import CustomToolNotFoundError, ToolRegistryError, UnknownToolError
from .logging import get_logger
from .observer import GangObserver

logger = get_logger(__name__)


class ModuleLoader(Protocol):
    """Loads the module a custom tool is exported from."""

    def load(self, module: str, base_dir: Path) -> Any:
        ...


class ImportlibModuleLoader:
    """Loads ``.py`` files relative to a base directory, or dotted module names."""

    def load(self, module: str, base_dir: Path) -> ModuleType:
        if module.endswith(".py") or "/" in module or "\\" in module:
            return self._load_file((Path(base_dir) / module).resolve())
        return importlib.import_module(module)

    def _load_file(self, path: Path) -> ModuleType:
        if not path.is_file():
            raise ImportError(f"No module file at {path}")
        spec = importlib.util.spec_from_file_location(f"gangflow_custom_{path.stem}", path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot build import spec for {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module


class ObservedTool:
    """A tool wrapper that reports calls and results to the observer.

    Results and failures of the underlying tool pass through unchanged.
    """

    def __init__(self, tool: ToolCapability, member_name: str, observer: GangObserver):
        self.tool = tool
        self.name = tool.name
        self.description = tool.description
        self.member_name = member_name
        self.observer = observer

    async def invoke(self, input: Any) -> Any:
        await self.observer.on_tool_call(self.member_name, self.name, input)
        result = await self.tool.invoke(input)
        await self.observer.on_tool_result(self.member_name, self.name, input, result)
        return result


class ToolRegistry:
    """Registry mapping tool names to capabilities for one engine."""

    def __init__(
        self,
        observer: Optional[GangObserver] = None,
        tools: Optional[Mapping[str, ToolCapability]] = None,
        module_loader: Optional[ModuleLoader] = None
    ):
        """Initialize the tool registry.

        Args:
            observer: Observer notified of tool calls by wrapped tools
            tools: Initial name to capability mapping. Defaults to the built-in tools.
            module_loader: Loader for custom tool modules
        """
        self.observer = observer
        self.module_loader = module_loader or ImportlibModuleLoader()
        self._tools: Dict[str, ToolCapability] = dict(tools) if tools is not None else _default_tools()

    def register(self, name: str, tool: ToolCapability) -> None:
        """Register (or replace) a tool under ``name``."""
        if not name or not name.strip():
            raise ToolRegistryError("Tool name cannot be empty", operation="register")
        self._tools[name.strip()] = tool
        logger.debug(f"Registered tool '{name}'")

    def get(self, name: str) -> ToolCapability:
        """Retrieve a tool by name.

        Raises:
            UnknownToolError: If no tool is registered under ``name``
        """
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)
        return tool

    def tool_exists(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> Dict[str, str]:
        """List registered tools with their descriptions."""
        return {name: getattr(tool, "description", "") for name, tool in self._tools.items()}

    def load_custom_tools(
        self,
        definitions: Optional[List[CustomToolDefinition]],
        base_dir: Union[str, Path]
    ) -> List[str]:
        """Load and register custom tools from caller-supplied modules.

        Returns:
            Names of the tools registered

        Raises:
            ToolRegistryError: If a module cannot be imported
            CustomToolNotFoundError: If a module lacks the declared export
        """
        registered = []
        for definition in definitions or []:
            try:
                module = self.module_loader.load(definition.module, Path(base_dir))
            except ImportError as e:
                raise ToolRegistryError(
                    f"Cannot import custom tool module {definition.module}: {e}",
                    tool_name=definition.name,
                    operation="load_custom_tools"
                )

            export = getattr(module, definition.export, None)
            if export is None and isinstance(module, Mapping):
                export = module.get(definition.export)
            if export is None:
                raise CustomToolNotFoundError(definition.export, definition.module)

            try:
                tool = as_tool(export, name=definition.name)
            except TypeError as e:
                raise ToolRegistryError(
                    f"Custom tool '{definition.name}' is not usable: {e}",
                    tool_name=definition.name,
                    operation="load_custom_tools"
                )
            self.register(definition.name, tool)
            registered.append(definition.name)
            logger.info(f"Loaded custom tool '{definition.name}' from {definition.module}:{definition.export}")
        return registered

    def wrap_tool(self, tool: ToolCapability, member_name: str) -> ToolCapability:
        """Return ``tool`` wrapped to emit tool_call/tool_result events.

        Without an observer the tool is returned as-is.
        """
        if self.observer is None:
            return tool
        return ObservedTool(tool, member_name, self.observer)


def _default_tools() -> Dict[str, ToolCapability]:
    from ..config import get_config

    config = get_config()
    return builtin_tools(
        base_dir=config.base_dir,
        mcp_server_url=config.mcp_server_url,
        mcp_auth_token=config.mcp_auth_token,
        timeout=config.tool_timeout,
    )
