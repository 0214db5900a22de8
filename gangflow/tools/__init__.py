"""Built-in tools available to gang members."""

from pathlib import Path
from typing import Dict, Optional, Union

from .base import FunctionTool, ToolCapability, argument, as_tool, tool
from .computer_tools import make_list_directory, make_read_file
from .mcp_tools import make_mcp_call
from .web_tools import extract_visible_text, scrape_url, web_search


def builtin_tools(
    base_dir: Optional[Union[str, Path]] = None,
    mcp_server_url: Optional[str] = None,
    mcp_auth_token: Optional[str] = None,
    timeout: float = 30.0
) -> Dict[str, ToolCapability]:
    """Return the built-in tool mapping.

    ``mcp_call`` is only present when a server URL is given.
    """
    root = Path(base_dir) if base_dir is not None else None
    tools: Dict[str, ToolCapability] = {
        web_search.name: web_search,
        scrape_url.name: scrape_url,
    }
    for built in (make_list_directory(root), make_read_file(root)):
        tools[built.name] = built
    if mcp_server_url:
        mcp = make_mcp_call(mcp_server_url, auth_token=mcp_auth_token, timeout=timeout)
        tools[mcp.name] = mcp
    return tools


__all__ = [
    "FunctionTool",
    "ToolCapability",
    "argument",
    "as_tool",
    "tool",
    "builtin_tools",
    "extract_visible_text",
    "make_list_directory",
    "make_read_file",
    "make_mcp_call",
    "scrape_url",
    "web_search",
]
