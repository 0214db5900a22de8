"""JSON-RPC tool for calling methods on an MCP-style server."""

import itertools
import json
from typing import Any, Dict, Optional

import httpx

from ..core.logging import get_logger
from .base import FunctionTool

logger = get_logger(__name__)

_request_ids = itertools.count(1)


def make_mcp_call(
    server_url: str,
    auth_token: Optional[str] = None,
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> FunctionTool:
    """Build the ``mcp_call`` tool bound to one JSON-RPC endpoint.

    Tool input is ``{"method": str, "params": dict}``, given as a mapping or as
    a JSON string. The result is returned as text.
    """

    async def mcp_call(input: Any) -> str:
        if isinstance(input, str):
            try:
                input = json.loads(input)
            except json.JSONDecodeError:
                raise ValueError("mcp_call expects JSON input of shape {\"method\": ..., \"params\": ...}")
        if not isinstance(input, dict) or not input.get("method"):
            raise ValueError("mcp_call expects a 'method' name")

        payload: Dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": next(_request_ids),
            "method": input["method"],
            "params": input.get("params") or {},
        }
        headers = {"Content-Type": "application/json"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"

        logger.info(f"Calling JSON-RPC method {payload['method']} on {server_url}")
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.post(server_url, headers=headers, json=payload)
        if resp.status_code >= 400:
            raise RuntimeError(f"MCP server HTTP error {resp.status_code}")

        data = resp.json()
        if data.get("error"):
            raise RuntimeError(f"MCP error: {json.dumps(data['error'])}")
        return json.dumps(data.get("result"), indent=2)

    return FunctionTool(
        mcp_call,
        name="mcp_call",
        description=(
            'Call a method on the configured MCP server via JSON-RPC. '
            'Input must be JSON: {"method": string, "params": object}.'
        ),
    )
