"""Pytest configuration and fixtures."""

import asyncio
import json
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from gangflow.config import reset_config
from gangflow.core.engine import GangEngine
from gangflow.core.llm import LLMResponse


def reply(content: Any = "", next: Optional[str] = None, actions: Optional[List[Any]] = None) -> str:
    """A well-formed member reply."""
    return json.dumps({"content": content, "next": next, "actions": actions or []})


class ScriptedLLM:
    """Deterministic LLM stub answering per member.

    Members are recognised from the "You are <name>, role:" persona line.
    A scripted reply may be a string, a dict (sent as JSON), a callable
    receiving the messages, or a list consumed one reply per call.
    """

    def __init__(
        self,
        replies: Optional[Dict[str, Any]] = None,
        default: Any = None,
        delays: Optional[Dict[str, float]] = None,
        failures: Optional[Dict[str, Exception]] = None
    ):
        self.replies = dict(replies or {})
        self.default = default if default is not None else reply("ok")
        self.delays = delays or {}
        self.failures = failures or {}
        self.calls: List[Tuple[str, List[Dict[str, str]]]] = []
        self.completed: List[str] = []

    @staticmethod
    def member_of(messages: List[Dict[str, str]]) -> str:
        match = re.match(r"You are ([^,]+), role:", messages[0]["content"])
        return match.group(1) if match else ""

    def calls_for(self, member: str) -> List[List[Dict[str, str]]]:
        return [messages for name, messages in self.calls if name == member]

    async def invoke(self, messages):
        member = self.member_of(messages)
        self.calls.append((member, [dict(m) for m in messages]))

        if self.delays.get(member):
            await asyncio.sleep(self.delays[member])
        if member in self.failures:
            raise self.failures[member]

        scripted = self.replies.get(member, self.default)
        if isinstance(scripted, list):
            scripted = scripted.pop(0) if len(scripted) > 1 else scripted[0]
        if callable(scripted):
            scripted = scripted(messages)
        if isinstance(scripted, dict):
            scripted = json.dumps(scripted)

        self.completed.append(member)
        return LLMResponse(content=scripted)

    async def stream(self, messages):
        response = await self.invoke(messages)
        yield response


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Run every test without GANGFLOW_* settings from the host environment."""
    import os

    for key in list(os.environ):
        if key.startswith("GANGFLOW_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def scripted_llm() -> Callable[..., ScriptedLLM]:
    """Factory for scripted LLM stubs."""
    return ScriptedLLM


@pytest.fixture
def make_reply() -> Callable[..., str]:
    return reply


@pytest.fixture
def single_member_config() -> Dict[str, Any]:
    return {
        "name": "solo",
        "version": 1,
        "llm": {"model": "stub-model", "temperature": 0.1},
        "members": [{"name": "m1", "role": "Solo worker", "tools": [], "memoryId": "shared"}],
        "workflow": {"entry": "m1", "steps": []},
        "observability": {"enabled": True},
    }


@pytest.fixture
def make_engine(tmp_path):
    """Build an engine with a stub LLM, no built-in tools and a temporary base directory."""

    def _make(config, llm, tools=None, **kwargs) -> GangEngine:
        return GangEngine(
            config,
            llm_factory=lambda options: llm,
            tools=tools if tools is not None else {},
            base_dir=tmp_path,
            **kwargs
        )

    return _make
