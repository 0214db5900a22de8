"""Tests for member output parsing and the member runner."""

import json

import pytest

from gangflow.core.member_runner import MAX_ITERATIONS_REPLY, MemberRunner, parse_member_output
from gangflow.core.memory import GangMemory
from gangflow.core.observer import GangObserver
from gangflow.core.tool_registry import ToolRegistry
from gangflow.models import EventType, MemberDefinition
from gangflow.tools import FunctionTool


def make_runner(llm, tools=None, observer=None, memory=None, **definition):
    definition.setdefault("name", "worker")
    definition.setdefault("role", "Does work")
    definition.setdefault("tools", list((tools or {}).keys()))
    observer = observer or GangObserver()
    registry = ToolRegistry(observer, tools=tools or {})
    return MemberRunner(
        MemberDefinition(**definition),
        llm,
        tools or {},
        memory or GangMemory(),
        registry,
        observer,
    )


class TestParseMemberOutput:
    """Test cases for parsing model replies."""

    def test_well_formed_reply(self):
        raw = '{"content": "hello", "next": "b", "actions": [{"type": "review", "details": "x"}]}'
        output = parse_member_output(raw)
        assert output.content == "hello"
        assert output.next_hint == "b"
        assert output.actions == [{"type": "review", "details": "x"}]
        assert output.raw == raw
        assert output.parsed["content"] == "hello"

    def test_missing_fields_default(self):
        output = parse_member_output("{}")
        assert output.content == ""
        assert output.next_hint is None
        assert output.actions == []
        assert output.parsed == {}

    def test_fenced_json(self):
        output = parse_member_output('```json\n{"content": "fenced", "next": null}\n```')
        assert output.content == "fenced"
        assert output.parsed is not None

    def test_plain_text_falls_back(self):
        output = parse_member_output("just words")
        assert output.content == "just words"
        assert output.next_hint is None
        assert output.actions == []
        assert output.parsed is None

    def test_non_object_json_falls_back(self):
        output = parse_member_output("[1, 2]")
        assert output.content == "[1, 2]"
        assert output.parsed is None

    def test_non_text_content_serialized(self):
        output = parse_member_output('{"content": {"score": 3}}')
        assert json.loads(output.content) == {"score": 3}

    def test_empty_next_is_no_hint(self):
        assert parse_member_output('{"content": "x", "next": ""}').next_hint is None

    def test_single_action_wrapped(self):
        assert parse_member_output('{"content": "x", "actions": {"type": "t"}}').actions == [{"type": "t"}]


class TestMemberRunnerWithoutTools:
    """Test cases for the single-exchange path."""

    @pytest.mark.asyncio
    async def test_prompt_includes_history_and_context(self, scripted_llm, make_reply):
        memory = GangMemory()
        memory.append("shared", [{"role": "user", "content": "earlier"}, {"role": "assistant", "content": "before"}])
        llm = scripted_llm(replies={"worker": make_reply("done")})
        runner = make_runner(llm, memory=memory)

        output = await runner.run("task", {"previous": {"content": "ctx"}})

        messages = llm.calls[0][1]
        assert messages[0]["role"] == "system"
        assert messages[0]["content"].startswith("You are worker, role: Does work.")
        assert messages[1:3] == memory.get("shared")[:2]
        assert messages[-1]["content"].startswith("Gang workflow input:\ntask\n\nContext:\n")
        assert '"previous"' in messages[-1]["content"]
        assert output.content == "done"

    @pytest.mark.asyncio
    async def test_memory_appended(self, scripted_llm, make_reply):
        memory = GangMemory()
        runner = make_runner(scripted_llm(replies={"worker": make_reply("answer")}), memory=memory, memoryId="team")
        await runner.run("question")
        assert memory.get("team") == [
            {"role": "user", "content": "question"},
            {"role": "assistant", "content": "answer"},
        ]
        assert memory.get("shared") == []

    @pytest.mark.asyncio
    async def test_member_message_events(self, scripted_llm):
        observer = GangObserver()
        runner = make_runner(scripted_llm(replies={"worker": "not json"}), observer=observer)
        output = await runner.run("in")

        before, after = observer.events_of(EventType.MEMBER_MESSAGE)
        assert before.payload == {"phase": "before", "member_name": "worker", "input": "in"}
        assert after.payload["phase"] == "after"
        assert after.payload["raw_output"] == "not json"
        assert after.payload["structured"]["content"] == "not json"
        assert output.content == "not json"

    @pytest.mark.asyncio
    async def test_llm_failure_propagates(self, scripted_llm):
        runner = make_runner(scripted_llm(failures={"worker": ConnectionError("offline")}))
        with pytest.raises(ConnectionError):
            await runner.run("in")


class TestMemberRunnerWithTools:
    """Test cases for the tool-calling loop."""

    @pytest.fixture
    def shout(self):
        return FunctionTool(lambda text: str(text).upper(), name="shout", description="Upper-case text")

    @pytest.mark.asyncio
    async def test_tool_call_then_answer(self, scripted_llm, make_reply, shout):
        observer = GangObserver()
        llm = scripted_llm(replies={"worker": [
            '{"tool": "shout", "input": "hi"}',
            make_reply("shouted HI"),
        ]})
        runner = make_runner(llm, tools={"shout": shout}, observer=observer)

        output = await runner.run("say hi")

        assert output.content == "shouted HI"
        assert len(llm.calls) == 2
        second = llm.calls[1][1]
        assert second[-1] == {"role": "user", "content": "Tool result (shout):\nHI"}
        assert "- shout: Upper-case text" in second[0]["content"]

        call = observer.events_of(EventType.TOOL_CALL)[0]
        result = observer.events_of(EventType.TOOL_RESULT)[0]
        assert call.payload == {"member_name": "worker", "tool_name": "shout", "input": "hi"}
        assert result.payload["result"] == "HI"

    @pytest.mark.asyncio
    async def test_before_event_carries_full_prompt(self, scripted_llm, shout):
        observer = GangObserver()
        runner = make_runner(scripted_llm(), tools={"shout": shout}, observer=observer)
        await runner.run("task")
        before = observer.events_of(EventType.MEMBER_MESSAGE)[0]
        assert before.payload["input"].startswith("Gang workflow input:\ntask")

    @pytest.mark.asyncio
    async def test_unavailable_tool_reported_to_model(self, scripted_llm, make_reply, shout):
        llm = scripted_llm(replies={"worker": ['{"tool": "missing", "input": 1}', make_reply("gave up")]})
        runner = make_runner(llm, tools={"shout": shout})
        output = await runner.run("x")
        assert output.content == "gave up"
        assert "Tool missing is not available" in llm.calls[1][1][-1]["content"]

    @pytest.mark.asyncio
    async def test_tool_round_limit(self, scripted_llm, shout):
        llm = scripted_llm(replies={"worker": '{"tool": "shout", "input": "again"}'})
        runner = make_runner(llm, tools={"shout": shout})
        runner.max_tool_rounds = 3
        output = await runner.run("loop")
        assert len(llm.calls) == 3
        assert output.content == MAX_ITERATIONS_REPLY

    @pytest.mark.asyncio
    async def test_tool_failure_propagates(self, scripted_llm):
        def broken(_):
            raise ValueError("tool broke")

        observer = GangObserver()
        tool = FunctionTool(broken, name="broken", description="Always fails")
        llm = scripted_llm(replies={"worker": '{"tool": "broken", "input": null}'})
        runner = make_runner(llm, tools={"broken": tool}, observer=observer)

        with pytest.raises(ValueError, match="tool broke"):
            await runner.run("x")
        assert len(observer.events_of(EventType.TOOL_CALL)) == 1
        assert observer.events_of(EventType.TOOL_RESULT) == []

    @pytest.mark.asyncio
    async def test_memory_appended_on_tool_path(self, scripted_llm, make_reply, shout):
        memory = GangMemory()
        runner = make_runner(scripted_llm(replies={"worker": make_reply("final")}), tools={"shout": shout}, memory=memory)
        await runner.run("q")
        assert memory.get("shared")[-1] == {"role": "assistant", "content": "final"}
