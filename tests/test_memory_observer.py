"""Tests for shared memory and the observer."""

import pytest

from gangflow.core.memory import GangMemory
from gangflow.core.observer import GangObserver
from gangflow.models import EventType, ObservabilityConfig


class TestGangMemory:
    """Test cases for memory buckets."""

    def test_unseen_and_empty_buckets(self):
        memory = GangMemory()
        assert memory.get("unseen") == []
        assert memory.get("") == []

    def test_append_preserves_order(self):
        memory = GangMemory()
        memory.append("team", [{"role": "user", "content": "1"}])
        memory.append("team", [{"role": "assistant", "content": "2"}, {"role": "user", "content": "3"}])
        assert [e["content"] for e in memory.get("team")] == ["1", "2", "3"]
        assert memory.bucket_ids() == ["team"]

    def test_append_to_empty_id_is_noop(self):
        memory = GangMemory()
        memory.append("", [{"role": "user", "content": "x"}])
        assert memory.bucket_ids() == []

    def test_get_returns_copy(self):
        memory = GangMemory()
        memory.append("a", [{"role": "user", "content": "x"}])
        memory.get("a").append({"role": "user", "content": "sneaky"})
        assert len(memory.get("a")) == 1
        assert memory.snapshot() == {"a": [{"role": "user", "content": "x"}]}


class TestGangObserver:
    """Test cases for event recording and reports."""

    @pytest.mark.asyncio
    async def test_records_events_in_order(self):
        observer = GangObserver()
        await observer.on_run_start("r1", "wf", "in")
        await observer.on_node_start("r1", "a")
        await observer.on_node_end("r1", "a", {"type": "member"})
        await observer.on_run_end("r1", "wf", "in", "a")

        assert [e.type for e in observer.events] == [
            EventType.RUN_START, EventType.NODE_START, EventType.NODE_END, EventType.RUN_END
        ]
        assert observer.events[0].payload == {"run_id": "r1", "workflow": "wf", "input": "in"}
        assert observer.events[0].timestamp <= observer.events[-1].timestamp

    @pytest.mark.asyncio
    async def test_disabled_is_noop(self, tmp_path):
        observer = GangObserver(ObservabilityConfig(enabled=False, markdownReport={"enabled": True}))
        await observer.on_run_start("r", "wf", "x")
        await observer.on_tool_call("m", "t", "x")
        assert observer.events == []
        assert await observer.flush_report(tmp_path, "wf") is None
        assert not (tmp_path / "reports").exists()

    @pytest.mark.asyncio
    async def test_flush_without_request_is_noop(self, tmp_path):
        observer = GangObserver()
        await observer.on_member_message("before", "m", "x")
        assert await observer.flush_report(tmp_path, "wf") is None

    @pytest.mark.asyncio
    async def test_flush_default_path(self, tmp_path):
        observer = GangObserver(ObservabilityConfig(markdownReport={"enabled": True}))
        await observer.on_member_message("before", "writer", "draft please")
        await observer.on_tool_call("writer", "web_search", {"query": "q"})
        await observer.on_tool_result("writer", "web_search", {"query": "q"}, "found")
        await observer.on_member_message("after", "writer", "draft please", raw_output='{"content": "done"}')

        path = await observer.flush_report(tmp_path, "wf")

        assert path == (tmp_path / "reports" / "wf_run.md").resolve()
        text = path.read_text()
        assert text.startswith("# Gang Workflow Run Report")
        assert "## Gang Member writer (before" in text
        assert "draft please" in text
        assert "### Tool call: web_search (member: writer" in text
        assert "### Tool result: web_search (member: writer" in text
        assert '"result": "found"' in text
        assert "### Output (raw)" in text
        assert text.index("Tool call") < text.index("Output (raw)")

    @pytest.mark.asyncio
    async def test_flush_configured_path(self, tmp_path):
        observer = GangObserver(ObservabilityConfig(markdownReport={"enabled": True, "file": "deep/dir/log.md"}))
        path = await observer.flush_report(tmp_path, "wf")
        assert path == (tmp_path / "deep" / "dir" / "log.md").resolve()
        assert path.exists()

    @pytest.mark.asyncio
    async def test_after_event_carries_structure(self):
        observer = GangObserver()
        await observer.on_member_message("after", "m", "in", raw_output="raw", structured={"content": "raw"})
        payload = observer.events_of(EventType.MEMBER_MESSAGE)[0].payload
        assert payload["raw_output"] == "raw"
        assert payload["structured"] == {"content": "raw"}
