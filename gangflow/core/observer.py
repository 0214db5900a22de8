"""Observer: in-memory event sink and Markdown run transcript."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..models.core import EventType, MarkdownReportConfig, ObservabilityConfig, ObservabilityEvent
from .logging import get_logger, log_with_context, resolve_level

logger = get_logger("gangflow.observer")


class GangObserver:
    """Records timestamped workflow events.

    When ``enabled`` is false every ``on_*`` call is a no-op; disabling the
    observer omits auditing but never changes what a run does.
    """

    def __init__(self, config: Optional[ObservabilityConfig] = None):
        config = config or ObservabilityConfig()
        self.enabled = config.enabled
        self.log_level = config.log_level
        self.markdown_report: Optional[MarkdownReportConfig] = config.markdown_report
        self.events: List[ObservabilityEvent] = []
        self._level = resolve_level(config.log_level)

    def _record(self, event_type: EventType, payload: Dict[str, Any]) -> None:
        if not self.enabled:
            return
        event = ObservabilityEvent(type=event_type, payload=payload)
        self.events.append(event)
        log_with_context(logger, self._level, f"{event_type.value}", **_summarize(payload))

    async def on_run_start(self, run_id: str, workflow: str, input: str) -> None:
        self._record(EventType.RUN_START, {"run_id": run_id, "workflow": workflow, "input": input})

    async def on_run_end(self, run_id: str, workflow: str, input: str, final_node: Optional[str]) -> None:
        self._record(EventType.RUN_END, {
            "run_id": run_id,
            "workflow": workflow,
            "input": input,
            "final_node": final_node,
        })

    async def on_node_start(self, run_id: str, node_name: str) -> None:
        self._record(EventType.NODE_START, {"run_id": run_id, "node_name": node_name})

    async def on_node_end(self, run_id: str, node_name: str, result: Dict[str, Any]) -> None:
        self._record(EventType.NODE_END, {"run_id": run_id, "node_name": node_name, "result": result})

    async def on_member_message(
        self,
        phase: str,
        member_name: str,
        input: str,
        raw_output: Optional[str] = None,
        structured: Optional[Dict[str, Any]] = None
    ) -> None:
        payload: Dict[str, Any] = {"phase": phase, "member_name": member_name, "input": input}
        if phase == "after":
            payload["raw_output"] = raw_output
            payload["structured"] = structured
        self._record(EventType.MEMBER_MESSAGE, payload)

    async def on_tool_call(self, member_name: str, tool_name: str, input: Any) -> None:
        self._record(EventType.TOOL_CALL, {"member_name": member_name, "tool_name": tool_name, "input": input})

    async def on_tool_result(self, member_name: str, tool_name: str, input: Any, result: Any) -> None:
        self._record(EventType.TOOL_RESULT, {
            "member_name": member_name,
            "tool_name": tool_name,
            "input": input,
            "result": result,
        })

    def events_of(self, event_type: EventType) -> List[ObservabilityEvent]:
        """Return recorded events of one type, in order."""
        return [event for event in self.events if event.type == event_type]

    def report_path(self, base_dir: Union[str, Path], workflow_name: str) -> Path:
        """Where the Markdown transcript is written."""
        base = Path(base_dir)
        if self.markdown_report and self.markdown_report.file:
            return (base / self.markdown_report.file).resolve()
        return (base / "reports" / f"{workflow_name}_run.md").resolve()

    async def flush_report(self, base_dir: Union[str, Path], workflow_name: str) -> Optional[Path]:
        """Write the Markdown transcript if one was requested.

        Returns:
            The report path, or None when no report was requested.
        """
        if not self.enabled:
            return None
        if not self.markdown_report or not self.markdown_report.enabled:
            return None

        path = self.report_path(base_dir, workflow_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render_markdown(), encoding="utf-8")
        logger.info(f"Wrote run report for '{workflow_name}' to {path}")
        return path

    def render_markdown(self) -> str:
        lines = ["# Gang Workflow Run Report", ""]
        for event in self.events:
            ts = event.timestamp.isoformat()
            payload = event.payload
            if event.type == EventType.MEMBER_MESSAGE:
                lines.extend([
                    f"## Gang Member {payload.get('member_name')} ({payload.get('phase')}, {ts})",
                    "",
                    "### Input",
                    "",
                    "```",
                    str(payload.get("input") or ""),
                    "```",
                    "",
                ])
                if payload.get("phase") == "after":
                    raw = payload.get("raw_output")
                    lines.extend([
                        "### Output (raw)",
                        "",
                        "```",
                        raw if isinstance(raw, str) else json.dumps(raw, indent=2, default=str),
                        "```",
                        "",
                    ])
            elif event.type == EventType.TOOL_CALL:
                lines.extend([
                    f"### Tool call: {payload.get('tool_name')} (member: {payload.get('member_name')}, {ts})",
                    "",
                    "```json",
                    json.dumps({"input": payload.get("input")}, indent=2, default=str),
                    "```",
                    "",
                ])
            elif event.type == EventType.TOOL_RESULT:
                lines.extend([
                    f"### Tool result: {payload.get('tool_name')} (member: {payload.get('member_name')}, {ts})",
                    "",
                    "```json",
                    json.dumps({"result": payload.get("result")}, indent=2, default=str),
                    "```",
                    "",
                ])
        return "\n".join(lines)


def _summarize(payload: Dict[str, Any]) -> Dict[str, Any]:
    # Keep log lines short; the full payload stays on the event.
    summary = {}
    for key, value in payload.items():
        if isinstance(value, str):
            summary[key] = value if len(value) <= 200 else value[:200] + "..."
        elif value is None or isinstance(value, (int, float, bool)):
            summary[key] = value
    return summary
