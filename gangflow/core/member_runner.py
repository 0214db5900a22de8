"""Member runner: one gang member's exchange with the language model."""

import json
import re
from typing import Any, Dict, List, Mapping, Optional

from ..models.core import MemberDefinition, StructuredOutput
from ..tools import ToolCapability
from .llm import LLMCapability, Message, response_text
from .logging import get_logger
from .memory import GangMemory
from .observer import GangObserver
from .tool_registry import ToolRegistry

logger = get_logger(__name__)

MAX_TOOL_ROUNDS = 15
MAX_ITERATIONS_REPLY = "Agent stopped due to max iterations."

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def parse_member_output(raw: str) -> StructuredOutput:
    """Parse a model reply into structured output.

    A JSON object reply yields its ``content``, ``next`` and ``actions``
    fields. Anything else becomes the content verbatim with no hint.
    """
    text = raw.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None

    if not isinstance(parsed, dict):
        return StructuredOutput(content=raw, raw=raw)

    content = parsed.get("content")
    if content is None:
        content = ""
    elif not isinstance(content, str):
        content = json.dumps(content)

    hint = parsed.get("next")
    if not isinstance(hint, str) or not hint:
        hint = None

    actions = parsed.get("actions")
    if actions is None:
        actions = []
    elif not isinstance(actions, list):
        actions = [actions]

    return StructuredOutput(content=content, next_hint=hint, actions=actions, raw=raw, parsed=parsed)


def dump_context(context: Mapping[str, Any]) -> str:
    """Serialize node outputs gathered so far for inclusion in a prompt."""
    def _plain(value):
        if hasattr(value, "model_dump"):
            return value.model_dump(mode="json", by_alias=True)
        if isinstance(value, list):
            return [_plain(v) for v in value]
        return value
    return json.dumps({name: _plain(value) for name, value in context.items()}, indent=2, default=str)


def user_message(input: str, context: Mapping[str, Any]) -> str:
    return f"Gang workflow input:\n{input}\n\nContext:\n{dump_context(context)}"


class MemberRunner:
    """Runs a single gang member.

    Members with tools run a bounded tool-calling loop; members without
    tools do a single exchange that includes the memory bucket history.
    """

    def __init__(
        self,
        definition: MemberDefinition,
        llm: LLMCapability,
        tools: Mapping[str, ToolCapability],
        memory: GangMemory,
        tool_registry: Optional[ToolRegistry] = None,
        observer: Optional[GangObserver] = None,
        max_tool_rounds: int = MAX_TOOL_ROUNDS
    ):
        self.definition = definition
        self.llm = llm
        self.memory = memory
        self.observer = observer
        self.max_tool_rounds = max_tool_rounds
        self.has_tools = len(definition.tools) > 0

        self.tools: Dict[str, ToolCapability] = {}
        for name, tool in tools.items():
            self.tools[name] = tool_registry.wrap_tool(tool, definition.name) if tool_registry else tool

    @property
    def name(self) -> str:
        return self.definition.name

    def tool_system_prompt(self) -> str:
        tool_lines = "\n".join(f"- {name}: {tool.description}" for name, tool in self.tools.items())
        return (
            f"You are {self.definition.name}, role: {self.definition.role}.\n"
            "You can call tools if needed. To call a tool, respond with ONLY the JSON "
            '{"tool": "<tool name>", "input": <string or object>} and wait for the result.\n'
            f"Available tools:\n{tool_lines}\n\n"
            "When you are done, ALWAYS respond with STRICT JSON, no extra text.\n"
            "JSON shape: {\n"
            '  "content": "natural language reasoning and summary",\n'
            '  "next": "name of next node (member or squad) or null",\n'
            '  "actions": [\n'
            "    {\n"
            '      "type": "string label for what you recommend next",\n'
            '      "details": "any extra machine-readable info"\n'
            "    }\n"
            "  ]\n"
            "}"
        )

    def system_prompt(self) -> str:
        return (
            f"You are {self.definition.name}, role: {self.definition.role}.\n"
            "You are part of a gang team. Previous shared context may be provided.\n\n"
            "IMPORTANT: Respond with JSON only. Do NOT invent or hallucinate workflow steps.\n"
            '- For "next" field: ONLY use actual member names that exist in your team, OR null to end the workflow\n'
            "- Do NOT create fake workflow steps that are not nodes of this gang\n"
            "- If you don't know what to do next, set \"next\": null\n\n"
            'ALWAYS respond with STRICT JSON of shape {"content": string, "next": string|null, "actions": any[]}.'
        )

    async def run(self, input: str, context: Optional[Mapping[str, Any]] = None) -> StructuredOutput:
        """Run the member on ``input`` with the outputs of nodes visited so far.

        Capability failures propagate to the caller.
        """
        context = context or {}
        if self.has_tools:
            prompt = user_message(input, context)
            await self._notify_before(prompt)
            raw = await self._run_tool_loop(prompt)
        else:
            messages: List[Message] = [
                {"role": "system", "content": self.system_prompt()},
                *self.memory.get(self.definition.memory_id),
                {"role": "user", "content": user_message(input, context)},
            ]
            # Only the raw input is reported here; the tool loop reports its full prompt.
            await self._notify_before(input)
            raw = response_text(await self.llm.invoke(messages))

        output = parse_member_output(raw)
        self.memory.append(self.definition.memory_id, [
            {"role": "user", "content": input},
            {"role": "assistant", "content": output.content},
        ])

        if self.observer:
            await self.observer.on_member_message(
                "after",
                self.name,
                input,
                raw_output=raw,
                structured=output.model_dump(mode="json", by_alias=True),
            )
        logger.debug(f"Member '{self.name}' replied (next={output.next_hint!r})")
        return output

    async def _notify_before(self, input: str) -> None:
        if self.observer:
            await self.observer.on_member_message("before", self.name, input)

    async def _run_tool_loop(self, prompt: str) -> str:
        messages: List[Message] = [
            {"role": "system", "content": self.tool_system_prompt()},
            {"role": "user", "content": prompt},
        ]

        for _round in range(self.max_tool_rounds):
            text = response_text(await self.llm.invoke(messages))
            request = _tool_request(text)
            if request is None:
                return text

            tool_name = request["tool"]
            messages.append({"role": "assistant", "content": text})
            tool = self.tools.get(tool_name)
            if tool is None:
                logger.warning(f"Member '{self.name}' requested unavailable tool '{tool_name}'")
                messages.append({
                    "role": "user",
                    "content": f"Tool {tool_name} is not available. Available tools: {', '.join(self.tools)}",
                })
                continue

            result = await tool.invoke(request.get("input"))
            messages.append({
                "role": "user",
                "content": f"Tool result ({tool_name}):\n{_result_text(result)}",
            })
        else:
            logger.warning(f"Member '{self.name}' hit the tool-call limit of {self.max_tool_rounds} rounds")
            return MAX_ITERATIONS_REPLY


def _tool_request(text: str) -> Optional[Dict[str, Any]]:
    stripped = text.strip()
    fenced = _FENCE_RE.match(stripped)
    if fenced:
        stripped = fenced.group(1)
    try:
        data = json.loads(stripped)
    except ValueError:
        return None
    if isinstance(data, dict) and isinstance(data.get("tool"), str) and data["tool"]:
        return data
    return None


def _result_text(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, indent=2, default=str)
