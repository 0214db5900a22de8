"""Gang engine: configuration validation, graph execution and the test harness."""

import asyncio
import inspect
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from ..models.core import (
    ALWAYS, AssertionDefinition, AssertionResult, MemberNodeResult, MemberOutput, RunRecord,
    SquadDefinition, SquadMode, SquadNodeResult, StructuredOutput, TestCaseResult, TestDefinition,
    WorkflowConfig, WorkflowStep
)
from ..tools import ToolCapability, builtin_tools
from .exceptions import (
    DuplicateNodeError, EmptyMemberListError, InvalidConfigError, MissingFieldError,
    NoTestsDefinedError, UnknownEntryError, UnknownNodeError, UnknownSquadMemberError
)
from .llm import LLMFactory, create_llm
from .logging import get_logger, logging_context
from .member_runner import MemberRunner
from .memory import GangMemory
from .observer import GangObserver
from .tool_registry import ModuleLoader, ToolRegistry

logger = get_logger(__name__)

MAX_NODE_VISITS = 50
REQUIRED_FIELDS = ("version", "llm", "members", "workflow")

ConfigInput = Union[WorkflowConfig, Mapping[str, Any]]
NodeOutput = Union[StructuredOutput, List[MemberOutput]]


def validate_config(config: ConfigInput) -> WorkflowConfig:
    """Validate a gang configuration and return it as a model.

    Raises:
        MissingFieldError: If version, llm, members or workflow is absent
        EmptyMemberListError: If no members are declared
        InvalidConfigError: If the configuration does not match the schema
        DuplicateNodeError: If a name is shared by two members or squads
        UnknownSquadMemberError: If a squad lists an undeclared member
        UnknownEntryError: If the entry names neither a member nor a squad
    """
    if isinstance(config, WorkflowConfig):
        parsed = config
    else:
        for field in REQUIRED_FIELDS:
            if config.get(field) is None:
                raise MissingFieldError(field)
        if isinstance(config["members"], list) and not config["members"]:
            raise EmptyMemberListError()
        try:
            parsed = WorkflowConfig.model_validate(dict(config))
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            raise InvalidConfigError("Invalid gang configuration", validation_errors=errors)

    if not parsed.members:
        raise EmptyMemberListError()

    seen = set()
    for name in parsed.node_names():
        if name in seen:
            raise DuplicateNodeError(name)
        seen.add(name)

    member_names = {m.name for m in parsed.members}
    for squad in parsed.squads:
        for member in squad.members:
            if member not in member_names:
                raise UnknownSquadMemberError(squad.name, member)

    if parsed.workflow.entry not in seen:
        raise UnknownEntryError(parsed.workflow.entry)

    return parsed


def resolve_next_node(steps: List[WorkflowStep], node_name: str, hint: Optional[str]) -> Optional[str]:
    """Pick the node that follows ``node_name``.

    Without steps the hint itself is the next node. With steps, a hint
    selects a step whose ``to`` or ``when`` equals it, falling back to the
    ``always`` step; with no hint only the ``always`` step is eligible.
    """
    if not steps:
        return hint or None

    outgoing = [s for s in steps if s.from_node == node_name]
    match = None
    if hint:
        match = next((s for s in outgoing if s.to == hint or s.when == hint), None)
    if match is None:
        match = next((s for s in outgoing if s.when == ALWAYS), None)
    return match.to if match else None


def collect_member_texts(run: RunRecord) -> Dict[str, str]:
    """Flatten a run into member name -> output text (content, else raw)."""
    texts: Dict[str, str] = {}
    for node in run.nodes:
        if isinstance(node, SquadNodeResult):
            for output in node.outputs:
                texts[output.member] = output.content or output.raw or ""
        else:
            texts[node.node_name] = node.output.content or node.output.raw or ""
    return texts


def evaluate_assertion(assertion: AssertionDefinition, texts: Mapping[str, str]) -> AssertionResult:
    if assertion.type == "contains":
        text = texts.get(assertion.target or "", "")
        return AssertionResult(
            type=assertion.type,
            target=assertion.target,
            value=assertion.value,
            passed=(assertion.value or "") in text,
            actual_snippet=text[:200],
        )
    return AssertionResult(
        type=assertion.type,
        target=assertion.target,
        value=assertion.value,
        passed=False,
        error=f"Unknown assertion type: {assertion.type}",
    )


class GangEngine:
    """Runs a gang of LLM-backed members over a workflow graph."""

    def __init__(
        self,
        config: ConfigInput,
        llm_factory: Optional[LLMFactory] = None,
        tools: Optional[Mapping[str, ToolCapability]] = None,
        module_loader: Optional[ModuleLoader] = None,
        base_dir: Optional[Union[str, Path]] = None,
        reports_dir: Optional[Union[str, Path]] = None,
        max_node_visits: int = MAX_NODE_VISITS
    ):
        """Initialize the engine.

        Args:
            config: Gang configuration, as a mapping or a validated model
            llm_factory: Builds the LLM capability from the gang's llm options
            tools: Tool mapping replacing the built-in tools
            module_loader: Loader for custom tool modules
            base_dir: Directory custom tools and run reports resolve against
            reports_dir: Directory for test reports, default ``<base_dir>/<settings.reports_dir>``
            max_node_visits: Visit cap per run
        """
        self.raw_config = config
        self.config: Optional[WorkflowConfig] = config if isinstance(config, WorkflowConfig) else None
        if isinstance(config, WorkflowConfig):
            self.workflow_name = config.name
        else:
            self.workflow_name = config.get("name") or "unnamed-gang"

        from ..config import get_config
        settings = get_config()
        self.base_dir = Path(base_dir if base_dir is not None else settings.base_dir).resolve()
        if reports_dir is None:
            reports_dir = self.base_dir / settings.reports_dir
        self.reports_dir = Path(reports_dir)
        self.llm_factory: LLMFactory = llm_factory or create_llm
        self.max_node_visits = max_node_visits

        self._tools = tools
        self._module_loader = module_loader
        self.observer: Optional[GangObserver] = None
        self.tool_registry: Optional[ToolRegistry] = None
        self.memory = GangMemory()
        self.members: Dict[str, MemberRunner] = {}
        self.squads: Dict[str, SquadDefinition] = {}
        self._loaded = False

    validate_config = staticmethod(validate_config)

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> None:
        """Validate the configuration and build observer, tools, LLM and members.

        Calling it again after a successful load does nothing.
        """
        if self._loaded:
            return

        config = validate_config(self.raw_config)
        self.config = config
        self.workflow_name = config.name

        self.observer = GangObserver(config.observability)
        tools = self._tools if self._tools is not None else self._builtin_tools()
        self.tool_registry = ToolRegistry(self.observer, tools=tools, module_loader=self._module_loader)
        self.tool_registry.load_custom_tools(config.tools.custom, self.base_dir)

        llm = self.llm_factory(config.llm)
        if inspect.isawaitable(llm):
            llm = await llm

        members: Dict[str, MemberRunner] = {}
        for definition in config.members:
            member_tools = {name: self.tool_registry.get(name) for name in definition.tools}
            members[definition.name] = MemberRunner(
                definition,
                llm,
                member_tools,
                self.memory,
                self.tool_registry,
                self.observer,
            )
        self.members = members
        self.squads = {squad.name: squad for squad in config.squads}
        self._loaded = True

        logger.info(
            f"Loaded gang '{self.workflow_name}' with {len(self.members)} members and {len(self.squads)} squads"
        )

    def _builtin_tools(self) -> Dict[str, ToolCapability]:
        from ..config import get_config

        app_config = get_config()
        return builtin_tools(
            base_dir=self.base_dir,
            mcp_server_url=app_config.mcp_server_url,
            mcp_auth_token=app_config.mcp_auth_token,
            timeout=app_config.tool_timeout,
        )

    async def run_graph(self, input: str, run_id: str = "single") -> RunRecord:
        """Execute the workflow graph from its entry node.

        Args:
            input: Input text given to every member node (and to the first member of sequential squads)
            run_id: Identifier recorded on events and on the returned record

        Returns:
            The run record with every visited node's result in order

        Raises:
            UnknownNodeError: If the graph transitions to an undeclared node
        """
        await self.load()
        config = self.config
        observer = self.observer

        with logging_context(run_id=run_id, workflow=self.workflow_name):
            await observer.on_run_start(run_id, self.workflow_name, input)
            record = RunRecord(run_id=run_id, workflow=self.workflow_name, input=input)
            context: Dict[str, NodeOutput] = {}

            current: Optional[str] = config.workflow.entry
            while current and record.visited < self.max_node_visits:
                record.visited += 1
                node_name = current
                await observer.on_node_start(run_id, node_name)

                squad = self.squads.get(node_name)
                if squad is not None:
                    result = await self._run_squad(squad, input, context)
                    context[node_name] = result.outputs
                else:
                    member = self.members.get(node_name)
                    if member is None:
                        raise UnknownNodeError(node_name, run_id=run_id, workflow=self.workflow_name)
                    output = await member.run(input, context)
                    result = MemberNodeResult(node_name=node_name, output=output, next_hint=output.next_hint)
                    context[node_name] = output

                await observer.on_node_end(run_id, node_name, result.model_dump(mode="json", by_alias=True))
                record.nodes.append(result)

                current = resolve_next_node(config.workflow.steps, node_name, result.next_hint)
                logger.debug(f"Node '{node_name}' done (hint={result.next_hint!r}, next={current!r})")

            if current and record.visited >= self.max_node_visits:
                logger.warning(f"Run '{run_id}' stopped after {self.max_node_visits} node visits")

            record.final = record.nodes[-1] if record.nodes else None
            record.completed_at = datetime.utcnow()

            final_node = record.final.node_name if record.final else None
            await observer.on_run_end(run_id, self.workflow_name, input, final_node)
            await observer.flush_report(self.base_dir, self.workflow_name)

            logger.info(f"Run '{run_id}' finished at node {final_node!r} after {record.visited} visits")
            return record

    async def _run_squad(
        self,
        squad: SquadDefinition,
        input: str,
        context: Dict[str, NodeOutput]
    ) -> SquadNodeResult:
        runners = [self.members[name] for name in squad.members]

        if squad.mode == SquadMode.PARALLEL:
            tasks = [asyncio.ensure_future(runner.run(input, context)) for runner in runners]
            try:
                results = await asyncio.gather(*tasks)
            except BaseException:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
            outputs = [
                MemberOutput(member=runner.name, **result.model_dump())
                for runner, result in zip(runners, results)
            ]
            hint = next((o.next_hint for o in outputs if o.next_hint), None)
        else:
            outputs = []
            current_input = input
            for runner in runners:
                result = await runner.run(current_input, context)
                outputs.append(MemberOutput(member=runner.name, **result.model_dump()))
                current_input = result.content
            hint = outputs[-1].next_hint if outputs else None

        return SquadNodeResult(node_name=squad.name, mode=squad.mode, outputs=outputs, next_hint=hint)

    async def run_once(self, input: str) -> RunRecord:
        """Run the graph once under run id ``single``."""
        return await self.run_graph(input, "single")

    async def run_tests(self) -> List[TestCaseResult]:
        """Run every declared test, evaluate its assertions and write the reports.

        Raises:
            NoTestsDefinedError: If the configuration declares no tests
        """
        await self.load()
        if not self.config.tests:
            raise NoTestsDefinedError(self.workflow_name)

        results: List[TestCaseResult] = []
        for test in self.config.tests:
            run_id = test.name or f"test_{len(results) + 1}"
            run = await self.run_graph(test.input or "", run_id)
            assertions = self.evaluate_test_assertions(test, run)
            results.append(TestCaseResult(test=test, run=run, assertions=assertions))

        self.write_test_reports(results)

        passed = sum(1 for r in results if r.passed)
        logger.info(f"Gang '{self.workflow_name}' tests: {passed}/{len(results)} passed")
        return results

    def evaluate_test_assertions(self, test: TestDefinition, run: RunRecord) -> List[AssertionResult]:
        texts = collect_member_texts(run)
        return [evaluate_assertion(assertion, texts) for assertion in test.asserts]

    def write_test_reports(self, results: List[TestCaseResult]) -> Dict[str, Path]:
        """Write ``<workflow>_tests.json`` and ``<workflow>_tests.md`` to the reports directory."""
        report_dir = Path(self.reports_dir)
        report_dir.mkdir(parents=True, exist_ok=True)

        json_path = report_dir / f"{self.workflow_name}_tests.json"
        json_path.write_text(
            json.dumps([r.model_dump(mode="json", by_alias=True) for r in results], indent=2),
            encoding="utf-8",
        )

        md_path = report_dir / f"{self.workflow_name}_tests.md"
        md_path.write_text(render_test_summary(self.workflow_name, results), encoding="utf-8")

        logger.info(f"Wrote test reports to {json_path} and {md_path}")
        return {"json": json_path, "markdown": md_path}


def render_test_summary(workflow_name: str, results: List[TestCaseResult]) -> str:
    lines = [f"# Gang Workflow Tests for {workflow_name}", ""]
    for result in results:
        lines.extend([f"## {result.test.name or '(unnamed)'}", ""])
        lines.extend(["### Input", "", "```", result.test.input or "", "```", ""])
        final_node = result.run.final.node_name if result.run.final else "(none)"
        lines.append(f"- Final node: {final_node}")
        lines.append("- Assertions:")
        for a in result.assertions:
            lines.append(f'  - [{"x" if a.passed else " "}] {a.type} on {a.target}: "{a.value}"')
        lines.append("")
    return "\n".join(lines)


def create_gang(config: ConfigInput, **kwargs) -> GangEngine:
    """Build an engine for ``config``; keyword arguments go to :class:`GangEngine`."""
    return GangEngine(config, **kwargs)


def create_member(name: str, role: str, tools: Optional[List[str]] = None, memory_id: str = "shared") -> Dict[str, Any]:
    return {"name": name, "role": role, "tools": list(tools or []), "memoryId": memory_id}


def create_squad(name: str, members: List[str], mode: Union[SquadMode, str] = SquadMode.PARALLEL) -> Dict[str, Any]:
    return {"name": name, "members": list(members), "mode": SquadMode(mode).value}


def create_workflow(entry: str, steps: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {"entry": entry, "steps": list(steps or [])}
