"""Command line interface for running gangs, their tests and the API server."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from .config import PREDEFINED_GANGS, AppConfig, LogLevel, load_config, resolve_gang_config
from .core.engine import GangEngine
from .core.exceptions import WorkflowEngineError
from .core.llm import DemoLLM, create_llm
from .core.logging import get_logger, setup_logging
from .models.core import LLMOptions, RunRecord, TestCaseResult

logger = get_logger(__name__)


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        prog="gangflow",
        description="Gang workflow engine - run teams of LLM-backed members over a workflow graph"
    )

    parser.add_argument("--config", help="Path to a .env file with GANGFLOW_* settings")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level"
    )
    parser.add_argument("--log-file", help="Path to log file")
    parser.add_argument("--base-dir", help="Directory custom tools and reports resolve against")
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Use canned demo replies instead of calling an LLM"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run a gang once")
    run_parser.add_argument("gang", help="Gang config file (.json/.yaml) or predefined template name")
    run_parser.add_argument("-i", "--input", required=True, help="Workflow input text")
    run_parser.add_argument("--json", action="store_true", help="Print the full run record as JSON")

    test_parser = subparsers.add_parser("test", help="Run a gang's declared tests and write reports")
    test_parser.add_argument("gang", help="Gang config file (.json/.yaml) or predefined template name")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API server")
    serve_parser.add_argument("--host", help="Host to bind the server to")
    serve_parser.add_argument("--port", type=int, help="Port to bind the server to")

    subparsers.add_parser("templates", help="List predefined gang templates")

    return parser


def load_configuration(args: argparse.Namespace) -> AppConfig:
    """Load configuration and apply command line overrides."""
    config = load_config(args.config)

    if args.log_level:
        config.log_level = LogLevel(args.log_level)
    if args.log_file:
        config.log_file = args.log_file
    if args.base_dir:
        config.base_dir = args.base_dir
    if getattr(args, "host", None):
        config.host = args.host
    if getattr(args, "port", None):
        config.port = args.port

    return config


def llm_factory_for(config: AppConfig, demo: bool = False):
    """Pick the LLM factory: the configured endpoint, or demo replies without credentials."""
    if demo or not config.llm_api_key:
        if not demo:
            logger.warning("No GANGFLOW_LLM_API_KEY set; using demo replies")

        def demo_factory(options: LLMOptions) -> DemoLLM:
            return DemoLLM()
        return demo_factory
    return create_llm


def build_engine(gang: str, config: AppConfig, demo: bool = False) -> GangEngine:
    return GangEngine(
        resolve_gang_config(gang),
        llm_factory=llm_factory_for(config, demo),
        base_dir=config.base_dir,
        reports_dir=config.reports_path,
    )


def print_run(record: RunRecord, as_json: bool = False) -> None:
    if as_json:
        print(json.dumps(record.model_dump(mode="json", by_alias=True), indent=2))
        return

    print(f"Run {record.run_id} of {record.workflow}: {record.visited} node(s) visited")
    final = record.final
    if final is None:
        print("No node produced a result.")
        return
    print(f"Final node: {final.node_name}")
    if final.type == "member":
        print(final.output.content)
    else:
        for output in final.outputs:
            print(f"[{output.member}] {output.content}")


def print_tests(results: List[TestCaseResult]) -> None:
    for result in results:
        mark = "PASS" if result.passed else "FAIL"
        print(f"{mark} {result.test.name or result.run.run_id}")
        for assertion in result.assertions:
            box = "x" if assertion.passed else " "
            line = f'  [{box}] {assertion.type} on {assertion.target}: "{assertion.value}"'
            if assertion.error:
                line += f" ({assertion.error})"
            print(line)
    passed = sum(1 for r in results if r.passed)
    print(f"{passed}/{len(results)} tests passed")


def run_server(config: AppConfig):
    """Run the API server."""
    import uvicorn
    from .main import create_app

    logger.info(f"Starting server on {config.host}:{config.port}")
    uvicorn.run(create_app(config), **config.get_uvicorn_config())


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point; returns the process exit code."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    config = load_configuration(args)
    setup_logging(
        level=config.log_level.value,
        log_file=config.log_file,
        log_format=config.log_format,
        structured=config.structured_logs,
        stream=sys.stderr
    )

    if args.command == "templates":
        for name, template in PREDEFINED_GANGS.items():
            members = ", ".join(m["name"] for m in template["members"])
            print(f"{name}: {template['name']} ({members})")
        return 0

    if args.command == "serve":
        run_server(config)
        return 0

    try:
        engine = build_engine(args.gang, config, demo=args.demo)
        if args.command == "run":
            record = asyncio.run(engine.run_once(args.input))
            print_run(record, as_json=args.json)
            return 0

        results = asyncio.run(engine.run_tests())
        print_tests(results)
        print(f"Reports written to {Path(engine.reports_dir)}")
        return 0 if all(r.passed for r in results) else 1

    except WorkflowEngineError as e:
        logger.error(f"{e.error_code}: {e.message}")
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
