"""Local filesystem tools."""

from pathlib import Path
from typing import Any, Optional

from ..core.logging import get_logger
from .base import FunctionTool, argument

logger = get_logger(__name__)

MAX_FILE_CHARS = 4000


def _resolve(path: Any, base_dir: Optional[Path]) -> Path:
    candidate = Path(str(path))
    if base_dir is not None and not candidate.is_absolute():
        candidate = base_dir / candidate
    return candidate


def make_list_directory(base_dir: Optional[Path] = None) -> FunctionTool:
    """Build the ``list_directory`` tool, resolving relative paths against ``base_dir``."""

    def list_directory(input: Any) -> str:
        target = _resolve(argument(input, "path", ".") or ".", base_dir)
        logger.debug(f"Listing directory {target}")
        entries = sorted(target.iterdir(), key=lambda p: p.name)
        return "\n".join(
            f"[{'dir' if entry.is_dir() else 'file'}] {entry.name}" for entry in entries
        )

    return FunctionTool(
        list_directory,
        name="list_directory",
        description="List files and folders in a directory (relative to the project root).",
    )


def make_read_file(base_dir: Optional[Path] = None) -> FunctionTool:
    """Build the ``read_file`` tool, resolving relative paths against ``base_dir``."""

    def read_file(input: Any) -> str:
        path = argument(input, "path")
        if not path:
            raise ValueError("read_file expects a file path")
        target = _resolve(path, base_dir)
        logger.debug(f"Reading file {target}")
        return target.read_text(encoding="utf-8", errors="replace")[:MAX_FILE_CHARS]

    return FunctionTool(
        read_file,
        name="read_file",
        description="Read a UTF-8 text file from disk and return its contents (first 4000 characters).",
    )
