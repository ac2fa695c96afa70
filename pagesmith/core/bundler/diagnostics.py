"""
Build error formatting

Turns raw compiler/bundler error objects into readable messages with the
file position and a code frame, so whoever authored the source can fix it.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

_URL_LINE = re.compile(r'^https?://')


class BuildError(Exception):
    """Base class for every failure that aborts a build"""

    def __init__(
        self,
        message: str,
        *,
        name: Optional[str] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
        frame: Optional[str] = None,
        plugin: Optional[str] = None,
        url: Optional[str] = None,
        module_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.name = name or type(self).__name__
        self.line = line
        self.column = column
        self.frame = frame
        self.plugin = plugin
        self.url = url
        self.module_id = module_id


@dataclass
class Diagnostic:
    """Structured view of a build error"""
    name: str
    message: str
    line: Optional[int] = None
    column: Optional[int] = None
    frame: Optional[str] = None
    links: Set[str] = field(default_factory=set)
    plugin: Optional[str] = None
    module_id: Optional[str] = None

    def position(self) -> str:
        parts = []
        if isinstance(self.line, int):
            parts.append(f"line {self.line}")
        if isinstance(self.column, int):
            parts.append(f"column {self.column}")
        return ", ".join(parts)


def _position_from_mapping(error: Dict[str, Any], key: str) -> Optional[int]:
    for container in ("loc", "start"):
        value = error.get(container)
        if isinstance(value, dict) and isinstance(value.get(key), int):
            return value[key]
    value = error.get(key)
    return value if isinstance(value, int) else None


def _links_from_stack(stack: Any) -> List[str]:
    if not isinstance(stack, str):
        return []
    links = []
    for raw in stack.split("\n"):
        line = raw.strip()
        if line and _URL_LINE.match(line):
            links.append(line)
    return links


def to_diagnostic(error: Any, module_id: Optional[str] = None) -> Diagnostic:
    """
    Normalize an error into a Diagnostic

    Args:
        error: A BuildError, a structured error mapping reported by an external
            tool (Svelte/Rollup/PostCSS shape), any other exception, or a string
        module_id: Module the error belongs to, when known

    Returns:
        Diagnostic with whatever position information the error carried
    """
    if isinstance(error, BuildError):
        links = {error.url} if error.url else set()
        return Diagnostic(
            name=error.name,
            message=error.message,
            line=error.line,
            column=error.column,
            frame=error.frame.strip() if isinstance(error.frame, str) else None,
            links=links,
            plugin=error.plugin,
            module_id=error.module_id or module_id,
        )

    if isinstance(error, dict):
        links = set(_links_from_stack(error.get("stack")))
        if isinstance(error.get("url"), str):
            links.add(error["url"])
        frame = error.get("frame")
        return Diagnostic(
            name=error.get("name") or error.get("code") or "BuildError",
            message=error.get("message") or error.get("reason") or "Unknown build error",
            line=_position_from_mapping(error, "line"),
            column=_position_from_mapping(error, "column"),
            frame=frame.strip() if isinstance(frame, str) else None,
            links=links,
            plugin=error.get("plugin"),
            module_id=error.get("id") or module_id,
        )

    if isinstance(error, BaseException):
        return Diagnostic(name=type(error).__name__, message=str(error) or repr(error), module_id=module_id)

    return Diagnostic(name="BuildError", message=str(error), module_id=module_id)


def generate_code_frame(source: str, line: int, column: Optional[int] = None) -> str:
    """
    Build a code frame around a 1-based line

    Two lines of context are shown above and below. The offending line is
    prefixed with '>' and, when a 0-based column is known, followed by a
    '^' marker under that column.
    """
    lines = source.split("\n")
    start = max(0, line - 3)
    end = min(len(lines), line + 2)

    out = []
    for offset, content in enumerate(lines[start:end]):
        line_num = start + offset + 1
        marker = "> " if line_num == line else "  "
        line_num_str = str(line_num).rjust(3)
        row = f"{marker}{line_num_str} | {content}"
        if line_num == line and isinstance(column, int):
            indent = len(marker) + len(line_num_str) + 3 + column
            row += "\n" + " " * indent + "^"
        out.append(row)

    return "\n".join(out)


def format_diagnostic(diagnostic: Diagnostic, source: Optional[str] = None) -> str:
    """
    Render a Diagnostic as the message shown to the author

    Args:
        diagnostic: Diagnostic to render
        source: Source text of the failing module, used to synthesize a frame
            when the tool did not provide one

    Returns:
        Multi-line message: headline, position, frame and documentation links
    """
    plugin = f"[{diagnostic.plugin}] " if diagnostic.plugin else ""
    message = f"{plugin}{diagnostic.name}: {diagnostic.message}"

    position = diagnostic.position()
    if position:
        message += f"\n{position}"

    frame = diagnostic.frame or ""
    if not frame and source and isinstance(diagnostic.line, int):
        frame = generate_code_frame(source, diagnostic.line, diagnostic.column)
    if frame:
        message += f"\n\n{frame}"

    if diagnostic.links:
        message += "\n\n" + "\n".join(sorted(diagnostic.links))

    return message


def format_build_error(error: Any, module_id: Optional[str] = None, source: Optional[str] = None) -> str:
    """Normalize and render any build error in one step"""
    if error is None:
        return "Unknown build error"
    if isinstance(error, str):
        return error
    return format_diagnostic(to_diagnostic(error, module_id), source)
