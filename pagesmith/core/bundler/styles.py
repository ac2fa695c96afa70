"""
Nested CSS processing

Flattens nested style rules into plain CSS. Results are memoized by the exact
input text, and a given input is compiled by at most one caller at a time.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .diagnostics import BuildError
from .node import NodeRuntime

logger = logging.getLogger(__name__)

StyleTransform = Callable[[str], Awaitable[str]]


class CssCompilationError(BuildError):
    """Malformed nested CSS"""

    def __init__(self, message: str, line: Optional[int] = None,
                 column: Optional[int] = None, reason: Optional[str] = None):
        super().__init__(message, name="CssCompilationError", line=line, column=column)
        self.reason = reason

    def __str__(self) -> str:
        positions = []
        if self.line is not None:
            positions.append(f"line {self.line}")
        if self.column is not None:
            positions.append(f"column {self.column}")
        suffix = f" ({', '.join(positions)})" if positions else ""
        return f"CSS Error: {self.message}{suffix}"


def to_css_error(error: Any) -> CssCompilationError:
    """Wrap whatever the transform raised or reported into a CssCompilationError"""
    if isinstance(error, CssCompilationError):
        return error

    if isinstance(error, dict):
        message = error.get("message") or error.get("reason") or "Unknown CSS compilation error"
        line = error.get("line") if isinstance(error.get("line"), int) else None
        column = error.get("column") if isinstance(error.get("column"), int) else None
        reason = error.get("reason") if isinstance(error.get("reason"), str) else None
        return CssCompilationError(message, line=line, column=column, reason=reason)

    if isinstance(error, str):
        return CssCompilationError(error)

    return CssCompilationError(
        str(error) or "Unknown CSS compilation error",
        line=getattr(error, "line", None),
        column=getattr(error, "column", None),
        reason=getattr(error, "reason", None),
    )


class PostCSSTransform:
    """Runs postcss + postcss-nested through the Node bridge"""

    def __init__(self, node: Optional[NodeRuntime] = None):
        self.node = node or NodeRuntime()

    async def __call__(self, raw: str) -> str:
        payload = await self.node.run_script("postcss_nested.mjs", {"css": raw})
        if payload.get("error"):
            raise to_css_error(payload["error"])
        return payload.get("css") or ""


class StyleProcessor:
    """Memoizing nested-CSS processor with per-input compile deduplication"""

    def __init__(self, transform: Optional[StyleTransform] = None):
        self.transform: StyleTransform = transform or PostCSSTransform()
        self._cache: Dict[str, str] = {}
        self._in_flight: Dict[str, asyncio.Event] = {}
        self._stats = {"hits": 0, "misses": 0, "waits": 0}

    async def process(self, raw: str) -> str:
        """
        Flatten nested CSS

        A second caller asking for an input that is already being compiled
        waits for the first one and then reads the cached result. If the
        first compile failed, the waiter compiles for itself.

        Raises:
            CssCompilationError: If the CSS is malformed (never cached)
        """
        if raw in self._cache:
            self._stats["hits"] += 1
            return self._cache[raw]

        while raw in self._in_flight:
            self._stats["waits"] += 1
            await self._in_flight[raw].wait()
            if raw in self._cache:
                self._stats["hits"] += 1
                return self._cache[raw]

        done = asyncio.Event()
        self._in_flight[raw] = done
        self._stats["misses"] += 1
        try:
            css = await self.transform(raw)
        except CssCompilationError:
            raise
        except Exception as e:
            logger.error(f"CSS transform failed: {e}")
            raise to_css_error(e) from e
        finally:
            del self._in_flight[raw]
            done.set()

        if not css:
            return ""

        self._cache[raw] = css
        return css

    def clear(self) -> None:
        self._cache.clear()

    def get_stats(self) -> Dict[str, int]:
        return {"entries": len(self._cache), **self._stats}
