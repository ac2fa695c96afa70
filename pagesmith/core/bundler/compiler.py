"""
Svelte component compiler integration

Compiles one single-file component to module code through a compiler
backend. The default backend drives ``svelte/compiler`` via Node.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from .constants import CSS_MODES
from .diagnostics import BuildError, Diagnostic, to_diagnostic
from .node import NodeRuntime

logger = logging.getLogger(__name__)

# <style global> ... </style>, keeping any other attributes on the tag
_GLOBAL_STYLE = re.compile(
    r'<style(?P<before>[^>]*?)\s+global(?![\w-])(?:=(?:"[^"]*"|\'[^\']*\'|[^\s>]*))?(?P<after>[^>]*)>(?P<body>.*?)</style>',
    re.DOTALL | re.IGNORECASE,
)


@dataclass(frozen=True)
class CompileOptions:
    """Per-target compiler options"""
    generate: str = "client"
    css: str = "external"
    dev: bool = False

    def __post_init__(self):
        if self.generate not in ("server", "client"):
            raise ValueError(f"Invalid generate mode: {self.generate}")
        if self.css not in CSS_MODES:
            raise ValueError(f"Invalid css mode: {self.css}")

    def to_dict(self) -> Dict[str, Any]:
        return {"generate": self.generate, "css": self.css, "dev": self.dev}


@dataclass
class CompileOutput:
    """Result of compiling one component"""
    code: str
    map: Optional[Any] = None
    warnings: List[Dict[str, Any]] = field(default_factory=list)


class CompileError(BuildError):
    """Malformed component source"""

    @classmethod
    def from_report(cls, report: Dict[str, Any], module_id: Optional[str] = None) -> "CompileError":
        diagnostic = to_diagnostic(report, module_id)
        return cls.from_diagnostic(diagnostic)

    @classmethod
    def from_diagnostic(cls, diagnostic: Diagnostic) -> "CompileError":
        return cls(
            diagnostic.message,
            name=diagnostic.name if diagnostic.name != "BuildError" else "CompileError",
            line=diagnostic.line,
            column=diagnostic.column,
            frame=diagnostic.frame,
            module_id=diagnostic.module_id,
        )


class CompilerBackend(Protocol):
    async def compile(self, source: str, options: Dict[str, Any]) -> Dict[str, Any]:
        """Return {code, map, warnings} or {error: {...}}"""
        ...


class NodeSvelteBackend:
    """Compiles through svelte/compiler in a Node subprocess"""

    def __init__(self, node: Optional[NodeRuntime] = None):
        self.node = node or NodeRuntime()

    async def compile(self, source: str, options: Dict[str, Any]) -> Dict[str, Any]:
        return await self.node.run_script("svelte_compile.mjs", {"code": source, "options": options})


def rewrite_global_styles(source: str) -> str:
    """
    Rewrite ``<style global>`` blocks into Svelte's ``:global { ... }`` form

    The compiler has no global attribute on style tags. Wrapping the whole
    block in a nested ``:global`` rule gives the same result.
    """
    def replace(match: re.Match) -> str:
        attrs = f"{match.group('before')}{match.group('after')}".rstrip()
        body = match.group("body")
        return f"<style{attrs}>\n:global {{\n{body}\n}}\n</style>"

    return _GLOBAL_STYLE.sub(replace, source)


class ComponentCompiler:
    """Adapter around a Svelte compiler backend"""

    def __init__(self, backend: Optional[CompilerBackend] = None):
        self.backend: CompilerBackend = backend or NodeSvelteBackend()
        self._stats = {"compiled": 0, "failed": 0, "warnings": 0}

    def prepare(self, source: str) -> str:
        """Apply source pre-passes; run before every compile"""
        return rewrite_global_styles(source)

    async def compile(self, source: str, options: CompileOptions, module_id: Optional[str] = None) -> CompileOutput:
        """
        Compile one component

        Args:
            source: Component source text
            options: Target options (generate/css/dev)
            module_id: Module id, used to attribute diagnostics

        Returns:
            CompileOutput with code, source map and warnings

        Raises:
            CompileError: If the compiler rejects the source
        """
        prepared = self.prepare(source)
        # Source maps are always requested to keep diagnostics actionable
        backend_options = {**options.to_dict(), "sourcemap": True}

        try:
            result = await self.backend.compile(prepared, backend_options)
        except BuildError:
            self._stats["failed"] += 1
            raise
        except Exception as e:
            self._stats["failed"] += 1
            logger.error(f"Compiler backend failed for {module_id or '<component>'}: {e}")
            raise CompileError(str(e), module_id=module_id) from e

        if result.get("error"):
            self._stats["failed"] += 1
            raise CompileError.from_report(result["error"], module_id)

        warnings = list(result.get("warnings") or [])
        for warning in warnings:
            logger.warning(f"{module_id or '<component>'}: {warning.get('code', 'warning')}: {warning.get('message', '')}")

        self._stats["compiled"] += 1
        self._stats["warnings"] += len(warnings)
        return CompileOutput(code=result.get("code") or "", map=result.get("map"), warnings=warnings)

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)
