"""
Module graph collection and bundling

The bundler takes three hooks from the build: resolve, load and transform.
It walks the module graph in Python through those hooks. Transforms run one
file at a time, so diagnostics always point at a single file. The collected
graph is then handed to Rollup (via Node) for linking into one output file.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

from .diagnostics import BuildError, to_diagnostic
from .imports import ScanError, scan_imports
from .node import NodeRuntime
from .resolver import ResolvedTarget

logger = logging.getLogger(__name__)


class UnresolvedModuleError(BuildError):
    """Nothing could be loaded for a resolved module id"""
    pass


class LinkError(BuildError):
    """The linker rejected the collected graph"""
    pass


@dataclass
class TransformOutput:
    code: str
    map: Optional[Any] = None


class BundleHooks(Protocol):
    def resolve(self, requested: str, importer: Optional[str]) -> ResolvedTarget:
        ...

    async def load(self, module_id: str) -> Optional[str]:
        ...

    async def transform(self, code: str, module_id: str) -> Optional[TransformOutput]:
        ...


class Bundler(Protocol):
    async def bundle(self, entry: str, hooks: BundleHooks, format: str = "esm", sourcemap: bool = False) -> str:
        """Bundle the graph rooted at entry into a single output file"""
        ...


@dataclass
class GraphModule:
    """One loaded and transformed module"""
    id: str
    code: str
    map: Optional[Any] = None
    imports: List[str] = field(default_factory=list)


@dataclass
class ModuleGraph:
    """Every module reachable from the entry, with its resolution table"""
    entry: str
    modules: Dict[str, GraphModule] = field(default_factory=dict)
    resolutions: Dict[Tuple[str, str], ResolvedTarget] = field(default_factory=dict)

    @property
    def order(self) -> List[str]:
        return list(self.modules)

    def externals(self) -> List[str]:
        seen = []
        for target in self.resolutions.values():
            if target.is_external and target.value not in seen:
                seen.append(target.value)
        return seen

    def imported_by(self, module_id: str) -> List[str]:
        """Graph ids the given module imports, in import order"""
        return [
            self.resolutions[(module_id, spec)].module_id
            for spec in self.modules[module_id].imports
            if not self.resolutions[(module_id, spec)].is_external
        ]

    @classmethod
    async def collect(cls, entry: str, hooks: BundleHooks) -> "ModuleGraph":
        """
        Walk the graph from the entry through the hooks

        Modules are visited depth-first in import order, so the same input
        always produces the same graph.

        Raises:
            BuildError: From any hook, or UnresolvedModuleError when a module
                has no source
        """
        entry_target = hooks.resolve(entry, None)
        graph = cls(entry=entry_target.module_id)

        stack: List[Tuple[str, Optional[str]]] = [(entry_target.module_id, None)]
        while stack:
            module_id, importer = stack.pop()
            if module_id in graph.modules:
                continue

            code = await hooks.load(module_id)
            if code is None:
                suffix = f" (imported by {importer})" if importer else ""
                raise UnresolvedModuleError(
                    f"Could not load {module_id}{suffix}",
                    name="UnresolvedModuleError",
                    module_id=module_id,
                )

            transformed = await hooks.transform(code, module_id)
            module = GraphModule(id=module_id, code=code)
            if transformed is not None:
                module.code = transformed.code
                module.map = transformed.map

            try:
                module.imports = scan_imports(module.code)
            except ScanError as e:
                raise LinkError(f"Could not parse {module_id}: {e}", name="ParseError", module_id=module_id) from e
            graph.modules[module_id] = module

            pending = []
            for specifier in module.imports:
                target = hooks.resolve(specifier, module_id)
                graph.resolutions[(module_id, specifier)] = target
                if not target.is_external and target.module_id not in graph.modules:
                    pending.append((target.module_id, module_id))
            stack.extend(reversed(pending))

        logger.debug(f"Collected {len(graph.modules)} modules from {entry}")
        return graph

    def to_payload(self) -> Dict[str, Any]:
        """JSON form handed to the linker"""
        resolutions: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for (importer, specifier), target in self.resolutions.items():
            resolutions.setdefault(importer, {})[specifier] = {
                "id": target.module_id,
                "external": target.is_external,
            }
        return {
            "entry": self.entry,
            "modules": {
                module_id: {"code": module.code, "map": module.map}
                for module_id, module in self.modules.items()
            },
            "resolutions": resolutions,
        }


class RollupBundler:
    """Collects the graph in Python and links it with Rollup"""

    def __init__(self, node: Optional[NodeRuntime] = None):
        self.node = node or NodeRuntime()

    async def bundle(self, entry: str, hooks: BundleHooks, format: str = "esm", sourcemap: bool = False) -> str:
        graph = await ModuleGraph.collect(entry, hooks)
        return await self.link(graph, format=format, sourcemap=sourcemap)

    async def link(self, graph: ModuleGraph, format: str = "esm", sourcemap: bool = False) -> str:
        """
        Link a collected graph into one output file

        Raises:
            LinkError: If Rollup reports an error
        """
        payload = {**graph.to_payload(), "format": format, "sourcemap": sourcemap}
        result = await self.node.run_script("rollup_link.mjs", payload)
        if result.get("error"):
            diagnostic = to_diagnostic(result["error"])
            raise LinkError(
                diagnostic.message,
                name=diagnostic.name,
                line=diagnostic.line,
                column=diagnostic.column,
                frame=diagnostic.frame,
                plugin=diagnostic.plugin,
                module_id=diagnostic.module_id,
            )
        for warning in result.get("warnings") or []:
            logger.warning(f"rollup: {warning}")
        return result.get("code") or ""
