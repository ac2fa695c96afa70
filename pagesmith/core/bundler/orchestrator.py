"""
Build orchestration

Drives one build request through its targets. The server render target and
the client targets each run the bundler over a freshly assembled graph; the
first failure aborts the build and becomes the formatted error.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union

from .cache import ModuleCache
from .compiler import CompileOptions, ComponentCompiler
from .constants import (
    CSS_MODES, OUTPUT_FORMATS, ENTRY_FILE, ICON_SHIM_ID,
    TARGET_SSR, TARGET_DOM, TARGET_HYDRATE,
)
from .diagnostics import format_build_error, generate_code_frame
from .graph import Bundler, RollupBundler, TransformOutput
from .resolver import ModuleLoader, ModuleResolver, ResolvedTarget
from .styles import CssCompilationError, StyleProcessor
from .templates import ComponentSource, HeadSpec, Source, build_local_files
from .utils import format_bytes
from .virtual import ICON_SHIM_SOURCE, VirtualBindings

logger = logging.getLogger(__name__)


def _pick(raw: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _runtime_exports(value: Any) -> Tuple[str, ...]:
    """A single export name or a list of names"""
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)) or not all(isinstance(name, str) for name in value):
        raise ValueError(f"Invalid runtime exports: {value!r}")
    return tuple(value)


@dataclass(frozen=True)
class BuildOptions:
    """Flags selecting which targets a build produces"""
    build_static: bool = True
    hydrated: bool = False
    css: str = "external"
    format: str = "esm"
    dev_mode: bool = False
    sourcemap: bool = False
    runtime_exports: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.css not in CSS_MODES:
            raise ValueError(f"Invalid css mode: {self.css}")
        if self.format not in OUTPUT_FORMATS:
            raise ValueError(f"Invalid output format: {self.format}")

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "BuildOptions":
        raw = raw or {}
        return cls(
            build_static=bool(_pick(raw, "build_static", "buildStatic", default=True)),
            hydrated=bool(_pick(raw, "hydrated", default=False)),
            css=_pick(raw, "css", default="external"),
            format=_pick(raw, "format", default="esm"),
            dev_mode=bool(_pick(raw, "dev_mode", "devMode", default=False)),
            sourcemap=bool(_pick(raw, "sourcemap", default=False)),
            runtime_exports=_runtime_exports(_pick(raw, "runtime_exports", "runtimeExports", "runtime", default=())),
        )


@dataclass(frozen=True)
class BuildRequest:
    """Everything one build needs; immutable once submitted"""
    sources: Union[Source, List[Source]]
    head: HeadSpec = field(default_factory=HeadSpec)
    options: BuildOptions = field(default_factory=BuildOptions)
    bindings: VirtualBindings = field(default_factory=VirtualBindings)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "BuildRequest":
        """
        Parse the JSON wire form

        ``sources`` (or ``component``) is a string, a structured record or a
        list of either.
        """
        raw_sources = _pick(raw, "sources", "component", default="")
        return cls(
            sources=_parse_sources(raw_sources),
            head=HeadSpec.from_dict(raw.get("head")),
            options=BuildOptions.from_dict(raw.get("options")),
            bindings=VirtualBindings.from_dict(raw.get("bindings")),
        )


def _parse_sources(raw: Any) -> Union[Source, List[Source]]:
    if isinstance(raw, list):
        return [_parse_source(item) for item in raw]
    return _parse_source(raw)


def _parse_source(raw: Any) -> Source:
    if isinstance(raw, (str, ComponentSource)):
        return raw
    if isinstance(raw, dict):
        return ComponentSource.from_dict(raw)
    raise TypeError(f"Unsupported component source: {type(raw).__name__}")


@dataclass
class BuildResult:
    """Output of one build; ``ssr`` and ``dom`` are empty whenever ``error`` is set"""
    ssr: str = ""
    dom: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error

    def to_dict(self) -> Dict[str, str]:
        return {"ssr": self.ssr, "dom": self.dom, "error": self.error}


class BuildHooks:
    """Resolve/load/transform hooks for one build target"""

    def __init__(self, resolver: ModuleResolver, loader: ModuleLoader,
                 compiler: ComponentCompiler, options: CompileOptions):
        self.resolver = resolver
        self.loader = loader
        self.compiler = compiler
        self.options = options

    def resolve(self, requested: str, importer: Optional[str]) -> ResolvedTarget:
        return self.resolver.resolve(requested, importer)

    async def load(self, module_id: str) -> Optional[str]:
        return await self.loader.load(module_id)

    async def transform(self, code: str, module_id: str) -> Optional[TransformOutput]:
        if not module_id.endswith(".svelte"):
            return None
        output = await self.compiler.compile(code, self.options, module_id=module_id)
        return TransformOutput(code=output.code, map=output.map)


class BuildOrchestrator:
    """Runs build requests against shared compiler, style and module caches"""

    def __init__(self, compiler: Optional[ComponentCompiler] = None, styles: Optional[StyleProcessor] = None,
                 cache: Optional[ModuleCache] = None, bundler: Optional[Bundler] = None):
        self.compiler = compiler if compiler is not None else ComponentCompiler()
        self.styles = styles if styles is not None else StyleProcessor()
        self.cache = cache if cache is not None else ModuleCache()
        self.bundler: Bundler = bundler if bundler is not None else RollupBundler()

    async def _process_styles(self, sources: Union[Source, List[Source]]) -> Union[Source, List[Source]]:
        if isinstance(sources, list):
            return [await self._process_styles(section) for section in sources]
        if isinstance(sources, ComponentSource) and sources.css:
            try:
                css = await self.styles.process(sources.css)
            except CssCompilationError as e:
                if e.frame is None and isinstance(e.line, int):
                    # PostCSS columns are 1-based
                    column = e.column - 1 if isinstance(e.column, int) else None
                    e.frame = generate_code_frame(sources.css, e.line, column)
                raise
            return replace(sources, css=css)
        return sources

    def _target_options(self, target: str, options: BuildOptions) -> CompileOptions:
        if target == TARGET_SSR:
            return CompileOptions(generate="server", css="injected")
        if target == TARGET_HYDRATE:
            return CompileOptions(generate="client", css="external", dev=options.dev_mode)
        return CompileOptions(generate="client", css=options.css, dev=options.dev_mode)

    async def _run_target(self, target: str, local_files: Dict[str, str], request: BuildRequest) -> str:
        ssr = target == TARGET_SSR
        options = request.options
        hooks = BuildHooks(
            resolver=ModuleResolver(local_files, ssr=ssr),
            loader=ModuleLoader(local_files, request.bindings, self.cache, ssr=ssr, dev=options.dev_mode),
            compiler=self.compiler,
            options=self._target_options(target, options),
        )
        logger.info(f"Building {target} target")
        code = await self.bundler.bundle(ENTRY_FILE, hooks, format=options.format, sourcemap=options.sourcemap)
        logger.info(f"Built {target} target ({format_bytes(len(code.encode('utf-8')))})")
        return code

    def _source_for(self, module_id: Optional[str], local_files: Dict[str, str]) -> Optional[str]:
        if module_id == ICON_SHIM_ID:
            return ICON_SHIM_SOURCE
        if module_id:
            return local_files.get(module_id)
        return None

    def plan(self, options: BuildOptions) -> List[str]:
        """Targets a build runs, in execution order"""
        targets = [TARGET_SSR] if options.build_static else [TARGET_DOM]
        if options.hydrated:
            targets.append(TARGET_HYDRATE)
        return targets

    async def build(self, request: BuildRequest) -> BuildResult:
        """
        Build every target the request's options select

        Targets run strictly in order: server render, then client, then
        hydration. The hydration bundle replaces any plain client bundle.

        Returns:
            BuildResult; on failure only ``error`` is set
        """
        result = BuildResult()

        try:
            sources = await self._process_styles(request.sources)
        except CssCompilationError as e:
            logger.error(f"Style processing failed: {e}")
            message = str(e)
            if e.frame:
                message += f"\n\n{e.frame}"
            return BuildResult(error=message)

        local_files = build_local_files(sources, request.head, request.options.runtime_exports)

        for target in self.plan(request.options):
            try:
                code = await self._run_target(target, local_files, request)
            except Exception as e:
                module_id = getattr(e, "module_id", None)
                logger.error(f"{target} build failed: {e}")
                return BuildResult(error=format_build_error(e, module_id, self._source_for(module_id, local_files)))

            if target == TARGET_SSR:
                result.ssr = code
            else:
                result.dom = code

        return result
