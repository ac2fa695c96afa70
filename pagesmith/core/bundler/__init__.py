"""
pagesmith bundler - in-process build pipeline for Svelte components

Compiles component source to a server-render module and client bundles,
resolving virtual binding modules and CDN packages along the way.
"""

import logging
from typing import Any, Dict, Optional, Union

from .cache import ModuleCache, FetchError
from .compiler import ComponentCompiler, CompileOptions, CompileError
from .diagnostics import BuildError, Diagnostic, format_build_error
from .graph import RollupBundler, ModuleGraph, LinkError, UnresolvedModuleError
from .orchestrator import BuildOrchestrator, BuildOptions, BuildRequest, BuildResult
from .resolver import ModuleResolver, ModuleLoader, ResolvedTarget
from .styles import StyleProcessor, CssCompilationError
from .templates import ComponentSource, HeadSpec
from .virtual import VirtualBindings, Collection
from .worker import BuildWorker

# Setup logging
logger = logging.getLogger(__name__)

__version__ = "0.1.0"
__all__ = [
    "get_orchestrator", "build", "BuildOrchestrator", "BuildOptions", "BuildRequest", "BuildResult",
    "BuildWorker", "ComponentSource", "HeadSpec", "VirtualBindings", "Collection", "BuildError",
    "FetchError", "CompileError", "CssCompilationError", "LinkError", "UnresolvedModuleError",
]


def get_orchestrator(cache: Optional[ModuleCache] = None, styles: Optional[StyleProcessor] = None) -> BuildOrchestrator:
    """
    Get a configured orchestrator instance

    Args:
        cache: Module cache to share between orchestrators
        styles: Style processor to share between orchestrators

    Returns:
        BuildOrchestrator wired to the Node-backed compiler and linker
    """
    return BuildOrchestrator(
        compiler=ComponentCompiler(),
        styles=styles if styles is not None else StyleProcessor(),
        cache=cache if cache is not None else ModuleCache(),
        bundler=RollupBundler(),
    )


async def build(request: Union[BuildRequest, Dict[str, Any]]) -> BuildResult:
    """
    Run one build with a fresh orchestrator

    Args:
        request: BuildRequest or its JSON wire form

    Returns:
        BuildResult
    """
    if isinstance(request, dict):
        request = BuildRequest.from_dict(request)
    return await get_orchestrator().build(request)
