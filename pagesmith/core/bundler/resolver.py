"""
Module resolution and loading for one build target

The resolver decides what a requested module id refers to: a virtual module,
an in-memory local file, a remote CDN URL or an external import left for the
browser's import map. The loader turns resolved ids into source text.
"""

import json
import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from .cache import ModuleCache
from .constants import (
    CDN_URL, SVELTE_CDN, RUNTIME_MODULE, ENV_MODULE, ICON_MODULE,
    BINDING_MODULES, VIRTUAL_PREFIX, SSR_RUNTIME_SHIM, ICON_SHIM_ID,
)
from .utils import is_remote_url, join_url, url_origin
from .virtual import (
    VirtualBindings, ICON_SHIM_SOURCE, binding_module, env_module, ssr_runtime_shim,
)

logger = logging.getLogger(__name__)

VIRTUAL = "virtual"
LOCAL = "local"
REMOTE = "remote"
EXTERNAL = "external"


@dataclass(frozen=True)
class ResolvedTarget:
    """Outcome of resolving one module id"""
    kind: str
    value: str

    @classmethod
    def virtual(cls, name: str) -> "ResolvedTarget":
        return cls(VIRTUAL, name)

    @classmethod
    def local(cls, filename: str) -> "ResolvedTarget":
        return cls(LOCAL, filename)

    @classmethod
    def remote(cls, url: str) -> "ResolvedTarget":
        return cls(REMOTE, url)

    @classmethod
    def external(cls, module_id: str) -> "ResolvedTarget":
        return cls(EXTERNAL, module_id)

    @property
    def is_external(self) -> bool:
        return self.kind == EXTERNAL

    @property
    def module_id(self) -> str:
        """Id used for the module inside the bundle graph"""
        if self.kind == VIRTUAL:
            return f"{VIRTUAL_PREFIX}{self.value}"
        return self.value


class ModuleResolver:
    """Ordered resolution rules; the first match wins and nothing raises"""

    def __init__(self, local_files: Mapping[str, str], ssr: bool,
                 cdn_url: str = CDN_URL, runtime_url: str = SVELTE_CDN):
        self.local_files = local_files
        self.ssr = ssr
        self.cdn_url = cdn_url.rstrip("/")
        self.runtime_url = runtime_url

    def resolve(self, requested: str, importer: Optional[str] = None) -> ResolvedTarget:
        """
        Resolve a requested id, optionally relative to its importer

        Args:
            requested: Module specifier as written in the importing module
            importer: Graph id of the importing module, None for the entry

        Returns:
            ResolvedTarget
        """
        # 1) Environment flags
        if requested == ENV_MODULE:
            return ResolvedTarget.virtual(ENV_MODULE)

        # 2) Binding modules: inlined for SSR, import map in the browser
        if requested in BINDING_MODULES:
            if self.ssr:
                return ResolvedTarget.virtual(requested)
            return ResolvedTarget.external(requested)

        # 3) In-memory local files
        if requested in self.local_files:
            return ResolvedTarget.local(requested)

        # 4) Absolute remote URL stays as-is
        if is_remote_url(requested):
            return ResolvedTarget.remote(requested)

        # 5) Relative: against a remote importer, else caller-relative
        if requested.startswith("."):
            if is_remote_url(importer):
                return ResolvedTarget.remote(join_url(importer, requested))
            return ResolvedTarget.local(requested)

        # 6) Root-relative paths inside CDN modules
        if requested.startswith("/") and is_remote_url(importer):
            return ResolvedTarget.remote(f"{url_origin(importer)}{requested}")

        # 7) Runtime pinned to the compiler version; lifecycle shim for SSR
        if requested == RUNTIME_MODULE:
            if self.ssr:
                return ResolvedTarget.virtual(SSR_RUNTIME_SHIM)
            return ResolvedTarget.remote(self.runtime_url)
        if requested.startswith(f"{RUNTIME_MODULE}/"):
            return ResolvedTarget.remote(f"{self.runtime_url}/{requested[len(RUNTIME_MODULE) + 1:]}")

        # 8) Icon component shim
        if requested == ICON_MODULE:
            return ResolvedTarget.local(ICON_SHIM_ID)

        # 9) Bare package name via the CDN
        return ResolvedTarget.remote(f"{self.cdn_url}/{requested}")


class ModuleLoader:
    """Loads source text for resolved module ids"""

    def __init__(self, local_files: Mapping[str, str], bindings: VirtualBindings,
                 cache: ModuleCache, ssr: bool, dev: bool = False, runtime_url: str = SVELTE_CDN):
        self.local_files = local_files
        self.bindings = bindings
        self.cache = cache
        self.ssr = ssr
        self.dev = dev
        self.runtime_url = runtime_url
        self._virtual: Dict[str, str] = {}

    def _virtual_source(self, name: str) -> Optional[str]:
        if name not in self._virtual:
            if name == ENV_MODULE:
                source = env_module(self.ssr, self.dev)
            elif name == SSR_RUNTIME_SHIM:
                source = ssr_runtime_shim(self.runtime_url)
            else:
                source = binding_module(name, self.bindings)
            if source is None:
                return None
            self._virtual[name] = source
        return self._virtual[name]

    async def load(self, module_id: str) -> Optional[str]:
        """
        Load a module by graph id

        Returns:
            Source text, or None when nothing backs the id

        Raises:
            FetchError: If a remote module cannot be fetched
        """
        if module_id.startswith(VIRTUAL_PREFIX) and module_id != ICON_SHIM_ID:
            return self._virtual_source(module_id[len(VIRTUAL_PREFIX):])

        if module_id == ICON_SHIM_ID:
            return ICON_SHIM_SOURCE

        if module_id in self.local_files:
            return self.local_files[module_id]

        if is_remote_url(module_id):
            code = await self.cache.fetch(module_id)
            if module_id.split("?", 1)[0].endswith(".json"):
                return f"export default {json.dumps(json.loads(code))};"
            return code

        logger.debug(f"Nothing to load for {module_id}")
        return None
