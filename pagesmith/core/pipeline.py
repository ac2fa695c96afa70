"""
Compile-and-render pipeline

Joins the bundler with the server renderer: builds a request, renders the
server bundle with the section props, and publishes whole documents.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from pagesmith.core.bundler import BuildOrchestrator, BuildOptions, BuildRequest
from pagesmith.core.bundler.diagnostics import BuildError
from pagesmith.core.bundler.templates import ComponentSource, HeadSpec, Source, render_props
from pagesmith.core.bundler.virtual import VirtualBindings
from pagesmith.core.document import SiteConfig, render_document
from pagesmith.core.ssr import SSRError, SSRRenderer

logger = logging.getLogger(__name__)


@dataclass
class RenderPayload:
    """Rendered markup plus the client bundle, or an error"""
    head: str = ""
    body: str = ""
    js: str = ""
    error: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"head": self.head, "body": self.body, "js": self.js, "error": self.error}


def has_js(sources: Union[Source, List[Source]]) -> bool:
    """Whether any source carries script code that needs a client bundle"""
    if isinstance(sources, list):
        return any(has_js(section) for section in sources)
    if isinstance(sources, ComponentSource):
        return bool(sources.js.strip()) or "<script" in sources.html
    return "<script" in sources


class Pipeline:
    """Main entry point tying together the build and render steps"""

    def __init__(self, orchestrator: Optional[BuildOrchestrator] = None, renderer: Optional[SSRRenderer] = None):
        self.orchestrator = orchestrator or BuildOrchestrator()
        self.renderer = renderer or SSRRenderer()

    async def process_code(
        self,
        sources: Union[Source, List[Source]],
        head: Optional[HeadSpec] = None,
        bindings: Optional[VirtualBindings] = None,
        build_static: bool = True,
        hydrated: Optional[bool] = None,
        css: str = "external",
        dev_mode: bool = False,
        runtime_exports: Sequence[str] = (),
    ) -> RenderPayload:
        """
        Build and, for static builds, render the page

        Args:
            sources: Raw component text, a structured section, or a list of sections
            head: Head markup and fields for multi-section pages
            bindings: Values behind the binding modules
            build_static: Render on the server instead of building a client-only bundle
            hydrated: Also build a hydration bundle; defaults to whether any
                source has script code and the build is static
            css: Style mode for the client-only bundle
            dev_mode: Compile client bundles in dev mode
            runtime_exports: Runtime functions the entry re-exports

        Returns:
            RenderPayload; ``error`` holds the formatted diagnostic on failure
        """
        if hydrated is None:
            hydrated = build_static and has_js(sources)

        head = head or HeadSpec()
        request = BuildRequest(
            sources=sources,
            head=head,
            options=BuildOptions(
                build_static=build_static,
                hydrated=hydrated,
                css=css,
                dev_mode=dev_mode,
                runtime_exports=tuple(runtime_exports),
            ),
            bindings=bindings or VirtualBindings(),
        )
        result = await self.orchestrator.build(request)
        if result.error:
            return RenderPayload(error=result.error)

        if not build_static:
            return RenderPayload(js=result.dom)

        try:
            page = await self.renderer.render(result.ssr, render_props(sources, head))
        except SSRError as e:
            logger.error(f"Server render failed: {e}")
            return RenderPayload(error=str(e))

        return RenderPayload(head=page.head, body=page.body, js=result.dom)

    async def publish(self, source: str, site: Union[SiteConfig, Dict[str, Any], None] = None) -> str:
        """
        Compile one component into a complete static document

        Pages with script code get a hydration bundle exporting ``hydrate``.

        Returns:
            HTML document, or an empty string for empty source

        Raises:
            BuildError: If the build or the render fails
        """
        if not source:
            return ""
        if not isinstance(site, SiteConfig):
            site = SiteConfig.from_dict(site)

        interactive = has_js(source)
        payload = await self.process_code(
            source,
            bindings=site.bindings(),
            build_static=True,
            hydrated=interactive,
            runtime_exports=("hydrate",) if interactive else (),
        )
        if payload.error:
            raise BuildError(payload.error)
        if not payload.body:
            raise BuildError("SSR compilation produced no body output")

        logger.info(f"Published {site.name}")
        return render_document(payload.body, site, head=payload.head, hydration_js=payload.js)


def get_pipeline(orchestrator: Optional[BuildOrchestrator] = None) -> Pipeline:
    """
    Get a configured pipeline instance

    Args:
        orchestrator: Orchestrator to share caches with; a new one by default

    Returns:
        Configured Pipeline instance
    """
    return Pipeline(orchestrator=orchestrator)
