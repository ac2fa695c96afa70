import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional

from pagesmith.core.bundler.node import NodeRuntime

logger = logging.getLogger(__name__)


class SSRError(Exception):
    """Exception raised when SSR rendering fails."""
    pass


@dataclass
class RenderedPage:
    head: str = ""
    body: str = ""


class SSRRenderer:
    """
    Server-Side Rendering engine that evaluates a server build module
    and renders its default export to head and body markup.
    """

    def __init__(self, node: Optional[NodeRuntime] = None):
        """
        Initialize SSR renderer.

        Args:
            node: Node runtime used to evaluate the server module.
        """
        self.node = node or NodeRuntime()

    async def render(
        self,
        code: str,
        props: Optional[Dict[str, Any]] = None
    ) -> RenderedPage:
        """
        Render a server build with the given props.
        The module is evaluated in a Node subprocess, so this never blocks
        the event loop.
        """
        try:
            result = await self.node.run_script("svelte_render.mjs", {"code": code, "props": props or {}})
        except Exception as e:
            raise SSRError(f"Render error: {e}") from e

        if result.get("error"):
            raise SSRError(f"Render error: {result['error']}")

        logger.debug("Rendered server build")
        return RenderedPage(head=result.get("head") or "", body=result.get("body") or "")

    def render_sync(
        self,
        code: str,
        props: Optional[Dict[str, Any]] = None
    ) -> RenderedPage:
        """
        Synchronous version of render.
        """
        return asyncio.run(self.render(code, props))


# Convenience function
async def render(
    code: str,
    props: Optional[Dict[str, Any]] = None
) -> RenderedPage:
    """
    Convenience function to render a server build with a default renderer.
    """
    renderer = SSRRenderer()
    return await renderer.render(code, props)
