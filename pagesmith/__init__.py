"""
pagesmith - in-process Svelte page build pipeline

pagesmith turns single-file component source into a server-rendered page
and an optional hydration bundle:
- Svelte compilation through svelte/compiler
- Virtual binding modules for content, design tokens and records
- CDN-backed third-party modules with an in-memory cache
- Actionable diagnostics with code frames
"""

from .core import bundler as Bundler
from .core.pipeline import Pipeline, RenderPayload, get_pipeline
from .core.ssr import SSRRenderer

__version__ = "0.1.0"
__description__ = "In-process Svelte page build pipeline with SSR and hydration"

__all__ = [
    "Bundler",
    "Pipeline",
    "RenderPayload",
    "get_pipeline",
    "SSRRenderer",
]
