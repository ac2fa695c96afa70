"""
Static document generation

Wraps a server-rendered page into a complete HTML document: design tokens
as CSS variables, web font links, and, when the page is interactive, an
import map for the binding modules plus the hydration bootstrap.
"""

import html
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from pagesmith.core.bundler.constants import (
    NORMALIZE_CSS_URL, FONTS_CDN_URL, SVELTE_IMPORT_MAP_URL, RUNTIME_MODULE,
)
from pagesmith.core.bundler.utils import to_js_literal
from pagesmith.core.bundler.virtual import VirtualBindings, client_binding_modules

logger = logging.getLogger(__name__)

# Font values that never need a CDN stylesheet
SYSTEM_FONT_PATTERNS = [
    'system-ui', '-apple-system', 'blinkmacsystemfont', 'segoe ui',
    'helvetica', 'arial', 'sans-serif', 'serif', 'monospace', 'cursive', 'fantasy',
    'ui-monospace', 'ui-sans-serif', 'ui-serif', 'ui-rounded',
    'georgia', 'cambria', 'times new roman', 'times', 'courier new', 'courier',
    'monaco', 'menlo', 'consolas', 'liberation mono', 'dejavu sans mono',
    'lucida console', 'sf mono', 'sfmono-regular',
]


@dataclass(frozen=True)
class DesignField:
    """One design token, exposed as a CSS custom property"""
    css_var: str
    value: str
    type: str = ""

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DesignField":
        return cls(
            css_var=raw.get("css_var") or raw.get("cssVar") or "",
            value=str(raw.get("value") or ""),
            type=raw.get("type") or "",
        )


@dataclass
class SiteConfig:
    """What a published page needs besides its rendered markup"""
    project_id: str = ""
    name: str = "pagesmith App"
    content: Dict[str, Any] = field(default_factory=dict)
    design: List[DesignField] = field(default_factory=list)
    data_collections: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "SiteConfig":
        raw = raw or {}
        return cls(
            project_id=str(raw.get("project_id") or raw.get("projectId") or ""),
            name=raw.get("name") or raw.get("project_name") or "pagesmith App",
            content=dict(raw.get("content") or {}),
            design=[DesignField.from_dict(item) for item in raw.get("design") or []],
            data_collections=list(raw.get("data_collections") or raw.get("dataCollections") or []),
        )

    def design_values(self) -> Dict[str, str]:
        return {item.css_var: item.value for item in self.design if item.css_var}

    def bindings(self) -> VirtualBindings:
        """Bindings for the page; record data is fetched client-side"""
        return VirtualBindings(
            content=dict(self.content),
            design=self.design_values(),
            data={},
            project_id=self.project_id,
        )


def is_system_font(font_value: str) -> bool:
    if not font_value:
        return True

    if "," in font_value:
        first_font = font_value.split(",")[0].strip().replace('"', '').replace("'", '')
        if first_font in ("system-ui", "-apple-system"):
            return True

    return font_value.lower() in SYSTEM_FONT_PATTERNS


def extract_web_fonts(design: List[DesignField]) -> List[str]:
    """Font names from font-type tokens that have to come from the font CDN"""
    fonts: List[str] = []
    for item in design:
        if item.type != "font" or is_system_font(item.value):
            continue
        name = item.value.strip().replace('"', '').replace("'", '')
        if name and name not in fonts:
            fonts.append(name)
    return fonts


def font_links(design: List[DesignField]) -> str:
    fonts = extract_web_fonts(design)
    if not fonts:
        return ""
    params = "|".join(f"{'-'.join(font.lower().split())}:400,500,600,700" for font in fonts)
    return f'<link rel="stylesheet" href="{FONTS_CDN_URL}?family={quote(params, safe="")}&display=swap">'


def design_css(design: List[DesignField]) -> str:
    lines = [f"\t{item.css_var}: {item.value};" for item in design if item.css_var]
    if not lines:
        return ":root {}"
    return ":root {\n" + "\n".join(lines) + "\n}"


def data_url(source: str) -> str:
    """Module source as a data: URL, escaped like encodeURIComponent"""
    return "data:text/javascript," + quote(source, safe="-_.!~*'()")


def import_map(config: SiteConfig) -> Dict[str, Any]:
    """Import map resolving the runtime and every binding module in the browser"""
    bindings = VirtualBindings.from_dict({
        "content": config.content,
        "design": config.design_values(),
        "data": {name: [] for name in config.data_collections},
        "project_id": config.project_id,
    })
    imports = {
        RUNTIME_MODULE: SVELTE_IMPORT_MAP_URL,
        f"{RUNTIME_MODULE}/": f"{SVELTE_IMPORT_MAP_URL}/",
    }
    for name, source in client_binding_modules(bindings).items():
        imports[name] = data_url(source)
    return {"imports": imports}


def hydration_script(hydration_js: str) -> str:
    return '''
    <script type="module">
        const code = ''' + to_js_literal(hydration_js) + ''';
        const blob = new Blob([code], { type: 'text/javascript' });
        const url = URL.createObjectURL(blob);
        try {
            const mod = await import(url);
            mod.hydrate(mod.default, { target: document.getElementById('app') });
        } catch (e) {
            console.error('[pagesmith] hydration failed:', e);
        } finally {
            URL.revokeObjectURL(url);
        }
    </script>'''


def render_document(body: str, config: SiteConfig, head: str = "", hydration_js: str = "") -> str:
    """
    Assemble the published HTML document

    Args:
        body: Server-rendered markup
        config: Site settings (name, design tokens, content, collections)
        head: Server-rendered head markup
        hydration_js: Client bundle exporting ``hydrate``; empty for static pages

    Returns:
        Complete HTML document
    """
    import_map_tag = ""
    if hydration_js:
        import_map_json = json.dumps(import_map(config), indent=2).replace("</", "<\\/")
        import_map_tag = f'<script type="importmap">\n{import_map_json}\n    </script>'

    document = '''<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>''' + html.escape(config.name) + '''</title>
    <link rel="stylesheet" href="''' + NORMALIZE_CSS_URL + '''">
    ''' + font_links(config.design) + '''
    <style>''' + design_css(config.design) + '''</style>
    ''' + head + '''
    ''' + import_map_tag + '''
</head>
<body>
    <div id="app">''' + body + '''</div>''' + (hydration_script(hydration_js) if hydration_js else '') + '''
</body>
</html>'''

    logger.debug(f"Rendered document for {config.project_id or config.name}")
    return document
