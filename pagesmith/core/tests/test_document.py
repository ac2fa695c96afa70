"""
Tests for static document generation
"""

import json
import re
from urllib.parse import unquote

from ..document import (
    DesignField, SiteConfig, data_url, design_css, extract_web_fonts, font_links, import_map,
    is_system_font, render_document,
)


class TestFonts:

    def test_system_fonts(self):
        assert is_system_font("")
        assert is_system_font("Arial")
        assert is_system_font("system-ui, sans-serif")
        assert is_system_font("'-apple-system', BlinkMacSystemFont")
        assert not is_system_font("Inter")

    def test_web_fonts_deduplicated(self):
        design = [
            DesignField("--font-heading", "'Playfair Display'", "font"),
            DesignField("--font-body", "Inter", "font"),
            DesignField("--font-alt", "Inter", "font"),
            DesignField("--font-mono", "monospace", "font"),
            DesignField("--color", "Inter", "color"),
        ]
        assert extract_web_fonts(design) == ["Playfair Display", "Inter"]

    def test_font_link(self):
        link = font_links([DesignField("--font", "Open Sans", "font")])
        assert link == (
            '<link rel="stylesheet" href="https://fonts.bunny.net/css?family='
            'open-sans%3A400%2C500%2C600%2C700&display=swap">'
        )
        assert font_links([DesignField("--font", "serif", "font")]) == ""


class TestDocument:

    def setup_method(self):
        self.config = SiteConfig.from_dict({
            "project_id": "p1",
            "name": "Bakery <Home>",
            "content": {"title": "Fresh bread"},
            "design": [{"css_var": "--brand", "value": "#c60", "type": "color"}],
            "data_collections": ["products"],
        })

    def test_design_css(self):
        assert design_css(self.config.design) == ":root {\n\t--brand: #c60;\n}"
        assert design_css([]) == ":root {}"

    def test_static_page_has_no_scripts(self):
        page = render_document("<h1>Fresh bread</h1>", self.config, head="<meta name=\"x\">")

        assert "<title>Bakery &lt;Home&gt;</title>" in page
        assert '<div id="app"><h1>Fresh bread</h1></div>' in page
        assert '<meta name="x">' in page
        assert "importmap" not in page
        assert "<script" not in page

    def test_interactive_page(self):
        page = render_document("<button>0</button>", self.config, hydration_js="export const x = '</script>';")

        assert '<script type="importmap">' in page
        assert "mod.hydrate(mod.default, { target: document.getElementById('app') });" in page
        assert "</script>';" not in page

    def test_import_map(self):
        imports = import_map(self.config)["imports"]

        assert imports["svelte"] == "https://esm.sh/svelte@5"
        assert imports["svelte/"] == "https://esm.sh/svelte@5/"
        for name in ("$content", "$design", "$data", "$site", "$backend"):
            assert imports[name].startswith("data:text/javascript,")
        content = unquote(imports["$content"][len("data:text/javascript,"):])
        assert content == 'export default {"title": "Fresh bread"};'
        assert "products" in unquote(imports["$data"])

    def test_import_map_in_page_is_valid_json(self):
        page = render_document("<p/>", self.config, hydration_js="export {}")
        match = re.search(r'<script type="importmap">\n(.*?)\n\s*</script>', page, re.DOTALL)
        assert json.loads(match.group(1)) == import_map(self.config)

    def test_data_url_escaping(self):
        assert data_url("a b/c") == "data:text/javascript,a%20b%2Fc"
