"""
Tests for BuildOrchestrator target sequencing and failure handling
"""

import asyncio

import pytest

from .. import get_orchestrator
from ..cache import ModuleCache
from ..constants import APP_FILE, SVELTE_CDN
from ..orchestrator import BuildOptions, BuildOrchestrator, BuildRequest, BuildResult
from ..styles import CssCompilationError, StyleProcessor
from ..templates import ComponentSource, HeadSpec
from ..virtual import VirtualBindings
from .fakes import CdnStub, FakeCompilerBackend, make_orchestrator, upper_case_css


def section(name: str) -> ComponentSource:
    return ComponentSource(
        html=f"<section><h2>{{{name}}}</h2></section>",
        css="section { h2 { color: red; } }",
        js=f"console.log('{name}');",
        data={name: f"{name} value"},
    )


class TestBuildOrchestrator:

    def setup_method(self):
        self.orchestrator, self.backend, self.bundler, self.cdn = make_orchestrator()

    def build(self, request: BuildRequest) -> BuildResult:
        return asyncio.run(self.orchestrator.build(request))

    def test_single_source_static_build(self):
        """A raw static build yields only server code"""
        result = self.build(BuildRequest(sources="<h1>Hello</h1>"))

        assert result.ssr
        assert result.dom == ""
        assert result.error == ""
        assert [call["options"]["generate"] for call in self.backend.calls] == ["server"]
        assert self.backend.calls[0]["options"]["css"] == "injected"
        assert self.backend.calls[0]["options"]["sourcemap"] is True
        assert self.cdn.requests

    def test_sections_client_build_with_hydration(self):
        """Two sections are imported by the shell in the order given"""
        request = BuildRequest(
            sources=[section("title"), section("footer")],
            options=BuildOptions(build_static=False, hydrated=True),
        )
        result = self.build(request)

        assert result.error == ""
        assert result.ssr == ""
        assert result.dom

        graph = self.bundler.graphs[-1]
        shell_imports = [module_id for module_id in graph.imported_by(APP_FILE) if module_id.endswith(".svelte")]
        assert shell_imports == ["./Component_0.svelte", "./Component_1.svelte"]

    def test_structured_css_goes_through_style_processor(self):
        request = BuildRequest(sources=[section("title")], options=BuildOptions(build_static=False))
        self.build(request)

        compiled = [call["source"] for call in self.backend.calls]
        assert any("SECTION { H2 { COLOR: RED; } }" in source for source in compiled)

    def test_targets_run_in_order(self):
        request = BuildRequest(sources="<p>hi</p>", options=BuildOptions(build_static=True, hydrated=True))
        result = self.build(request)

        assert result.ssr and result.dom
        assert [call["options"]["generate"] for call in self.backend.calls] == ["server", "client"]

    def test_hydration_forces_external_css(self):
        """The hydration bundle replaces the client bundle and never injects styles"""
        request = BuildRequest(
            sources="<p>hi</p>",
            options=BuildOptions(build_static=False, hydrated=True, css="injected"),
        )
        result = self.build(request)

        css_modes = [call["options"]["css"] for call in self.backend.calls]
        assert css_modes == ["injected", "external"]
        assert "client:external" in result.dom
        assert "client:injected" not in result.dom

    def test_client_build_uses_requested_css_and_dev(self):
        request = BuildRequest(
            sources="<p>hi</p>",
            options=BuildOptions(build_static=False, css="injected", dev_mode=True),
        )
        self.build(request)

        assert self.backend.calls[0]["options"] == {
            "generate": "client", "css": "injected", "dev": True, "sourcemap": True,
        }

    def test_malformed_source_reports_code_frame(self):
        """An unclosed tag produces the offending line and a column marker"""
        source = "<h1>Title</h1>\n<div class=\"card\">\n  <p>Body</p>\n"
        result = self.build(BuildRequest(sources=source))

        assert result.ssr == ""
        assert result.dom == ""
        assert "CompileError: <div> was left open" in result.error
        assert "line 2, column 0" in result.error
        assert ">   2 | <div class=\"card\">" in result.error
        assert "\n" + " " * 8 + "^" in result.error

    def test_failure_in_later_target_clears_earlier_output(self):
        orchestrator, backend, _, _ = make_orchestrator(backend=FakeCompilerBackend(fail_on="client"))
        request = BuildRequest(sources="<p>hi</p>", options=BuildOptions(build_static=True, hydrated=True))

        result = asyncio.run(orchestrator.build(request))

        assert result.ssr == ""
        assert result.dom == ""
        assert "client compile refused" in result.error
        assert [call["options"]["generate"] for call in backend.calls] == ["server", "client"]

    def test_first_failure_stops_remaining_targets(self):
        orchestrator, backend, _, _ = make_orchestrator(backend=FakeCompilerBackend(fail_on="server"))
        request = BuildRequest(sources="<p>hi</p>", options=BuildOptions(build_static=True, hydrated=True))

        result = asyncio.run(orchestrator.build(request))

        assert "server compile refused" in result.error
        assert [call["options"]["generate"] for call in backend.calls] == ["server"]

    def test_fetch_failure_is_reported(self):
        source = "<script>\nimport pad from 'left-pad';\n</script>\n<p>{pad}</p>"
        orchestrator, _, _, _ = make_orchestrator(cdn=CdnStub(missing=("left-pad",)))

        result = asyncio.run(orchestrator.build(BuildRequest(sources=source)))

        assert result.ssr == ""
        assert "FetchError: Failed to fetch https://esm.sh/left-pad: 404 Not Found" in result.error

    def test_style_failure_aborts_build(self):
        async def broken(raw: str) -> str:
            raise ValueError("Unclosed block")

        self.orchestrator.styles.transform = broken
        request = BuildRequest(sources=[section("title")])

        result = self.build(request)

        assert result == BuildResult(error="CSS Error: Unclosed block")
        assert self.backend.calls == []

    def test_page_text_mentioning_imports_is_not_fetched(self):
        source = "<p>We import coffee from 'Brazil' every year</p>"
        result = self.build(BuildRequest(sources=source, options=BuildOptions(build_static=True, hydrated=True)))

        assert result.error == ""
        assert result.ssr and result.dom
        assert not any("Brazil" in url for url in self.cdn.requests)

    def test_style_failure_shows_css_frame(self):
        async def broken(raw: str) -> str:
            raise CssCompilationError("Unknown word", line=2, column=3)

        self.orchestrator.styles.transform = broken
        css = "section {\n  h2 { color red }\n}"
        result = self.build(BuildRequest(sources=ComponentSource(html="<section/>", css=css)))

        assert result.error.startswith("CSS Error: Unknown word (line 2, column 3)\n\n")
        assert ">   2 |   h2 { color red }" in result.error
        assert result.error.endswith("\n" + " " * 10 + "^\n    3 | }")

    def test_identical_requests_give_identical_results(self):
        request = BuildRequest(
            sources=[section("title"), section("footer")],
            head=HeadSpec(code="<title>{page_title}</title>", data={"page_title": "Home"}),
            options=BuildOptions(build_static=True, hydrated=True),
        )
        first = self.build(request)
        second = self.build(request)

        assert first == second
        assert first.error == ""

    def test_remote_modules_are_fetched_once(self):
        request = BuildRequest(sources="<p>hi</p>")
        self.build(request)
        self.build(request)

        assert self.cdn.requests.count(f"{SVELTE_CDN}/internal/server") == 1

    def test_ssr_build_uses_lifecycle_shim(self):
        source = "<script>\nimport { onMount } from 'svelte';\nonMount(() => {});\n</script>\n<p>hi</p>"
        self.build(BuildRequest(sources=source))

        graph = self.bundler.graphs[-1]
        assert "virtual:svelte-ssr-shim" in graph.modules
        assert graph.resolutions[(APP_FILE, "svelte")].module_id == "virtual:svelte-ssr-shim"

    def test_binding_modules_inlined_for_ssr_and_external_for_client(self):
        source = (
            "<script>\n"
            "import content from '$content';\n"
            "import design from '$design';\n"
            "import db from '$data';\n"
            "import { asset } from '$site';\n"
            "import backend from '$backend';\n"
            "</script>\n<p>{content.title}</p>"
        )
        bindings = VirtualBindings(content={"title": "Hi"}, project_id="p1")
        request = BuildRequest(
            sources=source,
            options=BuildOptions(build_static=True, hydrated=True),
            bindings=bindings,
        )
        result = self.build(request)
        assert result.error == ""

        ssr_graph, client_graph = self.bundler.graphs[-2:]
        for name in ("$content", "$design", "$data", "$site", "$backend"):
            assert f"virtual:{name}" in ssr_graph.modules
            assert not ssr_graph.resolutions[(APP_FILE, name)].is_external
            assert client_graph.resolutions[(APP_FILE, name)].is_external
            assert f"virtual:{name}" not in client_graph.modules
        assert '"title": "Hi"' in result.ssr

    def test_runtime_exports_reexported_from_entry(self):
        request = BuildRequest(
            sources="<p>hi</p>",
            options=BuildOptions(build_static=False, runtime_exports=("hydrate", "mount")),
        )
        self.build(request)

        graph = self.bundler.graphs[-1]
        assert "export { hydrate, mount } from 'svelte';" in graph.modules["./entry.js"].code
        assert graph.resolutions[("./entry.js", "svelte")].value == SVELTE_CDN


class TestBuildRequestParsing:

    def test_from_dict_accepts_camel_case(self):
        request = BuildRequest.from_dict({
            "component": [{"html": "<p>a</p>", "data": {"a": 1}}, "<p>raw</p>"],
            "head": {"code": "<title>x</title>", "data": {"title": "x"}},
            "options": {"buildStatic": False, "hydrated": True, "devMode": True, "runtime": ["mount"]},
            "bindings": {"content": {"a": 1}, "projectId": "abc", "data": {"posts": [{"id": "1"}]}},
        })

        assert isinstance(request.sources, list)
        assert request.sources[0] == ComponentSource(html="<p>a</p>", data={"a": 1})
        assert request.sources[1] == "<p>raw</p>"
        assert request.head.data == {"title": "x"}
        assert request.options.build_static is False
        assert request.options.hydrated is True
        assert request.options.dev_mode is True
        assert request.options.runtime_exports == ("mount",)
        assert request.bindings.project_id == "abc"
        assert request.bindings.collection("posts").records == [{"id": "1"}]

    def test_invalid_options_rejected(self):
        with pytest.raises(ValueError):
            BuildOptions(css="inline")
        with pytest.raises(ValueError):
            BuildOptions.from_dict({"format": "cjs"})

    def test_unsupported_source_rejected(self):
        with pytest.raises(TypeError):
            BuildRequest.from_dict({"sources": 42})

    def test_single_runtime_export_name(self):
        options = BuildOptions.from_dict({"runtime": "hydrate"})
        assert options.runtime_exports == ("hydrate",)

    def test_invalid_runtime_exports_rejected(self):
        with pytest.raises(ValueError):
            BuildOptions.from_dict({"runtimeExports": 5})
        with pytest.raises(ValueError):
            BuildOptions.from_dict({"runtime_exports": ["hydrate", 1]})


class TestSharedCaches:

    def test_injected_collaborators_are_kept(self):
        """An empty cache is still the one the orchestrator uses"""
        cdn = CdnStub()
        cache = ModuleCache(client=cdn.client())
        styles = StyleProcessor(upper_case_css)
        assert len(cache) == 0

        orchestrator = BuildOrchestrator(cache=cache, styles=styles)
        assert orchestrator.cache is cache
        assert orchestrator.styles is styles

        shared = get_orchestrator(cache=cache, styles=styles)
        assert shared.cache is cache
        assert shared.styles is styles

    def test_builds_fetch_through_injected_cache(self):
        orchestrator, _, _, cdn = make_orchestrator()

        result = asyncio.run(orchestrator.build(BuildRequest(sources="<p>hi</p>")))

        assert result.error == ""
        assert f"{SVELTE_CDN}/internal/server" in cdn.requests
        assert len(orchestrator.cache) == len(set(cdn.requests))
