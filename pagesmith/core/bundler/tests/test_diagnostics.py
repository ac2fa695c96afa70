"""
Tests for build error formatting
"""

from ..diagnostics import (
    BuildError, Diagnostic, format_build_error, format_diagnostic, generate_code_frame, to_diagnostic,
)

SOURCE = "line one\nline two\nline three\nline four\nline five\nline six"


class TestCodeFrame:

    def test_two_lines_of_context(self):
        frame = generate_code_frame(SOURCE, 4)
        assert frame.split("\n") == [
            "    2 | line two",
            "    3 | line three",
            ">   4 | line four",
            "    5 | line five",
            "    6 | line six",
        ]

    def test_column_marker(self):
        frame = generate_code_frame(SOURCE, 1, 5)
        rows = frame.split("\n")
        assert rows[0] == ">   1 | line one"
        assert rows[1] == " " * 13 + "^"
        # marker sits under the sixth character of the line
        assert rows[1].index("^") - rows[0].index("line one") == 5

    def test_frame_clamped_to_source(self):
        frame = generate_code_frame("only", 1, 0)
        assert frame == ">   1 | only\n        ^"


class TestToDiagnostic:

    def test_structured_compiler_report(self):
        diagnostic = to_diagnostic({
            "name": "CompileError",
            "message": "Unexpected token",
            "start": {"line": 3, "column": 7},
            "frame": "\n1: <div>\n",
        }, "./App.svelte")

        assert diagnostic.name == "CompileError"
        assert diagnostic.line == 3
        assert diagnostic.column == 7
        assert diagnostic.frame == "1: <div>"
        assert diagnostic.module_id == "./App.svelte"

    def test_linker_report_with_loc_and_links(self):
        diagnostic = to_diagnostic({
            "code": "MISSING_EXPORT",
            "message": "x is not exported",
            "plugin": "pagesmith-graph",
            "loc": {"line": 1, "column": 2},
            "stack": "Error\nhttps://rollupjs.org/troubleshooting/#error-name-is-not-exported-by-module\n    at foo",
            "url": "https://rollupjs.org/missing",
            "id": "./entry.js",
        })

        assert diagnostic.name == "MISSING_EXPORT"
        assert diagnostic.plugin == "pagesmith-graph"
        assert (diagnostic.line, diagnostic.column) == (1, 2)
        assert diagnostic.links == {
            "https://rollupjs.org/troubleshooting/#error-name-is-not-exported-by-module",
            "https://rollupjs.org/missing",
        }
        assert diagnostic.module_id == "./entry.js"

    def test_build_error(self):
        error = BuildError("boom", name="FetchError", url="https://example.com/doc", module_id="https://esm.sh/x")
        diagnostic = to_diagnostic(error)

        assert diagnostic.name == "FetchError"
        assert diagnostic.links == {"https://example.com/doc"}
        assert diagnostic.module_id == "https://esm.sh/x"

    def test_plain_exception(self):
        diagnostic = to_diagnostic(RuntimeError("node crashed"))
        assert diagnostic.name == "RuntimeError"
        assert diagnostic.message == "node crashed"


class TestFormatting:

    def test_full_message_layout(self):
        diagnostic = Diagnostic(
            name="CompileError",
            message="Unexpected token",
            line=2,
            column=0,
            plugin="svelte",
            links={"https://b.example", "https://a.example"},
        )
        message = format_diagnostic(diagnostic, SOURCE)

        head, frame, links = message.split("\n\n")
        assert head == "[svelte] CompileError: Unexpected token\nline 2, column 0"
        assert ">   2 | line two" in frame
        assert links == "https://a.example\nhttps://b.example"

    def test_supplied_frame_wins(self):
        diagnostic = Diagnostic(name="E", message="m", line=1, frame="given frame")
        assert format_diagnostic(diagnostic, SOURCE) == "E: m\nline 1\n\ngiven frame"

    def test_no_position_no_frame(self):
        assert format_diagnostic(Diagnostic(name="E", message="m"), SOURCE) == "E: m"

    def test_format_build_error_shortcuts(self):
        assert format_build_error(None) == "Unknown build error"
        assert format_build_error("already formatted") == "already formatted"
        assert format_build_error(ValueError("bad")) == "ValueError: bad"
