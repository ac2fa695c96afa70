"""
Tests for the nested CSS processor
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from ..styles import CssCompilationError, PostCSSTransform, StyleProcessor, to_css_error


class SlowTransform:
    """Counts calls and yields to the loop before answering"""

    def __init__(self, fail_first: bool = False):
        self.calls = 0
        self.fail_first = fail_first

    async def __call__(self, raw: str) -> str:
        self.calls += 1
        await asyncio.sleep(0.01)
        if self.fail_first and self.calls == 1:
            raise CssCompilationError("Unknown word", line=1, column=3)
        return raw.replace(" & ", " ")


class TestStyleProcessor:

    def setup_method(self):
        self.transform = SlowTransform()
        self.processor = StyleProcessor(self.transform)

    def test_memoized_by_input(self):
        async def run():
            first = await self.processor.process(".a { & .b { color: red } }")
            second = await self.processor.process(".a { & .b { color: red } }")
            return first, second

        first, second = asyncio.run(run())
        assert first == second == ".a { .b { color: red } }"
        assert self.transform.calls == 1
        assert self.processor.get_stats()["hits"] == 1

    def test_concurrent_callers_share_one_compile(self):
        async def run():
            return await asyncio.gather(*[self.processor.process(".x { & .y {} }") for _ in range(3)])

        results = asyncio.run(run())
        assert len(set(results)) == 1
        assert self.transform.calls == 1
        assert self.processor.get_stats()["waits"] == 2

    def test_waiter_recomputes_after_failure(self):
        processor = StyleProcessor(SlowTransform(fail_first=True))

        async def run():
            return await asyncio.gather(
                processor.process(".x { & .y {} }"),
                processor.process(".x { & .y {} }"),
                return_exceptions=True,
            )

        first, second = asyncio.run(run())
        assert isinstance(first, CssCompilationError)
        assert second == ".x { .y {} }"
        assert processor.transform.calls == 2

    def test_errors_are_not_cached(self):
        transform = AsyncMock(side_effect=[ValueError("Unclosed block"), ".ok {}"])
        processor = StyleProcessor(transform)

        with pytest.raises(CssCompilationError) as exc_info:
            asyncio.run(processor.process(".ok {"))
        assert str(exc_info.value) == "CSS Error: Unclosed block"

        assert asyncio.run(processor.process(".ok {")) == ".ok {}"
        assert transform.await_count == 2

    def test_empty_output_not_cached(self):
        transform = AsyncMock(return_value="")
        processor = StyleProcessor(transform)

        assert asyncio.run(processor.process("/* nothing */")) == ""
        assert processor.get_stats()["entries"] == 0

    def test_clear(self):
        asyncio.run(self.processor.process(".a {}"))
        self.processor.clear()
        asyncio.run(self.processor.process(".a {}"))
        assert self.transform.calls == 2


class TestCssErrors:

    def test_message_with_position(self):
        error = CssCompilationError("Unknown word", line=2, column=5, reason="Unknown word")
        assert str(error) == "CSS Error: Unknown word (line 2, column 5)"

    def test_from_report(self):
        error = to_css_error({"message": "Unclosed bracket", "line": 4, "column": 1, "reason": "Unclosed bracket"})
        assert (error.line, error.column, error.reason) == (4, 1, "Unclosed bracket")

    def test_postcss_transform_raises_reported_error(self):
        node = AsyncMock()
        node.run_script.return_value = {"error": {"message": "Unknown word", "line": 1, "column": 2}}

        with pytest.raises(CssCompilationError) as exc_info:
            asyncio.run(PostCSSTransform(node)(".a { b }"))

        assert exc_info.value.line == 1
        node.run_script.assert_awaited_once_with("postcss_nested.mjs", {"css": ".a { b }"})

    def test_postcss_transform_returns_css(self):
        node = AsyncMock()
        node.run_script.return_value = {"css": ".a .b {}"}
        assert asyncio.run(PostCSSTransform(node)(".a { .b {} }")) == ".a .b {}"
