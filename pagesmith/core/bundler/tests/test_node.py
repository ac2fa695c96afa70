"""
Tests for the Node.js runtime bridge
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ..node import NodeNotAvailable, NodeRuntime


def fake_process(stdout: bytes = b"", returncode: int = 0) -> MagicMock:
    process = MagicMock()
    process.communicate = AsyncMock(return_value=(stdout, b""))
    process.returncode = returncode
    return process


class TestNodeRuntime:

    def setup_method(self):
        self.runtime = NodeRuntime(command="node-test")

    def test_version_check_runs_as_subprocess_on_the_loop(self):
        spawn = AsyncMock(return_value=fake_process(b"v20.11.0\n"))

        with patch("pagesmith.core.bundler.node.asyncio.create_subprocess_exec", spawn):
            assert asyncio.run(self.runtime.ensure_available()) is True
            assert asyncio.run(self.runtime.get_version()) == "v20.11.0"

        spawn.assert_awaited_once()
        assert spawn.await_args.args == ("node-test", "--version")

    def test_version_check_does_not_stall_other_tasks(self):
        """Other coroutines keep running while the version check waits"""
        ticks = []

        async def slow_communicate():
            await asyncio.sleep(0.05)
            return b"v20.11.0", b""

        process = fake_process()
        process.communicate = slow_communicate

        async def ticker():
            for _ in range(3):
                ticks.append(1)
                await asyncio.sleep(0.01)

        async def scenario():
            await asyncio.gather(self.runtime.ensure_available(), ticker())

        with patch("pagesmith.core.bundler.node.asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            asyncio.run(scenario())

        assert len(ticks) == 3
        assert self.runtime._available is True

    def test_missing_node(self):
        spawn = AsyncMock(side_effect=FileNotFoundError("node-test"))

        with patch("pagesmith.core.bundler.node.asyncio.create_subprocess_exec", spawn):
            assert asyncio.run(self.runtime.ensure_available()) is False
            with pytest.raises(NodeNotAvailable) as exc_info:
                asyncio.run(self.runtime.run_script("svelte_compile.mjs", {}))

        assert "PAGESMITH_NODE_CMD" in str(exc_info.value)
        spawn.assert_awaited_once()

    def test_failing_version_command(self):
        spawn = AsyncMock(return_value=fake_process(returncode=1))

        with patch("pagesmith.core.bundler.node.asyncio.create_subprocess_exec", spawn):
            assert asyncio.run(self.runtime.ensure_available()) is False
