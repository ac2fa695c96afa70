"""
Node.js runtime bridge

The Svelte compiler, PostCSS and Rollup are JavaScript tools. Each one is
driven by a small script in ``scripts/`` that reads a JSON request on stdin
and writes a JSON response on stdout.
"""

import asyncio
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Dict, Optional

from .constants import DEFAULT_NODE_COMMAND, DEFAULT_NODE_TIMEOUT

logger = logging.getLogger(__name__)

SCRIPTS_DIR = Path(__file__).resolve().parent / "scripts"


class NodeNotAvailable(RuntimeError):
    """Raised when the Node.js runtime cannot be found"""
    pass


class NodeScriptError(RuntimeError):
    """Raised when a bridge script crashes or answers with something other than JSON"""
    pass


class NodeRuntime:
    """Locates Node.js and runs the bridge scripts"""

    def __init__(self, command: Optional[str] = None, timeout: Optional[int] = None):
        self._command = command
        self.timeout = timeout if timeout is not None else DEFAULT_NODE_TIMEOUT
        self._available: Optional[bool] = None
        self._version: Optional[str] = None

    def get_command(self) -> str:
        """
        Get the node command to use

        Returns:
            Node command path or name
        """
        if self._command is None:
            env_command = os.getenv("PAGESMITH_NODE_CMD")
            if env_command:
                self._command = env_command
            else:
                self._command = shutil.which("node") or DEFAULT_NODE_COMMAND
        return self._command

    async def ensure_available(self) -> bool:
        """
        Check if Node.js is available and working

        Returns:
            True if node is available, False otherwise
        """
        if self._available is not None:
            return self._available

        try:
            process = await asyncio.create_subprocess_exec(
                self.get_command(),
                "--version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                stdout, _ = await asyncio.wait_for(process.communicate(), timeout=10)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                raise
            if process.returncode != 0:
                raise OSError(f"node --version exited with code {process.returncode}")
            self._version = stdout.decode("utf-8", errors="replace").strip()
            self._available = True
            logger.debug(f"Node.js is available: {self._version}")
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(f"Node.js is not available: {e}")
            self._available = False

        return self._available

    async def get_version(self) -> Optional[str]:
        if await self.ensure_available():
            return self._version
        return None

    def get_installation_instructions(self) -> str:
        return """
Node.js is not installed or not available in PATH.

The build pipeline needs Node.js 18+ with these packages resolvable from
the working directory (or NODE_PATH):
    npm install svelte rollup @rollup/browser postcss postcss-nested

Alternative: Set PAGESMITH_NODE_CMD environment variable to point to your node binary:
    export PAGESMITH_NODE_CMD=/path/to/node
""".strip()

    async def check_and_raise_if_unavailable(self) -> None:
        """
        Raises:
            NodeNotAvailable: If node is not available
        """
        if not await self.ensure_available():
            raise NodeNotAvailable(
                f"Node.js is required but not available.\n\n{self.get_installation_instructions()}"
            )

    async def run_script(self, script: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run a bridge script with a JSON payload

        Args:
            script: File name inside the scripts directory
            payload: Request object, sent as JSON on stdin

        Returns:
            Decoded JSON response

        Raises:
            NodeNotAvailable: If node is missing
            NodeScriptError: If the script fails, times out or prints invalid JSON
        """
        await self.check_and_raise_if_unavailable()
        script_path = SCRIPTS_DIR / script

        process = await asyncio.create_subprocess_exec(
            self.get_command(),
            str(script_path),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(json.dumps(payload).encode("utf-8")),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise NodeScriptError(f"{script} timed out after {self.timeout} seconds")

        if process.returncode != 0:
            raise NodeScriptError(
                f"{script} failed (code {process.returncode})\n"
                f"Stderr: {stderr.decode('utf-8', errors='replace') or 'No stderr'}"
            )

        try:
            return json.loads(stdout.decode("utf-8"))
        except json.JSONDecodeError as e:
            raise NodeScriptError(f"{script} returned invalid JSON: {e}") from e
