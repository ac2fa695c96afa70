"""
Build worker channel

Requests are posted as messages and answered through futures paired by
message id. Each worker task runs one build at a time.
"""

import asyncio
import itertools
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from .constants import DEFAULT_BUILD_WORKERS
from .orchestrator import BuildOrchestrator, BuildRequest, BuildResult

logger = logging.getLogger(__name__)


class BuildWorker:
    """Request/response channel in front of a BuildOrchestrator"""

    def __init__(self, orchestrator: Optional[BuildOrchestrator] = None, workers: int = DEFAULT_BUILD_WORKERS):
        self.orchestrator = orchestrator or BuildOrchestrator()
        self.workers = max(1, workers)
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: List[asyncio.Task] = []
        self._pending: Dict[int, asyncio.Future] = {}
        self._ids = itertools.count(1)

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._tasks = [asyncio.create_task(self._run(i)) for i in range(self.workers)]
        logger.info(f"Started {self.workers} build worker(s)")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()
        logger.info("Build workers stopped")

    async def post_message(self, request: Union[BuildRequest, Dict[str, Any]]) -> asyncio.Future:
        """
        Queue a build request

        Args:
            request: BuildRequest or its JSON wire form

        Returns:
            Future resolving to the BuildResult
        """
        if not self.running:
            await self.start()
        if isinstance(request, dict):
            request = BuildRequest.from_dict(request)

        message_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[message_id] = future
        await self._queue.put((message_id, request))
        logger.debug(f"Queued build #{message_id}")
        return future

    async def request(self, request: Union[BuildRequest, Dict[str, Any]]) -> BuildResult:
        """Post a request and wait for its result"""
        return await (await self.post_message(request))

    async def _run(self, index: int) -> None:
        while True:
            message: Tuple[int, BuildRequest] = await self._queue.get()
            message_id, request = message
            future = self._pending.pop(message_id, None)
            try:
                result = await self.orchestrator.build(request)
            except Exception as e:
                logger.error(f"Worker {index} failed on build #{message_id}: {e}")
                if future is not None and not future.done():
                    future.set_exception(e)
            else:
                if future is not None and not future.done():
                    future.set_result(result)
            finally:
                self._queue.task_done()

    async def __aenter__(self) -> "BuildWorker":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
