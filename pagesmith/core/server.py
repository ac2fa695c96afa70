"""
pagesmith build server

Starlette application exposing the build pipeline over HTTP: raw builds go
through the build worker, publishes return a complete HTML document.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse
from starlette.routing import Route

from pagesmith.core.bundler import BuildRequest, BuildWorker
from pagesmith.core.bundler.constants import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_BUILD_WORKERS
from pagesmith.core.bundler.diagnostics import BuildError
from pagesmith.core.bundler.utils import setup_logging
from pagesmith.core.middleware import TimingMiddleware
from pagesmith.core.pipeline import Pipeline

logger = logging.getLogger(__name__)


def create_app(pipeline: Optional[Pipeline] = None, workers: int = DEFAULT_BUILD_WORKERS) -> Starlette:
    """
    Create the build server application

    Args:
        pipeline: Pipeline to serve; its orchestrator also backs the build worker
        workers: Number of concurrent build worker tasks

    Returns:
        Starlette application
    """
    pipeline = pipeline or Pipeline()
    worker = BuildWorker(pipeline.orchestrator, workers=workers)

    @asynccontextmanager
    async def lifespan(app: Starlette):
        await worker.start()
        try:
            yield
        finally:
            await worker.stop()

    async def read_json(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            return None
        return payload if isinstance(payload, dict) else None

    async def build_endpoint(request: Request):
        """Build a request; diagnostics come back in the result's error field"""
        payload = await read_json(request)
        if payload is None:
            return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)
        try:
            build_request = BuildRequest.from_dict(payload)
        except (TypeError, ValueError) as e:
            return JSONResponse({"error": str(e)}, status_code=400)

        result = await worker.request(build_request)
        return JSONResponse(result.to_dict())

    async def publish_endpoint(request: Request):
        """Compile one component into a static HTML document"""
        payload = await read_json(request)
        if payload is None:
            return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)
        source = payload.get("source")
        if not isinstance(source, str):
            return JSONResponse({"error": "source must be a string"}, status_code=400)

        try:
            document = await pipeline.publish(source, payload.get("site"))
        except BuildError as e:
            logger.error(f"Publish failed: {e.message.splitlines()[0]}")
            return JSONResponse({"error": e.message}, status_code=422)
        return HTMLResponse(document)

    async def health_check(request: Request):
        """Health check endpoint."""
        return JSONResponse({
            "status": "healthy",
            "app": "pagesmith build server",
            "workers": worker.workers,
            "module_cache": pipeline.orchestrator.cache.get_stats(),
            "style_cache": pipeline.orchestrator.styles.get_stats(),
        })

    routes = [
        Route("/build", build_endpoint, methods=["POST"]),
        Route("/publish", publish_endpoint, methods=["POST"]),
        Route("/health", health_check, methods=["GET"]),
    ]
    return Starlette(routes=routes, middleware=[Middleware(TimingMiddleware)], lifespan=lifespan)


def main(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    """Serve the build server with uvicorn"""
    setup_logging()
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logger.info(f"Starting pagesmith build server on http://{host}:{port}")
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    main()
