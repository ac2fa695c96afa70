"""
pagesmith Middleware

Request logging and response timing for the build server.
"""

import logging
import time
from typing import Any, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


class TimingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for the build server to handle:
    - Request logging
    - Response time tracking
    """

    def __init__(self, app: ASGIApp, server_name: str = "pagesmith"):
        """
        Initialize the timing middleware.

        Args:
            app: The Starlette ASGI application
            server_name: Value of the X-Pagesmith-Server header
        """
        super().__init__(app)
        self.server_name = server_name
        self.logger = logger
        self._stats = {"requests_processed": 0, "total_time_ms": 0.0, "errors": 0}

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """
        Process incoming requests and outgoing responses.

        Args:
            request: Incoming HTTP request
            call_next: The next middleware or endpoint in the chain

        Returns:
            Response with timing headers
        """
        start_time = time.time()
        self.logger.debug(f"Request started: {request.method} {request.url.path}")

        try:
            response = await call_next(request)
        except Exception as e:
            self._stats["errors"] += 1
            self.logger.error(f"Error processing request {request.url.path}: {e}")
            raise

        elapsed_ms = (time.time() - start_time) * 1000
        self._stats["requests_processed"] += 1
        self._stats["total_time_ms"] += elapsed_ms

        response.headers["X-Pagesmith-Server"] = self.server_name
        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"

        self.logger.debug(
            f"Request completed: {request.method} {request.url.path} "
            f"Status: {response.status_code} "
            f"Time: {response.headers['X-Response-Time']}"
        )
        return response

    def get_middleware_stats(self) -> Dict[str, Any]:
        """
        Get middleware statistics.

        Returns:
            Dictionary with middleware processing statistics
        """
        processed = self._stats["requests_processed"]
        return {
            "requests_processed": processed,
            "average_response_time": self._stats["total_time_ms"] / processed if processed else 0.0,
            "errors": self._stats["errors"],
        }
