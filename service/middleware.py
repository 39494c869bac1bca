from __future__ import annotations

import time

from prometheus_client import Histogram
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp


class ServiceTimingMiddleware(BaseHTTPMiddleware):
    """
    Adds X-Service-MS and Server-Timing headers and, when given a
    histogram with an `endpoint` label, observes the same duration.
    """

    def __init__(self, app: ASGIApp, histogram: Histogram | None = None) -> None:
        super().__init__(app)
        self.histogram = histogram

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        t0 = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - t0) * 1000.0

        if self.histogram is not None:
            self.histogram.labels(request.url.path).observe(ms)

        response.headers["X-Service-MS"] = f"{ms:.3f}"
        existing = response.headers.get("Server-Timing")
        our_metric = f"app;dur={ms:.3f}"
        response.headers["Server-Timing"] = f"{existing}, {our_metric}" if existing else our_metric
        return response
