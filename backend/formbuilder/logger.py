import logging
import os
import sys
import time
import uuid
from typing import Callable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

LOG_FORMAT = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging and align the uvicorn loggers with it.

    - Level from the argument, else the LOG_LEVEL env var (default INFO)
    - Existing handlers (e.g. installed by uvicorn) are left alone
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(numeric_level)


class RequestContextLogMiddleware(BaseHTTPMiddleware):
    """Logs start and end of every request with latency, status and a request id.

    The id is taken from an incoming X-Request-ID header or generated, and is
    echoed back on the response.
    """

    def __init__(self, app):
        super().__init__(app)
        self.logger = logging.getLogger("formbuilder.http")

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        start = time.time()
        method = request.method
        path = request.url.path
        client = request.client.host if request.client else ""

        self.logger.info("request start %s %s client=%s rid=%s", method, path, client, request_id)
        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = int((time.time() - start) * 1000)
            self.logger.exception("request error %s %s time_ms=%s rid=%s", method, path, elapsed_ms, request_id)
            raise

        elapsed_ms = int((time.time() - start) * 1000)
        response.headers["x-request-id"] = request_id
        self.logger.info(
            "request end %s %s status=%s time_ms=%s rid=%s",
            method,
            path,
            response.status_code,
            elapsed_ms,
            request_id,
        )
        return response
