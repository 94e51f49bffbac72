import logging
import re
import time
from typing import Callable

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Routes whose path carries the object an operator acts on.
JOB_CONTROL_PATH = re.compile(r"^/api/jobs/(?P<job_id>[^/]+)/control$")
PROFILE_PATH = re.compile(r"^/api/profiles/(?P<profile>[^/]+)/")

logger = logging.getLogger("invoicer.request")


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once and quiet per-request httpx chatter."""

    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("invoicer").setLevel(level)
    # InventoryClient logs its own calls; httpx would log each one again at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def request_context(path: str) -> str:
    """Extra ``key=value`` fields for requests that target a job or profile."""

    match = JOB_CONTROL_PATH.match(path)
    if match:
        return f" job_id={match.group('job_id')}"
    match = PROFILE_PATH.match(path)
    if match:
        return f" profile={match.group('profile')}"
    return ""


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        start = time.perf_counter()
        client = request.client.host if request.client else "-"
        path = request.url.path
        context = request_context(path)

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "client=%s method=%s path=%s%s status=500 duration_ms=%.2f UNHANDLED",
                client, request.method, path, context, (time.perf_counter() - start) * 1000.0,
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000.0
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "client=%s method=%s path=%s%s status=%s duration_ms=%.2f",
            client, request.method, path, context, response.status_code, duration_ms,
        )
        return response


def register_request_logging(app: FastAPI) -> None:
    app.add_middleware(RequestLogMiddleware)
