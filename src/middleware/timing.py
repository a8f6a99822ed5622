import time

from fastapi import Request

from src.shared.utils import get_logger

logger = get_logger(__name__)


async def add_process_time_header(request: Request, call_next):
    """Add X-Process-Time and log one line per request, tagged with the gateway request id."""
    start_time = time.perf_counter()
    response = await call_next(request)
    process_time = time.perf_counter() - start_time
    response.headers["X-Process-Time"] = f"{process_time:.4f}"

    request_id = request.headers.get("x-request-id")
    suffix = f" - Request-Id: {request_id}" if request_id else ""
    logger.info(
        f"{request.method} {request.url.path} - Status: {response.status_code} "
        f"- {process_time:.4f}s{suffix}"
    )
    return response
