import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from pythonjsonlogger import jsonlogger

from app.metrics import record_http_request


# Context variable to store request_id for the current request
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter to ensure ISO-8601 timestamps and request_id."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        if not log_record.get('ts'):
            now = datetime.now(timezone.utc)
            log_record['ts'] = now.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'
        log_record['level'] = record.levelname

        if 'request_id' not in log_record:
            req_id = request_id_ctx.get()
            if req_id:
                log_record['request_id'] = req_id


# Server loggers re-routed through the JSON handler instead of their own
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def setup_logging(log_level: str = "INFO"):
    """
    Setup structured JSON logging for the application.

    Every record goes to stdout as one JSON object. SQLAlchemy's engine
    logger is held at WARNING unless DEBUG is requested, so statements
    only show up when debugging queries.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = log_level.upper()

    json_handler = logging.StreamHandler(sys.stdout)
    json_handler.setFormatter(CustomJsonFormatter('%(ts)s %(level)s %(name)s %(message)s'))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [json_handler]

    for logger_name in SERVER_LOGGERS:
        server_logger = logging.getLogger(logger_name)
        server_logger.handlers = [json_handler]
        server_logger.propagate = False

    # RequestLoggingMiddleware writes the access log
    logging.getLogger("uvicorn.access").disabled = True

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if level == "DEBUG" else logging.WARNING
    )

    return root


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all HTTP requests in structured JSON format.

    Log keys:
    - ts: server time (ISO-8601)
    - level: log level
    - request_id: unique per request
    - method: HTTP method
    - path: request path
    - status: response status code
    - latency_ms: request processing time in milliseconds

    For guest book routes, also includes:
    - operation: list, create, toggle_like or delete
    - guest_book_id: target entry (toggle_like/delete)
    - user_id: authenticated caller, when present
    - result: applied, noop, unauthorized, validation_error, error
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        token = request_id_ctx.set(request_id)
        start_time = time.time()

        try:
            response = await call_next(request)

            response.headers["X-Request-ID"] = request_id

            latency_seconds = time.time() - start_time
            latency_ms = round(latency_seconds * 1000, 2)

            # Exclude /metrics endpoint to avoid self-instrumentation noise
            if request.url.path != "/metrics":
                record_http_request(
                    method=request.method,
                    path=request.url.path,
                    status=response.status_code,
                    latency_seconds=latency_seconds
                )

            log_data = {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "latency_ms": latency_ms,
            }

            if hasattr(request.state, "guest_book_log_data"):
                log_data.update(request.state.guest_book_log_data)

            logger = logging.getLogger("app.requests")

            if response.status_code >= 500:
                logger.error("Request completed", extra=log_data)
            elif response.status_code >= 400:
                logger.warning("Request completed", extra=log_data)
            else:
                logger.info("Request completed", extra=log_data)

            return response
        finally:
            request_id_ctx.reset(token)


def log_guest_book_data(request: Request, **fields):
    """
    Attach guest-book-specific logging data to the request state.
    This data will be included in the request log by the middleware.

    Fields with a None value are skipped; repeated calls merge, so a route
    can record the operation up front and the result once it is known.

    Args:
        request: FastAPI request object
        **fields: operation, guest_book_id, user_id, result
    """
    log_data = getattr(request.state, "guest_book_log_data", {})
    log_data.update({key: value for key, value in fields.items() if value is not None})
    request.state.guest_book_log_data = log_data
