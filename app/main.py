import logging
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import FastAPI, Response, Request, Depends, Form, Path, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.auth import get_current_user
from app.cache import GuestBookCache
from app.config import settings
from app.errors import GuestBookError
from app.guestbook import (
    delete_guest_book,
    insert_guest_book,
    list_guest_book,
    toggle_like_guest_book,
)
from app.logging_utils import setup_logging, RequestLoggingMiddleware, log_guest_book_data
from app.metrics import get_metrics, get_metrics_content_type
from app.schemas import (
    CreateGuestBookResponse,
    CurrentUser,
    ErrorResponse,
    GuestBookListResponse,
    HealthResponse,
    MutationResponse,
    ToggleLikeResponse,
)
from app.storage import init_db, check_db_health, get_db


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and build the listing cache
    - Shutdown: Drop cached listings
    """
    init_db()
    app.state.guest_book_cache = GuestBookCache(enabled=settings.GUEST_BOOK_CACHE_ENABLED)
    yield
    app.state.guest_book_cache.invalidate()


app = FastAPI(
    title="Guest Book API",
    description="Guest book entries with likes for authenticated users",
    version="1.0.0",
    lifespan=lifespan,
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)


def get_guest_book_cache(request: Request) -> GuestBookCache:
    """Dependency returning the application's listing cache."""
    return request.app.state.guest_book_cache


CurrentUserDep = Annotated[Optional[CurrentUser], Depends(get_current_user)]
CacheDep = Annotated[GuestBookCache, Depends(get_guest_book_cache)]
# Row ids are signed 64-bit integers in every supported backend
GuestBookIdPath = Annotated[int, Path(ge=1, le=2**63 - 1)]

ERROR_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Not authenticated"},
    500: {"model": ErrorResponse, "description": "Storage failure"},
}


@app.exception_handler(GuestBookError)
async def handle_guest_book_error(request: Request, exc: GuestBookError) -> JSONResponse:
    """
    Convert a failed guest book operation into its status code and
    {error, content?} payload.
    """
    log_guest_book_data(request, result=exc.result)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness check - always returns 200 once the app is running.
    Used by orchestrators to determine if the app needs to be restarted.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness check - returns 200 only if:
    1. DB is reachable and schema is applied
    2. AUTH_SECRET is set (non-empty)

    Otherwise returns 503 (Service Unavailable).
    """
    if not settings.AUTH_SECRET:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="AUTH_SECRET not configured"
        )

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Guest Book Routes
# =============================================================================

@app.get("/guest-book", response_model=GuestBookListResponse)
async def get_guest_book(
    request: Request,
    current_user: CurrentUserDep,
    cache: CacheDep,
    db: Session = Depends(get_db),
) -> GuestBookListResponse:
    """
    List every guest book entry, newest first.

    Each entry carries its like count and whether the caller liked it.
    Anonymous callers are allowed; liked is then false everywhere.
    """
    log_guest_book_data(
        request,
        operation="list",
        user_id=current_user.id if current_user else None,
    )
    result = list_guest_book(db, cache, current_user)
    logger.info(f"GET /guest-book: returned {len(result.guest_books)} entries")
    return result


@app.post(
    "/guest-book",
    response_model=CreateGuestBookResponse,
    responses={
        **ERROR_RESPONSES,
        400: {"model": ErrorResponse, "description": "Invalid content length"},
    },
)
async def create_guest_book(
    request: Request,
    current_user: CurrentUserDep,
    cache: CacheDep,
    content: Annotated[Optional[str], Form()] = None,
    db: Session = Depends(get_db),
) -> CreateGuestBookResponse:
    """
    Post a new entry as the caller.

    Form fields:
        - content: 3 to 140 characters (minimum counted after trimming)
    """
    log_guest_book_data(
        request,
        operation="create",
        user_id=current_user.id if current_user else None,
    )
    entry = insert_guest_book(db, cache, current_user, content)
    log_guest_book_data(request, guest_book_id=entry.id, result="applied")
    return CreateGuestBookResponse(new_entry=entry)


@app.post(
    "/guest-book/{guest_book_id}/like",
    response_model=ToggleLikeResponse,
    responses=ERROR_RESPONSES,
)
async def toggle_like(
    request: Request,
    guest_book_id: GuestBookIdPath,
    current_user: CurrentUserDep,
    cache: CacheDep,
    db: Session = Depends(get_db),
) -> ToggleLikeResponse:
    """
    Like the entry, or remove the caller's like if present.

    Toggling an entry that does not exist succeeds with applied=false.
    """
    log_guest_book_data(
        request,
        operation="toggle_like",
        guest_book_id=guest_book_id,
        user_id=current_user.id if current_user else None,
    )
    result = toggle_like_guest_book(db, cache, current_user, guest_book_id)
    log_guest_book_data(request, result="applied" if result.applied else "noop")
    return result


@app.delete(
    "/guest-book/{guest_book_id}",
    response_model=MutationResponse,
    responses=ERROR_RESPONSES,
)
async def remove_guest_book(
    request: Request,
    guest_book_id: GuestBookIdPath,
    current_user: CurrentUserDep,
    cache: CacheDep,
    db: Session = Depends(get_db),
) -> MutationResponse:
    """
    Delete one of the caller's own entries.

    Targeting someone else's entry, or a missing one, succeeds with
    applied=false and deletes nothing.
    """
    log_guest_book_data(
        request,
        operation="delete",
        guest_book_id=guest_book_id,
        user_id=current_user.id if current_user else None,
    )
    result = delete_guest_book(db, cache, current_user, guest_book_id)
    log_guest_book_data(request, result="applied" if result.applied else "noop")
    return result


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.

    Returns metrics in Prometheus text exposition format including:
    - http_requests_total: Total HTTP requests by method, path, status
    - guest_book_operations_total: Operation outcomes by operation, result
    - guest_book_cache_requests_total: Listing cache hits and misses
    - request_latency_seconds: Request latency histogram
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
