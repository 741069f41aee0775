"""
Guest book operations.

One function per operation. Each takes the database session, the listing
cache and the caller identity explicitly, performs its checks in order,
and raises an errors.GuestBookError subclass on failure. Every successful
mutation invalidates the listing cache, including the ones that ended up
changing nothing (liking a missing entry, deleting someone else's entry).
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app import storage
from app.cache import GuestBookCache
from app.errors import ContentValidationError, ServerError, UnauthorizedError
from app.metrics import record_guest_book_outcome
from app.schemas import (
    CONTENT_MAX_LENGTH,
    CONTENT_MIN_LENGTH,
    CurrentUser,
    GuestBookEntry,
    GuestBookListResponse,
    MutationResponse,
    ToggleLikeResponse,
)

logger = logging.getLogger(__name__)


def _require_user(current_user: Optional[CurrentUser], operation: str) -> CurrentUser:
    if current_user is None:
        logger.warning(f"Rejected unauthenticated {operation}")
        record_guest_book_outcome(operation, "unauthorized")
        raise UnauthorizedError()
    return current_user


def text_length(text: str) -> int:
    """Length in UTF-16 code units, so astral characters count twice."""
    return len(text.encode("utf-16-le")) // 2


def is_valid_content(content: Optional[str]) -> bool:
    """
    Check the length rules for a new entry.

    The minimum applies to the trimmed text, the maximum to the text as
    submitted.
    Lengths are measured with text_length.
    """
    if not content:
        return False
    return (
        text_length(content.strip()) >= CONTENT_MIN_LENGTH
        and text_length(content) <= CONTENT_MAX_LENGTH
    )


def list_guest_book(
    db: Session,
    cache: GuestBookCache,
    current_user: Optional[CurrentUser],
) -> GuestBookListResponse:
    """
    List every entry with its like count and the caller's like flag.

    Anonymous callers get ``liked`` false on every entry.
    """
    current_user_id = current_user.id if current_user else None

    def load() -> List[GuestBookEntry]:
        rows = storage.get_guest_book_entries(db, current_user_id)
        return [
            GuestBookEntry(
                id=row.id,
                content=row.content,
                user_id=row.user_id,
                username=row.username,
                created_at=row.created_at,
                like_count=row.like_count,
                liked=row.liked_count > 0,
            )
            for row in rows
        ]

    entries = cache.get_or_load(current_user_id, load)
    record_guest_book_outcome("list", "ok")
    return GuestBookListResponse(user=current_user, guest_books=entries)


def insert_guest_book(
    db: Session,
    cache: GuestBookCache,
    current_user: Optional[CurrentUser],
    content: Optional[str],
) -> GuestBookEntry:
    """
    Post a new entry as the caller.

    Raises:
        UnauthorizedError: no authenticated caller
        ContentValidationError: content outside the length bounds
        ServerError: the insert failed
    """
    user = _require_user(current_user, "create")

    if not is_valid_content(content):
        logger.info(f"Rejected entry from user {user.id}: invalid content length")
        record_guest_book_outcome("create", "validation_error")
        raise ContentValidationError("Invalid content length", content=content)

    success, entry = storage.create_guest_book_entry(db, user.id, content)
    if not success:
        record_guest_book_outcome("create", "error")
        raise ServerError("Failed to save message", content=content)

    cache.invalidate()
    record_guest_book_outcome("create", "applied")

    # Built from the inserted row; a fresh entry has no likes yet
    return GuestBookEntry(
        id=entry.id,
        content=entry.content,
        user_id=entry.user_id,
        username=user.username,
        created_at=entry.created_at,
        like_count=0,
        liked=False,
    )


def toggle_like_guest_book(
    db: Session,
    cache: GuestBookCache,
    current_user: Optional[CurrentUser],
    guest_book_id: int,
) -> ToggleLikeResponse:
    """
    Like the entry if the caller has not, unlike it otherwise.

    Toggling a missing entry succeeds with ``applied`` false.
    """
    user = _require_user(current_user, "toggle_like")

    success, outcome = storage.toggle_guest_book_like(db, guest_book_id, user.id)
    if not success:
        record_guest_book_outcome("toggle_like", "error")
        raise ServerError("Could not update like status")

    cache.invalidate()

    applied = outcome is not storage.LikeOutcome.MISSING
    record_guest_book_outcome("toggle_like", "applied" if applied else "noop")
    return ToggleLikeResponse(
        applied=applied,
        liked=outcome is storage.LikeOutcome.LIKED,
    )


def delete_guest_book(
    db: Session,
    cache: GuestBookCache,
    current_user: Optional[CurrentUser],
    guest_book_id: int,
) -> MutationResponse:
    """
    Delete the caller's own entry.

    Deleting an entry that is missing or belongs to someone else succeeds
    with ``applied`` false and leaves the entry in place.
    """
    user = _require_user(current_user, "delete")

    success, deleted = storage.delete_guest_book_entry(db, guest_book_id, user.id)
    if not success:
        record_guest_book_outcome("delete", "error")
        raise ServerError("Could not delete message")

    cache.invalidate()
    record_guest_book_outcome("delete", "applied" if deleted else "noop")
    return MutationResponse(applied=deleted)
