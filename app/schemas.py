"""
Pydantic schemas for request/response validation.

This module contains:
- The caller identity resolved from the auth gateway headers
- Response models for the guest book listing and mutations
- Error payloads returned by failed operations

Field names are exposed in camelCase through aliases to match the
front end; Python code uses the snake_case attribute names.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# Content length bounds for new entries (min applies to trimmed text)
CONTENT_MIN_LENGTH = 3
CONTENT_MAX_LENGTH = 140


# =============================================================================
# Caller Identity
# =============================================================================

class CurrentUser(BaseModel):
    """Authenticated caller, as asserted by the auth gateway."""
    id: int = Field(..., description="User identifier")
    username: str = Field(..., description="Display username")


# =============================================================================
# Pydantic Response Models
# =============================================================================

class GuestBookEntry(BaseModel):
    """
    Projection of a guest book entry with its like aggregates.

    Serialized as:
        {id, content, userId, username, createdAt, likeCount, liked}
    """
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(..., description="Entry identifier")
    content: str = Field(..., description="Entry text")
    user_id: int = Field(..., alias="userId", description="Author's user id")
    username: str = Field(..., description="Author's username")
    created_at: str = Field(
        ...,
        alias="createdAt",
        description="Creation time (ISO-8601 UTC)"
    )
    like_count: int = Field(
        0,
        ge=0,
        alias="likeCount",
        description="Number of users who liked the entry"
    )
    liked: bool = Field(False, description="Whether the caller liked the entry")


class GuestBookListResponse(BaseModel):
    """Response model for GET /guest-book."""
    model_config = ConfigDict(populate_by_name=True)

    user: Optional[CurrentUser] = Field(
        None,
        description="The caller, null for anonymous viewers"
    )
    guest_books: List[GuestBookEntry] = Field(
        ...,
        alias="guestBooks",
        description="All entries, newest first"
    )


class CreateGuestBookResponse(BaseModel):
    """Response model for POST /guest-book."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(True, description="Always true on success")
    new_entry: GuestBookEntry = Field(
        ...,
        alias="newEntry",
        description="The stored entry"
    )


class MutationResponse(BaseModel):
    """
    Response model for like toggles and deletions.

    applied is false when the call was accepted but changed nothing
    (entry missing, or not owned by the caller).
    """
    success: bool = Field(True, description="Always true on success")
    applied: bool = Field(..., description="Whether a row was changed")


class ToggleLikeResponse(MutationResponse):
    """Response model for POST /guest-book/{id}/like."""
    liked: bool = Field(..., description="Like state after the toggle")


class ErrorResponse(BaseModel):
    """Response model for failed operations."""
    error: str = Field(..., description="Human-readable error message")
    content: Optional[str] = Field(
        None,
        description="Submitted content, echoed back for re-display"
    )


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
