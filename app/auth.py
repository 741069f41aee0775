"""
Caller identity resolution.

The auth gateway in front of this service authenticates users and forwards
the result as two headers:

    X-User-Id:   the user's integer id
    X-Signature: hex HMAC-SHA256 of the X-User-Id value using AUTH_SECRET

Anything short of a correctly signed id for an existing user resolves to an
anonymous caller (None). Routes pass the result explicitly to operations.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.config import settings
from app.schemas import CurrentUser
from app.storage import get_db, get_user_by_id
from app.utils import verify_hmac_signature

logger = logging.getLogger(__name__)


def get_current_user(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
    x_signature: Annotated[str | None, Header(alias="X-Signature")] = None,
    db: Session = Depends(get_db),
) -> Optional[CurrentUser]:
    """
    Resolve the authenticated caller from the gateway headers.

    Returns:
        CurrentUser when the headers carry a valid signed id of an existing
        user, None otherwise
    """
    if not x_user_id:
        return None

    if not x_signature:
        logger.warning("X-User-Id present without X-Signature, treating caller as anonymous")
        return None

    if not verify_hmac_signature(x_user_id.encode("utf-8"), x_signature, settings.AUTH_SECRET):
        logger.warning("Invalid X-Signature for X-User-Id, treating caller as anonymous")
        return None

    try:
        user_id = int(x_user_id)
    except ValueError:
        logger.warning(f"Malformed X-User-Id: {x_user_id!r}")
        return None

    user = get_user_by_id(db, user_id)
    if user is None:
        logger.warning(f"Signed X-User-Id {user_id} has no matching user")
        return None

    return CurrentUser(id=user.id, username=user.username)
