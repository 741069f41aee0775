import logging
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Generator, List, Optional, Tuple

from sqlalchemy import (
    Integer,
    and_,
    bindparam,
    case,
    create_engine,
    delete,
    event,
    func,
    inspect,
    select,
    text,
)
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings

logger = logging.getLogger(__name__)

# Bound in place of the caller's id for anonymous readers; matches no user row
ANONYMOUS_USER_ID = -1

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

# check_same_thread=False is required for SQLite to work with FastAPI's async
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
    echo=False,
)

if _is_sqlite:
    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        # Deleting an entry relies on ON DELETE CASCADE to drop its likes
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()


class LikeOutcome(str, Enum):
    """Result of toggling a like inside its transaction."""

    LIKED = "liked"
    UNLIKED = "unliked"
    MISSING = "missing"


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from app import models  # noqa: F401

        logger.debug("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and schema exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            logger.debug("Database connectivity OK")

            if not inspect(connection).has_table("guest_books"):
                logger.error("Database schema not applied: 'guest_books' table not found")
                return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# User Lookups
# =============================================================================

def get_user_by_id(db: Session, user_id: int):
    """
    Retrieve a user by id.

    Returns:
        User object if found, None otherwise
    """
    from app.models import User

    result = db.get(User, user_id)
    logger.debug(f"User lookup {user_id}: {'found' if result else 'not found'}")
    return result


# =============================================================================
# Guest Book Queries
# =============================================================================

@lru_cache()
def get_guest_book_query():
    """
    Build the listing statement once and reuse it for every read.

    The caller's id is a bound parameter (``current_user_id``), so the same
    statement serves every viewer. Entries whose author row is gone are
    dropped by the inner join; entries without likes survive the outer join
    with a count of zero.
    """
    from app.models import GuestBook, GuestBookLike, User

    current_user_id = bindparam("current_user_id", type_=Integer)

    return (
        select(
            GuestBook.id,
            GuestBook.content,
            GuestBook.user_id,
            User.username,
            GuestBook.created_at,
            func.count(GuestBookLike.user_id).label("like_count"),
            func.count(
                case((GuestBookLike.user_id == current_user_id, 1))
            ).label("liked_count"),
        )
        .join(User, GuestBook.user_id == User.id)
        .outerjoin(GuestBookLike, GuestBookLike.guest_book_id == GuestBook.id)
        .group_by(GuestBook.id, User.username)
        .order_by(GuestBook.created_at.desc(), GuestBook.id.desc())
    )


def get_guest_book_entries(db: Session, current_user_id: Optional[int] = None) -> List:
    """
    Retrieve every guest book entry with its like aggregates.

    Args:
        db: Database session
        current_user_id: Viewer's user id, None for anonymous viewers

    Returns:
        Rows with id, content, user_id, username, created_at,
        like_count and liked_count, newest first
    """
    viewer_id = ANONYMOUS_USER_ID if current_user_id is None else current_user_id
    logger.info(f"Querying guest book entries for viewer={current_user_id}")

    rows = db.execute(get_guest_book_query(), {"current_user_id": viewer_id}).all()
    logger.debug(f"Retrieved {len(rows)} guest book entries")
    return rows


# =============================================================================
# Guest Book Mutations
# =============================================================================

def create_guest_book_entry(db: Session, user_id: int, content: str) -> Tuple[bool, Optional[object]]:
    """
    Insert a new guest book entry authored by user_id.

    Args:
        db: Database session
        user_id: Author's user id
        content: Entry text, stored as submitted

    Returns:
        Tuple of (success: bool, entry: GuestBook or None)
    """
    from app.models import GuestBook

    logger.info(f"Creating guest book entry for user={user_id}")

    try:
        created_at = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        entry = GuestBook(content=content, user_id=user_id, created_at=created_at)

        db.add(entry)
        db.commit()
        db.refresh(entry)
        logger.info(f"Guest book entry created: id={entry.id}")
        return (True, entry)

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to insert guestbook entry for user {user_id}: {e}")
        return (False, None)


def toggle_guest_book_like(
    db: Session,
    guest_book_id: int,
    user_id: int
) -> Tuple[bool, Optional[LikeOutcome]]:
    """
    Flip the like of user_id on an entry within a single transaction.

    An existing like is removed. Otherwise the entry is checked and the like
    inserted; a missing entry leaves the database untouched.

    Returns:
        Tuple of (success: bool, outcome: LikeOutcome or None)
        - (True, LIKED): like inserted
        - (True, UNLIKED): like removed
        - (True, MISSING): entry does not exist, nothing changed
        - (False, None): error occurred, transaction rolled back
    """
    from app.models import GuestBook, GuestBookLike

    logger.info(f"Toggling like: guest_book={guest_book_id}, user={user_id}")
    pair = and_(
        GuestBookLike.guest_book_id == guest_book_id,
        GuestBookLike.user_id == user_id,
    )

    try:
        existing = db.execute(
            select(GuestBookLike.guest_book_id).where(pair)
        ).first()

        if existing:
            db.execute(delete(GuestBookLike).where(pair))
            outcome = LikeOutcome.UNLIKED
        else:
            entry = db.execute(
                select(GuestBook.id).where(GuestBook.id == guest_book_id).with_for_update()
            ).first()
            if entry is None:
                outcome = LikeOutcome.MISSING
            else:
                db.add(GuestBookLike(guest_book_id=guest_book_id, user_id=user_id))
                outcome = LikeOutcome.LIKED

        db.commit()
        logger.info(f"Like toggled: guest_book={guest_book_id}, user={user_id}, outcome={outcome.value}")
        return (True, outcome)

    except (SQLAlchemyError, OverflowError) as e:
        db.rollback()
        logger.error(f"Failed to update like status on {guest_book_id} for user {user_id}: {e}")
        return (False, None)


def delete_guest_book_entry(db: Session, guest_book_id: int, user_id: int) -> Tuple[bool, bool]:
    """
    Delete an entry, but only when user_id is its author.

    Returns:
        Tuple of (success: bool, deleted: bool)
        - (True, True): entry removed
        - (True, False): no entry with that id authored by user_id
        - (False, False): error occurred
    """
    from app.models import GuestBook

    logger.info(f"Deleting guest book entry: id={guest_book_id}, user={user_id}")

    try:
        result = db.execute(
            delete(GuestBook).where(
                and_(GuestBook.id == guest_book_id, GuestBook.user_id == user_id)
            )
        )
        db.commit()
        deleted = result.rowcount > 0
        logger.info(f"Guest book entry {guest_book_id}: {'deleted' if deleted else 'not owned or missing'}")
        return (True, deleted)

    except (SQLAlchemyError, OverflowError) as e:
        db.rollback()
        logger.error(f"Failed to delete guestbook entry {guest_book_id}: {e}")
        return (False, False)
