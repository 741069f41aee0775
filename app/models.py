"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, Text

from app.storage import Base


class User(Base):
    """
    Read-only view of the users owned by the authentication service.

    Table: users
    Only the id and username are consumed here.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(String, nullable=False, unique=True)


class GuestBook(Base):
    """
    A single guest book entry.

    Table: guest_books
    Entries are never updated in place; deleting one cascades to its likes.
    """
    __tablename__ = "guest_books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    content = Column(Text, nullable=False)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(String, nullable=False, index=True)  # Server time ISO-8601


class GuestBookLike(Base):
    """
    A user's like on a guest book entry.

    Table: guest_book_likes
    Primary Key: (guest_book_id, user_id), so a user likes an entry at most once
    """
    __tablename__ = "guest_book_likes"

    guest_book_id = Column(
        Integer,
        ForeignKey("guest_books.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
