"""
Tests for the POST /guest-book/{guest_book_id}/like endpoint.

Tests cover:
- Liking and unliking (toggle involution)
- Like counts across several users
- Missing entries (silent no-op)
- Unauthenticated callers (401)
- Storage failures (500) and rollback
- Uniqueness of (entry, user) like pairs
"""

import os
import hmac
import hashlib
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.main import app
from app.models import GuestBook, GuestBookLike, User
from app.storage import SessionLocal, Base, engine, LikeOutcome, toggle_guest_book_like


# Test configuration from environment
TEST_AUTH_SECRET = os.environ["AUTH_SECRET"]


def compute_signature(body: str, secret: str) -> str:
    """Compute HMAC-SHA256 signature for the X-User-Id value."""
    return hmac.new(
        secret.encode("utf-8"),
        body.encode("utf-8"),
        hashlib.sha256
    ).hexdigest()


def auth_headers(user_id: int) -> dict:
    """Headers the auth gateway would forward for user_id."""
    return {
        "X-User-Id": str(user_id),
        "X-Signature": compute_signature(str(user_id), TEST_AUTH_SECRET),
    }


def count_likes(guest_book_id: int = None) -> int:
    query = select(func.count()).select_from(GuestBookLike)
    if guest_book_id is not None:
        query = query.where(GuestBookLike.guest_book_id == guest_book_id)
    with SessionLocal() as db:
        return db.execute(query).scalar()


def listed_entry(client, entry_id: int, headers: dict = None) -> dict:
    data = client.get("/guest-book", headers=headers or {}).json()["guestBooks"]
    return next(e for e in data if e["id"] == entry_id)


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def users(client):
    """Ids of four seeded users keyed by username."""
    names = ["alice", "bob", "carol", "dave"]
    with SessionLocal() as db:
        rows = [User(username=name) for name in names]
        db.add_all(rows)
        db.commit()
        return {row.username: row.id for row in rows}


@pytest.fixture
def entry_id(users) -> int:
    """An entry authored by alice."""
    with SessionLocal() as db:
        entry = GuestBook(
            user_id=users["alice"],
            content="Please like this",
            created_at="2025-01-15T10:00:00Z",
        )
        db.add(entry)
        db.commit()
        return entry.id


class TestToggleLike:
    """Test liking and unliking."""

    def test_like_entry(self, client, users, entry_id):
        """Test the first toggle likes the entry."""
        headers = auth_headers(users["bob"])

        response = client.post(f"/guest-book/{entry_id}/like", headers=headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "applied": True, "liked": True}
        assert count_likes(entry_id) == 1

        entry = listed_entry(client, entry_id, headers)
        assert entry["likeCount"] == 1
        assert entry["liked"] is True

    def test_toggle_twice_restores_state(self, client, users, entry_id):
        """Test toggling twice in a row leaves the like state unchanged."""
        headers = auth_headers(users["bob"])
        before = listed_entry(client, entry_id, headers)

        first = client.post(f"/guest-book/{entry_id}/like", headers=headers)
        second = client.post(f"/guest-book/{entry_id}/like", headers=headers)

        assert first.json()["liked"] is True
        assert second.json() == {"success": True, "applied": True, "liked": False}
        assert listed_entry(client, entry_id, headers) == before
        assert count_likes(entry_id) == 0

    def test_author_can_like_own_entry(self, client, users, entry_id):
        response = client.post(f"/guest-book/{entry_id}/like", headers=auth_headers(users["alice"]))

        assert response.status_code == 200
        assert response.json()["liked"] is True

    def test_like_count_matches_distinct_likers(self, client, users, entry_id):
        """Test likeCount tracks distinct likers through mixed toggles."""
        toggles = ["bob", "carol", "dave", "carol", "bob", "carol"]
        likers = set()
        for name in toggles:
            client.post(f"/guest-book/{entry_id}/like", headers=auth_headers(users[name]))
            likers ^= {name}

        assert likers == {"dave", "carol"}
        for name in users:
            entry = listed_entry(client, entry_id, auth_headers(users[name]))
            assert entry["likeCount"] == len(likers)
            assert entry["liked"] is (name in likers)

    def test_likes_by_different_users_are_independent(self, client, users, entry_id):
        """Test one user's toggle does not affect another user's like."""
        client.post(f"/guest-book/{entry_id}/like", headers=auth_headers(users["bob"]))
        client.post(f"/guest-book/{entry_id}/like", headers=auth_headers(users["carol"]))
        client.post(f"/guest-book/{entry_id}/like", headers=auth_headers(users["bob"]))

        assert listed_entry(client, entry_id, auth_headers(users["carol"]))["liked"] is True
        assert listed_entry(client, entry_id, auth_headers(users["bob"]))["liked"] is False


class TestToggleLikeMissingEntry:
    """Test toggling a like on an entry that does not exist."""

    def test_missing_entry_is_noop(self, client, users):
        """Test a missing entry succeeds without creating a like."""
        response = client.post("/guest-book/9999/like", headers=auth_headers(users["bob"]))

        assert response.status_code == 200
        assert response.json() == {"success": True, "applied": False, "liked": False}
        assert count_likes() == 0

    def test_missing_entry_repeated_is_still_noop(self, client, users):
        headers = auth_headers(users["bob"])
        for _ in range(2):
            response = client.post("/guest-book/9999/like", headers=headers)
            assert response.json()["applied"] is False

        assert count_likes() == 0

    def test_non_integer_id_rejected(self, client, users):
        """Test the path id must be an integer."""
        response = client.post("/guest-book/abc/like", headers=auth_headers(users["bob"]))

        assert response.status_code == 422

    @pytest.mark.parametrize("bad_id", [0, -1, 2**63])
    def test_out_of_range_id_rejected(self, client, users, entry_id, bad_id):
        """Test ids outside the 64-bit row id range never reach storage."""
        response = client.post(f"/guest-book/{bad_id}/like", headers=auth_headers(users["bob"]))

        assert response.status_code == 422
        assert response.json()["detail"][0]["loc"] == ["path", "guest_book_id"]
        assert count_likes() == 0

    def test_largest_row_id_is_noop(self, client, users):
        response = client.post(f"/guest-book/{2**63 - 1}/like", headers=auth_headers(users["bob"]))

        assert response.status_code == 200
        assert response.json()["applied"] is False


class TestToggleLikeUnauthorized:
    """Test unauthenticated toggles."""

    def test_no_identity(self, client, entry_id):
        response = client.post(f"/guest-book/{entry_id}/like")

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        assert count_likes(entry_id) == 0

    def test_unknown_user(self, client, entry_id):
        """Test a signed id without a users row is rejected."""
        response = client.post(f"/guest-book/{entry_id}/like", headers=auth_headers(31337))

        assert response.status_code == 401


class TestToggleLikeStorageFailure:
    """Test storage errors inside the toggle transaction."""

    def test_commit_failure_returns_500_and_rolls_back(self, client, users, entry_id, monkeypatch):
        def failing_commit(self):
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(Session, "commit", failing_commit)

        response = client.post(f"/guest-book/{entry_id}/like", headers=auth_headers(users["bob"]))

        assert response.status_code == 500
        assert response.json() == {"error": "Could not update like status"}

        monkeypatch.undo()
        assert count_likes(entry_id) == 0


class TestLikeStorage:
    """Test the storage helper and table constraints directly."""

    def test_toggle_outcomes(self, users, entry_id):
        with SessionLocal() as db:
            assert toggle_guest_book_like(db, entry_id, users["bob"]) == (True, LikeOutcome.LIKED)
            assert toggle_guest_book_like(db, entry_id, users["bob"]) == (True, LikeOutcome.UNLIKED)
            assert toggle_guest_book_like(db, 9999, users["bob"]) == (True, LikeOutcome.MISSING)

    def test_duplicate_like_pair_rejected(self, users, entry_id):
        """Test the table never holds two likes for the same pair."""
        with SessionLocal() as db:
            db.add(GuestBookLike(guest_book_id=entry_id, user_id=users["bob"]))
            db.commit()

        with SessionLocal() as db:
            db.add(GuestBookLike(guest_book_id=entry_id, user_id=users["bob"]))
            with pytest.raises(IntegrityError):
                db.commit()

        assert count_likes(entry_id) == 1

    def test_interleaved_sessions_keep_single_like(self, users, entry_id):
        """Test toggles from separate sessions alternate cleanly."""
        outcomes = []
        for _ in range(4):
            with SessionLocal() as db:
                outcomes.append(toggle_guest_book_like(db, entry_id, users["carol"])[1])

        assert outcomes == [
            LikeOutcome.LIKED, LikeOutcome.UNLIKED, LikeOutcome.LIKED, LikeOutcome.UNLIKED
        ]
        assert count_likes(entry_id) == 0

    def test_id_beyond_integer_range_fails_cleanly(self, users, entry_id):
        """Test an id the driver cannot bind is reported as a failure."""
        with SessionLocal() as db:
            assert toggle_guest_book_like(db, 2**63, users["bob"]) == (False, None)

        assert count_likes() == 0
