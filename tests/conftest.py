"""
Pytest configuration and shared fixtures.
"""

import itertools
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from library_api.config import APIConfig
from library_api.errors import StoreError, StoreErrorKind
from library_api.main import create_app
from library_api.models import Actor, BookQueryParams, PaginationParams, Role


class InMemoryLibraryStore:
    """
    Test double for LibraryDatabaseService.

    Keeps documents in dictionaries and enforces the same unique keys as the
    MongoDB indexes: users.email, books.isbn and reviews (book, user).
    """

    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.books: Dict[str, Dict[str, Any]] = {}
        self.reviews: Dict[str, Dict[str, Any]] = {}
        self._sequence = itertools.count()

    def _stamp(self) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        return {"created_at": now, "updated_at": now, "_seq": next(self._sequence)}

    @staticmethod
    def _public(doc: Optional[Dict[str, Any]], *hidden: str) -> Optional[Dict[str, Any]]:
        if doc is None:
            return None
        return {k: v for k, v in doc.items() if k != "_seq" and k not in hidden}

    # Users

    async def create_user(self, email, password_hash, name, role=Role.USER):
        if any(user["email"] == email for user in self.users.values()):
            raise StoreError(StoreErrorKind.DUPLICATE_KEY, field="email")
        user_id = str(ObjectId())
        self.users[user_id] = dict(
            id=user_id, email=email, password_hash=password_hash, name=name, role=role.value, **self._stamp()
        )
        return self._public(self.users[user_id], "password_hash")

    async def get_user_by_email(self, email, include_password=False):
        for user in self.users.values():
            if user["email"] == email:
                return self._public(user) if include_password else self._public(user, "password_hash")
        return None

    async def get_user_by_id(self, user_id):
        return self._public(self.users.get(user_id), "password_hash")

    async def set_user_role(self, email, role):
        for user in self.users.values():
            if user["email"] == email:
                user["role"] = role.value
                return True
        return False

    # Books

    async def list_books(self, query_params: BookQueryParams) -> Tuple[List[Dict[str, Any]], int]:
        books = list(self.books.values())
        if query_params.genre:
            books = [b for b in books if b["genre"] == query_params.genre.value]
        if query_params.available is not None:
            books = [b for b in books if b["available"] == query_params.available]
        if query_params.year is not None:
            books = [b for b in books if b["publication_year"] == query_params.year]
        if query_params.search:
            term = query_params.search.lower()
            books = [
                b for b in books
                if any(term in b.get(field, "").lower() for field in ("title", "author", "summary"))
            ]
        books.sort(key=lambda b: b["_seq"], reverse=True)
        pagination = query_params.pagination
        page = books[pagination.skip:pagination.skip + pagination.limit]
        return [self._public(b) for b in page], len(books)

    async def get_book(self, book_id):
        return self._public(self.books.get(book_id))

    async def create_book(self, book_data):
        if any(book["isbn"] == book_data["isbn"] for book in self.books.values()):
            raise StoreError(StoreErrorKind.DUPLICATE_KEY, field="isbn")
        book_id = str(ObjectId())
        self.books[book_id] = dict(book_data, id=book_id, **self._stamp())
        return self._public(self.books[book_id])

    async def update_book(self, book_id, book_data):
        if book_id not in self.books:
            return None
        if any(b["isbn"] == book_data.get("isbn") and bid != book_id for bid, b in self.books.items()):
            raise StoreError(StoreErrorKind.DUPLICATE_KEY, field="isbn")
        self.books[book_id].update(book_data, updated_at=datetime.now(timezone.utc))
        return self._public(self.books[book_id])

    async def delete_book(self, book_id):
        if self.books.pop(book_id, None) is None:
            return False
        for review_id in [rid for rid, r in self.reviews.items() if r["book"] == book_id]:
            del self.reviews[review_id]
        return True

    # Reviews

    async def list_reviews(self, book_id, pagination: PaginationParams):
        reviews = sorted(
            (r for r in self.reviews.values() if r["book"] == book_id),
            key=lambda r: r["_seq"],
            reverse=True,
        )
        page = []
        for review in reviews[pagination.skip:pagination.skip + pagination.limit]:
            user = self.users.get(review["user"], {})
            page.append(dict(
                self._public(review),
                user={"id": review["user"], "name": user.get("name", ""), "email": user.get("email", "")},
            ))
        return page, len(reviews)

    async def get_review(self, review_id):
        return self._public(self.reviews.get(review_id))

    async def create_review(self, book_id, user_id, rating, comment):
        if any(r["book"] == book_id and r["user"] == user_id for r in self.reviews.values()):
            raise StoreError(StoreErrorKind.DUPLICATE_KEY, field="book,user")
        review_id = str(ObjectId())
        self.reviews[review_id] = dict(
            id=review_id, book=book_id, user=user_id, rating=rating, comment=comment, **self._stamp()
        )
        return self._public(self.reviews[review_id])

    async def update_review(self, review_id, owner_id, fields):
        review = self.reviews.get(review_id)
        if review is None or review["user"] != owner_id:
            return None
        review.update(fields, updated_at=datetime.now(timezone.utc))
        return self._public(review)

    async def delete_review(self, review_id, owner_id=None):
        review = self.reviews.get(review_id)
        if review is None or (owner_id is not None and review["user"] != owner_id):
            return False
        del self.reviews[review_id]
        return True

    async def health_check(self):
        return {"status": "healthy", "books_count": len(self.books), "reviews_count": len(self.reviews)}


def make_settings(**overrides) -> APIConfig:
    values = dict(
        jwt_secret="test-secret",
        jwt_expire_minutes=60,
        bcrypt_rounds=4,
        global_rate_limit=10000,
        auth_rate_limit=10000,
        log_level="WARNING",
        log_format="console",
        environment="production",
    )
    values.update(overrides)
    return APIConfig(**values)


@pytest.fixture
def settings():
    """Create test configuration with cheap hashing and generous rate limits."""
    return make_settings()


@pytest.fixture
def store():
    """Create an empty in-memory store."""
    return InMemoryLibraryStore()


@pytest.fixture
def app(settings, store):
    """Create the application wired to the in-memory store."""
    application = create_app(settings)
    application.state.db_service = store
    return application


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def sample_book():
    """Valid book payload."""
    return {
        "title": "Dune",
        "author": "Frank Herbert",
        "isbn": "978-0441013593",
        "genre": "Science-Fiction",
        "publication_year": 1965,
        "publisher": "Chilton Books",
        "pages": 412,
        "summary": "Desert planet, spice and politics.",
    }


@pytest.fixture
def register_user(client):
    """Return a helper that registers a user through the API and returns the response data."""
    def _register(email: str, password: str = "secret1", name: str = "Reader") -> Dict[str, Any]:
        response = client.post("/api/auth/register", json={"email": email, "password": password, "name": name})
        assert response.status_code == 201, response.text
        return response.json()["data"]
    return _register


@pytest.fixture
def user_a(register_user):
    return register_user("a@x.com", name="A")


@pytest.fixture
def user_b(register_user):
    return register_user("b@x.com", name="B")


@pytest.fixture
def admin(register_user, store):
    """Register a user and promote them through the store, as the admin CLI does."""
    data = register_user("admin@x.com", name="Admin")
    store.users[data["user"]["id"]]["role"] = Role.ADMIN.value
    return data


@pytest.fixture
def book(client, admin, sample_book):
    response = client.post("/api/books", json=sample_book, headers={"Authorization": f"Bearer {admin['token']}"})
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def auth_header():
    """Return a helper building a bearer Authorization header."""
    return lambda token: {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_actor():
    """Return a helper that builds an Actor without going through the API."""
    def _make_actor(user_id: Optional[str] = None, role: Role = Role.USER, email: str = "someone@x.com") -> Actor:
        return Actor(id=user_id or str(ObjectId()), email=email, name="Someone", role=role)
    return _make_actor


@pytest.fixture
def app_factory(store):
    """Return a helper that builds an application with overridden settings."""
    def _app_factory(**overrides):
        application = create_app(make_settings(**overrides))
        application.state.db_service = store
        return application
    return _app_factory
