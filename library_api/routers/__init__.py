"""HTTP routers for the library API."""

from library_api.routers import auth, books, reviews, status

__all__ = ["auth", "books", "reviews", "status"]
