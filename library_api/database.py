"""
Database service layer for the FastAPI application.
Handles indexing and CRUD operations for users, books and reviews.
"""

import math
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument, TEXT
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from library_api.errors import StoreError, StoreErrorKind
from library_api.models import BookQueryParams, PaginationParams, Role

logger = structlog.get_logger(__name__)

USER_PUBLIC_PROJECTION = {"password_hash": 0}


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse an identifier, returning None when it is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Replace ``_id`` with a string ``id`` and stringify ObjectId references."""
    if doc is None:
        return None
    result = {}
    for key, value in doc.items():
        if key == "_id":
            result["id"] = str(value)
        elif isinstance(value, ObjectId):
            result[key] = str(value)
        else:
            result[key] = value
    return result


def _duplicate_field(exc: DuplicateKeyError) -> Optional[str]:
    """Name of the unique index a DuplicateKeyError violated."""
    details = exc.details or {}
    key_pattern = details.get("keyPattern") or {}
    if key_pattern:
        return ",".join(key_pattern.keys())
    return None


@contextmanager
def _store_call(operation: str):
    """Report driver connection failures as StoreError(UNAVAILABLE)."""
    try:
        yield
    except ConnectionFailure as e:
        logger.error("Database operation failed", operation=operation, error=str(e))
        raise StoreError(StoreErrorKind.UNAVAILABLE, detail=str(e))


class LibraryDatabaseService:
    """Database service for API operations."""

    def __init__(self, database: AsyncIOMotorDatabase):
        self.database = database
        self.users_collection = database.users
        self.books_collection = database.books
        self.reviews_collection = database.reviews

    async def ensure_indexes(self) -> None:
        """Create the indexes that back uniqueness constraints and common queries."""
        try:
            await self.users_collection.create_index("email", unique=True)

            await self.books_collection.create_index("isbn", unique=True)
            await self.books_collection.create_index("genre")
            await self.books_collection.create_index([("created_at", DESCENDING)])
            await self.books_collection.create_index(
                [("title", TEXT), ("author", TEXT), ("summary", TEXT)]
            )

            # One review per user per book
            await self.reviews_collection.create_index(
                [("book", ASCENDING), ("user", ASCENDING)], unique=True
            )
            await self.reviews_collection.create_index([("book", ASCENDING), ("created_at", DESCENDING)])

            logger.info("Successfully created MongoDB indexes")

        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    # Users

    async def create_user(self, email: str, password_hash: str, name: str, role: Role = Role.USER) -> Dict[str, Any]:
        """
        Insert a new user.

        Raises:
            StoreError: DUPLICATE_KEY when the email is already registered
        """
        now = _utcnow()
        user_doc = {
            "email": email,
            "password_hash": password_hash,
            "name": name,
            "role": role.value,
            "created_at": now,
            "updated_at": now,
        }
        with _store_call("create_user"):
            try:
                result = await self.users_collection.insert_one(user_doc)
            except DuplicateKeyError as e:
                raise StoreError(StoreErrorKind.DUPLICATE_KEY, field=_duplicate_field(e) or "email")

        user = dict(user_doc, _id=result.inserted_id)
        del user["password_hash"]
        return _serialize(user)

    async def get_user_by_email(self, email: str, include_password: bool = False) -> Optional[Dict[str, Any]]:
        projection = None if include_password else USER_PUBLIC_PROJECTION
        with _store_call("get_user_by_email"):
            user_doc = await self.users_collection.find_one({"email": email}, projection)
        return _serialize(user_doc)

    async def get_user_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        object_id = to_object_id(user_id)
        if object_id is None:
            return None
        with _store_call("get_user_by_id"):
            user_doc = await self.users_collection.find_one({"_id": object_id}, USER_PUBLIC_PROJECTION)
        return _serialize(user_doc)

    async def set_user_role(self, email: str, role: Role) -> bool:
        """
        Change a user's role. Only reachable from the admin command line.

        Returns:
            True if a user with that email exists
        """
        with _store_call("set_user_role"):
            result = await self.users_collection.update_one(
                {"email": email},
                {"$set": {"role": role.value, "updated_at": _utcnow()}}
            )
        return result.matched_count > 0

    # Books

    async def list_books(self, query_params: BookQueryParams) -> Tuple[List[Dict[str, Any]], int]:
        """
        Get books with filtering and pagination, newest first.

        Returns:
            Tuple of (books on the requested page, total matching books)
        """
        filter_query: Dict[str, Any] = {}

        if query_params.genre:
            filter_query["genre"] = query_params.genre.value

        if query_params.available is not None:
            filter_query["available"] = query_params.available

        if query_params.search:
            filter_query["$text"] = {"$search": query_params.search}

        if query_params.year is not None:
            filter_query["publication_year"] = query_params.year

        pagination = query_params.pagination

        with _store_call("list_books"):
            total = await self.books_collection.count_documents(filter_query)
            cursor = (
                self.books_collection.find(filter_query)
                .sort("created_at", DESCENDING)
                .skip(pagination.skip)
                .limit(pagination.limit)
            )
            books_docs = await cursor.to_list(length=pagination.limit)

        return [_serialize(doc) for doc in books_docs], total

    async def get_book(self, book_id: str) -> Optional[Dict[str, Any]]:
        object_id = to_object_id(book_id)
        if object_id is None:
            return None
        with _store_call("get_book"):
            book_doc = await self.books_collection.find_one({"_id": object_id})
        return _serialize(book_doc)

    async def create_book(self, book_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a new book.

        Raises:
            StoreError: DUPLICATE_KEY when the isbn is already catalogued
        """
        now = _utcnow()
        book_doc = dict(book_data, created_at=now, updated_at=now)
        with _store_call("create_book"):
            try:
                result = await self.books_collection.insert_one(book_doc)
            except DuplicateKeyError as e:
                raise StoreError(StoreErrorKind.DUPLICATE_KEY, field=_duplicate_field(e) or "isbn")

        return _serialize(dict(book_doc, _id=result.inserted_id))

    async def update_book(self, book_id: str, book_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Replace a book's fields.

        Returns:
            The updated book, or None if it does not exist
        """
        object_id = to_object_id(book_id)
        if object_id is None:
            return None
        with _store_call("update_book"):
            try:
                book_doc = await self.books_collection.find_one_and_update(
                    {"_id": object_id},
                    {"$set": dict(book_data, updated_at=_utcnow())},
                    return_document=ReturnDocument.AFTER
                )
            except DuplicateKeyError as e:
                raise StoreError(StoreErrorKind.DUPLICATE_KEY, field=_duplicate_field(e) or "isbn")
        return _serialize(book_doc)

    async def delete_book(self, book_id: str) -> bool:
        """
        Delete a book and the reviews attached to it.

        Returns:
            True if deleted, False if not found
        """
        object_id = to_object_id(book_id)
        if object_id is None:
            return False

        with _store_call("delete_book"):
            result = await self.books_collection.delete_one({"_id": object_id})
            if result.deleted_count == 0:
                return False

            reviews_result = await self.reviews_collection.delete_many({"book": object_id})
        logger.debug("Deleted book reviews", book_id=book_id, count=reviews_result.deleted_count)
        return True

    # Reviews

    async def list_reviews(self, book_id: str, pagination: PaginationParams) -> Tuple[List[Dict[str, Any]], int]:
        """
        Get a book's reviews, newest first, with reviewer display fields attached.

        Returns:
            Tuple of (reviews on the requested page, total reviews for the book)
        """
        object_id = to_object_id(book_id)
        if object_id is None:
            return [], 0

        pipeline = [
            {"$match": {"book": object_id}},
            {"$sort": {"created_at": DESCENDING}},
            {"$skip": pagination.skip},
            {"$limit": pagination.limit},
            {"$lookup": {
                "from": self.users_collection.name,
                "localField": "user",
                "foreignField": "_id",
                "as": "user_doc",
            }},
            {"$unwind": {"path": "$user_doc", "preserveNullAndEmptyArrays": True}},
        ]
        with _store_call("list_reviews"):
            total = await self.reviews_collection.count_documents({"book": object_id})
            cursor = self.reviews_collection.aggregate(pipeline)
            review_docs = await cursor.to_list(length=pagination.limit)

        reviews = []
        for review_doc in review_docs:
            user_doc = review_doc.pop("user_doc", None) or {}
            review = _serialize(review_doc)
            review["user"] = {
                "id": review["user"],
                "name": user_doc.get("name", ""),
                "email": user_doc.get("email", ""),
            }
            reviews.append(review)

        return reviews, total

    async def get_review(self, review_id: str) -> Optional[Dict[str, Any]]:
        object_id = to_object_id(review_id)
        if object_id is None:
            return None
        with _store_call("get_review"):
            review_doc = await self.reviews_collection.find_one({"_id": object_id})
        return _serialize(review_doc)

    async def create_review(self, book_id: str, user_id: str, rating: int, comment: str) -> Dict[str, Any]:
        """
        Insert a review.

        Raises:
            StoreError: DUPLICATE_KEY when the user already reviewed this book
        """
        now = _utcnow()
        review_doc = {
            "book": ObjectId(book_id),
            "user": ObjectId(user_id),
            "rating": rating,
            "comment": comment,
            "created_at": now,
            "updated_at": now,
        }
        with _store_call("create_review"):
            try:
                result = await self.reviews_collection.insert_one(review_doc)
            except DuplicateKeyError as e:
                raise StoreError(StoreErrorKind.DUPLICATE_KEY, field=_duplicate_field(e) or "book,user")

        return _serialize(dict(review_doc, _id=result.inserted_id))

    async def update_review(self, review_id: str, owner_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Update a review owned by ``owner_id``.

        Returns:
            The updated review, or None if no review with that id belongs to the owner
        """
        object_id = to_object_id(review_id)
        owner_object_id = to_object_id(owner_id)
        if object_id is None or owner_object_id is None:
            return None

        with _store_call("update_review"):
            review_doc = await self.reviews_collection.find_one_and_update(
                {"_id": object_id, "user": owner_object_id},
                {"$set": dict(fields, updated_at=_utcnow())},
                return_document=ReturnDocument.AFTER
            )
        return _serialize(review_doc)

    async def delete_review(self, review_id: str, owner_id: Optional[str] = None) -> bool:
        """
        Delete a review.

        Args:
            review_id: Review identifier
            owner_id: When given, only a review belonging to this user is deleted

        Returns:
            True if deleted, False if not found
        """
        object_id = to_object_id(review_id)
        if object_id is None:
            return False

        filter_query: Dict[str, Any] = {"_id": object_id}
        if owner_id is not None:
            owner_object_id = to_object_id(owner_id)
            if owner_object_id is None:
                return False
            filter_query["user"] = owner_object_id

        with _store_call("delete_review"):
            review_doc = await self.reviews_collection.find_one_and_delete(filter_query)
        return review_doc is not None

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")

            return {
                "status": "healthy",
                "books_count": await self.books_collection.count_documents({}),
                "reviews_count": await self.reviews_collection.count_documents({}),
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
