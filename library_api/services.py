"""
Business logic for accounts, books and reviews.

Services sit between the routers and the database service: they apply the access
policy, translate storage failures into API errors and shape responses.
"""

from functools import lru_cache
from typing import Any, Dict

import structlog
from starlette.concurrency import run_in_threadpool

from library_api import policy
from library_api.database import LibraryDatabaseService, page_count
from library_api.errors import (
    AuthorizationError,
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    StoreError,
    StoreErrorKind,
)
from library_api.models import (
    Actor,
    AuthData,
    BookCreate,
    BookListData,
    BookQueryParams,
    BookResponse,
    LoginRequest,
    Pagination,
    PaginationParams,
    ProfileResponse,
    RegisterRequest,
    ReviewCreate,
    ReviewListData,
    ReviewResponse,
    UserResponse,
)
from library_api.security import TokenService, hash_password, verify_password

logger = structlog.get_logger(__name__)


@lru_cache(maxsize=None)
def _dummy_hash(rounds: int) -> str:
    return hash_password("library-api-unknown-account", rounds)


def _verify_unknown_account(plain_password: str, rounds: int) -> bool:
    """Spend the same bcrypt work as a real check when the email is unknown."""
    verify_password(plain_password, _dummy_hash(rounds))
    return False


class AuthService:
    """Registration, login and profile."""

    def __init__(self, db_service: LibraryDatabaseService, tokens: TokenService, bcrypt_rounds: int = 12):
        self.db_service = db_service
        self.tokens = tokens
        self.bcrypt_rounds = bcrypt_rounds

    def _auth_data(self, user: Dict[str, Any]) -> AuthData:
        actor = Actor(**user)
        return AuthData(
            user=UserResponse(id=actor.id, email=actor.email, name=actor.name, role=actor.role),
            token=self.tokens.issue(actor),
        )

    async def register(self, payload: RegisterRequest) -> AuthData:
        """
        Create an account with the ``user`` role and issue a token for it.

        Raises:
            ConflictError: The email is already registered
        """
        if await self.db_service.get_user_by_email(payload.email) is not None:
            raise ConflictError("A user with this email already exists")

        password_hash = await run_in_threadpool(hash_password, payload.password, self.bcrypt_rounds)
        try:
            user = await self.db_service.create_user(payload.email, password_hash, payload.name)
        except StoreError as e:
            if e.kind is StoreErrorKind.DUPLICATE_KEY:
                raise ConflictError("A user with this email already exists")
            raise

        logger.info("User registered", user_id=user["id"])
        return self._auth_data(user)

    async def login(self, payload: LoginRequest) -> AuthData:
        """
        Check credentials and issue a token.

        Unknown email and wrong password fail identically.
        """
        user = await self.db_service.get_user_by_email(payload.email, include_password=True)
        if user is None:
            await run_in_threadpool(_verify_unknown_account, payload.password, self.bcrypt_rounds)
            logger.warning("Login failed", reason="unknown_email")
            raise InvalidCredentialsError()

        password_ok = await run_in_threadpool(verify_password, payload.password, user.pop("password_hash", ""))
        if not password_ok:
            logger.warning("Login failed", reason="bad_password", user_id=user["id"])
            raise InvalidCredentialsError()

        logger.info("User logged in", user_id=user["id"])
        return self._auth_data(user)

    @staticmethod
    def profile(actor: Actor) -> ProfileResponse:
        return ProfileResponse(
            id=actor.id,
            email=actor.email,
            name=actor.name,
            role=actor.role,
            created_at=actor.created_at,
        )


class BookService:
    """Catalogue reads for everyone, writes for admins."""

    def __init__(self, db_service: LibraryDatabaseService):
        self.db_service = db_service

    async def list_books(self, query_params: BookQueryParams) -> BookListData:
        books, total = await self.db_service.list_books(query_params)
        pagination = query_params.pagination
        return BookListData(
            books=[BookResponse(**book) for book in books],
            pagination=Pagination(
                page=pagination.page,
                limit=pagination.limit,
                total=total,
                pages=page_count(total, pagination.limit),
            ),
        )

    async def get_book(self, book_id: str) -> BookResponse:
        book = await self.db_service.get_book(book_id)
        if book is None:
            raise NotFoundError("Book not found")
        return BookResponse(**book)

    async def create_book(self, actor: Actor, payload: BookCreate) -> BookResponse:
        if not policy.can_create_book(actor):
            raise AuthorizationError("Access reserved for administrators")

        try:
            book = await self.db_service.create_book(payload.model_dump(mode="json"))
        except StoreError as e:
            if e.kind is StoreErrorKind.DUPLICATE_KEY:
                raise ConflictError("A book with this ISBN already exists")
            raise

        logger.info("Book created", book_id=book["id"], isbn=book["isbn"], actor_id=actor.id)
        return BookResponse(**book)

    async def update_book(self, actor: Actor, book_id: str, payload: BookCreate) -> BookResponse:
        if not policy.can_modify_book(actor):
            raise AuthorizationError("Access reserved for administrators")

        try:
            book = await self.db_service.update_book(book_id, payload.model_dump(mode="json"))
        except StoreError as e:
            if e.kind is StoreErrorKind.DUPLICATE_KEY:
                raise ConflictError("A book with this ISBN already exists")
            raise

        if book is None:
            raise NotFoundError("Book not found")

        logger.info("Book updated", book_id=book_id, actor_id=actor.id)
        return BookResponse(**book)

    async def delete_book(self, actor: Actor, book_id: str) -> None:
        if not policy.can_delete_book(actor):
            raise AuthorizationError("Access reserved for administrators")

        if not await self.db_service.delete_book(book_id):
            raise NotFoundError("Book not found")

        logger.info("Book deleted", book_id=book_id, actor_id=actor.id)


class ReviewService:
    """
    Reviews, scoped by ownership.

    A review the caller may not touch is reported exactly like a missing one, so
    other users' review ids cannot be probed.
    """

    def __init__(self, db_service: LibraryDatabaseService):
        self.db_service = db_service

    @staticmethod
    def _response(review: Dict[str, Any], author: Actor) -> ReviewResponse:
        return ReviewResponse(
            **dict(review, user={"id": author.id, "name": author.name, "email": author.email})
        )

    async def list_reviews(self, book_id: str, pagination: PaginationParams) -> ReviewListData:
        reviews, total = await self.db_service.list_reviews(book_id, pagination)
        return ReviewListData(
            reviews=[ReviewResponse(**review) for review in reviews],
            pagination=Pagination(
                page=pagination.page,
                limit=pagination.limit,
                total=total,
                pages=page_count(total, pagination.limit),
            ),
        )

    async def create_review(self, actor: Actor, book_id: str, payload: ReviewCreate) -> ReviewResponse:
        """
        Raises:
            NotFoundError: The book does not exist
            ConflictError: The actor already reviewed this book
        """
        book = await self.db_service.get_book(book_id)
        if not policy.can_create_review(actor, book):
            raise NotFoundError("Book not found")

        try:
            review = await self.db_service.create_review(book["id"], actor.id, payload.rating, payload.comment)
        except StoreError as e:
            if e.kind is StoreErrorKind.DUPLICATE_KEY:
                raise ConflictError("You have already reviewed this book")
            raise

        logger.info("Review created", review_id=review["id"], book_id=book["id"], actor_id=actor.id)
        return self._response(review, actor)

    async def update_review(self, actor: Actor, review_id: str, payload: ReviewCreate) -> ReviewResponse:
        """Only the author may update; everyone else, admins included, gets NotFound."""
        review = await self.db_service.get_review(review_id)
        if not policy.can_modify_review(actor, review):
            raise NotFoundError("Review not found")

        updated = await self.db_service.update_review(
            review_id, actor.id, {"rating": payload.rating, "comment": payload.comment}
        )
        if updated is None:
            # Deleted between the read and the write
            raise NotFoundError("Review not found")

        logger.info("Review updated", review_id=review_id, actor_id=actor.id)
        return self._response(updated, actor)

    async def delete_review(self, actor: Actor, review_id: str) -> None:
        """The author or an admin may delete; others get NotFound."""
        review = await self.db_service.get_review(review_id)
        if not policy.can_delete_review(actor, review):
            raise NotFoundError("Review not found")

        owner_filter = None if actor.is_admin else actor.id
        if not await self.db_service.delete_review(review_id, owner_id=owner_filter):
            raise NotFoundError("Review not found")

        logger.info("Review deleted", review_id=review_id, actor_id=actor.id, as_admin=actor.is_admin)
