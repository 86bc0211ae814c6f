"""
API models and schemas for the FastAPI application.
"""

from datetime import date, datetime
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

T = TypeVar("T")

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10


class Role(str, Enum):
    """Actor role enumeration."""
    USER = "user"
    ADMIN = "admin"


class Genre(str, Enum):
    """Book genre enumeration."""
    NOVEL = "Roman"
    SCIENCE_FICTION = "Science-Fiction"
    FANTASY = "Fantasy"
    CRIME = "Policier"
    BIOGRAPHY = "Biographie"
    HISTORY = "Histoire"
    YOUTH = "Jeunesse"


def normalize_email(value: str) -> str:
    """Emails are stored and looked up trimmed and lower-cased."""
    return value.strip().lower()


class Actor(BaseModel):
    """An authenticated user, as resolved from the live user record."""
    id: str = Field(..., description="Unique user identifier")
    email: str = Field(..., description="Normalized email address")
    name: str = Field(..., description="Display name")
    role: Role = Field(Role.USER, description="User role")
    created_at: Optional[datetime] = Field(None, description="Account creation timestamp")

    model_config = ConfigDict(frozen=True)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class TokenClaims(BaseModel):
    """Claims recovered from a verified session token."""
    sub: str = Field(..., description="Subject (user id)")
    role: Role = Field(..., description="Role at issuance time")
    email: Optional[str] = Field(None, description="Email at issuance time")
    iat: datetime = Field(..., description="Issued at")
    exp: datetime = Field(..., description="Expires at")


# Auth schemas

class RegisterRequest(BaseModel):
    """Registration payload."""
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=6, description="Password (at least 6 characters)")
    name: str = Field(..., min_length=1, description="Display name")

    @field_validator("email", mode="before")
    @classmethod
    def normalize(cls, v):
        return normalize_email(v) if isinstance(v, str) else v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        """Name must not be blank."""
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class LoginRequest(BaseModel):
    """Login payload."""
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=1, description="Password")

    @field_validator("email", mode="before")
    @classmethod
    def normalize(cls, v):
        return normalize_email(v) if isinstance(v, str) else v


class UserResponse(BaseModel):
    """Public view of a user."""
    id: str
    email: str
    name: str
    role: Role


class ProfileResponse(UserResponse):
    created_at: Optional[datetime] = None


class AuthData(BaseModel):
    """Register/login response payload."""
    user: UserResponse
    token: str


# Book schemas

class BookCreate(BaseModel):
    """Book payload used for both creation and full update."""
    title: str = Field(..., min_length=1, description="Book title")
    author: str = Field(..., min_length=1, description="Author")
    isbn: str = Field(..., min_length=1, description="ISBN, unique across the catalogue")
    genre: Genre = Field(..., description="Genre")
    publication_year: int = Field(..., ge=1000, description="Year of publication")
    publisher: str = Field(..., min_length=1, description="Publisher")
    pages: int = Field(..., ge=1, description="Number of pages")
    summary: str = Field("", max_length=2000, description="Summary")
    available: bool = Field(True, description="Whether the book can be borrowed")

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("publication_year")
    @classmethod
    def validate_publication_year(cls, v):
        """Publication year cannot be in the future."""
        if v > date.today().year:
            raise ValueError("Publication year cannot be in the future")
        return v


class BookResponse(BaseModel):
    """Book response model for API."""
    id: str = Field(..., description="Unique book identifier")
    title: str
    author: str
    isbn: str
    genre: Genre
    publication_year: int
    publisher: str
    pages: int
    summary: str = ""
    available: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Pagination(BaseModel):
    """Pagination metadata."""
    page: int = Field(..., description="Current page number")
    limit: int = Field(..., description="Items per page")
    total: int = Field(..., description="Total number of items")
    pages: int = Field(..., description="Total number of pages")


class BookListData(BaseModel):
    books: List[BookResponse]
    pagination: Pagination


class PaginationParams(BaseModel):
    """Page and limit after clamping to the accepted range."""
    page: int = Field(1, ge=1)
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)

    @classmethod
    def from_query(cls, page: Optional[str] = None, limit: Optional[str] = None) -> "PaginationParams":
        """
        Build pagination from raw query strings.

        Unparseable or non-positive values fall back to the defaults; page is raised to 1
        and limit capped at MAX_PAGE_SIZE instead of being rejected.
        """
        parsed_page = _parse_positive_int(page) or 1
        parsed_limit = _parse_positive_int(limit) or DEFAULT_PAGE_SIZE
        return cls(page=max(1, parsed_page), limit=min(MAX_PAGE_SIZE, parsed_limit))

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def _parse_positive_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


class BookQueryParams(BaseModel):
    """Query parameters for book listing."""
    genre: Optional[Genre] = Field(None, description="Filter by genre")
    available: Optional[bool] = Field(None, description="Filter by availability")
    search: Optional[str] = Field(None, description="Full-text search over title, author and summary")
    year: Optional[int] = Field(None, description="Filter by publication year")
    pagination: PaginationParams = Field(default_factory=PaginationParams)


# Review schemas

class ReviewCreate(BaseModel):
    """Review payload used for both creation and update."""
    rating: int = Field(..., ge=1, le=5, description="Rating between 1 and 5")
    comment: str = Field(..., min_length=1, max_length=1000, description="Comment (max 1000 characters)")

    model_config = ConfigDict(str_strip_whitespace=True)


class ReviewUser(BaseModel):
    """Reviewer display fields attached to a review."""
    id: str
    name: str
    email: str


class ReviewResponse(BaseModel):
    """Review response model for API."""
    id: str
    book: str
    user: ReviewUser
    rating: int
    comment: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReviewListData(BaseModel):
    reviews: List[ReviewResponse]
    pagination: Pagination


# Envelopes

class FieldError(BaseModel):
    """A single field-level validation message."""
    field: str
    message: str


class APIResponse(BaseModel, Generic[T]):
    """Response envelope shared by every endpoint."""
    status: str = Field("success", description="success or error")
    message: Optional[str] = Field(None, description="Human-readable message")
    data: Optional[T] = Field(None, description="Payload")
    errors: Optional[List[FieldError]] = Field(None, description="Field-level validation errors")


class StatusResponse(BaseModel):
    """Service status response model."""
    status: str = Field(..., description="Service status")
    message: str = Field(..., description="Service description")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
