"""Book catalogue endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from library_api.auth import get_db_service, require_admin
from library_api.database import LibraryDatabaseService
from library_api.models import (
    Actor,
    APIResponse,
    BookCreate,
    BookListData,
    BookQueryParams,
    BookResponse,
    Genre,
    PaginationParams,
)
from library_api.services import BookService

router = APIRouter(prefix="/api/books", tags=["Books"])


def get_book_service(db_service: LibraryDatabaseService = Depends(get_db_service)) -> BookService:
    return BookService(db_service)


@router.get("", response_model=APIResponse[BookListData], response_model_exclude_none=True)
async def list_books(
    genre: Optional[Genre] = None,
    available: Optional[bool] = None,
    search: Optional[str] = None,
    year: Optional[int] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    service: BookService = Depends(get_book_service),
):
    """
    List books, newest first.

    - **genre**: Filter by genre
    - **available**: Filter by availability (true/false)
    - **search**: Full-text search over title, author and summary
    - **year**: Filter by publication year
    - **page**: Page number (starts from 1)
    - **limit**: Items per page (at most 100)
    """
    query_params = BookQueryParams(
        genre=genre,
        available=available,
        search=search or None,
        year=year,
        pagination=PaginationParams.from_query(page, limit),
    )
    data = await service.list_books(query_params)
    return APIResponse[BookListData](data=data)


@router.get("/{book_id}", response_model=APIResponse[BookResponse], response_model_exclude_none=True)
async def get_book(book_id: str, service: BookService = Depends(get_book_service)):
    """Get a single book by id."""
    return APIResponse[BookResponse](data=await service.get_book(book_id))


@router.post(
    "",
    response_model=APIResponse[BookResponse],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_book(
    payload: BookCreate,
    actor: Actor = Depends(require_admin),
    service: BookService = Depends(get_book_service),
):
    """Add a book to the catalogue (admin only)."""
    book = await service.create_book(actor, payload)
    return APIResponse[BookResponse](message="Book created successfully", data=book)


@router.put("/{book_id}", response_model=APIResponse[BookResponse], response_model_exclude_none=True)
async def update_book(
    book_id: str,
    payload: BookCreate,
    actor: Actor = Depends(require_admin),
    service: BookService = Depends(get_book_service),
):
    """Replace a book's details (admin only)."""
    book = await service.update_book(actor, book_id, payload)
    return APIResponse[BookResponse](message="Book updated successfully", data=book)


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
async def delete_book(
    book_id: str,
    actor: Actor = Depends(require_admin),
    service: BookService = Depends(get_book_service),
):
    """Remove a book and its reviews (admin only)."""
    await service.delete_book(actor, book_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
