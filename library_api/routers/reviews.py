"""Review endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from library_api.auth import get_current_actor, get_db_service
from library_api.database import LibraryDatabaseService
from library_api.models import Actor, APIResponse, PaginationParams, ReviewCreate, ReviewListData, ReviewResponse
from library_api.services import ReviewService

router = APIRouter(prefix="/api/reviews", tags=["Reviews"])


def get_review_service(db_service: LibraryDatabaseService = Depends(get_db_service)) -> ReviewService:
    return ReviewService(db_service)


@router.get("/book/{book_id}", response_model=APIResponse[ReviewListData], response_model_exclude_none=True)
async def list_reviews(
    book_id: str,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    service: ReviewService = Depends(get_review_service),
):
    """List a book's reviews, newest first."""
    data = await service.list_reviews(book_id, PaginationParams.from_query(page, limit))
    return APIResponse[ReviewListData](data=data)


@router.post(
    "/book/{book_id}",
    response_model=APIResponse[ReviewResponse],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_review(
    book_id: str,
    payload: ReviewCreate,
    actor: Actor = Depends(get_current_actor),
    service: ReviewService = Depends(get_review_service),
):
    """Review a book. Each user may review a given book once."""
    review = await service.create_review(actor, book_id, payload)
    return APIResponse[ReviewResponse](message="Review created successfully", data=review)


@router.put("/{review_id}", response_model=APIResponse[ReviewResponse], response_model_exclude_none=True)
async def update_review(
    review_id: str,
    payload: ReviewCreate,
    actor: Actor = Depends(get_current_actor),
    service: ReviewService = Depends(get_review_service),
):
    """Edit your own review."""
    review = await service.update_review(actor, review_id, payload)
    return APIResponse[ReviewResponse](message="Review updated successfully", data=review)


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
async def delete_review(
    review_id: str,
    actor: Actor = Depends(get_current_actor),
    service: ReviewService = Depends(get_review_service),
):
    """Delete your own review; admins may delete any review."""
    await service.delete_review(actor, review_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
