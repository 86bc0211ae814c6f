"""Registration, login and profile endpoints."""

from fastapi import APIRouter, Depends, status

from library_api.auth import (
    auth_rate_limit,
    get_current_actor,
    get_db_service,
    get_settings,
    get_token_service,
)
from library_api.config import APIConfig
from library_api.database import LibraryDatabaseService
from library_api.models import Actor, APIResponse, AuthData, LoginRequest, ProfileResponse, RegisterRequest
from library_api.security import TokenService
from library_api.services import AuthService

router = APIRouter(prefix="/api", tags=["Auth"])


def get_auth_service(
    db_service: LibraryDatabaseService = Depends(get_db_service),
    tokens: TokenService = Depends(get_token_service),
    settings: APIConfig = Depends(get_settings),
) -> AuthService:
    return AuthService(db_service, tokens, bcrypt_rounds=settings.bcrypt_rounds)


@router.post(
    "/auth/register",
    response_model=APIResponse[AuthData],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth_rate_limit)],
)
async def register(payload: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    """
    Create an account and return a session token.

    - **email**: unique, stored lower-cased
    - **password**: at least 6 characters
    - **name**: display name
    """
    data = await service.register(payload)
    return APIResponse[AuthData](message="User created successfully", data=data)


@router.post(
    "/auth/login",
    response_model=APIResponse[AuthData],
    response_model_exclude_none=True,
    dependencies=[Depends(auth_rate_limit)],
)
async def login(payload: LoginRequest, service: AuthService = Depends(get_auth_service)):
    """Exchange email and password for a session token."""
    data = await service.login(payload)
    return APIResponse[AuthData](message="Login successful", data=data)


@router.get("/profile", response_model=APIResponse[ProfileResponse], response_model_exclude_none=True)
async def profile(actor: Actor = Depends(get_current_actor)):
    """Return the authenticated user's profile."""
    return APIResponse[ProfileResponse](data=AuthService.profile(actor))
