"""
Authentication, identity resolution and rate limiting for the FastAPI API.
"""

import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

import structlog
from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from library_api.config import APIConfig
from library_api.database import LibraryDatabaseService
from library_api.errors import (
    AuthenticationError,
    AuthorizationError,
    InvalidTokenError,
    MissingCredentialError,
    RateLimitExceeded,
    UnknownActorError,
)
from library_api.models import Actor
from library_api import policy
from library_api.security import TokenService

logger = structlog.get_logger(__name__)

# Missing credentials are reported by the resolver, not by FastAPI
security = HTTPBearer(auto_error=False)


class IdentityResolver:
    """
    Maps a bearer credential to the live Actor record.

    The role embedded in the token is ignored; every resolution re-reads the user
    so authorization always sees the current role. Nothing is cached between requests.
    """

    def __init__(self, tokens: TokenService, db_service: LibraryDatabaseService):
        self.tokens = tokens
        self.db_service = db_service

    async def resolve(self, credential: Optional[str]) -> Actor:
        """
        Resolve a credential to an actor.

        Raises:
            MissingCredentialError: No credential was supplied
            InvalidTokenError / ExpiredTokenError: Token verification failed
            UnknownActorError: Token subject no longer exists
        """
        if not credential:
            raise MissingCredentialError()

        claims = self.tokens.verify(credential)

        user = await self.db_service.get_user_by_id(claims.sub)
        if user is None:
            raise UnknownActorError()

        return Actor(**user)


class RateLimiter:
    """
    Sliding-window rate limiter keyed by an arbitrary string (client address).

    State lives in this instance only, so each application owns its own counters.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        message: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.message = message
        self._clock = clock
        self._requests: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    def _prune(self, key: str, now: float) -> Deque[float]:
        """Drop expired timestamps for ``key``; keys left with none are forgotten."""
        requests = self._requests.get(key)
        if requests is None:
            return deque()
        while requests and now - requests[0] >= self.window_seconds:
            requests.popleft()
        if not requests:
            del self._requests[key]
        return requests

    def _sweep(self, now: float) -> None:
        """Forget every client whose window has fully expired."""
        for key in list(self._requests):
            self._prune(key, now)
        self._last_sweep = now

    def hit(self, key: str) -> Dict[str, int]:
        """
        Record a request for ``key``.

        Returns:
            Dictionary with rate limit information

        Raises:
            RateLimitExceeded: The key already used its allowance in the current window
        """
        now = self._clock()
        if now - self._last_sweep >= self.window_seconds:
            self._sweep(now)
        requests = self._prune(key, now)

        if len(requests) >= self.limit:
            retry_after = int(self.window_seconds - (now - requests[0])) + 1
            raise RateLimitExceeded(retry_after=retry_after, message=self.message)

        requests.append(now)
        self._requests[key] = requests
        reset_in = int(self.window_seconds - (now - requests[0]))
        return {
            "limit": self.limit,
            "remaining": self.limit - len(requests),
            "reset": reset_in,
        }


def get_rate_limit_headers(rate_info: Dict[str, int]) -> Dict[str, str]:
    """
    Get rate limit headers for response.

    Args:
        rate_info: Result of RateLimiter.hit

    Returns:
        Dictionary with rate limit headers
    """
    return {
        "X-RateLimit-Limit": str(rate_info["limit"]),
        "X-RateLimit-Remaining": str(rate_info["remaining"]),
        "X-RateLimit-Reset": str(rate_info["reset"]),
    }


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


# Dependencies

def get_db_service(request: Request) -> LibraryDatabaseService:
    db_service = getattr(request.app.state, "db_service", None)
    if db_service is None:
        raise RuntimeError("Database service not available")
    return db_service


def get_settings(request: Request) -> APIConfig:
    return request.app.state.settings


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


async def get_current_actor(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db_service: LibraryDatabaseService = Depends(get_db_service),
    tokens: TokenService = Depends(get_token_service),
) -> Actor:
    """
    Resolve the authenticated actor for protected routes.

    Raises:
        AuthenticationError: Missing, invalid or expired credential, or unknown user
    """
    resolver = IdentityResolver(tokens, db_service)
    try:
        actor = await resolver.resolve(credentials.credentials if credentials else None)
    except InvalidTokenError as e:
        logger.warning("Token rejected", reason=e.kind.value, path=request.url.path)
        raise
    except AuthenticationError as e:
        logger.warning("Authentication failed", reason=type(e).__name__, path=request.url.path)
        raise

    structlog.contextvars.bind_contextvars(actor_id=actor.id)
    return actor


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Dependency: authenticated actor allowed to administer the catalogue."""
    if not policy.can_modify_book(actor):
        logger.warning("Admin access denied", actor_id=actor.id, role=actor.role.value)
        raise AuthorizationError("Access reserved for administrators")
    return actor


async def auth_rate_limit(request: Request, response: Response) -> None:
    """Dependency: stricter limit for register and login."""
    limiter: RateLimiter = request.app.state.auth_rate_limiter
    try:
        rate_info = limiter.hit(client_key(request))
    except RateLimitExceeded:
        logger.warning("Auth rate limit exceeded", client=client_key(request), path=request.url.path)
        raise
    response.headers.update(get_rate_limit_headers(rate_info))
