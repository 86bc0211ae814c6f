"""Password hashing and session token issuance/verification."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
from pydantic import ValidationError

from library_api.config import APIConfig
from library_api.errors import ExpiredTokenError, InvalidTokenError, TokenErrorKind
from library_api.models import Actor, TokenClaims

# bcrypt only looks at the first 72 bytes of a password.
BCRYPT_MAX_BYTES = 72


def hash_password(plain_password: str, rounds: int = 12) -> str:
    """Hash a plain-text password for storage."""
    pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, hashed: str) -> bool:
    """Verify a plain password against a stored hash."""
    pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


class TokenService:
    """
    Issues and verifies signed session tokens.

    Signing secret, algorithm, lifetime, issuer and audience come from the
    configuration handed to the constructor and never change afterwards.
    """

    def __init__(self, settings: APIConfig):
        self._secret = settings.jwt_secret
        self._algorithm = settings.jwt_algorithm
        self._lifetime = timedelta(minutes=settings.jwt_expire_minutes)
        self._issuer = settings.jwt_issuer
        self._audience = settings.jwt_audience

    @property
    def lifetime(self) -> timedelta:
        return self._lifetime

    def issue(self, actor: Actor, now: Optional[datetime] = None) -> str:
        """
        Create a token for an actor.

        Args:
            actor: The actor the token is issued to
            now: Issuance time, defaults to the current UTC time

        Returns:
            Encoded token string
        """
        issued_at = now or datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "sub": actor.id,
            "role": actor.role.value,
            "email": actor.email,
            "iat": issued_at,
            "exp": issued_at + self._lifetime,
            "iss": self._issuer,
            "aud": self._audience,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenClaims:
        """
        Verify a token and return its claims.

        The signature is checked before expiry, so a tampered expired token is
        reported as tampered.

        Raises:
            ExpiredTokenError: Signature is valid but the token has expired
            InvalidTokenError: Token is malformed, tampered, or has wrong claims
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                audience=self._audience,
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            raise ExpiredTokenError()
        except jwt.InvalidSignatureError:
            raise InvalidTokenError(TokenErrorKind.TAMPERED)
        except jwt.DecodeError:
            raise InvalidTokenError(TokenErrorKind.MALFORMED)
        except jwt.InvalidTokenError:
            raise InvalidTokenError(TokenErrorKind.CLAIMS)

        try:
            return TokenClaims(**payload)
        except ValidationError:
            raise InvalidTokenError(TokenErrorKind.CLAIMS)
