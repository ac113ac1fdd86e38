"""
Access token handling for StudyHub.

Users sign in with the hosted identity provider, which issues HS256 JWTs
signed with a shared secret (audience "authenticated", user id in "sub").
This module only verifies those tokens; create_access_token mints tokens of
the same shape for tests and local development.
"""

from datetime import datetime, timedelta
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt

from .config import settings
from .exceptions import AuthenticationError


def create_access_token(user_id: str, email: Optional[str] = None,
                        expires_minutes: Optional[int] = None, audience: Optional[str] = None) -> str:
    """
    Create a JWT access token using python-jose.

    Args:
        user_id: Subject ("sub") of the token
        email: Optional email claim
        expires_minutes: Lifetime (defaults to settings.token_expire_minutes);
            negative values produce an already-expired token
        audience: Audience claim (defaults to settings.jwt_audience)

    Returns:
        JWT token string
    """
    minutes = settings.token_expire_minutes if expires_minutes is None else expires_minutes
    now = datetime.utcnow()
    claims = {
        "sub": user_id,
        "aud": audience or settings.jwt_audience,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
        "role": "authenticated",
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify a JWT token.

    Returns:
        Decoded claims

    Raises:
        AuthenticationError: If the token is expired, malformed, has the wrong
            audience or lacks a subject
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except JWTError:
        raise AuthenticationError("Invalid token")

    if not payload.get("sub"):
        raise AuthenticationError("Invalid token: missing subject")
    return payload
