"""
Shared FastAPI dependencies for StudyHub.

Provides:
- authenticate: the single authentication gate used by every protected route
- require_capability: declarative role-based capability check
"""

import json
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .auth import decode_access_token
from .database import get_db
from .db_models import DBProfile
from .exceptions import AuthenticationError, AuthorizationError

logger = logging.getLogger(__name__)

# =============================================================================
# Capabilities
# =============================================================================

ROLE_CAPABILITIES = {
    "admin": {"manage_ai_config", "view_all_analytics"},
    "user": set(),
}


@dataclass
class AuthContext:
    """Identity of the caller, as established by authenticate()."""
    user_id: str
    token: str
    email: Optional[str] = None


async def _token_from_body(request: Request) -> Optional[str]:
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    body = await request.body()
    if not body:
        return None
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None
    token = data.get("token") if isinstance(data, dict) else None
    return token if isinstance(token, str) and token else None


# =============================================================================
# Authentication Dependency
# =============================================================================

async def authenticate(request: Request) -> AuthContext:
    """
    Authenticate the caller.

    Reads ``Authorization: Bearer <jwt>``; when absent, falls back to a
    ``token`` field in a JSON request body.

    Returns:
        AuthContext with user id and raw token

    Raises:
        AuthenticationError: If no valid token is presented
    """
    token = None
    auth_header = request.headers.get("authorization", "")
    if auth_header:
        scheme, _, credentials = auth_header.partition(" ")
        if scheme.lower() != "bearer" or not credentials.strip():
            raise AuthenticationError("Invalid authorization header")
        token = credentials.strip()
    else:
        token = await _token_from_body(request)

    if not token:
        raise AuthenticationError("Authentication required")

    payload = decode_access_token(token)
    return AuthContext(user_id=payload["sub"], token=token, email=payload.get("email"))


def get_user_role(db: Session, user_id: str) -> str:
    profile = db.query(DBProfile).filter(DBProfile.id == user_id).first()
    return profile.role if profile else "user"


def require_capability(capability: str) -> Callable:
    """
    Build a dependency that requires a capability.

    Usage:
        @router.get("/admin/thing")
        async def thing(auth: AuthContext = Depends(require_capability("manage_ai_config"))):
            ...

    Raises:
        AuthorizationError: If the caller's role lacks the capability
    """
    async def checker(auth: AuthContext = Depends(authenticate), db: Session = Depends(get_db)) -> AuthContext:
        role = get_user_role(db, auth.user_id)
        if capability not in ROLE_CAPABILITIES.get(role, set()):
            logger.warning(f"User {auth.user_id} (role={role}) denied capability {capability}")
            raise AuthorizationError(f"Capability '{capability}' required")
        return auth

    return checker
