# storefront/core/auth.py
import logging
import uuid
from typing import Any

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlmodel import Session

from storefront.core.config import get_settings
from storefront.core.identity import CartIdentity, GuestIdentity, UserIdentity
from storefront.database import get_session
from storefront.models.user import User

logger = logging.getLogger(__name__)
settings = get_settings()

# HTTP Bearer scheme:
# - auto_error=False => missing Authorization header will NOT raise immediately
#   so we can support guest checkout (X-Session-Token instead of a JWT).
bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify an access token (JWT).

    Verification:
      - signature (HS256 using JWT_SECRET)
      - expiration time (exp), when present
      - audience is NOT verified

    Raises:
        HTTPException(401): if token is invalid/expired.
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise _unauthorized("Invalid or expired token")


def _claims_identity(claims: dict[str, Any]) -> tuple[uuid.UUID, str]:
    """
    Pull (user id, email) out of verified token claims.
    """
    sub, email = claims.get("sub"), claims.get("email")
    if not sub or not email:
        raise _unauthorized("Token missing sub/email")
    try:
        return uuid.UUID(str(sub)), email
    except ValueError:
        raise _unauthorized("Invalid sub in token")


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User | None:
    """
    Resolve the caller from a bearer JWT; None means guest.

    First sight of a user id provisions a profile with role "user",
    display name taken from the email's local part. Admins are promoted
    out of band.
    """
    if credentials is None:
        return None

    user_id, email = _claims_identity(decode_access_token(credentials.credentials))

    user = session.get(User, user_id)
    if user is None:
        user = User(id=user_id, email=email, name=email.partition("@")[0] or email)
        session.add(user)
        session.commit()
        session.refresh(user)
        logger.info("Provisioned profile for user %s", user_id)
    return user


def require_auth(user: User | None = Depends(get_current_user)) -> User:
    """
    Enforce authentication (401 for guests).
    """
    if user is None:
        raise _unauthorized("Authentication required")
    return user


def require_admin(user: User = Depends(require_auth)) -> User:
    """
    Enforce admin role (403 otherwise).
    """
    if user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


def get_session_token(
    x_session_token: str | None = Header(default=None),
) -> str | None:
    if x_session_token is None:
        return None
    token = x_session_token.strip()
    return token or None


def get_cart_identity(
    user: User | None = Depends(get_current_user),
    session_token: str | None = Depends(get_session_token),
) -> CartIdentity:
    """
    Identity that scopes carts and checkouts.

    - Authenticated request => UserIdentity (the session token is ignored).
    - Guest with X-Session-Token => GuestIdentity.
    - Neither => 401.
    """
    if user is not None:
        return UserIdentity(user_id=user.id)
    if session_token is not None:
        return GuestIdentity(session_token=session_token)
    raise _unauthorized("Authentication or X-Session-Token header required")
