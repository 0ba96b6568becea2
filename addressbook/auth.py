"""Authorization gate for routes that need to know the caller.

Tokens are issued by the identity provider; this service only verifies
them. A verified caller is registered in the ``users`` table on first
sight, then handed to the route as an :class:`AuthenticatedUser`.
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .core import get_settings
from .crud import UserRepository
from .database import get_db

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthenticatedUser:
    """Represents the verified caller of a request."""

    subject_id: str
    nickname: str
    first_time: bool = False


def decode_token(token: str) -> dict:
    """
    Verify a bearer token and return its claims.

    The audience and issuer are only checked when configured.

    Raises:
        JWTError: If the signature, expiry or a checked claim is invalid.
    """
    settings = get_settings()
    options = {"verify_aud": settings.AUTH_AUDIENCE is not None}
    return jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=[settings.ALGORITHM],
        audience=settings.AUTH_AUDIENCE,
        issuer=settings.AUTH_ISSUER,
        options=options,
    )


def resolve_user(token: str, db: Session) -> AuthenticatedUser:
    """Turn a raw token into a registered :class:`AuthenticatedUser`."""

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        claims = decode_token(token)
    except JWTError as e:
        logger.info("rejected token: %s", e)
        raise credentials_exception
    subject_id = claims.get("sub")
    if not subject_id:
        raise credentials_exception
    nickname = claims.get("nickname") or claims.get("name") or subject_id

    user = UserRepository(db).create_if_not_exists(subject_id, nickname)
    return AuthenticatedUser(
        subject_id=subject_id,
        nickname=nickname,
        first_time=user.get("firstTime", False),
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> AuthenticatedUser:
    """Dependency that requires a valid bearer token."""

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return resolve_user(credentials.credentials, db)


def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> AuthenticatedUser | None:
    """Dependency that returns ``None`` for anonymous callers.

    A token that is sent but invalid is still rejected.
    """

    if credentials is None:
        return None
    return resolve_user(credentials.credentials, db)
