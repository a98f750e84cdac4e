from __future__ import annotations

from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..db import get_db
from ..models.user import User
from ..utils.jwt import ExpiredSignatureError, InvalidTokenError, decode

bearer_scheme = HTTPBearer(
    auto_error=False,
    description="Access token whose `sub` claim is the user id.",
)

SessionDep = Annotated[AsyncSession, Depends(get_db)]
CredentialsDep = Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)]


def _unauthorised(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(session: SessionDep, credentials: CredentialsDep) -> User:
    if credentials is None:
        raise _unauthorised("Not authenticated")

    settings = get_settings()
    try:
        payload = decode(
            credentials.credentials,
            settings.auth_secret_key,
            algorithms=[settings.auth_token_algorithm],
        )
    except ExpiredSignatureError as exc:
        raise _unauthorised("Access token has expired") from exc
    except InvalidTokenError as exc:
        raise _unauthorised("Invalid authentication credentials") from exc

    subject = payload.get("sub")
    if not subject:
        raise _unauthorised("Token payload is missing subject")

    try:
        user_id = UUID(str(subject))
    except (ValueError, TypeError) as exc:
        raise _unauthorised("Malformed user identifier in token") from exc

    user = await session.get(User, user_id)
    if not user or not user.is_active:
        raise _unauthorised("User not found or inactive")

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
