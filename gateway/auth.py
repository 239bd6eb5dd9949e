"""
Request authentication dependencies.

`require_principal` guards the /v1 surface and accepts an API key or the
dashboard session cookie. `require_session_user` guards /api and accepts only
the session cookie.
"""

from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Header, Request, status
from sqlalchemy.orm import Session

from gateway.deps import get_access_control, get_db, get_session_verifier
from gateway.errors import AuthError, http_error
from gateway.models import User
from gateway.routing.access_control import (
    AccessControl,
    JwtSessionVerifier,
    Principal,
    resolve_credential,
)
from gateway.settings import settings


async def require_principal(
    request: Request,
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    access: AccessControl = Depends(get_access_control),
) -> Principal:
    """
    Preferred：`Authorization: Bearer <key>`；兼容 `X-API-Key: <key>`；
    都没有时回退到控制台会话 Cookie。
    """
    credential = resolve_credential(
        authorization, x_api_key, request.cookies.get(settings.session_cookie_name)
    )
    return await access.authenticate(credential)


@dataclass
class SessionUser:
    id: UUID
    email: str
    display_name: str | None = None


def require_session_user(
    request: Request,
    db: Session = Depends(get_db),
    verifier: JwtSessionVerifier = Depends(get_session_verifier),
) -> SessionUser:
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        raise http_error(
            status.HTTP_401_UNAUTHORIZED, error="unauthorized", message="Not signed in"
        )
    try:
        user_id = verifier.verify(token)
    except AuthError as exc:
        raise http_error(
            status.HTTP_401_UNAUTHORIZED, error="unauthorized", message=exc.message
        ) from exc

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise http_error(
            status.HTTP_401_UNAUTHORIZED, error="unauthorized", message="User is not active"
        )
    return SessionUser(id=user.id, email=user.email, display_name=user.display_name)


__all__ = ["SessionUser", "require_principal", "require_session_user"]
