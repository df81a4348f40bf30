"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Requests authenticate with one method only: the Authorization header carrying
"Bearer <token>", where the token was issued by POST /api/v1/auth/login.

get_current_user() raises HTTP 401 with the failure's generic code/message.

Layer rule: auth/dependencies.py may import from fastapi (for Request and
HTTPException) because this module is part of the FastAPI dependency
injection system. It does not import from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.authenticator import Authenticator
from auth.errors import AuthenticationError
from auth.models import User


def get_authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    try:
        return get_authenticator(request).authenticate_request(request.headers.get("Authorization", ""))
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=401,
            detail={"code": exc.code, "message": exc.message},
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
