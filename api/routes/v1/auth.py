"""
api/routes/v1/auth.py -- Login, logout and identity endpoints.

Routes:
  POST /api/v1/auth/login   -- email + password; returns a bearer token
  POST /api/v1/auth/logout  -- revokes the presented bearer token; 200
  GET  /api/v1/auth/me      -- current user info (requires auth)

Security:
  Wrong email and wrong password return the same "bad_credentials" error so
  the response does not reveal which emails are registered.
  Cache-Control: no-store on login responses so tokens are not cached.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import LoginRequest, LoginResponse, MeResponse, MessageResponse
from auth.authenticator import Authenticator
from auth.dependencies import get_authenticator, get_current_user
from auth.errors import AuthenticationError, InvalidCredentialsError
from auth.models import User

# Auth policy:
# - POST /api/v1/auth/login:   public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:  needs a well-formed Bearer header; unknown tokens are fine
# - GET  /api/v1/auth/me:      requires auth (get_current_user)
router = APIRouter()


@router.post("/auth/login", response_model=LoginResponse)
def login(body: LoginRequest, authenticator: Authenticator = Depends(get_authenticator)) -> JSONResponse:
    """Authenticate with email and password; return a new bearer token."""
    try:
        token = authenticator.login(body.email, body.password)
    except InvalidCredentialsError as exc:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": exc.code, "message": exc.message}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- token type, not a password
            expires_at=token.expiry,
            user_id=token.user_id,
            email=token.email,
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, authenticator: Authenticator = Depends(get_authenticator)) -> MessageResponse:
    """Revoke the token in the Authorization header. Repeating the call is harmless."""
    try:
        authenticator.logout(request.headers.get("Authorization", ""))
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=401,
            detail={"code": exc.code, "message": exc.message},
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    return MessageResponse(message="Logged out.")


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(
        user_id=current_user.id,
        email=current_user.email,
        first_name=current_user.first_name,
        last_name=current_user.last_name,
    )
