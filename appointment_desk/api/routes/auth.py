import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_desk.api.deps import get_current_user, refresh_header
from appointment_desk.api.schemas.auth import (
    LoginRequest,
    RefreshRequest,
    SignupRequest,
    TokenPair,
)
from appointment_desk.core.db import get_session
from appointment_desk.core.security import decode_refresh_token
from appointment_desk.models.user import User, UserPublic
from appointment_desk.services.auth_service import (
    login_user,
    refresh_tokens,
    revoke_refresh_token,
    signup_user,
    user_to_public,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_pair(bundle) -> TokenPair:
    _, access, refresh, expires_in = bundle
    return TokenPair(access_token=access, refresh_token=refresh, expires_in=expires_in)


@router.post("/login", response_model=TokenPair)
async def login(
    body: LoginRequest,
    session: AsyncSession = Depends(get_session),
) -> TokenPair:
    bundle = await login_user(session, body.email, body.password)
    if not bundle:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    return _token_pair(bundle)


@router.post("/signup", response_model=TokenPair)
async def signup(
    body: SignupRequest,
    session: AsyncSession = Depends(get_session),
) -> TokenPair:
    bundle = await signup_user(session, body.email, body.password, body.full_name)
    if not bundle:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )
    logger.info("New account %s (admin=%s)", bundle[0].email, bundle[0].is_admin)
    return _token_pair(bundle)


@router.post("/refresh", response_model=TokenPair)
async def refresh(
    session: AsyncSession = Depends(get_session),
    x_refresh_token: str | None = Depends(refresh_header),
    body: RefreshRequest | None = None,
) -> TokenPair:
    token = x_refresh_token or (body.refresh_token if body else None)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token required (header X-Refresh-Token or body refresh_token)",
        )
    bundle = await refresh_tokens(session, token)
    if not bundle:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )
    return _token_pair(bundle)


@router.post("/logout")
async def logout(
    session: AsyncSession = Depends(get_session),
    x_refresh_token: str | None = Depends(refresh_header),
    body: RefreshRequest | None = None,
) -> dict:
    token = x_refresh_token or (body.refresh_token if body else None)
    if token:
        _, jti = decode_refresh_token(token)
        if jti:
            await revoke_refresh_token(session, jti)
    return {"message": "Logged out"}


@router.get("/me", response_model=UserPublic)
async def me(current_user: User = Depends(get_current_user)) -> UserPublic:
    return user_to_public(current_user)
