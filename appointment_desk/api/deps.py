from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_desk.core.db import get_session
from appointment_desk.core.security import decode_access_token
from appointment_desk.models.user import User

security = HTTPBearer(auto_error=False)


def refresh_header(x_refresh_token: str | None = Header(default=None, alias="X-Refresh-Token")) -> str | None:
    """Extract X-Refresh-Token header for logout/refresh endpoints."""
    return x_refresh_token


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Missing or invalid authorization header")
    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        raise _unauthorized("Invalid or expired token")
    try:
        uid = int(user_id)
    except ValueError:
        raise _unauthorized("Invalid token")
    user = await session.get(User, uid)
    if not user:
        raise _unauthorized("User not found")
    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required",
        )
    return current_user
