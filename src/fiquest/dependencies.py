"""Shared FastAPI dependencies."""

from fastapi import Depends, Header, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fiquest.database import get_session as _get_session
from fiquest.db.models import User

get_db = _get_session


async def get_current_user(
    x_user_id: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> User:
    """Resolve the authenticated user forwarded by the gateway in X-User-Id.

    Raises 401 when the header is missing, malformed or names no user.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    try:
        user_id = int(x_user_id)
    except ValueError as e:
        raise HTTPException(status_code=401, detail="Invalid X-User-Id header") from e

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user
