from __future__ import annotations

from datetime import datetime, timezone

from fastapi import Cookie, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fanroom.db import SessionLocal
from fanroom.models import Community, Session as DbSession, User
from fanroom.security import SESSION_COOKIE_NAME, as_utc


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


async def user_for_session(db: AsyncSession, session_id: str | None) -> User | None:
  """Resolve a session cookie to its active user, or None."""
  if not session_id:
    return None
  res = await db.execute(select(DbSession).where(DbSession.id == session_id))
  s = res.scalar_one_or_none()
  if not s or as_utc(s.expires_at) < datetime.now(timezone.utc):
    return None
  ures = await db.execute(select(User).where(User.id == s.user_id))
  u = ures.scalar_one_or_none()
  if not u or not bool(u.active):
    return None
  return u


async def get_current_user(
  db: AsyncSession = Depends(get_db),
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> User:
  if not session_id:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
  u = await user_for_session(db, session_id)
  if not u:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")
  return u


async def require_community_artist(community_id: str, user: User, db: AsyncSession) -> Community:
  res = await db.execute(select(Community).where(Community.id == community_id))
  c = res.scalar_one_or_none()
  if not c:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Community not found")
  if c.artist_id != user.id:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the community artist can post here")
  return c
