from __future__ import annotations

import logging

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from fanroom.audit import write_audit
from fanroom.config import settings
from fanroom.deps import get_current_user, get_db
from fanroom.models import Session as DbSession, User
from fanroom.realtime.feed import ChangeEvent, change_feed
from fanroom.schemas import LoginIn, UserOut
from fanroom.security import SESSION_COOKIE_NAME, new_session_expires_at, session_ttl_seconds, verify_password

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _user_out(u: User) -> UserOut:
  return UserOut(id=u.id, email=u.email, username=u.username, role=u.role, avatarUrl=u.avatar_url, active=bool(u.active))


@router.post("/login", response_model=UserOut)
async def login(payload: LoginIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> UserOut:
  normalized_email = (payload.email or "").strip().lower()
  res = await db.execute(select(User).where(User.email == normalized_email))
  u = res.scalar_one_or_none()
  if not u or not verify_password(payload.password, u.password_hash):
    await write_audit(db, event_type="auth.login.failed", entity_type="Auth", entity_id=None, payload={"email": normalized_email})
    await db.commit()
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
  if not bool(u.active):
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User disabled")

  s = DbSession(
    user_id=u.id,
    expires_at=new_session_expires_at(),
    created_ip=request.client.host if request.client else None,
    user_agent=request.headers.get("user-agent"),
  )
  db.add(s)
  await write_audit(db, event_type="auth.login.success", entity_type="User", entity_id=u.id, actor_id=u.id, payload={})
  await db.commit()
  change_feed.publish(ChangeEvent(table="sessions", type="INSERT", record={"id": s.id, "user_id": u.id}))
  logger.info("sign-in user=%s", u.id)

  response.set_cookie(
    key=SESSION_COOKIE_NAME,
    value=s.id,
    httponly=True,
    secure=settings.cookie_secure,
    samesite="lax",
    domain=settings.cookie_domain or None,
    max_age=session_ttl_seconds(),
    path="/",
  )
  return _user_out(u)


@router.post("/logout")
async def logout(
  response: Response,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict:
  await db.execute(delete(DbSession).where(DbSession.id == session_id))
  await write_audit(db, event_type="auth.logout", entity_type="User", entity_id=user.id, actor_id=user.id, payload={})
  await db.commit()
  # Live connections bound to this session tear down on this event.
  change_feed.publish(ChangeEvent(table="sessions", type="DELETE", record={"id": session_id, "user_id": user.id}))
  logger.info("sign-out user=%s", user.id)
  response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")
  return {"ok": True}


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)) -> UserOut:
  return _user_out(user)
