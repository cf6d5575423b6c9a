from __future__ import annotations

from datetime import datetime, timedelta, timezone

from passlib.context import CryptContext

from fanroom.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SESSION_COOKIE_NAME = "fr_session"


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
  return pwd_context.verify(password, password_hash)


def session_ttl_seconds() -> int:
  return max(1, int(settings.session_ttl_days)) * 86400


def new_session_expires_at() -> datetime:
  return datetime.now(timezone.utc) + timedelta(seconds=session_ttl_seconds())


def as_utc(dt: datetime) -> datetime:
  # SQLite hands back naive datetimes even for timezone-aware columns.
  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)
