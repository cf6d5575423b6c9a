from __future__ import annotations

import asyncio
import logging
import os
import secrets

from sqlalchemy import select

from fanroom.db import SessionLocal, create_schema
from fanroom.models import Community, Subscription, User
from fanroom.security import hash_password

logger = logging.getLogger(__name__)

ARTIST_EMAIL = "artist@fanroom.local"
FAN_EMAILS = ("fan1@fanroom.local", "fan2@fanroom.local")
COMMUNITY_NAME = "Fanroom Demo"


def _bootstrap_password(env_key: str) -> tuple[str, bool]:
  configured = (os.getenv(env_key) or "").strip()
  if configured:
    return configured, False
  return secrets.token_urlsafe(14), True


async def _ensure_user(db, *, email: str, username: str, role: str, password_env: str, boot_lines: list[str]) -> User:
  res = await db.execute(select(User).where(User.email == email))
  u = res.scalar_one_or_none()
  if u:
    return u
  password, generated = _bootstrap_password(password_env)
  u = User(email=email, username=username, role=role, password_hash=hash_password(password))
  db.add(u)
  boot_lines.append(f"{email}={password} (generated={str(generated).lower()})")
  return u


async def seed() -> None:
  """Idempotent demo data: one artist, two fans, one community, active subscriptions."""
  async with SessionLocal() as db:
    boot_lines: list[str] = []
    artist = await _ensure_user(
      db, email=ARTIST_EMAIL, username="Demo Artist", role="artist", password_env="SEED_ARTIST_PASSWORD", boot_lines=boot_lines
    )
    fans = [
      await _ensure_user(
        db, email=email, username=email.split("@")[0], role="fan", password_env="SEED_FAN_PASSWORD", boot_lines=boot_lines
      )
      for email in FAN_EMAILS
    ]
    await db.flush()

    cres = await db.execute(select(Community).where(Community.name == COMMUNITY_NAME, Community.artist_id == artist.id))
    community = cres.scalar_one_or_none()
    if not community:
      community = Community(artist_id=artist.id, name=COMMUNITY_NAME, description="Demo community", subscription_price=500)
      db.add(community)
      await db.flush()

    for fan in fans:
      sres = await db.execute(
        select(Subscription.id).where(Subscription.user_id == fan.id, Subscription.community_id == community.id)
      )
      if sres.scalar_one_or_none() is None:
        db.add(Subscription(user_id=fan.id, artist_id=artist.id, community_id=community.id, status="active"))

    await db.commit()
    for ln in boot_lines:
      logger.info("seeded user %s", ln)


def main() -> None:
  logging.basicConfig(level=logging.INFO)

  async def _run() -> None:
    await create_schema()
    await seed()

  asyncio.run(_run())


if __name__ == "__main__":
  main()
