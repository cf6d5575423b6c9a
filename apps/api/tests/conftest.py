from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{Path(tempfile.gettempdir()) / 'fanroom_test.db'}")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete, select

from fanroom.config import settings
from fanroom.db import SessionLocal, create_schema, engine
from fanroom.main import app
from fanroom.metrics import runtime_metrics
from fanroom.models import (
  Announcement,
  AuditEvent,
  Community,
  Drop,
  Notification,
  Post,
  Session,
  Subscription,
  User,
)
from fanroom.realtime.feed import change_feed
from fanroom.security import hash_password

PASSWORD = "fanroom1234"
_PASSWORD_HASH: str | None = None


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  change_feed.reset()
  runtime_metrics.reset()
  await create_schema()
  async with SessionLocal() as db:
    await db.execute(delete(AuditEvent))
    await db.execute(delete(Notification))
    await db.execute(delete(Announcement))
    await db.execute(delete(Drop))
    await db.execute(delete(Post))
    await db.execute(delete(Subscription))
    await db.execute(delete(Community))
    await db.execute(delete(Session))
    await db.execute(delete(User))
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests(anyio_backend) -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. fanroom_test)."
    )
  await _reset_db()
  yield
  await _reset_db()


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


def _password_hash() -> str:
  global _PASSWORD_HASH
  if _PASSWORD_HASH is None:
    _PASSWORD_HASH = hash_password(PASSWORD)
  return _PASSWORD_HASH


async def create_user(email: str, *, role: str = "fan", username: str | None = None) -> str:
  async with SessionLocal() as db:
    u = User(email=email, username=username or email.split("@")[0], role=role, password_hash=_password_hash())
    db.add(u)
    await db.commit()
    return u.id


async def create_community(artist_id: str, *, name: str = "Community") -> str:
  async with SessionLocal() as db:
    c = Community(artist_id=artist_id, name=name)
    db.add(c)
    await db.commit()
    return c.id


async def subscribe(user_id: str, community_id: str, artist_id: str, *, status: str = "active") -> None:
  async with SessionLocal() as db:
    db.add(Subscription(user_id=user_id, artist_id=artist_id, community_id=community_id, status=status))
    await db.commit()


async def add_notification(
  user_id: str,
  community_id: str | None,
  type: str,
  *,
  read: bool = False,
  message: str = "hello",
) -> str:
  async with SessionLocal() as db:
    n = Notification(user_id=user_id, community_id=community_id, type=type, message=message, read=read)
    db.add(n)
    await db.commit()
    return n.id


async def notifications_for(user_id: str) -> list[Notification]:
  async with SessionLocal() as db:
    res = await db.execute(select(Notification).where(Notification.user_id == user_id).order_by(Notification.created_at.asc()))
    return list(res.scalars().all())


async def login(client: AsyncClient, email: str, password: str = PASSWORD) -> dict:
  res = await client.post("/auth/login", json={"email": email, "password": password})
  assert res.status_code == 200, res.text
  cookie = res.headers.get("set-cookie")
  assert cookie and "fr_session=" in cookie
  return res.json()
