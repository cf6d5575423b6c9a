from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fanroom.db import SessionLocal
from fanroom.models import Notification, utcnow
from fanroom.notifications.rooms import room_for_type, type_for_room
from fanroom.realtime.feed import ChangeEvent, ChangeFeed, Channel, change_feed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommunityUnread:
  total: int = 0
  by_room: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class UnreadSnapshot:
  total_unread: int = 0
  unread_counts: dict[str, CommunityUnread] = field(default_factory=dict)

  @classmethod
  def empty(cls) -> UnreadSnapshot:
    return cls()

  def room_count(self, community_id: str, room: str) -> int:
    c = self.unread_counts.get(community_id)
    return c.by_room.get(room, 0) if c else 0

  def to_dict(self) -> dict[str, Any]:
    return {
      "totalUnread": self.total_unread,
      "unreadCounts": {
        cid: {"total": c.total, "byRoom": dict(c.by_room)} for cid, c in self.unread_counts.items()
      },
    }


def build_unread_snapshot(rows: Iterable[tuple[str | None, str | None]]) -> UnreadSnapshot:
  """Group (community_id, type) rows into per-community, per-room counts."""
  totals: dict[str, int] = {}
  rooms: dict[str, dict[str, int]] = {}
  total = 0
  for community_id, notification_type in rows:
    if not community_id:
      continue
    room = room_for_type(notification_type)
    by_room = rooms.setdefault(community_id, {})
    by_room[room] = by_room.get(room, 0) + 1
    totals[community_id] = totals.get(community_id, 0) + 1
    total += 1
  return UnreadSnapshot(
    total_unread=total,
    unread_counts={cid: CommunityUnread(total=totals[cid], by_room=rooms[cid]) for cid in totals},
  )


async def load_unread_counts(db: AsyncSession, user_id: str | None) -> UnreadSnapshot:
  if not user_id:
    return UnreadSnapshot.empty()
  # reference_id is selected for deep-linking consumers; counting ignores it.
  res = await db.execute(
    select(Notification.community_id, Notification.type, Notification.reference_id).where(
      Notification.user_id == user_id, Notification.read.is_(False)
    )
  )
  return build_unread_snapshot((row.community_id, row.type) for row in res.all())


async def _mark_read(db: AsyncSession, *, user_id: str, conditions: list, feed: ChangeFeed | None = None) -> int:
  # read only ever flips false -> true; rows already read are never touched.
  stmt = (
    update(Notification)
    .where(Notification.user_id == user_id, Notification.read.is_(False), *conditions)
    .values(read=True, updated_at=utcnow())
    .returning(Notification.id, Notification.community_id, Notification.type, Notification.reference_id)
    .execution_options(synchronize_session=False)
  )
  res = await db.execute(stmt)
  rows = res.all()
  await db.commit()
  if rows:
    (feed or change_feed).publish_rows(
      "notifications",
      "UPDATE",
      [
        {
          "id": r.id,
          "user_id": user_id,
          "community_id": r.community_id,
          "type": r.type,
          "reference_id": r.reference_id,
          "read": True,
        }
        for r in rows
      ],
    )
  return len(rows)


async def mark_room_read(db: AsyncSession, *, user_id: str, community_id: str, room: str) -> int:
  """Mark the user's unread notifications for one community room as read. Idempotent."""
  notification_type = type_for_room(room)
  return await _mark_read(
    db,
    user_id=user_id,
    conditions=[Notification.community_id == community_id, Notification.type == notification_type],
  )


async def mark_all_read(db: AsyncSession, *, user_id: str) -> int:
  return await _mark_read(db, user_id=user_id, conditions=[])


async def mark_notifications_read(db: AsyncSession, *, user_id: str, ids: list[str]) -> int:
  if not ids:
    return 0
  return await _mark_read(db, user_id=user_id, conditions=[Notification.id.in_(ids)])


OnChange = Callable[[UnreadSnapshot], Awaitable[None]]


class UnreadAggregator:
  """
  Live unread counts for one signed-in user.

  Owns its snapshot, one change-feed channel filtered to the bound user and the
  task listening on it. The snapshot is only ever replaced whole by a load.
  Any notification event triggers a full reload rather than a local patch.

  Usage:
    async with UnreadAggregator(on_change=push) as agg:
      await agg.start(user_id)
      ...
  """

  def __init__(
    self,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    feed: ChangeFeed | None = None,
    on_change: OnChange | None = None,
  ) -> None:
    self._session_factory = session_factory or SessionLocal
    self._feed = feed or change_feed
    self._on_change = on_change
    self._user_id: str | None = None
    self._snapshot = UnreadSnapshot.empty()
    self._channel: Channel | None = None
    self._listener: asyncio.Task | None = None
    self._load_seq = 0

  @property
  def user_id(self) -> str | None:
    return self._user_id

  @property
  def snapshot(self) -> UnreadSnapshot:
    return self._snapshot

  @property
  def running(self) -> bool:
    return self._listener is not None and not self._listener.done()

  async def __aenter__(self) -> UnreadAggregator:
    return self

  async def __aexit__(self, *exc: object) -> None:
    await self.stop()

  async def start(self, user_id: str | None) -> UnreadSnapshot:
    if user_id and user_id == self._user_id and self.running:
      return self._snapshot
    await self.stop()
    if not user_id:
      await self._emit(self._snapshot)
      return self._snapshot

    self._user_id = user_id
    self._channel = self._feed.subscribe("notifications", filter={"user_id": user_id})
    self._listener = asyncio.create_task(self._listen(self._channel, user_id))
    return await self.load_unread_counts()

  async def stop(self) -> None:
    listener, self._listener = self._listener, None
    channel, self._channel = self._channel, None
    self._user_id = None
    self._snapshot = UnreadSnapshot.empty()
    # Any load still in flight belongs to the old identity.
    self._load_seq += 1
    if channel is not None:
      self._feed.remove_channel(channel)
    if listener is not None and listener is not asyncio.current_task():
      listener.cancel()
      await asyncio.gather(listener, return_exceptions=True)

  async def load_unread_counts(self) -> UnreadSnapshot:
    self._load_seq += 1
    seq = self._load_seq
    user_id = self._user_id
    if user_id is None:
      self._snapshot = UnreadSnapshot.empty()
      await self._emit(self._snapshot)
      return self._snapshot

    try:
      async with self._session_factory() as db:
        snapshot = await load_unread_counts(db, user_id)
    except Exception:
      logger.exception("unread load failed user=%s; keeping previous counts", user_id)
      return self._snapshot

    if seq != self._load_seq or user_id != self._user_id:
      logger.debug("discarding superseded unread load user=%s seq=%d", user_id, seq)
      return self._snapshot
    self._snapshot = snapshot
    await self._emit(snapshot)
    return snapshot

  async def mark_room_as_read(self, community_id: str, room: str) -> int:
    user_id = self._user_id
    if user_id is None:
      return 0
    updated = 0
    try:
      async with self._session_factory() as db:
        updated = await mark_room_read(db, user_id=user_id, community_id=community_id, room=room)
    except Exception:
      logger.exception("mark room read failed user=%s community=%s room=%s", user_id, community_id, room)
    await self.load_unread_counts()
    return updated

  def _accepts(self, event: ChangeEvent, user_id: str) -> bool:
    return user_id == self._user_id and event.record.get("user_id") == user_id

  async def _listen(self, channel: Channel, user_id: str) -> None:
    while not channel.closed:
      events = [await channel.get()]
      while True:
        extra = channel.get_nowait()
        if extra is None:
          break
        events.append(extra)
      if not any(self._accepts(e, user_id) for e in events):
        logger.debug("ignoring %d change event(s) not addressed to user=%s", len(events), self._user_id)
        continue
      await self.load_unread_counts()

  async def _emit(self, snapshot: UnreadSnapshot) -> None:
    if self._on_change is None:
      return
    try:
      await self._on_change(snapshot)
    except Exception:
      logger.exception("unread on_change callback failed user=%s", self._user_id)
