from __future__ import annotations

import pytest

from fanroom.db import SessionLocal
from fanroom.notifications.unread import (
  UnreadSnapshot,
  build_unread_snapshot,
  load_unread_counts,
  mark_all_read,
  mark_notifications_read,
  mark_room_read,
)
from fanroom.realtime.feed import change_feed
from conftest import add_notification, create_community, create_user, notifications_for


def _assert_consistent(snap: UnreadSnapshot) -> None:
  assert snap.total_unread == sum(c.total for c in snap.unread_counts.values())
  for c in snap.unread_counts.values():
    assert c.total == sum(c.by_room.values())


def test_build_snapshot_groups_by_community_and_room():
  snap = build_unread_snapshot(
    [
      ("c1", "post"),
      ("c1", "post"),
      ("c1", "drop_music"),
      ("c2", "announcement"),
      (None, "post"),
      ("c2", "livestream"),
    ]
  )
  assert snap.to_dict() == {
    "totalUnread": 5,
    "unreadCounts": {
      "c1": {"total": 3, "byRoom": {"lounge": 2, "music-drop": 1}},
      "c2": {"total": 2, "byRoom": {"announcements": 1, "lounge": 1}},
    },
  }
  _assert_consistent(snap)


def test_empty_snapshot():
  assert UnreadSnapshot.empty().to_dict() == {"totalUnread": 0, "unreadCounts": {}}
  assert build_unread_snapshot([]).total_unread == 0


async def _user_with_unread() -> tuple[str, str]:
  artist_id = await create_user("artist@fanroom.test", role="artist")
  community_id = await create_community(artist_id, name="C1")
  u1 = await create_user("u1@fanroom.test")
  await add_notification(u1, community_id, "post")
  await add_notification(u1, community_id, "post")
  await add_notification(u1, community_id, "drop_music")
  return u1, community_id


@pytest.mark.anyio
async def test_load_counts_for_user():
  u1, c1 = await _user_with_unread()
  await add_notification(u1, c1, "post", read=True)
  other = await create_user("u2@fanroom.test")
  await add_notification(other, c1, "post")

  async with SessionLocal() as db:
    snap = await load_unread_counts(db, u1)

  assert snap.to_dict() == {"totalUnread": 3, "unreadCounts": {c1: {"total": 3, "byRoom": {"lounge": 2, "music-drop": 1}}}}
  _assert_consistent(snap)


@pytest.mark.anyio
async def test_load_counts_without_user_is_empty():
  await _user_with_unread()
  async with SessionLocal() as db:
    snap = await load_unread_counts(db, None)
  assert snap == UnreadSnapshot.empty()


@pytest.mark.anyio
async def test_mark_room_read_clears_only_that_room():
  u1, c1 = await _user_with_unread()

  async with SessionLocal() as db:
    updated = await mark_room_read(db, user_id=u1, community_id=c1, room="lounge")
    snap = await load_unread_counts(db, u1)

  assert updated == 2
  assert snap.to_dict() == {"totalUnread": 1, "unreadCounts": {c1: {"total": 1, "byRoom": {"music-drop": 1}}}}


@pytest.mark.anyio
async def test_mark_room_read_is_idempotent():
  u1, c1 = await _user_with_unread()

  async with SessionLocal() as db:
    first = await mark_room_read(db, user_id=u1, community_id=c1, room="lounge")
    after_first = await load_unread_counts(db, u1)
    second = await mark_room_read(db, user_id=u1, community_id=c1, room="lounge")
    after_second = await load_unread_counts(db, u1)

  assert (first, second) == (2, 0)
  assert after_first == after_second


@pytest.mark.anyio
async def test_mark_room_with_nothing_unread_changes_nothing():
  u1, c1 = await _user_with_unread()
  async with SessionLocal() as db:
    before = await load_unread_counts(db, u1)
    updated = await mark_room_read(db, user_id=u1, community_id=c1, room="merch-drop")
    after = await load_unread_counts(db, u1)
  assert updated == 0
  assert before == after


@pytest.mark.anyio
async def test_mark_room_read_is_scoped_to_user_and_community():
  u1, c1 = await _user_with_unread()
  artist_id = await create_user("artist2@fanroom.test", role="artist")
  c2 = await create_community(artist_id, name="C2")
  await add_notification(u1, c2, "post")
  u2 = await create_user("u2@fanroom.test")
  await add_notification(u2, c1, "post")

  async with SessionLocal() as db:
    await mark_room_read(db, user_id=u1, community_id=c1, room="lounge")
    mine = await load_unread_counts(db, u1)
    theirs = await load_unread_counts(db, u2)

  assert mine.room_count(c2, "lounge") == 1
  assert mine.room_count(c1, "lounge") == 0
  assert theirs.room_count(c1, "lounge") == 1


@pytest.mark.anyio
async def test_mark_room_read_rejects_unknown_room():
  u1, c1 = await _user_with_unread()
  async with SessionLocal() as db:
    with pytest.raises(ValueError):
      await mark_room_read(db, user_id=u1, community_id=c1, room="backstage")


@pytest.mark.anyio
async def test_read_state_never_reverts():
  u1, c1 = await _user_with_unread()
  async with SessionLocal() as db:
    await mark_all_read(db, user_id=u1)
    await mark_room_read(db, user_id=u1, community_id=c1, room="lounge")
    await mark_all_read(db, user_id=u1)
  rows = await notifications_for(u1)
  assert rows and all(n.read is True for n in rows)


@pytest.mark.anyio
async def test_mark_notifications_read_ignores_other_users_rows():
  u1, c1 = await _user_with_unread()
  u2 = await create_user("u2@fanroom.test")
  foreign = await add_notification(u2, c1, "post")
  own = (await notifications_for(u1))[0].id

  async with SessionLocal() as db:
    updated = await mark_notifications_read(db, user_id=u1, ids=[own, foreign])
    assert await mark_notifications_read(db, user_id=u1, ids=[]) == 0

  assert updated == 1
  assert all(n.read is False for n in await notifications_for(u2))


@pytest.mark.anyio
async def test_mark_read_publishes_update_events():
  u1, c1 = await _user_with_unread()
  ch = change_feed.subscribe("notifications", filter={"user_id": u1})

  async with SessionLocal() as db:
    await mark_room_read(db, user_id=u1, community_id=c1, room="music-drop")

  ev = ch.get_nowait()
  assert ev is not None
  assert (ev.type, ev.record["type"], ev.record["read"]) == ("UPDATE", "drop_music", True)
  assert ch.get_nowait() is None
