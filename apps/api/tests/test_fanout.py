from __future__ import annotations

import pytest

from fanroom.db import SessionLocal
from fanroom.metrics import runtime_metrics
from fanroom.notifications import fanout
from fanroom.notifications.fanout import fan_out_notification
from fanroom.realtime.feed import change_feed
from conftest import create_community, create_user, notifications_for, subscribe


async def _community_with_fans(*fan_emails: str) -> tuple[str, str, list[str]]:
  artist_id = await create_user("a1@fanroom.test", role="artist", username="Nova")
  community_id = await create_community(artist_id, name="C1")
  fans = []
  for email in fan_emails:
    uid = await create_user(email)
    await subscribe(uid, community_id, artist_id)
    fans.append(uid)
  return artist_id, community_id, fans


@pytest.mark.anyio
async def test_fan_out_creates_one_unread_row_per_subscriber():
  artist_id, community_id, fans = await _community_with_fans("u1@fanroom.test", "u2@fanroom.test", "u3@fanroom.test")

  async with SessionLocal() as db:
    result = await fan_out_notification(
      db, community_id=community_id, type="post", message="Nova just posted in Lounge", reference_id="p1", actor_id=artist_id
    )

  assert (result.recipients, result.created, result.failed) == (3, 3, 0)
  for uid in fans:
    rows = await notifications_for(uid)
    assert len(rows) == 1
    n = rows[0]
    assert n.type == "post"
    assert n.read is False
    assert n.community_id == community_id
    assert n.reference_id == "p1"
    assert n.message == "Nova just posted in Lounge"
  assert await notifications_for(artist_id) == []


@pytest.mark.anyio
async def test_artist_subscribed_to_own_community_is_not_notified():
  artist_id, community_id, fans = await _community_with_fans("u1@fanroom.test", "u2@fanroom.test")
  await subscribe(artist_id, community_id, artist_id)

  async with SessionLocal() as db:
    result = await fan_out_notification(db, community_id=community_id, type="post", message="m", actor_id=artist_id)

  assert result.created == 2
  assert await notifications_for(artist_id) == []
  for uid in fans:
    assert len(await notifications_for(uid)) == 1


@pytest.mark.anyio
async def test_no_active_subscribers_writes_nothing():
  artist_id = await create_user("a2@fanroom.test", role="artist")
  community_id = await create_community(artist_id, name="C2")
  lapsed = await create_user("lapsed@fanroom.test")
  await subscribe(lapsed, community_id, artist_id, status="canceled")

  async with SessionLocal() as db:
    result = await fan_out_notification(db, community_id=community_id, type="announcement", message="m", actor_id=artist_id)

  assert (result.recipients, result.created, result.failed) == (0, 0, 0)
  assert await notifications_for(lapsed) == []


@pytest.mark.anyio
async def test_only_artist_subscribed_writes_nothing():
  artist_id = await create_user("a3@fanroom.test", role="artist")
  community_id = await create_community(artist_id)
  await subscribe(artist_id, community_id, artist_id)

  async with SessionLocal() as db:
    result = await fan_out_notification(db, community_id=community_id, type="drop_music", message="m", actor_id=artist_id)

  assert result.created == 0
  assert await notifications_for(artist_id) == []


@pytest.mark.anyio
async def test_duplicate_subscriptions_notify_once():
  artist_id, community_id, fans = await _community_with_fans("u1@fanroom.test")
  await subscribe(fans[0], community_id, artist_id)

  async with SessionLocal() as db:
    result = await fan_out_notification(db, community_id=community_id, type="post", message="m", actor_id=artist_id)

  assert result.created == 1
  assert len(await notifications_for(fans[0])) == 1


@pytest.mark.anyio
async def test_unknown_type_is_rejected_before_any_write():
  artist_id, community_id, fans = await _community_with_fans("u1@fanroom.test")
  async with SessionLocal() as db:
    with pytest.raises(ValueError):
      await fan_out_notification(db, community_id=community_id, type="livestream", message="m", actor_id=artist_id)
  assert await notifications_for(fans[0]) == []


@pytest.mark.anyio
async def test_subscriber_lookup_failure_is_contained(monkeypatch):
  artist_id, community_id, fans = await _community_with_fans("u1@fanroom.test")

  async def _boom(db, community_id):
    raise RuntimeError("store unavailable")

  monkeypatch.setattr(fanout, "active_subscriber_ids", _boom)
  async with SessionLocal() as db:
    result = await fan_out_notification(db, community_id=community_id, type="post", message="m", actor_id=artist_id)

  assert (result.recipients, result.created) == (0, 0)
  assert await notifications_for(fans[0]) == []


@pytest.mark.anyio
async def test_failed_batch_does_not_stop_later_batches(monkeypatch):
  artist_id, community_id, fans = await _community_with_fans("u1@fanroom.test", "u2@fanroom.test", "u3@fanroom.test")

  async with SessionLocal() as db:
    real_commit = db.commit
    calls: list[int] = []

    async def flaky_commit() -> None:
      calls.append(1)
      if len(calls) == 1:
        raise RuntimeError("write rejected")
      await real_commit()

    monkeypatch.setattr(db, "commit", flaky_commit)
    result = await fan_out_notification(db, community_id=community_id, type="post", message="m", actor_id=artist_id, batch_size=1)

  assert (result.recipients, result.created, result.failed) == (3, 2, 1)
  delivered = [len(await notifications_for(uid)) for uid in fans]
  assert sorted(delivered) == [0, 1, 1]
  snap = runtime_metrics.snapshot()
  assert snap["notificationsCreated"] == 2
  assert snap["notificationsFailed"] == 1


@pytest.mark.anyio
async def test_fan_out_publishes_insert_events_per_recipient():
  artist_id, community_id, fans = await _community_with_fans("u1@fanroom.test", "u2@fanroom.test")
  ch = change_feed.subscribe("notifications", filter={"user_id": fans[0]})

  async with SessionLocal() as db:
    await fan_out_notification(db, community_id=community_id, type="drop_merch", message="m", actor_id=artist_id)

  ev = ch.get_nowait()
  assert ev is not None
  assert ev.type == "INSERT"
  assert ev.record["user_id"] == fans[0]
  assert ev.record["type"] == "drop_merch"
  assert ch.get_nowait() is None
