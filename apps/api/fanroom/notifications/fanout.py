from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fanroom.config import settings
from fanroom.metrics import runtime_metrics
from fanroom.models import Notification, Subscription
from fanroom.notifications.rooms import is_notification_type
from fanroom.realtime.feed import change_feed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FanOutResult:
  recipients: int = 0
  created: int = 0
  failed: int = 0


def notification_record(n: Notification) -> dict:
  return {
    "id": n.id,
    "user_id": n.user_id,
    "community_id": n.community_id,
    "type": n.type,
    "reference_id": n.reference_id,
    "read": bool(n.read),
  }


def _batches(items: list[str], size: int) -> Iterator[list[str]]:
  for i in range(0, len(items), size):
    yield items[i : i + size]


async def active_subscriber_ids(db: AsyncSession, community_id: str) -> list[str]:
  res = await db.execute(
    select(Subscription.user_id).where(Subscription.community_id == community_id, Subscription.status == "active")
  )
  return [row.user_id for row in res.all()]


async def fan_out_notification(
  db: AsyncSession,
  *,
  community_id: str,
  type: str,
  message: str,
  reference_id: str | None = None,
  actor_id: str | None = None,
  batch_size: int | None = None,
) -> FanOutResult:
  """
  Create one unread notification per active subscriber of a community.

  - The actor (the posting artist) is never a recipient, even when subscribed.
  - Zero recipients is a normal outcome: nothing is written.
  - Rows are written in transactional batches. A failed batch is rolled back
    and logged, and the remaining batches are still attempted; nothing is
    retried. Delivery is best-effort, at most once per recipient.
  - Never raises for store failures: the originating content is already
    committed and must not be failed by its notifications.
  """
  if not is_notification_type(type):
    raise ValueError(f"Unknown notification type: {type!r}")

  try:
    subscriber_ids = await active_subscriber_ids(db, community_id)
  except Exception:
    logger.exception("fan-out aborted: subscriber lookup failed community=%s type=%s", community_id, type)
    await db.rollback()
    return FanOutResult()

  if not subscriber_ids:
    logger.info("fan-out skipped: no active subscribers community=%s type=%s", community_id, type)
    return FanOutResult()

  recipients = list(dict.fromkeys(uid for uid in subscriber_ids if uid != actor_id))
  if not recipients:
    logger.info("fan-out skipped: only the actor is subscribed community=%s type=%s", community_id, type)
    return FanOutResult()

  size = max(1, int(batch_size or settings.fanout_batch_size))
  created = 0
  failed = 0
  for batch in _batches(recipients, size):
    rows = [
      Notification(
        user_id=uid,
        community_id=community_id,
        type=type,
        message=message,
        reference_id=reference_id,
        read=False,
      )
      for uid in batch
    ]
    try:
      db.add_all(rows)
      await db.commit()
    except Exception:
      await db.rollback()
      failed += len(batch)
      logger.exception("fan-out batch failed community=%s type=%s size=%d", community_id, type, len(batch))
      continue
    created += len(rows)
    change_feed.publish_rows("notifications", "INSERT", [notification_record(n) for n in rows])

  runtime_metrics.observe_fanout(created=created, failed=failed)
  logger.info(
    "fan-out done community=%s type=%s recipients=%d created=%d failed=%d",
    community_id,
    type,
    len(recipients),
    created,
    failed,
  )
  return FanOutResult(recipients=len(recipients), created=created, failed=failed)
