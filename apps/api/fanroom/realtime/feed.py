from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Literal

from fanroom.config import settings

logger = logging.getLogger(__name__)

ChangeType = Literal["INSERT", "UPDATE", "DELETE"]


@dataclass(frozen=True)
class ChangeEvent:
  table: str
  type: ChangeType
  record: dict[str, Any] = field(default_factory=dict)


class Channel:
  """
  One subscriber's view of a table, narrowed by an equality filter.

  Events are buffered in a bounded queue. When the buffer is full new events
  are dropped: every consumer treats an event as "something changed" and
  re-reads the store, so one pending event is as good as many.
  """

  def __init__(self, table: str, filter: dict[str, Any] | None = None, *, maxsize: int = 0) -> None:
    self.table = table
    self.filter = dict(filter or {})
    self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=maxsize)
    self._closed = False

  @property
  def closed(self) -> bool:
    return self._closed

  def matches(self, event: ChangeEvent) -> bool:
    if event.table != self.table:
      return False
    return all(event.record.get(k) == v for k, v in self.filter.items())

  def offer(self, event: ChangeEvent) -> bool:
    if self._closed:
      return False
    try:
      self._queue.put_nowait(event)
    except asyncio.QueueFull:
      return False
    return True

  async def get(self) -> ChangeEvent:
    return await self._queue.get()

  def get_nowait(self) -> ChangeEvent | None:
    try:
      return self._queue.get_nowait()
    except asyncio.QueueEmpty:
      return None

  def pending(self) -> int:
    return self._queue.qsize()

  def close(self) -> None:
    self._closed = True


class ChangeFeed:
  def __init__(self, *, queue_size: int = 0) -> None:
    self._lock = Lock()
    self._channels: list[Channel] = []
    self._queue_size = queue_size

  def subscribe(self, table: str, *, filter: dict[str, Any] | None = None) -> Channel:
    ch = Channel(table, filter, maxsize=self._queue_size)
    with self._lock:
      self._channels.append(ch)
    logger.debug("change feed subscribe table=%s filter=%s", table, ch.filter)
    return ch

  def remove_channel(self, channel: Channel) -> None:
    channel.close()
    with self._lock:
      self._channels = [c for c in self._channels if c is not channel]

  def publish(self, event: ChangeEvent) -> int:
    with self._lock:
      targets = [c for c in self._channels if c.matches(event)]
    delivered = 0
    for ch in targets:
      if ch.offer(event):
        delivered += 1
    return delivered

  def publish_rows(self, table: str, type: ChangeType, records: list[dict[str, Any]]) -> int:
    return sum(self.publish(ChangeEvent(table=table, type=type, record=r)) for r in records)

  def channel_count(self, table: str | None = None) -> int:
    with self._lock:
      if table is None:
        return len(self._channels)
      return sum(1 for c in self._channels if c.table == table)

  def reset(self) -> None:
    with self._lock:
      channels, self._channels = self._channels, []
    for ch in channels:
      ch.close()


change_feed = ChangeFeed(queue_size=settings.change_feed_queue_size)
