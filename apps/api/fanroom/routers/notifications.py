from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fanroom.audit import write_audit
from fanroom.db import SessionLocal
from fanroom.deps import get_current_user, get_db, user_for_session
from fanroom.models import Notification, User
from fanroom.notifications.rooms import is_notification_type, room_for_type
from fanroom.notifications.unread import (
  UnreadAggregator,
  UnreadSnapshot,
  load_unread_counts,
  mark_all_read,
  mark_notifications_read,
  mark_room_read,
)
from fanroom.realtime.feed import Channel, change_feed
from fanroom.schemas import (
  MarkReadIn,
  MarkReadOut,
  MarkRoomReadIn,
  MarkRoomReadOut,
  NotificationOut,
  UnreadCountsOut,
)
from fanroom.security import SESSION_COOKIE_NAME

router = APIRouter(prefix="/notifications", tags=["notifications"])
logger = logging.getLogger(__name__)


def _unread_out(snapshot: UnreadSnapshot) -> UnreadCountsOut:
  return UnreadCountsOut(**snapshot.to_dict())


@router.get("", response_model=list[NotificationOut])
async def list_notifications(
  unreadOnly: bool = False,
  limit: int = 50,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[NotificationOut]:
  limit = max(1, min(int(limit), 200))
  stmt = select(Notification).where(Notification.user_id == actor.id)
  if unreadOnly:
    stmt = stmt.where(Notification.read.is_(False))
  stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)
  res = await db.execute(stmt)
  out: list[NotificationOut] = []
  for n in res.scalars().all():
    out.append(
      NotificationOut(
        id=n.id,
        communityId=n.community_id,
        type=n.type,
        room=room_for_type(n.type) if is_notification_type(n.type) else None,
        referenceId=n.reference_id,
        message=n.message,
        read=bool(n.read),
        createdAt=n.created_at,
        updatedAt=n.updated_at,
      )
    )
  return out


@router.get("/unread", response_model=UnreadCountsOut)
async def get_unread_counts(
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> UnreadCountsOut:
  return _unread_out(await load_unread_counts(db, actor.id))


@router.post("/unread/mark-room-read", response_model=MarkRoomReadOut)
async def mark_room_as_read(
  payload: MarkRoomReadIn,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> MarkRoomReadOut:
  actor_id = actor.id
  updated = await mark_room_read(db, user_id=actor_id, community_id=payload.communityId, room=payload.room)
  if updated:
    await write_audit(
      db,
      event_type="notifications.room.read",
      entity_type="Notification",
      entity_id=None,
      community_id=payload.communityId,
      actor_id=actor_id,
      payload={"room": payload.room, "count": updated},
    )
    await db.commit()
  return MarkRoomReadOut(ok=True, updated=updated, unread=_unread_out(await load_unread_counts(db, actor_id)))


@router.post("/mark-read", response_model=MarkReadOut)
async def mark_read(
  payload: MarkReadIn,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> MarkReadOut:
  updated = await mark_notifications_read(db, user_id=actor.id, ids=payload.ids)
  return MarkReadOut(ok=True, updated=updated)


@router.post("/mark-all-read", response_model=MarkReadOut)
async def mark_read_all(
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> MarkReadOut:
  actor_id = actor.id
  updated = await mark_all_read(db, user_id=actor_id)
  await write_audit(db, event_type="notifications.read_all", entity_type="Notification", entity_id=None, actor_id=actor_id, payload={"count": updated})
  await db.commit()
  return MarkReadOut(ok=True, updated=updated)


async def _serve_commands(websocket: WebSocket, aggregator: UnreadAggregator) -> None:
  while True:
    msg = await websocket.receive_json()
    action = msg.get("action") if isinstance(msg, dict) else None
    if action == "markRoomRead":
      await aggregator.mark_room_as_read(str(msg.get("communityId") or ""), str(msg.get("room") or ""))
    elif action == "refresh":
      await aggregator.load_unread_counts()
    else:
      await websocket.send_json({"type": "error", "detail": f"Unknown action: {action!r}"})


async def _wait_for_sign_out(channel: Channel) -> None:
  while True:
    event = await channel.get()
    if event.type == "DELETE":
      return


@router.websocket("/unread/stream")
async def unread_stream(websocket: WebSocket) -> None:
  """
  Live unread badge counts for the session's user.

  Pushes {"type": "unread", "totalUnread", "unreadCounts"} on connect and after
  every change. Accepts {"action": "markRoomRead", "communityId", "room"} and
  {"action": "refresh"}. Closes when the session signs out.
  """
  session_id = websocket.cookies.get(SESSION_COOKIE_NAME)
  if not session_id:
    await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
    return

  # Listen before resolving so a sign-out racing the handshake is still seen.
  sign_out = change_feed.subscribe("sessions", filter={"id": session_id})
  try:
    async with SessionLocal() as db:
      user = await user_for_session(db, session_id)
      user_id = user.id if user else None
  except Exception:
    change_feed.remove_channel(sign_out)
    raise
  if not user_id:
    change_feed.remove_channel(sign_out)
    await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
    return

  await websocket.accept()

  async def push(snapshot: UnreadSnapshot) -> None:
    await websocket.send_json({"type": "unread", **snapshot.to_dict()})

  aggregator = UnreadAggregator(on_change=push)
  tasks: list[asyncio.Task] = []
  try:
    await aggregator.start(user_id)
    tasks = [
      asyncio.create_task(_serve_commands(websocket, aggregator)),
      asyncio.create_task(_wait_for_sign_out(sign_out)),
    ]
    done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    for t in done:
      exc = t.exception()
      if exc is not None and not isinstance(exc, WebSocketDisconnect):
        logger.warning("unread stream ended with error user=%s: %s", user_id, exc)
    if tasks[1] in done:
      await websocket.close(code=status.WS_1000_NORMAL_CLOSURE)
  except WebSocketDisconnect:
    pass
  finally:
    for t in tasks:
      t.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    change_feed.remove_channel(sign_out)
    await aggregator.stop()
    logger.info("unread stream closed user=%s", user_id)
