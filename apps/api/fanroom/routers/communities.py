from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fanroom.audit import write_audit
from fanroom.deps import get_current_user, get_db, require_community_artist
from fanroom.models import Announcement, Drop, Post, User
from fanroom.notifications.fanout import FanOutResult, fan_out_notification
from fanroom.notifications.rooms import compose_message, drop_type, room_for_type
from fanroom.schemas import AnnouncementCreateIn, ContentOut, DropCreateIn, FanOutOut, PostCreateIn

router = APIRouter(prefix="/communities", tags=["communities"])


async def _notify(db: AsyncSession, *, actor: User, community_id: str, notification_type: str, reference_id: str) -> FanOutResult:
  # Content is committed before this runs; fan-out outcome never changes the response status.
  return await fan_out_notification(
    db,
    community_id=community_id,
    type=notification_type,
    message=compose_message(actor.username, notification_type),
    reference_id=reference_id,
    actor_id=actor.id,
  )


def _content_out(*, item: Post | Drop | Announcement, notification_type: str) -> ContentOut:
  # Built before fan-out: a rolled-back fan-out batch expires every instance in the session.
  return ContentOut(
    id=item.id,
    communityId=item.community_id,
    artistId=item.artist_id,
    room=room_for_type(notification_type),
    createdAt=item.created_at,
    fanOut=FanOutOut(),
  )


def _fan_out_out(result: FanOutResult) -> FanOutOut:
  return FanOutOut(recipients=result.recipients, notified=result.created, failed=result.failed)


@router.post("/{community_id}/posts", response_model=ContentOut)
async def create_post(
  community_id: str,
  payload: PostCreateIn,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ContentOut:
  await require_community_artist(community_id, actor, db)
  if payload.parentPostId:
    pres = await db.execute(select(Post.id).where(Post.id == payload.parentPostId, Post.community_id == community_id))
    if pres.scalar_one_or_none() is None:
      raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Parent post not found")

  p = Post(
    community_id=community_id,
    artist_id=actor.id,
    parent_post_id=payload.parentPostId,
    body=payload.body.strip(),
    media_url=payload.mediaUrl,
    media_type=payload.mediaType,
  )
  db.add(p)
  await db.flush()
  await write_audit(db, event_type="post.created", entity_type="Post", entity_id=p.id, community_id=community_id, actor_id=actor.id)
  await db.commit()

  out = _content_out(item=p, notification_type="post")
  # Replies stay in their thread; only top-level posts notify subscribers.
  if payload.parentPostId:
    return out
  result = await _notify(db, actor=actor, community_id=community_id, notification_type="post", reference_id=out.id)
  out.fanOut = _fan_out_out(result)
  return out


@router.post("/{community_id}/drops", response_model=ContentOut)
async def create_drop(
  community_id: str,
  payload: DropCreateIn,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ContentOut:
  await require_community_artist(community_id, actor, db)
  notification_type = drop_type(payload.kind)

  d = Drop(
    community_id=community_id,
    artist_id=actor.id,
    kind=payload.kind,
    title=payload.title.strip(),
    message=payload.message,
    link=payload.link,
    image_url=payload.imageUrl,
    ends_at=payload.endsAt,
  )
  db.add(d)
  await db.flush()
  await write_audit(
    db,
    event_type="drop.created",
    entity_type="Drop",
    entity_id=d.id,
    community_id=community_id,
    actor_id=actor.id,
    payload={"kind": d.kind},
  )
  await db.commit()

  out = _content_out(item=d, notification_type=notification_type)
  result = await _notify(db, actor=actor, community_id=community_id, notification_type=notification_type, reference_id=out.id)
  out.fanOut = _fan_out_out(result)
  return out


@router.post("/{community_id}/announcements", response_model=ContentOut)
async def create_announcement(
  community_id: str,
  payload: AnnouncementCreateIn,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ContentOut:
  await require_community_artist(community_id, actor, db)

  a = Announcement(community_id=community_id, artist_id=actor.id, message=payload.message.strip(), image_url=payload.imageUrl)
  db.add(a)
  await db.flush()
  await write_audit(db, event_type="announcement.created", entity_type="Announcement", entity_id=a.id, community_id=community_id, actor_id=actor.id)
  await db.commit()

  out = _content_out(item=a, notification_type="announcement")
  result = await _notify(db, actor=actor, community_id=community_id, notification_type="announcement", reference_id=out.id)
  out.fanOut = _fan_out_out(result)
  return out
