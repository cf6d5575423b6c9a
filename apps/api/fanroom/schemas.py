from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator

RoomIn = Literal["lounge", "music-drop", "merch-drop", "ticket-drop", "announcements"]
DropKind = Literal["music", "merch", "ticket"]


def _parse_dt_utc(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    value = datetime.fromisoformat(s.replace("Z", "+00:00"))
  if isinstance(value, datetime):
    if value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
  return value


class UserOut(BaseModel):
  id: str
  email: str
  username: str
  role: str
  avatarUrl: str | None = None
  active: bool = True


class LoginIn(BaseModel):
  email: str
  password: str


class PostCreateIn(BaseModel):
  body: str = Field(min_length=1, max_length=5000)
  mediaUrl: str | None = None
  mediaType: str | None = None
  parentPostId: str | None = None


class DropCreateIn(BaseModel):
  kind: DropKind
  title: str = Field(min_length=1, max_length=200)
  message: str | None = Field(default=None, max_length=2000)
  link: str | None = None
  imageUrl: str | None = None
  endsAt: datetime | None = None

  @field_validator("endsAt", mode="before")
  @classmethod
  def _ends_at_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class AnnouncementCreateIn(BaseModel):
  message: str = Field(min_length=1, max_length=2000)
  imageUrl: str | None = None


class FanOutOut(BaseModel):
  recipients: int = 0
  notified: int = 0
  failed: int = 0


class ContentOut(BaseModel):
  id: str
  communityId: str
  artistId: str
  room: str
  createdAt: datetime
  fanOut: FanOutOut


class NotificationOut(BaseModel):
  id: str
  communityId: str | None = None
  type: str
  room: str | None = None
  referenceId: str | None = None
  message: str
  read: bool
  createdAt: datetime
  updatedAt: datetime


class CommunityUnreadOut(BaseModel):
  total: int = 0
  byRoom: dict[str, int] = Field(default_factory=dict)


class UnreadCountsOut(BaseModel):
  totalUnread: int = 0
  unreadCounts: dict[str, CommunityUnreadOut] = Field(default_factory=dict)


class MarkRoomReadIn(BaseModel):
  communityId: str = Field(min_length=1)
  room: RoomIn


class MarkRoomReadOut(BaseModel):
  ok: bool = True
  updated: int = 0
  unread: UnreadCountsOut


class MarkReadIn(BaseModel):
  ids: list[str] = Field(min_length=1, max_length=500)


class MarkReadOut(BaseModel):
  ok: bool = True
  updated: int = 0
