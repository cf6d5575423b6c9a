from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def _uuid() -> str:
  return str(uuid.uuid4())


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  username: Mapped[str] = mapped_column(String, nullable=False)
  role: Mapped[str] = mapped_column(String, nullable=False, default="fan")  # artist | fan | admin
  password_hash: Mapped[str] = mapped_column(String, nullable=False)
  avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)
  active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Session(Base):
  __tablename__ = "sessions"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  created_ip: Mapped[str | None] = mapped_column(String, nullable=True)
  user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Community(Base):
  __tablename__ = "communities"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  artist_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  subscription_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Subscription(Base):
  __tablename__ = "subscriptions"
  __table_args__ = (Index("ix_subscriptions_community_status", "community_id", "status"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  artist_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  community_id: Mapped[str] = mapped_column(String(36), ForeignKey("communities.id"), nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, default="active")  # active | canceled | past_due | ...
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Post(Base):
  __tablename__ = "posts"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  community_id: Mapped[str] = mapped_column(String(36), ForeignKey("communities.id"), nullable=False, index=True)
  artist_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  parent_post_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("posts.id"), nullable=True)
  body: Mapped[str] = mapped_column(Text, nullable=False)
  media_url: Mapped[str | None] = mapped_column(String, nullable=True)
  media_type: Mapped[str | None] = mapped_column(String, nullable=True)
  pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  reactions: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Drop(Base):
  __tablename__ = "drops"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  community_id: Mapped[str] = mapped_column(String(36), ForeignKey("communities.id"), nullable=False, index=True)
  artist_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  kind: Mapped[str] = mapped_column(String, nullable=False)  # music | merch | ticket
  title: Mapped[str] = mapped_column(String, nullable=False)
  message: Mapped[str | None] = mapped_column(Text, nullable=True)
  link: Mapped[str | None] = mapped_column(String, nullable=True)
  image_url: Mapped[str | None] = mapped_column(String, nullable=True)
  ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Announcement(Base):
  __tablename__ = "announcements"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  community_id: Mapped[str] = mapped_column(String(36), ForeignKey("communities.id"), nullable=False, index=True)
  artist_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  image_url: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Notification(Base):
  __tablename__ = "notifications"
  __table_args__ = (
    Index("ix_notifications_user_read", "user_id", "read"),
    Index("ix_notifications_user_room", "user_id", "community_id", "type", "read"),
  )

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  community_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("communities.id"), nullable=True)
  type: Mapped[str] = mapped_column(String, nullable=False)  # post | drop_music | drop_merch | drop_ticket | announcement
  reference_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AuditEvent(Base):
  __tablename__ = "audit_events"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  community_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
  actor_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
