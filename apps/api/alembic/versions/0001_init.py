"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
  return [
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  ]


def upgrade() -> None:
  op.create_table(
    "users",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("username", sa.String(), nullable=False),
    sa.Column("role", sa.String(), nullable=False, server_default="fan"),
    sa.Column("password_hash", sa.String(), nullable=False),
    sa.Column("avatar_url", sa.String(), nullable=True),
    sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    *_timestamps(),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "sessions",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("created_ip", sa.String(), nullable=True),
    sa.Column("user_agent", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_sessions_user_id", "sessions", ["user_id"], unique=False)

  op.create_table(
    "communities",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("artist_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("subscription_price", sa.Integer(), nullable=False, server_default="0"),
    *_timestamps(),
  )
  op.create_index("ix_communities_artist_id", "communities", ["artist_id"], unique=False)

  op.create_table(
    "subscriptions",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("artist_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("community_id", sa.String(36), sa.ForeignKey("communities.id"), nullable=False),
    sa.Column("status", sa.String(), nullable=False, server_default="active"),
    *_timestamps(),
  )
  op.create_index("ix_subscriptions_user_id", "subscriptions", ["user_id"], unique=False)
  op.create_index("ix_subscriptions_community_status", "subscriptions", ["community_id", "status"], unique=False)

  op.create_table(
    "posts",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("community_id", sa.String(36), sa.ForeignKey("communities.id"), nullable=False),
    sa.Column("artist_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("parent_post_id", sa.String(36), sa.ForeignKey("posts.id"), nullable=True),
    sa.Column("body", sa.Text(), nullable=False),
    sa.Column("media_url", sa.String(), nullable=True),
    sa.Column("media_type", sa.String(), nullable=True),
    sa.Column("pinned", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("reactions", sa.JSON(), nullable=False),
    *_timestamps(),
  )
  op.create_index("ix_posts_community_id", "posts", ["community_id"], unique=False)

  op.create_table(
    "drops",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("community_id", sa.String(36), sa.ForeignKey("communities.id"), nullable=False),
    sa.Column("artist_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("kind", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("message", sa.Text(), nullable=True),
    sa.Column("link", sa.String(), nullable=True),
    sa.Column("image_url", sa.String(), nullable=True),
    sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
    *_timestamps(),
  )
  op.create_index("ix_drops_community_id", "drops", ["community_id"], unique=False)

  op.create_table(
    "announcements",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("community_id", sa.String(36), sa.ForeignKey("communities.id"), nullable=False),
    sa.Column("artist_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("message", sa.Text(), nullable=False),
    sa.Column("image_url", sa.String(), nullable=True),
    *_timestamps(),
  )
  op.create_index("ix_announcements_community_id", "announcements", ["community_id"], unique=False)

  op.create_table(
    "notifications",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("community_id", sa.String(36), sa.ForeignKey("communities.id"), nullable=True),
    sa.Column("type", sa.String(), nullable=False),
    sa.Column("reference_id", sa.String(36), nullable=True),
    sa.Column("message", sa.Text(), nullable=False),
    sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    *_timestamps(),
  )
  op.create_index("ix_notifications_user_read", "notifications", ["user_id", "read"], unique=False)
  op.create_index("ix_notifications_user_room", "notifications", ["user_id", "community_id", "type", "read"], unique=False)

  op.create_table(
    "audit_events",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("community_id", sa.String(36), nullable=True),
    sa.Column("actor_id", sa.String(36), nullable=True),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(36), nullable=True),
    sa.Column("payload", sa.JSON(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_audit_events_community_id", "audit_events", ["community_id"], unique=False)


def downgrade() -> None:
  op.drop_index("ix_audit_events_community_id", table_name="audit_events")
  op.drop_table("audit_events")
  op.drop_index("ix_notifications_user_room", table_name="notifications")
  op.drop_index("ix_notifications_user_read", table_name="notifications")
  op.drop_table("notifications")
  op.drop_index("ix_announcements_community_id", table_name="announcements")
  op.drop_table("announcements")
  op.drop_index("ix_drops_community_id", table_name="drops")
  op.drop_table("drops")
  op.drop_index("ix_posts_community_id", table_name="posts")
  op.drop_table("posts")
  op.drop_index("ix_subscriptions_community_status", table_name="subscriptions")
  op.drop_index("ix_subscriptions_user_id", table_name="subscriptions")
  op.drop_table("subscriptions")
  op.drop_index("ix_communities_artist_id", table_name="communities")
  op.drop_table("communities")
  op.drop_index("ix_sessions_user_id", table_name="sessions")
  op.drop_table("sessions")
  op.drop_index("ix_users_email", table_name="users")
  op.drop_table("users")
