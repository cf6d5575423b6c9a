from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

NotificationType = Literal["post", "drop_music", "drop_merch", "drop_ticket", "announcement"]
RoomId = Literal["lounge", "music-drop", "merch-drop", "ticket-drop", "announcements"]

DEFAULT_ROOM: RoomId = "lounge"


@dataclass(frozen=True)
class RoomKind:
  type: str
  room: str
  label: str
  verb: str


# Single source for type <-> room. Add new content kinds here only.
ROOM_KINDS: tuple[RoomKind, ...] = (
  RoomKind(type="post", room="lounge", label="Lounge", verb="just posted in"),
  RoomKind(type="drop_music", room="music-drop", label="Music Drop", verb="just dropped in"),
  RoomKind(type="drop_merch", room="merch-drop", label="Merch Drop", verb="just dropped in"),
  RoomKind(type="drop_ticket", room="ticket-drop", label="Ticket Drop", verb="just dropped in"),
  RoomKind(type="announcement", room="announcements", label="Announcements", verb="made an announcement in"),
)

_BY_TYPE = {k.type: k for k in ROOM_KINDS}
_BY_ROOM = {k.room: k for k in ROOM_KINDS}

NOTIFICATION_TYPES: frozenset[str] = frozenset(_BY_TYPE)
ROOMS: frozenset[str] = frozenset(_BY_ROOM)


def is_notification_type(value: str | None) -> bool:
  return value in _BY_TYPE


def room_for_type(notification_type: str | None) -> str:
  kind = _BY_TYPE.get(str(notification_type or ""))
  if kind is None:
    logger.warning("unmapped notification type %r counted under %s", notification_type, DEFAULT_ROOM)
    return DEFAULT_ROOM
  return kind.room


def type_for_room(room: str) -> str:
  kind = _BY_ROOM.get(str(room or "").strip().lower())
  if kind is None:
    raise ValueError(f"Unknown room: {room!r}")
  return kind.type


def room_label(room: str) -> str:
  kind = _BY_ROOM.get(room)
  return kind.label if kind else room


def compose_message(artist_name: str | None, notification_type: str) -> str:
  kind = _BY_TYPE.get(notification_type)
  if kind is None:
    raise ValueError(f"Unknown notification type: {notification_type!r}")
  who = (artist_name or "").strip() or "Artist"
  return f"{who} {kind.verb} {kind.label}"


def drop_type(kind: str) -> str:
  t = f"drop_{(kind or '').strip().lower()}"
  if t not in _BY_TYPE:
    raise ValueError(f"Unknown drop kind: {kind!r}")
  return t
