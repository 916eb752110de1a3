"""Data models for active_viewers and room_presence tables."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class PresenceFlags:
    """Client-reported engagement flags. Omitted flags mean fully engaged."""

    is_active: bool = True
    is_unmuted: bool = True
    is_visible: bool = True
    is_subscribed: bool = True


@dataclass
class ViewerPresence:
    """One row per (live_stream_id, viewer_id)."""

    live_stream_id: int
    viewer_id: str
    is_active: bool
    is_unmuted: bool
    is_visible: bool
    is_subscribed: bool
    last_active_at: datetime


@dataclass
class RoomPresence:
    """Generic room presence, one row per profile."""

    profile_id: str
    room_id: str | None
    last_seen_at: datetime
