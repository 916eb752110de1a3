"""Viewer presence: heartbeat ingest, viewer list aggregation, room presence."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from shared.errors import Internal, InvalidArgument
from shared.models.presence import PresenceFlags, ViewerPresence
from shared.repositories import PresenceRepository, ProfileRepository

logger = logging.getLogger(__name__)

UNKNOWN_VIEWER = "Unknown viewer"

# live_streams.id is a BIGINT
MAX_STREAM_ID = 2**63 - 1


def _utcnow() -> datetime:
    return datetime.now(UTC)


def is_effectively_active(presence: ViewerPresence, now: datetime, stale_after: timedelta) -> bool:
    """A viewer counts as active only if they say so AND their heartbeat is fresh."""
    return presence.is_active and presence.last_active_at > now - stale_after


def validate_stream_id(live_stream_id: object) -> int:
    if isinstance(live_stream_id, bool) or not isinstance(live_stream_id, int):
        raise InvalidArgument("live_stream_id must be a positive integer")
    if not 0 < live_stream_id <= MAX_STREAM_ID:
        raise InvalidArgument("live_stream_id must be a positive integer")
    return live_stream_id


class PresenceService:
    """API-facing presence operations."""

    def __init__(
        self,
        presence_repo: PresenceRepository,
        profile_repo: ProfileRepository,
        *,
        stale_after: timedelta = timedelta(seconds=60),
        list_limit: int = 200,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.presence_repo = presence_repo
        self.profile_repo = profile_repo
        self.stale_after = stale_after
        self.list_limit = list_limit
        self.clock = clock

    async def heartbeat(
        self, live_stream_id: int, viewer_id: str, flags: PresenceFlags | None = None
    ) -> ViewerPresence:
        """Upsert the (stream, viewer) presence row. Idempotent."""
        validate_stream_id(live_stream_id)
        if not viewer_id or not viewer_id.strip():
            raise InvalidArgument("viewer_id is required")

        try:
            return await self.presence_repo.upsert_viewer(
                live_stream_id, viewer_id, flags or PresenceFlags()
            )
        except Exception as e:
            logger.exception(
                f"Heartbeat upsert failed (stream={live_stream_id}, viewer={viewer_id}): {e}"
            )
            raise Internal(f"Failed to record heartbeat: {e}") from e

    async def list_viewers(self, live_stream_id: int) -> list[dict]:
        """Viewers of a stream, active first, most recent first within each group.

        Identity lookup is best effort: if it fails, entries are returned with
        the placeholder name instead of failing the whole list.
        """
        validate_stream_id(live_stream_id)

        try:
            rows = await self.presence_repo.list_recent_viewers(live_stream_id, self.list_limit)
        except Exception as e:
            logger.exception(f"Viewer list query failed (stream={live_stream_id}): {e}")
            raise Internal(f"Failed to load viewers: {e}") from e

        viewer_ids = list(dict.fromkeys(row.viewer_id for row in rows))
        profiles = {}
        if viewer_ids:
            try:
                profiles = await self.profile_repo.get_profiles(viewer_ids)
            except Exception as e:
                logger.warning(
                    f"Profile lookup failed for stream {live_stream_id} "
                    f"({len(viewer_ids)} viewers): {type(e).__name__}: {e}"
                )

        now = self.clock()
        entries = []
        for row in rows:
            profile = profiles.get(row.viewer_id)
            entries.append(
                {
                    "viewer_id": row.viewer_id,
                    "username": profile.username if profile else UNKNOWN_VIEWER,
                    "display_name": profile.display_name if profile else None,
                    "avatar_url": profile.avatar_url if profile else None,
                    "is_active": is_effectively_active(row, now, self.stale_after),
                    "is_unmuted": row.is_unmuted,
                    "is_visible": row.is_visible,
                    "is_subscribed": row.is_subscribed,
                    "last_active_at": row.last_active_at,
                }
            )

        # Two stable passes: recency first, then active-first on top of it
        entries.sort(key=lambda e: e["last_active_at"], reverse=True)
        entries.sort(key=lambda e: e["is_active"], reverse=True)
        return entries

    async def room_heartbeat(self, profile_id: str, room_id: str | None) -> dict:
        try:
            presence = await self.presence_repo.upsert_room_presence(profile_id, room_id)
        except Exception as e:
            logger.exception(f"Room heartbeat failed (profile={profile_id}, room={room_id}): {e}")
            raise Internal(f"Failed to record room presence: {e}") from e
        return {"room_id": presence.room_id, "last_seen_at": presence.last_seen_at}

    async def room_count(self, room_id: str | None, profile_id: str) -> int:
        """Others seen in the room within the staleness window."""
        try:
            return await self.presence_repo.count_room_presence(
                room_id, profile_id, int(self.stale_after.total_seconds())
            )
        except Exception as e:
            logger.exception(f"Room presence count failed (room={room_id}): {e}")
            raise Internal(f"Failed to count room presence: {e}") from e

    async def reap(self, ttl_seconds: int) -> tuple[int, int]:
        """Delete viewer and room presence older than *ttl_seconds*."""
        viewers = await self.presence_repo.delete_stale_viewers(ttl_seconds)
        rooms = await self.presence_repo.delete_stale_room_presence(ttl_seconds)
        if viewers or rooms:
            logger.info(f"Reaped presence: {viewers} viewer rows, {rooms} room rows")
        return viewers, rooms
