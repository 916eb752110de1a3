"""Repository for active_viewers and room_presence tables."""

from __future__ import annotations

import logging

import asyncpg

from shared.models.presence import PresenceFlags, RoomPresence, ViewerPresence

logger = logging.getLogger(__name__)

_VIEWER_COLUMNS = (
    "live_stream_id, viewer_id, is_active, is_unmuted, is_visible, is_subscribed, last_active_at"
)


def _affected(status: str) -> int:
    # asyncpg returns command tags like "DELETE 3" / "UPDATE 1"
    return int(status.split()[-1])


class PresenceRepository:
    """Pure SQL operations for viewer and room presence."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    # ==================== Viewer Presence ====================

    async def upsert_viewer(
        self, live_stream_id: int, viewer_id: str, flags: PresenceFlags
    ) -> ViewerPresence:
        """Insert or refresh the (stream, viewer) row, stamping last_active_at."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO active_viewers
                    (live_stream_id, viewer_id, is_active, is_unmuted, is_visible,
                     is_subscribed, last_active_at)
                VALUES ($1, $2, $3, $4, $5, $6, NOW())
                ON CONFLICT (live_stream_id, viewer_id) DO UPDATE SET
                    is_active      = EXCLUDED.is_active,
                    is_unmuted     = EXCLUDED.is_unmuted,
                    is_visible     = EXCLUDED.is_visible,
                    is_subscribed  = EXCLUDED.is_subscribed,
                    last_active_at = EXCLUDED.last_active_at
                RETURNING {_VIEWER_COLUMNS}
                """,
                live_stream_id,
                viewer_id,
                flags.is_active,
                flags.is_unmuted,
                flags.is_visible,
                flags.is_subscribed,
            )
            return ViewerPresence(**dict(row))

    async def list_recent_viewers(self, live_stream_id: int, limit: int) -> list[ViewerPresence]:
        """Most recently active rows for a stream, newest first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_VIEWER_COLUMNS} FROM active_viewers "
                "WHERE live_stream_id = $1 "
                "ORDER BY last_active_at DESC "
                "LIMIT $2",
                live_stream_id,
                limit,
            )
            return [ViewerPresence(**dict(row)) for row in rows]

    async def delete_stale_viewers(self, ttl_seconds: int) -> int:
        """Reap rows not refreshed within *ttl_seconds*. Returns count removed."""
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM active_viewers "
                "WHERE last_active_at < NOW() - make_interval(secs => $1)",
                float(ttl_seconds),
            )
            return _affected(result)

    # ==================== Room Presence ====================

    async def upsert_room_presence(self, profile_id: str, room_id: str | None) -> RoomPresence:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO room_presence (profile_id, room_id, last_seen_at)
                VALUES ($1, $2, NOW())
                ON CONFLICT (profile_id) DO UPDATE SET
                    room_id      = EXCLUDED.room_id,
                    last_seen_at = EXCLUDED.last_seen_at
                RETURNING profile_id, room_id, last_seen_at
                """,
                profile_id,
                room_id,
            )
            return RoomPresence(**dict(row))

    async def count_room_presence(
        self, room_id: str | None, exclude_profile_id: str, window_seconds: int
    ) -> int:
        """Profiles seen in *room_id* within the window, minus the caller."""
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT COUNT(*) FROM room_presence "
                "WHERE room_id IS NOT DISTINCT FROM $1 "
                "AND profile_id <> $2 "
                "AND last_seen_at > NOW() - make_interval(secs => $3)",
                room_id,
                exclude_profile_id,
                float(window_seconds),
            )

    async def delete_room_presence(self, profile_id: str) -> int:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM room_presence WHERE profile_id = $1",
                profile_id,
            )
            return _affected(result)

    async def delete_stale_room_presence(self, ttl_seconds: int) -> int:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM room_presence "
                "WHERE last_seen_at < NOW() - make_interval(secs => $1)",
                float(ttl_seconds),
            )
            return _affected(result)
