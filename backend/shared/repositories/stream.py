"""Repository for live_streams and user_grid_slots tables."""

from __future__ import annotations

import logging

import asyncpg

logger = logging.getLogger(__name__)


class StreamRepository:
    """Pure SQL operations used by stream teardown."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def end_streams_for_profile(self, profile_id: str) -> int:
        """Mark every still-live stream owned by *profile_id* as ended."""
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "UPDATE live_streams "
                "SET live_available = FALSE, ended_at = NOW() "
                "WHERE profile_id = $1 AND (live_available OR ended_at IS NULL)",
                profile_id,
            )
            return int(result.split()[-1])

    async def clear_grid_slots_for_streamer(self, streamer_id: str) -> int:
        """Remove *streamer_id* from every viewer's grid."""
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM user_grid_slots WHERE streamer_id = $1",
                streamer_id,
            )
            return int(result.split()[-1])
