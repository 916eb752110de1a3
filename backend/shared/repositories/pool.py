"""Repository for the battle_pool table (speed-battle matchmaking)."""

from __future__ import annotations

import logging
from datetime import datetime

import asyncpg

from shared.models.pool import PoolEntry
from shared.models.session import LiveSession

from .session import _SESSION_COLUMNS

logger = logging.getLogger(__name__)

_POOL_COLUMNS = "profile_id, status, joined_at, session_id::text AS session_id, matched_at"


class BattlePoolRepository:
    """Hosts waiting to be paired into a speed battle."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def join(self, profile_id: str) -> PoolEntry:
        """Enter the pool. Re-joining while still waiting keeps the queue position."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO battle_pool (profile_id) VALUES ($1)
                ON CONFLICT (profile_id) DO UPDATE SET
                    joined_at = CASE WHEN battle_pool.status = 'waiting'
                                     THEN battle_pool.joined_at ELSE NOW() END,
                    status = 'waiting',
                    session_id = NULL,
                    matched_at = NULL
                RETURNING {_POOL_COLUMNS}
                """,
                profile_id,
            )
            return PoolEntry(**dict(row))

    async def leave(self, profile_id: str) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute("DELETE FROM battle_pool WHERE profile_id = $1", profile_id)
            return result == "DELETE 1"

    async def get_entry(self, profile_id: str) -> PoolEntry | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_POOL_COLUMNS} FROM battle_pool WHERE profile_id = $1", profile_id
            )
            return PoolEntry(**dict(row)) if row else None

    async def match(
        self, profile_id: str, started_at: datetime, ends_at: datetime
    ) -> LiveSession | None:
        """Pair a waiting host with the longest-waiting other host.

        Creates an active speed battle between them and marks both entries
        matched, all in one transaction. Opponents locked by a concurrent
        match are skipped rather than waited on; returns None when the caller
        is not waiting or nobody is free.
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                waiting = await conn.fetchval(
                    "SELECT 1 FROM battle_pool "
                    "WHERE profile_id = $1 AND status = 'waiting' FOR UPDATE",
                    profile_id,
                )
                if not waiting:
                    return None

                opponent = await conn.fetchval(
                    """
                    SELECT profile_id FROM battle_pool p
                    WHERE p.status = 'waiting' AND p.profile_id <> $1
                      AND NOT EXISTS (
                          SELECT 1 FROM live_sessions s
                          WHERE s.status <> 'ended'
                            AND (s.host_a = p.profile_id OR s.host_b = p.profile_id)
                      )
                    ORDER BY p.joined_at, p.profile_id
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                    """,
                    profile_id,
                )
                if opponent is None:
                    return None

                row = await conn.fetchrow(
                    f"""
                    INSERT INTO live_sessions
                        (host_a, host_b, type, status, mode, started_at, ends_at, battle_round)
                    VALUES ($1, $2, 'battle', 'active', 'speed', $3, $4, 1)
                    RETURNING {_SESSION_COLUMNS}
                    """,
                    opponent,
                    profile_id,
                    started_at,
                    ends_at,
                )
                session = LiveSession(**dict(row))
                await conn.execute(
                    "INSERT INTO battle_scores (session_id) VALUES ($1::uuid)", session.id
                )
                await conn.execute(
                    """
                    UPDATE battle_pool SET status = 'matched', session_id = $3::uuid, matched_at = NOW()
                    WHERE profile_id IN ($1, $2)
                    """,
                    profile_id,
                    opponent,
                    session.id,
                )
                logger.info(f"Pool matched {opponent} vs {profile_id} (session {session.id})")
                return session
