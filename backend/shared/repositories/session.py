"""Repository for live_sessions and live_session_invites tables."""

from __future__ import annotations

import logging
from datetime import datetime

import asyncpg

from shared.models.session import AcceptanceTally, LiveSession, LiveSessionInvite

logger = logging.getLogger(__name__)

_SESSION_COLUMNS = (
    "id::text AS id, host_a, host_b, type, status, mode, started_at, ends_at, "
    "cooldown_ends_at, battle_round, created_at, updated_at"
)

_INVITE_COLUMNS = (
    "id::text AS id, session_id::text AS session_id, from_host_id, to_host_id, "
    "type, mode, status, round, created_at, responded_at"
)


class SessionRepository:
    """Pure SQL operations for cohost / battle sessions and their invites.

    Ids are UUIDs in the database; a malformed id simply matches nothing.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    # ==================== Sessions ====================

    async def get_session(self, session_id: str) -> LiveSession | None:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {_SESSION_COLUMNS} FROM live_sessions WHERE id = $1::uuid",
                    session_id,
                )
        except asyncpg.DataError:
            return None
        return LiveSession(**dict(row)) if row else None

    async def get_active_session_for_host(self, host_id: str) -> LiveSession | None:
        """The newest non-ended session the host takes part in."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_SESSION_COLUMNS} FROM live_sessions "
                "WHERE (host_a = $1 OR host_b = $1) AND status <> 'ended' "
                "ORDER BY created_at DESC LIMIT 1",
                host_id,
            )
            return LiveSession(**dict(row)) if row else None

    async def create_session(
        self, host_a: str, host_b: str, type: str = "cohost", status: str = "active"
    ) -> LiveSession:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO live_sessions (host_a, host_b, type, status)
                VALUES ($1, $2, $3, $4)
                RETURNING {_SESSION_COLUMNS}
                """,
                host_a,
                host_b,
                type,
                status,
            )
            return LiveSession(**dict(row))

    async def start_battle(
        self, session_id: str, mode: str, started_at: datetime, ends_at: datetime
    ) -> LiveSession | None:
        """Start a battle on a live cohost session (or a rematch from cooldown).

        Zeroes the scores. Conditional on the session still being startable,
        so a second concurrent caller gets None instead of restarting it.
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"""
                    UPDATE live_sessions SET
                        type = 'battle',
                        status = 'active',
                        mode = $2,
                        started_at = $3,
                        ends_at = $4,
                        cooldown_ends_at = NULL,
                        battle_round = battle_round + 1,
                        updated_at = NOW()
                    WHERE id = $1::uuid
                      AND ((type = 'cohost' AND status = 'active')
                           OR (type = 'battle' AND status = 'cooldown'))
                    RETURNING {_SESSION_COLUMNS}
                    """,
                    session_id,
                    mode,
                    started_at,
                    ends_at,
                )
                if not row:
                    return None
                await conn.execute(
                    """
                    INSERT INTO battle_scores (session_id)
                    VALUES ($1::uuid)
                    ON CONFLICT (session_id) DO UPDATE SET
                        side_a_score = 0,
                        side_b_score = 0,
                        boost_active = FALSE,
                        boost_multiplier = 1,
                        boost_ends_at = NULL,
                        updated_at = NOW()
                    """,
                    session_id,
                )
                return LiveSession(**dict(row))

    async def start_cooldown(
        self, session_id: str, cooldown_ends_at: datetime
    ) -> LiveSession | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE live_sessions SET
                    status = 'cooldown', cooldown_ends_at = $2, updated_at = NOW()
                WHERE id = $1::uuid AND type = 'battle' AND status = 'active'
                RETURNING {_SESSION_COLUMNS}
                """,
                session_id,
                cooldown_ends_at,
            )
            return LiveSession(**dict(row)) if row else None

    async def cooldown_to_cohost(self, session_id: str) -> LiveSession | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE live_sessions SET
                    type = 'cohost', status = 'active',
                    started_at = NULL, ends_at = NULL, cooldown_ends_at = NULL,
                    updated_at = NOW()
                WHERE id = $1::uuid AND type = 'battle' AND status = 'cooldown'
                RETURNING {_SESSION_COLUMNS}
                """,
                session_id,
            )
            return LiveSession(**dict(row)) if row else None

    async def end_session(self, session_id: str) -> LiveSession | None:
        """End the session and cancel any invites still pending on it."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"""
                    UPDATE live_sessions SET status = 'ended', updated_at = NOW()
                    WHERE id = $1::uuid AND status <> 'ended'
                    RETURNING {_SESSION_COLUMNS}
                    """,
                    session_id,
                )
                if row:
                    await conn.execute(
                        "UPDATE live_session_invites "
                        "SET status = 'cancelled', responded_at = NOW() "
                        "WHERE session_id = $1::uuid AND status = 'pending'",
                        session_id,
                    )
                return LiveSession(**dict(row)) if row else None

    async def expire_battles(self, now: datetime, cooldown_seconds: dict[str, int]) -> int:
        """Move active battles whose timer ran out into cooldown."""
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE live_sessions SET
                    status = 'cooldown',
                    cooldown_ends_at = $1::timestamptz + make_interval(secs => CASE mode
                        WHEN 'speed' THEN $2::float8 ELSE $3::float8 END),
                    updated_at = NOW()
                WHERE type = 'battle' AND status = 'active'
                  AND ends_at IS NOT NULL AND ends_at <= $1
                """,
                now,
                float(cooldown_seconds["speed"]),
                float(cooldown_seconds["standard"]),
            )
            return int(result.split()[-1])

    async def finish_cooldowns(self, now: datetime) -> int:
        """Return battles whose cooldown elapsed to an active cohost session."""
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE live_sessions SET
                    type = 'cohost', status = 'active',
                    started_at = NULL, ends_at = NULL, cooldown_ends_at = NULL,
                    updated_at = NOW()
                WHERE type = 'battle' AND status = 'cooldown'
                  AND cooldown_ends_at IS NOT NULL AND cooldown_ends_at <= $1
                """,
                now,
            )
            return int(result.split()[-1])

    # ==================== Invites ====================

    async def get_invite(self, invite_id: str) -> LiveSessionInvite | None:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {_INVITE_COLUMNS} FROM live_session_invites WHERE id = $1::uuid",
                    invite_id,
                )
        except asyncpg.DataError:
            return None
        return LiveSessionInvite(**dict(row)) if row else None

    async def find_pending_invite(
        self, session_id: str, from_host_id: str, battle_round: int
    ) -> LiveSessionInvite | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_INVITE_COLUMNS} FROM live_session_invites "
                "WHERE session_id = $1::uuid AND from_host_id = $2 AND round = $3 "
                "AND type = 'battle' AND status = 'pending' "
                "ORDER BY created_at DESC LIMIT 1",
                session_id,
                from_host_id,
                battle_round,
            )
            return LiveSessionInvite(**dict(row)) if row else None

    async def create_invite(
        self,
        session_id: str,
        from_host_id: str,
        to_host_id: str,
        mode: str,
        battle_round: int,
        type: str = "battle",
    ) -> LiveSessionInvite | None:
        """Insert a pending invite.

        Returns None when the sender already has a pending battle invite for
        this session and round (uq_invites_pending_per_round).
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO live_session_invites
                    (session_id, from_host_id, to_host_id, type, mode, round)
                VALUES ($1::uuid, $2, $3, $4, $5, $6)
                ON CONFLICT (session_id, from_host_id, round)
                    WHERE status = 'pending' AND type = 'battle'
                    DO NOTHING
                RETURNING {_INVITE_COLUMNS}
                """,
                session_id,
                from_host_id,
                to_host_id,
                type,
                mode,
                battle_round,
            )
            return LiveSessionInvite(**dict(row)) if row else None

    async def list_pending_invites_for(self, to_host_id: str) -> list[LiveSessionInvite]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_INVITE_COLUMNS} FROM live_session_invites "
                "WHERE to_host_id = $1 AND status = 'pending' "
                "ORDER BY created_at DESC",
                to_host_id,
            )
            return [LiveSessionInvite(**dict(row)) for row in rows]

    async def respond_to_invite(self, invite_id: str, status: str) -> LiveSessionInvite | None:
        """Move a pending invite to *status*. None if it was no longer pending."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE live_session_invites SET status = $2, responded_at = NOW()
                WHERE id = $1::uuid AND status = 'pending'
                RETURNING {_INVITE_COLUMNS}
                """,
                invite_id,
                status,
            )
            return LiveSessionInvite(**dict(row)) if row else None

    async def record_acceptance(self, invite_id: str) -> AcceptanceTally | None:
        """Accept a pending invite and count its round under the session lock.

        The session row is locked before the invite row, the same order as
        end_session, so an acceptance racing an end cannot deadlock.

        Returns None, with nothing written, when the invite is no longer
        pending, belongs to an earlier round, or the session can no longer
        start a battle.
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                session_row = await conn.fetchrow(
                    f"""
                    SELECT {_SESSION_COLUMNS} FROM live_sessions
                    WHERE id = (SELECT session_id FROM live_session_invites WHERE id = $1::uuid)
                    FOR UPDATE
                    """,
                    invite_id,
                )
                if not session_row:
                    return None
                session = LiveSession(**dict(session_row))
                if not session.can_start_battle:
                    return None

                invite_row = await conn.fetchrow(
                    f"""
                    UPDATE live_session_invites SET status = 'accepted', responded_at = NOW()
                    WHERE id = $1::uuid AND status = 'pending' AND round = $2
                    RETURNING {_INVITE_COLUMNS}
                    """,
                    invite_id,
                    session.battle_round,
                )
                if not invite_row:
                    return None
                invite = LiveSessionInvite(**dict(invite_row))

                counts = await conn.fetchrow(
                    """
                    SELECT
                        COUNT(*) FILTER (WHERE status IN ('pending', 'accepted')) AS invited,
                        COUNT(*) FILTER (WHERE status = 'accepted') AS accepted
                    FROM live_session_invites
                    WHERE session_id = $1::uuid AND type = 'battle' AND round = $2
                    """,
                    invite.session_id,
                    invite.round,
                )
                return AcceptanceTally(
                    invite=invite,
                    session=session,
                    invited=int(counts["invited"]),
                    accepted=int(counts["accepted"]),
                )
