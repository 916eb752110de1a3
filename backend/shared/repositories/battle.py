"""Repository for battle_scores and battle_supporters tables."""

from __future__ import annotations

import logging
from datetime import datetime

import asyncpg

from shared.models.battle import BattleScoreState, SupporterContribution, SupporterTotal

logger = logging.getLogger(__name__)

_SCORE_COLUMNS = (
    "session_id::text AS session_id, side_a_score, side_b_score, boost_active, "
    "boost_multiplier::float8 AS boost_multiplier, boost_ends_at, updated_at"
)


class BattleRepository:
    """Pure SQL operations for battle scoring.

    Score changes are in-SQL increments inside one transaction with the
    supporter insert; concurrent gifts never overwrite each other.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def get_score_state(self, session_id: str) -> BattleScoreState | None:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {_SCORE_COLUMNS} FROM battle_scores WHERE session_id = $1::uuid",
                    session_id,
                )
        except asyncpg.DataError:
            return None
        return BattleScoreState(**dict(row)) if row else None

    async def apply_score(self, contribution: SupporterContribution) -> BattleScoreState | None:
        """Add the contribution's points to its side and log the contribution.

        The session row is share-locked and re-checked first; returns None if
        the session stopped being an active battle, and nothing is written.
        """
        delta_a = contribution.points_delta if contribution.side == "A" else 0
        delta_b = contribution.points_delta if contribution.side == "B" else 0

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                live = await conn.fetchval(
                    "SELECT type = 'battle' AND status = 'active' "
                    "FROM live_sessions WHERE id = $1::uuid FOR SHARE",
                    contribution.session_id,
                )
                if not live:
                    return None

                row = await conn.fetchrow(
                    f"""
                    INSERT INTO battle_scores (session_id, side_a_score, side_b_score)
                    VALUES ($1::uuid, $2, $3)
                    ON CONFLICT (session_id) DO UPDATE SET
                        side_a_score = battle_scores.side_a_score + EXCLUDED.side_a_score,
                        side_b_score = battle_scores.side_b_score + EXCLUDED.side_b_score,
                        updated_at   = NOW()
                    RETURNING {_SCORE_COLUMNS}
                    """,
                    contribution.session_id,
                    delta_a,
                    delta_b,
                )
                await conn.execute(
                    """
                    INSERT INTO battle_supporters
                        (session_id, profile_id, username, display_name, avatar_url,
                         side, points_delta, chat_award)
                    VALUES ($1::uuid, $2, $3, $4, $5, $6, $7, $8)
                    """,
                    contribution.session_id,
                    contribution.profile_id,
                    contribution.username,
                    contribution.display_name,
                    contribution.avatar_url,
                    contribution.side,
                    contribution.points_delta,
                    contribution.chat_award,
                )
                return BattleScoreState(**dict(row))

    async def set_boost(
        self, session_id: str, multiplier: float, ends_at: datetime | None
    ) -> BattleScoreState:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO battle_scores (session_id, boost_active, boost_multiplier, boost_ends_at)
                VALUES ($1::uuid, TRUE, $2, $3)
                ON CONFLICT (session_id) DO UPDATE SET
                    boost_active     = TRUE,
                    boost_multiplier = EXCLUDED.boost_multiplier,
                    boost_ends_at    = EXCLUDED.boost_ends_at,
                    updated_at       = NOW()
                RETURNING {_SCORE_COLUMNS}
                """,
                session_id,
                multiplier,
                ends_at,
            )
            return BattleScoreState(**dict(row))

    async def top_supporters(self, session_id: str, limit: int = 10) -> list[SupporterTotal]:
        """Per-profile, per-side point totals, highest first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT
                    profile_id,
                    side,
                    SUM(points_delta) AS points,
                    COUNT(*) AS gifts,
                    (ARRAY_AGG(username ORDER BY id DESC))[1] AS username,
                    (ARRAY_AGG(display_name ORDER BY id DESC))[1] AS display_name,
                    (ARRAY_AGG(avatar_url ORDER BY id DESC))[1] AS avatar_url
                FROM battle_supporters
                WHERE session_id = $1::uuid
                GROUP BY profile_id, side
                ORDER BY points DESC, profile_id
                LIMIT $2
                """,
                session_id,
                limit,
            )
            return [
                SupporterTotal(
                    profile_id=row["profile_id"],
                    side=row["side"],
                    points=int(row["points"]),
                    gifts=int(row["gifts"]),
                    username=row["username"],
                    display_name=row["display_name"],
                    avatar_url=row["avatar_url"],
                )
                for row in rows
            ]
