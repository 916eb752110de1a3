"""Repository SQL against a real PostgreSQL.

Set LIVELINKS_TEST_DATABASE_URL to a disposable database to run these; every
table they touch is truncated before each test.
"""

import asyncio
import os
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

import asyncpg
import pytest

from fakes import GIFTER, HOST_A, HOST_B
from shared.migrations.runner import MigrationRunner
from shared.models.battle import SupporterContribution
from shared.repositories import BattlePoolRepository, BattleRepository, SessionRepository

DATABASE_URL = os.environ.get("LIVELINKS_TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(not DATABASE_URL, reason="LIVELINKS_TEST_DATABASE_URL not set")

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


@asynccontextmanager
async def database():
    """A migrated database with empty session tables."""
    pool = await asyncpg.create_pool(DATABASE_URL, min_size=2, max_size=6)
    try:
        await MigrationRunner(pool).run_pending()
        async with pool.acquire() as conn:
            await conn.execute(
                "TRUNCATE battle_pool, battle_supporters, battle_scores, "
                "live_session_invites, live_sessions CASCADE"
            )
        yield pool
    finally:
        await pool.close()


def contribution(session_id: str, side: str = "A", points: int = 10) -> SupporterContribution:
    return SupporterContribution(
        session_id=session_id, profile_id=GIFTER, side=side, points_delta=points
    )


async def battle_session(sessions: SessionRepository):
    session = await sessions.create_session(HOST_A, HOST_B)
    return await sessions.start_battle(session.id, "standard", NOW, NOW + timedelta(minutes=3))


@pytest.mark.asyncio
async def test_concurrent_scores_add_up():
    async with database() as pool:
        battle = await battle_session(SessionRepository(pool))
        scores = BattleRepository(pool)

        await asyncio.gather(*(scores.apply_score(contribution(battle.id)) for _ in range(5)))

        state = await scores.get_score_state(battle.id)
        assert state.side_a_score == 50
        assert len(await scores.top_supporters(battle.id)) == 1


@pytest.mark.asyncio
async def test_score_on_cohost_session_writes_nothing():
    async with database() as pool:
        cohost = await SessionRepository(pool).create_session(HOST_A, HOST_B)
        scores = BattleRepository(pool)

        assert await scores.apply_score(contribution(cohost.id)) is None
        assert await scores.top_supporters(cohost.id) == []


@pytest.mark.asyncio
async def test_acceptance_counts_only_the_current_round():
    async with database() as pool:
        sessions = SessionRepository(pool)
        cohost = await sessions.create_session(HOST_A, HOST_B)
        stale = await sessions.create_invite(cohost.id, HOST_B, HOST_A, "standard", 0)
        first = await sessions.create_invite(cohost.id, HOST_A, HOST_B, "standard", 0)

        tally = await sessions.record_acceptance(first.id)
        assert (tally.invited, tally.accepted) == (2, 1)

        await sessions.start_battle(cohost.id, "standard", NOW, NOW + timedelta(minutes=3))
        await sessions.start_cooldown(cohost.id, NOW + timedelta(minutes=4))

        assert await sessions.record_acceptance(stale.id) is None
        assert (await sessions.get_invite(stale.id)).status == "pending"

        rematch = await sessions.create_invite(cohost.id, HOST_A, HOST_B, "speed", 1)
        tally = await sessions.record_acceptance(rematch.id)
        assert (tally.invited, tally.accepted) == (1, 1)
        assert tally.session.battle_round == 1


@pytest.mark.asyncio
async def test_acceptance_on_ended_session_writes_nothing():
    async with database() as pool:
        sessions = SessionRepository(pool)
        cohost = await sessions.create_session(HOST_A, HOST_B)
        invite = await sessions.create_invite(cohost.id, HOST_A, HOST_B, "standard", 0)
        async with pool.acquire() as conn:
            await conn.execute(
                "UPDATE live_sessions SET status = 'ended' WHERE id = $1::uuid", cohost.id
            )

        assert await sessions.record_acceptance(invite.id) is None
        assert (await sessions.get_invite(invite.id)).status == "pending"


@pytest.mark.asyncio
async def test_duplicate_pending_invite_is_refused():
    async with database() as pool:
        sessions = SessionRepository(pool)
        cohost = await sessions.create_session(HOST_A, HOST_B)

        results = await asyncio.gather(
            *(sessions.create_invite(cohost.id, HOST_A, HOST_B, "standard", 0) for _ in range(4))
        )

        assert sum(1 for invite in results if invite is not None) == 1
        # A new round or the other host may still invite
        assert await sessions.create_invite(cohost.id, HOST_A, HOST_B, "standard", 1) is not None
        assert await sessions.create_invite(cohost.id, HOST_B, HOST_A, "standard", 0) is not None


@pytest.mark.asyncio
async def test_accept_racing_end_does_not_deadlock():
    async with database() as pool:
        sessions = SessionRepository(pool)
        for _ in range(10):
            cohost = await sessions.create_session(HOST_A, HOST_B)
            invite = await sessions.create_invite(cohost.id, HOST_A, HOST_B, "standard", 0)

            tally, ended = await asyncio.wait_for(
                asyncio.gather(
                    sessions.record_acceptance(invite.id), sessions.end_session(cohost.id)
                ),
                timeout=10,
            )

            assert ended is not None
            final = await sessions.get_invite(invite.id)
            if tally is None:
                assert final.status == "cancelled"
            else:
                assert final.status == "accepted"


@pytest.mark.asyncio
async def test_pool_match():
    async with database() as pool:
        pool_repo = BattlePoolRepository(pool)
        await pool_repo.join(HOST_A)
        await pool_repo.join(HOST_B)

        session = await pool_repo.match(HOST_B, NOW, NOW + timedelta(seconds=60))

        assert (session.host_a, session.host_b) == (HOST_A, HOST_B)
        assert session.is_active_battle and session.mode == "speed"
        assert (await pool_repo.get_entry(HOST_A)).session_id == session.id
        assert await pool_repo.match(HOST_A, NOW, NOW) is None
        assert await BattleRepository(pool).get_score_state(session.id) is not None
