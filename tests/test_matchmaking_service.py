from datetime import timedelta

import pytest

from fakes import HOST_A, HOST_B
from shared.errors import InvalidState


class TestPool:
    @pytest.mark.asyncio
    async def test_join_and_status(self, matchmaking_service, clock):
        joined = await matchmaking_service.join_pool(HOST_A)

        assert joined["status"] == "waiting"
        status = await matchmaking_service.pool_status(HOST_A)
        assert status == {
            "in_pool": True,
            "status": "waiting",
            "matched": False,
            "session_id": None,
            "joined_at": clock.now,
        }

    @pytest.mark.asyncio
    async def test_rejoin_keeps_queue_position(self, matchmaking_service, clock):
        first = await matchmaking_service.join_pool(HOST_A)
        clock.advance(30)
        again = await matchmaking_service.join_pool(HOST_A)

        assert again["joined_at"] == first["joined_at"]

    @pytest.mark.asyncio
    async def test_cannot_join_while_live(self, matchmaking_service, store):
        store.add_session(HOST_A, HOST_B)

        with pytest.raises(InvalidState):
            await matchmaking_service.join_pool(HOST_A)
        assert store.pool == {}

    @pytest.mark.asyncio
    async def test_leave(self, matchmaking_service):
        await matchmaking_service.join_pool(HOST_A)

        assert await matchmaking_service.leave_pool(HOST_A) == {"in_pool": False, "left": True}
        assert await matchmaking_service.leave_pool(HOST_A) == {"in_pool": False, "left": False}
        assert (await matchmaking_service.pool_status(HOST_A))["in_pool"] is False


class TestMatch:
    @pytest.mark.asyncio
    async def test_not_in_pool(self, matchmaking_service):
        assert await matchmaking_service.match(HOST_A) == {"matched": False, "reason": "not_in_pool"}

    @pytest.mark.asyncio
    async def test_no_opponent(self, matchmaking_service):
        await matchmaking_service.join_pool(HOST_A)

        assert await matchmaking_service.match(HOST_A) == {"matched": False, "reason": "no_opponent"}

    @pytest.mark.asyncio
    async def test_pairs_with_longest_waiting_host(self, matchmaking_service, store, clock):
        await matchmaking_service.join_pool("early")
        clock.advance(5)
        await matchmaking_service.join_pool("late")
        clock.advance(5)
        await matchmaking_service.join_pool(HOST_B)

        result = await matchmaking_service.match(HOST_B)

        assert result["matched"] is True
        assert result["opponent_id"] == "early"
        assert result["ends_at"] == clock.now + timedelta(seconds=60)
        session = store.sessions[result["session_id"]]
        assert session.is_active_battle
        assert session.mode == "speed"
        assert (session.host_a, session.host_b) == ("early", HOST_B)
        assert store.scores[session.id].scores == {"A": 0, "B": 0}
        assert store.pool["late"].status == "waiting"

    @pytest.mark.asyncio
    async def test_matched_host_gets_session_back(self, matchmaking_service):
        await matchmaking_service.join_pool(HOST_A)
        await matchmaking_service.join_pool(HOST_B)
        result = await matchmaking_service.match(HOST_B)

        again = await matchmaking_service.match(HOST_A)

        assert again == {"matched": True, "session_id": result["session_id"]}
        status = await matchmaking_service.pool_status(HOST_A)
        assert status["matched"] is True
        assert status["session_id"] == result["session_id"]

    @pytest.mark.asyncio
    async def test_skips_hosts_already_live(self, matchmaking_service, store):
        await matchmaking_service.join_pool(HOST_A)
        await matchmaking_service.join_pool(HOST_B)
        store.add_session(HOST_A, "someone-else")

        assert await matchmaking_service.match(HOST_B) == {"matched": False, "reason": "no_opponent"}
