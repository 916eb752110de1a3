import pytest

from fakes import HOST_A, HOST_B, FakePresenceRepository, FakeSessionRepository
from services import BattleService, PresenceService
from services.sweeper import sweep_once


@pytest.mark.asyncio
async def test_sweep_reaps_and_runs_timers(presence_service, presence_repo, battle_service, store, clock):
    presence_repo.put_viewer(42, "gone", is_active=True, age=400)
    session = store.add_session(HOST_A, HOST_B)
    invite = await battle_service.start_battle(HOST_A, session.id, "speed")
    await battle_service.accept_battle(HOST_B, invite["invite_id"])
    clock.advance(61)

    result = await sweep_once(presence_service, battle_service, 300)

    assert result == {"viewers": 1, "rooms": 0, "expired_battles": 1, "finished_cooldowns": 0}


@pytest.mark.asyncio
async def test_presence_failure_does_not_block_timers(profile_repo, battle_service, store, clock):
    presence = PresenceService(
        FakePresenceRepository(clock, fail_on={"delete_stale_viewers"}), profile_repo, clock=clock
    )
    session = store.add_session(HOST_A, HOST_B, type="battle", status="cooldown")
    session.cooldown_ends_at = clock.now

    result = await sweep_once(presence, battle_service, 300)

    assert result["viewers"] == 0
    assert result["finished_cooldowns"] == 1
    assert store.sessions[session.id].type == "cohost"


@pytest.mark.asyncio
async def test_raises_when_everything_fails(profile_repo, battle_repo, store, clock):
    presence = PresenceService(
        FakePresenceRepository(clock, fail_on={"delete_stale_viewers"}), profile_repo, clock=clock
    )
    sessions = FakeSessionRepository(store)

    async def broken(*args):
        raise RuntimeError("db down")

    sessions.expire_battles = broken
    battles = BattleService(sessions, battle_repo, clock=clock)

    with pytest.raises(RuntimeError):
        await sweep_once(presence, battles, 300)
