"""Speed-battle matchmaking pool."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from shared.errors import InvalidState
from shared.models.session import battle_duration
from shared.repositories import BattlePoolRepository, SessionRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MatchmakingService:
    """Hosts join a pool and get paired into speed battles, oldest waiter first."""

    def __init__(
        self,
        pool_repo: BattlePoolRepository,
        session_repo: SessionRepository,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.pool_repo = pool_repo
        self.session_repo = session_repo
        self.clock = clock

    async def join_pool(self, profile_id: str) -> dict:
        active = await self.session_repo.get_active_session_for_host(profile_id)
        if active is not None:
            raise InvalidState("Already in a live session")
        entry = await self.pool_repo.join(profile_id)
        logger.info(f"{profile_id} joined the battle pool")
        return {"in_pool": True, "status": entry.status, "joined_at": entry.joined_at}

    async def leave_pool(self, profile_id: str) -> dict:
        left = await self.pool_repo.leave(profile_id)
        if left:
            logger.info(f"{profile_id} left the battle pool")
        return {"in_pool": False, "left": left}

    async def pool_status(self, profile_id: str) -> dict:
        entry = await self.pool_repo.get_entry(profile_id)
        if entry is None:
            return {
                "in_pool": False,
                "status": None,
                "matched": False,
                "session_id": None,
                "joined_at": None,
            }
        return {
            "in_pool": True,
            "status": entry.status,
            "matched": entry.status == "matched",
            "session_id": entry.session_id,
            "joined_at": entry.joined_at,
        }

    async def match(self, profile_id: str) -> dict:
        """Try to pair the caller. Already-matched callers get their session back."""
        entry = await self.pool_repo.get_entry(profile_id)
        if entry is None:
            return {"matched": False, "reason": "not_in_pool"}
        if entry.status == "matched":
            return {"matched": True, "session_id": entry.session_id}

        now = self.clock()
        session = await self.pool_repo.match(profile_id, now, now + battle_duration("speed"))
        if session is None:
            return {"matched": False, "reason": "no_opponent"}
        return {
            "matched": True,
            "session_id": session.id,
            "opponent_id": session.other_participant(profile_id),
            "ends_at": session.ends_at,
        }
