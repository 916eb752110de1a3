"""Periodic housekeeping: presence reaping and battle timers."""

from __future__ import annotations

import logging

from services.battle_service import BattleService
from services.presence_service import PresenceService

logger = logging.getLogger(__name__)


async def sweep_once(
    presence: PresenceService, battles: BattleService, presence_ttl_seconds: int
) -> dict[str, int]:
    """Run one sweep. Each half runs even if the other one fails."""
    result = {"viewers": 0, "rooms": 0, "expired_battles": 0, "finished_cooldowns": 0}
    errors: list[Exception] = []

    try:
        result["viewers"], result["rooms"] = await presence.reap(presence_ttl_seconds)
    except Exception as e:
        logger.warning(f"Presence reap failed: {type(e).__name__}: {e}")
        errors.append(e)

    try:
        result["expired_battles"], result["finished_cooldowns"] = await battles.sweep()
    except Exception as e:
        logger.warning(f"Battle timer sweep failed: {type(e).__name__}: {e}")
        errors.append(e)

    if len(errors) == 2:
        # Nothing worked; let the caller back off
        raise errors[0]
    return result
