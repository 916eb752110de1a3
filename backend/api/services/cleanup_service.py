"""Best-effort stream teardown when a host's client goes away."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from shared.repositories import PresenceRepository, StreamRepository

logger = logging.getLogger(__name__)


class CleanupService:
    """Tear down everything a disconnecting host leaves behind.

    The trigger is a page-unload beacon: it may arrive twice or never. Every
    step is idempotent and runs regardless of whether the others failed.
    """

    def __init__(self, stream_repo: StreamRepository, presence_repo: PresenceRepository) -> None:
        self.stream_repo = stream_repo
        self.presence_repo = presence_repo

    def _steps(self) -> list[tuple[str, Callable[[str], Awaitable[int]]]]:
        return [
            ("end_streams", self.stream_repo.end_streams_for_profile),
            ("grid_slots", self.stream_repo.clear_grid_slots_for_streamer),
            ("room_presence", self.presence_repo.delete_room_presence),
        ]

    async def handle_disconnect(self, profile_id: str, reason: str | None = None) -> dict:
        """Run every teardown step; report per-step outcome."""
        results: dict[str, dict] = {}
        for name, step in self._steps():
            try:
                affected = await step(profile_id)
                results[name] = {"ok": True, "affected": affected}
            except Exception as e:
                logger.warning(
                    f"Stream cleanup step '{name}' failed for {profile_id}: "
                    f"{type(e).__name__}: {e}"
                )
                results[name] = {"ok": False, "affected": 0}

        failed = [name for name, r in results.items() if not r["ok"]]
        if failed:
            logger.warning(f"Stream cleanup for {profile_id} partial, failed: {', '.join(failed)}")
        else:
            logger.info(f"Stream cleanup for {profile_id} done (reason={reason or 'unspecified'})")
        return results
