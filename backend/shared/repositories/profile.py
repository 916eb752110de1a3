"""Repository for profile identity lookups."""

from __future__ import annotations

import logging

import asyncpg

from shared.cache import _MISSING, AsyncTTLCache
from shared.models.profile import Profile

logger = logging.getLogger(__name__)

# Identity fields change rarely; viewer lists are polled constantly.
_profile_cache = AsyncTTLCache(maxsize=4096, ttl=300)


class ProfileRepository:
    """Batch identity resolution with an in-process cache."""

    def __init__(self, pool: asyncpg.Pool, cache: AsyncTTLCache | None = None) -> None:
        self.pool = pool
        self.cache = cache or _profile_cache

    async def get_profiles(self, profile_ids: list[str]) -> dict[str, Profile]:
        """Resolve ids to profiles. Unknown ids are absent from the result.

        On a database error, ids with a last-known-good cached value are
        still resolved; if none are, the error propagates.
        """
        wanted = list(dict.fromkeys(profile_ids))
        hits, misses = self.cache.get_many(wanted)
        found: dict[str, Profile] = {k: v for k, v in hits.items() if v is not None}
        if not misses:
            return found

        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT id, username, display_name, avatar_url "
                    "FROM profiles WHERE id = ANY($1::text[])",
                    misses,
                )
        except Exception as e:
            stale = {k: self.cache.get_stale(k) for k in misses}
            stale = {k: v for k, v in stale.items() if v is not _MISSING and v is not None}
            if not stale and not found:
                raise
            logger.warning(
                f"Profile lookup failed ({type(e).__name__}), "
                f"serving {len(stale)} stale identities"
            )
            found.update(stale)
            return found

        fetched = {row["id"]: Profile(**dict(row)) for row in rows}
        # Cache misses as None so unknown viewers do not hit the DB every poll
        self.cache.set_many({pid: fetched.get(pid) for pid in misses})
        found.update(fetched)
        return found
