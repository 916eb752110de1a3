"""Create two profiles, a live stream each and an active cohost session between them.

Prints a session token for each host so the battle endpoints can be exercised
locally, e.g. ``curl --cookie "auth_token=<token>" ...``.

Usage:
    python seed_cohost.py alice bob
"""

import asyncio
import sys
from pathlib import Path

# Ensure backend/ and backend/api/ are on sys.path
_backend = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_backend))
sys.path.insert(0, str(_backend / "api"))

from core.config import get_settings
from services import AuthService
from shared.database import DatabaseManager, PoolConfig
from shared.repositories import SessionRepository


async def seed(username_a: str, username_b: str) -> None:
    settings = get_settings()
    db = DatabaseManager(settings.database_url, PoolConfig.for_service("script"))
    await db.connect()
    pool = db.pool
    try:
        async with pool.acquire() as conn:
            for username in (username_a, username_b):
                await conn.execute(
                    """
                    INSERT INTO profiles (id, username, display_name)
                    VALUES ($1, $1, $1)
                    ON CONFLICT (id) DO NOTHING
                    """,
                    username,
                )
                await conn.execute(
                    "INSERT INTO live_streams (profile_id, live_available, started_at) "
                    "VALUES ($1, TRUE, NOW())",
                    username,
                )

        session = await SessionRepository(pool).create_session(username_a, username_b)
        auth = AuthService(settings.jwt_secret_key, settings.service_role_key, settings.jwt_algorithm)

        print(f"Cohost session: {session.id}")
        for username in (username_a, username_b):
            print(f"  {username}: {auth.create_access_token(username)}")
    finally:
        await db.disconnect()


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(1)
    asyncio.run(seed(sys.argv[1], sys.argv[2]))
