"""Dependency injection utilities for FastAPI"""

import logging
from datetime import timedelta

import asyncpg
from fastapi import Cookie, Depends, Header, HTTPException

from core.config import get_settings
from core.database import get_database_manager
from services import (
    AuthService,
    BattleService,
    CleanupService,
    MatchmakingService,
    PresenceService,
    quorum_from_size,
)
from shared.repositories import (
    BattlePoolRepository,
    BattleRepository,
    PresenceRepository,
    ProfileRepository,
    SessionRepository,
    StreamRepository,
)

logger = logging.getLogger(__name__)


# ============================================
# Infrastructure
# ============================================


def get_auth_service() -> AuthService:
    settings = get_settings()
    return AuthService(
        secret_key=settings.jwt_secret_key,
        service_role_key=settings.service_role_key,
        algorithm=settings.jwt_algorithm,
    )


def get_db_pool() -> asyncpg.Pool:
    db_manager = get_database_manager()
    if db_manager is None or not db_manager.is_connected:
        raise HTTPException(status_code=503, detail="Database not ready")
    return db_manager.pool


# ============================================
# Service Dependencies
# ============================================


def get_presence_service(pool: asyncpg.Pool = Depends(get_db_pool)) -> PresenceService:
    settings = get_settings()
    return PresenceService(
        PresenceRepository(pool),
        ProfileRepository(pool),
        stale_after=timedelta(seconds=settings.presence_stale_seconds),
        list_limit=settings.viewer_list_limit,
    )


def get_battle_service(pool: asyncpg.Pool = Depends(get_db_pool)) -> BattleService:
    settings = get_settings()
    return BattleService(
        SessionRepository(pool),
        BattleRepository(pool),
        quorum=quorum_from_size(settings.battle_quorum_size),
        boost_multiplier=settings.boost_default_multiplier,
        boost_seconds=settings.boost_default_seconds,
    )


def get_cleanup_service(pool: asyncpg.Pool = Depends(get_db_pool)) -> CleanupService:
    return CleanupService(StreamRepository(pool), PresenceRepository(pool))


def get_matchmaking_service(pool: asyncpg.Pool = Depends(get_db_pool)) -> MatchmakingService:
    return MatchmakingService(BattlePoolRepository(pool), SessionRepository(pool))


# ============================================
# Authentication Dependencies
# ============================================


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def _get_token_payload(auth_token: str | None) -> dict:
    """Verify the session cookie JWT and return its payload"""
    if not auth_token:
        logger.debug("No auth token provided")
        raise HTTPException(status_code=401, detail="Not logged in")

    payload = get_auth_service().verify_token(auth_token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return payload


async def get_current_profile_id(auth_token: str | None = Cookie(None)) -> str:
    """Return the caller's profile id from the session cookie"""
    payload = _get_token_payload(auth_token)
    return str(payload["sub"])


async def require_service_role(authorization: str | None = Header(None)) -> None:
    """Allow only privileged server-side callers (bypasses per-row ownership)"""
    if not get_auth_service().verify_service_key(_bearer_token(authorization)):
        logger.warning("Rejected request without a valid service role key")
        raise HTTPException(status_code=401, detail="Service role required")


async def get_gift_caller(
    authorization: str | None = Header(None),
    auth_token: str | None = Cookie(None),
) -> str | None:
    """Service role (returns None) or the signed-in gifter's profile id"""
    token = _bearer_token(authorization)
    if token and get_auth_service().verify_service_key(token):
        return None
    payload = _get_token_payload(auth_token)
    return str(payload["sub"])
