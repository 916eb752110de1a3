"""Cohost / battle session API routes"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from core.dependencies import (
    get_battle_service,
    get_current_profile_id,
    get_gift_caller,
    get_matchmaking_service,
)
from services import BattleService, GiftScore, MatchmakingService
from services.battle_service import MAX_COIN_AMOUNT
from shared.errors import LiveError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/battle", tags=["battle"])


# ============================================
# Request/Response Models
# ============================================


class StartBattleRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    mode: str = "standard"


class RematchRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    mode: str | None = None


class StartBattleResponse(BaseModel):
    success: bool = True
    invite_id: str
    message: str


class InviteRequest(BaseModel):
    invite_id: str = Field(..., min_length=1)


class AcceptBattleResponse(BaseModel):
    success: bool = True
    status: str
    session_id: str | None = None
    type: str | None = None
    started_at: datetime | None = None
    ends_at: datetime | None = None
    pending_count: int | None = None
    message: str


class InviteStatusResponse(BaseModel):
    success: bool = True
    invite_id: str
    status: str


class ScoreRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    recipient_id: str = Field(..., min_length=1)
    sender_id: str = Field(..., min_length=1)
    sender_username: str | None = None
    sender_display_name: str | None = None
    sender_avatar_url: str | None = None
    coin_amount: int = Field(..., strict=True, gt=0, le=MAX_COIN_AMOUNT)
    chat_award: bool = False


class Scores(BaseModel):
    side_a: int
    side_b: int


class ScoreResponse(BaseModel):
    success: bool = True
    side: str
    points_awarded: int
    boost_applied: bool
    boost_multiplier: float
    scores: Scores


class SessionResponse(BaseModel):
    session_id: str
    type: str
    mode: str
    status: str
    host_a: str
    host_b: str
    started_at: datetime | None = None
    ends_at: datetime | None = None
    cooldown_ends_at: datetime | None = None


class EndSessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    action: str = "end"


class SessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1)


class BoostRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    multiplier: float | None = Field(default=None, gt=1.0, le=10.0)
    duration_seconds: int | None = Field(default=None, ge=1, le=600)


class BoostResponse(BaseModel):
    success: bool = True
    session_id: str
    boost_active: bool
    boost_multiplier: float
    boost_ends_at: datetime | None = None


class SupporterEntry(BaseModel):
    profile_id: str
    side: str
    points: int
    gifts: int
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None


class BattleScoresResponse(BaseModel):
    session: SessionResponse
    scores: Scores
    boost_active: bool
    boost_multiplier: float
    boost_ends_at: datetime | None = None
    top_supporters: list[SupporterEntry]


class InviteEntry(BaseModel):
    id: str
    session_id: str | None = None
    from_host_id: str
    to_host_id: str
    type: str
    mode: str
    status: str
    created_at: datetime | None = None


class ActiveSessionResponse(BaseModel):
    session: SessionResponse | None = None


class PoolStatusResponse(BaseModel):
    in_pool: bool
    status: str | None = None
    matched: bool = False
    session_id: str | None = None
    joined_at: datetime | None = None


class PoolLeaveResponse(BaseModel):
    in_pool: bool = False
    left: bool


class PoolMatchResponse(BaseModel):
    matched: bool
    session_id: str | None = None
    opponent_id: str | None = None
    ends_at: datetime | None = None
    reason: str | None = None


# ============================================
# Invites
# ============================================


@router.post("/start", response_model=StartBattleResponse)
async def start_battle(
    body: StartBattleRequest,
    profile_id: str = Depends(get_current_profile_id),
    service: BattleService = Depends(get_battle_service),
) -> StartBattleResponse:
    """Invite the other cohost into a battle."""
    try:
        result = await service.start_battle(profile_id, body.session_id, body.mode)
        return StartBattleResponse(**result)
    except LiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Failed to start battle for session {body.session_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to start battle") from None


@router.post("/rematch", response_model=StartBattleResponse)
async def start_rematch(
    body: RematchRequest,
    profile_id: str = Depends(get_current_profile_id),
    service: BattleService = Depends(get_battle_service),
) -> StartBattleResponse:
    """Invite the opponent into another round while the battle is in cooldown."""
    try:
        result = await service.start_rematch(profile_id, body.session_id, body.mode)
        return StartBattleResponse(**result)
    except LiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Failed to start rematch for session {body.session_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to start rematch") from None


@router.post("/accept", response_model=AcceptBattleResponse)
async def accept_battle(
    body: InviteRequest,
    profile_id: str = Depends(get_current_profile_id),
    service: BattleService = Depends(get_battle_service),
) -> AcceptBattleResponse:
    """Accept a battle invite; starts the battle once everyone needed has accepted."""
    try:
        result = await service.accept_battle(profile_id, body.invite_id)
        return AcceptBattleResponse(**result)
    except LiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Failed to accept battle invite {body.invite_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to accept battle") from None


@router.post("/decline", response_model=InviteStatusResponse)
async def decline_invite(
    body: InviteRequest,
    profile_id: str = Depends(get_current_profile_id),
    service: BattleService = Depends(get_battle_service),
) -> InviteStatusResponse:
    try:
        result = await service.decline_invite(profile_id, body.invite_id)
        return InviteStatusResponse(**result)
    except LiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Failed to decline invite {body.invite_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to decline invite") from None


@router.post("/cancel", response_model=InviteStatusResponse)
async def cancel_invite(
    body: InviteRequest,
    profile_id: str = Depends(get_current_profile_id),
    service: BattleService = Depends(get_battle_service),
) -> InviteStatusResponse:
    try:
        result = await service.cancel_invite(profile_id, body.invite_id)
        return InviteStatusResponse(**result)
    except LiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Failed to cancel invite {body.invite_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to cancel invite") from None


@router.get("/invites", response_model=list[InviteEntry])
async def pending_invites(
    profile_id: str = Depends(get_current_profile_id),
    service: BattleService = Depends(get_battle_service),
) -> list[InviteEntry]:
    """Pending invites addressed to the caller, newest first."""
    try:
        invites = await service.pending_invites(profile_id)
        return [InviteEntry(**invite) for invite in invites]
    except Exception as e:
        logger.exception(f"Failed to load invites for {profile_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load invites") from None


# ============================================
# Sessions
# ============================================


@router.get("/active", response_model=ActiveSessionResponse)
async def active_session(
    host_id: str = Query(..., min_length=1),
    _: str = Depends(get_current_profile_id),
    service: BattleService = Depends(get_battle_service),
) -> ActiveSessionResponse:
    """The host's current cohost / battle session, if any (used by viewers)."""
    try:
        session = await service.get_active_session(host_id)
        return ActiveSessionResponse(session=SessionResponse(**session) if session else None)
    except Exception as e:
        logger.exception(f"Failed to load active session for {host_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load session") from None


@router.post("/end", response_model=SessionResponse)
async def end_session(
    body: EndSessionRequest,
    profile_id: str = Depends(get_current_profile_id),
    service: BattleService = Depends(get_battle_service),
) -> SessionResponse:
    """End a session, or move an active battle into cooldown."""
    try:
        result = await service.end_session(profile_id, body.session_id, body.action)
        return SessionResponse(**result)
    except LiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Failed to end session {body.session_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to end session") from None


@router.post("/cooldown-to-cohost", response_model=SessionResponse)
async def cooldown_to_cohost(
    body: SessionRequest,
    profile_id: str = Depends(get_current_profile_id),
    service: BattleService = Depends(get_battle_service),
) -> SessionResponse:
    """Return a battle in cooldown to a plain cohost session."""
    try:
        result = await service.cooldown_to_cohost(profile_id, body.session_id)
        return SessionResponse(**result)
    except LiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Failed to return session {body.session_id} to cohost: {e}")
        raise HTTPException(status_code=500, detail="Failed to update session") from None


# ============================================
# Scoring
# ============================================


@router.post("/score", response_model=ScoreResponse)
async def score_gift(
    body: ScoreRequest,
    caller_id: str | None = Depends(get_gift_caller),
    service: BattleService = Depends(get_battle_service),
) -> ScoreResponse:
    """Apply a gift's coins to the recipient's side of an active battle."""
    if caller_id is not None and caller_id != body.sender_id:
        raise HTTPException(status_code=403, detail="sender_id does not match session")
    gift = GiftScore(
        session_id=body.session_id,
        recipient_id=body.recipient_id,
        sender_id=body.sender_id,
        coin_amount=body.coin_amount,
        sender_username=body.sender_username,
        sender_display_name=body.sender_display_name,
        sender_avatar_url=body.sender_avatar_url,
        chat_award=body.chat_award,
    )
    try:
        result = await service.score_gift(gift)
        return ScoreResponse(**result)
    except LiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Failed to score gift for session {body.session_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to apply battle score") from None


@router.post("/boost", response_model=BoostResponse)
async def activate_boost(
    body: BoostRequest,
    profile_id: str = Depends(get_current_profile_id),
    service: BattleService = Depends(get_battle_service),
) -> BoostResponse:
    try:
        result = await service.activate_boost(
            profile_id, body.session_id, body.multiplier, body.duration_seconds
        )
        return BoostResponse(**result)
    except LiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Failed to activate boost on session {body.session_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to activate boost") from None


@router.get("/{session_id}/scores", response_model=BattleScoresResponse)
async def battle_scores(
    session_id: str,
    limit: int = Query(default=10, ge=1, le=50),
    _: str = Depends(get_current_profile_id),
    service: BattleService = Depends(get_battle_service),
) -> BattleScoresResponse:
    """Scores, boost state and top supporters for a battle."""
    try:
        result = await service.get_scores(session_id, limit)
        return BattleScoresResponse(**result)
    except LiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Failed to load scores for session {session_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load scores") from None


# ============================================
# Speed-battle pool
# ============================================


@router.post("/pool/join", response_model=PoolStatusResponse)
async def join_pool(
    profile_id: str = Depends(get_current_profile_id),
    service: MatchmakingService = Depends(get_matchmaking_service),
) -> PoolStatusResponse:
    try:
        result = await service.join_pool(profile_id)
        return PoolStatusResponse(**result)
    except LiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Failed to add {profile_id} to the battle pool: {e}")
        raise HTTPException(status_code=500, detail="Failed to join pool") from None


@router.post("/pool/leave", response_model=PoolLeaveResponse)
async def leave_pool(
    profile_id: str = Depends(get_current_profile_id),
    service: MatchmakingService = Depends(get_matchmaking_service),
) -> PoolLeaveResponse:
    try:
        result = await service.leave_pool(profile_id)
        return PoolLeaveResponse(**result)
    except Exception as e:
        logger.exception(f"Failed to remove {profile_id} from the battle pool: {e}")
        raise HTTPException(status_code=500, detail="Failed to leave pool") from None


@router.get("/pool/status", response_model=PoolStatusResponse)
async def pool_status(
    profile_id: str = Depends(get_current_profile_id),
    service: MatchmakingService = Depends(get_matchmaking_service),
) -> PoolStatusResponse:
    try:
        result = await service.pool_status(profile_id)
        return PoolStatusResponse(**result)
    except Exception as e:
        logger.exception(f"Failed to load pool status for {profile_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load pool status") from None


@router.post("/pool/match", response_model=PoolMatchResponse)
async def match_pool(
    profile_id: str = Depends(get_current_profile_id),
    service: MatchmakingService = Depends(get_matchmaking_service),
) -> PoolMatchResponse:
    """Pair the caller with the longest-waiting host in the pool."""
    try:
        result = await service.match(profile_id)
        return PoolMatchResponse(**result)
    except Exception as e:
        logger.exception(f"Failed to match {profile_id} from the battle pool: {e}")
        raise HTTPException(status_code=500, detail="Failed to match") from None
