"""Viewer heartbeat / viewer list (service role) and room presence (user session) routes"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from core.dependencies import get_current_profile_id, get_presence_service, require_service_role
from services import PresenceService
from services.presence_service import MAX_STREAM_ID
from shared.errors import LiveError
from shared.models.presence import PresenceFlags

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["presence"])


# ============================================
# Request/Response Models
# ============================================


class HeartbeatRequest(BaseModel):
    # strict: JSON true or "42" must not pass as a stream id
    live_stream_id: int = Field(..., strict=True, gt=0, le=MAX_STREAM_ID)
    viewer_id: str = Field(..., min_length=1)
    is_active: bool = Field(default=True, strict=True)
    is_unmuted: bool = Field(default=True, strict=True)
    is_visible: bool = Field(default=True, strict=True)
    is_subscribed: bool = Field(default=True, strict=True)


class SuccessResponse(BaseModel):
    success: bool = True


class ViewerListEntry(BaseModel):
    viewer_id: str
    username: str
    display_name: str | None = None
    avatar_url: str | None = None
    is_active: bool
    is_unmuted: bool
    is_visible: bool
    is_subscribed: bool
    last_active_at: datetime


class ViewerListResponse(BaseModel):
    viewers: list[ViewerListEntry]


class RoomHeartbeatRequest(BaseModel):
    room_id: str | None = None


class RoomHeartbeatResponse(BaseModel):
    success: bool = True
    room_id: str | None = None
    last_seen_at: datetime


class RoomCountResponse(BaseModel):
    room_id: str | None = None
    count: int


# ============================================
# Viewer Presence (service role)
# ============================================


@router.post(
    "/heartbeat",
    response_model=SuccessResponse,
    dependencies=[Depends(require_service_role)],
)
async def heartbeat(
    body: HeartbeatRequest,
    service: PresenceService = Depends(get_presence_service),
) -> SuccessResponse:
    """Refresh a viewer's presence on a stream. Safe to repeat."""
    flags = PresenceFlags(
        is_active=body.is_active,
        is_unmuted=body.is_unmuted,
        is_visible=body.is_visible,
        is_subscribed=body.is_subscribed,
    )
    try:
        await service.heartbeat(body.live_stream_id, body.viewer_id, flags)
        return SuccessResponse()
    except LiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Heartbeat failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to record heartbeat") from None


@router.get(
    "/viewers",
    response_model=ViewerListResponse,
    dependencies=[Depends(require_service_role)],
)
async def list_viewers(
    live_stream_id: int | None = Query(default=None, gt=0, le=MAX_STREAM_ID),
    service: PresenceService = Depends(get_presence_service),
) -> ViewerListResponse:
    """List a stream's viewers, active first."""
    if live_stream_id is None:
        raise HTTPException(status_code=400, detail="live_stream_id is required")
    try:
        viewers = await service.list_viewers(live_stream_id)
        return ViewerListResponse(viewers=[ViewerListEntry(**v) for v in viewers])
    except LiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Failed to list viewers for stream {live_stream_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load viewers") from None


# ============================================
# Room Presence (user session)
# ============================================


@router.post("/room-presence/heartbeat", response_model=RoomHeartbeatResponse)
async def room_heartbeat(
    body: RoomHeartbeatRequest,
    profile_id: str = Depends(get_current_profile_id),
    service: PresenceService = Depends(get_presence_service),
) -> RoomHeartbeatResponse:
    try:
        result = await service.room_heartbeat(profile_id, body.room_id)
        return RoomHeartbeatResponse(**result)
    except LiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Room heartbeat failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to record room presence") from None


@router.get("/room-presence/count", response_model=RoomCountResponse)
async def room_count(
    room_id: str | None = Query(default=None),
    profile_id: str = Depends(get_current_profile_id),
    service: PresenceService = Depends(get_presence_service),
) -> RoomCountResponse:
    """How many others are in the room right now."""
    try:
        count = await service.room_count(room_id, profile_id)
        return RoomCountResponse(room_id=room_id, count=count)
    except LiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Room presence count failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to count room presence") from None
