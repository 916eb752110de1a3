"""Stream cleanup route, hit by the page-unload beacon"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from core.dependencies import get_cleanup_service, get_current_profile_id
from services import CleanupService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["cleanup"])


class CleanupStep(BaseModel):
    ok: bool
    affected: int


class CleanupResponse(BaseModel):
    success: bool = True
    steps: dict[str, CleanupStep]


def _parse_beacon(raw: bytes) -> dict:
    """Beacons often arrive as text/plain; accept any JSON object, else nothing."""
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.debug("Unparseable stream-cleanup payload, treating as end_stream")
        return {}
    return data if isinstance(data, dict) else {}


@router.post("/stream-cleanup", response_model=CleanupResponse)
async def stream_cleanup(
    request: Request,
    profile_id: str = Depends(get_current_profile_id),
    service: CleanupService = Depends(get_cleanup_service),
) -> CleanupResponse:
    """End the caller's streams and drop their grid slots and room presence.

    The identity always comes from the session cookie, never from the body.
    """
    payload = _parse_beacon(await request.body())
    action = payload.get("action", "end_stream")
    if action != "end_stream":
        raise HTTPException(status_code=400, detail=f"Unsupported action: {action}")

    reason = payload.get("reason")
    steps = await service.handle_disconnect(profile_id, reason if isinstance(reason, str) else None)
    return CleanupResponse(steps=steps)
