"""Data model for the battle_pool table (speed-battle matchmaking)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

PoolStatus = Literal["waiting", "matched"]


@dataclass
class PoolEntry:
    """One row per host waiting for, or just matched into, a speed battle."""

    profile_id: str
    status: PoolStatus
    joined_at: datetime
    session_id: str | None = None
    matched_at: datetime | None = None
