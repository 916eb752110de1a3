"""Data models for battle_scores and battle_supporters tables."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class BattleScoreState:
    """Per-session scoring state."""

    session_id: str
    side_a_score: int = 0
    side_b_score: int = 0
    boost_active: bool = False
    boost_multiplier: float = 1.0
    boost_ends_at: datetime | None = None
    updated_at: datetime | None = None

    def effective_multiplier(self, now: datetime) -> float:
        """Multiplier for a gift scored at *now*; 1 unless a boost is running."""
        if not self.boost_active:
            return 1.0
        if self.boost_ends_at is not None and self.boost_ends_at <= now:
            return 1.0
        return float(self.boost_multiplier)

    @property
    def scores(self) -> dict[str, int]:
        return {"A": self.side_a_score, "B": self.side_b_score}


@dataclass
class SupporterContribution:
    """Append-only record of a single scoring event."""

    session_id: str
    profile_id: str
    side: str  # 'A' | 'B'
    points_delta: int
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    chat_award: bool = False
    created_at: datetime | None = None


@dataclass
class SupporterTotal:
    """Aggregated supporter leaderboard row."""

    profile_id: str
    side: str
    points: int
    gifts: int
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
