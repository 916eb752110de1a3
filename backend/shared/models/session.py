"""Data models for live_sessions and live_session_invites tables."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal

SessionType = Literal["cohost", "battle"]
SessionMode = Literal["standard", "speed"]
SessionStatus = Literal["pending", "active", "cooldown", "ended"]
InviteStatus = Literal["pending", "accepted", "declined", "cancelled"]

SESSION_MODES: tuple[str, ...] = ("standard", "speed")

# (battle, cooldown) lengths in seconds per mode
TIMER_DURATIONS: dict[str, tuple[int, int]] = {
    "speed": (60, 15),
    "standard": (180, 30),
}


def battle_duration(mode: str) -> timedelta:
    return timedelta(seconds=TIMER_DURATIONS.get(mode, TIMER_DURATIONS["standard"])[0])


def cooldown_duration(mode: str) -> timedelta:
    return timedelta(seconds=TIMER_DURATIONS.get(mode, TIMER_DURATIONS["standard"])[1])


@dataclass
class LiveSession:
    """A cohost or battle pairing between two hosts."""

    id: str
    host_a: str
    host_b: str
    type: SessionType
    status: SessionStatus
    mode: SessionMode = "standard"
    started_at: datetime | None = None
    ends_at: datetime | None = None
    cooldown_ends_at: datetime | None = None
    battle_round: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def side_of(self, profile_id: str) -> str | None:
        """Return 'A' / 'B' for a participant, None for anyone else."""
        if profile_id == self.host_a:
            return "A"
        if profile_id == self.host_b:
            return "B"
        return None

    def is_participant(self, profile_id: str) -> bool:
        return self.side_of(profile_id) is not None

    def other_participant(self, profile_id: str) -> str:
        return self.host_b if profile_id == self.host_a else self.host_a

    @property
    def is_active_battle(self) -> bool:
        return self.type == "battle" and self.status == "active"

    @property
    def can_start_battle(self) -> bool:
        """A live cohost session, or a battle in cooldown (rematch)."""
        if self.type == "cohost":
            return self.status == "active"
        return self.status == "cooldown"


@dataclass
class LiveSessionInvite:
    """A request to pull a host into a battle."""

    id: str
    session_id: str | None
    from_host_id: str
    to_host_id: str
    type: SessionType = "battle"
    mode: SessionMode = "standard"
    status: InviteStatus = "pending"
    round: int = 0
    created_at: datetime | None = None
    responded_at: datetime | None = None


@dataclass
class AcceptanceTally:
    """Invite counts for one session's battle round, taken under the session lock."""

    invite: LiveSessionInvite
    session: LiveSession
    invited: int
    accepted: int
