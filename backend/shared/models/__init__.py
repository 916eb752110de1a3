"""Shared data models for the live presence backend."""

from .battle import BattleScoreState, SupporterContribution, SupporterTotal
from .pool import PoolEntry
from .presence import PresenceFlags, RoomPresence, ViewerPresence
from .profile import Profile
from .session import AcceptanceTally, LiveSession, LiveSessionInvite

__all__ = [
    "AcceptanceTally",
    "BattleScoreState",
    "LiveSession",
    "LiveSessionInvite",
    "PoolEntry",
    "PresenceFlags",
    "Profile",
    "RoomPresence",
    "SupporterContribution",
    "SupporterTotal",
    "ViewerPresence",
]
