"""Shared repository layer for the live presence backend."""

from .battle import BattleRepository
from .pool import BattlePoolRepository
from .presence import PresenceRepository
from .profile import ProfileRepository
from .session import SessionRepository
from .stream import StreamRepository

__all__ = [
    "BattlePoolRepository",
    "BattleRepository",
    "PresenceRepository",
    "ProfileRepository",
    "SessionRepository",
    "StreamRepository",
]
