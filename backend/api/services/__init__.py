"""Services layer - Business logic

Service classes wrap the shared repositories with validation, state checks
and logging. They are built per request through dependency injection.
"""

from .auth_service import AuthService
from .battle_service import BattleService, GiftScore
from .cleanup_service import CleanupService
from .matchmaking_service import MatchmakingService
from .presence_service import PresenceService
from .quorum import AllInvitedQuorum, FixedQuorum, QuorumPolicy, quorum_from_size

__all__ = [
    "AllInvitedQuorum",
    "AuthService",
    "BattleService",
    "CleanupService",
    "FixedQuorum",
    "GiftScore",
    "MatchmakingService",
    "PresenceService",
    "QuorumPolicy",
    "quorum_from_size",
]
