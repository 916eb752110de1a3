"""Cohost / battle session state machine and gift scoring."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from services.quorum import AllInvitedQuorum, QuorumPolicy
from shared.errors import Forbidden, Internal, InvalidArgument, InvalidState, NotFound
from shared.models.battle import BattleScoreState, SupporterContribution
from shared.models.session import (
    SESSION_MODES,
    TIMER_DURATIONS,
    LiveSession,
    LiveSessionInvite,
    battle_duration,
    cooldown_duration,
)
from shared.repositories import BattleRepository, SessionRepository

logger = logging.getLogger(__name__)


# Keeps floor(coins * max boost) well inside the BIGINT score columns
MAX_COIN_AMOUNT = 2**31 - 1


def _utcnow() -> datetime:
    return datetime.now(UTC)


def award_points(coin_amount: int, multiplier: float) -> int:
    """floor(coins * multiplier), computed in decimal so 1.15 * 100 stays 115."""
    return math.floor(Decimal(coin_amount) * Decimal(str(multiplier)))


@dataclass
class GiftScore:
    """A gift forwarded by the gift pipeline for battle scoring."""

    session_id: str
    recipient_id: str
    sender_id: str
    coin_amount: int
    sender_username: str | None = None
    sender_display_name: str | None = None
    sender_avatar_url: str | None = None
    chat_award: bool = False


def _session_payload(session: LiveSession) -> dict:
    return {
        "session_id": session.id,
        "type": session.type,
        "mode": session.mode,
        "status": session.status,
        "host_a": session.host_a,
        "host_b": session.host_b,
        "started_at": session.started_at,
        "ends_at": session.ends_at,
        "cooldown_ends_at": session.cooldown_ends_at,
    }


def _scores_payload(state: BattleScoreState) -> dict:
    return {"side_a": state.side_a_score, "side_b": state.side_b_score}


class BattleService:
    """API-facing session / battle operations."""

    def __init__(
        self,
        session_repo: SessionRepository,
        battle_repo: BattleRepository,
        *,
        quorum: QuorumPolicy | None = None,
        boost_multiplier: float = 1.5,
        boost_seconds: int = 30,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session_repo = session_repo
        self.battle_repo = battle_repo
        self.quorum = quorum or AllInvitedQuorum()
        self.boost_multiplier = boost_multiplier
        self.boost_seconds = boost_seconds
        self.clock = clock

    # ==================== Lookups ====================

    async def _load_session(self, session_id: str) -> LiveSession:
        if not session_id:
            raise InvalidArgument("session_id is required")
        session = await self.session_repo.get_session(session_id)
        if session is None:
            raise NotFound("Session not found")
        return session

    async def _load_participant_session(self, caller_id: str, session_id: str) -> LiveSession:
        session = await self._load_session(session_id)
        if not session.is_participant(caller_id):
            raise Forbidden("Not a participant in this session")
        return session

    async def _load_invite(self, invite_id: str) -> LiveSessionInvite:
        if not invite_id:
            raise InvalidArgument("invite_id is required")
        invite = await self.session_repo.get_invite(invite_id)
        if invite is None:
            raise NotFound("Invite not found")
        return invite

    async def get_active_session(self, host_id: str) -> dict | None:
        session = await self.session_repo.get_active_session_for_host(host_id)
        return _session_payload(session) if session else None

    async def pending_invites(self, profile_id: str) -> list[dict]:
        invites = await self.session_repo.list_pending_invites_for(profile_id)
        return [asdict(invite) for invite in invites]

    # ==================== Invites ====================

    async def _invite_opponent(self, caller_id: str, session: LiveSession, mode: str) -> dict:
        """Send (at most) one pending battle invite per sender for the current round."""
        existing = await self.session_repo.find_pending_invite(
            session.id, caller_id, session.battle_round
        )
        if existing is None:
            invite = await self.session_repo.create_invite(
                session_id=session.id,
                from_host_id=caller_id,
                to_host_id=session.other_participant(caller_id),
                mode=mode,
                battle_round=session.battle_round,
            )
            if invite is not None:
                logger.info(
                    f"Battle invite {invite.id} sent for session {session.id} "
                    f"({caller_id} -> {invite.to_host_id}, {mode}, round {invite.round})"
                )
                return {"invite_id": invite.id, "message": "Battle invite sent"}
            # A concurrent start inserted it first
            existing = await self.session_repo.find_pending_invite(
                session.id, caller_id, session.battle_round
            )
            if existing is None:
                raise InvalidState("Battle invite could not be created")
        return {"invite_id": existing.id, "message": "Battle invite already pending"}

    async def start_battle(self, caller_id: str, session_id: str, mode: str = "standard") -> dict:
        """Invite the other cohost into a battle. The session is not changed yet."""
        if mode not in SESSION_MODES:
            raise InvalidArgument(f"mode must be one of {', '.join(SESSION_MODES)}")

        session = await self._load_participant_session(caller_id, session_id)
        if session.type != "cohost":
            raise InvalidState("Battles can only be started from a cohost session")
        if session.status != "active":
            raise InvalidState(f"Cohost session is {session.status}")
        return await self._invite_opponent(caller_id, session, mode)

    async def start_rematch(
        self, caller_id: str, session_id: str, mode: str | None = None
    ) -> dict:
        """Invite the opponent into another round straight from cooldown.

        Defaults to the mode of the battle that just finished.
        """
        session = await self._load_participant_session(caller_id, session_id)
        if session.type != "battle" or session.status != "cooldown":
            raise InvalidState("A rematch needs a battle in cooldown")
        mode = mode or session.mode
        if mode not in SESSION_MODES:
            raise InvalidArgument(f"mode must be one of {', '.join(SESSION_MODES)}")
        return await self._invite_opponent(caller_id, session, mode)

    async def accept_battle(self, caller_id: str, invite_id: str) -> dict:
        """Record an acceptance; start the battle once the quorum is reached."""
        invite = await self._load_invite(invite_id)
        if invite.to_host_id != caller_id:
            raise Forbidden("Only the invited host can accept")
        if invite.status != "pending":
            raise InvalidState(f"Invite is {invite.status}")
        if invite.session_id is None:
            raise InvalidState("Invite has no session")

        session = await self._load_session(invite.session_id)
        if session.status == "ended":
            raise InvalidState("Session has ended")
        if not session.can_start_battle:
            raise InvalidState("Session is already in a battle")
        if invite.round != session.battle_round:
            raise InvalidState("Invite belongs to an earlier battle")

        # Re-checked under the session lock; nothing is written if it moved on
        tally = await self.session_repo.record_acceptance(invite.id)
        if tally is None:
            raise InvalidState("Invite is no longer pending or the session moved on")

        required = self.quorum.required(tally.invited)
        pending_count = max(required - tally.accepted, 0)
        if pending_count > 0:
            logger.info(
                f"Battle invite {invite.id} accepted, waiting on {pending_count} more "
                f"(session {session.id})"
            )
            return {
                "status": "accepted_waiting",
                "session_id": session.id,
                "pending_count": pending_count,
                "message": f"Waiting for {pending_count} more acceptance(s)",
            }

        now = self.clock()
        started = await self.session_repo.start_battle(
            session.id, invite.mode, now, now + battle_duration(invite.mode)
        )
        if started is None:
            # Lost the race to another acceptance; report what it produced
            started = await self._load_session(session.id)
            if not started.is_active_battle:
                raise InvalidState("Session could not be moved into a battle")

        logger.info(f"Battle started for session {started.id} (mode={started.mode})")
        return {
            "status": "battle_started",
            "session_id": started.id,
            "type": started.type,
            "started_at": started.started_at,
            "ends_at": started.ends_at,
            "pending_count": 0,
            "message": "Battle started",
        }

    async def decline_invite(self, caller_id: str, invite_id: str) -> dict:
        invite = await self._load_invite(invite_id)
        if invite.to_host_id != caller_id:
            raise Forbidden("Only the invited host can decline")
        updated = await self.session_repo.respond_to_invite(invite.id, "declined")
        if updated is None:
            raise InvalidState(f"Invite is {invite.status}")
        return {"invite_id": updated.id, "status": updated.status}

    async def cancel_invite(self, caller_id: str, invite_id: str) -> dict:
        invite = await self._load_invite(invite_id)
        if invite.from_host_id != caller_id:
            raise Forbidden("Only the sender can cancel an invite")
        updated = await self.session_repo.respond_to_invite(invite.id, "cancelled")
        if updated is None:
            raise InvalidState(f"Invite is {invite.status}")
        return {"invite_id": updated.id, "status": updated.status}

    # ==================== Session transitions ====================

    async def end_session(self, caller_id: str, session_id: str, action: str = "end") -> dict:
        """End the session, or put an active battle into cooldown."""
        if action not in ("end", "cooldown"):
            raise InvalidArgument("action must be 'end' or 'cooldown'")

        session = await self._load_participant_session(caller_id, session_id)
        if action == "cooldown":
            if not session.is_active_battle:
                raise InvalidState("Only an active battle can enter cooldown")
            updated = await self.session_repo.start_cooldown(
                session.id, self.clock() + cooldown_duration(session.mode)
            )
        else:
            updated = await self.session_repo.end_session(session.id)

        if updated is None:
            raise InvalidState(f"Session is {session.status}")
        logger.info(f"Session {session.id} -> {updated.type}/{updated.status} by {caller_id}")
        return _session_payload(updated)

    async def cooldown_to_cohost(self, caller_id: str, session_id: str) -> dict:
        session = await self._load_participant_session(caller_id, session_id)
        updated = await self.session_repo.cooldown_to_cohost(session.id)
        if updated is None:
            raise InvalidState("Session is not a battle in cooldown")
        return _session_payload(updated)

    async def sweep(self) -> tuple[int, int]:
        """Run battle timers: expired battles to cooldown, finished cooldowns to cohost."""
        now = self.clock()
        cooldowns = {mode: durations[1] for mode, durations in TIMER_DURATIONS.items()}
        expired = await self.session_repo.expire_battles(now, cooldowns)
        finished = await self.session_repo.finish_cooldowns(now)
        if expired or finished:
            logger.info(f"Battle timers: {expired} to cooldown, {finished} back to cohost")
        return expired, finished

    # ==================== Scoring ====================

    async def activate_boost(
        self,
        caller_id: str,
        session_id: str,
        multiplier: float | None = None,
        duration_seconds: int | None = None,
    ) -> dict:
        multiplier = self.boost_multiplier if multiplier is None else multiplier
        duration_seconds = self.boost_seconds if duration_seconds is None else duration_seconds
        if multiplier <= 1:
            raise InvalidArgument("multiplier must be greater than 1")
        if duration_seconds <= 0:
            raise InvalidArgument("duration_seconds must be positive")

        session = await self._load_participant_session(caller_id, session_id)
        if not session.is_active_battle:
            raise InvalidState("Boosts only apply to an active battle")

        ends_at = self.clock() + timedelta(seconds=duration_seconds)
        state = await self.battle_repo.set_boost(session.id, multiplier, ends_at)
        logger.info(f"Boost x{multiplier} on session {session.id} until {ends_at.isoformat()}")
        return {
            "session_id": session.id,
            "boost_active": state.boost_active,
            "boost_multiplier": state.boost_multiplier,
            "boost_ends_at": state.boost_ends_at,
        }

    async def score_gift(self, gift: GiftScore) -> dict:
        """Turn a gift into battle points for the recipient's side."""
        if not gift.session_id or not gift.recipient_id or not gift.sender_id:
            raise InvalidArgument("session_id, recipient_id and sender_id are required")
        if isinstance(gift.coin_amount, bool) or not isinstance(gift.coin_amount, int):
            raise InvalidArgument("coin_amount must be a positive integer")
        if not 0 < gift.coin_amount <= MAX_COIN_AMOUNT:
            raise InvalidArgument("coin_amount must be a positive integer")

        session = await self._load_session(gift.session_id)
        if not session.is_active_battle:
            raise InvalidState("Session is not an active battle")

        side = session.side_of(gift.recipient_id)
        if side is None:
            raise InvalidArgument("Recipient is not a participant in this battle")

        now = self.clock()
        state = await self.battle_repo.get_score_state(session.id)
        multiplier = state.effective_multiplier(now) if state else 1.0
        points = award_points(gift.coin_amount, multiplier)

        contribution = SupporterContribution(
            session_id=session.id,
            profile_id=gift.sender_id,
            side=side,
            points_delta=points,
            username=gift.sender_username,
            display_name=gift.sender_display_name,
            avatar_url=gift.sender_avatar_url,
            chat_award=gift.chat_award,
        )
        try:
            updated = await self.battle_repo.apply_score(contribution)
        except Exception as e:
            logger.exception(
                f"Battle score apply failed (session={session.id}, sender={gift.sender_id}, "
                f"points={points}): {e}"
            )
            raise Internal(f"Failed to apply battle score: {e}") from e
        if updated is None:
            raise InvalidState("Session is not an active battle")

        return {
            "side": side,
            "points_awarded": points,
            "boost_applied": multiplier != 1.0,
            "boost_multiplier": multiplier,
            "scores": _scores_payload(updated),
        }

    async def get_scores(self, session_id: str, supporters_limit: int = 10) -> dict:
        """Current scores, boost state and the top supporters of a battle."""
        session = await self._load_session(session_id)
        state = await self.battle_repo.get_score_state(session.id) or BattleScoreState(
            session_id=session.id
        )
        supporters = await self.battle_repo.top_supporters(session.id, supporters_limit)
        now = self.clock()
        return {
            "session": _session_payload(session),
            "scores": _scores_payload(state),
            "boost_active": state.effective_multiplier(now) != 1.0,
            "boost_multiplier": state.effective_multiplier(now),
            "boost_ends_at": state.boost_ends_at,
            "top_supporters": [asdict(s) for s in supporters],
        }
