"""In-memory stand-ins for the asyncpg repositories.

They follow the same method contracts as ``shared.repositories`` so services
can be exercised without a database. Every fake accepts ``fail_on``: a set of
method names that raise ``RuntimeError`` to simulate store failures.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta

from shared.models.battle import BattleScoreState, SupporterContribution, SupporterTotal
from shared.models.presence import PresenceFlags, RoomPresence, ViewerPresence
from shared.models.profile import Profile
from shared.models.pool import PoolEntry
from shared.models.session import AcceptanceTally, LiveSession, LiveSessionInvite


HOST_A = "host-a"
HOST_B = "host-b"
GIFTER = "gifter-1"


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class _Failing:
    fail_on: set[str]

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail_on:
            raise RuntimeError(f"{name} unavailable")


class FakePresenceRepository(_Failing):
    def __init__(self, clock: FakeClock, fail_on: set[str] | None = None) -> None:
        self.clock = clock
        self.fail_on = fail_on or set()
        self.viewers: dict[tuple[int, str], ViewerPresence] = {}
        self.rooms: dict[str, RoomPresence] = {}
        self.calls: list[str] = []

    async def upsert_viewer(
        self, live_stream_id: int, viewer_id: str, flags: PresenceFlags
    ) -> ViewerPresence:
        self.calls.append("upsert_viewer")
        self._maybe_fail("upsert_viewer")
        row = ViewerPresence(
            live_stream_id=live_stream_id,
            viewer_id=viewer_id,
            is_active=flags.is_active,
            is_unmuted=flags.is_unmuted,
            is_visible=flags.is_visible,
            is_subscribed=flags.is_subscribed,
            last_active_at=self.clock(),
        )
        self.viewers[(live_stream_id, viewer_id)] = row
        return replace(row)

    def put_viewer(self, live_stream_id: int, viewer_id: str, *, is_active: bool, age: float) -> None:
        """Seed a row whose last heartbeat was *age* seconds ago."""
        self.viewers[(live_stream_id, viewer_id)] = ViewerPresence(
            live_stream_id=live_stream_id,
            viewer_id=viewer_id,
            is_active=is_active,
            is_unmuted=True,
            is_visible=True,
            is_subscribed=True,
            last_active_at=self.clock() - timedelta(seconds=age),
        )

    async def list_recent_viewers(self, live_stream_id: int, limit: int) -> list[ViewerPresence]:
        self.calls.append("list_recent_viewers")
        self._maybe_fail("list_recent_viewers")
        rows = [replace(v) for (sid, _), v in self.viewers.items() if sid == live_stream_id]
        rows.sort(key=lambda v: v.last_active_at, reverse=True)
        return rows[:limit]

    async def delete_stale_viewers(self, ttl_seconds: int) -> int:
        self._maybe_fail("delete_stale_viewers")
        cutoff = self.clock() - timedelta(seconds=ttl_seconds)
        stale = [k for k, v in self.viewers.items() if v.last_active_at < cutoff]
        for key in stale:
            del self.viewers[key]
        return len(stale)

    async def upsert_room_presence(self, profile_id: str, room_id: str | None) -> RoomPresence:
        self._maybe_fail("upsert_room_presence")
        row = RoomPresence(profile_id=profile_id, room_id=room_id, last_seen_at=self.clock())
        self.rooms[profile_id] = row
        return replace(row)

    async def count_room_presence(
        self, room_id: str | None, exclude_profile_id: str, window_seconds: int
    ) -> int:
        self._maybe_fail("count_room_presence")
        cutoff = self.clock() - timedelta(seconds=window_seconds)
        return sum(
            1
            for r in self.rooms.values()
            if r.room_id == room_id and r.profile_id != exclude_profile_id and r.last_seen_at > cutoff
        )

    async def delete_room_presence(self, profile_id: str) -> int:
        self._maybe_fail("delete_room_presence")
        return 1 if self.rooms.pop(profile_id, None) else 0

    async def delete_stale_room_presence(self, ttl_seconds: int) -> int:
        self._maybe_fail("delete_stale_room_presence")
        cutoff = self.clock() - timedelta(seconds=ttl_seconds)
        stale = [k for k, r in self.rooms.items() if r.last_seen_at < cutoff]
        for key in stale:
            del self.rooms[key]
        return len(stale)


class FakeProfileRepository(_Failing):
    def __init__(self, profiles: list[Profile] | None = None, fail_on: set[str] | None = None):
        self.profiles = {p.id: p for p in profiles or []}
        self.fail_on = fail_on or set()
        self.lookups: list[list[str]] = []

    async def get_profiles(self, profile_ids: list[str]) -> dict[str, Profile]:
        self.lookups.append(list(profile_ids))
        self._maybe_fail("get_profiles")
        return {pid: self.profiles[pid] for pid in profile_ids if pid in self.profiles}


class FakeStreamRepository(_Failing):
    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = fail_on or set()
        # stream id -> {"profile_id", "live_available", "ended_at"}
        self.streams: dict[int, dict] = {}
        # (viewer_id, slot_index) -> streamer_id
        self.grid_slots: dict[tuple[str, int], str] = {}

    async def end_streams_for_profile(self, profile_id: str) -> int:
        self._maybe_fail("end_streams_for_profile")
        ended = 0
        for stream in self.streams.values():
            if stream["profile_id"] == profile_id and stream["live_available"]:
                stream["live_available"] = False
                stream["ended_at"] = datetime.now(UTC)
                ended += 1
        return ended

    async def clear_grid_slots_for_streamer(self, streamer_id: str) -> int:
        self._maybe_fail("clear_grid_slots_for_streamer")
        keys = [k for k, s in self.grid_slots.items() if s == streamer_id]
        for key in keys:
            del self.grid_slots[key]
        return len(keys)


@dataclass
class FakeBattleStore:
    """State shared by the session and battle fakes (one database)."""

    sessions: dict[str, LiveSession] = field(default_factory=dict)
    invites: dict[str, LiveSessionInvite] = field(default_factory=dict)
    scores: dict[str, BattleScoreState] = field(default_factory=dict)
    supporters: list[SupporterContribution] = field(default_factory=list)
    pool: dict[str, PoolEntry] = field(default_factory=dict)

    def add_session(
        self,
        host_a: str,
        host_b: str,
        type: str = "cohost",
        status: str = "active",
        mode: str = "standard",
    ) -> LiveSession:
        session = LiveSession(
            id=str(uuid.uuid4()), host_a=host_a, host_b=host_b, type=type, status=status, mode=mode
        )
        self.sessions[session.id] = session
        if type == "battle":
            self.scores[session.id] = BattleScoreState(session_id=session.id)
        return session


class FakeSessionRepository(_Failing):
    def __init__(self, store: FakeBattleStore, fail_on: set[str] | None = None) -> None:
        self.store = store
        self.fail_on = fail_on or set()

    def _copy(self, session: LiveSession | None) -> LiveSession | None:
        return replace(session) if session else None

    async def get_session(self, session_id: str) -> LiveSession | None:
        self._maybe_fail("get_session")
        return self._copy(self.store.sessions.get(session_id))

    async def get_active_session_for_host(self, host_id: str) -> LiveSession | None:
        for session in reversed(list(self.store.sessions.values())):
            if session.status != "ended" and host_id in (session.host_a, session.host_b):
                return replace(session)
        return None

    async def create_session(
        self, host_a: str, host_b: str, type: str = "cohost", status: str = "active"
    ) -> LiveSession:
        return replace(self.store.add_session(host_a, host_b, type, status))

    async def start_battle(
        self, session_id: str, mode: str, started_at: datetime, ends_at: datetime
    ) -> LiveSession | None:
        self._maybe_fail("start_battle")
        session = self.store.sessions.get(session_id)
        if session is None or not session.can_start_battle:
            return None
        session.type, session.status, session.mode = "battle", "active", mode
        session.started_at, session.ends_at, session.cooldown_ends_at = started_at, ends_at, None
        session.battle_round += 1
        self.store.scores[session_id] = BattleScoreState(session_id=session_id)
        return replace(session)

    async def start_cooldown(self, session_id: str, cooldown_ends_at: datetime) -> LiveSession | None:
        session = self.store.sessions.get(session_id)
        if session is None or not session.is_active_battle:
            return None
        session.status, session.cooldown_ends_at = "cooldown", cooldown_ends_at
        return replace(session)

    async def cooldown_to_cohost(self, session_id: str) -> LiveSession | None:
        session = self.store.sessions.get(session_id)
        if session is None or session.type != "battle" or session.status != "cooldown":
            return None
        session.type, session.status = "cohost", "active"
        session.started_at = session.ends_at = session.cooldown_ends_at = None
        return replace(session)

    async def end_session(self, session_id: str) -> LiveSession | None:
        session = self.store.sessions.get(session_id)
        if session is None or session.status == "ended":
            return None
        session.status = "ended"
        for invite in self.store.invites.values():
            if invite.session_id == session_id and invite.status == "pending":
                invite.status = "cancelled"
        return replace(session)

    async def expire_battles(self, now: datetime, cooldown_seconds: dict[str, int]) -> int:
        count = 0
        for session in self.store.sessions.values():
            if session.is_active_battle and session.ends_at and session.ends_at <= now:
                session.status = "cooldown"
                session.cooldown_ends_at = now + timedelta(seconds=cooldown_seconds[session.mode])
                count += 1
        return count

    async def finish_cooldowns(self, now: datetime) -> int:
        count = 0
        for session in self.store.sessions.values():
            if (
                session.type == "battle"
                and session.status == "cooldown"
                and session.cooldown_ends_at
                and session.cooldown_ends_at <= now
            ):
                session.type, session.status = "cohost", "active"
                session.started_at = session.ends_at = session.cooldown_ends_at = None
                count += 1
        return count

    async def get_invite(self, invite_id: str) -> LiveSessionInvite | None:
        invite = self.store.invites.get(invite_id)
        return replace(invite) if invite else None

    def _pending_invite(
        self, session_id: str, from_host_id: str, battle_round: int
    ) -> LiveSessionInvite | None:
        for invite in self.store.invites.values():
            if (
                invite.session_id == session_id
                and invite.from_host_id == from_host_id
                and invite.round == battle_round
                and invite.type == "battle"
                and invite.status == "pending"
            ):
                return invite
        return None

    async def find_pending_invite(
        self, session_id: str, from_host_id: str, battle_round: int
    ) -> LiveSessionInvite | None:
        invite = self._pending_invite(session_id, from_host_id, battle_round)
        return replace(invite) if invite else None

    async def create_invite(
        self,
        session_id: str,
        from_host_id: str,
        to_host_id: str,
        mode: str,
        battle_round: int,
        type: str = "battle",
    ) -> LiveSessionInvite | None:
        self._maybe_fail("create_invite")
        # Partial unique index: one pending battle invite per sender and round
        if type == "battle" and self._pending_invite(session_id, from_host_id, battle_round):
            return None
        invite = LiveSessionInvite(
            id=str(uuid.uuid4()),
            session_id=session_id,
            from_host_id=from_host_id,
            to_host_id=to_host_id,
            type=type,
            mode=mode,
            round=battle_round,
        )
        self.store.invites[invite.id] = invite
        return replace(invite)

    async def list_pending_invites_for(self, to_host_id: str) -> list[LiveSessionInvite]:
        return [
            replace(i)
            for i in self.store.invites.values()
            if i.to_host_id == to_host_id and i.status == "pending"
        ]

    async def respond_to_invite(self, invite_id: str, status: str) -> LiveSessionInvite | None:
        invite = self.store.invites.get(invite_id)
        if invite is None or invite.status != "pending":
            return None
        invite.status = status
        return replace(invite)

    async def record_acceptance(self, invite_id: str) -> AcceptanceTally | None:
        invite = self.store.invites.get(invite_id)
        if invite is None:
            return None
        session = self.store.sessions[invite.session_id]
        if not session.can_start_battle:
            return None
        if invite.status != "pending" or invite.round != session.battle_round:
            return None
        invite.status = "accepted"
        same_round = [
            i
            for i in self.store.invites.values()
            if i.session_id == invite.session_id and i.round == invite.round and i.type == "battle"
        ]
        return AcceptanceTally(
            invite=replace(invite),
            session=replace(session),
            invited=sum(1 for i in same_round if i.status in ("pending", "accepted")),
            accepted=sum(1 for i in same_round if i.status == "accepted"),
        )


class FakeBattleRepository(_Failing):
    def __init__(self, store: FakeBattleStore, fail_on: set[str] | None = None) -> None:
        self.store = store
        self.fail_on = fail_on or set()

    async def get_score_state(self, session_id: str) -> BattleScoreState | None:
        state = self.store.scores.get(session_id)
        return replace(state) if state else None

    async def apply_score(self, contribution: SupporterContribution) -> BattleScoreState | None:
        self._maybe_fail("apply_score")
        session = self.store.sessions.get(contribution.session_id)
        # Yield between the state check and the write, like a real round trip
        await asyncio.sleep(0)
        if session is None or not session.is_active_battle:
            return None
        state = self.store.scores.setdefault(
            contribution.session_id, BattleScoreState(session_id=contribution.session_id)
        )
        if contribution.side == "A":
            state.side_a_score += contribution.points_delta
        else:
            state.side_b_score += contribution.points_delta
        self.store.supporters.append(contribution)
        return replace(state)

    async def set_boost(
        self, session_id: str, multiplier: float, ends_at: datetime | None
    ) -> BattleScoreState:
        state = self.store.scores.setdefault(session_id, BattleScoreState(session_id=session_id))
        state.boost_active, state.boost_multiplier, state.boost_ends_at = True, multiplier, ends_at
        return replace(state)

    async def top_supporters(self, session_id: str, limit: int = 10) -> list[SupporterTotal]:
        totals: dict[tuple[str, str], SupporterTotal] = {}
        for c in self.store.supporters:
            if c.session_id != session_id:
                continue
            key = (c.profile_id, c.side)
            total = totals.setdefault(key, SupporterTotal(profile_id=c.profile_id, side=c.side, points=0, gifts=0))
            total.points += c.points_delta
            total.gifts += 1
            total.username = c.username or total.username
            total.display_name = c.display_name or total.display_name
            total.avatar_url = c.avatar_url or total.avatar_url
        ranked = sorted(totals.values(), key=lambda t: (-t.points, t.profile_id))
        return ranked[:limit]


class FakeBattlePoolRepository(_Failing):
    def __init__(
        self, store: FakeBattleStore, clock: FakeClock, fail_on: set[str] | None = None
    ) -> None:
        self.store = store
        self.clock = clock
        self.fail_on = fail_on or set()

    async def join(self, profile_id: str) -> PoolEntry:
        self._maybe_fail("join")
        entry = self.store.pool.get(profile_id)
        joined_at = entry.joined_at if entry and entry.status == "waiting" else self.clock()
        self.store.pool[profile_id] = PoolEntry(
            profile_id=profile_id, status="waiting", joined_at=joined_at
        )
        return replace(self.store.pool[profile_id])

    async def leave(self, profile_id: str) -> bool:
        return self.store.pool.pop(profile_id, None) is not None

    async def get_entry(self, profile_id: str) -> PoolEntry | None:
        entry = self.store.pool.get(profile_id)
        return replace(entry) if entry else None

    async def match(
        self, profile_id: str, started_at: datetime, ends_at: datetime
    ) -> LiveSession | None:
        self._maybe_fail("match")
        entry = self.store.pool.get(profile_id)
        if entry is None or entry.status != "waiting":
            return None
        busy = {
            host
            for s in self.store.sessions.values()
            if s.status != "ended"
            for host in (s.host_a, s.host_b)
        }
        candidates = sorted(
            (
                e
                for e in self.store.pool.values()
                if e.status == "waiting" and e.profile_id != profile_id and e.profile_id not in busy
            ),
            key=lambda e: (e.joined_at, e.profile_id),
        )
        if not candidates:
            return None
        opponent = candidates[0]
        session = self.store.add_session(
            opponent.profile_id, profile_id, type="battle", status="active", mode="speed"
        )
        session.started_at, session.ends_at, session.battle_round = started_at, ends_at, 1
        for matched in (entry, opponent):
            matched.status, matched.session_id, matched.matched_at = "matched", session.id, started_at
        return replace(session)
