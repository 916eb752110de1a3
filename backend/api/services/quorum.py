"""Acceptance quorum policies for battle invites."""

from __future__ import annotations

from typing import Protocol


class QuorumPolicy(Protocol):
    def required(self, invited: int) -> int:
        """Acceptances needed before a battle with *invited* parties starts."""
        ...


class AllInvitedQuorum:
    """Every invited host has to accept."""

    def required(self, invited: int) -> int:
        return max(invited, 1)

    def __repr__(self) -> str:
        return "AllInvitedQuorum()"


class FixedQuorum:
    """A fixed number of acceptances, capped at the number invited."""

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError("quorum size must be at least 1")
        self.size = size

    def required(self, invited: int) -> int:
        return min(self.size, max(invited, 1))

    def __repr__(self) -> str:
        return f"FixedQuorum({self.size})"


def quorum_from_size(size: int | None) -> QuorumPolicy:
    return AllInvitedQuorum() if size is None else FixedQuorum(size)
