import pytest

from services import AllInvitedQuorum, FixedQuorum, quorum_from_size


def test_all_invited_needs_everyone():
    assert AllInvitedQuorum().required(3) == 3


def test_all_invited_needs_at_least_one():
    assert AllInvitedQuorum().required(0) == 1


def test_fixed_quorum_is_capped_by_invited():
    assert FixedQuorum(2).required(5) == 2
    assert FixedQuorum(4).required(2) == 2


def test_fixed_quorum_must_be_positive():
    with pytest.raises(ValueError):
        FixedQuorum(0)


def test_quorum_from_size():
    assert isinstance(quorum_from_size(None), AllInvitedQuorum)
    policy = quorum_from_size(3)
    assert isinstance(policy, FixedQuorum)
    assert policy.size == 3
