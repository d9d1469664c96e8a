"""Tests for unanimous-match detection."""

import pytest

from reelroom.matching import is_match, member_count, vote_count
from reelroom.store import Snapshot


def room_snapshot(members: list[str], votes: dict[str, list[str]]) -> Snapshot:
    value = {
        "status": "swiping",
        "members": {uid: {"displayName": uid, "host": i == 0} for i, uid in enumerate(members)},
        "votes": {card: {uid: True for uid in uids} for card, uids in votes.items()},
    }
    return Snapshot("AB12CD", value)


class TestIsMatch:
    @pytest.mark.parametrize(
        "votes,members,expected",
        [
            (2, 2, True),
            (3, 2, True),
            (1, 2, False),
            (0, 0, False),
            (1, 0, False),
            (1, 1, True),
        ],
    )
    def test_unanimity(self, votes, members, expected):
        assert is_match(votes, members) is expected


class TestCounts:
    def test_counts_children(self):
        snap = room_snapshot(["u1", "u2", "u3"], {"42": ["u1", "u2"]})
        assert member_count(snap) == 3
        assert vote_count(snap, "42") == 2
        assert vote_count(snap, "99") == 0

    def test_departure_lowers_the_bar(self):
        before = room_snapshot(["u1", "u2", "u3"], {"99": ["u1", "u2"]})
        after = room_snapshot(["u1", "u2"], {"99": ["u1", "u2"]})
        assert not is_match(vote_count(before, "99"), member_count(before))
        assert is_match(vote_count(after, "99"), member_count(after))

    def test_missing_room(self):
        snap = Snapshot("AB12CD", None)
        assert member_count(snap) == 0
        assert not is_match(vote_count(snap, "42"), member_count(snap))
