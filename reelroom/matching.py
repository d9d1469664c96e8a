"""Unanimous-match detection over a fresh room snapshot.

A match needs a Yes vote from every *current* member. Departed members drop out
of ``members/`` immediately, so counting against a fresh snapshot lowers the bar
as soon as someone leaves.
"""

from __future__ import annotations

from reelroom.keys import MEMBERS, VOTES
from reelroom.store import Snapshot


def is_match(vote_count: int, member_count: int) -> bool:
    return member_count > 0 and vote_count >= member_count


def member_count(room: Snapshot) -> int:
    return room.child(MEMBERS).children_count


def vote_count(room: Snapshot, card_id: str) -> int:
    return room.child(f"{VOTES}/{card_id}").children_count
