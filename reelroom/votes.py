"""Vote ledger and match arbiter.

A Yes vote is the presence of ``votes/{cardId}/{participantId} = true``. "No" is
never written. After each vote the voter re-reads the whole room and, if every
current member has voted Yes on the card, records the match. Two voters may
both see unanimity and both record it; the writes are identical.
"""

from __future__ import annotations

import logging

from reelroom.errors import RoomNotFound
from reelroom.keys import MATCHED_CARD_ID, STATUS, RoomPaths
from reelroom.matching import is_match, member_count, vote_count
from reelroom.models import RoomStatus
from reelroom.phase import PhaseMachine
from reelroom.store import TreeStore

logger = logging.getLogger(__name__)


class VoteLedger:
    def __init__(self, store: TreeStore, code: str) -> None:
        self.store = store
        self.code = code
        self.paths = RoomPaths(code)
        self.phase = PhaseMachine(store, code)

    async def cast_yes(self, participant_id: str, card_id: str) -> bool:
        """Record a Yes vote. Returns True if this vote completed a match."""
        card_id = str(card_id)
        await self.store.write(self.paths.vote(card_id, participant_id), True)
        logger.debug(f"Vote recorded: {participant_id} -> card {card_id} in {self.code}")

        snap = await self.store.read_once(self.paths.room())
        members = member_count(snap)
        if members == 0:
            # The room went away under us; don't leave a member-less room behind.
            await self.store.delete(self.paths.room())
            raise RoomNotFound(self.code)

        votes = vote_count(snap, card_id)
        logger.debug(f"Match check in {self.code}, card {card_id}: {votes}/{members} votes")
        if not is_match(votes, members):
            return False

        status = snap.child(STATUS).value
        if status == RoomStatus.MATCHED and snap.child(MATCHED_CARD_ID).value != card_id:
            return False
        if status not in (RoomStatus.SWIPING, RoomStatus.MATCHED):
            return False

        await self.phase.record_match(card_id)
        return True

    async def voters(self, card_id: str) -> list[str]:
        snap = await self.store.read_once(self.paths.card_votes(str(card_id)))
        return [child.key for child in snap.children()]

    async def matched_card_id(self) -> str | None:
        snap = await self.store.read_once(self.paths.matched_card_id())
        return str(snap.value) if snap.exists else None
