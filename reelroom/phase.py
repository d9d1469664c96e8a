"""Room phase state machine and host-only actions.

::

    waiting  --host: start-->    swiping
    swiping  --unanimity-->      matched
    matched  --host: restart-->  swiping   (currentPage reset via sentinel 0)
    any      --last member leaves--> room deleted

Enforcement is client-side: the store accepts any write, so illegal edges and
non-host callers are refused here before anything is written.
"""

from __future__ import annotations

import logging

from reelroom.config import settings
from reelroom.deck import PageControl
from reelroom.errors import IllegalTransition
from reelroom.keys import RoomPaths
from reelroom.membership import MembershipManager
from reelroom.models import Room, RoomStatus
from reelroom.store import TreeStore

logger = logging.getLogger(__name__)

TRANSITIONS: dict[RoomStatus, set[RoomStatus]] = {
    RoomStatus.WAITING: {RoomStatus.SWIPING},
    RoomStatus.SWIPING: {RoomStatus.MATCHED},
    RoomStatus.MATCHED: {RoomStatus.SWIPING},
}


def can_transition(current: RoomStatus, target: RoomStatus) -> bool:
    return target in TRANSITIONS.get(current, set())


def check_transition(current: RoomStatus, target: RoomStatus) -> None:
    if not can_transition(current, target):
        raise IllegalTransition(current, target)


def require_host(room: Room, participant_id: str) -> None:
    if room.host_id != participant_id:
        raise IllegalTransition(
            room.status, None, reason=f"{participant_id} is not the host of room {room.code}"
        )


def overflow(room: Room) -> list[str]:
    """Members beyond capacity: the latest joiners, never the host."""
    excess = room.member_count - settings.max_members
    if excess <= 0:
        return []
    guests = [(m.joined_at, uid) for uid, m in room.members.items() if uid != room.host_id]
    return [uid for _, uid in sorted(guests)[-excess:]]


class PhaseMachine:
    """Host-issued status and pagination writes for one room."""

    def __init__(self, store: TreeStore, code: str) -> None:
        self.store = store
        self.code = code
        self.paths = RoomPaths(code)
        self.pages = PageControl(store, code)
        self.membership = MembershipManager(store)

    async def load(self) -> Room:
        return await self.membership.get_room(self.code)

    async def status(self) -> RoomStatus | None:
        snap = await self.store.read_once(self.paths.status())
        return RoomStatus(snap.value) if snap.exists else None

    async def start(self, participant_id: str) -> int:
        """waiting -> swiping, then broadcast the room's first page."""
        room = await self._authorize(participant_id, RoomStatus.WAITING, RoomStatus.SWIPING)

        excess = overflow(room)
        if excess:
            logger.warning(
                f"Room {self.code} has {room.member_count} members (max {settings.max_members})"
            )
            await self.membership.evict(self.code, excess)

        await self.store.write(self.paths.status(), RoomStatus.SWIPING.value)
        logger.info(f"Room {self.code}: waiting -> swiping")
        return await self.pages.open()

    async def restart(self, participant_id: str) -> int:
        """matched -> swiping with a fresh deck.

        Trace: currentPage <- 0, status <- swiping, matchedCardId removed,
        currentPage <- previous + 1.
        """
        room = await self._authorize(participant_id, RoomStatus.MATCHED, RoomStatus.SWIPING)
        await self.pages.reset()
        await self.store.write(self.paths.status(), RoomStatus.SWIPING.value)
        await self.store.delete(self.paths.matched_card_id())
        logger.info(f"Room {self.code}: matched -> swiping (restart)")
        return await self.pages.open(previous=room.current_page)

    async def load_more(self, participant_id: str) -> int:
        room = await self.load()
        require_host(room, participant_id)
        if room.status != RoomStatus.SWIPING:
            raise IllegalTransition(
                room.status, None, reason=f"Cannot load more cards while {room.status}"
            )
        return await self.pages.advance(room.current_page)

    async def record_match(self, card_id: str) -> None:
        """swiping -> matched. ``matchedCardId`` is written before the status."""
        await self.store.write(self.paths.matched_card_id(), str(card_id))
        await self.store.write(self.paths.status(), RoomStatus.MATCHED.value)
        logger.info(f"Match found in {self.code}: card {card_id}")

    async def _authorize(
        self, participant_id: str, current: RoomStatus, target: RoomStatus
    ) -> Room:
        room = await self.load()
        require_host(room, participant_id)
        if room.status != current:
            raise IllegalTransition(room.status, target)
        check_transition(room.status, target)
        return room
