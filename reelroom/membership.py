"""Room membership: create, join, leave and host transfer."""

from __future__ import annotations

import logging
import time

from pydantic import BaseModel

from reelroom.config import settings
from reelroom.errors import AlreadyStarted, RoomFull, RoomNotFound
from reelroom.keys import DISPLAY_NAME, HOST_FLAG, RoomPaths
from reelroom.models import Member, Room, RoomStatus
from reelroom.store import TreeStore

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class Departure(BaseModel):
    room_deleted: bool = False
    new_host: str | None = None


class MembershipManager:
    """Reads and writes ``rooms/{code}`` and its ``members/`` subtree."""

    def __init__(self, store: TreeStore, clock=now_ms) -> None:
        self.store = store
        self.clock = clock

    # --- Lookups ---

    async def room_exists(self, code: str) -> bool:
        return await self.store.exists(RoomPaths(code).room())

    async def get_room(self, code: str) -> Room:
        snap = await self.store.read_once(RoomPaths(code).room())
        if not snap.exists:
            raise RoomNotFound(code)
        return Room.from_store(code, snap.value)

    async def get_member(self, code: str, participant_id: str) -> Member:
        snap = await self.store.read_once(RoomPaths(code).member(participant_id))
        if not snap.exists:
            raise RoomNotFound(code, participant_id)
        return Member.model_validate(snap.value)

    async def load_members(self, code: str) -> dict[str, Member]:
        """All members in the store's key order."""
        snap = await self.store.read_once(RoomPaths(code).members())
        return {child.key: Member.model_validate(child.value) for child in snap.children()}

    # --- Lifecycle ---

    async def create_room(
        self, code: str, participant_id: str, display_name: str, attribute: str = ""
    ) -> Room:
        """Create ``code`` with ``participant_id`` as its first member and host.

        The room header and the host's member record are two separate writes.
        """
        paths = RoomPaths(code)
        member_path = paths.member(participant_id)
        now = self.clock()
        member = Member(display_name=display_name, attribute=attribute or "", joined_at=now, host=True)
        room = Room(
            code=code,
            host_id=participant_id,
            created_by=participant_id,
            created_at=now,
            status=RoomStatus.WAITING,
            members={participant_id: member},
        )

        await self.store.write(paths.room(), room.header())
        await self.store.write(member_path, member.to_store())
        logger.info(f"Room created: {code} by {participant_id}")
        return room

    async def join_room(
        self, code: str, participant_id: str, display_name: str, attribute: str = ""
    ) -> Member:
        """Admit a participant to a waiting room.

        The capacity check and the member write are not atomic: two joiners racing
        for the last seat may both get in.
        """
        paths = RoomPaths(code)
        snap = await self.store.read_once(paths.room())
        if not snap.exists:
            raise RoomNotFound(code)

        room = Room.from_store(code, snap.value)
        existing = room.members.get(participant_id)
        if existing is not None:
            return existing
        if room.status != RoomStatus.WAITING:
            raise AlreadyStarted(code, room.status)
        if room.member_count >= settings.max_members:
            raise RoomFull(code, settings.max_members)

        member = Member(
            display_name=display_name, attribute=attribute or "", joined_at=self.clock(), host=False
        )
        await self.store.write(paths.member(participant_id), member.to_store())
        logger.info(f"Joined room {code}: {participant_id} as {display_name}")
        return member

    async def leave_room(self, code: str, participant_id: str) -> Departure:
        """Remove a member; delete the room with its last member, hand off host otherwise."""
        paths = RoomPaths(code)
        snap = await self.store.read_once(paths.members())
        leaving = snap.child(participant_id)
        if not leaving.exists:
            return Departure()

        if snap.children_count == 1:
            await self.store.delete(paths.room())
            logger.info(f"Room {code} deleted (last member {participant_id} left)")
            return Departure(room_deleted=True)

        await self.store.delete(paths.member(participant_id))
        logger.info(f"Member removed: {participant_id} from {code}")

        host_id = (await self.store.read_once(paths.host_id())).value
        if not leaving.child(HOST_FLAG).value and host_id != participant_id:
            return Departure()
        return await self._transfer_host(code, participant_id)

    async def _transfer_host(self, code: str, previous: str) -> Departure:
        """Promote the first remaining member in key order.

        Members may leave while this runs. A candidate that is gone by the time its
        promotion lands leaves a bare ``{host: true}`` record behind; that record is
        removed and the next member is tried.
        """
        paths = RoomPaths(code)
        while True:
            snap = await self.store.read_once(paths.members())
            if not snap.exists:
                await self.store.delete(paths.room())
                logger.info(f"Room {code} deleted (no members left after {previous} left)")
                return Departure(room_deleted=True)

            candidate = next(iter(snap.children())).key
            await self.store.write(paths.host_flag(candidate), True)
            await self.store.write(paths.host_id(), candidate)
            if (await self.store.read_once(paths.member(candidate))).child(DISPLAY_NAME).exists:
                logger.info(f"Host transferred in {code}: {previous} -> {candidate}")
                return Departure(new_host=candidate)

            logger.warning(f"Host candidate {candidate} left {code} during transfer")
            await self.store.delete(paths.member(candidate))

    async def evict(self, code: str, participant_ids: list[str]) -> None:
        paths = RoomPaths(code)
        for participant_id in participant_ids:
            await self.store.delete(paths.member(participant_id))
        if participant_ids:
            logger.warning(f"Evicted {len(participant_ids)} over-capacity members from {code}")
