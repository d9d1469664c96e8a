"""Client session: one participant's view of one room.

Ties the membership, deck, vote and phase pieces together behind room-scoped
operations, owns every store subscription the participant opens, and keeps three
derived views up to date from store events:

* ``members``: participant id -> Member, in the order members were first seen
* ``deck``: cards appended page by page, deduplicated by card id
* ``voters``: who has voted Yes on the focused card

Subscriptions are held in two groups. ``lobby`` (members + status) lives as long
as the session is in the room; ``swiping`` (currentPage + focused card votes) is
dropped on a match and reopened when the host restarts.
"""

from __future__ import annotations

import functools
import logging
from collections import defaultdict
from enum import StrEnum
from typing import Any, Callable

from reelroom.catalog import Catalog
from reelroom.config import settings
from reelroom.deck import Deck
from reelroom.errors import LobbyError, RoomNotFound, SessionStateError
from reelroom.keys import RoomPaths, segment
from reelroom.membership import Departure, MembershipManager
from reelroom.models import CardDetail, Member, RoomStatus
from reelroom.phase import PhaseMachine
from reelroom.room_codes import is_valid_code, mint, random_code
from reelroom.store import ChildListener, Subscription, TreeStore, invoke
from reelroom.votes import VoteLedger

logger = logging.getLogger(__name__)


class SessionEvent(StrEnum):
    MEMBER_ADDED = "member_added"
    MEMBER_CHANGED = "member_changed"
    MEMBER_REMOVED = "member_removed"
    HOST_PROMOTED = "host_promoted"
    PHASE_CHANGED = "phase_changed"
    DECK_CHANGED = "deck_changed"
    DECK_RESET = "deck_reset"
    VOTERS_CHANGED = "voters_changed"
    MATCH_ANNOUNCED = "match_announced"
    EVICTED = "evicted"
    ROOM_CLOSED = "room_closed"
    ERROR = "error"


class SubscriptionGroup:
    """Named subscriptions that are detached together.

    Adding under an existing name detaches the previous subscription.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._subs: dict[str, Subscription] = {}

    def add(self, key: str, sub: Subscription) -> None:
        self.drop(key)
        self._subs[key] = sub

    def drop(self, key: str) -> None:
        previous = self._subs.pop(key, None)
        if previous is not None:
            previous.detach()

    def detach(self) -> None:
        for sub in self._subs.values():
            sub.detach()
        self._subs.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._subs

    def __len__(self) -> int:
        return len(self._subs)

    def __enter__(self) -> SubscriptionGroup:
        return self

    def __exit__(self, *exc_info) -> None:
        self.detach()


class RoomSession:
    def __init__(
        self,
        store: TreeStore,
        catalog: Catalog,
        participant_id: str,
        display_name: str,
        attribute: str = "",
        *,
        locale: str | None = None,
        code_factory: Callable[[], str] = random_code,
        on_error: Callable[[LobbyError | Exception], Any] | None = None,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.participant_id = segment(participant_id, "participant id")
        self.display_name = display_name
        self.attribute = attribute or ""
        self.locale = locale or settings.catalog_locale
        self.membership = MembershipManager(store)
        self._code_factory = code_factory
        self._on_error = on_error
        self._last_error: Exception | None = None

        self._lobby = SubscriptionGroup("lobby")
        self._swiping = SubscriptionGroup("swiping")
        self._listeners: dict[str, list[Callable]] = defaultdict(list)
        self._any_listeners: list[Callable] = []
        self._reset_room_state()

    def _reset_room_state(self) -> None:
        self.code: str | None = None
        self.status: RoomStatus | None = None
        self.status_trace: list[RoomStatus] = []
        self.is_host = False
        self.members: dict[str, Member] = {}
        self.deck = Deck(self.catalog, self.locale)
        self.focused_card: str | None = None
        self.voters: set[str] = set()
        self.matched_card_id: str | None = None
        self._seen_self = False
        self._phase: PhaseMachine | None = None
        self._ledger: VoteLedger | None = None
        self._paths: RoomPaths | None = None

    # --- Events ---

    def on(self, event: SessionEvent | str, callback: Callable[[dict], Any]) -> None:
        self._listeners[str(event)].append(callback)

    def on_any(self, callback: Callable[[str, dict], Any]) -> None:
        self._any_listeners.append(callback)

    async def _emit(self, event: SessionEvent, payload: dict) -> None:
        for callback in list(self._listeners.get(event.value, [])):
            await invoke(callback, payload)
        for callback in list(self._any_listeners):
            await invoke(callback, event.value, payload)

    async def _report(self, exc: Exception) -> None:
        # one failure fans out to every subscription; surface it once
        if exc is self._last_error:
            return
        self._last_error = exc
        logger.error(f"[{self.participant_id}] {type(exc).__name__}: {exc}")
        kind = exc.kind if isinstance(exc, LobbyError) else "error"
        await self._emit(SessionEvent.ERROR, {"kind": kind, "message": str(exc)})
        if self._on_error is not None:
            await invoke(self._on_error, exc)

    # --- Room lifecycle ---

    async def create_room(self) -> str:
        self._require_no_room()
        code = await mint(self.store, generate=self._code_factory)
        await self.membership.create_room(code, self.participant_id, self.display_name, self.attribute)
        await self._enter(code)
        return code

    async def join_room(self, code: str) -> Member:
        self._require_no_room()
        code = code.strip().upper()
        if not is_valid_code(code):
            raise RoomNotFound(code)
        member = await self.membership.join_room(
            code, self.participant_id, self.display_name, self.attribute
        )
        await self._enter(code)
        return member

    async def leave_room(self) -> Departure:
        """Detach everything this session opened, then leave the room."""
        code = self._require_room()
        self.detach_all()
        try:
            departure = await self.membership.leave_room(code, self.participant_id)
        finally:
            self._reset_room_state()
        return departure

    async def _enter(self, code: str) -> None:
        self.code = code
        self._paths = RoomPaths(code)
        self._phase = PhaseMachine(self.store, code)
        self._ledger = VoteLedger(self.store, code)

        members = await self.store.subscribe_children(
            self._paths.members(),
            ChildListener(
                on_added=self._on_member_added,
                on_changed=self._on_member_changed,
                on_removed=self._on_member_removed,
            ),
            on_error=self._report,
        )
        self._lobby.add("members", members)
        status = await self.store.subscribe_value(
            self._paths.status(), self._on_status, on_error=self._report
        )
        self._lobby.add("status", status)

    # --- Host actions ---

    async def start_swiping(self) -> int:
        self._require_room()
        return await self._phase.start(self.participant_id)

    async def load_more_page(self) -> int:
        self._require_room()
        return await self._phase.load_more(self.participant_id)

    async def restart_from_match(self) -> int:
        self._require_room()
        return await self._phase.restart(self.participant_id)

    # --- Cards and votes ---

    async def cast_yes(self, card_id: str) -> bool:
        self._require_room()
        return await self._ledger.cast_yes(self.participant_id, str(card_id))

    async def focus_card(self, card_id: str) -> None:
        """Point the voter view at ``card_id``."""
        self._require_room()
        card_id = segment(card_id, "card id")
        self.focused_card = card_id
        self.voters = set()
        listener = ChildListener(
            on_added=functools.partial(self._on_vote_added, card_id),
            on_removed=functools.partial(self._on_vote_removed, card_id),
        )
        sub = await self.store.subscribe_children(
            self._paths.card_votes(card_id), listener, on_error=self._report
        )
        self._swiping.add("votes", sub)

    async def advance(self) -> str | None:
        """Move focus to the next card in the deck (a skip). None at the end of the deck."""
        self._require_room()
        ids = self.deck.card_ids
        if self.focused_card in ids:
            position = ids.index(self.focused_card) + 1
        else:
            position = 0
        if position >= len(ids):
            return None
        await self.focus_card(ids[position])
        return ids[position]

    async def fetch_detail(self, card_id: str) -> CardDetail:
        return await self.catalog.fetch_detail(str(card_id), self.locale)

    # --- Detach ---

    def detach_all(self) -> None:
        self._swiping.detach()
        self._lobby.detach()

    def detach_swiping(self) -> None:
        """Drop the page and vote subscriptions; keep members and status."""
        self._swiping.detach()

    async def __aenter__(self) -> RoomSession:
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self.code is not None:
            await self.leave_room()
        else:
            self.detach_all()

    # --- Store event handlers ---

    async def _on_member_added(self, participant_id: str, value: dict) -> None:
        member = Member.model_validate(value)
        self.members[participant_id] = member
        await self._emit(
            SessionEvent.MEMBER_ADDED,
            {"participant_id": participant_id, "member": member.model_dump(mode="json")},
        )
        if participant_id == self.participant_id:
            await self._observe_self(member)

    async def _on_member_changed(self, participant_id: str, value: dict) -> None:
        member = Member.model_validate(value)
        self.members[participant_id] = member
        await self._emit(
            SessionEvent.MEMBER_CHANGED,
            {"participant_id": participant_id, "member": member.model_dump(mode="json")},
        )
        if participant_id == self.participant_id:
            await self._observe_self(member)

    async def _on_member_removed(self, participant_id: str, value: dict) -> None:
        self.members.pop(participant_id, None)
        await self._emit(SessionEvent.MEMBER_REMOVED, {"participant_id": participant_id})
        if participant_id == self.participant_id and self.code is not None:
            code = self.code
            if await self.membership.room_exists(code):
                logger.warning(f"[{self.participant_id}] removed from room {code}")
                await self._emit(SessionEvent.EVICTED, {"code": code})
            else:
                await self._emit(SessionEvent.ROOM_CLOSED, {"code": code})
            self.detach_all()
            self._reset_room_state()

    async def _observe_self(self, member: Member) -> None:
        promoted = member.host and not self.is_host and self._seen_self
        self.is_host = member.host
        self._seen_self = True
        if promoted:
            logger.info(f"[{self.participant_id}] promoted to host of {self.code}")
            await self._emit(SessionEvent.HOST_PROMOTED, {"participant_id": self.participant_id})

    async def _on_status(self, value: str | None) -> None:
        if value is None:
            if self.code is not None and self.status is not None:
                code = self.code
                await self._emit(SessionEvent.ROOM_CLOSED, {"code": code})
                self.detach_all()
                self._reset_room_state()
            return

        status = RoomStatus(value)
        if status == self.status:
            return
        previous, self.status = self.status, status
        self.status_trace.append(status)
        logger.info(f"[{self.participant_id}] room {self.code}: {previous} -> {status}")
        await self._emit(
            SessionEvent.PHASE_CHANGED,
            {"previous": previous.value if previous else None, "status": status.value},
        )

        if status == RoomStatus.SWIPING:
            if previous == RoomStatus.MATCHED:
                self._clear_deck()
                await self._emit(SessionEvent.DECK_RESET, {"code": self.code})
            await self._open_swiping()
        elif status == RoomStatus.MATCHED:
            self.detach_swiping()
            self.matched_card_id = await self._ledger.matched_card_id()
            card = self.deck.get(self.matched_card_id) if self.matched_card_id else None
            await self._emit(
                SessionEvent.MATCH_ANNOUNCED,
                {
                    "card_id": self.matched_card_id,
                    "card": card.model_dump(mode="json") if card else None,
                },
            )

    async def _open_swiping(self) -> None:
        if "page" in self._swiping:
            return
        sub = await self.store.subscribe_value(
            self._paths.current_page(), self._on_page, on_error=self._report
        )
        self._swiping.add("page", sub)

    async def _on_page(self, value: Any) -> None:
        update = await self.deck.ingest(value)
        if update is None:
            return
        if update.reset:
            self._clear_deck()
            await self._emit(SessionEvent.DECK_RESET, {"code": self.code})
            return

        await self._emit(
            SessionEvent.DECK_CHANGED,
            {
                "page": update.page,
                "added": [card.id for card in update.added],
                "size": len(self.deck),
            },
        )
        if self.focused_card is None and len(self.deck):
            await self.focus_card(self.deck.cards[0].id)

    def _clear_deck(self) -> None:
        self.deck.reset()
        self._swiping.drop("votes")
        self.focused_card = None
        self.voters = set()
        self.matched_card_id = None

    async def _on_vote_added(self, card_id: str, participant_id: str, value: Any) -> None:
        if card_id != self.focused_card:
            return
        self.voters.add(participant_id)
        await self._emit_voters(card_id)

    async def _on_vote_removed(self, card_id: str, participant_id: str, value: Any) -> None:
        if card_id != self.focused_card:
            return
        self.voters.discard(participant_id)
        await self._emit_voters(card_id)

    async def _emit_voters(self, card_id: str) -> None:
        await self._emit(
            SessionEvent.VOTERS_CHANGED,
            {"card_id": card_id, "voters": sorted(self.voters), "members": len(self.members)},
        )

    # --- Views ---

    def view(self) -> dict[str, Any]:
        return {
            "participant_id": self.participant_id,
            "display_name": self.display_name,
            "code": self.code,
            "status": self.status.value if self.status else None,
            "is_host": self.is_host,
            "members": [
                {"participant_id": uid, **member.model_dump(mode="json")}
                for uid, member in self.members.items()
            ],
            "deck": [card.model_dump(mode="json") for card in self.deck.cards],
            "pages": list(self.deck.pages),
            "focused_card": self.focused_card,
            "voters": sorted(self.voters),
            "matched_card_id": self.matched_card_id,
        }

    # --- Guards ---

    def _require_room(self) -> str:
        if self.code is None:
            raise SessionStateError(f"{self.participant_id} is not in a room")
        return self.code

    def _require_no_room(self) -> None:
        if self.code is not None:
            raise SessionStateError(f"{self.participant_id} is already in room {self.code}")
