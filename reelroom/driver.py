"""Programmatic driver: one participant, every call returns an Outcome."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ValidationError

from reelroom.catalog import Catalog
from reelroom.errors import LobbyError, SessionStateError
from reelroom.room_codes import random_code
from reelroom.session import RoomSession, SessionEvent
from reelroom.store import TreeStore, invoke

logger = logging.getLogger(__name__)


class Outcome(BaseModel):
    ok: bool
    value: Any = None
    error: str | None = None
    message: str | None = None

    @classmethod
    def success(cls, value: Any = None) -> Outcome:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, message: str) -> Outcome:
        return cls(ok=False, error=error, message=message)


class Driver:
    """Wraps a RoomSession so callers never see exceptions from the core.

    Event callbacks may be registered before ``create_session``; they are
    forwarded from whichever session the driver currently holds.
    """

    def __init__(
        self,
        store: TreeStore,
        catalog: Catalog,
        *,
        locale: str | None = None,
        code_factory: Callable[[], str] = random_code,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.locale = locale
        self.code_factory = code_factory
        self.session: RoomSession | None = None
        self.errors: list[Exception] = []
        self._listeners: dict[str, list[Callable]] = defaultdict(list)
        self._any_listeners: list[Callable] = []

    # --- Events ---

    def on(self, event: SessionEvent | str, callback: Callable[[dict], Any]) -> None:
        self._listeners[str(event)].append(callback)

    def on_any(self, callback: Callable[[str, dict], Any]) -> None:
        self._any_listeners.append(callback)

    async def _forward(self, event: str, payload: dict) -> None:
        for callback in list(self._listeners.get(event, [])):
            await invoke(callback, payload)
        for callback in list(self._any_listeners):
            await invoke(callback, event, payload)

    def _sink(self, exc: Exception) -> None:
        self.errors.append(exc)

    # --- Operations ---

    async def create_session(
        self, participant_id: str, display_name: str, attribute: str = ""
    ) -> Outcome:
        async def build() -> dict:
            if self.session is not None and self.session.code is not None:
                raise SessionStateError(
                    f"{self.session.participant_id} is still in room {self.session.code}"
                )
            session = RoomSession(
                self.store,
                self.catalog,
                participant_id,
                display_name,
                attribute,
                locale=self.locale,
                code_factory=self.code_factory,
                on_error=self._sink,
            )
            session.on_any(self._forward)
            self.session = session
            return session.view()

        return await self._attempt("create_session", build)

    async def create_room(self) -> Outcome:
        return await self._attempt("create_room", lambda: self._require().create_room())

    async def join_room(self, code: str) -> Outcome:
        async def join() -> dict:
            member = await self._require().join_room(code)
            return member.model_dump(mode="json")

        return await self._attempt("join_room", join)

    async def leave_room(self) -> Outcome:
        async def leave() -> dict:
            departure = await self._require().leave_room()
            return departure.model_dump()

        return await self._attempt("leave_room", leave)

    async def start_swiping(self) -> Outcome:
        return await self._attempt("start_swiping", lambda: self._require().start_swiping())

    async def cast_yes(self, card_id: str) -> Outcome:
        return await self._attempt("cast_yes", lambda: self._require().cast_yes(card_id))

    async def load_more_page(self) -> Outcome:
        return await self._attempt("load_more_page", lambda: self._require().load_more_page())

    async def restart_from_match(self) -> Outcome:
        return await self._attempt(
            "restart_from_match", lambda: self._require().restart_from_match()
        )

    async def focus(self, card_id: str) -> Outcome:
        async def focus() -> list[str]:
            session = self._require()
            await session.focus_card(card_id)
            return sorted(session.voters)

        return await self._attempt("focus", focus)

    async def advance(self) -> Outcome:
        return await self._attempt("advance", lambda: self._require().advance())

    async def fetch_detail(self, card_id: str) -> Outcome:
        async def detail() -> dict:
            found = await self._require().fetch_detail(card_id)
            return found.model_dump(mode="json")

        return await self._attempt("fetch_detail", detail)

    def view(self) -> dict | None:
        return self.session.view() if self.session else None

    async def close(self) -> None:
        if self.session is None:
            return
        if self.session.code is not None:
            await self.leave_room()
        else:
            self.session.detach_all()

    # --- Helpers ---

    def _require(self) -> RoomSession:
        if self.session is None:
            raise SessionStateError("No session; call create_session first")
        return self.session

    async def _attempt(self, name: str, operation: Callable[[], Awaitable[Any]]) -> Outcome:
        try:
            value = await operation()
        except LobbyError as e:
            logger.info(f"{name} refused: {e.kind}: {e}")
            return Outcome.failure(e.kind, str(e))
        except ValidationError as e:
            logger.info(f"{name} rejected invalid input: {e}")
            return Outcome.failure("invalid", str(e))
        return Outcome.success(value)
