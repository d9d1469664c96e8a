"""Shared deck pagination.

The host owns ``rooms/{code}/currentPage``. Every client, the host included,
watches that value and appends the catalog page it names to its local deck, so
all decks grow through the same sequence of pages. ``0`` is the "unset / reset"
sentinel.
"""

from __future__ import annotations

import logging
import zlib

from pydantic import BaseModel

from reelroom.catalog import Catalog
from reelroom.config import settings
from reelroom.keys import RoomPaths
from reelroom.models import Card
from reelroom.store import TreeStore

logger = logging.getLogger(__name__)

RESET_PAGE = 0


def initial_page(code: str) -> int:
    """Deterministic first page for a room, so different rooms see different decks."""
    return zlib.crc32(code.encode("utf-8")) % settings.page_spread + 1


def as_page(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return RESET_PAGE


class PageControl:
    """Host-side writes to ``currentPage``."""

    def __init__(self, store: TreeStore, code: str) -> None:
        self.store = store
        self.code = code
        self.paths = RoomPaths(code)

    async def current(self) -> int:
        snap = await self.store.read_once(self.paths.current_page())
        return as_page(snap.value)

    async def open(self, previous: int = RESET_PAGE) -> int:
        """Write the first page of a swiping round."""
        page = previous + 1 if previous > 0 else initial_page(self.code)
        await self.store.write(self.paths.current_page(), page)
        logger.info(f"Room {self.code} currentPage -> {page}")
        return page

    async def reset(self) -> None:
        await self.store.write(self.paths.current_page(), RESET_PAGE)
        logger.info(f"Room {self.code} currentPage reset")

    async def advance(self, current: int) -> int:
        """Host "load more": broadcast the page after ``current``."""
        page = max(current, RESET_PAGE) + 1
        await self.store.write(self.paths.current_page(), page)
        logger.info(f"Room {self.code} currentPage -> {page} (load more)")
        return page


class DeckUpdate(BaseModel):
    page: int
    added: list[Card] = []
    reset: bool = False


class Deck:
    """Local, append-only deck materialized from broadcast pages."""

    def __init__(self, catalog: Catalog, locale: str | None = None) -> None:
        self.catalog = catalog
        self.locale = locale or settings.catalog_locale
        self.cards: list[Card] = []
        self.pages: list[int] = []
        self.last_page = RESET_PAGE
        self._ids: set[str] = set()

    def __len__(self) -> int:
        return len(self.cards)

    @property
    def card_ids(self) -> list[str]:
        return [card.id for card in self.cards]

    def get(self, card_id: str) -> Card | None:
        card_id = str(card_id)
        return next((c for c in self.cards if c.id == card_id), None)

    def index(self, card_id: str) -> int:
        return self.card_ids.index(str(card_id))

    def reset(self) -> None:
        self.cards = []
        self.pages = []
        self.last_page = RESET_PAGE
        self._ids = set()

    async def ingest(self, value) -> DeckUpdate | None:
        """React to a new ``currentPage`` value.

        Returns ``None`` when nothing changed. The sentinel clears the deck; a
        page equal to the last one seen is ignored.
        """
        page = as_page(value)
        if page <= RESET_PAGE:
            if self.last_page == RESET_PAGE and not self.cards:
                return None
            self.reset()
            return DeckUpdate(page=RESET_PAGE, reset=True)
        if page == self.last_page:
            return None

        cards = await self.catalog.fetch_page(page, self.locale)
        added = []
        for card in cards:
            if card.id in self._ids:
                continue
            self._ids.add(card.id)
            self.cards.append(card)
            added.append(card)

        self.last_page = page
        self.pages.append(page)
        logger.debug(f"Ingested page {page}: {len(added)} new cards (deck size {len(self.cards)})")
        return DeckUpdate(page=page, added=added)
