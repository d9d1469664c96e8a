"""Tests for shared deck pagination."""

from __future__ import annotations

import pytest

from reelroom.config import settings
from reelroom.deck import RESET_PAGE, Deck, PageControl, as_page, initial_page

pytestmark = pytest.mark.asyncio

CODE = "AB12CD"


class TestInitialPage:
    def test_deterministic_and_in_range(self):
        assert initial_page(CODE) == initial_page(CODE)
        for code in ["AB12CD", "ZZZZZZ", "000000", "Q1W2E3"]:
            assert 1 <= initial_page(code) <= settings.page_spread

    def test_as_page(self):
        assert as_page(7) == 7
        assert as_page("7") == 7
        assert as_page(None) == RESET_PAGE
        assert as_page("x") == RESET_PAGE


class TestPageControl:
    async def test_open_writes_initial_page(self, store):
        pages = PageControl(store, CODE)
        page = await pages.open()
        assert page == initial_page(CODE)
        assert await pages.current() == page

    async def test_open_after_previous_round(self, store):
        pages = PageControl(store, CODE)
        assert await pages.open(previous=12) == 13

    async def test_reset_and_advance(self, store):
        pages = PageControl(store, CODE)
        await pages.reset()
        assert await pages.current() == RESET_PAGE
        assert await pages.advance(4) == 5
        assert store.writes_to("currentPage") == [0, 5]


class TestDeck:
    async def test_ingest_appends_page(self, catalog):
        deck = Deck(catalog)
        update = await deck.ingest(3)
        assert update.page == 3
        assert len(update.added) == 20
        assert deck.pages == [3]
        assert deck.card_ids == [c.id for c in catalog.pages[3]]

    async def test_same_page_twice_is_ignored(self, catalog):
        deck = Deck(catalog)
        await deck.ingest(3)
        assert await deck.ingest(3) is None
        assert catalog.requests == [3]

    async def test_consecutive_pages_deduplicate(self, catalog):
        deck = Deck(catalog)
        await deck.ingest(3)
        update = await deck.ingest(4)
        assert len(update.added) == 18
        assert len(deck) == 38
        assert len(set(deck.card_ids)) == len(deck)

    async def test_sentinel_resets(self, catalog):
        deck = Deck(catalog)
        await deck.ingest(3)
        update = await deck.ingest(0)
        assert update.reset
        assert len(deck) == 0
        assert deck.last_page == RESET_PAGE

    async def test_sentinel_on_empty_deck_is_ignored(self, catalog):
        deck = Deck(catalog)
        assert await deck.ingest(0) is None
        assert await deck.ingest(None) is None
        assert await deck.ingest(-3) is None
        assert catalog.requests == []

    async def test_get_and_index(self, catalog):
        deck = Deck(catalog)
        await deck.ingest(1)
        first = catalog.pages[1][0]
        assert deck.get(first.id).title == first.title
        assert deck.index(first.id) == 0
        assert deck.get("missing") is None

    async def test_identical_page_sequences_give_identical_decks(self, catalog):
        a, b = Deck(catalog), Deck(catalog)
        for value in [5, 6, 0, 7, 8]:
            await a.ingest(value)
            await b.ingest(value)
        assert a.card_ids == b.card_ids
        assert a.pages == [7, 8]
