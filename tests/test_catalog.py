"""Tests for the catalog clients."""

from __future__ import annotations

import json

import httpx
import pytest

from reelroom.catalog import StaticCatalog, TmdbCatalog, image_url
from reelroom.errors import CatalogError
from reelroom.models import Card, CardDetail
from scripts.seed_catalog import generate_details, generate_pages

pytestmark = pytest.mark.asyncio

POPULAR = {
    "page": 7,
    "results": [
        {
            "id": 42,
            "title": "The Hidden Harbor",
            "overview": "A long night.",
            "poster_path": "/p42.jpg",
            "backdrop_path": None,
            "vote_average": 7.4,
            "release_date": "2001-05-04",
            "genre_ids": [18, 53],
        },
        {"id": 43, "title": "Paper Comet", "overview": None, "release_date": None},
    ],
}

DETAIL = {
    "id": 42,
    "title": "The Hidden Harbor",
    "overview": "A long night.",
    "genres": [{"id": 18, "name": "Drama"}, {"id": 53, "name": "Thriller"}],
    "runtime": 112,
    "tagline": None,
}


def tmdb(handler) -> TmdbCatalog:
    client = httpx.AsyncClient(
        base_url="https://tmdb.test/3/", transport=httpx.MockTransport(handler)
    )
    return TmdbCatalog(client=client)


class TestTmdbCatalog:
    async def test_fetch_page(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=POPULAR)

        catalog = tmdb(handler)
        cards = await catalog.fetch_page(7, "en-US")
        await catalog.aclose()

        assert [c.id for c in cards] == ["42", "43"]
        assert cards[0].summary == "A long night."
        assert cards[0].primary_image_path == "/p42.jpg"
        assert cards[0].score == 7.4
        assert cards[1].summary == ""
        assert requests[0].url.path == "/3/movie/popular"
        assert requests[0].url.params["page"] == "7"
        assert requests[0].url.params["language"] == "en-US"

    async def test_fetch_detail(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/3/movie/42"
            return httpx.Response(200, json=DETAIL)

        catalog = tmdb(handler)
        detail = await catalog.fetch_detail("42", "fr-FR")
        assert detail.genre_ids == [18, 53]
        assert detail.genre_names == ["Drama", "Thriller"]
        assert detail.runtime == 112
        assert detail.tagline is None

    async def test_http_error(self):
        catalog = tmdb(lambda request: httpx.Response(503, json={"status_message": "down"}))
        with pytest.raises(CatalogError):
            await catalog.fetch_page(1, "en-US")

    async def test_invalid_json(self):
        catalog = tmdb(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(CatalogError):
            await catalog.fetch_page(1, "en-US")

    async def test_bearer_token(self):
        catalog = TmdbCatalog(token="secret", base_url="https://tmdb.test/3/")
        assert catalog._client.headers["Authorization"] == "Bearer secret"
        await catalog.aclose()

    async def test_page_zero_is_rejected(self):
        catalog = tmdb(lambda request: httpx.Response(200, json=POPULAR))
        with pytest.raises(ValueError):
            await catalog.fetch_page(0, "en-US")


class TestStaticCatalog:
    async def test_from_file(self, tmp_path):
        pages = generate_pages(3, per_page=5)
        path = tmp_path / "catalog.json"
        path.write_text(
            json.dumps(
                {
                    "pages": {str(p): cards for p, cards in pages.items()},
                    "details": generate_details(pages),
                }
            )
        )
        catalog = StaticCatalog.from_file(path)
        cards = await catalog.fetch_page(2, "en-US")
        assert [c.id for c in cards] == [str(c["id"]) for c in pages[2]]
        detail = await catalog.fetch_detail(cards[0].id, "en-US")
        assert isinstance(detail, CardDetail)
        assert detail.runtime is not None

    async def test_missing_page_is_empty(self):
        catalog = StaticCatalog({1: [Card(id="1", title="One")]})
        assert await catalog.fetch_page(9, "en-US") == []
        assert catalog.requests == [9]

    async def test_unknown_detail(self):
        catalog = StaticCatalog({1: [Card(id="1", title="One")]})
        assert (await catalog.fetch_detail("1", "en-US")).title == "One"
        with pytest.raises(CatalogError):
            await catalog.fetch_detail("2", "en-US")


class TestImageUrl:
    def test_joins_base(self):
        assert image_url("/p42.jpg", "https://img.test/w500/") == "https://img.test/w500/p42.jpg"

    def test_missing_path(self):
        assert image_url(None) is None
        assert image_url("") is None
