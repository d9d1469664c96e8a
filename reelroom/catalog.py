"""External movie catalog: paged list + detail lookups."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

import httpx

from reelroom.config import settings
from reelroom.errors import CatalogError
from reelroom.models import Card, CardDetail

logger = logging.getLogger(__name__)


class Catalog(Protocol):
    async def fetch_page(self, page: int, locale: str) -> list[Card]: ...

    async def fetch_detail(self, card_id: str, locale: str) -> CardDetail: ...

    async def aclose(self) -> None: ...


def image_url(path: str | None, base_url: str | None = None) -> str | None:
    if not path:
        return None
    base = (base_url or settings.tmdb_image_base_url).rstrip("/")
    return f"{base}/{path.lstrip('/')}"


class TmdbCatalog:
    """TMDB-compatible HTTP catalog (``movie/popular`` + ``movie/{id}``)."""

    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        token = token if token is not None else settings.tmdb_api_token
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.tmdb_base_url,
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            timeout=10.0,
        )

    async def fetch_page(self, page: int, locale: str) -> list[Card]:
        if page < 1:
            raise ValueError(f"Catalog pages start at 1, got {page}")
        data = await self._get("movie/popular", {"language": locale, "page": page})
        results = data.get("results") or []
        return [Card.model_validate(item) for item in results]

    async def fetch_detail(self, card_id: str, locale: str) -> CardDetail:
        data = await self._get(f"movie/{card_id}", {"language": locale})
        return CardDetail.model_validate(data)

    async def _get(self, path: str, params: dict) -> dict:
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.warning(f"Catalog request {path} failed: {e}")
            raise CatalogError(f"Catalog request {path} failed: {e}") from e
        except json.JSONDecodeError as e:
            raise CatalogError(f"Catalog returned invalid JSON for {path}") from e

    async def aclose(self) -> None:
        await self._client.aclose()


class StaticCatalog:
    """Catalog served from memory, e.g. a JSON file of ``{"page": [card, ...]}``."""

    def __init__(
        self,
        pages: dict[int, list[Card]],
        details: dict[str, CardDetail] | None = None,
    ) -> None:
        self.pages = pages
        self.details = details or {}
        self.requests: list[int] = []

    @classmethod
    def from_file(cls, path: str | Path) -> StaticCatalog:
        raw = json.loads(Path(path).read_text())
        pages = {
            int(page): [Card.model_validate(item) for item in items]
            for page, items in raw.get("pages", {}).items()
        }
        details = {
            str(card_id): CardDetail.model_validate(item)
            for card_id, item in raw.get("details", {}).items()
        }
        return cls(pages, details)

    async def fetch_page(self, page: int, locale: str) -> list[Card]:
        if page < 1:
            raise ValueError(f"Catalog pages start at 1, got {page}")
        self.requests.append(page)
        return [card.model_copy() for card in self.pages.get(page, [])]

    async def fetch_detail(self, card_id: str, locale: str) -> CardDetail:
        card_id = str(card_id)
        if card_id in self.details:
            return self.details[card_id]
        for cards in self.pages.values():
            for card in cards:
                if card.id == card_id:
                    return CardDetail.model_validate(card.model_dump())
        raise CatalogError(f"Unknown card {card_id}")

    async def aclose(self) -> None:
        pass
