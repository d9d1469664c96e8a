"""Generate a fake movie catalog for development and tests.

Writes a JSON file that ``StaticCatalog.from_file`` (and ``CATALOG_PROVIDER=static``)
can serve: ``{"pages": {"1": [card, ...], ...}, "details": {...}}``.
"""

from __future__ import annotations

import json
import random
from pathlib import Path

ADJECTIVES = [
    "Silent", "Crimson", "Endless", "Midnight", "Golden", "Broken", "Hidden",
    "Electric", "Frozen", "Wild", "Last", "Distant", "Savage", "Hollow",
    "Burning", "Paper", "Velvet", "Iron", "Lucky", "Neon",
]

NOUNS = [
    "Harbor", "Empire", "Garden", "Signal", "Frontier", "Orchard", "Tide",
    "Kingdom", "Circuit", "Lantern", "Summer", "Witness", "Canyon", "Parade",
    "Voyage", "Engine", "Mirror", "Comet", "Island", "Verdict",
]

GENRES = {
    28: "Action", 12: "Adventure", 16: "Animation", 35: "Comedy", 80: "Crime",
    18: "Drama", 14: "Fantasy", 27: "Horror", 9648: "Mystery", 10749: "Romance",
    878: "Science Fiction", 53: "Thriller",
}


def generate_card(card_id: int, rng: random.Random) -> dict:
    title = f"The {rng.choice(ADJECTIVES)} {rng.choice(NOUNS)}"
    genre_ids = rng.sample(sorted(GENRES), rng.randint(1, 3))
    year = rng.randint(1970, 2025)
    return {
        "id": card_id,
        "title": title,
        "overview": f"{title} follows an unlikely crew through one very long night.",
        "poster_path": f"/poster-{card_id}.jpg",
        "backdrop_path": f"/backdrop-{card_id}.jpg",
        "vote_average": round(rng.uniform(4.0, 9.5), 1),
        "release_date": f"{year}-{rng.randint(1, 12):02d}-{rng.randint(1, 28):02d}",
        "genre_ids": genre_ids,
    }


def generate_pages(
    page_count: int = 100, per_page: int = 20, overlap: int = 2, seed: int = 7
) -> dict[int, list[dict]]:
    """Pages of cards. The first ``overlap`` cards of each page repeat the previous
    page's last ones, the way a live popularity list shifts between requests."""
    rng = random.Random(seed)
    pages: dict[int, list[dict]] = {}
    next_id = 1000
    for page in range(1, page_count + 1):
        carried = pages[page - 1][-overlap:] if page > 1 and overlap else []
        fresh = []
        for _ in range(per_page - len(carried)):
            fresh.append(generate_card(next_id, rng))
            next_id += 1
        pages[page] = [dict(card) for card in carried] + fresh
    return pages


def generate_details(pages: dict[int, list[dict]], seed: int = 7) -> dict[str, dict]:
    rng = random.Random(seed)
    details = {}
    for cards in pages.values():
        for card in cards:
            detail = {k: v for k, v in card.items() if k != "genre_ids"}
            detail["genres"] = [{"id": g, "name": GENRES[g]} for g in card["genre_ids"]]
            detail["runtime"] = rng.randint(80, 180)
            detail["tagline"] = f"{card['title']}. Tonight only."
            details[str(card["id"])] = detail
    return details


def seed(page_count: int = 100, output: str = "data/catalog.json") -> None:
    out = Path(output)
    out.parent.mkdir(parents=True, exist_ok=True)

    print(f"Generating {page_count} catalog pages...")
    pages = generate_pages(page_count)
    details = generate_details(pages)
    with open(out, "w") as f:
        json.dump(
            {"pages": {str(p): cards for p, cards in pages.items()}, "details": details},
            f,
            indent=2,
        )
    print(f"  → {out} ({len(details)} cards)")
    print("Done!")


if __name__ == "__main__":
    import sys

    count = int(sys.argv[1]) if len(sys.argv) > 1 else 100
    seed(page_count=count)
