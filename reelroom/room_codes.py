"""Room code minting: short uppercase alphanumeric codes, checked against the store."""

from __future__ import annotations

import logging
import secrets
import string
from typing import Callable

from reelroom.config import settings
from reelroom.errors import CodeExhaustion
from reelroom.keys import RoomPaths
from reelroom.store import TreeStore

logger = logging.getLogger(__name__)

ALPHABET = string.ascii_uppercase + string.digits


def random_code(length: int | None = None) -> str:
    """Draw ``length`` symbols uniformly from [A-Z0-9]."""
    length = length or settings.room_code_length
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def is_valid_code(code: str) -> bool:
    return len(code) == settings.room_code_length and all(c in ALPHABET for c in code)


async def mint(
    store: TreeStore,
    generate: Callable[[], str] = random_code,
    attempts: int | None = None,
) -> str:
    """Return a code that does not name an existing room.

    Draws a fresh code per attempt and gives up with ``CodeExhaustion`` once every
    attempt has collided.
    """
    attempts = attempts or settings.room_code_attempts
    for attempt in range(1, attempts + 1):
        code = generate()
        if not await store.exists(RoomPaths(code).room()):
            return code
        logger.info(f"Room code collision on {code} (attempt {attempt}/{attempts})")
    raise CodeExhaustion(attempts)
