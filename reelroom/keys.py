"""Path builders for the ``rooms`` tree.

Layout::

    rooms/{code}/hostId | createdBy | createdAt | status | currentPage | matchedCardId
    rooms/{code}/members/{participantId}/displayName | attribute | joinedAt | host
    rooms/{code}/votes/{cardId}/{participantId} = true
"""

from __future__ import annotations

from dataclasses import dataclass

from reelroom.errors import InvalidIdentifier

ROOMS = "rooms"

HOST_ID = "hostId"
CREATED_BY = "createdBy"
CREATED_AT = "createdAt"
STATUS = "status"
CURRENT_PAGE = "currentPage"
MATCHED_CARD_ID = "matchedCardId"
MEMBERS = "members"
VOTES = "votes"
HOST_FLAG = "host"
DISPLAY_NAME = "displayName"


def segment(value, label: str = "identifier") -> str:
    """Return ``value`` as one path segment; slashes and empty ids are refused."""
    text = str(value) if value is not None else ""
    if not text or "/" in text:
        raise InvalidIdentifier(label, text)
    return text


@dataclass(frozen=True)
class RoomPaths:
    """Path builder for one room's subtree."""

    code: str

    def __post_init__(self) -> None:
        segment(self.code, "room code")

    # ---- Room ----
    def room(self) -> str:
        return f"{ROOMS}/{self.code}"

    def host_id(self) -> str:
        return f"{self.room()}/{HOST_ID}"

    def status(self) -> str:
        return f"{self.room()}/{STATUS}"

    def current_page(self) -> str:
        return f"{self.room()}/{CURRENT_PAGE}"

    def matched_card_id(self) -> str:
        return f"{self.room()}/{MATCHED_CARD_ID}"

    # ---- Membership ----
    def members(self) -> str:
        return f"{self.room()}/{MEMBERS}"

    def member(self, participant_id: str) -> str:
        return f"{self.members()}/{segment(participant_id, 'participant id')}"

    def host_flag(self, participant_id: str) -> str:
        return f"{self.member(participant_id)}/{HOST_FLAG}"

    # ---- Votes ----
    def votes(self) -> str:
        return f"{self.room()}/{VOTES}"

    def card_votes(self, card_id: str) -> str:
        return f"{self.votes()}/{segment(card_id, 'card id')}"

    def vote(self, card_id: str, participant_id: str) -> str:
        return f"{self.card_votes(card_id)}/{segment(participant_id, 'participant id')}"
