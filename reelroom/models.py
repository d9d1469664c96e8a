from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class RoomStatus(StrEnum):
    WAITING = "waiting"
    SWIPING = "swiping"
    MATCHED = "matched"


class Member(BaseModel):
    """Value stored under ``members/{participantId}``."""

    model_config = ConfigDict(populate_by_name=True)

    display_name: str = Field(alias="displayName", min_length=1)
    attribute: str = ""
    joined_at: int = Field(alias="joinedAt", default=0)
    host: bool = False

    def to_store(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class Room(BaseModel):
    """Decoded ``rooms/{code}`` subtree."""

    model_config = ConfigDict(populate_by_name=True)

    code: str
    host_id: str = Field(alias="hostId", default="")
    created_by: str = Field(alias="createdBy", default="")
    created_at: int = Field(alias="createdAt", default=0)
    status: RoomStatus = RoomStatus.WAITING
    current_page: int = Field(alias="currentPage", default=0)
    matched_card_id: str | None = Field(alias="matchedCardId", default=None)
    members: dict[str, Member] = {}
    votes: dict[str, dict[str, bool]] = {}

    @classmethod
    def from_store(cls, code: str, value: dict) -> Room:
        return cls.model_validate({**value, "code": code})

    def header(self) -> dict[str, Any]:
        """Top-level fields written when the room is created."""
        return {
            "hostId": self.host_id,
            "createdBy": self.created_by,
            "createdAt": self.created_at,
            "status": self.status.value,
        }

    @property
    def member_count(self) -> int:
        return len(self.members)

    def vote_count(self, card_id: str) -> int:
        return len(self.votes.get(str(card_id), {}))

    def hosts(self) -> list[str]:
        return [uid for uid, member in self.members.items() if member.host]


# --- Catalog ---


class Genre(BaseModel):
    id: int
    name: str


class Card(BaseModel):
    """One catalog item. Accepts both our field names and the catalog's wire names."""

    id: str
    title: str = ""
    summary: str = Field(default="", validation_alias=AliasChoices("summary", "overview"))
    primary_image_path: str | None = Field(
        default=None, validation_alias=AliasChoices("primary_image_path", "poster_path")
    )
    secondary_image_path: str | None = Field(
        default=None, validation_alias=AliasChoices("secondary_image_path", "backdrop_path")
    )
    score: float = Field(default=0.0, validation_alias=AliasChoices("score", "vote_average"))
    date: str = Field(default="", validation_alias=AliasChoices("date", "release_date"))
    genre_ids: list[int] = []

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_string(cls, v: Any) -> str:
        return str(v)

    @field_validator("summary", "date", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class CardDetail(Card):
    genres: list[Genre] = []
    runtime: int | None = None
    tagline: str | None = None

    @model_validator(mode="after")
    def _fill_genre_ids(self) -> CardDetail:
        if not self.genre_ids and self.genres:
            self.genre_ids = [g.id for g in self.genres]
        return self

    @property
    def genre_names(self) -> list[str]:
        return [g.name for g in self.genres]
