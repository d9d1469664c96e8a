"""Session API routes: one driver per participant, plus its SSE stream."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from reelroom.broadcaster import broadcaster
from reelroom.driver import Driver, Outcome
from reelroom.registry import registry

router = APIRouter(prefix="/api/sessions")

STATUS_CODES = {
    "not_found": 404,
    "already_started": 409,
    "capacity": 409,
    "code_exhaustion": 503,
    "store": 502,
    "illegal_transition": 403,
    "session": 409,
    "catalog": 502,
    "invalid": 422,
}


# --- Request models ---


class SessionRequest(BaseModel):
    participant_id: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    attribute: str = ""


class JoinRequest(BaseModel):
    code: str


class CardRequest(BaseModel):
    card_id: str


# --- Helpers ---


def _driver(participant_id: str) -> Driver:
    driver = registry.get(participant_id)
    if driver is None or driver.session is None:
        raise HTTPException(status_code=404, detail=f"No session for {participant_id}")
    return driver


def _respond(driver: Driver, outcome: Outcome, **extra) -> dict:
    if not outcome.ok:
        raise HTTPException(
            status_code=STATUS_CODES.get(outcome.error, 400),
            detail={"error": outcome.error, "message": outcome.message},
        )
    return {"ok": True, "value": outcome.value, **extra, "session": driver.view()}


# --- Routes ---


@router.post("")
async def create_session(request: SessionRequest):
    fresh = registry.get(request.participant_id) is None
    driver = registry.open(request.participant_id)
    outcome = await driver.create_session(
        request.participant_id, request.display_name, request.attribute
    )
    if fresh and outcome.ok:
        channel = request.participant_id

        async def relay(event: str, payload: dict) -> None:
            await broadcaster.broadcast(channel, event, payload)

        driver.on_any(relay)
    return _respond(driver, outcome)


@router.get("/{participant_id}")
async def get_session(participant_id: str):
    driver = _driver(participant_id)
    return {"session": driver.view(), "errors": [str(e) for e in driver.errors]}


@router.post("/{participant_id}/room")
async def create_room(participant_id: str):
    driver = _driver(participant_id)
    outcome = await driver.create_room()
    return _respond(driver, outcome, code=outcome.value)


@router.post("/{participant_id}/join")
async def join_room(participant_id: str, request: JoinRequest):
    driver = _driver(participant_id)
    return _respond(driver, await driver.join_room(request.code))


@router.post("/{participant_id}/leave")
async def leave_room(participant_id: str):
    driver = _driver(participant_id)
    return _respond(driver, await driver.leave_room())


@router.post("/{participant_id}/start")
async def start_swiping(participant_id: str):
    driver = _driver(participant_id)
    outcome = await driver.start_swiping()
    return _respond(driver, outcome, page=outcome.value)


@router.post("/{participant_id}/votes")
async def cast_yes(participant_id: str, request: CardRequest):
    driver = _driver(participant_id)
    outcome = await driver.cast_yes(request.card_id)
    return _respond(driver, outcome, matched=outcome.value)


@router.post("/{participant_id}/pages")
async def load_more_page(participant_id: str):
    driver = _driver(participant_id)
    outcome = await driver.load_more_page()
    return _respond(driver, outcome, page=outcome.value)


@router.post("/{participant_id}/restart")
async def restart_from_match(participant_id: str):
    driver = _driver(participant_id)
    outcome = await driver.restart_from_match()
    return _respond(driver, outcome, page=outcome.value)


@router.post("/{participant_id}/focus")
async def focus_card(participant_id: str, request: CardRequest):
    driver = _driver(participant_id)
    outcome = await driver.focus(request.card_id)
    return _respond(driver, outcome, voters=outcome.value)


@router.get("/{participant_id}/stream")
async def session_stream(participant_id: str):
    """SSE endpoint for one participant's session events."""
    _driver(participant_id)

    async def event_generator():
        yield ": connected\n\n"
        async for message in broadcaster.subscribe(participant_id):
            yield message

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
