"""Exception hierarchy for room coordination.

Every error carries a stable ``kind`` string. The programmatic driver turns
it into an error disposition and the HTTP routes map it to a status code.
"""

from __future__ import annotations


class LobbyError(Exception):
    """Base exception for all room coordination errors."""

    kind = "error"


class RoomNotFound(LobbyError):
    """Raised when a room (or a member inside it) is missing on a required read."""

    kind = "not_found"

    def __init__(self, code: str, participant_id: str | None = None):
        self.code = code
        self.participant_id = participant_id
        if participant_id:
            message = f"Member '{participant_id}' not found in room {code}"
        else:
            message = f"Room {code} not found"
        super().__init__(message)


class AlreadyStarted(LobbyError):
    """Raised when joining a room that has left the waiting phase."""

    kind = "already_started"

    def __init__(self, code: str, status: str):
        self.code = code
        self.status = status
        super().__init__(f"Room {code} already started (status: {status})")


class RoomFull(LobbyError):
    """Raised when joining a room that is at capacity."""

    kind = "capacity"

    def __init__(self, code: str, capacity: int):
        self.code = code
        self.capacity = capacity
        super().__init__(f"Room {code} is full ({capacity} members)")


class CodeExhaustion(LobbyError):
    """Raised when every freshly drawn room code collided with an existing room."""

    kind = "code_exhaustion"

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Could not mint a unique room code after {attempts} attempts")


class StoreError(LobbyError):
    """Transport-level failure of the backing store."""

    kind = "store"

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class IllegalTransition(LobbyError):
    """Raised before issuing a status or pagination write the caller may not make."""

    kind = "illegal_transition"

    def __init__(self, current: str | None, target: str | None, reason: str = ""):
        self.current = current
        self.target = target
        self.reason = reason
        message = reason or f"Illegal transition {current} -> {target}"
        super().__init__(message)


class SessionStateError(LobbyError):
    """A session operation was called in the wrong local state (e.g. not in a room)."""

    kind = "session"


class CatalogError(LobbyError):
    """The external catalog could not be reached or returned an unusable response."""

    kind = "catalog"


class InvalidIdentifier(LobbyError):
    """A room code, participant id or card id that cannot name a single tree node."""

    kind = "invalid"

    def __init__(self, label: str, value: str):
        self.label = label
        self.value = value
        super().__init__(f"Invalid {label}: {value!r}")
