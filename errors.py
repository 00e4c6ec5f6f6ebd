from typing import Optional


class ChatError(Exception):
    """Base class for every failure the room service reports to a caller."""

    status_code = 500
    detail = "Internal error"
    retryable = False

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class Unauthorized(ChatError):
    # Same message for every sub-condition, the caller learns nothing about which check failed
    status_code = 401
    detail = "Unauthorized"

    def __init__(self):
        super().__init__()


class RoomNotFound(ChatError):
    status_code = 404
    detail = "Room not found"


class RoomFull(ChatError):
    status_code = 403
    detail = "Room is full"


class ValidationFailure(ChatError):
    status_code = 422
    detail = "Invalid input"


class StoreUnavailable(ChatError):
    status_code = 503
    detail = "State store unavailable, retry later"
    retryable = True


class BusUnavailable(ChatError):
    status_code = 503
    detail = "Broadcast bus unavailable, retry later"
    retryable = True
