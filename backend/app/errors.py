"""Error taxonomy shared by the HTTP routes, services and the realtime channel.

Every error is an ``HTTPException`` so services can raise them directly and
FastAPI renders them; the WebSocket surface uses ``kind`` to build error frames.
"""
from fastapi import HTTPException, status


class ChatError(HTTPException):
    kind = "error"
    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, detail: str):
        super().__init__(status_code=self.status_code, detail=detail)


class TransportError(ChatError):
    """A query, write or subscription failed; local state must stay untouched."""

    kind = "transport_error"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


class RoomCreationFailed(TransportError):
    """The room row was written but its admin membership could not be."""

    kind = "room_creation_failed"


class NotFound(ChatError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class AlreadyMember(ChatError):
    kind = "already_member"
    status_code = status.HTTP_409_CONFLICT


class Unauthorized(ChatError):
    kind = "unauthorized"
    status_code = status.HTTP_403_FORBIDDEN


class ValidationError(ChatError):
    kind = "validation_error"
    status_code = 422
