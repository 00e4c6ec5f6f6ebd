from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Request, Response, status

from backend import redis_backend
from constants import AUTH_COOKIE_NAME, COOKIE_SECURE
from schemas.messages import MessagesResponse, SendMessageRequest, SendMessageResponse
from schemas.rooms import CreateRoomResponse, JoinRoomResponse, RoomTTLResponse
from services.access import AccessGate, AuthorizedContext
from services.events import EventDispatcher
from services.messages import MessageLog, new_message
from services.rooms import AdmissionController, RoomRegistry
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])

event_dispatcher = EventDispatcher(redis_backend)
room_registry = RoomRegistry(redis_backend, event_dispatcher)
admission_controller = AdmissionController(redis_backend)
access_gate = AccessGate(redis_backend)
message_log = MessageLog(redis_backend)


def require_member(room_id: str, token: Optional[str] = Cookie(None, alias=AUTH_COOKIE_NAME)) -> AuthorizedContext:
    return access_gate.authorize(room_id, token)


def room_cookie_path(room_id: str) -> str:
    # Scoped per room so tokens for several rooms can live in one browser
    return f"/rooms/{room_id}"


@rooms_router.post("/", response_model=CreateRoomResponse, status_code=status.HTTP_201_CREATED)
def create_room(request: Request):
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room creation request from {client_host}")
    room_id = room_registry.create_room()
    return CreateRoomResponse(room_id=room_id)


@rooms_router.post("/{room_id}/join", response_model=JoinRoomResponse)
def join_room(room_id: str, response: Response, token: Optional[str] = Cookie(None, alias=AUTH_COOKIE_NAME)):
    """Admit the caller to the room.

    A caller already holding a member cookie for this room gets it back
    unchanged; otherwise a fresh token is minted and set as an HttpOnly
    cookie. The token never appears in the response body.
    """
    logger.info(f"Join room request for {room_id}, has_token={token is not None}")
    admission = admission_controller.admit(room_id, token)

    if not admission.already_member:
        response.set_cookie(
            AUTH_COOKIE_NAME,
            admission.token,
            max_age=room_registry.remaining_ttl(room_id) or None,
            path=room_cookie_path(room_id),
            httponly=True,
            secure=COOKIE_SECURE,
            samesite="strict",
        )

    return JoinRoomResponse(room_id=room_id, already_member=admission.already_member)


@rooms_router.get("/{room_id}/ttl", response_model=RoomTTLResponse)
def get_room_ttl(auth: AuthorizedContext = Depends(require_member)):
    return RoomTTLResponse(ttl=room_registry.remaining_ttl(auth.room_id))


@rooms_router.delete("/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
def destroy_room(auth: AuthorizedContext = Depends(require_member)):
    logger.info(f"Destroy request for room {auth.room_id}")
    room_registry.destroy(auth.room_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@rooms_router.post("/{room_id}/messages", response_model=SendMessageResponse, status_code=status.HTTP_201_CREATED)
def send_message(body: SendMessageRequest, auth: AuthorizedContext = Depends(require_member)):
    message = new_message(auth.room_id, body.sender, body.text, auth.token)
    message_log.append(auth.room_id, message)
    # Only announced once the append has succeeded
    event_dispatcher.announce_message(auth.room_id, message)
    return SendMessageResponse(id=message.id)


@rooms_router.get("/{room_id}/messages", response_model=MessagesResponse)
def list_messages(auth: AuthorizedContext = Depends(require_member)):
    return MessagesResponse(messages=message_log.list_all(auth.room_id, auth.token))
