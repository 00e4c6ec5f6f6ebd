import random
import string
import uuid
from typing import List, Optional

from pydantic import ValidationError

from backend import RedisBackend
from constants import ANIMALS
from errors import RoomNotFound, ValidationFailure
from redis_keys import REDIS_MESSAGES_KEY, REDIS_META_KEY
from schemas.messages import Message
from services.rooms import now_ms
from logging_config import get_logger

logger = get_logger(__name__)


def generate_username() -> str:
    animal = random.choice(ANIMALS)
    suffix = ''.join(random.choices(string.ascii_letters + string.digits, k=5))
    return f"anonymous-{animal}-{suffix}"


def new_message(room_id: str, sender: Optional[str], text: str, auth_token: str) -> Message:
    """Build a message, falling back to an anonymous name when ``sender`` is blank."""
    sender = sender.strip() if sender else ""
    try:
        return Message(
            id=uuid.uuid4().hex,
            sender=sender or generate_username(),
            text=text,
            timestamp=now_ms(),
            room_id=room_id,
            auth_token=auth_token,
        )
    except ValidationError as e:
        logger.warning(f"Rejected message for room {room_id}: {e.error_count()} validation errors")
        raise ValidationFailure("Message sender or text is too long") from e


class MessageLog:
    """Append-only, per-room message sequence whose lifetime follows the room."""

    def __init__(self, backend: RedisBackend):
        self.backend = backend

    def append(self, room_id: str, message: Message) -> None:
        if message.room_id != room_id:
            raise ValidationFailure("Message belongs to a different room")

        # Room existence check, append and TTL sync happen in one transaction
        remaining_ms = self.backend.append_with_ttl_of(
            REDIS_MESSAGES_KEY.format(slug=room_id),
            message.model_dump(),
            REDIS_META_KEY.format(slug=room_id),
        )
        if remaining_ms is None:
            logger.warning(f"Append to room {room_id} refused: room no longer exists")
            raise RoomNotFound()
        logger.debug(f"Appended message {message.id} to room {room_id}, log expires in {remaining_ms} ms")

    def list_all(self, room_id: str, token: Optional[str]) -> List[Message]:
        """Messages in append order, with every other member's token hidden."""
        raw = self.backend.exists_and_range(
            REDIS_META_KEY.format(slug=room_id),
            REDIS_MESSAGES_KEY.format(slug=room_id),
        )
        if raw is None:
            raise RoomNotFound()

        messages = []
        for item in raw:
            message = Message.model_validate(item)
            if not token or message.auth_token != token:
                message = message.model_copy(update={"auth_token": None})
            messages.append(message)
        return messages
