from backend import RedisBackend
from redis_keys import EVENT_DESTROY, EVENT_MESSAGE
from schemas.messages import Message
from logging_config import get_logger

logger = get_logger(__name__)


class EventDispatcher:
    """Sole publisher of ``chat.message`` and ``chat.destroy`` events.

    Events are a low-latency nudge, not the system of record: delivery is
    best-effort and reaches only clients subscribed at publish time.
    """

    def __init__(self, backend: RedisBackend):
        self.backend = backend

    def announce_message(self, room_id: str, message: Message) -> int:
        # Carries the unredacted message; subscribers re-read the log for their own view
        receivers = self.backend.publish(room_id, EVENT_MESSAGE, message.model_dump())
        logger.debug(f"Announced message {message.id} in room {room_id} to {receivers} subscribers")
        return receivers

    def announce_destroy(self, room_id: str) -> int:
        receivers = self.backend.publish(room_id, EVENT_DESTROY, {"is_destroyed": True})
        logger.info(f"Announced destruction of room {room_id} to {receivers} subscribers")
        return receivers
