import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from backend import RedisBackend
from constants import ROOM_CAPACITY, ROOM_TTL_SECONDS
from errors import RoomFull, RoomNotFound, StoreUnavailable
from redis_keys import REDIS_MESSAGES_KEY, REDIS_META_KEY
from services.events import EventDispatcher
from logging_config import get_logger

logger = get_logger(__name__)


def new_token() -> str:
    return uuid.uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class RoomMeta:
    room_id: str
    created_at: int
    connected: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Admission:
    token: str
    already_member: bool


class RoomRegistry:
    """Owns room metadata: creation, lookup, remaining lifetime and destruction."""

    def __init__(self, backend: RedisBackend, dispatcher: EventDispatcher, ttl_seconds: int = ROOM_TTL_SECONDS):
        self.backend = backend
        self.dispatcher = dispatcher
        self.ttl_seconds = ttl_seconds

    def create_room(self, ttl_seconds: Optional[int] = None) -> str:
        ttl = ttl_seconds or self.ttl_seconds
        room_id = uuid.uuid4().hex
        self.backend.hash_set(
            REDIS_META_KEY.format(slug=room_id),
            {"connected": [], "created_at": now_ms()},
            ttl=ttl,
        )
        logger.info(f"Room {room_id} created with TTL {ttl} seconds")
        return room_id

    def get_meta(self, room_id: str) -> RoomMeta:
        data = self.backend.hash_get_all(REDIS_META_KEY.format(slug=room_id))
        if not data:
            logger.debug(f"Room {room_id} not found in Redis")
            raise RoomNotFound()
        return RoomMeta(
            room_id=room_id,
            created_at=int(data.get("created_at") or 0),
            connected=list(data.get("connected") or []),
        )

    def remaining_ttl(self, room_id: str) -> int:
        # -2 (absent) and -1 (no expiry, never written by create_room) both clamp to 0
        return max(self.backend.ttl(REDIS_META_KEY.format(slug=room_id)), 0)

    def destroy(self, room_id: str) -> None:
        """Delete every record of the room, then announce it.

        The destroy event is published even when the delete fails. A delete
        failure is logged before publishing and then propagates; if the
        publish fails too, the caller sees ``BusUnavailable``.
        """
        logger.info(f"Destroying room {room_id}")
        try:
            deleted = self.backend.delete(
                REDIS_META_KEY.format(slug=room_id),
                REDIS_MESSAGES_KEY.format(slug=room_id),
            )
            logger.debug(f"Room {room_id} destroyed, {deleted} keys removed")
        except StoreUnavailable as e:
            logger.error(f"Failed to delete records of room {room_id}: {e}")
            raise
        finally:
            self.dispatcher.announce_destroy(room_id)


class AdmissionController:
    """Turns a visitor into a room member, subject to capacity.

    This is the only code path that grows a room's ``connected`` list. The
    read, the capacity check and the append run as one compare-and-swap
    against Redis, so concurrent joins can never push a room past capacity.
    """

    def __init__(
        self,
        backend: RedisBackend,
        capacity: int = ROOM_CAPACITY,
        token_factory: Callable[[], str] = new_token,
    ):
        self.backend = backend
        self.capacity = capacity
        self.token_factory = token_factory

    def admit(self, room_id: str, existing_token: Optional[str] = None) -> Admission:
        minted = None

        def join(meta):
            nonlocal minted
            minted = None
            if meta is None:
                raise RoomNotFound()
            connected = list(meta.get("connected") or [])
            if existing_token and existing_token in connected:
                return None
            if len(connected) >= self.capacity:
                raise RoomFull()
            minted = self.token_factory()
            return connected + [minted]

        try:
            self.backend.update_hash_field(REDIS_META_KEY.format(slug=room_id), "connected", join)
        except RoomFull:
            logger.warning(f"Admission to room {room_id} rejected: room is full ({self.capacity}/{self.capacity})")
            raise
        except RoomNotFound:
            logger.warning(f"Admission to room {room_id} rejected: room not found")
            raise

        if minted is None:
            logger.debug(f"Existing member re-entered room {room_id}")
            return Admission(token=existing_token, already_member=True)

        logger.info(f"New member admitted to room {room_id}")
        return Admission(token=minted, already_member=False)
