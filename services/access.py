from dataclasses import dataclass
from typing import List, Optional

from backend import RedisBackend
from errors import Unauthorized
from redis_keys import REDIS_META_KEY
from logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthorizedContext:
    room_id: str
    token: str
    connected: List[str]


class AccessGate:
    """Checks that a (room, token) pair belongs to a currently connected member.

    Every failure is reported as the same ``Unauthorized`` so a caller cannot
    tell a missing room from a wrong token.
    """

    def __init__(self, backend: RedisBackend):
        self.backend = backend

    def authorize(self, room_id: Optional[str], token: Optional[str]) -> AuthorizedContext:
        if not room_id or not token:
            logger.warning(f"Rejected request for room {room_id!r}: missing room id or token")
            raise Unauthorized()

        connected = self.backend.hash_get_field(REDIS_META_KEY.format(slug=room_id), "connected")
        if not isinstance(connected, list) or token not in connected:
            logger.warning(f"Rejected request for room {room_id}: token is not a member")
            raise Unauthorized()

        return AuthorizedContext(room_id=room_id, token=token, connected=connected)
