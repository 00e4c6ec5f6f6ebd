import functools
import json
from typing import Any, Callable, Optional

import redis
from redis.exceptions import RedisError, WatchError

from constants import (
    ADMIT_MAX_RETRIES,
    REDIS_CONNECT_TIMEOUT,
    REDIS_DB,
    REDIS_HOST,
    REDIS_PASSWORD,
    REDIS_PORT,
    REDIS_SOCKET_TIMEOUT,
)
from errors import BusUnavailable, ChatError, StoreUnavailable
from redis_keys import REDIS_ROOM_CHANNEL
from logging_config import get_logger

logger = get_logger(__name__)


def _make_client() -> redis.Redis:
    return redis.Redis(
        host=REDIS_HOST,
        port=REDIS_PORT,
        password=REDIS_PASSWORD,
        db=REDIS_DB,
        decode_responses=True,
        socket_timeout=REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=REDIS_CONNECT_TIMEOUT,
    )


def _store_operation(func):
    """Translate Redis failures (timeouts included) into a retryable StoreUnavailable."""

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except ChatError:
            raise
        except RedisError as e:
            logger.error(f"Redis error during {func.__name__}: {e}")
            raise StoreUnavailable() from e

    return wrapper


def _encode(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _decode(value: Optional[str]) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return value


class RedisBackend:
    """State store and broadcast bus for rooms, both backed by Redis.

    Every command runs with a bounded socket timeout. Any Redis error is
    reported as ``StoreUnavailable`` (or ``BusUnavailable`` for publish) so
    callers can surface it as retryable.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None, pubsub_client: Optional[redis.Redis] = None):
        logger.info(f"Initializing RedisBackend with connection to {REDIS_HOST}:{REDIS_PORT}")
        self.redis_client = redis_client or _make_client()
        # Separate connection for pub/sub (required by Redis)
        self.pubsub_client = pubsub_client or _make_client()

    @_store_operation
    def ping(self) -> bool:
        return bool(self.redis_client.ping())

    # Hashes

    @_store_operation
    def hash_set(self, key: str, fields: dict, ttl: Optional[int] = None):
        # Convert dict values to strings for Redis hash, skip None values
        mapping = {k: _encode(v) for k, v in fields.items() if v is not None}
        with self.redis_client.pipeline(transaction=True) as pipe:
            pipe.hset(key, mapping=mapping)
            if ttl:
                pipe.expire(key, ttl)
            pipe.execute()
        logger.debug(f"Wrote hash {key} (ttl={ttl})")

    @_store_operation
    def hash_get_all(self, key: str) -> Optional[dict]:
        data = self.redis_client.hgetall(key)
        if not data:
            return None
        return {k: _decode(v) for k, v in data.items()}

    @_store_operation
    def hash_get_field(self, key: str, field: str) -> Any:
        return _decode(self.redis_client.hget(key, field))

    @_store_operation
    def update_hash_field(
        self,
        key: str,
        field: str,
        update: Callable[[Optional[dict]], Any],
        max_retries: int = ADMIT_MAX_RETRIES,
    ) -> Any:
        """Compare-and-swap a single hash field.

        ``update`` receives the decoded hash (``None`` when the key is absent)
        and returns the new field value, or ``None`` to leave it unchanged. It
        may raise to abort. The read and the write run under WATCH, so a
        concurrent writer (or the key expiring) forces a fresh read and a new
        call to ``update``.
        """
        for attempt in range(1, max_retries + 1):
            with self.redis_client.pipeline() as pipe:
                try:
                    pipe.watch(key)
                    raw = pipe.hgetall(key)
                    current = {k: _decode(v) for k, v in raw.items()} if raw else None
                    new_value = update(current)
                    if new_value is None:
                        return None
                    pipe.multi()
                    pipe.hset(key, field, _encode(new_value))
                    pipe.execute()
                    return new_value
                except WatchError:
                    logger.debug(f"Concurrent write on {key}, retrying ({attempt}/{max_retries})")
        logger.warning(f"Gave up updating {key}.{field} after {max_retries} conflicting attempts")
        raise StoreUnavailable(f"Too much contention on {key}, retry later")

    # Expiry

    @_store_operation
    def expire(self, key: str, seconds: int) -> bool:
        return bool(self.redis_client.expire(key, seconds))

    @_store_operation
    def ttl(self, key: str) -> int:
        return self.redis_client.ttl(key)

    @_store_operation
    def pttl(self, key: str) -> int:
        return self.redis_client.pttl(key)

    # Keys and lists

    @_store_operation
    def exists(self, key: str) -> bool:
        return self.redis_client.exists(key) > 0

    @_store_operation
    def delete(self, *keys: str) -> int:
        # Multi-key DEL is a single atomic command
        deleted = self.redis_client.delete(*keys)
        logger.debug(f"Deleted {deleted}/{len(keys)} keys: {keys}")
        return deleted

    @_store_operation
    def list_append(self, key: str, value: Any) -> int:
        return self.redis_client.rpush(key, _encode(value))

    @_store_operation
    def list_range(self, key: str, start: int = 0, end: int = -1) -> list:
        return [_decode(v) for v in self.redis_client.lrange(key, start, end)]

    @_store_operation
    def append_with_ttl_of(self, key: str, value: Any, ttl_source_key: str, max_retries: int = ADMIT_MAX_RETRIES) -> Optional[int]:
        """Append ``value`` to list ``key`` and give the list the remaining lifetime of ``ttl_source_key``.

        Returns the remaining lifetime in milliseconds, or ``None`` without
        writing anything when ``ttl_source_key`` does not exist.
        """
        encoded = _encode(value)
        for attempt in range(1, max_retries + 1):
            with self.redis_client.pipeline() as pipe:
                try:
                    pipe.watch(ttl_source_key)
                    remaining = pipe.pttl(ttl_source_key)
                    if remaining == -2:
                        return None
                    pipe.multi()
                    pipe.rpush(key, encoded)
                    if remaining == -1:
                        pipe.persist(key)
                    else:
                        pipe.pexpire(key, remaining)
                    pipe.execute()
                    return remaining
                except WatchError:
                    logger.debug(f"{ttl_source_key} changed during append to {key}, retrying ({attempt}/{max_retries})")
        raise StoreUnavailable(f"Too much contention on {ttl_source_key}, retry later")

    @_store_operation
    def exists_and_range(self, check_key: str, key: str, start: int = 0, end: int = -1) -> Optional[list]:
        """Read list ``key`` only if ``check_key`` exists, in one MULTI block."""
        with self.redis_client.pipeline(transaction=True) as pipe:
            pipe.exists(check_key)
            pipe.lrange(key, start, end)
            exists, values = pipe.execute()
        if not exists:
            return None
        return [_decode(v) for v in values]

    # Pub/sub

    def get_room_channel_name(self, room_id: str) -> str:
        """Get the Redis pub/sub channel name for a room."""
        return REDIS_ROOM_CHANNEL.format(slug=room_id)

    def publish(self, room_id: str, event: str, payload: dict) -> int:
        """Publish a named event to the room's Redis pub/sub channel."""
        channel = self.get_room_channel_name(room_id)
        message_json = json.dumps({"event": event, "data": payload})
        try:
            subscribers = self.redis_client.publish(channel, message_json)
        except RedisError as e:
            logger.error(f"Failed to publish {event} to {channel}: {e}")
            raise BusUnavailable() from e
        logger.debug(f"Published {event} to room {room_id} channel {channel}, {subscribers} subscribers")
        return subscribers

    def subscribe_to_room(self, room_id: str):
        """Create a pubsub subscriber for a room channel."""
        channel = self.get_room_channel_name(room_id)
        logger.debug(f"Subscribing to Redis channel {channel} for room {room_id}")
        try:
            pubsub = self.pubsub_client.pubsub()
            pubsub.subscribe(channel)
        except RedisError as e:
            logger.error(f"Failed to subscribe to {channel}: {e}")
            raise BusUnavailable() from e
        return pubsub


redis_backend = RedisBackend()
