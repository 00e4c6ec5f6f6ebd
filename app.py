import asyncio
import functools
import json
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend import redis_backend
from constants import AUTH_COOKIE_NAME, CORS_ORIGINS, LOG_FILE, LOG_LEVEL
from errors import ChatError, Unauthorized
from redis_keys import EVENT_DESTROY
from routers.rooms import access_gate, rooms_router
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await run_in_threadpool(redis_backend.ping)
        logger.info("Redis connection verified")
    except ChatError:
        logger.error("Failed to connect to Redis at startup", exc_info=True)
        raise
    yield


app = FastAPI(title="EphemeralChat", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    # Browsers refuse credentialed requests against a wildcard origin
    allow_credentials="*" not in CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rooms_router)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


@app.get("/health")
def health():
    redis_backend.ping()
    return {"status": "ok"}


logger.info("FastAPI application initialized")


async def relay_room_events(websocket: WebSocket, room_id: str, pubsub) -> None:
    """Forward channel events to the socket until the room is destroyed."""
    loop = asyncio.get_running_loop()
    # Blocking call to get next message from Redis pub/sub with timeout
    get_message = functools.partial(pubsub.get_message, timeout=1.0, ignore_subscribe_messages=True)

    while True:
        read = loop.run_in_executor(None, get_message)
        try:
            message = await asyncio.shield(read)
        except asyncio.CancelledError:
            # The pubsub must not be closed while a worker thread is still reading from it
            await asyncio.wait({read})
            if read.exception() is not None:
                logger.debug(f"Pending pub/sub read for room {room_id} failed: {read.exception()}")
            raise

        if message is None or message.get("type") != "message":
            continue

        try:
            event = json.loads(message["data"])
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing event from Redis for room {room_id}: {e}")
            continue

        await websocket.send_json(event)
        logger.debug(f"Relayed {event.get('event')} to a member of room {room_id}")

        if event.get("event") == EVENT_DESTROY:
            return


async def wait_for_disconnect(websocket: WebSocket) -> None:
    # Members only listen here; anything they send is ignored
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@app.websocket("/rooms/{room_id}/ws")
async def room_events_endpoint(room_id: str, websocket: WebSocket):
    """Stream ``chat.message`` and ``chat.destroy`` events to a room member.

    The member cookie is checked the same way as for HTTP requests. Events
    are delivered only while connected; there is no replay of missed events.
    The socket is closed by the server after ``chat.destroy``.
    """
    token = websocket.cookies.get(AUTH_COOKIE_NAME)
    try:
        await run_in_threadpool(access_gate.authorize, room_id, token)
        # Subscribed before accepting, so nothing published after the handshake is missed
        pubsub = await run_in_threadpool(redis_backend.subscribe_to_room, room_id)
    except Unauthorized:
        await websocket.close(code=1008, reason="Unauthorized")
        return
    except ChatError as e:
        logger.error(f"Could not open event stream for room {room_id}: {e}")
        await websocket.close(code=1011, reason=e.detail)
        return

    member_left = False
    try:
        await websocket.accept()
        logger.info(f"Member connected to event stream of room {room_id}")

        relay = asyncio.create_task(relay_room_events(websocket, room_id, pubsub))
        listener = asyncio.create_task(wait_for_disconnect(websocket))

        done, pending = await asyncio.wait({relay, listener}, return_when=asyncio.FIRST_COMPLETED)
        member_left = listener in done
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            if task.exception() is not None:
                logger.error(f"Event stream for room {room_id} failed: {task.exception()}")
    finally:
        try:
            pubsub.close()
        except Exception as e:
            logger.error(f"Error closing pub/sub for room {room_id}: {e}")
        if not member_left:
            try:
                await websocket.close()
            except RuntimeError as e:
                logger.debug(f"Error closing WebSocket: {e}")
        logger.info(f"Member left event stream of room {room_id}")
