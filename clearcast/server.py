"""aiohttp application: websocket signaling, chunk ingestion and health."""

import asyncio
import logging
import threading
import uuid
from typing import Any, Callable, Dict, Optional, Tuple

from aiohttp import WSMsgType, web
from aiohttp.web import AppKey
from pubsub import pub
from pydantic import ValidationError

from .config import ClearCastConfig
from .merge.scheduler import MergeScheduler, SubprocessMergeRunner
from .models.events import Connected, ErrorMessage, OutboundMessage
from .signaling.coordinator import SessionCoordinator
from .signaling.port import OUTBOUND_TOPIC, PubSubSignalingPort
from .signaling.registry import SessionRegistry
from .signaling.wire import EndSessionRequest, JoinRoomRequest, SignalRequest, parse_inbound
from .storage.chunk_store import ChunkStore

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 50 * 1024 * 1024

_Outbox = Tuple[asyncio.AbstractEventLoop, "asyncio.Queue[Optional[Dict[str, Any]]]"]


class WebSocketHub:
    """Delivers outbound pubsub messages to the websockets this server owns.

    Messages may be published from any thread (timer threads included);
    they are handed to the event loop and written in publish order.
    """

    def __init__(self, topic: str = OUTBOUND_TOPIC):
        self.topic = topic
        self._outboxes: Dict[str, _Outbox] = {}
        self._lock = threading.Lock()
        pub.subscribe(self._on_outbound, topic)
        logger.info(f"WebSocketHub subscribed to topic: {topic}")

    def register(self, connection_id: str) -> "asyncio.Queue[Optional[Dict[str, Any]]]":
        """Create the outbox of a new connection. Call from the event loop."""
        outbox: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue()
        with self._lock:
            self._outboxes[connection_id] = (asyncio.get_running_loop(), outbox)
        return outbox

    def unregister(self, connection_id: str) -> None:
        with self._lock:
            entry = self._outboxes.pop(connection_id, None)
        if entry is not None:
            loop, outbox = entry
            loop.call_soon_threadsafe(outbox.put_nowait, None)

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._outboxes)

    def _on_outbound(self, connection_id: str, message: OutboundMessage) -> None:
        with self._lock:
            entry = self._outboxes.get(connection_id)
        if entry is None:
            logger.debug(f"No local socket for {connection_id}, dropping {message.type}")
            return

        loop, outbox = entry
        loop.call_soon_threadsafe(outbox.put_nowait, message.to_wire())


REGISTRY_KEY: AppKey[SessionRegistry] = web.AppKey("registry", SessionRegistry)
COORDINATOR_KEY: AppKey[SessionCoordinator] = web.AppKey("coordinator", SessionCoordinator)
CHUNK_STORE_KEY: AppKey[ChunkStore] = web.AppKey("chunk_store", ChunkStore)
SCHEDULER_KEY: AppKey[MergeScheduler] = web.AppKey("merge_scheduler", MergeScheduler)
HUB_KEY: AppKey[WebSocketHub] = web.AppKey("websocket_hub", WebSocketHub)


async def _drain_outbox(ws: web.WebSocketResponse, outbox: "asyncio.Queue[Optional[Dict[str, Any]]]") -> None:
    while True:
        payload = await outbox.get()
        if payload is None:
            return
        if ws.closed:
            continue
        try:
            await ws.send_json(payload)
        except ConnectionResetError as e:
            logger.debug(f"Socket closed while sending {payload.get('type')}: {e}")


def _dispatch(coordinator: SessionCoordinator, connection_id: str, raw: str) -> Optional[str]:
    """Route one text frame; returns an error message for the client, if any."""
    try:
        message = parse_inbound(raw)
    except ValidationError as e:
        logger.warning(f"Malformed message from {connection_id}: {e.error_count()} error(s)")
        return "Malformed message"

    if isinstance(message, JoinRoomRequest):
        coordinator.on_join(connection_id, message.session_key, message.display_name)
    elif isinstance(message, SignalRequest):
        coordinator.on_signal(connection_id, message.to, message.payload, claimed_from=message.from_id)
    elif isinstance(message, EndSessionRequest):
        coordinator.on_end_session(connection_id, message.session_key)
    return None


async def websocket_handler(request: web.Request) -> web.WebSocketResponse:
    ws = web.WebSocketResponse(heartbeat=30)
    await ws.prepare(request)

    hub = request.app[HUB_KEY]
    coordinator = request.app[COORDINATOR_KEY]

    connection_id = uuid.uuid4().hex
    outbox = hub.register(connection_id)
    sender = asyncio.create_task(_drain_outbox(ws, outbox))
    logger.info(f"User connected: {connection_id} from {request.remote}")
    coordinator.port.send(connection_id, Connected(connection_id))

    try:
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                error = _dispatch(coordinator, connection_id, msg.data)
                if error:
                    coordinator.port.send(connection_id, ErrorMessage(error))
            elif msg.type == WSMsgType.ERROR:
                logger.warning(f"Socket error on {connection_id}: {ws.exception()}")
            else:
                coordinator.port.send(connection_id, ErrorMessage("Only text frames are accepted"))
    finally:
        logger.info(f"User disconnected: {connection_id}")
        coordinator.on_disconnect(connection_id)
        hub.unregister(connection_id)
        await sender

    return ws


def _error(status: int, message: str, **extra: Any) -> web.Response:
    return web.json_response({"status": "error", "message": message, **extra}, status=status)


async def upload_handler(request: web.Request) -> web.Response:
    """Accept one chunk: POST /upload?roomId=&userId=&userName=, field 'audio'."""
    room_id = request.query.get("roomId")
    user_id = request.query.get("userId")
    user_name = request.query.get("userName")
    if not room_id or not user_id:
        return _error(400, "roomId and userId are required")
    if not request.content_type.startswith("multipart/"):
        return _error(400, "Expected multipart/form-data")

    data = None
    reader = await request.multipart()
    while True:
        part = await reader.next()
        if part is None:
            break
        if part.name == "audio":
            data = bytes(await part.read())
            break

    if data is None:
        return _error(400, "No file uploaded")

    store = request.app[CHUNK_STORE_KEY]
    try:
        result = await asyncio.to_thread(store.save_chunk, room_id, user_id, data, user_name)
    except ValueError as e:
        logger.warning(f"Rejected upload for {room_id}/{user_id}: {e}")
        return _error(400, str(e), roomId=room_id, userId=user_id)
    except OSError as e:
        logger.error(f"Failed to store upload for {room_id}/{user_id}: {e}")
        return _error(500, "Failed to store chunk", roomId=room_id, userId=user_id)

    scheduler = request.app.get(SCHEDULER_KEY)
    if scheduler is not None:
        scheduler.note_upload(room_id)

    return web.json_response({
        "status": "ok",
        "file": result.file,
        "path": result.path,
        "roomId": room_id,
        "userId": user_id,
        "sequence": result.sequence,
    })


async def health_handler(_: web.Request) -> web.Response:
    return web.Response(text="ok")


def build_app(
    config: ClearCastConfig,
    merge_runner: Optional[Callable[[str], object]] = None,
    topic: str = OUTBOUND_TOPIC,
) -> web.Application:
    """Wire registry, coordinator, storage and merge scheduling into an app.

    Args:
        config: Loaded configuration
        merge_runner: Replaces the out-of-process merge job
        topic: Pub/sub topic for outbound signaling messages
    """
    app = web.Application(client_max_size=MAX_UPLOAD_BYTES)

    registry = SessionRegistry(capacity=config.get('session.capacity', 2))
    port = PubSubSignalingPort(topic)
    hub = WebSocketHub(topic)

    scheduler = MergeScheduler(
        merge_runner or SubprocessMergeRunner(config.path),
        grace_delay=config.get('merge.grace_delay_seconds', 8.0),
        settle_seconds=config.get('merge.settle_seconds', 2.0),
        max_wait=config.get('merge.max_wait_seconds', 30.0),
    )
    chunk_store = ChunkStore(
        data_dir=config.get_data_directory(),
        output_dirname=config.get('merge.output_dirname', 'merged'),
        container=config.get('recording.container', 'webm'),
    )

    app[REGISTRY_KEY] = registry
    app[HUB_KEY] = hub
    app[SCHEDULER_KEY] = scheduler
    app[CHUNK_STORE_KEY] = chunk_store
    app[COORDINATOR_KEY] = SessionCoordinator(registry, port, merge_scheduler=scheduler)

    async def _shutdown_scheduler(_: web.Application) -> None:
        await asyncio.to_thread(scheduler.shutdown)

    app.on_cleanup.append(_shutdown_scheduler)

    app.router.add_get("/ws", websocket_handler)
    app.router.add_post("/upload", upload_handler)
    app.router.add_get("/healthz", health_handler)

    logger.info(f"Application built; chunks stored in {chunk_store.data_dir}")
    return app
