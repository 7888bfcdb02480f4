from contextlib import asynccontextmanager
from pathlib import Path
from typing import Mapping, Optional

from fastapi import APIRouter, FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError

from bridge import Publisher, build_bridge
from constants import (
    ALLOWED_HEADERS,
    ALLOWED_METHODS,
    EXPOSED_HEADERS,
    UPLOADS_PREFIX,
    WS_PATH,
    Settings,
    load_settings,
)
from errors import register_error_handlers
from logging_config import get_logger, setup_logging
from middleware import GatewayMiddleware
from origin_policy import build_allow_list
from realtime import ERROR, RealtimeGateway
from routers.diagnostics import diagnostics_router
from routers.groups import resolve_handler_groups
from schemas.gateway import ClientFrame

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await app.state.bridge.start()
    logger.info(f"Allowed Origins: {list(app.state.allow_list)}")
    try:
        yield
    finally:
        await app.state.realtime.shutdown()
        await app.state.bridge.stop()


def create_app(settings: Optional[Settings] = None, handler_groups: Optional[Mapping[str, APIRouter]] = None) -> FastAPI:
    """Build the gateway: origin guard, body limit, handler groups, uploads and the realtime socket."""
    settings = settings or load_settings()
    allow_list = build_allow_list(settings.frontend_url)

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)

    app = FastAPI(title="Marketplace Gateway", lifespan=lifespan)
    app.state.settings = settings
    app.state.allow_list = allow_list
    app.state.realtime = RealtimeGateway(allow_list, send_timeout=settings.publish_timeout)
    app.state.bridge = build_bridge(app.state.realtime, settings)
    app.state.publisher = Publisher(app.state.bridge)

    # added last = runs first: the origin guard sees every request (and answers pre-flight) before CORS handling
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(allow_list),
        allow_credentials=True,
        allow_methods=ALLOWED_METHODS,
        allow_headers=ALLOWED_HEADERS,
        expose_headers=EXPOSED_HEADERS,
    )
    app.add_middleware(GatewayMiddleware, allow_list=allow_list, max_body_bytes=settings.max_body_bytes)
    register_error_handlers(app)

    app.include_router(diagnostics_router)
    for name, router in resolve_handler_groups(handler_groups).items():
        app.include_router(router, prefix=f"/api/{name}")

    app.add_api_websocket_route(WS_PATH, realtime_endpoint)
    app.mount(UPLOADS_PREFIX, StaticFiles(directory=upload_dir), name="uploads")

    logger.info(f"Gateway initialized (environment={settings.environment}, uploads={upload_dir.resolve()})")
    return app


async def realtime_endpoint(websocket: WebSocket):
    """Realtime channel. Client frames are {"event": ..., "data": ...}; only join-room and leave-room are acted on."""
    gateway: RealtimeGateway = websocket.app.state.realtime

    async def send(event, data):
        await websocket.send_json({"event": event, "data": data})

    connection = gateway.open(websocket.headers.get("origin"), send)
    if connection is None:
        await websocket.close(code=1008, reason="Origin not allowed")
        return

    await websocket.accept()
    try:
        await gateway.activate(connection)
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                logger.debug(f"Binary frame from {connection.connection_id} ignored")
                await connection.send(ERROR, {"message": "Binary frames are not supported; send JSON text frames"})
                continue
            try:
                frame = ClientFrame.model_validate_json(raw)
            except ValidationError:
                logger.debug(f"Malformed frame from {connection.connection_id}: {raw[:200]!r}")
                await connection.send(ERROR, {"message": 'Frames must be JSON objects like {"event": "join-room", "data": "42"}'})
                continue
            await gateway.dispatch(connection, frame.event, frame.data)
    except WebSocketDisconnect:
        logger.debug(f"WebSocket disconnected for connection {connection.connection_id}")
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection.connection_id}: {e}", exc_info=True)
    finally:
        await gateway.close(connection)


_settings = load_settings()
setup_logging(log_level=_settings.log_level, log_file=_settings.log_file)
app = create_app(_settings)
