"""
HTTP and WebSocket handlers for the jam room server
"""
import logging

from aiohttp import WSMsgType, web

from .config import Settings
from .router import Router
from .state import RoomRegistry

logger = logging.getLogger("jamroom")

SETTINGS_KEY = web.AppKey("settings", Settings)
REGISTRY_KEY = web.AppKey("registry", RoomRegistry)
ROUTER_KEY = web.AppKey("router", Router)

# ============================================================
# WEBSOCKET SESSION
# ============================================================

async def ws_session(request: web.Request) -> web.WebSocketResponse:
    """One client session: ack, feed frames to the router, leave on exit"""
    router: Router = request.app[ROUTER_KEY]
    ws = web.WebSocketResponse()
    await ws.prepare(request)

    endpoint = await router.connect(ws, request.transport)
    logger.info("📡 Client %s connected from %s", endpoint.id, request.remote)

    try:
        async for msg in ws:
            if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                await router.handle(endpoint, msg.data)
            elif msg.type == WSMsgType.ERROR:
                logger.error(f"WebSocket error for client {endpoint.id}: {ws.exception()}")
                break
    finally:
        await router.disconnect(endpoint)

    return ws

# ============================================================
# HEALTH
# ============================================================

async def health(request: web.Request) -> web.Response:
    registry: RoomRegistry = request.app[REGISTRY_KEY]
    return web.json_response({
        "status": "ok",
        "rooms": len(registry.rooms),
        "clients": len(registry.endpoints),
    })

# ============================================================
# STATIC PAGE
# ============================================================

async def index(request: web.Request) -> web.StreamResponse:
    index_file = request.app[SETTINGS_KEY].static_dir / "index.html"
    if not index_file.is_file():
        logger.error("Client page missing: %s", index_file)
        raise web.HTTPNotFound(text="Not Found")
    return web.FileResponse(index_file)

# ============================================================
# SHUTDOWN
# ============================================================

async def on_shutdown(app: web.Application) -> None:
    await app[ROUTER_KEY].shutdown(app[SETTINGS_KEY].shutdown_grace)
