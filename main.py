#!/usr/bin/env python3
"""
Jam Room - Entry Point
WebSocket rooms where up to four players pick instruments and play together
"""
import logging
import socket
from typing import Optional

from aiohttp import web

from jamroom.api import (
    REGISTRY_KEY, ROUTER_KEY, SETTINGS_KEY,
    health, index, on_shutdown, ws_session,
)
from jamroom.broadcast import Broadcaster
from jamroom.config import Settings
from jamroom.router import Router
from jamroom.state import RoomRegistry

logger = logging.getLogger("jamroom")


def create_app(settings: Optional[Settings] = None) -> web.Application:
    """Create and configure the aiohttp application"""
    settings = settings or Settings.from_env()
    app = web.Application()

    registry = RoomRegistry()
    app[SETTINGS_KEY] = settings
    app[REGISTRY_KEY] = registry
    app[ROUTER_KEY] = Router(registry, Broadcaster(send_timeout=settings.send_timeout))

    # HTML routes
    app.router.add_get("/", index)
    app.router.add_get("/health", health)

    # WebSocket for room sessions
    app.router.add_get("/ws", ws_session)

    # Sound files
    if settings.sounds_dir.is_dir():
        app.router.add_static("/sounds", settings.sounds_dir, name="sounds")
    else:
        logger.warning("Sounds directory not found: %s", settings.sounds_dir)

    app.on_shutdown.append(on_shutdown)

    logger.info("🎸 Jam Room server ready • WebSocket enabled")
    return app


def get_local_ip():
    """Get local WiFi IP address"""
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except Exception:
        return "localhost"


def main():
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    app = create_app(settings)
    local_ip = get_local_ip()

    logger.info(f"🚀 Starting server on {settings.host}:{settings.port}")
    logger.info(f"💡 Access at: http://{local_ip}:{settings.port}")

    web.run_app(
        app,
        host=settings.host,
        port=settings.port,
        shutdown_timeout=settings.shutdown_grace,
    )


if __name__ == "__main__":
    main()
