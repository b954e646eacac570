"""
Inbound message dispatch and the per-client room state machine
"""
import asyncio
import json
import logging
from typing import Optional, Tuple

from .broadcast import Broadcaster, Delivery, encode
from .errors import (
    AlreadyInRoom, InvalidPayload, MalformedEnvelope, NotInRoom,
    RoomError, RoomFull, RoomNotFound, UnknownMessageKind,
)
from .state import Endpoint, Room, RoomRegistry

logger = logging.getLogger("jamroom")

WELCOME_MESSAGE = "Welcome! Create or join a room."
SHUTDOWN_MESSAGE = "Server is shutting down."
SHUTDOWN_CLOSE_REASON = "Server shutting down"


def parse_envelope(raw) -> Tuple[str, Optional[dict]]:
    """Decode `{type, payload}`; anything else is a MalformedEnvelope"""
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        message = json.loads(raw)
    except (TypeError, ValueError, RecursionError) as e:
        raise MalformedEnvelope() from e

    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        raise MalformedEnvelope()

    payload = message.get("payload")
    return message["type"], payload if isinstance(payload, dict) else None


def _require_payload(payload: Optional[dict], message: str) -> dict:
    if payload is None:
        raise InvalidPayload(message)
    return payload


class Router:
    def __init__(self, registry: RoomRegistry, broadcaster: Optional[Broadcaster] = None):
        self.registry = registry
        self.broadcaster = broadcaster or Broadcaster()
        self.shutting_down = False
        self._handlers = {
            "create_room": self._create_room,
            "join_room": self._join_room,
            "select_instrument": self._select_instrument,
            "play_sound": self._play_sound,
            "leave_room": self._leave_room,
        }

    # ============================================================
    # CONNECTION LIFECYCLE
    # ============================================================

    async def connect(self, socket, transport=None) -> Endpoint:
        endpoint = Endpoint(socket, transport)
        self.registry.attach(endpoint)
        await self.broadcaster.send(
            endpoint, "connection_ack",
            {"clientId": endpoint.id, "message": WELCOME_MESSAGE},
        )
        return endpoint

    async def disconnect(self, endpoint: Endpoint) -> None:
        """Graceful close and transport errors both end up here"""
        self.registry.detach(endpoint)
        logger.info("Connection closed for client: %s", endpoint.id)
        if self.shutting_down:
            return
        await self.leave(endpoint)

    async def handle(self, endpoint: Endpoint, raw) -> None:
        """Process one inbound frame. Errors are replied to the sender only."""
        if self.shutting_down:
            return
        try:
            kind, payload = parse_envelope(raw)
            handler = self._handlers.get(kind)
            if handler is None:
                raise UnknownMessageKind(kind)
            await handler(endpoint, payload)
        except MalformedEnvelope as e:
            logger.warning("Malformed message from %s: %r", endpoint.id, e.__cause__ or raw)
            await self.broadcaster.send_error(endpoint, e.message)
        except RoomError as e:
            logger.info("Rejected message from %s: %s", endpoint.id, e.message)
            await self.broadcaster.send_error(endpoint, e.message)

    # ============================================================
    # ROOM TRANSITIONS
    # ============================================================

    def current_room(self, endpoint: Endpoint) -> Optional[Room]:
        if endpoint.room_code is None:
            return None
        room = self.registry.lookup(endpoint.room_code)
        if room is None or endpoint.id not in room.members:
            return None
        return room

    async def leave(self, endpoint: Endpoint) -> bool:
        """Leave the current room if any; safe to call repeatedly"""
        async with self.registry.lock:
            room = self.current_room(endpoint)
            endpoint.room_code = None
            if room is None:
                return False

            room.leave(endpoint.id)
            logger.info(
                "Client %s left room %s. Room size: %d",
                endpoint.id, room.code, len(room.members),
            )
            delivery = None
            if not self.registry.remove_if_empty(room.code):
                delivery = self.broadcaster.occupancy(room)

        if delivery is not None:
            await self.broadcaster.deliver(delivery)
        return True

    def _require_unassigned(self, endpoint: Endpoint) -> None:
        if endpoint.room_code is not None:
            raise AlreadyInRoom()

    # Handlers mutate under the lock and return what to send; the fan-out
    # runs after the lock is released.

    async def _create_room(self, endpoint: Endpoint, payload: Optional[dict]) -> None:
        async with self.registry.lock:
            self._require_unassigned(endpoint)
            code = self.registry.create_room()
            room = self.registry.lookup(code)
            room.join(endpoint)
            endpoint.room_code = code
            logger.info("Client %s created room %s", endpoint.id, code)
            delivery = self.broadcaster.occupancy(room)
        await self.broadcaster.deliver(delivery)

    async def _join_room(self, endpoint: Endpoint, payload: Optional[dict]) -> None:
        async with self.registry.lock:
            self._require_unassigned(endpoint)
            code = _require_payload(payload, "Invalid join_room payload.").get("roomCode")
            if not isinstance(code, str):
                raise InvalidPayload("Invalid join_room payload.")

            room = self.registry.lookup(code)
            if room is None:
                raise RoomNotFound(code)
            if room.is_full:
                raise RoomFull(code)

            room.join(endpoint)
            endpoint.room_code = room.code
            logger.info("✅ Client %s joined room %s", endpoint.id, room.code)
            delivery = self.broadcaster.occupancy(room)
        await self.broadcaster.deliver(delivery)

    async def _select_instrument(self, endpoint: Endpoint, payload: Optional[dict]) -> None:
        async with self.registry.lock:
            room = self.current_room(endpoint)
            if room is None:
                raise NotInRoom()

            instrument = (payload or {}).get("instrument")
            room.select_role(endpoint.id, instrument)
            logger.info(
                "Client %s in room %s selected instrument: %s",
                endpoint.id, room.code, instrument,
            )
            delivery = self.broadcaster.occupancy(room)
        await self.broadcaster.deliver(delivery)

    async def _play_sound(self, endpoint: Endpoint, payload: Optional[dict]) -> None:
        async with self.registry.lock:
            room = self.current_room(endpoint)
            if room is None:
                return

            payload = _require_payload(payload, "Invalid play_sound payload.")
            instrument = payload.get("instrument")
            sound = payload.get("sound")
            if not (isinstance(instrument, str) and instrument
                    and isinstance(sound, str) and sound):
                raise InvalidPayload("Invalid play_sound payload.")

            logger.debug(
                "Room %s: client %s played sound: %s - %s",
                room.code, endpoint.id, instrument, sound,
            )
            delivery: Delivery = self.broadcaster.event(
                room, "sound_played",
                {"senderId": endpoint.id, "instrument": instrument, "sound": sound},
                exclude=endpoint,
            )
        await self.broadcaster.deliver(delivery)

    async def _leave_room(self, endpoint: Endpoint, payload: Optional[dict]) -> None:
        logger.info("Client %s requested to leave room %s", endpoint.id, endpoint.room_code)
        if not await self.leave(endpoint):
            raise NotInRoom()

    # ============================================================
    # SHUTDOWN
    # ============================================================

    async def shutdown(self, grace: float = 5.0) -> None:
        """Notify every client, close them, force-close stragglers after `grace`"""
        if self.shutting_down:
            return
        self.shutting_down = True

        endpoints = self.registry.endpoints
        logger.info("🛑 Server shutting down, notifying %d clients", len(endpoints))
        await self.broadcaster.fan_out(
            endpoints, encode("server_shutdown", {"message": SHUTDOWN_MESSAGE})
        )

        closing = {asyncio.ensure_future(self._close(ep)): ep for ep in endpoints}
        if closing:
            _, pending = await asyncio.wait(closing, timeout=grace)
            if pending:
                logger.warning(
                    "Graceful shutdown timed out for %d clients. Forcing close.",
                    len(pending),
                )
                for task in pending:
                    task.cancel()
                    closing[task].terminate()
                await asyncio.gather(*pending, return_exceptions=True)

        self.registry.clear()
        logger.info("Room registry cleared")

    async def _close(self, endpoint: Endpoint) -> None:
        try:
            await endpoint.close(SHUTDOWN_CLOSE_REASON)
        except Exception as e:
            logger.debug(f"Error closing client {endpoint.id}: {e}")
            endpoint.terminate()
