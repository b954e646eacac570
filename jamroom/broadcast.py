"""
Fan-out of room state and relayed events to room members
"""
import asyncio
import json
import logging
from typing import Iterable, List, NamedTuple, Optional

from .state import Endpoint, Room

logger = logging.getLogger("jamroom")

DEFAULT_SEND_TIMEOUT = 5.0


def encode(kind: str, payload: dict) -> str:
    return json.dumps({"type": kind, "payload": payload})


class Delivery(NamedTuple):
    """An encoded message and who gets it, captured while state is locked"""
    recipients: List[Endpoint]
    message: str


class Broadcaster:
    """Best-effort delivery. A failing or slow recipient is logged and skipped.

    Each send is bounded by `send_timeout`, and recipients are written to
    concurrently, so one stalled peer delays a fan-out by at most one timeout.
    """

    def __init__(self, send_timeout: float = DEFAULT_SEND_TIMEOUT):
        self.send_timeout = send_timeout

    async def send(self, endpoint: Endpoint, kind: str, payload: dict) -> bool:
        return await self._deliver(endpoint, encode(kind, payload))

    async def send_error(self, endpoint: Endpoint, message: str) -> bool:
        return await self.send(endpoint, "error", {"message": message})

    async def fan_out(self, recipients: Iterable[Endpoint], message: str) -> int:
        """Send an encoded message to each recipient; return how many succeeded"""
        results = await asyncio.gather(
            *(self._deliver(endpoint, message) for endpoint in list(recipients))
        )
        return sum(1 for ok in results if ok)

    async def deliver(self, delivery: Delivery) -> int:
        return await self.fan_out(delivery.recipients, delivery.message)

    def occupancy(self, room: Room) -> Delivery:
        message = encode(
            "room_state_update",
            {"roomId": room.code, "occupants": room.occupants()},
        )
        return Delivery(room.endpoints(), message)

    def event(self, room: Room, kind: str, payload: dict,
              exclude: Optional[Endpoint] = None) -> Delivery:
        recipients = [ep for ep in room.endpoints() if ep is not exclude]
        return Delivery(recipients, encode(kind, payload))

    async def broadcast_occupancy(self, room: Room) -> int:
        logger.info("Broadcasting state for room %s: %s", room.code, room.occupants())
        return await self.deliver(self.occupancy(room))

    async def relay(self, room: Room, kind: str, payload: dict,
                    exclude: Optional[Endpoint] = None) -> int:
        return await self.deliver(self.event(room, kind, payload, exclude))

    async def _deliver(self, endpoint: Endpoint, message: str) -> bool:
        if endpoint.closed:
            return False
        try:
            await asyncio.wait_for(endpoint.send(message), self.send_timeout)
        except Exception as e:
            logger.debug(f"Failed to send to client {endpoint.id}: {e!r}")
            return False
        return True
