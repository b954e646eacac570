"""
In-memory state for rooms and connected clients
Nothing here is persisted; the registry lives as long as the process.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from aiohttp import WSCloseCode

from .errors import AlreadyInRoom, InvalidRole, NotInRoom, RoomFull
from .utils import generate_client_id, generate_room_code, normalize_room_code

logger = logging.getLogger("jamroom")

ROOM_CAPACITY = 4
INSTRUMENTS = frozenset({"Drums", "Keyboard", "Bass", "Guitar"})


class Endpoint:
    """One connected client: its id, socket and current room code.

    `socket` is an aiohttp WebSocketResponse (or anything exposing
    `send_str`, `close` and `closed`). `transport` is the raw asyncio
    transport, used only to force-close a client that ignores the close
    handshake.
    """

    def __init__(self, socket, transport=None, client_id: Optional[str] = None):
        self.id = client_id or generate_client_id()
        self.socket = socket
        self.transport = transport
        self.room_code: Optional[str] = None

    @property
    def closed(self) -> bool:
        return bool(getattr(self.socket, "closed", False))

    async def send(self, text: str) -> None:
        if self.closed:
            return
        await self.socket.send_str(text)

    async def close(self, reason: str = "") -> None:
        await self.socket.close(code=WSCloseCode.OK, message=reason.encode())

    def terminate(self) -> None:
        if self.transport is not None and not self.transport.is_closing():
            self.transport.close()

    def __repr__(self) -> str:
        return f"<Endpoint {self.id} room={self.room_code}>"


@dataclass
class Membership:
    endpoint: Endpoint
    role: Optional[str] = None


@dataclass
class Room:
    code: str
    capacity: int = ROOM_CAPACITY
    members: Dict[str, Membership] = field(default_factory=dict)

    @property
    def is_full(self) -> bool:
        return len(self.members) >= self.capacity

    def join(self, endpoint: Endpoint) -> Membership:
        """Add endpoint with no role.

        Only guards against a duplicate entry in this room; the router
        enforces one room per client across the registry.
        """
        if endpoint.id in self.members:
            raise AlreadyInRoom()
        if self.is_full:
            raise RoomFull(self.code)
        membership = Membership(endpoint=endpoint)
        self.members[endpoint.id] = membership
        return membership

    def select_role(self, endpoint_id: str, role) -> Membership:
        if not isinstance(role, str) or role not in INSTRUMENTS:
            raise InvalidRole(role)
        membership = self.members.get(endpoint_id)
        if membership is None:
            raise NotInRoom()
        membership.role = role
        return membership

    def leave(self, endpoint_id: str) -> bool:
        """Remove a member; False if it was not one. Never raises."""
        return self.members.pop(endpoint_id, None) is not None

    def occupants(self) -> List[dict]:
        return [
            {"clientId": endpoint_id, "instrument": membership.role}
            for endpoint_id, membership in self.members.items()
        ]

    def endpoints(self) -> List[Endpoint]:
        return [membership.endpoint for membership in self.members.values()]


class RoomRegistry:
    """Room code -> Room, plus the table of connected endpoints.

    Every room mutation happens while holding `lock`, so membership and
    capacity checks never interleave.
    """

    def __init__(self, capacity: int = ROOM_CAPACITY):
        if capacity < 1:
            raise ValueError("room capacity must be positive")
        self.capacity = capacity
        self.lock = asyncio.Lock()
        self._rooms: Dict[str, Room] = {}
        self._endpoints: Dict[str, Endpoint] = {}

    # Rooms

    @property
    def rooms(self) -> Dict[str, Room]:
        return dict(self._rooms)

    def __contains__(self, code) -> bool:
        return self.lookup(code) is not None

    def create_room(self, capacity: Optional[int] = None) -> str:
        code = generate_room_code()
        while code in self._rooms:
            code = generate_room_code()
        self._rooms[code] = Room(code=code, capacity=capacity or self.capacity)
        logger.info("🎪 Room created: %s", code)
        return code

    def lookup(self, code) -> Optional[Room]:
        if not isinstance(code, str):
            return None
        return self._rooms.get(normalize_room_code(code))

    def remove_if_empty(self, code: str) -> bool:
        room = self._rooms.get(code)
        if room is None or room.members:
            return False
        del self._rooms[code]
        logger.info("🧹 Room %s is empty and has been deleted", code)
        return True

    # Endpoints

    @property
    def endpoints(self) -> List[Endpoint]:
        return list(self._endpoints.values())

    def attach(self, endpoint: Endpoint) -> None:
        self._endpoints[endpoint.id] = endpoint

    def detach(self, endpoint: Endpoint) -> None:
        self._endpoints.pop(endpoint.id, None)

    def clear(self) -> None:
        for endpoint in self._endpoints.values():
            endpoint.room_code = None
        self._rooms.clear()
        self._endpoints.clear()
