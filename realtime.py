"""Live connections and per-match rooms.

Connections join and leave rooms only on their own request; the only way to
reach a connection is to publish to a room it is in. Everything here runs on
the server's event loop; the room registry is guarded by an asyncio lock so a
join racing a leave (or a publish snapshot) never loses an update.
"""
import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from logging_config import get_logger
from origin_policy import AllowList, decide

logger = get_logger(__name__)

# (event name, payload) -> delivered to the client
SendFn = Callable[[str, Any], Awaitable[None]]

JOIN_ROOM = "join-room"
LEAVE_ROOM = "leave-room"
ROOM_JOINED = "room-joined"
ROOM_LEFT = "room-left"
CONNECTED = "connected"
ERROR = "error"


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(eq=False)
class Connection:
    """One client session: an id, the rooms it joined and a way to send to it."""

    connection_id: str
    send_fn: SendFn
    origin: Optional[str] = None
    rooms: Set[str] = field(default_factory=set)
    state: ConnectionState = ConnectionState.CONNECTING
    _send_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    async def send(self, event: str, data: Any) -> None:
        # frames to one client go out in the order they were attempted
        async with self._send_lock:
            await self.send_fn(event, data)


class RoomRegistry:
    """room id -> {connection id -> Connection}; a room exists only while it has members."""

    def __init__(self):
        self._rooms: Dict[str, Dict[str, Connection]] = {}
        self._lock = asyncio.Lock()

    async def add(self, room_id: str, connection: Connection) -> bool:
        async with self._lock:
            members = self._rooms.setdefault(room_id, {})
            if connection.connection_id in members:
                return False
            members[connection.connection_id] = connection
            connection.rooms.add(room_id)
            return True

    async def discard(self, room_id: str, connection: Connection) -> bool:
        async with self._lock:
            return self._discard(room_id, connection)

    async def drop(self, connection: Connection) -> List[str]:
        """Remove a connection from every room it is in; returns those rooms."""
        async with self._lock:
            rooms = sorted(connection.rooms)
            for room_id in rooms:
                self._discard(room_id, connection)
            return rooms

    async def members(self, room_id: str) -> List[Connection]:
        async with self._lock:
            return list(self._rooms.get(room_id, {}).values())

    async def rooms(self) -> Dict[str, int]:
        async with self._lock:
            return {room_id: len(members) for room_id, members in self._rooms.items()}

    def _discard(self, room_id: str, connection: Connection) -> bool:
        members = self._rooms.get(room_id)
        connection.rooms.discard(room_id)
        if not members or connection.connection_id not in members:
            return False
        del members[connection.connection_id]
        if not members:
            del self._rooms[room_id]
            logger.debug(f"Room {room_id} is empty, removed")
        return True


class RealtimeGateway:
    def __init__(self, allow_list: AllowList, registry: Optional[RoomRegistry] = None, send_timeout: float = 5.0):
        self.allow_list = allow_list
        self.registry = registry or RoomRegistry()
        self.send_timeout = send_timeout
        self._connections: Dict[str, Connection] = {}
        # client event -> handler(connection, data)
        self._handlers: Dict[str, Callable[[Connection, Any], Awaitable[bool]]] = {
            JOIN_ROOM: self.join,
            LEAVE_ROOM: self.leave,
        }

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def open(self, origin: Optional[str], send_fn: SendFn) -> Optional[Connection]:
        """Start a handshake. Returns None, creating nothing, when the origin is not allowed."""
        decision = decide(origin, self.allow_list)
        if not decision.allowed:
            logger.warning(f"Refused realtime handshake from origin {decision.origin}")
            return None
        return Connection(connection_id=uuid.uuid4().hex, send_fn=send_fn, origin=decision.origin)

    async def activate(self, connection: Connection) -> None:
        if connection.state is not ConnectionState.CONNECTING:
            raise ValueError(f"Connection {connection.connection_id} is {connection.state.value}, expected connecting")
        connection.state = ConnectionState.OPEN
        self._connections[connection.connection_id] = connection
        logger.info(f"User connected: {connection.connection_id} (origin={connection.origin})")
        await self._reply(connection, CONNECTED, {"connectionId": connection.connection_id})

    async def dispatch(self, connection: Connection, event: str, data: Any) -> bool:
        handler = self._handlers.get(event)
        if handler is None:
            logger.debug(f"Ignoring unknown event {event!r} from {connection.connection_id}")
            return False
        return await handler(connection, data)

    async def join(self, connection: Connection, room_id: Any) -> bool:
        room_id = await self._room_id(connection, JOIN_ROOM, room_id)
        if room_id is None or not connection.is_open:
            return False
        added = await self.registry.add(room_id, connection)
        if added:
            logger.info(f"Socket {connection.connection_id} joined room {room_id}")
        await self._reply(connection, ROOM_JOINED, {"room": room_id})
        return added

    async def leave(self, connection: Connection, room_id: Any) -> bool:
        room_id = await self._room_id(connection, LEAVE_ROOM, room_id)
        if room_id is None or not connection.is_open:
            return False
        removed = await self.registry.discard(room_id, connection)
        if removed:
            logger.info(f"Socket {connection.connection_id} left room {room_id}")
        await self._reply(connection, ROOM_LEFT, {"room": room_id})
        return removed

    async def close(self, connection: Connection) -> None:
        if connection.state is ConnectionState.CLOSED:
            return
        connection.state = ConnectionState.CLOSED
        self._connections.pop(connection.connection_id, None)
        rooms = await self.registry.drop(connection)
        logger.info(f"User disconnected: {connection.connection_id} (left {len(rooms)} rooms)")

    async def publish(self, room_id: str, event: str, payload: Any) -> int:
        """Send an event to every open member of a room; returns how many received it.

        Each recipient gets an independent, time-bounded attempt. Failures are
        logged and skipped, never raised. An empty room is a no-op.
        """
        members = [conn for conn in await self.registry.members(room_id) if conn.is_open]
        if not members:
            logger.debug(f"Publish {event} to room {room_id}: no members")
            return 0

        results = await asyncio.gather(
            *(asyncio.wait_for(conn.send(event, payload), timeout=self.send_timeout) for conn in members),
            return_exceptions=True,
        )
        delivered = 0
        for conn, result in zip(members, results):
            if isinstance(result, BaseException):
                reason = "timed out" if isinstance(result, asyncio.TimeoutError) else repr(result)
                logger.warning(f"Delivery of {event} to {conn.connection_id} in room {room_id} failed: {reason}")
            else:
                delivered += 1
        logger.debug(f"Published {event} to room {room_id}: {delivered}/{len(members)} delivered")
        return delivered

    async def shutdown(self) -> None:
        connections = list(self._connections.values())
        for connection in connections:
            await self.close(connection)
        if connections:
            logger.info(f"Closed {len(connections)} realtime connections on shutdown")

    async def stats(self) -> dict:
        return {"connections": self.connection_count, "rooms": await self.registry.rooms()}

    async def room_size(self, room_id: str) -> int:
        return len(await self.registry.members(room_id))

    async def _room_id(self, connection: Connection, event: str, room_id: Any) -> Optional[str]:
        # browser clients send numeric match ids as numbers
        if isinstance(room_id, int) and not isinstance(room_id, bool):
            room_id = str(room_id)
        if isinstance(room_id, str) and room_id:
            return room_id
        logger.warning(f"Invalid room id {room_id!r} in {event} from {connection.connection_id}")
        await self._reply(connection, ERROR, {"event": event, "message": "Room id must be a non-empty string"})
        return None

    async def _reply(self, connection: Connection, event: str, data: Any) -> None:
        try:
            await asyncio.wait_for(connection.send(event, data), timeout=self.send_timeout)
        except Exception as e:
            logger.debug(f"Could not send {event} to {connection.connection_id}: {e}")
