import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

from hub.errors import StateError

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    id: str
    identity: Optional[str] = None
    room_code: Optional[str] = None
    is_admin: bool = False
    alive: bool = True


@dataclass
class MemberInfo:
    username: str
    is_admin: bool = False

    def to_dict(self):
        return {'username': self.username, 'isAdmin': self.is_admin}


@dataclass
class ActiveEvent:
    id: str
    name: str
    initiator: str
    duration_ms: int
    start_time: float = field(default_factory=time.time)
    timer: Optional[object] = None

    def cancel(self) -> None:
        if self.timer is not None:
            self.timer.cancel()

    def to_dict(self):
        return {
            'eventId': self.id,
            'eventName': self.name,
            'adminIdentity': self.initiator,
            'startTime': int(self.start_time * 1000),
            'durationMs': self.duration_ms,
        }


@dataclass
class Room:
    code: str
    members: Dict[str, MemberInfo] = field(default_factory=dict)
    seed: Optional[int] = None
    events: Dict[str, ActiveEvent] = field(default_factory=dict)

    def presence(self) -> List[dict]:
        return [info.to_dict() for info in self.members.values()]

    def to_dict(self):
        return {
            'roomCode': self.code,
            'players': self.presence(),
            'seed': self.seed,
            'activeEvents': [event.to_dict() for event in self.events.values()],
        }


class RoomDirectory:
    """Connection registry plus the directory of live rooms.

    A room exists only while it has members: it is created by the first
    join and removed by the leave that empties it, and removing it cancels
    every timer its active events still hold. Listeners registered with
    ``subscribe`` are called with the room code after each membership change
    so the presence list can be republished.
    """

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._rooms: Dict[str, Room] = {}
        self._listeners: List[Callable[[str], None]] = []

    def subscribe(self, listener: Callable[[str], None]) -> None:
        self._listeners.append(listener)

    def _notify(self, room_code: str) -> None:
        for listener in list(self._listeners):
            listener(room_code)

    # ---- connections ----

    def register(self, connection_id: str) -> Connection:
        conn = self._connections.get(connection_id)
        if conn is None:
            conn = Connection(id=connection_id)
            self._connections[connection_id] = conn
            logger.debug(f"[conn-open] conn={connection_id}")
        return conn

    def unregister(self, connection_id: str) -> Optional[str]:
        """Forget a connection, leaving its room first. Returns that room code."""
        conn = self._connections.get(connection_id)
        if conn is None:
            return None
        conn.alive = False
        room_code = self.leave(connection_id)
        self._connections.pop(connection_id, None)
        logger.debug(f"[conn-close] conn={connection_id} room={room_code}")
        return room_code

    def lookup(self, connection_id: str) -> Connection:
        conn = self._connections.get(connection_id)
        if conn is None:
            raise StateError(f"unknown connection {connection_id}")
        return conn

    def lookup_by_identity(self, identity: str, room_code: Optional[str] = None) -> Connection:
        for conn in self._connections.values():
            if conn.identity != identity or conn.room_code is None:
                continue
            if room_code is None or conn.room_code == room_code:
                return conn
        where = f" in room {room_code}" if room_code else ''
        raise StateError(f"no connection bound to identity {identity!r}{where}")

    def is_alive(self, connection_id: str) -> bool:
        conn = self._connections.get(connection_id)
        return conn is not None and conn.alive

    def connection_count(self) -> int:
        return len(self._connections)

    # ---- rooms ----

    def get_room(self, room_code: str) -> Optional[Room]:
        return self._rooms.get(room_code)

    def rooms(self) -> Iterator[Room]:
        return iter(list(self._rooms.values()))

    def room_count(self) -> int:
        return len(self._rooms)

    def member_ids(self, room_code: str) -> List[str]:
        room = self._rooms.get(room_code)
        return list(room.members) if room else []

    def join(self, connection_id: str, identity: str, room_code: str, is_admin: bool = False) -> int:
        """Bind a connection to ``room_code``; returns the room's member count.

        Joining the room the connection is already in changes nothing.
        Joining another room moves the connection: it leaves the old room
        first, exactly as an explicit leave would.
        """
        conn = self.lookup(connection_id)
        if conn.room_code == room_code:
            return len(self._rooms[room_code].members)
        if conn.room_code is not None:
            self.leave(connection_id)

        conn.identity = identity
        conn.is_admin = is_admin
        conn.alive = True
        room = self._rooms.get(room_code)
        if room is None:
            room = Room(code=room_code)
            self._rooms[room_code] = room
            logger.info(f"[room-create] room={room_code}")
        room.members[connection_id] = MemberInfo(username=identity, is_admin=is_admin)
        conn.room_code = room_code
        logger.info(f"[room-join] room={room_code} identity={identity} members={len(room.members)}")
        self._notify(room_code)
        return len(room.members)

    def leave(self, connection_id: str) -> Optional[str]:
        conn = self._connections.get(connection_id)
        if conn is None or conn.room_code is None:
            return None
        room_code = conn.room_code
        conn.room_code = None
        room = self._rooms.get(room_code)
        if room is not None:
            room.members.pop(connection_id, None)
            logger.info(f"[room-leave] room={room_code} identity={conn.identity} members={len(room.members)}")
            if not room.members:
                self._destroy(room)
        self._notify(room_code)
        return room_code

    def set_admin(self, connection_id: str, is_admin: bool) -> bool:
        """Update the admin flag; returns True when it changed."""
        conn = self.lookup(connection_id)
        if conn.is_admin == is_admin:
            return False
        conn.is_admin = is_admin
        room = self._rooms.get(conn.room_code) if conn.room_code else None
        if room is not None and connection_id in room.members:
            room.members[connection_id].is_admin = is_admin
            self._notify(room.code)
        return True

    def _destroy(self, room: Room) -> None:
        del self._rooms[room.code]
        for event in room.events.values():
            event.cancel()
            logger.info(f"[event-cancel] room={room.code} event={event.id} name={event.name}")
        room.events.clear()
        logger.info(f"[room-destroy] room={room.code}")
