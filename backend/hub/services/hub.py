import logging
import threading
import time

from hub.errors import StateError
from hub.services.broadcast import Broadcaster
from hub.services.presence import PresenceSynchronizer
from hub.services.rooms import RoomDirectory
from hub.services.router import MessageRouter
from hub.services.scheduler import EventScheduler

logger = logging.getLogger(__name__)


def _spawn_thread(target, *args):
    worker = threading.Thread(target=target, args=args, daemon=True)
    worker.start()
    return worker


class RelayHub:
    """Owns the room directory and wires the relay components around it.

    Every entry point (connect, message, disconnect, timer) runs under one
    re-entrant lock so state changes are applied one event at a time.
    """

    def __init__(self, transport, config=None, spawn=None, sleep=time.sleep, rng=None):
        config = config or {}
        self.lock = threading.RLock()
        self.directory = RoomDirectory()
        self.broadcaster = Broadcaster(self.directory, transport, on_dead=self.evict)
        self.presence = PresenceSynchronizer(self.directory, self.broadcaster)
        self.scheduler = EventScheduler(
            self.directory,
            self.broadcaster,
            self.lock,
            spawn=spawn or _spawn_thread,
            sleep=sleep,
            unit_seconds=config.get('ADMIN_EVENT_UNIT_SEC', 60),
            reseed_interval=config.get('RESEED_INTERVAL_SEC', 90),
            rng=rng,
        )
        self.router = MessageRouter(
            self.directory,
            self.broadcaster,
            self.scheduler,
            self.lock,
            echo_chat=bool(config.get('CHAT_ECHO_TO_SENDER', False)),
        )

    def connect(self, connection_id: str) -> None:
        with self.lock:
            self.directory.register(connection_id)

    def handle_message(self, connection_id: str, raw) -> bool:
        return self.router.dispatch(connection_id, raw)

    def disconnect(self, connection_id: str):
        with self.lock:
            try:
                identity = self.directory.lookup(connection_id).identity
            except StateError:
                return None
            room_code = self.directory.unregister(connection_id)
            if room_code is not None:
                self._announce_left(room_code, identity)
            return room_code

    def evict(self, connection_id: str):
        """Drop a connection found dead during a broadcast from its room.

        The connection stays registered until the transport reports the
        close; it is only marked as not alive.
        """
        with self.lock:
            conn = self.directory.lookup(connection_id)
            conn.alive = False
            room_code = self.directory.leave(connection_id)
            logger.info(f"[evict] conn={connection_id} identity={conn.identity} room={room_code}")
            if room_code is not None:
                self._announce_left(room_code, conn.identity)
            return room_code

    def _announce_left(self, room_code: str, identity) -> None:
        self.broadcaster.broadcast(room_code, {
            'type': 'player_left',
            'roomCode': room_code,
            'identity': identity,
        })

    def snapshot(self):
        with self.lock:
            return [room.to_dict() for room in self.directory.rooms()]

    def stats(self):
        with self.lock:
            return {
                'rooms': self.directory.room_count(),
                'connections': self.directory.connection_count(),
            }
