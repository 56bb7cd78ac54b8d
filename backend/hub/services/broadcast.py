import json
import logging
import time
from typing import Callable, Iterable, Optional

from hub.errors import DeliveryError

logger = logging.getLogger(__name__)

OUTBOUND_EVENT = 'message'


def now_ms() -> int:
    return int(time.time() * 1000)


class SocketIOTransport:
    """Delivers serialized records to single Socket.IO sids on one namespace."""

    def __init__(self, socketio, namespace: str = '/ws'):
        self.socketio = socketio
        self.namespace = namespace

    def is_live(self, connection_id: str) -> bool:
        server = getattr(self.socketio, 'server', None)
        if server is None:
            return False
        return server.manager.is_connected(connection_id, self.namespace)

    def send(self, connection_id: str, text: str) -> None:
        self.socketio.emit(OUTBOUND_EVENT, text, to=connection_id, namespace=self.namespace)


class Broadcaster:
    """Fan-out engine over the room directory.

    Dead members found while broadcasting are handed to ``on_dead`` once the
    delivery loop is over; targeted sends never evict anyone.
    """

    def __init__(self, directory, transport, on_dead: Optional[Callable[[str], None]] = None):
        self.directory = directory
        self.transport = transport
        self.on_dead = on_dead

    @staticmethod
    def serialize(message: dict) -> str:
        payload = dict(message)
        payload.setdefault('timestamp', now_ms())
        return json.dumps(payload, default=str)

    def broadcast(self, room_code: str, message: dict, exclude: Iterable[str] = ()) -> int:
        """Deliver ``message`` to the members of a room; returns the delivery count."""
        member_ids = self.directory.member_ids(room_code)
        if not member_ids:
            logger.debug(f"[broadcast-skip] room={room_code} type={message.get('type')} no members")
            return 0

        text = self.serialize(message)
        excluded = set(exclude)
        delivered = 0
        dead = []
        for connection_id in member_ids:
            if connection_id in excluded:
                continue
            if not (self.directory.is_alive(connection_id) and self.transport.is_live(connection_id)):
                dead.append(connection_id)
                continue
            try:
                self.transport.send(connection_id, text)
            except Exception as exc:
                logger.warning(f"[broadcast-fail] room={room_code} conn={connection_id} error={exc}")
                dead.append(connection_id)
                continue
            delivered += 1

        logger.debug(f"[broadcast] room={room_code} type={message.get('type')} delivered={delivered} dead={len(dead)}")
        for connection_id in dead:
            self._prune(room_code, connection_id)
        return delivered

    def send_to(self, connection_id: str, message: dict) -> None:
        """Deliver to exactly one connection; raises DeliveryError on failure."""
        if not self.transport.is_live(connection_id):
            raise DeliveryError(connection_id)
        try:
            self.transport.send(connection_id, self.serialize(message))
        except Exception as exc:
            raise DeliveryError(connection_id, str(exc)) from exc

    def _prune(self, room_code: str, connection_id: str) -> None:
        # a nested publish may already have pruned it
        if connection_id not in self.directory.member_ids(room_code):
            return
        logger.info(f"[prune] room={room_code} conn={connection_id}")
        if self.on_dead is not None:
            self.on_dead(connection_id)
        else:
            self.directory.leave(connection_id)
