import logging

from hub.errors import DeliveryError, ProtocolError, StateError, UnknownMessageType
from hub.schemas import (
    MESSAGE_TYPES,
    AdminAction,
    AdminStartEvent,
    Attack,
    AuctionEnded,
    AuctionStarted,
    BeltReseedRequest,
    Chat,
    PlayerJoin,
    PlayerLeave,
    Trade,
    parse_message,
)

logger = logging.getLogger(__name__)


class MessageRouter:
    """Dispatches parsed inbound messages to one handler per message kind.

    Handlers check everything they need before the first side effect, so a
    rejected message leaves the rooms untouched.
    """

    def __init__(self, directory, broadcaster, scheduler, lock, echo_chat: bool = False):
        self.directory = directory
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self.lock = lock
        self.echo_chat = echo_chat
        self._handlers = {
            PlayerJoin: self._player_join,
            PlayerLeave: self._player_leave,
            Chat: self._chat,
            AuctionStarted: self._auction_started,
            AuctionEnded: self._auction_ended,
            Trade: self._trade,
            Attack: self._attack,
            AdminStartEvent: self._admin_start_event,
            AdminAction: self._admin_action,
            BeltReseedRequest: self._belt_reseed_request,
        }
        missing = set(MESSAGE_TYPES.values()) - set(self._handlers)
        if missing:
            raise RuntimeError(f"no handler for {sorted(cls.__name__ for cls in missing)}")

    def dispatch(self, connection_id: str, raw) -> bool:
        """Handle one inbound payload; returns False when it was dropped."""
        with self.lock:
            try:
                message = parse_message(raw)
            except UnknownMessageType as exc:
                logger.info(f"[drop] conn={connection_id} {exc}")
                return False
            except ProtocolError as exc:
                logger.warning(f"[protocol-error] conn={connection_id} {exc}")
                self._reply_error(connection_id, str(exc))
                return False

            try:
                self._handlers[type(message)](connection_id, message)
            except (ProtocolError, StateError) as exc:
                logger.warning(f"[{message.type}-rejected] conn={connection_id} {exc}")
                self._reply_error(connection_id, str(exc))
                return False
            except DeliveryError as exc:
                logger.warning(f"[{message.type}-undelivered] conn={connection_id} {exc}")
                self._reply_error(connection_id, str(exc))
                return False
            return True

    def _reply_error(self, connection_id: str, text: str) -> None:
        try:
            self.broadcaster.send_to(connection_id, {'type': 'error', 'message': text})
        except DeliveryError:
            logger.debug(f"[error-undelivered] conn={connection_id}")

    def _member(self, connection_id: str, room_code: str):
        conn = self.directory.lookup(connection_id)
        if conn.room_code != room_code:
            raise StateError(f"connection is not in room {room_code}")
        return conn

    def _resolve_target(self, target_id: str, room_code: str):
        try:
            return self.directory.lookup_by_identity(target_id, room_code)
        except StateError:
            conn = self.directory.lookup(target_id)
            if conn.room_code != room_code:
                raise StateError(f"trade target {target_id} is not in room {room_code}")
            return conn

    # ---- membership ----

    def _player_join(self, connection_id, msg: PlayerJoin):
        conn = self.directory.lookup(connection_id)
        if conn.room_code == msg.room_code:
            return
        previous_room, previous_identity = conn.room_code, conn.identity
        self.directory.join(connection_id, msg.identity, msg.room_code, msg.is_admin)
        if previous_room is not None:
            self.broadcaster.broadcast(previous_room, {
                'type': 'player_left',
                'roomCode': previous_room,
                'identity': previous_identity,
            })
        self.broadcaster.broadcast(msg.room_code, {
            'type': 'player_joined',
            'roomCode': msg.room_code,
            'identity': msg.identity,
        }, exclude={connection_id})

    def _player_leave(self, connection_id, msg: PlayerLeave):
        conn = self.directory.lookup(connection_id)
        if conn.room_code is None:
            raise StateError('connection is not in a room')
        room_code = self.directory.leave(connection_id)
        self.broadcaster.broadcast(room_code, {
            'type': 'player_left',
            'roomCode': room_code,
            'identity': conn.identity,
        })

    # ---- room traffic ----

    def _chat(self, connection_id, msg: Chat):
        conn = self._member(connection_id, msg.room_code)
        exclude = () if self.echo_chat else {connection_id}
        self.broadcaster.broadcast(msg.room_code, {
            'type': 'chat',
            'roomCode': msg.room_code,
            'identity': conn.identity,
            'text': msg.text,
        }, exclude=exclude)

    def _auction_started(self, connection_id, msg: AuctionStarted):
        conn = self._member(connection_id, msg.room_code)
        self.broadcaster.broadcast(msg.room_code, {
            'type': 'auction_started',
            'roomCode': msg.room_code,
            'identity': conn.identity,
            'item': msg.item.model_dump(),
        }, exclude={connection_id})

    def _auction_ended(self, connection_id, msg: AuctionEnded):
        self._member(connection_id, msg.room_code)
        self.broadcaster.broadcast(msg.room_code, {
            'type': 'auction_ended',
            'roomCode': msg.room_code,
            'winnerIdentity': msg.winner_identity,
            'itemName': msg.item_name,
        })

    def _trade(self, connection_id, msg: Trade):
        sender = self.directory.lookup(connection_id)
        if sender.room_code is None:
            raise StateError('connection is not in a room')
        target = self._resolve_target(msg.target_id, sender.room_code)
        self.broadcaster.send_to(target.id, {
            'type': 'trade',
            'roomCode': sender.room_code,
            'fromIdentity': sender.identity,
            'targetId': msg.target_id,
            'offeredItems': msg.offered_items,
            'requestedItems': msg.requested_items,
        })
        logger.info(f"[trade] room={sender.room_code} from={sender.identity} to={target.identity}")

    def _attack(self, connection_id, msg: Attack):
        conn = self._member(connection_id, msg.room_code)
        self.broadcaster.broadcast(msg.room_code, {
            'type': 'attack',
            'roomCode': msg.room_code,
            'attackerIdentity': conn.identity,
            'targetId': msg.target_id,
            'success': msg.success,
            'stolenItem': msg.stolen_item,
        })

    # ---- admin & scheduler ----

    def _admin_start_event(self, connection_id, msg: AdminStartEvent):
        self._member(connection_id, msg.room_code)
        self.scheduler.start_admin_event(msg.room_code, msg.admin_identity, msg.event_name, msg.duration_minutes)
        self.directory.set_admin(connection_id, True)

    def _admin_action(self, connection_id, msg: AdminAction):
        self._member(connection_id, msg.room_code)
        self.directory.set_admin(connection_id, True)
        self.broadcaster.broadcast(msg.room_code, {
            'type': 'admin_action',
            'roomCode': msg.room_code,
            'adminIdentity': msg.admin_identity,
            'action': msg.action,
            'details': msg.details,
        }, exclude={connection_id})

    def _belt_reseed_request(self, connection_id, msg: BeltReseedRequest):
        self._member(connection_id, msg.room_code)
        self.scheduler.send_seed(connection_id, msg.room_code)
