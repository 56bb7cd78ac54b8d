import logging

logger = logging.getLogger(__name__)


class PresenceSynchronizer:
    """Republishes a room's full member list after every membership change.

    The list always replaces whatever the clients held before, so the last
    publish a member receives is the room's real membership.
    """

    def __init__(self, directory, broadcaster):
        self.directory = directory
        self.broadcaster = broadcaster
        directory.subscribe(self.publish)

    def snapshot(self, room_code: str):
        room = self.directory.get_room(room_code)
        return room.presence() if room else []

    def publish(self, room_code: str) -> int:
        room = self.directory.get_room(room_code)
        if room is None:
            logger.debug(f"[presence-skip] room={room_code} destroyed")
            return 0
        players = room.presence()
        logger.debug(f"[presence] room={room_code} players={[p['username'] for p in players]}")
        return self.broadcaster.broadcast(room_code, {
            'type': 'players_online',
            'roomCode': room_code,
            'players': players,
        })
