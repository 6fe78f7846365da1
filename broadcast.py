import logging

from models import Connection, GameRoom

logger = logging.getLogger(__name__)


class Broadcaster:
    """Best-effort fan-out to the members of a room.

    Closed sockets are skipped and a failed send never stops delivery to the
    other members.
    """

    def to_one(self, connection: Connection, payload: dict):
        if connection is None or not connection.open:
            return False
        return connection.send(payload)

    def to_all(self, room: GameRoom, payload: dict):
        return self._fan_out(room, payload, exclude=None)

    def to_all_except(self, room: GameRoom, player_id, payload: dict):
        return self._fan_out(room, payload, exclude=player_id)

    def _fan_out(self, room, payload, exclude):
        delivered = 0
        for pid, player in list(room.players.items()):
            if pid == exclude:
                continue
            if self.to_one(player.connection, payload):
                delivered += 1
            else:
                logger.debug("Skipped %s in room %s (%s)", pid[:8], room.code, payload.get('type'))
        return delivered
