import logging
import random
import string
import threading
from typing import Callable, Dict, Optional

from models import MAX_PLAYERS, GameRoom, Player

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def random_code(length=6):
    return ''.join(random.choices(CODE_ALPHABET, k=length))


class RoomRegistry:
    """Process-wide map of live room codes to rooms."""

    def __init__(self, code_length=6, max_players=MAX_PLAYERS,
                 code_factory: Optional[Callable[[int], str]] = None):
        self.code_length = code_length
        self.max_players = max_players
        self._code_factory = code_factory or random_code
        self._rooms: Dict[str, GameRoom] = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._rooms)

    def __contains__(self, code):
        return self.lookup(code) is not None

    def codes(self):
        with self._lock:
            return list(self._rooms)

    def create_room(self, host: Player, map=0, time_limit=180) -> GameRoom:
        with self._lock:
            code = self._code_factory(self.code_length)
            while code in self._rooms:
                logger.debug("Room code collision on %s, regenerating", code)
                code = self._code_factory(self.code_length)
            room = GameRoom(code, host, map=map, time_limit=time_limit, max_players=self.max_players)
            self._rooms[code] = room
        host.connection.room_code = code
        logger.info("Room %s created by %s", code, host.name)
        return room

    def lookup(self, code) -> Optional[GameRoom]:
        if not isinstance(code, str):
            return None
        with self._lock:
            return self._rooms.get(code.strip().upper())

    def remove(self, code):
        with self._lock:
            room = self._rooms.pop(code, None)
        if room is None:
            return False
        room.terminate()
        logger.info("Room %s removed", code)
        return True

    def sweep(self):
        """Drop rooms left without members. Returns how many were removed."""
        with self._lock:
            rooms = list(self._rooms.values())
        removed = 0
        for room in rooms:
            with room.lock:
                if not room.players and self.remove(room.code):
                    removed += 1
        if removed:
            logger.info("Sweep removed %d empty room(s)", removed)
        return removed
