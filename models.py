import logging
import threading
import time
import uuid
from collections import OrderedDict
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

MAX_PLAYERS = 4
TEAM_A = 0
TEAM_B = 1


class RoomError(Exception):
    """A join or lookup failure reported back to the requesting player."""

    message = 'Erreur'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message


class NotFound(RoomError):
    message = 'Serveur introuvable'


class RoomFull(RoomError):
    message = 'Serveur plein (4/4)'


class AlreadyStarted(RoomError):
    message = 'Partie déjà en cours'


class Status(str, Enum):
    WAITING = 'waiting'   # lobby: joinable, host may configure
    PLAYING = 'playing'   # ball / goal / game over relay active
    ENDED = 'ended'       # removed from the registry


class Connection:
    """One live socket bound to a single player id.

    ``emit`` pushes a payload to this socket, ``disconnect`` drops it and
    ``on_message`` is called for every inbound payload. Messages from one
    socket are handled one at a time, in arrival order, under ``lock``.
    """

    def __init__(self, sid: str, emit: Callable, disconnect: Optional[Callable] = None,
                 on_message: Optional[Callable] = None, player_id: Optional[str] = None):
        self.sid = sid
        self.player_id = player_id or uuid.uuid4().hex
        self.room_code: Optional[str] = None
        self.open = True
        # held while one inbound message or the disconnect is handled
        self.lock = threading.RLock()
        self._emit = emit
        self._disconnect = disconnect
        self.on_message = on_message

    @property
    def short_id(self):
        return self.player_id[:8]

    def send(self, payload: dict) -> bool:
        if not self.open:
            return False
        try:
            self._emit(payload, self.sid)
        except Exception as exc:
            logger.warning("Send to %s failed: %s", self.short_id, exc)
            return False
        return True

    def receive(self, raw):
        if self.on_message is not None:
            self.on_message(self, raw)

    def close(self):
        if not self.open:
            return
        self.open = False
        if self._disconnect is not None:
            try:
                self._disconnect(self.sid)
            except Exception as exc:
                logger.warning("Close of %s failed: %s", self.short_id, exc)

    def __repr__(self):
        return f"<Connection {self.short_id} room={self.room_code}>"


class Player:
    def __init__(self, connection: Connection, name: str):
        self.connection = connection
        self.name = name
        self.team: Optional[int] = None

    @property
    def player_id(self):
        return self.connection.player_id

    def to_dict(self, index=0):
        team = self.team if self.team is not None else index % 2
        return {'id': self.player_id, 'name': self.name, 'team': team}


class GameRoom:
    """A match session.

    All mutation goes through the methods below; callers hold ``lock`` for
    the whole transition including the broadcast that follows it.
    """

    def __init__(self, code, host: Player, map=0, time_limit=180, max_players=MAX_PLAYERS):
        self.code = code
        self.lock = threading.RLock()
        self.max_players = max_players
        self.map = map
        self.time = time_limit
        self.status = Status.WAITING
        self.players: Dict[str, Player] = OrderedDict()
        self.players[host.player_id] = host
        self.host_id = host.player_id
        self.ball = {'x': 0, 'y': 0, 'vx': 0, 'vy': 0}
        self.score_a = 0
        self.score_b = 0
        self.created_at = time.time()
        self.last_activity = time.time()

    def __len__(self):
        return len(self.players)

    def __contains__(self, player_id):
        return player_id in self.players

    @property
    def alive(self):
        return self.status is not Status.ENDED

    @property
    def host(self) -> Optional[Player]:
        return self.players.get(self.host_id)

    def is_host(self, player_id):
        return self.alive and player_id == self.host_id

    def touch(self):
        self.last_activity = time.time()

    # -- lobby --

    def add_player(self, player: Player):
        if not self.alive:
            raise NotFound()
        if len(self.players) >= self.max_players:
            raise RoomFull()
        if self.status is not Status.WAITING:
            raise AlreadyStarted()
        self.players[player.player_id] = player
        self.touch()

    def configure(self, by, map=None, time_limit=None):
        if not self.is_host(by) or self.status is not Status.WAITING:
            return False
        if map is not None:
            self.map = map
        if time_limit is not None:
            self.time = time_limit
        self.touch()
        return True

    def launch(self, by):
        if not self.is_host(by) or self.status is not Status.WAITING:
            return False
        for i, player in enumerate(self.players.values()):
            player.team = TEAM_A if i % 2 == 0 else TEAM_B
        self.status = Status.PLAYING
        self.touch()
        return True

    # -- match --

    def update_ball(self, by, ball):
        if not self.is_host(by) or self.status is not Status.PLAYING:
            return False
        self.ball = ball
        self.touch()
        return True

    def score_goal(self, by, team):
        if not self.is_host(by) or self.status is not Status.PLAYING:
            return False
        if team == TEAM_A:
            self.score_a += 1
        else:
            self.score_b += 1
        self.touch()
        return True

    def finish(self, by):
        if not self.is_host(by) or self.status is not Status.PLAYING:
            return False
        self.status = Status.ENDED
        return True

    def terminate(self):
        self.status = Status.ENDED

    # -- membership --

    def remove_player(self, player_id) -> Tuple[bool, Optional[str]]:
        """Drop a member. Returns (removed, new host id if the host changed)."""
        if self.players.pop(player_id, None) is None:
            return False, None
        self.touch()
        if not self.players:
            self.status = Status.ENDED
            return True, None
        if self.host_id == player_id:
            # earliest remaining member by join order
            self.host_id = next(iter(self.players))
            return True, self.host_id
        return True, None

    # -- views --

    def roster(self) -> List[dict]:
        return [p.to_dict(i) for i, p in enumerate(self.players.values())]

    def room_state(self):
        return {'players': self.roster(), 'map': self.map, 'time': self.time}

    def scores(self):
        return {'scoreA': self.score_a, 'scoreB': self.score_b}

    def __repr__(self):
        return f"<GameRoom {self.code} {self.status.value} players={len(self.players)}>"
