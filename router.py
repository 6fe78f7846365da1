import json
import logging
from typing import Optional

from broadcast import Broadcaster
from models import TEAM_A, TEAM_B, Connection, GameRoom, NotFound, Player, RoomError
from registry import RoomRegistry

logger = logging.getLogger(__name__)

DEFAULT_PLAYER_NAME = 'Player'
PLAYER_NUMERIC_FIELDS = ('x', 'y', 'angle', 'vx', 'vy')
PLAYER_DEFAULTS = (('model', 0), ('decal', 0), ('wheelStyle', 0), ('team', 0))
BALL_FIELDS = ('x', 'y', 'vx', 'vy')


class MalformedMessage(ValueError):
    pass


def decode(raw) -> dict:
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode('utf-8')
        except UnicodeDecodeError as exc:
            raise MalformedMessage(str(exc))
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise MalformedMessage(str(exc))
    if not isinstance(raw, dict):
        raise MalformedMessage('payload is not an object')
    if not isinstance(raw.get('type'), str):
        raise MalformedMessage('missing type')
    return raw


def is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _number(msg, key, default=None, required=False):
    value = msg.get(key)
    if value is None:
        if required:
            raise MalformedMessage(f'missing {key}')
        return default
    if not is_number(value):
        raise MalformedMessage(f'{key} is not a number')
    return value


def _text(msg, key):
    value = msg.get(key)
    if not isinstance(value, str) or not value.strip():
        raise MalformedMessage(f'missing {key}')
    return value.strip()


class MessageRouter:
    """Validates inbound messages and dispatches them by ``type``.

    Malformed payloads and unauthorized actions are dropped without a reply.
    Only join failures are reported back, as an ``ERROR`` message.
    """

    def __init__(self, registry: RoomRegistry, broadcaster: Optional[Broadcaster] = None,
                 default_map=0, default_time=180):
        self.registry = registry
        self.broadcaster = broadcaster or Broadcaster()
        self.default_map = default_map
        self.default_time = default_time
        self._handlers = {
            'CREATE_SERVER': self.handle_create,
            'JOIN_SERVER': self.handle_join,
            'LEAVE_SERVER': self.handle_leave,
            'LAUNCH': self.handle_launch,
            'HOST_CONFIG': self.handle_host_config,
            'PLAYER_UPDATE': self.handle_player_update,
            'BALL_UPDATE': self.handle_ball_update,
            'GOAL': self.handle_goal,
            'GAME_OVER': self.handle_game_over,
        }

    def dispatch(self, conn: Connection, raw):
        try:
            msg = decode(raw)
            handler = self._handlers.get(msg['type'])
            if handler is None:
                raise MalformedMessage(f"unknown type {msg['type']!r}")
            # lock order: connection, then room, then registry
            with conn.lock:
                handler(conn, msg)
        except MalformedMessage as exc:
            logger.debug("Dropped message from %s: %s", conn.short_id, exc)

    def disconnect(self, conn: Connection):
        logger.info("[-] Player disconnected: %s", conn.short_id)
        with conn.lock:
            conn.open = False
            room = self._room_of(conn)
            if room is None:
                conn.room_code = None
                return
            with room.lock:
                if room.alive:
                    self._leave(room, conn)

    # -- helpers --

    def _room_of(self, conn) -> Optional[GameRoom]:
        if conn.room_code is None:
            return None
        room = self.registry.lookup(conn.room_code)
        if room is None or conn.player_id not in room:
            return None
        return room

    def _send(self, conn, msg_type, **body):
        self.broadcaster.to_one(conn, dict(type=msg_type, **body))

    def _room_update(self, room):
        self.broadcaster.to_all(room, dict(type='ROOM_UPDATE', **room.room_state()))

    def _leave(self, room: GameRoom, conn: Connection):
        removed, new_host_id = room.remove_player(conn.player_id)
        conn.room_code = None
        if not removed:
            return
        if not room.players:
            self.registry.remove(room.code)
            return
        if new_host_id is not None:
            self._send(room.players[new_host_id].connection, 'YOU_ARE_HOST')
            logger.info("Room %s: new host %s", room.code, new_host_id[:8])
        self._room_update(room)

    # -- session --

    def handle_create(self, conn, msg):
        if self._room_of(conn) is not None:
            return
        name = _text(msg, 'name')
        map_id = _number(msg, 'map', self.default_map)
        time_limit = _number(msg, 'time', self.default_time)
        room = self.registry.create_room(Player(conn, name), map=map_id, time_limit=time_limit)
        self._send(conn, 'SERVER_CREATED', serverId=room.code, playerId=conn.player_id)

    def handle_join(self, conn, msg):
        if self._room_of(conn) is not None:
            return
        code = msg.get('serverId')
        if code is None:
            raise MalformedMessage('missing serverId')
        # numeric ids still get a NotFound reply
        code = str(code).strip()
        name = _text(msg, 'name')
        room = self.registry.lookup(code)
        try:
            if room is None:
                raise NotFound()
            with room.lock:
                room.add_player(Player(conn, name))
                conn.room_code = room.code
                self._send(conn, 'JOINED', serverId=room.code, map=room.map, time=room.time,
                           isHost=False, playerId=conn.player_id)
                self._room_update(room)
        except RoomError as exc:
            logger.info("Join %s by %s refused: %s", code, name, exc.message)
            self._send(conn, 'ERROR', msg=exc.message)
            return
        logger.info("Room %s: %s joined", room.code, name)

    def handle_leave(self, conn, msg):
        room = self._room_of(conn)
        if room is None:
            return
        with room.lock:
            if room.alive:
                self._leave(room, conn)

    # -- host only --

    def handle_launch(self, conn, msg):
        room = self._room_of(conn)
        if room is None:
            return
        with room.lock:
            if not room.launch(conn.player_id):
                return
            self.broadcaster.to_all(room, {'type': 'GAME_START', 'map': room.map,
                                           'time': room.time, 'players': room.roster()})
        logger.info("Room %s launched with %d players", room.code, len(room))

    def handle_host_config(self, conn, msg):
        room = self._room_of(conn)
        if room is None:
            return
        map_id = _number(msg, 'map')
        time_limit = _number(msg, 'time')
        with room.lock:
            if room.configure(conn.player_id, map=map_id, time_limit=time_limit):
                self._room_update(room)

    def handle_ball_update(self, conn, msg):
        room = self._room_of(conn)
        if room is None:
            return
        ball = msg.get('ball')
        if not isinstance(ball, dict):
            raise MalformedMessage('missing ball')
        for key in BALL_FIELDS:
            _number(ball, key, required=True)
        with room.lock:
            if room.update_ball(conn.player_id, dict(ball)):
                self.broadcaster.to_all_except(room, conn.player_id,
                                               {'type': 'BALL_UPDATE', 'ball': ball})

    def handle_goal(self, conn, msg):
        room = self._room_of(conn)
        if room is None:
            return
        team = _number(msg, 'team', required=True)
        if team not in (TEAM_A, TEAM_B):
            raise MalformedMessage(f'bad team {team!r}')
        with room.lock:
            if room.score_goal(conn.player_id, team):
                self.broadcaster.to_all(room, dict(type='GOAL', team=team, **room.scores()))

    def handle_game_over(self, conn, msg):
        room = self._room_of(conn)
        if room is None:
            return
        with room.lock:
            if not room.finish(conn.player_id):
                return
            self.broadcaster.to_all(room, dict(type='GAME_OVER', **room.scores()))
            for player in room.players.values():
                player.connection.room_code = None
            self.registry.remove(room.code)
        logger.info("Room %s finished %d-%d", room.code, room.score_a, room.score_b)

    # -- peers --

    def handle_player_update(self, conn, msg):
        room = self._room_of(conn)
        if room is None:
            return
        out = {'type': 'PLAYER_UPDATE', 'id': conn.player_id}
        for key in PLAYER_NUMERIC_FIELDS:
            out[key] = _number(msg, key, required=True)
        for key in ('c1', 'c2'):
            if key in msg:
                out[key] = msg[key]
        for key, default in PLAYER_DEFAULTS:
            out[key] = msg[key] if msg.get(key) is not None else default
        name = msg.get('name')
        out['name'] = name if isinstance(name, str) and name else DEFAULT_PLAYER_NAME
        with room.lock:
            if room.alive:
                self.broadcaster.to_all_except(room, conn.player_id, out)
