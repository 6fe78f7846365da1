import logging

from flask import Flask, current_app, render_template, request
from flask_socketio import SocketIO

from broadcast import Broadcaster
from config import Config
from models import Connection
from registry import RoomRegistry
from router import MessageRouter

logger = logging.getLogger(__name__)

socketio = SocketIO()

# {socket_id: Connection}
connections = {}


def create_app(config_class=Config):
    app = Flask(__name__, template_folder=getattr(config_class, 'TEMPLATE_FOLDER', None) or 'templates')
    app.config.from_object(config_class)
    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )

    registry = RoomRegistry(
        code_length=app.config['ROOM_CODE_LENGTH'],
        max_players=app.config['MAX_PLAYERS'],
    )
    router = MessageRouter(
        registry,
        Broadcaster(),
        default_map=app.config['DEFAULT_MAP'],
        default_time=app.config['DEFAULT_TIME'],
    )
    app.extensions['relay'] = {'registry': registry, 'router': router}
    app.add_url_rule('/', 'index', index)

    socketio.init_app(
        app,
        logger=app.config['SOCKETIO_LOGGER'],
        engineio_logger=app.config['SOCKETIO_LOGGER'],
        ping_timeout=app.config['PING_TIMEOUT'],
        ping_interval=app.config['PING_INTERVAL'],
        # one inbound event at a time, in arrival order
        async_handlers=False,
    )

    interval = app.config.get('ROOM_SWEEP_INTERVAL_SEC', 0)
    if interval and interval > 0:
        socketio.start_background_task(sweep_loop, registry, interval)

    return app


def sweep_loop(registry, interval):
    while True:
        socketio.sleep(interval)
        try:
            registry.sweep()
        except Exception:
            logger.exception("Room sweep failed")


def _relay():
    return current_app.extensions['relay']


def _emit(payload, sid):
    socketio.emit('message', payload, to=sid)


def _disconnect(sid):
    socketio.server.disconnect(sid)


# Socket events
@socketio.on('connect')
def handle_connect(auth=None):
    router = _relay()['router']
    conn = Connection(request.sid, _emit, _disconnect, on_message=router.dispatch)
    connections[request.sid] = conn
    logger.info("[+] Player connected: %s", conn.short_id)


@socketio.on('disconnect')
def handle_disconnect(reason=None):
    conn = connections.pop(request.sid, None)
    if conn is None:
        return
    _relay()['router'].disconnect(conn)


@socketio.on('message')
def handle_message(data):
    conn = connections.get(request.sid)
    if conn is None:
        return
    conn.receive(data)


@socketio.on_error_default
def handle_error(exc):
    logger.exception("[ERR] %s: %s", request.sid, exc)


def index():
    return render_template('index.html')


def main():
    app = create_app()
    logger.info("Relay server listening on http://localhost:%s", app.config['PORT'])
    socketio.run(app, host=app.config['HOST'], port=app.config['PORT'], allow_unsafe_werkzeug=True)


if __name__ == '__main__':
    main()
