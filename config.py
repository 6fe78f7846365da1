import os


def _flag(name, default='0'):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    HOST = os.environ.get('HOST', '0.0.0.0')
    PORT = int(os.environ.get('PORT', '8080'))
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Engine.IO / Socket.IO internal logs
    SOCKETIO_LOGGER = _flag('SOCKETIO_LOGGER')
    PING_TIMEOUT = int(os.environ.get('PING_TIMEOUT', '60'))
    PING_INTERVAL = int(os.environ.get('PING_INTERVAL', '25'))
    # Rooms
    MAX_PLAYERS = int(os.environ.get('MAX_PLAYERS', '4'))
    ROOM_CODE_LENGTH = int(os.environ.get('ROOM_CODE_LENGTH', '6'))
    DEFAULT_MAP = int(os.environ.get('DEFAULT_MAP', '0'))
    DEFAULT_TIME = int(os.environ.get('DEFAULT_TIME', '180'))
    # Empty-room cleanup interval (seconds). 0 disables.
    ROOM_SWEEP_INTERVAL_SEC = int(os.environ.get('ROOM_SWEEP_INTERVAL_SEC', '600'))
    # Folder holding index.html. Defaults to templates/ beside server.py,
    # which only exists in a source checkout or editable install.
    TEMPLATE_FOLDER = os.environ.get('TEMPLATE_FOLDER') or None
