from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

from config import Config
from hub.services.broadcast import SocketIOTransport
from hub.services.hub import RelayHub

socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    # module loggers under hub.* propagate to the app logger
    flask_app.logger.setLevel(str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper())

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []
    CORS(flask_app, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    namespace = flask_app.config.get('SOCKETIO_NAMESPACE', '/ws')
    relay = RelayHub(
        SocketIOTransport(socketio, namespace),
        flask_app.config,
        spawn=socketio.start_background_task,
        sleep=socketio.sleep,
    )
    flask_app.extensions['relay_hub'] = relay

    from hub.main import main
    flask_app.register_blueprint(main)

    from hub.socketio_events import register_socketio_handlers
    register_socketio_handlers(namespace)

    if not flask_app.config.get('TESTING') or flask_app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        relay.scheduler.start_reseed_loop()

    flask_app.logger.info(f"[startup] namespace={namespace} reseed={relay.scheduler.reseed_interval}s")
    return flask_app


def get_relay(flask_app) -> RelayHub:
    return flask_app.extensions['relay_hub']
