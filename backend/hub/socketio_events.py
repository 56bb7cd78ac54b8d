from flask import current_app, request
from flask_socketio import emit

from hub import get_relay, socketio
from hub.services.broadcast import OUTBOUND_EVENT, Broadcaster


def handle_connect(auth=None):
    relay = get_relay(current_app)
    relay.connect(request.sid)
    emit(OUTBOUND_EVENT, Broadcaster.serialize({'type': 'connected', 'connectionId': request.sid}))


def handle_message(data):
    get_relay(current_app).handle_message(request.sid, data)


def handle_disconnect(reason=None):
    room_code = get_relay(current_app).disconnect(request.sid)
    current_app.logger.info(f"[disconnect] sid={request.sid} room={room_code} reason={reason}")


def handle_error(exc):
    # one connection's fault is logged and goes no further
    current_app.logger.error(f"[socket-error] sid={getattr(request, 'sid', None)} {exc}", exc_info=True)


def register_socketio_handlers(namespace: str = '/ws') -> None:
    """Register the connection lifecycle hooks on ``namespace``."""
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('message', handle_message, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    socketio.on_error(namespace)(handle_error)
