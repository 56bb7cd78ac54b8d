import logging
import sys

from hub import create_app, socketio

app = create_app()

if __name__ == '__main__':
    host = app.config['HOST']
    port = app.config['PORT']
    app.logger.info(f"[startup] listening on {host}:{port}")
    try:
        socketio.run(app, host=host, port=port, allow_unsafe_werkzeug=True)
    except OSError as exc:
        app.logger.critical(f"[fatal] cannot bind {host}:{port}: {exc}")
        logging.shutdown()
        sys.exit(1)
