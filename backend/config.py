import os


def _flag(name, default='0'):
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    HOST = os.environ.get('HOST', '0.0.0.0')
    PORT = int(os.environ.get('PORT', '8080'))
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/ws')
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            'CORS_ORIGINS',
            'http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080,http://127.0.0.1:8080',
        ).split(',')
        if origin.strip()
    ]
    # Belt reseed period (seconds)
    RESEED_INTERVAL_SEC = float(os.environ.get('RESEED_INTERVAL_SEC', '90'))
    # Admin event durations arrive in minutes; seconds per minute
    ADMIN_EVENT_UNIT_SEC = float(os.environ.get('ADMIN_EVENT_UNIT_SEC', '60'))
    # Echo chat messages back to their sender
    CHAT_ECHO_TO_SENDER = _flag('CHAT_ECHO_TO_SENDER')
    # Timers stay off under TESTING unless this is set
    ENABLE_SCHEDULER_IN_TESTS = _flag('ENABLE_SCHEDULER_IN_TESTS')
