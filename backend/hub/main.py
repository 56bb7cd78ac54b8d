from flask import Blueprint, current_app, jsonify

from hub import get_relay

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Character Tycoon relay hub'})


@main.route('/health')
def health():
    return jsonify({'status': 'ok', **get_relay(current_app).stats()})


@main.route('/api/rooms')
def list_rooms():
    return jsonify(get_relay(current_app).snapshot())


@main.route('/api/rooms/<room_code>')
def room_detail(room_code):
    for room in get_relay(current_app).snapshot():
        if room['roomCode'] == room_code:
            return jsonify(room)
    return jsonify({'error': f'Room {room_code} not found'}), 404
