from flask import Blueprint, current_app, jsonify

from quizroom.errors import ErrorCode, error_payload
from quizroom.models import RoomStatus
from quizroom.services.games import engine

rooms = Blueprint('rooms', __name__)


@rooms.route('/<string:code>', methods=['GET'])
def get_room(code):
    """
    Returns the public summary of a room so clients can check a code before joining.
    """
    room = current_app.extensions['quizroom'].store.get(code)
    if room is None:
        return jsonify(error_payload(ErrorCode.ROOM_NOT_FOUND)), 404

    accepting = (
        room.status != RoomStatus.FINISHED
        and (room.status == RoomStatus.LOBBY or room.settings.allow_late_join)
        and engine.player_count(room) < room.settings.max_players
    )
    return jsonify({
        'roomId': room.code,
        'status': room.status.value,
        'playerCount': engine.player_count(room),
        'totalQuestions': room.total_questions,
        'acceptingPlayers': accepting,
        'settings': room.settings.to_dict(),
    }), 200
