from enum import Enum


class ErrorCode(str, Enum):
    ROOM_NOT_FOUND = 'ROOM_NOT_FOUND'
    GAME_IN_PROGRESS = 'GAME_IN_PROGRESS'
    ROOM_FULL = 'ROOM_FULL'
    NO_PLAYERS = 'NO_PLAYERS'


MESSAGES = {
    ErrorCode.ROOM_NOT_FOUND: 'Room not found!',
    ErrorCode.GAME_IN_PROGRESS: 'The game has already started!',
    ErrorCode.ROOM_FULL: 'The room is full!',
    ErrorCode.NO_PLAYERS: 'There are no players yet!',
}


def error_payload(code: ErrorCode) -> dict:
    return {'code': code.value, 'message': MESSAGES[code]}
