import random
from typing import Dict, Iterable, List, Optional

from quizroom.models import GameSettings, Question, Room

CODE_MIN = 100000
CODE_MAX = 999999


class RoomStore:
    """In-memory registry of active rooms keyed by their 6-digit code.

    One store belongs to one Flask app (``app.extensions['quizroom'].store``);
    tests build their own. Nothing here touches game state beyond
    registering and dropping rooms.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rooms: Dict[str, Room] = {}
        self._rng = rng or random.Random()

    def generate_code(self) -> str:
        """Generate a 6-digit code not used by any active room."""
        if len(self._rooms) >= CODE_MAX - CODE_MIN + 1:
            raise RuntimeError('room code space exhausted')
        while True:
            code = str(self._rng.randint(CODE_MIN, CODE_MAX))
            if code not in self._rooms:
                return code

    def create(self, host_id: str, questions: Iterable[Question], settings: Optional[GameSettings] = None) -> Room:
        questions = tuple(questions)
        if not questions:
            raise ValueError('a room needs at least one question')
        room = Room(
            code=self.generate_code(),
            host_id=host_id,
            questions=questions,
            settings=settings or GameSettings(),
        )
        self._rooms[room.code] = room
        return room

    def get(self, code) -> Optional[Room]:
        if code is None:
            return None
        return self._rooms.get(str(code).strip())

    def delete(self, code) -> Optional[Room]:
        return self._rooms.pop(str(code), None)

    def codes(self) -> List[str]:
        return list(self._rooms)

    def __contains__(self, code) -> bool:
        return str(code) in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)
