import random

import pytest

from quizroom.models import RoomStatus
from quizroom.services.games.store import RoomStore
from conftest import make_questions


class ScriptedRandom(random.Random):
    """Returns queued values from randint, to force code collisions."""

    def __init__(self, values):
        super().__init__(0)
        self._values = list(values)

    def randint(self, a, b):
        return self._values.pop(0)


def test_create_room_defaults(store):
    room = store.create('host-1', make_questions())
    assert len(room.code) == 6 and room.code.isdigit()
    assert room.host_id == 'host-1'
    assert room.status == RoomStatus.LOBBY
    assert room.players == {}
    assert room.current_question_index == -1
    assert room.question_start_time is None
    assert store.get(room.code) is room
    assert room.code in store
    assert len(store) == 1


def test_code_collision_is_retried():
    store = RoomStore(rng=ScriptedRandom([123456, 123456, 654321]))
    first = store.create('h1', make_questions())
    second = store.create('h2', make_questions())
    assert first.code == '123456'
    assert second.code == '654321'


def test_code_reusable_after_delete():
    store = RoomStore(rng=ScriptedRandom([111111, 111111]))
    room = store.create('h1', make_questions())
    store.delete(room.code)
    again = store.create('h2', make_questions())
    assert again.code == '111111'


def test_delete_is_idempotent(store):
    room = store.create('h1', make_questions())
    assert store.delete(room.code) is room
    assert store.delete(room.code) is None
    assert store.get(room.code) is None


def test_get_unknown_or_missing_code(store):
    assert store.get('000000') is None
    assert store.get(None) is None


def test_get_accepts_integer_and_padded_codes():
    store = RoomStore(rng=ScriptedRandom([222222]))
    store.create('h1', make_questions())
    assert store.get(222222) is not None
    assert store.get(' 222222 ') is not None


def test_empty_question_bank_is_rejected(store):
    with pytest.raises(ValueError):
        store.create('h1', [])
    assert len(store) == 0
