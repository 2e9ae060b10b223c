"""Room engine: the per-room state machine.

Every function takes the room it acts on and returns an explicit failure
indicator (``None``, ``False`` or a failed ``AnswerResult``) for expected
edge cases instead of raising. Callers that need the wall clock pass
``now``; it defaults to ``time.time()`` and is read once per operation.
"""
import time
from typing import Dict, FrozenSet, Iterable, List, Optional

from quizroom.models import (
    Answer,
    AnswerResult,
    GameSettings,
    LeaderboardEntry,
    Player,
    PlayerResult,
    Question,
    QuestionResults,
    QuestionView,
    Room,
    RoomStatus,
)
from .scoring import calculate_score
from .store import RoomStore

MAX_USERNAME_LENGTH = 20
FALLBACK_USERNAME = 'Player'

ALLOWED_TRANSITIONS: Dict[RoomStatus, FrozenSet[RoomStatus]] = {
    RoomStatus.LOBBY: frozenset({RoomStatus.COUNTDOWN, RoomStatus.FINISHED}),
    RoomStatus.COUNTDOWN: frozenset({RoomStatus.QUESTION, RoomStatus.FINISHED}),
    RoomStatus.QUESTION: frozenset({RoomStatus.RESULTS, RoomStatus.FINISHED}),
    RoomStatus.RESULTS: frozenset({RoomStatus.LEADERBOARD, RoomStatus.FINISHED}),
    RoomStatus.LEADERBOARD: frozenset({RoomStatus.QUESTION, RoomStatus.FINISHED}),
    RoomStatus.FINISHED: frozenset(),
}


def _now(now: Optional[float]) -> float:
    return time.time() if now is None else now


def can_transition(room: Room, target: RoomStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[room.status]


def _set_status(room: Room, target: RoomStatus) -> bool:
    if not can_transition(room, target):
        return False
    room.status = target
    return True


# ---- Rooms and players ----

def create_room(store: RoomStore, host_id: str, questions: Iterable[Question],
                settings: Optional[GameSettings] = None) -> Room:
    """Register a new lobby for ``host_id``. An empty question list raises ValueError."""
    return store.create(host_id, questions, settings)


def normalize_username(room: Room, raw_username) -> str:
    """Trim, truncate and de-duplicate a requested username.

    Names compare case-insensitively; a taken name gets the smallest
    numeric suffix from 2 upwards that is still free.
    """
    trimmed = (raw_username or '').strip()[:MAX_USERNAME_LENGTH].strip()
    if not trimmed:
        trimmed = FALLBACK_USERNAME

    taken = {p.username.casefold() for p in room.players.values()}
    if trimmed.casefold() not in taken:
        return trimmed

    suffix = 2
    while f"{trimmed}{suffix}".casefold() in taken:
        suffix += 1
    return f"{trimmed}{suffix}"


def add_player(room: Room, connection_id: str, raw_username, now: Optional[float] = None) -> Optional[Player]:
    if len(room.players) >= room.settings.max_players:
        return None
    if room.status != RoomStatus.LOBBY and not room.settings.allow_late_join:
        return None

    player = Player(
        id=connection_id,
        username=normalize_username(room, raw_username),
        join_order=room.next_join_order,
        joined_at=_now(now),
        late_joined=room.status == RoomStatus.QUESTION,
    )
    room.next_join_order += 1
    room.players[connection_id] = player
    return player


def remove_player(room: Room, connection_id: str) -> None:
    room.players.pop(connection_id, None)


def get_player(room: Room, connection_id: str) -> Optional[Player]:
    return room.players.get(connection_id)


def set_player_connected(room: Room, connection_id: str, connected: bool) -> Optional[Player]:
    player = room.players.get(connection_id)
    if player:
        player.is_connected = connected
    return player


def player_count(room: Room, connected_only: bool = False) -> int:
    if connected_only:
        return sum(1 for p in room.players.values() if p.is_connected)
    return len(room.players)


def reconnect_player(room: Room, old_connection_id: str, new_connection_id: str) -> Optional[Player]:
    """Re-key a player under a new connection id, keeping score and history.

    Returns None when the old id is unknown or the new id already owns a record.
    """
    if new_connection_id in room.players or old_connection_id not in room.players:
        return None
    player = room.players.pop(old_connection_id)
    player.id = new_connection_id
    player.is_connected = True
    room.players[new_connection_id] = player
    return player


# ---- Answers ----

def submit_answer(room: Room, connection_id: str, option_index: int, now: Optional[float] = None) -> AnswerResult:
    player = room.players.get(connection_id)
    if not player:
        return AnswerResult(success=False)

    question = room.current_question
    if question is None or room.question_start_time is None:
        return AnswerResult(success=False)

    index = room.current_question_index
    if player.has_answered or player.answer_for(index) is not None:
        return AnswerResult(success=False)
    if isinstance(option_index, bool) or option_index not in range(len(question.options)):
        return AnswerResult(success=False)

    submitted_at = _now(now)
    elapsed = submitted_at - room.question_start_time
    is_correct = option_index == question.correct_index
    points = calculate_score(is_correct, elapsed, question.time_limit, question.points,
                             room.settings.time_decay)

    player.answers.append(Answer(
        question_index=index,
        selected_option=option_index,
        submitted_at=submitted_at,
        is_correct=is_correct,
        points_earned=points,
    ))
    player.score += points
    player.last_question_score = points
    player.has_answered = True
    return AnswerResult(success=True, points_earned=points)


def all_players_answered(room: Room) -> bool:
    """True when no eligible player is still thinking.

    Players who joined mid-question are not waited for. An empty room is
    vacuously done.
    """
    return all(p.has_answered for p in room.players.values() if not p.late_joined)


# ---- Views ----

def get_current_question_view(room: Room) -> Optional[QuestionView]:
    if room.status != RoomStatus.QUESTION:
        return None
    question = room.current_question
    return question.to_view() if question else None


def _rank(players: List[Player], score_of) -> List[Player]:
    return sorted(players, key=lambda p: (-score_of(p), p.join_order))


def get_leaderboard(room: Room) -> List[LeaderboardEntry]:
    """Players by descending score; ties keep join order. Ranks start at 1."""
    players = list(room.players.values())
    previous = {p.id: i + 1 for i, p in enumerate(_rank(players, lambda p: p.score - p.last_question_score))}
    return [
        LeaderboardEntry(
            rank=i + 1,
            player_id=p.id,
            username=p.username,
            score=p.score,
            last_question_score=p.last_question_score,
            previous_rank=previous[p.id],
        )
        for i, p in enumerate(_rank(players, lambda p: p.score))
    ]


def get_question_results(room: Room) -> Optional[QuestionResults]:
    question = room.current_question
    if question is None:
        return None

    index = room.current_question_index
    option_counts = [0] * len(question.options)
    player_answers = []
    for player in room.players.values():
        answer = player.answer_for(index)
        if answer is None:
            player_answers.append(PlayerResult(player.id, None, False, 0))
            continue
        if answer.selected_option is not None and 0 <= answer.selected_option < len(option_counts):
            option_counts[answer.selected_option] += 1
        player_answers.append(PlayerResult(player.id, answer.selected_option, answer.is_correct,
                                           answer.points_earned))

    return QuestionResults(
        correct_index=question.correct_index,
        player_answers=player_answers,
        option_counts=option_counts,
    )


def get_game_state(room: Room, now: Optional[float] = None) -> dict:
    """Snapshot sent to a client that (re)joins mid-game."""
    state = {
        'roomId': room.code,
        'status': room.status.value,
        'players': [p.to_dict() for p in room.players.values()],
        'currentQuestionIndex': room.current_question_index,
        'totalQuestions': room.total_questions,
    }
    view = get_current_question_view(room)
    if view is not None and room.question_start_time is not None:
        elapsed = _now(now) - room.question_start_time
        state['currentQuestion'] = view.to_dict()
        state['timeRemaining'] = max(0, int(round(view.time_limit - elapsed)))
    if room.status in (RoomStatus.LEADERBOARD, RoomStatus.FINISHED):
        state['leaderboard'] = [e.to_dict() for e in get_leaderboard(room)]
    return state


# ---- Progression ----

def next_question(room: Room, now: Optional[float] = None) -> bool:
    """Move to the next question, or finish the game when none remain.

    Finishing past the end leaves ``question_start_time`` as it was; callers
    reach this through ``advance_question``, where it is already cleared.
    """
    if room.status == RoomStatus.FINISHED:
        return False

    if room.current_question_index + 1 >= len(room.questions):
        if _set_status(room, RoomStatus.FINISHED):
            room.current_question_index = len(room.questions)
        return False

    if not _set_status(room, RoomStatus.QUESTION):
        return False
    room.current_question_index += 1

    for player in room.players.values():
        player.has_answered = False
        player.last_question_score = 0
        player.late_joined = False

    room.question_start_time = _now(now)
    return True


def start_countdown(room: Room) -> bool:
    """lobby -> countdown; needs at least one player."""
    if room.status != RoomStatus.LOBBY or not room.players:
        return False
    return _set_status(room, RoomStatus.COUNTDOWN)


def advance_question(room: Room, now: Optional[float] = None) -> bool:
    """countdown/leaderboard -> question, or -> finished when out of questions.

    Returns True only when a new question is now running.
    """
    if room.status not in (RoomStatus.COUNTDOWN, RoomStatus.LEADERBOARD):
        return False
    return next_question(room, now)


def end_question(room: Room) -> Optional[QuestionResults]:
    """question -> results. Returns the results snapshot."""
    if not _set_status(room, RoomStatus.RESULTS):
        return None
    room.question_start_time = None
    for player in room.players.values():
        player.has_answered = False
    return get_question_results(room)


def show_leaderboard(room: Room) -> Optional[List[LeaderboardEntry]]:
    """results -> leaderboard."""
    if not _set_status(room, RoomStatus.LEADERBOARD):
        return None
    return get_leaderboard(room)


def end_game(room: Room) -> Optional[List[LeaderboardEntry]]:
    """Any live state -> finished. Returns the final leaderboard."""
    if not _set_status(room, RoomStatus.FINISHED):
        return None
    room.question_start_time = None
    for player in room.players.values():
        player.has_answered = False
    return get_leaderboard(room)
