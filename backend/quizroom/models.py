import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


def _millis(timestamp: Optional[float]) -> Optional[int]:
    if timestamp is None:
        return None
    return int(timestamp * 1000)


class RoomStatus(str, Enum):
    LOBBY = 'lobby'
    COUNTDOWN = 'countdown'
    QUESTION = 'question'
    RESULTS = 'results'
    LEADERBOARD = 'leaderboard'
    FINISHED = 'finished'


class TimeDecay(str, Enum):
    LINEAR = 'linear'
    EXPONENTIAL = 'exponential'


@dataclass(frozen=True)
class Question:
    """Multiple-choice question with 2-4 options."""

    id: str
    text: str
    options: Tuple[str, ...]
    correct_index: int
    time_limit: float = 20
    points: int = 1000
    image_url: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'options', tuple(self.options))
        if not 2 <= len(self.options) <= 4:
            raise ValueError(f"question {self.id!r} must have 2-4 options, got {len(self.options)}")
        if not 0 <= self.correct_index < len(self.options):
            raise ValueError(f"question {self.id!r} has correct_index {self.correct_index} out of range")
        if self.time_limit <= 0:
            raise ValueError(f"question {self.id!r} needs a positive time limit")
        if self.points < 0:
            raise ValueError(f"question {self.id!r} cannot award negative points")

    @classmethod
    def from_dict(cls, data: dict, default_time_limit: float = 20) -> 'Question':
        try:
            return cls(
                id=str(data['id']),
                text=data['text'],
                options=tuple(data['options']),
                correct_index=int(data['correctIndex']),
                time_limit=data.get('timeLimit', default_time_limit),
                points=int(data.get('points', 1000)),
                image_url=data.get('imageUrl'),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"malformed question record: {data!r}") from exc

    def to_view(self) -> 'QuestionView':
        return QuestionView(
            id=self.id,
            text=self.text,
            options=self.options,
            time_limit=self.time_limit,
            points=self.points,
            image_url=self.image_url,
        )


@dataclass(frozen=True)
class QuestionView:
    """What players see of a question while it is running: no correct index."""

    id: str
    text: str
    options: Tuple[str, ...]
    time_limit: float
    points: int
    image_url: Optional[str] = None

    def to_dict(self):
        data = {
            'id': self.id,
            'text': self.text,
            'options': list(self.options),
            'timeLimit': self.time_limit,
            'points': self.points,
        }
        if self.image_url:
            data['imageUrl'] = self.image_url
        return data


@dataclass
class Answer:
    question_index: int
    # None only appears in result aggregation for players who never answered
    selected_option: Optional[int]
    submitted_at: float
    is_correct: bool
    points_earned: int

    def to_dict(self):
        return {
            'questionIndex': self.question_index,
            'selectedOption': self.selected_option,
            'submittedAt': _millis(self.submitted_at),
            'isCorrect': self.is_correct,
            'pointsEarned': self.points_earned,
        }


@dataclass
class Player:
    id: str
    username: str
    join_order: int
    joined_at: float = field(default_factory=time.time)
    score: int = 0
    last_question_score: int = 0
    is_connected: bool = True
    answers: List[Answer] = field(default_factory=list)
    has_answered: bool = False
    # Joined while a question was running; not waited for until the next one
    late_joined: bool = False

    def answer_for(self, question_index: int) -> Optional[Answer]:
        return next((a for a in self.answers if a.question_index == question_index), None)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'score': self.score,
            'lastQuestionScore': self.last_question_score,
            'isConnected': self.is_connected,
            'joinedAt': _millis(self.joined_at),
            'answers': [a.to_dict() for a in self.answers],
            'hasAnswered': self.has_answered,
        }


@dataclass
class GameSettings:
    time_decay: TimeDecay = TimeDecay.LINEAR
    question_time_limit: float = 20
    max_players: int = 50
    allow_late_join: bool = False
    show_correct_answer: bool = True

    @classmethod
    def from_config(cls, config) -> 'GameSettings':
        return cls(
            time_decay=TimeDecay(config.get('TIME_DECAY', 'linear')),
            question_time_limit=config.get('QUESTION_TIME_LIMIT_SEC', 20),
            max_players=int(config.get('MAX_PLAYERS', 50)),
            allow_late_join=bool(config.get('ALLOW_LATE_JOIN', False)),
            show_correct_answer=bool(config.get('SHOW_CORRECT_ANSWER', True)),
        )

    def to_dict(self):
        return {
            'timeDecay': self.time_decay.value,
            'questionTimeLimit': self.question_time_limit,
            'maxPlayers': self.max_players,
            'allowLateJoin': self.allow_late_join,
            'showCorrectAnswer': self.show_correct_answer,
        }


@dataclass
class Room:
    code: str
    host_id: str
    questions: Tuple[Question, ...]
    settings: GameSettings = field(default_factory=GameSettings)
    status: RoomStatus = RoomStatus.LOBBY
    players: Dict[str, Player] = field(default_factory=dict)
    current_question_index: int = -1
    created_at: float = field(default_factory=time.time)
    question_start_time: Optional[float] = None
    next_join_order: int = 0

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_question_index < len(self.questions):
            return self.questions[self.current_question_index]
        return None

    @property
    def total_questions(self) -> int:
        return len(self.questions)


@dataclass
class LeaderboardEntry:
    rank: int
    player_id: str
    username: str
    score: int
    last_question_score: int
    previous_rank: Optional[int] = None

    def to_dict(self):
        data = {
            'rank': self.rank,
            'playerId': self.player_id,
            'username': self.username,
            'score': self.score,
            'lastQuestionScore': self.last_question_score,
        }
        if self.previous_rank is not None:
            data['previousRank'] = self.previous_rank
        return data


@dataclass
class PlayerResult:
    player_id: str
    selected_option: Optional[int]
    is_correct: bool
    points_earned: int

    def to_dict(self):
        return {
            'playerId': self.player_id,
            'selectedOption': self.selected_option,
            'isCorrect': self.is_correct,
            'pointsEarned': self.points_earned,
        }


@dataclass
class QuestionResults:
    correct_index: int
    player_answers: List[PlayerResult]
    option_counts: List[int]

    def to_dict(self, reveal_correct: bool = True):
        return {
            'correctIndex': self.correct_index if reveal_correct else None,
            'perPlayerAnswers': [p.to_dict() for p in self.player_answers],
            'perOptionCounts': list(self.option_counts),
        }


@dataclass(frozen=True)
class AnswerResult:
    success: bool
    points_earned: int = 0
