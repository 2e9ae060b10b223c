"""Question bank loading.

A bank is a JSON list of records shaped like::

    {"id": "1", "text": "...", "options": ["a", "b"], "correctIndex": 0,
     "timeLimit": 20, "points": 1000, "imageUrl": null}

``timeLimit`` and ``points`` are optional. Any malformed record makes the
whole bank invalid; rooms are never created from a partial bank.
"""
import json
from pathlib import Path
from typing import List, Optional

from quizroom.models import Question

DEFAULT_QUESTIONS = [
    {
        'id': '1',
        'text': 'Which planet is known as the Red Planet?',
        'options': ['Venus', 'Mars', 'Jupiter', 'Mercury'],
        'correctIndex': 1,
        'timeLimit': 20,
        'points': 1000,
    },
    {
        'id': '2',
        'text': 'How many continents are there?',
        'options': ['5', '6', '7', '8'],
        'correctIndex': 2,
        'timeLimit': 20,
        'points': 1000,
    },
    {
        'id': '3',
        'text': 'What is the chemical symbol for gold?',
        'options': ['Au', 'Ag', 'Gd', 'Go'],
        'correctIndex': 0,
        'timeLimit': 15,
        'points': 1000,
    },
    {
        'id': '4',
        'text': 'Water boils at 100 degrees Celsius at sea level.',
        'options': ['True', 'False'],
        'correctIndex': 0,
        'timeLimit': 10,
        'points': 500,
    },
    {
        'id': '5',
        'text': 'Which ocean is the largest?',
        'options': ['Atlantic', 'Indian', 'Arctic', 'Pacific'],
        'correctIndex': 3,
        'timeLimit': 20,
        'points': 1000,
    },
]


def parse_questions(records, default_time_limit: float = 20) -> List[Question]:
    if not isinstance(records, list) or not records:
        raise ValueError('a question bank must be a non-empty list')
    questions = [Question.from_dict(r, default_time_limit) for r in records]
    ids = [q.id for q in questions]
    if len(set(ids)) != len(ids):
        raise ValueError('question ids must be unique')
    return questions


def load_questions(path: Optional[str] = None, default_time_limit: float = 20) -> List[Question]:
    """Load a bank from ``path``, or the built-in bank when no path is given."""
    if not path:
        return parse_questions(DEFAULT_QUESTIONS, default_time_limit)
    try:
        records = json.loads(Path(path).read_text(encoding='utf-8'))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc
    return parse_questions(records, default_time_limit)
