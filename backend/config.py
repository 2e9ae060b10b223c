import os


def _env_flag(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Comma-separated list of origins allowed for HTTP and Socket.IO
    ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get('ALLOWED_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173').split(',')
        if origin.strip()
    ]
    # Auto-advance timers (seconds)
    COUNTDOWN_SECONDS = int(os.environ.get('COUNTDOWN_SECONDS', '3'))
    RESULTS_DURATION_SEC = int(os.environ.get('RESULTS_DURATION_SEC', '3'))
    TIMER_TICK_SEC = float(os.environ.get('TIMER_TICK_SEC', '1'))
    # Default room settings
    QUESTION_TIME_LIMIT_SEC = int(os.environ.get('QUESTION_TIME_LIMIT_SEC', '20'))
    MAX_PLAYERS = int(os.environ.get('MAX_PLAYERS', '50'))
    ALLOW_LATE_JOIN = _env_flag('ALLOW_LATE_JOIN', False)
    SHOW_CORRECT_ANSWER = _env_flag('SHOW_CORRECT_ANSWER', True)
    TIME_DECAY = os.environ.get('TIME_DECAY', 'linear')
    # Optional JSON question bank; the built-in bank is used when unset
    QUESTIONS_FILE = os.environ.get('QUESTIONS_FILE')
