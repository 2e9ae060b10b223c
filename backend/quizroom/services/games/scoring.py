import math

from quizroom.models import TimeDecay

# Multiplier floor parameters: both modes end near half credit at the buzzer
LINEAR_FLOOR = 0.5
EXPONENTIAL_RATE = 0.7


def round_half_away_from_zero(value: float) -> int:
    if value < 0:
        return -int(math.floor(-value + 0.5))
    return int(math.floor(value + 0.5))


def calculate_score(is_correct: bool, elapsed: float, time_limit: float, max_points: int, decay) -> int:
    """Points for one answer.

    Correct answers earn ``max_points`` scaled by how much of the time limit
    was used: linear mode goes from 1.0 down to 0.5, exponential mode follows
    ``exp(-0.7 * r)`` and ends at about 0.497. Wrong answers earn 0.

    Elapsed time is clamped into ``[0, time_limit]`` and the product is
    rounded half away from zero.
    """
    if not is_correct:
        return 0

    decay = TimeDecay(decay)
    clamped = min(max(elapsed, 0.0), time_limit)
    ratio = clamped / time_limit

    if decay is TimeDecay.LINEAR:
        multiplier = 1 - ratio * LINEAR_FLOOR
    else:
        multiplier = math.exp(-ratio * EXPONENTIAL_RATE)

    return round_half_away_from_zero(max_points * multiplier)
