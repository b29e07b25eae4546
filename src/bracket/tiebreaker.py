"""
Tiebreaker input: predicted total goals scored in the tournament.
"""
from typing import Optional, Tuple


MIN_GOALS = 100
MAX_GOALS = 300


def parse_tiebreaker_input(raw, min_goals: int = MIN_GOALS,
                           max_goals: int = MAX_GOALS) -> Tuple[Optional[int], Optional[str]]:
    """
    Validate a total-goals entry.

    Returns (value, error). Empty input is (None, None). Any invalid input
    yields value None and a message suitable for showing to the user, so an
    invalid number is never stored.
    """
    if raw is None:
        return None, None
    if isinstance(raw, bool):
        return None, 'Please enter a valid number'
    if isinstance(raw, int):
        parsed = raw
    else:
        text = str(raw).strip()
        if text == '':
            return None, None
        try:
            parsed = int(text)
        except ValueError:
            return None, 'Please enter a valid number'

    if parsed <= 0:
        return None, 'Goals must be a positive number'
    if parsed < min_goals or parsed > max_goals:
        return None, f'Goals must be between {min_goals} and {max_goals}'
    return parsed, None
