"""
Scoring Engine for Octagon Oracle

This module handles scoring calculations for individual predictions.
Every function here is pure: it only reads the attributes of the objects
passed in, so it can be re-run on the same inputs any number of times.
That is what lets settlement zero and recompute points safely.

For aggregated totals and leaderboards, see app/services/ranking.py
"""

from app.models.event import BONUS_NONE

WINNER_POINTS = 20
METHOD_POINTS = 15
DETAILS_POINTS = 10

# Points for reaching each tier; tier N requires tiers 1..N-1
TIER_POINTS = (WINNER_POINTS, METHOD_POINTS, DETAILS_POINTS)
PERFECT_PICK_POINTS = sum(TIER_POINTS)

FIGHT_OF_THE_NIGHT_POINTS = 20
PERFORMANCE_OF_THE_NIGHT_POINTS = 20
MAX_BONUS_POINTS = FIGHT_OF_THE_NIGHT_POINTS + PERFORMANCE_OF_THE_NIGHT_POINTS


def prediction_tier(prediction, fight):
    """
    How far down the cascade a prediction got.

    Returns:
        0 wrong winner or fight not settled
        1 winner correct
        2 winner and method correct
        3 winner, method and details correct

    Args:
        prediction: object with predicted_winner_name, predicted_method,
            predicted_details
        fight: object with winner_name, result_method, result_details, or None
    """
    if fight is None or fight.winner_name is None:
        return 0

    if prediction.predicted_winner_name != fight.winner_name:
        return 0

    if prediction.predicted_method != fight.result_method:
        return 1

    # details is opaque (round number or decision type), compare as given
    if prediction.predicted_details != fight.result_details:
        return 2

    return 3


def calculate_prediction_score(prediction, fight):
    """
    Calculate points for a single fight prediction.

    Returns:
        45 perfect pick, 35 winner and method, 20 winner only, 0 otherwise
    """
    return sum(TIER_POINTS[: prediction_tier(prediction, fight)])


def _bonus_value_is_set(value):
    return value is not None and str(value) != BONUS_NONE


def fight_of_the_night_correct(bonus_prediction, event):
    real_value = event.real_fight_of_night_id if event is not None else None
    picked = bonus_prediction.fight_of_the_night_fight_id
    if not _bonus_value_is_set(real_value) or picked is None:
        return False
    return str(picked) == str(real_value)


def performance_of_the_night_correct(bonus_prediction, event):
    real_value = (
        event.real_performance_of_night_fighter_name if event is not None else None
    )
    picked = bonus_prediction.performance_of_the_night_fighter_name
    if not _bonus_value_is_set(real_value) or picked is None:
        return False
    return picked == real_value


def calculate_bonus_score(bonus_prediction, event):
    """
    Calculate bonus points for one user's event bonus picks.

    The two categories are awarded independently. A category whose real
    value is unset (undecided) or BONUS_NONE (no award) scores nothing.
    """
    points = 0
    if fight_of_the_night_correct(bonus_prediction, event):
        points += FIGHT_OF_THE_NIGHT_POINTS
    if performance_of_the_night_correct(bonus_prediction, event):
        points += PERFORMANCE_OF_THE_NIGHT_POINTS
    return points
