"""
Ranking Aggregator

Leaderboards are always derived from the stored per-row points; nothing
aggregated is persisted. Admin accounts never appear in rankings.
"""

from sqlalchemy import func, select

from app.models import BonusPrediction, Event, Fight, Prediction, User
from app.services import get_session
from app.services.events import get_event_or_404
from app.utils.scoring import (
    fight_of_the_night_correct,
    performance_of_the_night_correct,
    prediction_tier,
)


def _sort_and_rank(rows):
    """Sort by total points (descending), then username; positions start at 1"""
    rows.sort(key=lambda row: (-row["total_points"], row["username"]))
    for position, row in enumerate(rows, start=1):
        row["position"] = position
    return rows


def _point_totals(session, event_id=None):
    """Per-user fight and bonus point sums, optionally limited to one event"""
    fight_points = select(
        Prediction.user_id.label("user_id"),
        func.sum(Prediction.points_awarded).label("points"),
        func.count(Prediction.id).label("picks"),
    )
    bonus_points = select(
        BonusPrediction.user_id.label("user_id"),
        func.sum(BonusPrediction.points_awarded).label("points"),
        func.count(BonusPrediction.id).label("picks"),
    )
    if event_id is not None:
        fight_points = fight_points.join(Fight, Prediction.fight_id == Fight.id).where(
            Fight.event_id == event_id
        )
        bonus_points = bonus_points.where(BonusPrediction.event_id == event_id)

    fight_points = fight_points.group_by(Prediction.user_id).subquery()
    bonus_points = bonus_points.group_by(BonusPrediction.user_id).subquery()

    stmt = (
        select(
            User.id,
            User.username,
            func.coalesce(fight_points.c.points, 0),
            func.coalesce(bonus_points.c.points, 0),
            func.coalesce(fight_points.c.picks, 0) + func.coalesce(bonus_points.c.picks, 0),
        )
        .outerjoin(fight_points, fight_points.c.user_id == User.id)
        .outerjoin(bonus_points, bonus_points.c.user_id == User.id)
        .where(User.is_admin.is_(False))
    )
    return session.execute(stmt).all()


def get_general_ranking(session=None):
    """
    Total points per player across every event ever played.

    Players without predictions are listed with 0 points.
    """
    session = get_session(session)
    rows = [
        {
            "user_id": user_id,
            "username": username,
            "fight_points": int(fight_points),
            "bonus_points": int(bonus_points),
            "total_points": int(fight_points) + int(bonus_points),
        }
        for user_id, username, fight_points, bonus_points, _ in _point_totals(session)
    ]
    return _sort_and_rank(rows)


def get_event_ranking(event_id, session=None):
    """Points for a single event, for players who made at least one pick there"""
    session = get_session(session)
    event = get_event_or_404(event_id, session)
    rows = [
        {
            "user_id": user_id,
            "username": username,
            "fight_points": int(fight_points),
            "bonus_points": int(bonus_points),
            "total_points": int(fight_points) + int(bonus_points),
        }
        for user_id, username, fight_points, bonus_points, picks in _point_totals(
            session, event_id=event.id
        )
        if picks
    ]
    return _sort_and_rank(rows)


def get_accuracy_ranking(session=None):
    """
    Total points plus how many picks reached each scoring tier.

    Tier counts are computed by comparing picks with settled results through
    the scoring engine, not by reverse-engineering stored points.
    """
    session = get_session(session)

    stats = {}
    for user_id, username, fight_points, bonus_points, _ in _point_totals(session):
        stats[user_id] = {
            "user_id": user_id,
            "username": username,
            "total_points": int(fight_points) + int(bonus_points),
            "predictions_made": 0,
            "predictions_settled": 0,
            "correct_winner": 0,
            "correct_winner_method": 0,
            "perfect_picks": 0,
            "correct_fight_of_the_night": 0,
            "correct_performance_of_the_night": 0,
            "accuracy": 0,
        }

    # Each row carries both the pick columns and the result columns
    prediction_rows = session.execute(
        select(
            Prediction.user_id,
            Prediction.predicted_winner_name,
            Prediction.predicted_method,
            Prediction.predicted_details,
            Fight.winner_name,
            Fight.result_method,
            Fight.result_details,
        ).join(Fight, Prediction.fight_id == Fight.id)
    ).all()

    for row in prediction_rows:
        entry = stats.get(row.user_id)
        if entry is None:
            continue
        entry["predictions_made"] += 1
        if row.winner_name is None:
            continue
        entry["predictions_settled"] += 1
        tier = prediction_tier(row, row)
        if tier >= 1:
            entry["correct_winner"] += 1
        if tier >= 2:
            entry["correct_winner_method"] += 1
        if tier >= 3:
            entry["perfect_picks"] += 1

    bonus_rows = session.execute(
        select(
            BonusPrediction.user_id,
            BonusPrediction.fight_of_the_night_fight_id,
            BonusPrediction.performance_of_the_night_fighter_name,
            Event.real_fight_of_night_id,
            Event.real_performance_of_night_fighter_name,
        ).join(Event, BonusPrediction.event_id == Event.id)
    ).all()

    for row in bonus_rows:
        entry = stats.get(row.user_id)
        if entry is None:
            continue
        if fight_of_the_night_correct(row, row):
            entry["correct_fight_of_the_night"] += 1
        if performance_of_the_night_correct(row, row):
            entry["correct_performance_of_the_night"] += 1

    for entry in stats.values():
        if entry["predictions_settled"]:
            entry["accuracy"] = round(
                entry["correct_winner"] / entry["predictions_settled"] * 100, 1
            )

    return _sort_and_rank(list(stats.values()))
