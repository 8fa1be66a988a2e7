"""
Prediction upserts.

A user's pick is inserted or replaced on its natural key and then scored
straight away against the current result, so a pick entered after a fight
was settled does not wait for the next settlement batch.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from app.models import AdminAction, BonusPrediction, Event, Fight, Prediction
from app.services import atomic, get_session
from app.services.errors import NotFoundError, PredictionsClosedError, ValidationError
from app.services.validation import require_int, require_method, require_text
from app.utils.cache_utils import invalidate_rankings
from app.utils.scoring import calculate_bonus_score, calculate_prediction_score

logger = logging.getLogger(__name__)


def _upsert(session, model, values, index_elements, update_columns):
    """
    INSERT ... ON CONFLICT (index_elements) DO UPDATE on PostgreSQL and SQLite,
    query-then-update elsewhere. The later write wins.
    """
    dialect = session.get_bind().dialect.name
    now = datetime.now(timezone.utc)

    if dialect in ("postgresql", "sqlite"):
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert

        stmt = insert(model).values(**values, created_at=now, updated_at=now)
        set_ = {column: stmt.excluded[column] for column in update_columns}
        set_["updated_at"] = now
        session.execute(
            stmt.on_conflict_do_update(index_elements=index_elements, set_=set_)
        )
        return

    key = {column: values[column] for column in index_elements}
    existing = session.scalars(select(model).filter_by(**key)).first()
    if existing is None:
        session.add(model(**values))
    else:
        for column in update_columns:
            setattr(existing, column, values[column])
    session.flush()


def _check_deadline(event, enforce_deadline):
    if enforce_deadline and not event.is_open_for_picks():
        raise PredictionsClosedError()


def upsert_prediction(
    user_id,
    fight_id,
    winner_name,
    method,
    details,
    session=None,
    enforce_deadline=True,
    admin_user_id=None,
):
    """
    Insert or replace a user's pick for a fight, then score it.

    Returns:
        The stored Prediction, already scored against the fight's result
    """
    data = {
        "fight_id": fight_id,
        "winner_name": winner_name,
        "method": method,
        "details": details,
    }
    fight_id = require_int(data, "fight_id")
    winner_name = require_text(data, "winner_name", "winner")
    method = require_method(data, "method")
    details = require_text(data, "details")

    session = get_session(session)

    with atomic(session, "upsert_prediction"):
        # Lock the fight so a settlement batch cannot zero and reload around us
        fight = session.scalars(
            select(Fight).where(Fight.id == fight_id).with_for_update()
        ).first()
        if fight is None:
            raise NotFoundError(f"Fight {fight_id} not found")
        if not fight.has_fighter(winner_name):
            raise ValidationError(
                f"{winner_name} is not fighting in this fight", {"winner_name": "invalid"}
            )
        _check_deadline(fight.event, enforce_deadline)

        _upsert(
            session,
            Prediction,
            {
                "user_id": user_id,
                "fight_id": fight_id,
                "predicted_winner_name": winner_name,
                "predicted_method": method,
                "predicted_details": details,
                "points_awarded": 0,
            },
            index_elements=["user_id", "fight_id"],
            update_columns=[
                "predicted_winner_name",
                "predicted_method",
                "predicted_details",
            ],
        )

        prediction = session.scalars(
            select(Prediction)
            .filter_by(user_id=user_id, fight_id=fight_id)
            .execution_options(populate_existing=True)
        ).one()
        prediction.points_awarded = calculate_prediction_score(prediction, fight)

        if admin_user_id is not None and admin_user_id != user_id:
            AdminAction.log_action(
                admin_user_id,
                "admin_prediction",
                f"Entered pick {winner_name} / {method} / {details} for user {user_id}",
                event_id=fight.event_id,
                fight_id=fight.id,
                action_metadata={"user_id": user_id},
                session=session,
            )

    logger.debug(
        f"Prediction saved for user {user_id}, fight {fight_id}: "
        f"{prediction.points_awarded} point(s)"
    )
    invalidate_rankings()
    return prediction


def upsert_bonus_prediction(
    user_id,
    event_id,
    fight_of_the_night_fight_id,
    performance_of_the_night_fighter_name,
    session=None,
    enforce_deadline=True,
    admin_user_id=None,
):
    """
    Insert or replace a user's bonus picks for an event, then score them.

    Returns:
        The stored BonusPrediction, already scored against the event's bonus results
    """
    data = {
        "event_id": event_id,
        "fight_of_the_night_fight_id": fight_of_the_night_fight_id,
        "performance_of_the_night_fighter_name": performance_of_the_night_fighter_name,
    }
    event_id = require_int(data, "event_id")
    fotn_fight_id = require_int(data, "fight_of_the_night_fight_id", "fight of the night")
    potn_name = require_text(
        data, "performance_of_the_night_fighter_name", "performance of the night"
    )

    session = get_session(session)

    with atomic(session, "upsert_bonus_prediction"):
        event = session.scalars(
            select(Event).where(Event.id == event_id).with_for_update()
        ).first()
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")

        fotn_fight = session.get(Fight, fotn_fight_id)
        if fotn_fight is None or fotn_fight.event_id != event.id:
            raise ValidationError(
                f"Fight {fotn_fight_id} is not part of this event",
                {"fight_of_the_night_fight_id": "invalid"},
            )
        if potn_name not in event.fighter_names():
            raise ValidationError(
                f"{potn_name} is not fighting at this event",
                {"performance_of_the_night_fighter_name": "invalid"},
            )
        _check_deadline(event, enforce_deadline)

        _upsert(
            session,
            BonusPrediction,
            {
                "user_id": user_id,
                "event_id": event_id,
                "fight_of_the_night_fight_id": fotn_fight_id,
                "performance_of_the_night_fighter_name": potn_name,
                "points_awarded": 0,
            },
            index_elements=["user_id", "event_id"],
            update_columns=[
                "fight_of_the_night_fight_id",
                "performance_of_the_night_fighter_name",
            ],
        )

        bonus_prediction = session.scalars(
            select(BonusPrediction)
            .filter_by(user_id=user_id, event_id=event_id)
            .execution_options(populate_existing=True)
        ).one()
        bonus_prediction.points_awarded = calculate_bonus_score(bonus_prediction, event)

        if admin_user_id is not None and admin_user_id != user_id:
            AdminAction.log_action(
                admin_user_id,
                "admin_bonus_prediction",
                f"Entered bonus picks fight {fotn_fight_id} / {potn_name} for user {user_id}",
                event_id=event.id,
                action_metadata={"user_id": user_id},
                session=session,
            )

    logger.debug(
        f"Bonus prediction saved for user {user_id}, event {event_id}: "
        f"{bonus_prediction.points_awarded} point(s)"
    )
    invalidate_rankings()
    return bonus_prediction
