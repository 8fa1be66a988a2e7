"""
Settlement Coordinator

Applies admin-entered results and fight edits to the store and keeps every
dependent prediction's points consistent. Points are never adjusted in
place: the affected rows are zeroed, the result is written, the rows are
reloaded and scored again from scratch, all inside one transaction.
"""

import logging

from sqlalchemy import case, select, update

from app.models import AdminAction, BonusPrediction, Event, Fight, Prediction
from app.models.event import BONUS_NONE
from app.services import atomic, get_session
from app.services.errors import NotFoundError, ValidationError
from app.services.validation import (
    clean_fight_result,
    optional_bonus_value,
    require_method,
    require_text,
)
from app.utils.cache_utils import invalidate_rankings
from app.utils.scoring import calculate_bonus_score, calculate_prediction_score

logger = logging.getLogger(__name__)

FIGHTER_FIELDS = (
    "fighter1_name",
    "fighter1_record",
    "fighter1_image",
    "fighter2_name",
    "fighter2_record",
    "fighter2_image",
)
RESULT_FIELDS = ("winner_name", "result_method", "result_details")

# Passed for a bonus category the admin did not submit; the stored value is kept
UNCHANGED = object()


def lock_fights(session, fight_ids):
    """Load fights with a row lock so no prediction upsert can interleave"""
    stmt = (
        select(Fight)
        .where(Fight.id.in_(fight_ids))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {fight.id: fight for fight in session.scalars(stmt)}


def lock_event(session, event_id):
    stmt = select(Event).where(Event.id == event_id).with_for_update()
    event = session.scalars(stmt).first()
    if event is None:
        raise NotFoundError(f"Event {event_id} not found")
    return event


def rescore_fight(session, fight):
    """Zero, reload and re-score every prediction on a fight"""
    session.execute(
        update(Prediction)
        .where(Prediction.fight_id == fight.id)
        .values(points_awarded=0)
    )
    session.flush()

    predictions = session.scalars(
        select(Prediction)
        .where(Prediction.fight_id == fight.id)
        .execution_options(populate_existing=True)
    ).all()
    for prediction in predictions:
        prediction.points_awarded = calculate_prediction_score(prediction, fight)
    return len(predictions)


def rescore_event_bonus(session, event):
    """Zero, reload and re-score every bonus prediction of an event"""
    session.execute(
        update(BonusPrediction)
        .where(BonusPrediction.event_id == event.id)
        .values(points_awarded=0)
    )
    session.flush()

    bonus_predictions = session.scalars(
        select(BonusPrediction)
        .where(BonusPrediction.event_id == event.id)
        .execution_options(populate_existing=True)
    ).all()
    for bonus_prediction in bonus_predictions:
        bonus_prediction.points_awarded = calculate_bonus_score(bonus_prediction, event)
    return len(bonus_predictions)


def settle_fight_results(results, admin_user_id=None, session=None):
    """
    Write a batch of fight results and re-score every affected prediction.

    Args:
        results: iterable of dicts with fight_id, winner_name, method, details
        admin_user_id: admin performing the settlement, for the audit log
        session: SQLAlchemy session (defaults to db.session)

    Returns:
        dict with the number of fights settled and predictions re-scored

    The whole batch is one transaction; if any fight fails validation or the
    store raises, no result and no point value in the batch is changed.
    """
    if not results:
        raise ValidationError("No results submitted")

    entries = [clean_fight_result(entry) for entry in results]
    fight_ids = [entry["fight_id"] for entry in entries]
    if len(set(fight_ids)) != len(fight_ids):
        raise ValidationError("Each fight may appear only once per batch")

    session = get_session(session)
    predictions_rescored = 0

    with atomic(session, "settle_fight_results"):
        fights = lock_fights(session, fight_ids)

        missing = [fight_id for fight_id in fight_ids if fight_id not in fights]
        if missing:
            raise NotFoundError(
                f"Fight(s) not found: {', '.join(str(i) for i in missing)}"
            )

        for entry in entries:
            fight = fights[entry["fight_id"]]
            if not fight.has_fighter(entry["winner_name"]):
                raise ValidationError(
                    f"{entry['winner_name']} is not fighting in fight {fight.id}",
                    {"fight_id": fight.id},
                )

        for entry in entries:
            fight = fights[entry["fight_id"]]
            fight.winner_name = entry["winner_name"]
            fight.result_method = entry["method"]
            fight.result_details = entry["details"]
            predictions_rescored += rescore_fight(session, fight)

        event_ids = sorted({fight.event_id for fight in fights.values()})
        AdminAction.log_action(
            admin_user_id,
            "settle_results",
            f"Settled {len(entries)} fight(s)",
            event_id=event_ids[0] if len(event_ids) == 1 else None,
            action_metadata={"results": entries, "event_ids": event_ids},
            session=session,
        )

    logger.info(
        f"Settled {len(entries)} fight(s) {fight_ids}, "
        f"re-scored {predictions_rescored} prediction(s)"
    )
    invalidate_rankings()

    return {
        "fights_settled": len(entries),
        "predictions_rescored": predictions_rescored,
    }


def settle_bonus_results(
    event_id,
    real_fotn_fight_id=UNCHANGED,
    real_potn_fighter_name=UNCHANGED,
    admin_user_id=None,
    session=None,
):
    """
    Write an event's bonus results and re-score its bonus predictions.

    Each value may be None (category still undecided), "none" (decided, no
    award) or the winning fight id / fighter name. A category passed as
    UNCHANGED keeps its stored value.
    """
    if real_fotn_fight_id is UNCHANGED and real_potn_fighter_name is UNCHANGED:
        raise ValidationError("No bonus results submitted")

    session = get_session(session)

    with atomic(session, "settle_bonus_results"):
        event = lock_event(session, event_id)

        if real_fotn_fight_id is UNCHANGED:
            real_fotn_fight_id = event.real_fight_of_night_id
        if real_potn_fighter_name is UNCHANGED:
            real_potn_fighter_name = event.real_performance_of_night_fighter_name
        fotn = optional_bonus_value(real_fotn_fight_id)
        potn = optional_bonus_value(real_potn_fighter_name)

        if fotn not in (None, BONUS_NONE):
            try:
                fotn_fight_id = int(fotn)
            except ValueError:
                raise ValidationError(
                    "Fight of the night must be a fight id or 'none'",
                    {"real_fight_of_night_id": "invalid"},
                )
            fotn_fight = session.get(Fight, fotn_fight_id)
            if fotn_fight is None or fotn_fight.event_id != event.id:
                raise ValidationError(
                    f"Fight {fotn_fight_id} is not part of this event",
                    {"real_fight_of_night_id": "invalid"},
                )
            fotn = str(fotn_fight_id)

        if potn not in (None, BONUS_NONE) and potn not in event.fighter_names():
            raise ValidationError(
                f"{potn} is not fighting at this event",
                {"real_performance_of_night_fighter_name": "invalid"},
            )

        event.real_fight_of_night_id = fotn
        event.real_performance_of_night_fighter_name = potn
        rescored = rescore_event_bonus(session, event)

        AdminAction.log_action(
            admin_user_id,
            "settle_bonus",
            f"Settled bonus results for {event.name}",
            event_id=event.id,
            action_metadata={
                "real_fight_of_night_id": fotn,
                "real_performance_of_night_fighter_name": potn,
            },
            session=session,
        )

    logger.info(
        f"Settled bonus results for event {event_id} "
        f"(fotn={fotn}, potn={potn}), re-scored {rescored} bonus prediction(s)"
    )
    invalidate_rankings()

    return {"bonus_predictions_rescored": rescored}


def _clean_fight_update(fight, data):
    """Validate a fight edit against the fight's current state"""
    if not isinstance(data, dict) or not data:
        raise ValidationError("No fight changes submitted")

    unknown = set(data) - set(FIGHTER_FIELDS) - set(RESULT_FIELDS) - {"display_order"}
    if unknown:
        raise ValidationError(
            f"Unknown fight field(s): {', '.join(sorted(unknown))}",
            {field: "unknown" for field in unknown},
        )

    changes = {}
    for field in FIGHTER_FIELDS:
        if field not in data:
            continue
        if field.endswith("_name"):
            changes[field] = require_text(data, field)
        else:
            value = data[field]
            changes[field] = str(value).strip() if value not in (None, "") else None

    if "display_order" in data:
        try:
            changes["display_order"] = int(data["display_order"])
        except (TypeError, ValueError):
            raise ValidationError(
                "display_order must be an integer", {"display_order": "invalid"}
            )

    new_names = (
        changes.get("fighter1_name", fight.fighter1_name),
        changes.get("fighter2_name", fight.fighter2_name),
    )
    if new_names[0] == new_names[1]:
        raise ValidationError("A fight needs two different fighters")

    if any(field in data for field in RESULT_FIELDS):
        if "winner_name" in data and data["winner_name"] is None:
            # Explicitly clearing the winner puts the fight back to unsettled
            changes.update({field: None for field in RESULT_FIELDS})
        else:
            old_names = (fight.fighter1_name, fight.fighter2_name)
            current_winner = fight.winner_name
            if current_winner in old_names:
                current_winner = new_names[old_names.index(current_winner)]
            merged = {
                "winner_name": data.get("winner_name", current_winner),
                "result_method": data.get("result_method", fight.result_method),
                "result_details": data.get("result_details", fight.result_details),
            }
            winner = require_text(merged, "winner_name", "winner")
            if winner not in new_names:
                raise ValidationError(
                    f"{winner} is not fighting in this fight", {"winner_name": "invalid"}
                )
            changes["winner_name"] = winner
            changes["result_method"] = require_method(merged, "result_method")
            changes["result_details"] = require_text(merged, "result_details", "details")

    return changes


def update_fight(fight_id, data, admin_user_id=None, session=None):
    """
    Edit a fight and keep every name reference consistent.

    Predictions, bonus predictions and the event's bonus result refer to
    fighters by name, so a rename is propagated to all of them before the
    fight's predictions are re-scored against its (possibly also edited)
    result. Propagation is scoped to this fight's predictions and to the
    bonus data of the event the fight belongs to.
    """
    session = get_session(session)

    with atomic(session, "update_fight"):
        fight = session.get(Fight, fight_id)
        if fight is None:
            raise NotFoundError(f"Fight {fight_id} not found")

        # Event before fights, the same order rescore_event takes them in
        event = lock_event(session, fight.event_id)
        fight = lock_fights(session, [fight_id]).get(fight_id)
        if fight is None:
            raise NotFoundError(f"Fight {fight_id} not found")

        changes = _clean_fight_update(fight, data)

        renames = {}
        for slot in ("fighter1_name", "fighter2_name"):
            old_name = getattr(fight, slot)
            new_name = changes.get(slot, old_name)
            if new_name != old_name:
                renames[old_name] = new_name

        # The fight's own result is also keyed by name
        if "winner_name" not in changes and fight.winner_name in renames:
            changes["winner_name"] = renames[fight.winner_name]

        for field, value in changes.items():
            setattr(fight, field, value)

        bonus_rescored = 0

        if renames:
            # One CASE update per table so swapping two names cannot collide
            session.execute(
                update(Prediction)
                .where(
                    Prediction.fight_id == fight.id,
                    Prediction.predicted_winner_name.in_(list(renames)),
                )
                .values(
                    predicted_winner_name=case(
                        renames, value=Prediction.predicted_winner_name
                    )
                )
                .execution_options(synchronize_session=False)
            )
            session.execute(
                update(BonusPrediction)
                .where(
                    BonusPrediction.event_id == event.id,
                    BonusPrediction.performance_of_the_night_fighter_name.in_(
                        list(renames)
                    ),
                )
                .values(
                    performance_of_the_night_fighter_name=case(
                        renames,
                        value=BonusPrediction.performance_of_the_night_fighter_name,
                    )
                )
                .execution_options(synchronize_session=False)
            )
            if event.real_performance_of_night_fighter_name in renames:
                event.real_performance_of_night_fighter_name = renames[
                    event.real_performance_of_night_fighter_name
                ]
            session.flush()
            bonus_rescored = rescore_event_bonus(session, event)

        predictions_rescored = rescore_fight(session, fight)

        AdminAction.log_action(
            admin_user_id,
            "update_fight",
            f"Updated fight {fight.fighter1_name} vs {fight.fighter2_name}",
            event_id=event.id,
            fight_id=fight.id,
            action_metadata={"changes": changes, "renames": renames},
            session=session,
        )

    if renames:
        logger.info(f"Fight {fight_id}: propagated renames {renames}")
    logger.info(
        f"Fight {fight_id} updated, re-scored {predictions_rescored} prediction(s) "
        f"and {bonus_rescored} bonus prediction(s)"
    )
    invalidate_rankings()

    return {
        "fight": fight.to_dict(),
        "renamed": renames,
        "predictions_rescored": predictions_rescored,
        "bonus_predictions_rescored": bonus_rescored,
    }


def rescore_event(event_id, admin_user_id=None, session=None):
    """Recompute every prediction and bonus prediction of an event from current results"""
    session = get_session(session)

    with atomic(session, "rescore_event"):
        event = lock_event(session, event_id)
        fights = lock_fights(session, [fight.id for fight in event.fights])

        predictions_rescored = sum(
            rescore_fight(session, fight) for fight in fights.values()
        )
        bonus_rescored = rescore_event_bonus(session, event)

        AdminAction.log_action(
            admin_user_id,
            "rescore_event",
            f"Re-scored {event.name}",
            event_id=event.id,
            action_metadata={
                "predictions_rescored": predictions_rescored,
                "bonus_predictions_rescored": bonus_rescored,
            },
            session=session,
        )

    logger.info(
        f"Re-scored event {event_id}: {predictions_rescored} prediction(s), "
        f"{bonus_rescored} bonus prediction(s)"
    )
    invalidate_rankings()

    return {
        "predictions_rescored": predictions_rescored,
        "bonus_predictions_rescored": bonus_rescored,
    }
