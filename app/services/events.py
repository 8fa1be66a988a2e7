"""
Event reads and admin event/fight management.
"""

import logging
from datetime import date as date_type
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy import func, select

from app.models import AdminAction, BonusPrediction, Event, Fight, Prediction
from app.services import atomic, get_session
from app.services.errors import NotFoundError, ValidationError
from app.services.payments import has_paid
from app.services.validation import require_text
from app.utils.timezone_utils import parse_deadline

logger = logging.getLogger(__name__)


def get_event_or_404(event_id, session=None):
    session = get_session(session)
    event = session.get(Event, event_id)
    if event is None:
        raise NotFoundError(f"Event {event_id} not found")
    return event


def list_events(session=None):
    session = get_session(session)
    events = session.scalars(select(Event).order_by(Event.date.desc(), Event.id.desc()))
    return [event.to_dict() for event in events]


def get_event_view(event_id, user_id, session=None):
    """
    Everything a player needs to fill in their card: event metadata, fights
    in card order, their predictions keyed by fight id and their bonus picks.
    """
    session = get_session(session)
    event = get_event_or_404(event_id, session)

    fights = event.get_ordered_fights()

    predictions = session.scalars(
        select(Prediction)
        .join(Fight, Prediction.fight_id == Fight.id)
        .where(Prediction.user_id == user_id, Fight.event_id == event.id)
    ).all()

    bonus_prediction = session.scalars(
        select(BonusPrediction).filter_by(user_id=user_id, event_id=event.id)
    ).first()

    return {
        "event": event.to_dict(),
        "fights": [fight.to_dict() for fight in fights],
        "user_predictions": {p.fight_id: p.to_dict() for p in predictions},
        "bonus_prediction": bonus_prediction.to_dict() if bonus_prediction else None,
        "has_paid": has_paid(user_id, event.id, session=session),
    }


def _clean_event_data(data, partial=False):
    if not isinstance(data, dict):
        raise ValidationError("Event data must be an object")

    cleaned = {}
    if not partial or "name" in data:
        cleaned["name"] = require_text(data, "name")

    if not partial or "date" in data:
        try:
            cleaned["date"] = date_type.fromisoformat(require_text(data, "date"))
        except ValueError:
            raise ValidationError("date must be YYYY-MM-DD", {"date": "invalid"})

    if not partial or "picks_deadline" in data:
        try:
            cleaned["picks_deadline"] = parse_deadline(require_text(data, "picks_deadline"))
        except ValueError:
            raise ValidationError(
                "picks_deadline must be an ISO-8601 timestamp", {"picks_deadline": "invalid"}
            )

    if "entry_price" in data or not partial:
        raw_price = data.get("entry_price")
        if raw_price is None:
            raw_price = current_app.config.get("DEFAULT_ENTRY_PRICE", "0")
        try:
            price = Decimal(str(raw_price))
        except InvalidOperation:
            raise ValidationError("entry_price must be a number", {"entry_price": "invalid"})
        if price < 0:
            raise ValidationError("entry_price cannot be negative", {"entry_price": "invalid"})
        cleaned["entry_price"] = price

    return cleaned


def create_event(data, admin_user_id=None, session=None):
    cleaned = _clean_event_data(data)
    session = get_session(session)

    with atomic(session, "create_event"):
        event = Event(**cleaned)
        session.add(event)
        session.flush()
        AdminAction.log_action(
            admin_user_id,
            "create_event",
            f"Created event {event.name}",
            event_id=event.id,
            session=session,
        )

    logger.info(f"Created event {event.id} ({event.name})")
    return event


def update_event(event_id, data, admin_user_id=None, session=None):
    """Edit event metadata; bonus results go through settle_bonus_results"""
    cleaned = _clean_event_data(data, partial=True)
    if not cleaned:
        raise ValidationError("No event changes submitted")
    session = get_session(session)

    with atomic(session, "update_event"):
        event = get_event_or_404(event_id, session)
        for field, value in cleaned.items():
            setattr(event, field, value)
        AdminAction.log_action(
            admin_user_id,
            "update_event",
            f"Updated event {event.name}",
            event_id=event.id,
            action_metadata={"fields": sorted(cleaned)},
            session=session,
        )

    return event


def add_fight(event_id, data, admin_user_id=None, session=None):
    """Add a fight to an event's card, appended after the existing fights by default"""
    if not isinstance(data, dict):
        raise ValidationError("Fight data must be an object")

    fighter1_name = require_text(data, "fighter1_name")
    fighter2_name = require_text(data, "fighter2_name")
    if fighter1_name == fighter2_name:
        raise ValidationError("A fight needs two different fighters")

    session = get_session(session)

    with atomic(session, "add_fight"):
        event = get_event_or_404(event_id, session)

        display_order = data.get("display_order")
        if display_order is None:
            current_max = session.scalar(
                select(func.max(Fight.display_order)).where(Fight.event_id == event.id)
            )
            display_order = 0 if current_max is None else current_max + 1
        else:
            try:
                display_order = int(display_order)
            except (TypeError, ValueError):
                raise ValidationError(
                    "display_order must be an integer", {"display_order": "invalid"}
                )

        fight = Fight(
            event_id=event.id,
            fighter1_name=fighter1_name,
            fighter1_record=data.get("fighter1_record"),
            fighter1_image=data.get("fighter1_image"),
            fighter2_name=fighter2_name,
            fighter2_record=data.get("fighter2_record"),
            fighter2_image=data.get("fighter2_image"),
            display_order=display_order,
        )
        session.add(fight)
        session.flush()
        AdminAction.log_action(
            admin_user_id,
            "create_fight",
            f"Added {fighter1_name} vs {fighter2_name} to {event.name}",
            event_id=event.id,
            fight_id=fight.id,
            session=session,
        )

    return fight
