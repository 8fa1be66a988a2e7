"""
Payment gate.

The payment provider is the source of truth: it posts a notification when an
entry fee settles and we store the status. The core only ever reads it.
"""

import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import select

from app.models import Event, Payment, User
from app.models.payment import PAYMENT_STATUSES
from app.services import atomic, get_session
from app.services.errors import NotFoundError, ValidationError
from app.services.validation import require_int, require_text

logger = logging.getLogger(__name__)


def has_paid(user_id, event_id, session=None):
    """True if a paid entry exists for this user and event"""
    session = get_session(session)
    payment = session.scalars(
        select(Payment).filter_by(user_id=user_id, event_id=event_id)
    ).first()
    return payment is not None and payment.is_paid


def record_payment_notification(data, session=None):
    """
    Create or update the Payment row for a provider notification.

    Args:
        data: dict with user_id, event_id, status and optionally
            provider_reference and amount
    """
    if not isinstance(data, dict):
        raise ValidationError("Notification body must be an object")

    user_id = require_int(data, "user_id")
    event_id = require_int(data, "event_id")
    status = require_text(data, "status").lower()
    if status not in PAYMENT_STATUSES:
        raise ValidationError(
            f"status must be one of {', '.join(PAYMENT_STATUSES)}", {"status": "invalid"}
        )

    amount = data.get("amount")
    if amount is not None:
        try:
            amount = Decimal(str(amount))
        except InvalidOperation:
            raise ValidationError("amount must be a number", {"amount": "invalid"})

    session = get_session(session)

    with atomic(session, "record_payment_notification"):
        if session.get(User, user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        if session.get(Event, event_id) is None:
            raise NotFoundError(f"Event {event_id} not found")

        payment = session.scalars(
            select(Payment)
            .filter_by(user_id=user_id, event_id=event_id)
            .with_for_update()
        ).first()
        if payment is None:
            payment = Payment(user_id=user_id, event_id=event_id)
            session.add(payment)

        payment.status = status
        if data.get("provider_reference"):
            payment.provider_reference = str(data["provider_reference"])
        if amount is not None:
            payment.amount = amount

    logger.info(f"Payment for user {user_id}, event {event_id} is now {status}")
    return payment
