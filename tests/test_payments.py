from decimal import Decimal

import pytest
from conftest import make_event, make_fight, make_user

from app.models import Payment
from app.services.errors import NotFoundError, ValidationError
from app.services.events import get_event_view
from app.services.payments import has_paid, record_payment_notification
from app.services.predictions import upsert_bonus_prediction, upsert_prediction


@pytest.fixture
def entry(ctx):
    return {"user": make_user("ann"), "event": make_event()}


def notify(entry, status, **extra):
    data = {"user_id": entry["user"].id, "event_id": entry["event"].id, "status": status}
    data.update(extra)
    return record_payment_notification(data)


def test_unpaid_by_default(entry):
    assert not has_paid(entry["user"].id, entry["event"].id)


def test_paid_notification_opens_the_gate(entry):
    payment = notify(entry, "paid", provider_reference="pay_123", amount="10.00")

    assert payment.amount == Decimal("10.00")
    assert has_paid(entry["user"].id, entry["event"].id)


def test_later_notification_updates_the_same_row(entry):
    notify(entry, "pending")
    notify(entry, "PAID")
    notify(entry, "refunded")

    assert Payment.query.count() == 1
    assert not has_paid(entry["user"].id, entry["event"].id)


def test_unknown_status_rejected(entry):
    with pytest.raises(ValidationError):
        notify(entry, "chargeback")


def test_bad_amount_rejected(entry):
    with pytest.raises(ValidationError):
        notify(entry, "paid", amount="ten")


def test_unknown_user_rejected(entry):
    with pytest.raises(NotFoundError):
        record_payment_notification(
            {"user_id": 999, "event_id": entry["event"].id, "status": "paid"}
        )


def test_event_view(entry):
    user, event = entry["user"], entry["event"]
    second = make_fight(event, "Carla", "Dana", display_order=1)
    first = make_fight(event, "Alice", "Bob", display_order=0)
    upsert_prediction(user.id, second.id, "Dana", "Decision", "Unanimous")
    upsert_bonus_prediction(user.id, event.id, first.id, "Alice")
    notify(entry, "paid")

    view = get_event_view(event.id, user.id)

    assert view["event"]["name"] == event.name
    assert [f["id"] for f in view["fights"]] == [first.id, second.id]
    assert set(view["user_predictions"]) == {second.id}
    assert view["user_predictions"][second.id]["predicted_winner_name"] == "Dana"
    assert view["bonus_prediction"]["performance_of_the_night_fighter_name"] == "Alice"
    assert view["has_paid"] is True


def test_event_view_without_picks(entry):
    view = get_event_view(entry["event"].id, entry["user"].id)
    assert view["fights"] == []
    assert view["user_predictions"] == {}
    assert view["bonus_prediction"] is None
    assert view["has_paid"] is False


def test_event_view_unknown_event(entry):
    with pytest.raises(NotFoundError):
        get_event_view(4040, entry["user"].id)
