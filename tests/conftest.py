from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app import create_app, db
from app.models import Event, Fight, Payment, User
from app.models.payment import PAYMENT_PAID

PASSWORD = "Secret123"


@pytest.fixture
def app():
    app = create_app("testing")
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """Application context for tests that call services directly"""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(username, is_admin=False):
    user = User(
        username=username, email=f"{username}@example.com", is_admin=is_admin
    )
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user


def make_event(name="Fight Night", deadline=None, entry_price="10.00"):
    if deadline is None:
        deadline = datetime.now(timezone.utc) + timedelta(days=7)
    event = Event(
        name=name,
        date=deadline.date() if isinstance(deadline, datetime) else date.today(),
        picks_deadline=deadline,
        entry_price=Decimal(entry_price),
    )
    db.session.add(event)
    db.session.commit()
    return event


def make_fight(event, fighter1, fighter2, display_order=0):
    fight = Fight(
        event_id=event.id,
        fighter1_name=fighter1,
        fighter2_name=fighter2,
        display_order=display_order,
    )
    db.session.add(fight)
    db.session.commit()
    return fight


def mark_paid(user, event):
    payment = Payment(user_id=user.id, event_id=event.id, status=PAYMENT_PAID)
    db.session.add(payment)
    db.session.commit()
    return payment


def close_event(event):
    event.picks_deadline = datetime.now(timezone.utc) - timedelta(hours=1)
    db.session.commit()


def login(client, username):
    return client.post(
        "/api/auth/login",
        json={"email": f"{username}@example.com", "password": PASSWORD},
    )
