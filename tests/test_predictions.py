import pytest
from conftest import close_event, make_event, make_fight, make_user

from app import db
from app.models import AdminAction, BonusPrediction, Prediction
from app.services.errors import NotFoundError, PredictionsClosedError, ValidationError
from app.services.predictions import upsert_bonus_prediction, upsert_prediction
from app.services.settlement import settle_bonus_results, settle_fight_results


@pytest.fixture
def setup(ctx):
    event = make_event()
    fight = make_fight(event, "Alice", "Bob")
    user = make_user("ann")
    return {"event": event, "fight": fight, "user": user}


def test_upsert_keeps_one_row_with_latest_values(setup):
    user, fight = setup["user"], setup["fight"]
    upsert_prediction(user.id, fight.id, "Alice", "KO/TKO", "1")
    upsert_prediction(user.id, fight.id, "Bob", "Decision", "Split")

    rows = Prediction.query.filter_by(user_id=user.id, fight_id=fight.id).all()
    assert len(rows) == 1
    assert rows[0].predicted_winner_name == "Bob"
    assert rows[0].predicted_method == "Decision"
    assert rows[0].predicted_details == "Split"


def test_pick_on_settled_fight_is_scored_immediately(setup):
    user, fight = setup["user"], setup["fight"]
    settle_fight_results(
        [{"fight_id": fight.id, "winner_name": "Alice", "method": "KO/TKO", "details": "2"}]
    )

    prediction = upsert_prediction(user.id, fight.id, "Alice", "KO/TKO", "2")
    assert prediction.points_awarded == 45

    prediction = upsert_prediction(user.id, fight.id, "Alice", "Submission", "2")
    assert prediction.points_awarded == 20


def test_pick_on_unsettled_fight_scores_zero(setup):
    prediction = upsert_prediction(setup["user"].id, setup["fight"].id, "Alice", "KO/TKO", "2")
    assert prediction.points_awarded == 0


def test_details_are_normalized_to_text(setup):
    prediction = upsert_prediction(setup["user"].id, setup["fight"].id, "Alice", "KO/TKO", 3)
    assert prediction.predicted_details == "3"


@pytest.mark.parametrize(
    "winner, method, details",
    [
        ("Carla", "KO/TKO", "1"),
        ("Alice", "Flying Knee", "1"),
        ("Alice", "KO/TKO", ""),
        ("", "KO/TKO", "1"),
    ],
)
def test_invalid_picks_rejected(setup, winner, method, details):
    with pytest.raises(ValidationError):
        upsert_prediction(setup["user"].id, setup["fight"].id, winner, method, details)
    assert Prediction.query.count() == 0


def test_unknown_fight(setup):
    with pytest.raises(NotFoundError):
        upsert_prediction(setup["user"].id, 9999, "Alice", "KO/TKO", "1")


def test_deadline_closes_picks(setup):
    close_event(setup["event"])
    with pytest.raises(PredictionsClosedError):
        upsert_prediction(setup["user"].id, setup["fight"].id, "Alice", "KO/TKO", "1")


def test_admin_entry_ignores_deadline_and_is_audited(setup):
    admin = make_user("boss", is_admin=True)
    close_event(setup["event"])

    upsert_prediction(
        setup["user"].id,
        setup["fight"].id,
        "Alice",
        "KO/TKO",
        "1",
        enforce_deadline=False,
        admin_user_id=admin.id,
    )

    assert Prediction.query.count() == 1
    action = AdminAction.query.filter_by(action_type="admin_prediction").one()
    assert action.action_metadata == {"user_id": setup["user"].id}


def test_admin_bonus_entry_ignores_deadline_and_is_audited(setup):
    admin = make_user("boss", is_admin=True)
    close_event(setup["event"])

    upsert_bonus_prediction(
        setup["user"].id,
        setup["event"].id,
        setup["fight"].id,
        "Bob",
        enforce_deadline=False,
        admin_user_id=admin.id,
    )

    assert BonusPrediction.query.count() == 1
    action = AdminAction.query.filter_by(action_type="admin_bonus_prediction").one()
    assert action.admin_user_id == admin.id
    assert action.event_id == setup["event"].id
    assert action.action_metadata == {"user_id": setup["user"].id}


def test_own_bonus_entry_is_not_audited(setup):
    user = setup["user"]
    upsert_bonus_prediction(
        user.id, setup["event"].id, setup["fight"].id, "Alice", admin_user_id=user.id
    )
    assert AdminAction.query.count() == 0


def test_bonus_upsert_and_live_score(setup):
    event, fight, user = setup["event"], setup["fight"], setup["user"]
    settle_bonus_results(event.id, fight.id, "Bob")

    bonus = upsert_bonus_prediction(user.id, event.id, fight.id, "Alice")
    assert bonus.points_awarded == 20

    bonus = upsert_bonus_prediction(user.id, event.id, fight.id, "Bob")
    assert bonus.points_awarded == 40
    assert BonusPrediction.query.count() == 1


def test_bonus_pick_must_be_on_card(setup):
    event, fight, user = setup["event"], setup["fight"], setup["user"]
    other = make_fight(make_event(name="Elsewhere"), "Eve", "Fay")

    with pytest.raises(ValidationError):
        upsert_bonus_prediction(user.id, event.id, other.id, "Alice")
    with pytest.raises(ValidationError):
        upsert_bonus_prediction(user.id, event.id, fight.id, "Eve")


def test_bonus_deadline(setup):
    close_event(setup["event"])
    with pytest.raises(PredictionsClosedError):
        upsert_bonus_prediction(
            setup["user"].id, setup["event"].id, setup["fight"].id, "Alice"
        )
    assert db.session.query(BonusPrediction).count() == 0
