import pytest
from conftest import make_event, make_fight, make_user
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.models import AdminAction, BonusPrediction, Event, Fight, Prediction
from app.models.event import BONUS_NONE
from app.services import settlement
from app.services.errors import NotFoundError, SettlementError, ValidationError
from app.services.predictions import upsert_bonus_prediction, upsert_prediction
from app.services.settlement import (
    rescore_event,
    settle_bonus_results,
    settle_fight_results,
    update_fight,
)


@pytest.fixture
def card(ctx):
    """One event, two fights, three players with picks on the main event"""
    event = make_event()
    main = make_fight(event, "Alice", "Bob", display_order=0)
    co_main = make_fight(event, "Carla", "Dana", display_order=1)
    players = [make_user(name) for name in ("ann", "ben", "cat")]

    upsert_prediction(players[0].id, main.id, "Alice", "KO/TKO", "2")
    upsert_prediction(players[1].id, main.id, "Alice", "Decision", "Unanimous")
    upsert_prediction(players[2].id, main.id, "Bob", "KO/TKO", "2")
    upsert_prediction(players[0].id, co_main.id, "Carla", "Submission", "1")

    return {
        "event_id": event.id,
        "main_id": main.id,
        "co_main_id": co_main.id,
        "user_ids": [player.id for player in players],
    }


def points(user_id, fight_id):
    return db.session.scalars(
        db.select(Prediction.points_awarded).filter_by(user_id=user_id, fight_id=fight_id)
    ).one()


def main_result(**overrides):
    entry = {"fight_id": None, "winner_name": "Alice", "method": "KO/TKO", "details": "2"}
    entry.update(overrides)
    return entry


def test_settle_scores_every_prediction(card):
    ann, ben, cat = card["user_ids"]
    summary = settle_fight_results([main_result(fight_id=card["main_id"])])

    assert summary == {"fights_settled": 1, "predictions_rescored": 3}
    assert points(ann, card["main_id"]) == 45
    assert points(ben, card["main_id"]) == 20
    assert points(cat, card["main_id"]) == 0
    # untouched fight stays unscored
    assert points(ann, card["co_main_id"]) == 0


def test_settling_twice_does_not_double_points(card):
    ann, ben, _ = card["user_ids"]
    batch = [main_result(fight_id=card["main_id"])]
    settle_fight_results(batch)
    settle_fight_results(batch)

    assert points(ann, card["main_id"]) == 45
    assert points(ben, card["main_id"]) == 20


def test_corrected_result_recomputes_from_scratch(card):
    ann, ben, cat = card["user_ids"]
    settle_fight_results([main_result(fight_id=card["main_id"])])
    settle_fight_results(
        [main_result(fight_id=card["main_id"], winner_name="Bob", method="KO/TKO", details="2")]
    )

    assert points(ann, card["main_id"]) == 0
    assert points(ben, card["main_id"]) == 0
    assert points(cat, card["main_id"]) == 45


def test_batch_settles_multiple_fights(card):
    ann = card["user_ids"][0]
    summary = settle_fight_results(
        [
            main_result(fight_id=card["main_id"]),
            {
                "fight_id": card["co_main_id"],
                "winner_name": "Carla",
                "method": "Submission",
                "details": "3",
            },
        ]
    )
    assert summary["fights_settled"] == 2
    assert points(ann, card["main_id"]) + points(ann, card["co_main_id"]) == 45 + 35


def test_unknown_fight_rolls_back_whole_batch(card):
    with pytest.raises(NotFoundError):
        settle_fight_results(
            [main_result(fight_id=card["main_id"]), main_result(fight_id=9999)]
        )

    assert db.session.get(Fight, card["main_id"]).winner_name is None
    assert points(card["user_ids"][0], card["main_id"]) == 0


def test_winner_must_be_in_the_fight(card):
    with pytest.raises(ValidationError):
        settle_fight_results([main_result(fight_id=card["main_id"], winner_name="Carla")])
    assert db.session.get(Fight, card["main_id"]).winner_name is None


def test_invalid_method_rejected(card):
    with pytest.raises(ValidationError):
        settle_fight_results([main_result(fight_id=card["main_id"], method="DQ")])


def test_duplicate_fight_in_batch_rejected(card):
    with pytest.raises(ValidationError):
        settle_fight_results(
            [main_result(fight_id=card["main_id"]), main_result(fight_id=card["main_id"])]
        )


def test_store_failure_mid_batch_leaves_nothing_written(card, monkeypatch):
    real_rescore = settlement.rescore_fight
    calls = []

    def failing_rescore(session, fight):
        calls.append(fight.id)
        if len(calls) == 2:
            raise SQLAlchemyError("connection lost")
        return real_rescore(session, fight)

    monkeypatch.setattr(settlement, "rescore_fight", failing_rescore)

    with pytest.raises(SettlementError):
        settle_fight_results(
            [
                main_result(fight_id=card["main_id"]),
                {
                    "fight_id": card["co_main_id"],
                    "winner_name": "Carla",
                    "method": "Submission",
                    "details": "1",
                },
            ]
        )

    assert db.session.get(Fight, card["main_id"]).winner_name is None
    assert points(card["user_ids"][0], card["main_id"]) == 0


def test_settlement_is_audited(card):
    admin = make_user("boss", is_admin=True)
    settle_fight_results([main_result(fight_id=card["main_id"])], admin_user_id=admin.id)

    action = AdminAction.query.filter_by(action_type="settle_results").one()
    assert action.admin_user_id == admin.id
    assert action.event_id == card["event_id"]


def test_bonus_results_scored_per_category(card):
    ann, ben, cat = card["user_ids"]
    fotn = card["co_main_id"]
    upsert_bonus_prediction(ann, card["event_id"], fotn, "Bob")
    upsert_bonus_prediction(ben, card["event_id"], fotn, "Alice")
    upsert_bonus_prediction(cat, card["event_id"], card["main_id"], "Dana")

    summary = settle_bonus_results(card["event_id"], fotn, "Alice")

    assert summary == {"bonus_predictions_rescored": 3}
    by_user = {
        bp.user_id: bp.points_awarded for bp in BonusPrediction.query.all()
    }
    assert by_user == {ann: 20, ben: 40, cat: 0}


def test_bonus_none_awards_nothing(card):
    ann = card["user_ids"][0]
    upsert_bonus_prediction(ann, card["event_id"], card["main_id"], "Alice")
    settle_bonus_results(card["event_id"], card["main_id"], "Alice")
    settle_bonus_results(card["event_id"], "none", "None")

    event = db.session.get(Event, card["event_id"])
    assert event.real_fight_of_night_id == BONUS_NONE
    assert event.real_performance_of_night_fighter_name == BONUS_NONE
    assert BonusPrediction.query.one().points_awarded == 0


def test_bonus_fight_must_belong_to_event(card):
    other = make_event(name="Other Night")
    stray = make_fight(other, "Eve", "Fay")
    with pytest.raises(ValidationError):
        settle_bonus_results(card["event_id"], stray.id, None)


def test_bonus_performer_must_be_on_card(card):
    with pytest.raises(ValidationError):
        settle_bonus_results(card["event_id"], None, "Nobody")


def test_rename_propagates_to_picks_and_bonus(card):
    ann, ben, cat = card["user_ids"]
    upsert_bonus_prediction(ann, card["event_id"], card["main_id"], "Alice")
    settle_bonus_results(card["event_id"], None, "Alice")

    summary = update_fight(card["main_id"], {"fighter1_name": "Alicia"})

    assert summary["renamed"] == {"Alice": "Alicia"}
    names = {
        p.user_id: p.predicted_winner_name
        for p in Prediction.query.filter_by(fight_id=card["main_id"])
    }
    assert names == {ann: "Alicia", ben: "Alicia", cat: "Bob"}
    assert BonusPrediction.query.one().performance_of_the_night_fighter_name == "Alicia"

    event = db.session.get(Event, card["event_id"])
    assert event.real_performance_of_night_fighter_name == "Alicia"
    # bonus still scores after the rename
    assert BonusPrediction.query.one().points_awarded == 20


def test_rename_keeps_settled_points(card):
    ann = card["user_ids"][0]
    settle_fight_results([main_result(fight_id=card["main_id"])])

    update_fight(card["main_id"], {"fighter1_name": "Alicia"})

    fight = db.session.get(Fight, card["main_id"])
    assert fight.winner_name == "Alicia"
    assert points(ann, card["main_id"]) == 45


def test_swapping_names_does_not_collide(card):
    ann, _, cat = card["user_ids"]
    update_fight(card["main_id"], {"fighter1_name": "Bob", "fighter2_name": "Alice"})

    fight = db.session.get(Fight, card["main_id"])
    assert fight.fighter_names == ("Bob", "Alice")
    assert db.session.scalars(
        db.select(Prediction.predicted_winner_name).filter_by(user_id=ann, fight_id=card["main_id"])
    ).one() == "Bob"
    assert db.session.scalars(
        db.select(Prediction.predicted_winner_name).filter_by(user_id=cat, fight_id=card["main_id"])
    ).one() == "Alice"


def test_rename_does_not_touch_other_fights(card):
    update_fight(card["co_main_id"], {"fighter1_name": "Carol"})
    names = {p.predicted_winner_name for p in Prediction.query.filter_by(fight_id=card["main_id"])}
    assert names == {"Alice", "Bob"}


def test_edit_result_through_update_fight(card):
    ann, ben, _ = card["user_ids"]
    settle_fight_results([main_result(fight_id=card["main_id"])])

    update_fight(card["main_id"], {"result_method": "Decision", "result_details": "Unanimous"})

    assert points(ann, card["main_id"]) == 20
    assert points(ben, card["main_id"]) == 45


def test_clearing_winner_unsettles_fight(card):
    ann = card["user_ids"][0]
    settle_fight_results([main_result(fight_id=card["main_id"])])

    update_fight(card["main_id"], {"winner_name": None})

    fight = db.session.get(Fight, card["main_id"])
    assert not fight.is_settled
    assert fight.result_method is None
    assert points(ann, card["main_id"]) == 0


def test_update_fight_rejects_unknown_fields(card):
    with pytest.raises(ValidationError):
        update_fight(card["main_id"], {"weight_class": "Heavyweight"})


def test_update_fight_rejects_identical_names(card):
    with pytest.raises(ValidationError):
        update_fight(card["main_id"], {"fighter1_name": "Bob"})


def test_rescore_event_repairs_points(card):
    ann = card["user_ids"][0]
    settle_fight_results([main_result(fight_id=card["main_id"])])

    prediction = Prediction.query.filter_by(user_id=ann, fight_id=card["main_id"]).one()
    prediction.points_awarded = 0
    db.session.commit()

    summary = rescore_event(card["event_id"])

    assert summary["predictions_rescored"] == 4
    assert points(ann, card["main_id"]) == 45


def test_rescore_unknown_event(ctx):
    with pytest.raises(NotFoundError):
        rescore_event(424242)


def test_bonus_categories_settle_independently(card):
    ann = card["user_ids"][0]
    upsert_bonus_prediction(ann, card["event_id"], card["main_id"], "Alice")

    settle_bonus_results(card["event_id"], real_fotn_fight_id=card["main_id"])
    assert BonusPrediction.query.one().points_awarded == 20

    settle_bonus_results(card["event_id"], real_potn_fighter_name="Alice")

    event = db.session.get(Event, card["event_id"])
    assert event.real_fight_of_night_id == str(card["main_id"])
    assert event.real_performance_of_night_fighter_name == "Alice"
    assert BonusPrediction.query.one().points_awarded == 40

    # an explicit None still reopens a category
    settle_bonus_results(card["event_id"], real_fotn_fight_id=None)
    event = db.session.get(Event, card["event_id"])
    assert event.real_fight_of_night_id is None
    assert event.real_performance_of_night_fighter_name == "Alice"
    assert BonusPrediction.query.one().points_awarded == 20


def test_bonus_results_need_at_least_one_category(card):
    with pytest.raises(ValidationError):
        settle_bonus_results(card["event_id"])


def test_bonus_store_failure_keeps_previous_results(card, monkeypatch):
    ann = card["user_ids"][0]
    upsert_bonus_prediction(ann, card["event_id"], card["co_main_id"], "Alice")
    settle_bonus_results(card["event_id"], card["co_main_id"], "Alice")

    def failing_rescore(session, event):
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(settlement, "rescore_event_bonus", failing_rescore)

    with pytest.raises(SettlementError):
        settle_bonus_results(card["event_id"], card["main_id"], BONUS_NONE)

    event = db.session.get(Event, card["event_id"])
    assert event.real_fight_of_night_id == str(card["co_main_id"])
    assert event.real_performance_of_night_fighter_name == "Alice"
    assert BonusPrediction.query.one().points_awarded == 40
    assert AdminAction.query.filter_by(action_type="settle_bonus").count() == 1


def test_rename_store_failure_keeps_names_and_points(card, monkeypatch):
    ann, ben, cat = card["user_ids"]
    settle_fight_results([main_result(fight_id=card["main_id"])])
    upsert_bonus_prediction(ann, card["event_id"], card["main_id"], "Alice")
    settle_bonus_results(card["event_id"], None, "Alice")

    def failing_rescore(session, fight):
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(settlement, "rescore_fight", failing_rescore)

    with pytest.raises(SettlementError):
        update_fight(card["main_id"], {"fighter1_name": "Alicia"})

    fight = db.session.get(Fight, card["main_id"])
    assert fight.fighter_names == ("Alice", "Bob")
    assert fight.winner_name == "Alice"
    names = {
        p.user_id: p.predicted_winner_name
        for p in Prediction.query.filter_by(fight_id=card["main_id"])
    }
    assert names == {ann: "Alice", ben: "Alice", cat: "Bob"}
    assert points(ann, card["main_id"]) == 45
    assert points(ben, card["main_id"]) == 20

    bonus = BonusPrediction.query.one()
    assert bonus.performance_of_the_night_fighter_name == "Alice"
    assert bonus.points_awarded == 20
    event = db.session.get(Event, card["event_id"])
    assert event.real_performance_of_night_fighter_name == "Alice"


def test_event_row_is_locked_before_fight_rows(card, monkeypatch):
    order = []
    real_lock_event = settlement.lock_event
    real_lock_fights = settlement.lock_fights

    def tracking_lock_event(session, event_id):
        order.append("event")
        return real_lock_event(session, event_id)

    def tracking_lock_fights(session, fight_ids):
        order.append("fights")
        return real_lock_fights(session, fight_ids)

    monkeypatch.setattr(settlement, "lock_event", tracking_lock_event)
    monkeypatch.setattr(settlement, "lock_fights", tracking_lock_fights)

    update_fight(card["main_id"], {"fighter1_name": "Alicia"})
    assert order == ["event", "fights"]

    order.clear()
    rescore_event(card["event_id"])
    assert order == ["event", "fights"]
