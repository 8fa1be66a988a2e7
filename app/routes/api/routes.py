import hmac
import logging

from flask import current_app, jsonify, request
from flask_login import current_user, login_required

from app import csrf, db, limiter
from app.models import Fight, User
from app.routes.api import bp
from app.services.errors import (
    AuthorizationError,
    NotFoundError,
    PaymentRequiredError,
    ValidationError,
)
from app.services.events import get_event_or_404, get_event_view, list_events
from app.services.payments import has_paid, record_payment_notification
from app.services.predictions import upsert_bonus_prediction, upsert_prediction
from app.services.ranking import (
    get_accuracy_ranking,
    get_event_ranking,
    get_general_ranking,
)
from app.services.validation import require_int
from app.utils.cache_utils import cached_ranking

logger = logging.getLogger(__name__)


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _resolve_pick_owner(data):
    """
    The user a pick is stored for.

    Admins may enter picks on behalf of another user by passing user_id;
    those picks skip the deadline and payment checks.
    """
    if current_user.is_admin and data.get("user_id") is not None:
        user_id = require_int(data, "user_id")
        if db.session.get(User, user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        return user_id, True
    if data.get("user_id") is not None and str(data["user_id"]) != str(current_user.id):
        raise AuthorizationError("Only admins can enter picks for other users")
    return current_user.id, False


def _require_paid(user_id, event_id):
    if not has_paid(user_id, event_id):
        raise PaymentRequiredError()


@bp.route("/events")
def events():
    """All events, most recent first"""
    return jsonify({"events": list_events()})


@bp.route("/events/<int:event_id>")
@login_required
def event_view(event_id):
    """Event card with the current user's predictions"""
    view = get_event_view(event_id, current_user.id)
    view["user_predictions"] = {
        str(fight_id): prediction
        for fight_id, prediction in view["user_predictions"].items()
    }
    return jsonify(view)


@bp.route("/picks", methods=["POST"])
@login_required
@limiter.limit("120 per minute")
def save_pick():
    """Create or replace a fight prediction"""
    data = _json_body()
    fight_id = require_int(data, "fight_id")
    fight = db.session.get(Fight, fight_id)
    if fight is None:
        raise NotFoundError(f"Fight {fight_id} not found")

    user_id, on_behalf = _resolve_pick_owner(data)
    if not on_behalf and not current_user.is_admin:
        _require_paid(user_id, fight.event_id)

    prediction = upsert_prediction(
        user_id,
        fight_id,
        data.get("winner_name"),
        data.get("method"),
        data.get("details"),
        enforce_deadline=not on_behalf,
        admin_user_id=current_user.id if on_behalf else None,
    )
    return jsonify({"prediction": prediction.to_dict()})


@bp.route("/bonus-picks", methods=["POST"])
@login_required
@limiter.limit("60 per minute")
def save_bonus_pick():
    """Create or replace the fight/performance of the night picks for an event"""
    data = _json_body()
    event = get_event_or_404(require_int(data, "event_id"))

    user_id, on_behalf = _resolve_pick_owner(data)
    if not on_behalf and not current_user.is_admin:
        _require_paid(user_id, event.id)

    bonus_prediction = upsert_bonus_prediction(
        user_id,
        event.id,
        data.get("fight_of_the_night_fight_id"),
        data.get("performance_of_the_night_fighter_name"),
        enforce_deadline=not on_behalf,
        admin_user_id=current_user.id if on_behalf else None,
    )
    return jsonify({"bonus_prediction": bonus_prediction.to_dict()})


@bp.route("/rankings/general")
def general_ranking():
    return jsonify({"ranking": cached_ranking("general", get_general_ranking)})


@bp.route("/rankings/accuracy")
def accuracy_ranking():
    return jsonify({"ranking": cached_ranking("accuracy", get_accuracy_ranking)})


@bp.route("/rankings/events/<int:event_id>")
def event_ranking(event_id):
    return jsonify(
        {
            "event_id": event_id,
            "ranking": cached_ranking("event", get_event_ranking, event_id),
        }
    )


@bp.route("/payments/notify", methods=["POST"])
@csrf.exempt
def payment_notification():
    """Settled-payment feed from the payment provider"""
    secret = current_app.config.get("PAYMENT_WEBHOOK_SECRET")
    provided = request.headers.get("X-Payment-Secret", "")
    if not secret or not hmac.compare_digest(provided.encode(), secret.encode()):
        logger.warning(f"Rejected payment notification from {request.remote_addr}")
        return jsonify({"error": "Invalid payment notification signature"}), 403

    payment = record_payment_notification(_json_body())
    return jsonify({"payment": payment.to_dict()})
