import logging

from flask import jsonify, request
from flask_login import current_user

from app import login_manager
from app.models import AdminAction
from app.routes.admin import bp
from app.services.errors import AuthorizationError, ValidationError
from app.services.events import add_fight, create_event, update_event
from app.services.settlement import (
    UNCHANGED,
    rescore_event,
    settle_bonus_results,
    settle_fight_results,
    update_fight,
)

logger = logging.getLogger(__name__)


@bp.before_request
def require_admin():
    """Every admin endpoint needs an authenticated admin"""
    if not current_user.is_authenticated:
        return login_manager.unauthorized()
    if not current_user.is_admin:
        logger.warning(f"User {current_user.id} denied access to {request.path}")
        raise AuthorizationError("Admin privileges required")


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError("Request body must be JSON")
    return data


@bp.route("/events", methods=["POST"])
def admin_create_event():
    event = create_event(_json_body(), admin_user_id=current_user.id)
    return jsonify({"event": event.to_dict()}), 201


@bp.route("/events/<int:event_id>", methods=["PATCH"])
def admin_update_event(event_id):
    event = update_event(event_id, _json_body(), admin_user_id=current_user.id)
    return jsonify({"event": event.to_dict()})


@bp.route("/events/<int:event_id>/fights", methods=["POST"])
def admin_add_fight(event_id):
    fight = add_fight(event_id, _json_body(), admin_user_id=current_user.id)
    return jsonify({"fight": fight.to_dict()}), 201


@bp.route("/fights/<int:fight_id>", methods=["PATCH"])
def admin_update_fight(fight_id):
    """Edit fighter details or the result; renamed fighters are propagated"""
    result = update_fight(fight_id, _json_body(), admin_user_id=current_user.id)
    return jsonify(result)


@bp.route("/results", methods=["POST"])
def admin_settle_results():
    """Settle a batch of fight results in one transaction"""
    data = _json_body()
    results = data.get("results") if isinstance(data, dict) else data
    if not isinstance(results, list):
        raise ValidationError("results must be a list")

    summary = settle_fight_results(results, admin_user_id=current_user.id)
    return jsonify(summary)


@bp.route("/events/<int:event_id>/bonus-results", methods=["POST"])
def admin_settle_bonus(event_id):
    data = _json_body()
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    summary = settle_bonus_results(
        event_id,
        data.get("real_fight_of_night_id", UNCHANGED),
        data.get("real_performance_of_night_fighter_name", UNCHANGED),
        admin_user_id=current_user.id,
    )
    return jsonify(summary)


@bp.route("/events/<int:event_id>/rescore", methods=["POST"])
def admin_rescore_event(event_id):
    """Recompute every point of an event from the stored results"""
    return jsonify(rescore_event(event_id, admin_user_id=current_user.id))


@bp.route("/actions")
def admin_actions():
    """Most recent admin actions, optionally filtered by event"""
    limit = min(request.args.get("limit", 50, type=int), 500)
    query = AdminAction.query
    event_id = request.args.get("event_id", type=int)
    if event_id is not None:
        query = query.filter_by(event_id=event_id)

    actions = query.order_by(AdminAction.created_at.desc(), AdminAction.id.desc()).limit(
        limit
    )
    return jsonify({"actions": [action.to_dict() for action in actions]})
