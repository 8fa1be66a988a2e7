"""Input normalization shared by prediction and settlement operations"""

from app.models.event import BONUS_NONE
from app.models.fight import RESULT_METHODS
from app.services.errors import ValidationError


def require_text(data, field, label=None):
    """Return a stripped, non-empty string or raise ValidationError"""
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{label or field} is required", {field: "required"})
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ValidationError(f"{label or field} must be text", {field: "invalid"})
    return str(value).strip()


def require_int(data, field, label=None):
    value = data.get(field)
    if value is None or value == "":
        raise ValidationError(f"{label or field} is required", {field: "required"})
    if isinstance(value, bool):
        raise ValidationError(f"{label or field} must be an integer", {field: "invalid"})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label or field} must be an integer", {field: "invalid"})


def require_method(data, field):
    method = require_text(data, field, "method")
    if method not in RESULT_METHODS:
        raise ValidationError(
            f"method must be one of {', '.join(RESULT_METHODS)}", {field: "invalid"}
        )
    return method


def optional_bonus_value(value):
    """
    Normalize an admin bonus-result value

    Returns None (undecided), BONUS_NONE (no award) or the stripped value.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if text.lower() == BONUS_NONE:
        return BONUS_NONE
    return text


def clean_fight_result(entry):
    """Validate one {fight_id, winner_name, method, details} result entry"""
    if not isinstance(entry, dict):
        raise ValidationError("Each result must be an object")
    return {
        "fight_id": require_int(entry, "fight_id"),
        "winner_name": require_text(entry, "winner_name", "winner"),
        "method": require_method(entry, "method"),
        "details": require_text(entry, "details"),
    }
