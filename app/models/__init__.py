from app import db  # noqa: F401 - imported for model imports

from .admin_action import AdminAction
from .bonus_prediction import BonusPrediction
from .event import BONUS_NONE, Event
from .fight import RESULT_METHODS, Fight
from .payment import Payment
from .prediction import Prediction
from .user import User

__all__ = [
    "User",
    "Event",
    "Fight",
    "Prediction",
    "BonusPrediction",
    "Payment",
    "AdminAction",
    "BONUS_NONE",
    "RESULT_METHODS",
]
