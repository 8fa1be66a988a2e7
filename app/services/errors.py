"""
Error taxonomy for Octagon Oracle services.

Every service raises one of these instead of returning (success, message)
tuples, so the HTTP layer can translate them with a single error handler.
"""


class OracleError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        data = {"error": self.message}
        if self.details:
            data["details"] = self.details
        return data


class ValidationError(OracleError):
    """Missing or inconsistent input, rejected before any write"""

    status_code = 400
    default_message = "Invalid request data"


class AuthorizationError(OracleError):
    """Caller may not perform this operation"""

    status_code = 403
    default_message = "Access forbidden"


class PaymentRequiredError(AuthorizationError):
    default_message = "Entry fee has not been paid for this event"


class PredictionsClosedError(AuthorizationError):
    default_message = "The picks deadline for this event has passed"


class NotFoundError(OracleError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(OracleError):
    """Duplicate registration identity"""

    status_code = 409
    default_message = "Username or email already registered"


class SettlementError(OracleError):
    """Store failure inside a transaction; all changes were rolled back"""

    status_code = 500
    default_message = "Could not save changes, nothing was updated. Please try again."
