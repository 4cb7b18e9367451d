# Overview: Business error taxonomy shared by services and routes.

"""
Every service signals exactly one of these. Routes never inspect messages;
the blueprint error handler maps ``status_code`` straight onto the response.
"""


class RewardsError(Exception):
    """Base class for business-rule failures."""
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or "Request failed"

    def to_dict(self) -> dict:
        return {"error": self.message}


class InvalidInputError(RewardsError):
    """State or business-rule violation."""
    status_code = 400


class UnauthorizedError(RewardsError):
    """Missing or invalid credentials."""
    status_code = 401


class ForbiddenError(RewardsError):
    """Role, ownership or verification gate failed."""
    status_code = 403


class NotFoundError(RewardsError):
    """Referenced entity does not exist."""
    status_code = 404


class ConflictError(RewardsError):
    """Duplicate registration."""
    status_code = 409


class GoneError(RewardsError):
    """Resource window has passed."""
    status_code = 410


class TooManyRequestsError(RewardsError):
    """Rate limit exceeded."""
    status_code = 429
