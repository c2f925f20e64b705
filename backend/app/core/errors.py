"""Error taxonomy shared by services, routers and the auth flow.

Every error here is recoverable by the caller retrying or navigating
elsewhere; none of them should take the process down.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse


class CharterError(Exception):
    """Base class for errors rendered as ``{"detail": message}``."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Something went wrong"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(CharterError):
    """Malformed or incomplete input, rejected before touching the store."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Invalid input"


class InvalidTransition(ValidationFailed):
    """An auth flow action that is not allowed from the current step."""

    status_code = status.HTTP_409_CONFLICT
    default_message = "Action not allowed at this step"


class SlotConflict(CharterError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Slot already booked"


class AuthenticationFailed(CharterError):
    # Messages never say which check failed
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid credentials"


class AccessDenied(CharterError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotFound(CharterError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class BackendUnavailable(CharterError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Service temporarily unavailable"


class DeliveryFailed(CharterError):
    """Email could not be delivered. Callers log this and carry on."""

    default_message = "Failed to send email"


async def charter_error_handler(request: Request, exc: CharterError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
