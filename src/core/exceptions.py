"""Custom exception classes and handlers."""

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse


class BusinessLogicError(Exception):
    """Raised for domain-specific validation errors."""

    def __init__(self, detail: str, status_code: int = status.HTTP_422_UNPROCESSABLE_ENTITY):
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


class InvalidInputError(BusinessLogicError):
    """Malformed date, time or duration handed to the scheduling layer."""

    def __init__(self, detail: str):
        super().__init__(detail, status.HTTP_422_UNPROCESSABLE_ENTITY)


class InvalidTransitionError(BusinessLogicError):
    """State-machine violation; the appointment is left unchanged."""

    def __init__(self, current: str, requested: str, detail: str | None = None):
        self.current = current
        self.requested = requested
        super().__init__(
            detail or f"Cannot move appointment from '{current}' to '{requested}'",
            status.HTTP_409_CONFLICT,
        )


class NotFoundError(BusinessLogicError):
    def __init__(self, entity: str, entity_id: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found", status.HTTP_404_NOT_FOUND)


class PermissionDeniedError(BusinessLogicError):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(detail, status.HTTP_403_FORBIDDEN)


class ConcurrencyConflictError(BusinessLogicError):
    """Admission could not be serialized at commit time; re-query and retry once."""

    def __init__(self, detail: str = "Booking conflict detected, please retry"):
        super().__init__(detail, status.HTTP_409_CONFLICT)


class RateLimitExceededError(BusinessLogicError):
    def __init__(self, detail: str = "Too many requests"):
        super().__init__(detail, status.HTTP_429_TOO_MANY_REQUESTS)


class DeliveryError(Exception):
    """A notification channel failed. Absorbed at the fan-out boundary."""

    def __init__(self, channel: str, detail: str):
        self.channel = channel
        self.detail = detail
        super().__init__(f"{channel}: {detail}")


def register_exception_handlers(app: FastAPI) -> None:
    """Attach shared exception handlers to the FastAPI app."""

    @app.exception_handler(BusinessLogicError)
    async def _business_error_handler(_: FastAPI, exc: BusinessLogicError):
        return JSONResponse(
            {"success": False, "message": exc.detail},
            status_code=exc.status_code,
        )
