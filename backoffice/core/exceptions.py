# backoffice/core/exceptions.py - Error taxonomy shared by services, gateways and the API
from typing import Any, Dict, Optional, Type


class BackOfficeError(Exception):
    """Base class for every error the engine raises on purpose"""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.context:
            payload["context"] = self.context
        return payload


class NotFoundError(BackOfficeError):
    status_code = 404
    code = "not_found"


class ValidationError(BackOfficeError):
    """Malformed input, e.g. negative fee fields"""

    status_code = 422
    code = "validation_error"


class ActiveYearMismatchError(ValidationError):
    """A mutation names a year other than the session-active one"""

    code = "active_year_mismatch"


class InvalidTransitionError(ValidationError):
    code = "invalid_transition"


class NoActiveYearError(BackOfficeError):
    status_code = 409
    code = "no_active_year"


class FeeScheduleMissingError(BackOfficeError):
    status_code = 409
    code = "fee_schedule_missing"


class CapacityExceededError(BackOfficeError):
    status_code = 409
    code = "capacity_exceeded"


class OccupancyUnavailableError(CapacityExceededError):
    """Occupancy could not be loaded; every class is treated as occupied"""

    status_code = 503
    code = "occupancy_unavailable"


class ConflictError(BackOfficeError):
    status_code = 409
    code = "conflict"


class DuplicateEnrollmentError(ConflictError):
    code = "duplicate_enrollment"


class DuplicateFeeScheduleError(ConflictError):
    code = "duplicate_fee_schedule"


class GatewayError(BackOfficeError):
    """The persistence collaborator could not be reached or answered nonsense"""

    status_code = 502
    code = "gateway_error"


def _collect(cls: Type[BackOfficeError]) -> Dict[str, Type[BackOfficeError]]:
    found = {cls.code: cls}
    for sub in cls.__subclasses__():
        found.update(_collect(sub))
    return found


ERRORS_BY_CODE: Dict[str, Type[BackOfficeError]] = _collect(BackOfficeError)


def error_from_payload(status_code: int, payload: Optional[Dict[str, Any]]) -> BackOfficeError:
    """Rebuild a typed error from an API error body"""
    payload = payload or {}
    detail = payload.get("detail") or f"API request failed with status {status_code}"
    if not isinstance(detail, str):
        # FastAPI request validation errors carry a list of issues
        detail = str(detail)
    error_cls = ERRORS_BY_CODE.get(payload.get("code") or "")
    if error_cls is None:
        if status_code == 404:
            error_cls = NotFoundError
        elif status_code == 422:
            error_cls = ValidationError
        elif status_code == 409:
            error_cls = ConflictError
        else:
            error_cls = GatewayError
    return error_cls(detail, **(payload.get("context") or {}))


__all__ = [
    "BackOfficeError",
    "NotFoundError",
    "ValidationError",
    "ActiveYearMismatchError",
    "InvalidTransitionError",
    "NoActiveYearError",
    "FeeScheduleMissingError",
    "CapacityExceededError",
    "OccupancyUnavailableError",
    "ConflictError",
    "DuplicateEnrollmentError",
    "DuplicateFeeScheduleError",
    "GatewayError",
    "ERRORS_BY_CODE",
    "error_from_payload",
]
