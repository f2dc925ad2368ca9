from __future__ import annotations

from dataclasses import dataclass

from .exceptions import ApiError, PackingWorkflowError, ShipmentFinalizationError
from .packing_validation import ClientValidationError


@dataclass(frozen=True)
class UserFacingError:
    message: str
    details: str | None = None
    trace_id: str | None = None

    @property
    def technical_details(self) -> str | None:
        if self.details:
            return self.details
        return None


def to_user_facing_error(exc: Exception) -> UserFacingError:
    if isinstance(exc, ApiError):
        primary = exc.message.strip() or "Request failed"
        details = f"{exc.code} (HTTP {exc.status_code})"
        if exc.details:
            details = f"{details}: {exc.details}"
        return UserFacingError(message=primary, details=details, trace_id=exc.trace_id)
    if isinstance(exc, ShipmentFinalizationError):
        details = f"failed at {exc.step}"
        if exc.completed_steps:
            details = f"{details} after {', '.join(exc.completed_steps)}"
        trace_id = exc.cause.trace_id if isinstance(exc.cause, ApiError) else None
        return UserFacingError(message=exc.message, details=details, trace_id=trace_id)
    if isinstance(exc, PackingWorkflowError):
        return UserFacingError(message=exc.message)
    if isinstance(exc, ClientValidationError):
        return UserFacingError(message=exc.reason, details=str(exc))
    return UserFacingError(message=str(exc) or "Unexpected error")
