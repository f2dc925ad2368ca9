from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ApiError(Exception):
    code: str
    message: str
    details: object | None
    trace_id: str | None
    status_code: int
    raw_payload: object | None = None

    def __str__(self) -> str:
        trace = f" trace_id={self.trace_id}" if self.trace_id else ""
        return f"[{self.status_code}] {self.code}: {self.message}{trace}"


class UnauthorizedError(ApiError):
    pass


class ForbiddenError(ApiError):
    pass


class NotFoundError(ApiError):
    pass


class ValidationError(ApiError):
    pass


class AuthError(UnauthorizedError):
    """Authentication failed or session is invalid."""


class PermissionError(ForbiddenError):
    """Authorization denied by role."""


class ConflictError(ApiError):
    """409 or conflict-style errors."""


class RateLimitError(ApiError):
    """429 throttling error."""


class ServerError(ApiError):
    """5xx server-side failures."""


class NetworkError(ApiError):
    """Network/transport failure before an HTTP response was returned."""


class RequestCancelledError(NetworkError):
    """The response arrived after its order context was closed and was discarded."""


class PackingClaimConflictError(ConflictError):
    pass


class PackingStateError(ConflictError):
    pass


class PackingUndoExceedsVerifiedError(ConflictError):
    pass


class PackingVerifyExceedsOrderedError(ConflictError):
    pass


# Workflow errors are raised by the packing session components, never by the
# HTTP layer. They carry what the operator needs to see.


@dataclass
class PackingWorkflowError(Exception):
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class ScanMismatch(PackingWorkflowError):
    expected: str = ""
    actual: str = ""


@dataclass
class ClaimConflict(PackingWorkflowError):
    order_id: str = ""
    owner_id: str | None = None
    retryable: bool = True


@dataclass
class OrderNotClaimableError(PackingWorkflowError):
    order_id: str = ""
    status: str = ""


@dataclass
class NothingToUndo(PackingWorkflowError):
    order_item_id: str = ""


@dataclass
class StaleStateConflict(PackingWorkflowError):
    cause: ApiError | None = None


@dataclass
class ViewOnlyModeError(PackingWorkflowError):
    action: str = ""


@dataclass
class ActionNotAllowedError(PackingWorkflowError):
    action: str = ""


@dataclass
class ItemNotFoundError(PackingWorkflowError):
    order_item_id: str = ""


@dataclass
class ShipmentFinalizationError(PackingWorkflowError):
    step: str = ""
    cause: Exception | None = None
    completed_steps: list[str] = field(default_factory=list)
