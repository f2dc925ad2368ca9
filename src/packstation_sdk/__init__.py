from .claim_coordinator import ClaimCoordinator, ClaimOutcome
from .clients import CarrierRatesClient, PackingOrdersClient, ShippingClient
from .config import ClientConfig, ConfigError, load_config
from .exceptions import (
    ActionNotAllowedError,
    ApiError,
    ClaimConflict,
    ConflictError,
    ForbiddenError,
    ItemNotFoundError,
    NetworkError,
    NotFoundError,
    NothingToUndo,
    OrderNotClaimableError,
    PackingWorkflowError,
    RequestCancelledError,
    ScanMismatch,
    ShipmentFinalizationError,
    StaleStateConflict,
    UnauthorizedError,
    ValidationError,
    ViewOnlyModeError,
)
from .http_client import HttpClient, TraceContext
from .idempotency import IdempotencyKeys, new_idempotency_keys
from .item_verification import ItemVerificationEngine, VerifyOutcome, VerifyResult
from .models_orders import Order, OrderItem, OrderItemStatus, OrderStatus, UserRole
from .models_shipping import Carrier, RateQuote, Shipment
from .order_store import OrderStore
from .packing_session import PackingProgress, PackingSession, StationSession
from .packing_state import ClaimState, PackingActionAvailability, PackingActor, SessionPhase
from .packing_validation import (
    UNCLAIM_REASONS,
    ClientValidationError,
    UnclaimReason,
    ValidationIssue,
    compose_unclaim_reason,
)
from .session_context import NoticeLevel, OperatorPrompt, UserNotice
from .shipment_finalizer import FinalizeOutcome, FinalizeResult, ShipmentFinalizer, ShippingDraft
from .ui_errors import UserFacingError, to_user_facing_error
from .undo_skip import CorrectionOutcome, UndoSkipManager
from .view_mode import ViewModeSynchronizer

__all__ = [
    "ActionNotAllowedError",
    "ApiError",
    "Carrier",
    "CarrierRatesClient",
    "ClaimConflict",
    "ClaimCoordinator",
    "ClaimOutcome",
    "ClaimState",
    "ClientConfig",
    "ClientValidationError",
    "ConfigError",
    "ConflictError",
    "CorrectionOutcome",
    "FinalizeOutcome",
    "FinalizeResult",
    "ForbiddenError",
    "HttpClient",
    "IdempotencyKeys",
    "ItemNotFoundError",
    "ItemVerificationEngine",
    "NetworkError",
    "NotFoundError",
    "NothingToUndo",
    "NoticeLevel",
    "OperatorPrompt",
    "Order",
    "OrderItem",
    "OrderItemStatus",
    "OrderNotClaimableError",
    "OrderStatus",
    "OrderStore",
    "PackingActionAvailability",
    "PackingActor",
    "PackingOrdersClient",
    "PackingProgress",
    "PackingSession",
    "PackingWorkflowError",
    "RateQuote",
    "RequestCancelledError",
    "ScanMismatch",
    "SessionPhase",
    "Shipment",
    "ShipmentFinalizationError",
    "ShipmentFinalizer",
    "ShippingClient",
    "ShippingDraft",
    "StaleStateConflict",
    "StationSession",
    "TraceContext",
    "UNCLAIM_REASONS",
    "UnauthorizedError",
    "UnclaimReason",
    "UndoSkipManager",
    "UserFacingError",
    "UserNotice",
    "UserRole",
    "ValidationError",
    "ValidationIssue",
    "VerifyOutcome",
    "VerifyResult",
    "ViewModeSynchronizer",
    "ViewOnlyModeError",
    "compose_unclaim_reason",
    "load_config",
    "new_idempotency_keys",
    "to_user_facing_error",
]
