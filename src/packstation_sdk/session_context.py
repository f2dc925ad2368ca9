from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from shared.telemetry import TelemetryLogger, build_event

from .exceptions import ApiError, RequestCancelledError
from .models_orders import Order
from .order_store import OrderStore
from .packing_state import OrderSessionState, PackingActor

logger = logging.getLogger(__name__)


class PackingOrdersApi(Protocol):
    def get_order(self, order_id: str, *, fresh: bool = False) -> Order: ...

    def claim_for_packing(self, order_id: str, packer_id: str) -> Order: ...

    def verify_item(self, order_id: str, order_item_id: str, quantity: int = 1) -> None: ...

    def skip_item(self, order_id: str, order_item_id: str, reason: str) -> None: ...

    def undo_verification(self, order_id: str, order_item_id: str, reason: str, quantity: int = 1) -> None: ...

    def unclaim_packing(self, order_id: str, packer_id: str, reason: str) -> None: ...

    def set_item_status(self, order_id: str, order_item_id: str, status: str) -> None: ...

    def complete_packing(self, order_id: str, packer_id: str) -> None: ...


class OperatorPrompt(Protocol):
    """How the workflow asks the operator for a decision or a justification."""

    def confirm(self, title: str, message: str) -> bool: ...

    def request_text(self, title: str, message: str) -> str | None: ...


STALE_STATE_MESSAGE = "State has changed. Please try again."


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class UserNotice:
    level: NoticeLevel
    message: str


@dataclass
class PackingContext:
    order_id: str
    actor: PackingActor
    orders: PackingOrdersApi
    store: OrderStore
    state: OrderSessionState
    telemetry: TelemetryLogger | None = None
    background_refresh: bool = False
    notices: list[UserNotice] = field(default_factory=list)

    def notify(self, level: NoticeLevel, message: str) -> None:
        self.notices.append(UserNotice(level=level, message=message))

    def order(self) -> Order:
        return self.store.snapshot()

    def refresh(self) -> Order:
        started = self.store.begin_refresh()
        fetched = self.orders.get_order(self.order_id, fresh=True)
        self.store.apply_authoritative(fetched, started_at=started)
        return self.store.snapshot()

    def resync(self, reason: str) -> None:
        """Refetch after a failure; a failed refetch is logged, never raised over the original error."""
        try:
            self.refresh()
        except RequestCancelledError:
            logger.debug("Resync of order %s skipped: session closed", self.order_id)
        except ApiError as exc:
            logger.warning("Resync of order %s after %s failed: %s", self.order_id, reason, exc)

    def schedule_refresh(self, reason: str) -> None:
        if not self.background_refresh:
            self.resync(reason)
            return
        worker = threading.Thread(
            target=self.resync,
            args=(reason,),
            name=f"order-refresh-{self.order_id}",
            daemon=True,
        )
        worker.start()

    def emit(
        self,
        category: str,
        name: str,
        action: str,
        *,
        success: bool | None = None,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        if self.telemetry is None:
            return
        event = build_event(
            category=category,
            name=name,
            module="packing",
            action=action,
            success=success,
            error_code=error_code,
            context={"order_id": self.order_id, **(context or {})},
        )
        self.telemetry.emit(event)
