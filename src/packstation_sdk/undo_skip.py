from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import (
    ActionNotAllowedError,
    ApiError,
    ItemNotFoundError,
    NothingToUndo,
    PackingUndoExceedsVerifiedError,
    RequestCancelledError,
    StaleStateConflict,
    ViewOnlyModeError,
)
from .item_verification import ItemVerificationEngine
from .models_orders import OrderItem, OrderItemStatus
from .packing_state import SessionPhase
from .packing_validation import require_reason
from .session_context import STALE_STATE_MESSAGE, NoticeLevel, OperatorPrompt, PackingContext

logger = logging.getLogger(__name__)


class CorrectionOutcome(str, Enum):
    APPLIED = "APPLIED"
    CANCELLED = "CANCELLED"
    IGNORED_IN_FLIGHT = "IGNORED_IN_FLIGHT"
    DISCARDED = "DISCARDED"


@dataclass
class UndoSkipManager:
    """Corrective actions on a claimed order: skip, revert skip and undo one verified unit."""

    context: PackingContext
    engine: ItemVerificationEngine
    prompt: OperatorPrompt
    _undo_in_flight: set[str] = field(default_factory=set)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def report_problem(self, order_item_id: str | None = None, reason: str | None = None) -> CorrectionOutcome:
        """Skip an item with a justification. Defaults to the item under the cursor."""
        ctx = self.context
        self._require_claimed("report a problem")
        item = self._resolve_item(order_item_id)
        if reason is None:
            reason = self.prompt.request_text(
                "Report Problem",
                f"Why can't {item.label} be packed? This item will be skipped.",
            )
            if reason is None:
                return CorrectionOutcome.CANCELLED
        cleaned = require_reason(reason, action="skipping an item")

        try:
            ctx.orders.skip_item(ctx.order_id, item.order_item_id, cleaned)
        except RequestCancelledError:
            return CorrectionOutcome.DISCARDED
        except ApiError as exc:
            ctx.resync("skip")
            ctx.notify(NoticeLevel.ERROR, exc.message or "Failed to report problem")
            ctx.emit("problem", "skip_failed", "skip", success=False, error_code=exc.code)
            raise

        logger.info("Order %s item %s skipped", ctx.order_id, item.sku)
        ctx.resync("skip")
        current = self.engine.current_item()
        if current is not None and current.order_item_id == item.order_item_id:
            self.engine.advance_from_cursor()
        ctx.notify(NoticeLevel.WARNING, "Item marked as skipped")
        ctx.emit("problem", "item_skipped", "skip", success=True, context={"sku": item.sku})
        return CorrectionOutcome.APPLIED

    def revert_skip(self, order_item_id: str) -> CorrectionOutcome:
        ctx = self.context
        self._require_claimed("revert a skip")
        item = self._resolve_item(order_item_id)
        if not item.is_skipped:
            raise ActionNotAllowedError(message=f"{item.label} is not skipped", action="revert_skip")
        if not self.prompt.confirm(
            "Revert Skip",
            f"Return {item.label} to the packing list? Reason it was skipped: {item.skip_reason or 'not recorded'}",
        ):
            return CorrectionOutcome.CANCELLED

        try:
            ctx.orders.set_item_status(ctx.order_id, item.order_item_id, OrderItemStatus.PENDING.value)
        except RequestCancelledError:
            return CorrectionOutcome.DISCARDED
        except ApiError as exc:
            ctx.resync("revert_skip")
            ctx.notify(NoticeLevel.ERROR, exc.message or "Failed to revert skip")
            ctx.emit("problem", "revert_skip_failed", "revert_skip", success=False, error_code=exc.code)
            raise

        ctx.resync("revert_skip")
        order = ctx.order()
        index = order.index_of(item.order_item_id)
        reverted = order.item(item.order_item_id)
        if index >= 0 and reverted is not None and not reverted.is_complete:
            self.engine.move_to(index)
        ctx.notify(NoticeLevel.SUCCESS, "Item returned to packing list")
        ctx.emit("problem", "skip_reverted", "revert_skip", success=True, context={"sku": item.sku})
        return CorrectionOutcome.APPLIED

    def undo_verification(self, order_item_id: str, reason: str | None = None) -> CorrectionOutcome:
        """Remove one verified unit from an item.

        The quantity check runs against a freshly fetched order, never the local
        overlay. A second undo for the same item while one is in flight is ignored.
        The verification cursor does not move.
        """
        ctx = self.context
        self._require_claimed("undo a verification")
        with self._lock:
            if order_item_id in self._undo_in_flight:
                logger.debug("Undo for item %s already in flight; ignoring", order_item_id)
                return CorrectionOutcome.IGNORED_IN_FLIGHT
            self._undo_in_flight.add(order_item_id)
        try:
            return self._undo_one(order_item_id, reason)
        finally:
            with self._lock:
                self._undo_in_flight.discard(order_item_id)

    def _undo_one(self, order_item_id: str, reason: str | None) -> CorrectionOutcome:
        ctx = self.context
        if reason is not None:
            reason = require_reason(reason, action="undoing a verification")
        try:
            order = ctx.refresh()
        except RequestCancelledError:
            return CorrectionOutcome.DISCARDED
        item = order.item(order_item_id)
        if item is None:
            raise ItemNotFoundError(message=f"Item {order_item_id} is not part of this order", order_item_id=order_item_id)
        if item.verified_quantity <= 0:
            raise NothingToUndo(message=f"No verified units to undo for {item.label}", order_item_id=order_item_id)

        if reason is None:
            reason = self.prompt.request_text(
                "Undo Verification",
                (
                    f"Undo one verified unit of {item.label}?\n"
                    f"Current: {item.verified_quantity}/{item.quantity} verified\n"
                    f"After undo: {item.verified_quantity - 1}/{item.quantity} verified"
                ),
            )
            if reason is None:
                return CorrectionOutcome.CANCELLED
        cleaned = require_reason(reason, action="undoing a verification")

        try:
            ctx.orders.undo_verification(ctx.order_id, order_item_id, cleaned, quantity=1)
        except RequestCancelledError:
            return CorrectionOutcome.DISCARDED
        except PackingUndoExceedsVerifiedError as exc:
            ctx.resync("undo")
            ctx.notify(NoticeLevel.WARNING, STALE_STATE_MESSAGE)
            ctx.emit("undo", "undo_stale", "undo", success=False, error_code=exc.code)
            raise StaleStateConflict(message=STALE_STATE_MESSAGE, cause=exc) from exc
        except ApiError as exc:
            ctx.resync("undo")
            ctx.notify(NoticeLevel.ERROR, exc.message or "Failed to undo verification")
            ctx.emit("undo", "undo_failed", "undo", success=False, error_code=exc.code)
            raise

        logger.info("Order %s item %s: one verified unit undone", ctx.order_id, item.sku)
        ctx.resync("undo")
        ctx.notify(NoticeLevel.SUCCESS, "Verification undone")
        ctx.emit("undo", "verification_undone", "undo", success=True, context={"sku": item.sku})
        return CorrectionOutcome.APPLIED

    def _require_claimed(self, action: str) -> None:
        state = self.context.state
        if state.is_view_only:
            raise ViewOnlyModeError(message=f"Cannot {action} in view-only mode", action=action)
        if state.phase not in {SessionPhase.CLAIMED, SessionPhase.VERIFYING}:
            raise ActionNotAllowedError(message=f"Claim the order before you {action}", action=action)

    def _resolve_item(self, order_item_id: str | None) -> OrderItem:
        if order_item_id is None:
            item = self.engine.current_item()
            if item is None:
                raise ActionNotAllowedError(message="No current item selected", action="report_problem")
            return item
        item = self.context.order().item(order_item_id)
        if item is None:
            raise ItemNotFoundError(message=f"Item {order_item_id} is not part of this order", order_item_id=order_item_id)
        return item
