from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .exceptions import (
    ActionNotAllowedError,
    ApiError,
    PackingVerifyExceedsOrderedError,
    PackingWorkflowError,
    RequestCancelledError,
    ScanMismatch,
    StaleStateConflict,
    ViewOnlyModeError,
)
from .models_orders import Order, OrderItem
from .packing_state import SessionPhase
from .packing_validation import expected_scan_token, normalize_scan, scan_matches
from .session_context import STALE_STATE_MESSAGE, NoticeLevel, PackingContext

logger = logging.getLogger(__name__)


class VerifyOutcome(str, Enum):
    VERIFIED = "VERIFIED"
    ALREADY_COMPLETE = "ALREADY_COMPLETE"
    IGNORED_IN_FLIGHT = "IGNORED_IN_FLIGHT"
    DISCARDED = "DISCARDED"


@dataclass(frozen=True)
class VerifyResult:
    outcome: VerifyOutcome
    order_item_id: str | None = None
    verified_quantity: int | None = None
    quantity: int | None = None
    item_completed: bool = False
    cursor: int = 0


def is_open_item(item: OrderItem) -> bool:
    return not item.is_skipped and item.verified_quantity < item.quantity


def first_open_index(order: Order) -> int:
    for index, item in enumerate(order.items):
        if is_open_item(item):
            return index
    return 0


def next_open_index_after(order: Order, cursor: int) -> int | None:
    """The next open item after the cursor, wrapping to the first open one before it."""
    count = len(order.items)
    for step in range(1, count + 1):
        index = (cursor + step) % count
        if is_open_item(order.items[index]):
            return index
    return None


def all_verified(order: Order) -> bool:
    """Strict completion: every item has verified >= quantity. Skipped items still count."""
    total = len(order.items)
    completed = sum(1 for item in order.items if item.verified_quantity >= item.quantity)
    return total > 0 and completed == total


def ready_to_finalize(order: Order) -> bool:
    """Every item is either complete or explicitly skipped."""
    return bool(order.items) and all(item.is_complete or item.is_skipped for item in order.items)


class ItemVerificationEngine:
    """Owns the verification cursor and the one-unit-at-a-time scan loop."""

    def __init__(self, context: PackingContext) -> None:
        self.context = context
        self.cursor = 0

    def reset_cursor(self) -> int:
        self.cursor = first_open_index(self.context.order())
        return self.cursor

    def current_item(self) -> OrderItem | None:
        order = self.context.order()
        if 0 <= self.cursor < len(order.items):
            return order.items[self.cursor]
        return None

    def move_to(self, index: int) -> None:
        order = self.context.order()
        if not 0 <= index < len(order.items):
            raise IndexError(f"Item index {index} is out of range for order {order.order_id}")
        self.cursor = index

    def advance_from_cursor(self) -> int:
        target = next_open_index_after(self.context.order(), self.cursor)
        if target is not None:
            logger.info("Order %s: moving to item %s", self.context.order_id, target)
            self.cursor = target
        return self.cursor

    @property
    def all_verified(self) -> bool:
        return all_verified(self.context.order())

    @property
    def ready_to_finalize(self) -> bool:
        return ready_to_finalize(self.context.order())

    def verify(self, scanned_token: str) -> VerifyResult:
        ctx = self.context
        if ctx.state.is_view_only:
            raise ViewOnlyModeError(message="Scanning is disabled in view-only mode", action="scan")
        item = self.current_item()
        if item is None:
            raise ActionNotAllowedError(message="No current item to verify", action="scan")
        if ctx.state.claim_in_flight:
            raise ActionNotAllowedError(message="Order claim is still in progress", action="scan")
        if ctx.state.phase is SessionPhase.VERIFYING:
            logger.debug("Scan ignored for order %s: verification in progress", ctx.order_id)
            return VerifyResult(outcome=VerifyOutcome.IGNORED_IN_FLIGHT, cursor=self.cursor)
        if item.is_skipped:
            raise ActionNotAllowedError(
                message=f"{item.label} is skipped; revert the skip first",
                action="scan",
            )

        token = normalize_scan(scanned_token)
        if not scan_matches(item, token):
            expected = expected_scan_token(item)
            ctx.emit("scan", "scan_mismatch", "verify", success=False, error_code="SCAN_MISMATCH")
            raise ScanMismatch(
                message=f"Wrong scan! Expected: {expected}, scanned: {token}",
                expected=expected,
                actual=token,
            )

        if item.is_complete:
            ctx.notify(NoticeLevel.SUCCESS, "This item is already fully verified")
            return VerifyResult(
                outcome=VerifyOutcome.ALREADY_COMPLETE,
                order_item_id=item.order_item_id,
                verified_quantity=item.verified_quantity,
                quantity=item.quantity,
                item_completed=True,
                cursor=self.cursor,
            )

        if not ctx.state.begin_verify():
            if ctx.state.phase is SessionPhase.VERIFYING:
                return VerifyResult(outcome=VerifyOutcome.IGNORED_IN_FLIGHT, cursor=self.cursor)
            raise ActionNotAllowedError(message="Order is not claimed for packing", action="scan")

        index = self.cursor
        try:
            ctx.orders.verify_item(ctx.order_id, item.order_item_id, quantity=1)
        except RequestCancelledError:
            return VerifyResult(outcome=VerifyOutcome.DISCARDED, order_item_id=item.order_item_id, cursor=index)
        except PackingVerifyExceedsOrderedError as exc:
            # The server count moved since our last read.
            ctx.state.finish_verify()
            ctx.resync("verify")
            current = self.current_item()
            if self.cursor == index and current is not None and current.is_complete:
                self.advance_from_cursor()
            ctx.notify(NoticeLevel.WARNING, STALE_STATE_MESSAGE)
            ctx.emit("scan", "verify_stale", "verify", success=False, error_code=exc.code)
            raise StaleStateConflict(message=STALE_STATE_MESSAGE, cause=exc) from exc
        except ApiError as exc:
            ctx.state.finish_verify()
            ctx.resync("verify")
            ctx.notify(NoticeLevel.ERROR, exc.message or "Failed to verify item")
            ctx.emit("scan", "verify_failed", "verify", success=False, error_code=exc.code)
            raise
        except PackingWorkflowError:
            ctx.state.finish_verify()
            raise

        # Optimistic step: the server acknowledged exactly one unit.
        new_verified = item.verified_quantity + 1
        ctx.store.apply_optimistic_verified(item.order_item_id, new_verified)
        completed = new_verified >= item.quantity
        logger.info(
            "Order %s item %s verified %s/%s",
            ctx.order_id,
            item.sku,
            new_verified,
            item.quantity,
        )
        if completed and self.cursor == index:
            self.advance_from_cursor()
        ctx.state.finish_verify()
        ctx.notify(NoticeLevel.SUCCESS, "Item verified!")
        ctx.emit("scan", "item_verified", "verify", success=True, context={"sku": item.sku})
        ctx.schedule_refresh("verify")
        return VerifyResult(
            outcome=VerifyOutcome.VERIFIED,
            order_item_id=item.order_item_id,
            verified_quantity=new_verified,
            quantity=item.quantity,
            item_completed=completed,
            cursor=self.cursor,
        )
