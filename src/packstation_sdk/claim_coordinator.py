from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .exceptions import (
    ActionNotAllowedError,
    ApiError,
    ClaimConflict,
    ConflictError,
    OrderNotClaimableError,
    RequestCancelledError,
    ViewOnlyModeError,
)
from .models_orders import OrderStatus
from .packing_state import UNCLAIMABLE_STATUSES, ClaimState, resolve_claim_state
from .packing_validation import require_reason
from .session_context import NoticeLevel, PackingContext

logger = logging.getLogger(__name__)


class ClaimOutcome(str, Enum):
    CLAIMED = "CLAIMED"
    ALREADY_OWNED = "ALREADY_OWNED"
    VIEW_ONLY = "VIEW_ONLY"
    SKIPPED = "SKIPPED"
    DISCARDED = "DISCARDED"


@dataclass
class ClaimCoordinator:
    """Decides, on order entry, whether to claim, observe or refuse the order."""

    context: PackingContext

    def claim_state(self) -> ClaimState:
        return resolve_claim_state(self.context.order(), self.context.actor)

    def evaluate(self) -> ClaimOutcome:
        """Run the entry decision. Safe to call on every order refresh:
        at most one claim request is ever sent per session until unclaim
        or an explicit retry."""
        ctx = self.context
        order = ctx.order()
        claim_state = resolve_claim_state(order, ctx.actor)

        if claim_state is ClaimState.VIEW_ONLY:
            if not ctx.state.is_view_only:
                logger.info("Order %s opened in view-only mode (status %s)", ctx.order_id, order.status)
                ctx.state.enter_view_only()
            return ClaimOutcome.VIEW_ONLY

        if claim_state is ClaimState.OWNED_BY_OTHER:
            logger.info("Order %s is claimed by %s; refusing claim", ctx.order_id, order.claimed_by)
            raise ClaimConflict(
                message="Order is already claimed by another packer",
                order_id=ctx.order_id,
                owner_id=order.claimed_by,
            )

        if claim_state is ClaimState.OWNED_BY_ME:
            ctx.state.mark_claimed()
            return ClaimOutcome.ALREADY_OWNED

        if order.normalized_status != OrderStatus.PICKED.value:
            raise OrderNotClaimableError(
                message=f"Order is in {order.status} status and cannot be packed",
                order_id=ctx.order_id,
                status=order.status,
            )

        if not ctx.state.begin_claim():
            logger.debug("Claim for order %s already attempted or in flight; skipping", ctx.order_id)
            return ClaimOutcome.SKIPPED

        logger.info("Claiming order %s for packer %s", ctx.order_id, ctx.actor.user_id)
        try:
            claimed = ctx.orders.claim_for_packing(ctx.order_id, ctx.actor.user_id)
        except RequestCancelledError:
            return ClaimOutcome.DISCARDED
        except ApiError as exc:
            ctx.state.finish_claim(error=exc.message)
            ctx.resync("claim")
            ctx.notify(NoticeLevel.ERROR, exc.message or "Failed to claim order")
            ctx.emit("claim", "claim_failed", "claim", success=False, error_code=exc.code)
            if isinstance(exc, ConflictError):
                raise ClaimConflict(
                    message=exc.message or "Order is already claimed by another packer",
                    order_id=ctx.order_id,
                    owner_id=ctx.order().claimed_by,
                ) from exc
            raise

        ctx.store.apply_authoritative(claimed)
        ctx.state.finish_claim()
        logger.info("Order %s claimed for packing", ctx.order_id)
        ctx.emit("claim", "order_claimed", "claim", success=True)
        return ClaimOutcome.CLAIMED

    def retry(self) -> ClaimOutcome:
        self.context.state.allow_claim_retry()
        self.context.refresh()
        return self.evaluate()

    def unclaim(self, reason: str) -> None:
        ctx = self.context
        if ctx.state.is_view_only:
            raise ViewOnlyModeError(message="Unclaim is not available in view-only mode", action="unclaim")
        order = ctx.order()
        if order.claimed_by != ctx.actor.user_id:
            raise ActionNotAllowedError(message="Order is not assigned to you", action="unclaim")
        if order.normalized_status not in UNCLAIMABLE_STATUSES:
            raise ActionNotAllowedError(
                message=f"Order in {order.status} status cannot be unclaimed",
                action="unclaim",
            )
        cleaned = require_reason(reason, action="unclaiming an order")

        try:
            ctx.orders.unclaim_packing(ctx.order_id, order.claimed_by or ctx.actor.user_id, cleaned)
        except ApiError as exc:
            ctx.resync("unclaim")
            ctx.notify(NoticeLevel.ERROR, exc.message or "Failed to unclaim order")
            ctx.emit("claim", "unclaim_failed", "unclaim", success=False, error_code=exc.code)
            raise

        ctx.state.reset_claim()
        ctx.resync("unclaim")
        logger.info("Order %s unclaimed by %s", ctx.order_id, ctx.actor.user_id)
        ctx.notify(NoticeLevel.SUCCESS, "Order unclaimed and returned to PICKED status!")
        ctx.emit("claim", "order_unclaimed", "unclaim", success=True)
