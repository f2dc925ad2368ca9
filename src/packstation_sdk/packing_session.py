from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from shared.telemetry import TelemetryLogger

from .claim_coordinator import ClaimCoordinator, ClaimOutcome
from .clients.orders_client import PackingOrdersClient, order_context_key
from .clients.shipping_client import CarrierRatesClient, ShippingClient
from .config import ClientConfig
from .exceptions import ItemNotFoundError
from .http_client import HttpClient, TraceContext
from .item_verification import ItemVerificationEngine, VerifyResult, all_verified, ready_to_finalize
from .models_orders import Order
from .models_shipping import Carrier, RateQuote
from .order_store import OrderStore
from .packing_state import (
    ClaimState,
    OrderSessionState,
    PackingActionAvailability,
    PackingActor,
    SessionPhase,
    packing_action_availability,
)
from .packing_validation import compose_unclaim_reason
from .session_context import OperatorPrompt, PackingContext, PackingOrdersApi, UserNotice
from .shipment_finalizer import FinalizeOutcome, FinalizeResult, ShipmentFinalizer, ShippingDraft
from .undo_skip import CorrectionOutcome, UndoSkipManager
from .view_mode import ViewModeSynchronizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemProgressRow:
    order_item_id: str
    sku: str
    label: str
    verified_quantity: int
    quantity: int
    state: str


@dataclass(frozen=True)
class PackingProgress:
    verified_items: int
    total_items: int
    skipped_items: int
    all_verified: bool
    ready_to_finalize: bool
    cursor: int
    rows: tuple[ItemProgressRow, ...]

    @property
    def percent(self) -> int:
        if not self.total_items:
            return 0
        return int(self.verified_items * 100 / self.total_items)


def build_progress(order: Order, cursor: int) -> PackingProgress:
    rows = []
    for index, item in enumerate(order.items):
        if item.is_skipped:
            state = "SKIPPED"
        elif item.is_complete:
            state = "COMPLETE"
        elif index == cursor:
            state = "CURRENT"
        else:
            state = "PENDING"
        rows.append(
            ItemProgressRow(
                order_item_id=item.order_item_id,
                sku=item.sku,
                label=item.label,
                verified_quantity=item.verified_quantity,
                quantity=item.quantity,
                state=state,
            )
        )
    return PackingProgress(
        verified_items=sum(1 for item in order.items if item.is_complete),
        total_items=len(order.items),
        skipped_items=sum(1 for item in order.items if item.is_skipped),
        all_verified=all_verified(order),
        ready_to_finalize=ready_to_finalize(order),
        cursor=cursor,
        rows=tuple(rows),
    )


class PackingSession:
    """One operator's session on one order.

    Opening loads the order, places the cursor and runs the claim decision.
    Closing stops polling and tells the HTTP client to discard any response
    still in flight for this order.
    """

    def __init__(
        self,
        order_id: str,
        actor: PackingActor,
        *,
        orders: PackingOrdersApi,
        shipping: ShippingClient,
        rates: CarrierRatesClient,
        prompt: OperatorPrompt,
        config: ClientConfig,
        http: HttpClient | None = None,
        telemetry: TelemetryLogger | None = None,
        on_update: Callable[[Order], None] | None = None,
    ) -> None:
        self.http = http
        self.draft: ShippingDraft | None = None
        self.context = PackingContext(
            order_id=order_id,
            actor=actor,
            orders=orders,
            store=OrderStore(order_id),
            state=OrderSessionState(order_id),
            telemetry=telemetry,
            background_refresh=config.background_refresh,
        )
        if on_update is not None:
            self.context.store.subscribe(on_update)
        self.claims = ClaimCoordinator(self.context)
        self.engine = ItemVerificationEngine(self.context)
        self.corrections = UndoSkipManager(self.context, self.engine, prompt)
        self.finalizer = ShipmentFinalizer(self.context, self.engine, shipping, rates, prompt, config)
        self.viewer = ViewModeSynchronizer(self.context, interval_seconds=config.view_poll_interval_seconds)

    @property
    def order_id(self) -> str:
        return self.context.order_id

    @property
    def phase(self) -> SessionPhase:
        return self.context.state.phase

    def order(self) -> Order:
        return self.context.order()

    def open(self) -> ClaimOutcome:
        ctx = self.context
        order = ctx.orders.get_order(ctx.order_id, fresh=True)
        ctx.store.apply_authoritative(order)
        self.engine.reset_cursor()
        logger.info("Opened order %s for %s (%s)", ctx.order_id, ctx.actor.user_id, ctx.actor.role)
        outcome = self.claims.evaluate()
        if outcome is ClaimOutcome.VIEW_ONLY:
            self.viewer.start()
        return outcome

    def refresh(self) -> Order:
        """Refetch the order and re-run the claim decision. The cursor stays where it is."""
        order = self.context.refresh()
        self._sync_claim()
        return order

    def scan(self, token: str) -> VerifyResult:
        return self.engine.verify(token)

    def report_problem(self, order_item_id: str | None = None, reason: str | None = None) -> CorrectionOutcome:
        return self.corrections.report_problem(order_item_id, reason)

    def revert_skip(self, order_item_id: str) -> CorrectionOutcome:
        return self.corrections.revert_skip(order_item_id)

    def undo(self, order_item_id: str, reason: str | None = None) -> CorrectionOutcome:
        return self.corrections.undo_verification(order_item_id, reason)

    def unclaim(self, reason_id: str, notes: str | None = None) -> None:
        """Release the order back to PICKED and end the session."""
        self.claims.unclaim(compose_unclaim_reason(reason_id, notes))
        self.close()

    def retry_claim(self) -> ClaimOutcome:
        outcome = self.claims.retry()
        if outcome is ClaimOutcome.VIEW_ONLY:
            self.viewer.start()
        return outcome

    def select_item(self, order_item_id: str) -> None:
        index = self.order().index_of(order_item_id)
        if index < 0:
            raise ItemNotFoundError(
                message=f"Item {order_item_id} is not on order {self.order_id}",
                order_item_id=order_item_id,
            )
        self.engine.move_to(index)

    def availability(self) -> PackingActionAvailability:
        order = self.order()
        return packing_action_availability(
            self.claims.claim_state(),
            self.phase,
            order_status=order.normalized_status,
            ready_to_finalize=ready_to_finalize(order),
        )

    def progress(self) -> PackingProgress:
        return build_progress(self.order(), self.engine.cursor)

    def drain_notices(self) -> list[UserNotice]:
        notices = list(self.context.notices)
        self.context.notices.clear()
        return notices

    def new_draft(self, **values) -> ShippingDraft:
        self.draft = ShippingDraft(**values)
        return self.draft

    def list_carriers(self) -> list[Carrier]:
        return self.finalizer.list_carriers()

    def fetch_quotes(self, draft: ShippingDraft | None = None) -> list[RateQuote]:
        return self.finalizer.fetch_quotes(self._draft(draft))

    def finalize(self, draft: ShippingDraft | None = None, *, confirm_skipped: bool = True) -> FinalizeResult:
        result = self.finalizer.finalize(self._draft(draft), confirm_skipped=confirm_skipped)
        if result.outcome is FinalizeOutcome.COMPLETED:
            self.draft = None
            self._sync_claim()
        return result

    def close(self) -> None:
        if self.context.state.is_closed:
            return
        self.viewer.stop(timeout=1.0)
        self.context.state.close()
        if self.http is not None:
            self.http.switch_context(order_context_key(self.order_id))
        self.draft = None
        logger.info("Closed packing session for order %s", self.order_id)

    def __enter__(self) -> PackingSession:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _draft(self, draft: ShippingDraft | None) -> ShippingDraft:
        if draft is not None:
            self.draft = draft
            return draft
        if self.draft is None:
            self.draft = ShippingDraft()
        return self.draft

    def _sync_claim(self) -> None:
        phase = self.phase
        read_only = self.claims.claim_state() is ClaimState.VIEW_ONLY
        if phase is SessionPhase.IDLE or (phase is SessionPhase.CLAIMED and read_only):
            if self.claims.evaluate() is ClaimOutcome.VIEW_ONLY:
                self.viewer.start()


@dataclass
class StationSession:
    """Builds the API clients for one signed-in operator and opens packing sessions."""

    config: ClientConfig
    actor: PackingActor
    access_token: str | None = None
    station_id: str | None = None
    trace: TraceContext | None = None
    telemetry: TelemetryLogger | None = None
    _http: HttpClient | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.trace = self.trace or TraceContext()
        self.telemetry = self.telemetry or TelemetryLogger(app_name="packstation")

    def http(self) -> HttpClient:
        # One client per station so context switches reach every in-flight request.
        if self._http is None:
            self._http = HttpClient(config=self.config, trace=self.trace)
        return self._http

    def orders_client(self) -> PackingOrdersClient:
        return PackingOrdersClient(http=self.http(), access_token=self.access_token, station_id=self.station_id)

    def shipping_client(self) -> ShippingClient:
        return ShippingClient(http=self.http(), access_token=self.access_token, station_id=self.station_id)

    def rates_client(self) -> CarrierRatesClient:
        return CarrierRatesClient(http=self.http(), access_token=self.access_token, station_id=self.station_id)

    def packing_session(
        self,
        order_id: str,
        prompt: OperatorPrompt,
        *,
        on_update: Callable[[Order], None] | None = None,
    ) -> PackingSession:
        return PackingSession(
            order_id,
            self.actor,
            orders=self.orders_client(),
            shipping=self.shipping_client(),
            rates=self.rates_client(),
            prompt=prompt,
            config=self.config,
            http=self.http(),
            telemetry=self.telemetry,
            on_update=on_update,
        )
