from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterator

from .clients.shipping_client import DEFAULT_LABEL_FORMAT, CarrierRatesClient, ShippingClient
from .config import ClientConfig
from .exceptions import ActionNotAllowedError, ApiError, ShipmentFinalizationError, ViewOnlyModeError
from .item_verification import ItemVerificationEngine
from .models_orders import Order
from .models_shipping import (
    Address,
    Carrier,
    CarrierShipmentRequest,
    LabelResponse,
    RatePackage,
    RateQuote,
    RateRequest,
    ShipmentCreateRequest,
)
from .packing_state import SessionPhase
from .packing_validation import parse_positive_decimal, parse_positive_int, validate_shipping_draft
from .session_context import NoticeLevel, OperatorPrompt, PackingContext

logger = logging.getLogger(__name__)

LBS_TO_KG = Decimal("0.453592")

DEFAULT_SHIP_FROM = Address(
    name="Main Warehouse",
    company="Your Company",
    address_line1="123 Warehouse St",
    city="Wellington",
    state="",
    postal_code="6011",
    country="NZ",
)

_FALLBACK_SHIP_TO = {
    "address_line1": "456 Customer Ave",
    "city": "Auckland",
    "state": "",
    "postal_code": "1010",
    "country": "NZ",
}


def lbs_to_kg(weight_lbs: Decimal) -> float:
    return float((weight_lbs * LBS_TO_KG).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def ship_to_address(order: Order) -> Address:
    name = order.customer_name or "Customer"
    source = order.shipping_address
    if source is None:
        return Address(name=name, **_FALLBACK_SHIP_TO)
    return Address(
        name=source.name or name,
        company=source.company,
        address_line1=source.address_line1,
        address_line2=source.address_line2,
        city=source.city,
        state=source.state,
        postal_code=source.postal_code,
        country=source.country,
    )


@dataclass
class ShippingDraft:
    """Shipping details being edited for one order. Discarded after finalization."""

    carrier_id: str | None = None
    service_type: str = "Ground"
    tracking_number: str = ""
    weight: str = "1.0"
    package_count: str = "1"
    selected_quote: RateQuote | None = None
    quotes: list[RateQuote] = field(default_factory=list)


class FinalizeOutcome(str, Enum):
    COMPLETED = "COMPLETED"
    DECLINED = "DECLINED"


@dataclass(frozen=True)
class FinalizeResult:
    outcome: FinalizeOutcome
    shipment_id: str | None = None
    tracking_number: str | None = None
    consignment_no: str | None = None
    label: LabelResponse | None = None
    skipped_item_ids: tuple[str, ...] = ()


class ShipmentFinalizer:
    def __init__(
        self,
        context: PackingContext,
        engine: ItemVerificationEngine,
        shipping: ShippingClient,
        rates: CarrierRatesClient,
        prompt: OperatorPrompt,
        config: ClientConfig,
        *,
        ship_from: Address = DEFAULT_SHIP_FROM,
    ) -> None:
        self.context = context
        self.engine = engine
        self.shipping = shipping
        self.rates = rates
        self.prompt = prompt
        self.config = config
        self.ship_from = ship_from
        self._carriers: dict[str, Carrier] = {}

    def list_carriers(self, *, refresh: bool = False) -> list[Carrier]:
        if refresh or not self._carriers:
            self._carriers = {carrier.carrier_id: carrier for carrier in self.shipping.list_carriers()}
        return list(self._carriers.values())

    def carrier(self, carrier_id: str | None) -> Carrier | None:
        if not carrier_id:
            return None
        if carrier_id not in self._carriers:
            self.list_carriers(refresh=True)
        return self._carriers.get(carrier_id)

    def requires_quote(self, draft: ShippingDraft) -> bool:
        carrier = self.carrier(draft.carrier_id)
        return carrier is not None and self.config.requires_rate_quote(carrier.carrier_code)

    def cached_carrier(self, carrier_id: str | None) -> Carrier | None:
        return self._carriers.get(carrier_id) if carrier_id else None

    def fetch_quotes(self, draft: ShippingDraft) -> list[RateQuote]:
        """Request rate quotes for a rated carrier and auto-select the first one."""
        draft.quotes = []
        draft.selected_quote = None
        if not self.requires_quote(draft):
            return []
        weight = parse_positive_decimal(draft.weight, "weight", "Please enter a valid weight")
        packages = parse_positive_int(draft.package_count, "package_count", "Please enter a valid number of packages")

        response = self.rates.get_rates(
            RateRequest(
                destination=ship_to_address(self.context.order()),
                packages=[RatePackage(weight=lbs_to_kg(weight), units=packages)],
            )
        )
        if response.quotes:
            draft.quotes = list(response.quotes)
            draft.selected_quote = draft.quotes[0]
            logger.info("Order %s: %s rate quotes, selected %s", self.context.order_id, len(draft.quotes), draft.selected_quote.quote_id)
        elif response.rejected:
            reasons = ", ".join(rejection.reason for rejection in response.rejected)
            self.context.notify(NoticeLevel.ERROR, f"NZC rejected: {reasons}")
        else:
            self.context.notify(NoticeLevel.WARNING, "No shipping rates available")
        return draft.quotes

    def finalize(self, draft: ShippingDraft, *, confirm_skipped: bool = True) -> FinalizeResult:
        ctx = self.context
        if ctx.state.is_view_only:
            raise ViewOnlyModeError(message="Shipping is disabled in view-only mode", action="finalize")
        if ctx.state.phase is not SessionPhase.CLAIMED:
            raise ActionNotAllowedError(message="Claim the order before creating a shipment", action="finalize")
        if not self.engine.ready_to_finalize:
            raise ActionNotAllowedError(
                message="Every item must be verified or skipped before shipping",
                action="finalize",
            )

        # Only the loaded catalogue is consulted here so validation stays offline.
        carrier = self.cached_carrier(draft.carrier_id)
        requires_quote = carrier is not None and self.config.requires_rate_quote(carrier.carrier_code)
        weight, packages = validate_shipping_draft(
            draft,
            requires_quote=requires_quote,
            carrier_known=carrier is not None,
        )

        order = ctx.order()
        skipped = [item for item in order.items if item.is_skipped]
        if skipped and confirm_skipped:
            listing = "\n".join(f"- {item.label}: {item.skip_reason or 'no reason given'}" for item in skipped)
            if not self.prompt.confirm(
                "Complete Shipment With Skipped Items",
                f"{len(skipped)} item(s) were skipped and will not be shipped:\n{listing}\n\nContinue?",
            ):
                logger.info("Order %s: shipment declined because of skipped items", ctx.order_id)
                return FinalizeResult(outcome=FinalizeOutcome.DECLINED)

        packer_id = order.packer_id or ctx.actor.user_id
        ship_to = ship_to_address(order)
        if requires_quote:
            result = self._finalize_rated(draft, order, ship_to, weight, packages, packer_id)
        else:
            result = self._finalize_manual(draft, order, ship_to, weight, packages, packer_id)

        ctx.resync("finalize")
        ctx.notify(NoticeLevel.SUCCESS, "Order packed and shipped successfully!")
        ctx.emit("shipment", "order_shipped", "finalize", success=True, context={"rated": requires_quote})
        return FinalizeResult(
            outcome=FinalizeOutcome.COMPLETED,
            shipment_id=result.shipment_id,
            tracking_number=result.tracking_number,
            consignment_no=result.consignment_no,
            label=result.label,
            skipped_item_ids=tuple(item.order_item_id for item in skipped),
        )

    def _finalize_rated(
        self,
        draft: ShippingDraft,
        order: Order,
        ship_to: Address,
        weight: Decimal,
        packages: int,
        packer_id: str,
    ) -> FinalizeResult:
        quote = draft.selected_quote
        completed: list[str] = []
        with self._step("consignment", completed):
            consignment = self.rates.create_consignment(
                CarrierShipmentRequest(
                    destination=ship_to,
                    packages=[RatePackage(weight=lbs_to_kg(weight), units=packages)],
                    quote_id=quote.quote_id,
                )
            )
        connote = consignment.consignment_no
        self.context.notify(NoticeLevel.SUCCESS, f"NZC Shipment created! Connote: {connote}")
        with self._step("label", completed):
            label = self.rates.get_label(connote, DEFAULT_LABEL_FORMAT)
        with self._step("shipment_record", completed):
            shipment = self.shipping.create_shipment(
                self._shipment_request(draft, order, ship_to, weight, packages, quote.service)
            )
        with self._step("complete_packing", completed):
            self.context.orders.complete_packing(order.order_id, packer_id)
        return FinalizeResult(
            outcome=FinalizeOutcome.COMPLETED,
            shipment_id=shipment.shipment_id,
            tracking_number=connote,
            consignment_no=connote,
            label=label,
        )

    def _finalize_manual(
        self,
        draft: ShippingDraft,
        order: Order,
        ship_to: Address,
        weight: Decimal,
        packages: int,
        packer_id: str,
    ) -> FinalizeResult:
        tracking = draft.tracking_number.strip()
        completed: list[str] = []
        with self._step("shipment_record", completed):
            shipment = self.shipping.create_shipment(
                self._shipment_request(draft, order, ship_to, weight, packages, draft.service_type)
            )
        with self._step("tracking", completed):
            self.shipping.add_tracking(shipment.shipment_id, tracking)
        self.context.notify(NoticeLevel.SUCCESS, f"Shipment created! Tracking: {tracking}")
        with self._step("complete_packing", completed):
            self.context.orders.complete_packing(order.order_id, packer_id)
        return FinalizeResult(
            outcome=FinalizeOutcome.COMPLETED,
            shipment_id=shipment.shipment_id,
            tracking_number=tracking,
        )

    def _shipment_request(
        self,
        draft: ShippingDraft,
        order: Order,
        ship_to: Address,
        weight: Decimal,
        packages: int,
        service_type: str,
    ) -> ShipmentCreateRequest:
        return ShipmentCreateRequest(
            order_id=order.order_id,
            carrier_id=draft.carrier_id,
            service_type=service_type,
            ship_from_address=self.ship_from,
            ship_to_address=ship_to,
            total_weight=float(weight),
            total_packages=packages,
            created_by=self.context.actor.user_id,
        )

    @contextmanager
    def _step(self, name: str, completed: list[str]) -> Iterator[None]:
        ctx = self.context
        try:
            yield
        except ApiError as exc:
            logger.error("Order %s: shipment step %s failed: %s", ctx.order_id, name, exc)
            ctx.resync("finalize")
            ctx.notify(NoticeLevel.ERROR, exc.message or "Failed to create shipment")
            ctx.emit("shipment", "shipment_failed", name, success=False, error_code=exc.code)
            raise ShipmentFinalizationError(
                message=exc.message or "Failed to create shipment",
                step=name,
                cause=exc,
                completed_steps=list(completed),
            ) from exc
        completed.append(name)
