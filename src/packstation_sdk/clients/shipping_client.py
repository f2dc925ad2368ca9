from __future__ import annotations

from dataclasses import dataclass

from ..idempotency import new_idempotency_keys
from ..models_shipping import (
    Carrier,
    CarrierShipmentRequest,
    CarrierShipmentResponse,
    LabelResponse,
    RateRequest,
    RateResponse,
    Shipment,
    ShipmentCreateRequest,
)
from .base import BaseClient, expect_object

DEFAULT_LABEL_FORMAT = "LABEL_PNG_100X175"


@dataclass
class ShippingClient(BaseClient):
    def list_carriers(self) -> list[Carrier]:
        payload = self._request("GET", "/shipping/carriers", module="shipping", operation="list_carriers")
        if isinstance(payload, dict):
            payload = payload.get("data") or payload.get("carriers") or []
        if not isinstance(payload, list):
            raise ValueError("Expected carriers response to be a JSON array")
        return [Carrier.model_validate(row) for row in payload]

    def create_shipment(self, request: ShipmentCreateRequest) -> Shipment:
        keys = new_idempotency_keys()
        payload = self._request(
            "POST",
            "/shipping/shipments",
            json_body=request.model_dump(mode="json", by_alias=True, exclude_none=True),
            headers=keys.headers(),
            module="shipping",
            operation="create_shipment",
        )
        return Shipment.model_validate(expect_object(payload, "create shipment"))

    def add_tracking(self, shipment_id: str, tracking_number: str) -> None:
        keys = new_idempotency_keys()
        self._request(
            "POST",
            f"/shipping/shipments/{shipment_id}/tracking",
            json_body={"trackingNumber": tracking_number},
            headers=keys.headers(),
            module="shipping",
            operation="add_tracking",
        )


@dataclass
class CarrierRatesClient(BaseClient):
    """Rate quotes, consignments and labels for carriers with automated rating."""

    def get_rates(self, request: RateRequest) -> RateResponse:
        payload = self._request(
            "POST",
            "/nzc/rates",
            json_body=request.model_dump(mode="json", by_alias=True, exclude_none=True),
            module="carrier_rates",
            operation="get_rates",
        )
        return RateResponse.model_validate(expect_object(payload, "rates"))

    def create_consignment(self, request: CarrierShipmentRequest) -> CarrierShipmentResponse:
        keys = new_idempotency_keys()
        payload = self._request(
            "POST",
            "/nzc/shipments",
            json_body=request.model_dump(mode="json", by_alias=True, exclude_none=True),
            headers=keys.headers(),
            module="carrier_rates",
            operation="create_consignment",
        )
        return CarrierShipmentResponse.model_validate(expect_object(payload, "consignment"))

    def get_label(self, connote: str, label_format: str | None = DEFAULT_LABEL_FORMAT) -> LabelResponse:
        params = {"format": label_format} if label_format else None
        payload = self._request(
            "GET",
            f"/nzc/labels/{connote}",
            params=params,
            module="carrier_rates",
            operation="get_label",
            use_get_cache=False,
        )
        return LabelResponse.model_validate(expect_object(payload, "label"))
