from __future__ import annotations

import json

import responses

from packstation_sdk import load_config
from packstation_sdk.clients.shipping_client import CarrierRatesClient, ShippingClient
from packstation_sdk.http_client import HttpClient, TraceContext
from packstation_sdk.models_shipping import (
    Address,
    CarrierShipmentRequest,
    RatePackage,
    RateRequest,
    ShipmentCreateRequest,
)


def _client(base_url: str) -> HttpClient:
    cfg = load_config()
    object.__setattr__(cfg, "api_base_url", base_url)
    return HttpClient(cfg, trace=TraceContext())


def _address() -> Address:
    return Address(
        name="Kiwi Outdoors",
        address_line1="1 Queen St",
        city="Auckland",
        postal_code="1010",
        country="NZ",
    )


@responses.activate
def test_list_carriers(monkeypatch) -> None:
    monkeypatch.setenv("PACKSTATION_API_BASE_URL", "https://api.example.com")
    responses.add(
        responses.GET,
        "https://api.example.com/shipping/carriers",
        json=[
            {"carrierId": "car-nzc", "name": "NZ Couriers", "carrierCode": "NZC", "serviceTypes": ["Overnight"]},
            {"carrierId": "car-ups", "name": "UPS", "carrierCode": "UPS"},
        ],
    )
    client = ShippingClient(http=_client("https://api.example.com"), access_token="token")

    carriers = client.list_carriers()

    assert [carrier.carrier_code for carrier in carriers] == ["NZC", "UPS"]
    assert carriers[0].service_types == ["Overnight"]


@responses.activate
def test_create_shipment_uses_camel_case_and_tracking(monkeypatch) -> None:
    monkeypatch.setenv("PACKSTATION_API_BASE_URL", "https://api.example.com")

    def callback(request):
        payload = json.loads(request.body)
        assert payload["orderId"] == "SO-1"
        assert payload["carrierId"] == "car-ups"
        assert payload["shippingMethod"] == "STANDARD"
        assert payload["shipToAddress"]["addressLine1"] == "1 Queen St"
        assert payload["totalWeight"] == 2.5
        assert payload["totalPackages"] == 1
        assert "Idempotency-Key" in request.headers
        return (201, {}, json.dumps({"shipmentId": "SHP-9", "orderId": "SO-1"}))

    responses.add_callback(responses.POST, "https://api.example.com/shipping/shipments", callback=callback)
    responses.add(responses.POST, "https://api.example.com/shipping/shipments/SHP-9/tracking", json={}, status=200)
    client = ShippingClient(http=_client("https://api.example.com"), access_token="token")

    shipment = client.create_shipment(
        ShipmentCreateRequest(
            order_id="SO-1",
            carrier_id="car-ups",
            service_type="Ground",
            ship_from_address=_address(),
            ship_to_address=_address(),
            total_weight=2.5,
            total_packages=1,
        )
    )
    client.add_tracking(shipment.shipment_id, "1Z999")

    assert shipment.shipment_id == "SHP-9"
    assert json.loads(responses.calls[1].request.body) == {"trackingNumber": "1Z999"}


@responses.activate
def test_rates_consignment_and_label(monkeypatch) -> None:
    monkeypatch.setenv("PACKSTATION_API_BASE_URL", "https://api.example.com")
    responses.add(
        responses.POST,
        "https://api.example.com/nzc/rates",
        json={
            "Quotes": [{"QuoteId": "Q-1", "Carrier": "NZC", "Service": "Overnight", "TotalPrice": 12.5}],
            "Rejected": [],
        },
    )
    responses.add(responses.POST, "https://api.example.com/nzc/shipments", json={"ConsignmentNo": "CN-100"})
    responses.add(
        responses.GET,
        "https://api.example.com/nzc/labels/CN-100?format=LABEL_PNG_100X175",
        json={"connote": "CN-100", "format": "LABEL_PNG_100X175", "contentType": "image/png", "data": "aGk="},
    )
    client = CarrierRatesClient(http=_client("https://api.example.com"), access_token="token")
    package = RatePackage(weight=1.13, units=1)

    rates = client.get_rates(RateRequest(destination=_address(), packages=[package]))
    consignment = client.create_consignment(
        CarrierShipmentRequest(destination=_address(), packages=[package], quote_id=rates.quotes[0].quote_id)
    )
    label = client.get_label(consignment.consignment_no)

    assert rates.quotes[0].service == "Overnight"
    assert json.loads(responses.calls[1].request.body)["quoteId"] == "Q-1"
    assert consignment.consignment_no == "CN-100"
    assert label.content_type == "image/png"
