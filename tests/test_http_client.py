from __future__ import annotations

import json

import pytest
import requests
import responses

from packstation_sdk.config import ClientConfig
from packstation_sdk.exceptions import NetworkError, RequestCancelledError, ServerError
from packstation_sdk.http_client import TRACE_HEADER, HttpClient, TraceContext


def _cfg() -> ClientConfig:
    return ClientConfig(env_name="test", api_base_url="https://api.example.com", retries=2, retry_backoff_seconds=0)


@responses.activate
def test_http_client_retries_get_on_5xx() -> None:
    responses.add(responses.GET, "https://api.example.com/orders/SO-1", status=503, json={"error": "busy"})
    responses.add(responses.GET, "https://api.example.com/orders/SO-1", status=200, json={"orderId": "SO-1"})
    http = HttpClient(_cfg(), trace=TraceContext())

    payload = http.request("GET", "/orders/SO-1", use_get_cache=False)

    assert payload == {"orderId": "SO-1"}
    assert len(responses.calls) == 2
    assert responses.calls[0].request.headers[TRACE_HEADER]


@responses.activate
def test_http_client_never_retries_mutations() -> None:
    responses.add(
        responses.POST,
        "https://api.example.com/orders/SO-1/verify-packing",
        status=503,
        json={"error": "busy"},
    )
    http = HttpClient(_cfg(), trace=TraceContext())

    with pytest.raises(ServerError):
        http.request("POST", "/orders/SO-1/verify-packing", json_body={"order_item_id": "OI-1", "quantity": 1})

    assert len(responses.calls) == 1
    assert http.last_operation is not None
    assert http.last_operation.result == "error"


def test_http_client_transport_failure_on_mutation_is_single_attempt() -> None:
    http = HttpClient(_cfg(), trace=TraceContext())
    attempts = {"count": 0}

    def _request(**_: object):
        attempts["count"] += 1
        raise requests.ConnectionError("boom")

    http.session.request = _request  # type: ignore[method-assign]

    with pytest.raises(NetworkError) as exc_info:
        http.request("POST", "/orders/SO-1/claim-for-packing", json_body={"packer_id": "p"})

    assert attempts["count"] == 1
    assert exc_info.value.status_code == 0
    assert http.normalize_error(exc_info.value).type == "network"


@responses.activate
def test_get_cache_is_invalidated_by_mutation_on_same_order() -> None:
    responses.add(responses.GET, "https://api.example.com/orders/SO-1", json={"v": 1})
    responses.add(responses.GET, "https://api.example.com/orders/SO-1", json={"v": 2})
    responses.add(responses.POST, "https://api.example.com/orders/SO-1/skip-packing-item", status=204)
    http = HttpClient(_cfg(), trace=TraceContext())

    assert http.request("GET", "/orders/SO-1") == {"v": 1}
    assert http.request("GET", "/orders/SO-1") == {"v": 1}
    assert len(responses.calls) == 1

    result = http.request(
        "POST",
        "/orders/SO-1/skip-packing-item",
        json_body={"order_item_id": "OI-1", "reason": "damaged"},
        invalidate_paths=["/orders/SO-1"],
    )

    assert result is None
    assert http.request("GET", "/orders/SO-1") == {"v": 2}


@responses.activate
def test_response_arriving_after_context_switch_is_discarded() -> None:
    http = HttpClient(_cfg(), trace=TraceContext())

    def callback(request):
        # The operator leaves the order while the request is on the wire.
        http.switch_context("order:SO-1")
        return (200, {}, json.dumps({"orderId": "SO-1"}))

    responses.add_callback(responses.GET, "https://api.example.com/orders/SO-1", callback=callback)

    with pytest.raises(RequestCancelledError):
        http.request("GET", "/orders/SO-1", context_key="order:SO-1", use_get_cache=False)

    assert http._cache == {}


@responses.activate
def test_request_for_stale_context_version_is_not_sent() -> None:
    http = HttpClient(_cfg(), trace=TraceContext())
    version = http.get_context_version("order:SO-1")
    http.switch_context("order:SO-1")

    with pytest.raises(RequestCancelledError):
        http.request(
            "POST",
            "/orders/SO-1/verify-packing",
            json_body={"order_item_id": "OI-1", "quantity": 1},
            context_key="order:SO-1",
            context_version=version,
        )

    assert len(responses.calls) == 0


@responses.activate
def test_error_payload_trace_id_is_kept() -> None:
    responses.add(
        responses.POST,
        "https://api.example.com/orders/SO-1/claim-for-packing",
        status=409,
        json={"error": "Order is already claimed by another packer", "trace_id": "trace-abc"},
    )
    http = HttpClient(_cfg(), trace=TraceContext())

    with pytest.raises(Exception) as exc_info:
        http.request("POST", "/orders/SO-1/claim-for-packing", json_body={"packer_id": "p"})

    assert exc_info.value.trace_id == "trace-abc"
    assert exc_info.value.status_code == 409
