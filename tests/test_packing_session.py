from __future__ import annotations

import threading

import pytest

from packing_fakes import item_payload, order_payload
from packstation_sdk.claim_coordinator import ClaimOutcome
from packstation_sdk.clients.orders_client import order_context_key
from packstation_sdk.config import ClientConfig
from packstation_sdk.exceptions import (
    ActionNotAllowedError,
    ClaimConflict,
    ItemNotFoundError,
    OrderNotClaimableError,
    ViewOnlyModeError,
)
from packstation_sdk.packing_session import PackingSession, StationSession, build_progress
from packstation_sdk.packing_state import PackingActor, SessionPhase
from packstation_sdk.packing_validation import ClientValidationError

SUPERVISOR = PackingActor(user_id="sup-1", role="SUPERVISOR")


class RecordingHttp:
    def __init__(self) -> None:
        self.switched: list[str] = []

    def switch_context(self, context_key: str) -> int:
        self.switched.append(context_key)
        return len(self.switched)


def test_open_claims_and_places_cursor(backend, make_session, packer) -> None:
    backend.add(
        order_payload(
            items=[
                item_payload("OI-1", "SKU-A", quantity=1, verified=1, barcode="111"),
                item_payload("OI-2", "SKU-B", quantity=2, barcode="222"),
            ]
        )
    )
    session = make_session(packer)

    assert session.open() is ClaimOutcome.CLAIMED

    assert session.phase is SessionPhase.CLAIMED
    assert session.engine.cursor == 1
    availability = session.availability()
    assert availability.can_scan is True
    assert availability.can_finalize is False
    assert availability.can_unclaim is True


def test_progress_rows_reflect_item_states(backend, make_session, packer) -> None:
    backend.add(
        order_payload(
            items=[
                item_payload("OI-1", "SKU-A", quantity=1, verified=1, barcode="111"),
                item_payload("OI-2", "SKU-B", quantity=1, status="SKIPPED"),
                item_payload("OI-3", "SKU-C", quantity=2),
                item_payload("OI-4", "SKU-D", quantity=1),
            ]
        )
    )
    session = make_session(packer)
    session.open()

    progress = session.progress()

    assert [row.state for row in progress.rows] == ["COMPLETE", "SKIPPED", "CURRENT", "PENDING"]
    assert progress.verified_items == 1
    assert progress.skipped_items == 1
    assert progress.percent == 25
    assert progress.ready_to_finalize is False


def test_empty_order_progress() -> None:
    from packstation_sdk.models_orders import Order

    progress = build_progress(Order.model_validate(order_payload(items=[])), 0)

    assert progress.percent == 0
    assert progress.all_verified is False


def test_second_packer_conflicts_and_supervisor_only_observes(backend, make_session, packer) -> None:
    first = make_session(packer)
    assert first.open() is ClaimOutcome.CLAIMED
    assert backend.raw("SO-1")["status"] == "PACKING"

    second = make_session(PackingActor(user_id="packer-2"))
    with pytest.raises(ClaimConflict):
        second.open()
    assert second.availability().can_retry_claim is True
    assert backend.count("claim") == 1

    supervisor = make_session(PackingActor(user_id="packer-2", role="SUPERVISOR"))
    try:
        assert supervisor.open() is ClaimOutcome.VIEW_ONLY
        assert supervisor.order().claimed_by == "packer-1"
        assert not any(vars(supervisor.availability()).values())
    finally:
        supervisor.close()
    assert backend.raw("SO-1")["packerId"] == "packer-1"


def test_supervisor_watches_owner_progress_and_close_stops_polling(backend, prompt, shipping, rates) -> None:
    backend.add(order_payload(status="PACKING", packer_id="packer-1"))
    fast = ClientConfig(env_name="test", api_base_url="https://api.example.com", view_poll_interval_seconds=0.01)
    seen = threading.Event()

    def on_update(order) -> None:
        if order.items[0].verified_quantity == 1:
            seen.set()

    http = RecordingHttp()
    session = PackingSession(
        "SO-1",
        SUPERVISOR,
        orders=backend,
        shipping=shipping,
        rates=rates,
        prompt=prompt,
        config=fast,
        http=http,
        on_update=on_update,
    )

    assert session.open() is ClaimOutcome.VIEW_ONLY
    assert session.viewer.running is True
    assert not any(vars(session.availability()).values())

    # The owning packer verifies a unit from another station.
    backend.raw("SO-1")["items"][0]["verifiedQuantity"] = 1
    assert seen.wait(5)

    with pytest.raises(ViewOnlyModeError):
        session.scan("111")

    session.close()
    polled = backend.count("get_order")
    threading.Event().wait(0.05)

    assert session.viewer.running is False
    assert session.phase is SessionPhase.CLOSED
    assert backend.count("get_order") == polled
    assert http.switched == [order_context_key("SO-1")]
    assert {name for name, _ in backend.calls} == {"get_order"}


def test_unclaim_returns_order_and_ends_session(backend, prompt, shipping, rates, config, packer) -> None:
    http = RecordingHttp()
    session = PackingSession(
        "SO-1", packer, orders=backend, shipping=shipping, rates=rates, prompt=prompt, config=config, http=http
    )
    session.open()
    session.scan("111")

    session.unclaim("wrong_items", "Box holds SKU-Z")

    raw = backend.raw("SO-1")
    assert raw["status"] == "PICKED"
    assert raw["packerId"] is None
    assert raw["items"][0]["verifiedQuantity"] == 0
    reason = [args for name, args in backend.calls if name == "unclaim"][0][2]
    assert reason == "[Order Problems] Wrong Items\n\nAdditional notes: Box holds SKU-Z"
    assert session.phase is SessionPhase.CLOSED
    assert http.switched == ["order:SO-1"]


def test_unclaim_reason_needing_notes_is_rejected_locally(backend, make_session, packer) -> None:
    session = make_session(packer)
    session.open()

    with pytest.raises(ClientValidationError):
        session.unclaim("damaged_items")

    assert backend.count("unclaim") == 0
    assert session.phase is SessionPhase.CLAIMED


def test_refresh_claims_once_order_is_picked(backend, make_session, packer) -> None:
    backend.add(order_payload(status="PICKING"))
    session = make_session(packer)
    with pytest.raises(OrderNotClaimableError):
        session.open()

    backend.raw("SO-1")["status"] = "PICKED"
    session.refresh()

    assert session.phase is SessionPhase.CLAIMED
    assert backend.count("claim") == 1


def test_select_item_moves_cursor(backend, make_session, packer) -> None:
    session = make_session(packer)
    session.open()

    session.select_item("OI-3")
    assert session.engine.current_item().sku == "SKU-C"
    with pytest.raises(ItemNotFoundError) as exc_info:
        session.select_item("OI-9")
    assert exc_info.value.order_item_id == "OI-9"
    assert session.engine.current_item().sku == "SKU-C"


def test_closed_session_rejects_actions(backend, make_session, packer) -> None:
    session = make_session(packer)
    with session:
        session.open()

    with pytest.raises(ActionNotAllowedError):
        session.scan("111")
    assert backend.count("verify") == 0


def test_station_session_shares_one_http_client(packer) -> None:
    config = ClientConfig(env_name="test", api_base_url="https://api.example.com")
    station = StationSession(config=config, actor=packer, access_token="tok", station_id="PS-3")

    orders = station.orders_client()
    shipping = station.shipping_client()
    rates = station.rates_client()
    session = station.packing_session("SO-1", prompt=None)

    assert orders.http is shipping.http is rates.http is station.http()
    assert session.http is station.http()
    assert orders.station_id == "PS-3"

    session.close()
    assert station.http().get_context_version("order:SO-1") == 1
