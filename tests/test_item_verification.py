from __future__ import annotations

import pytest

from packing_fakes import api_error, item_payload, order_payload
from packstation_sdk.exceptions import (
    ActionNotAllowedError,
    ClaimConflict,
    NetworkError,
    PackingVerifyExceedsOrderedError,
    ScanMismatch,
    ServerError,
    StaleStateConflict,
)
from packstation_sdk.item_verification import VerifyOutcome, all_verified, first_open_index, ready_to_finalize
from packstation_sdk.models_orders import Order
from packstation_sdk.packing_state import PackingActor, SessionPhase
from packstation_sdk.session_context import STALE_STATE_MESSAGE, NoticeLevel


def _claimed(make_session, packer):
    session = make_session(packer)
    session.open()
    return session


def test_scanning_first_item_twice_completes_it_and_advances(backend, make_session, packer) -> None:
    session = _claimed(make_session, packer)
    assert session.engine.cursor == 0

    first = session.scan("111")
    assert first.outcome is VerifyOutcome.VERIFIED
    assert first.verified_quantity == 1
    assert session.engine.cursor == 0

    second = session.scan("111")
    assert second.item_completed is True
    assert session.order().items[0].verified_quantity == 2
    assert session.engine.cursor == 1
    assert backend.raw("SO-1")["items"][0]["verifiedQuantity"] == 2
    assert [args[2] for name, args in backend.calls if name == "verify"] == [1, 1]


def test_wrong_barcode_raises_mismatch_without_call(backend, make_session, packer) -> None:
    session = _claimed(make_session, packer)

    with pytest.raises(ScanMismatch) as exc_info:
        session.scan("222")

    assert exc_info.value.expected == "111"
    assert exc_info.value.actual == "222"
    assert str(exc_info.value) == "Wrong scan! Expected: 111, scanned: 222"
    assert backend.count("verify") == 0
    assert session.order().items[0].verified_quantity == 0


def test_second_scan_while_first_in_flight_is_ignored(backend, make_session, packer) -> None:
    session = _claimed(make_session, packer)
    nested = []
    backend.before["verify"] = lambda *args: nested.append(session.scan("111"))

    result = session.scan("111")

    assert result.outcome is VerifyOutcome.VERIFIED
    assert [item.outcome for item in nested] == [VerifyOutcome.IGNORED_IN_FLIGHT]
    assert backend.count("verify") == 1
    assert backend.raw("SO-1")["items"][0]["verifiedQuantity"] == 1
    assert session.order().items[0].verified_quantity == 1


def test_scan_of_complete_item_is_a_no_op(backend, make_session, packer) -> None:
    backend.add(
        order_payload(
            items=[
                item_payload("OI-1", "SKU-A", quantity=1, verified=1, barcode="111"),
                item_payload("OI-2", "SKU-B", quantity=1, barcode="222"),
            ]
        )
    )
    session = _claimed(make_session, packer)
    session.select_item("OI-1")

    result = session.scan("111")

    assert result.outcome is VerifyOutcome.ALREADY_COMPLETE
    assert backend.count("verify") == 0
    assert session.order().items[0].verified_quantity == 1


def test_cursor_skips_skipped_items_when_advancing(backend, make_session, packer) -> None:
    backend.add(
        order_payload(
            items=[
                item_payload("OI-1", "SKU-A", quantity=1, barcode="111"),
                item_payload("OI-2", "SKU-B", quantity=1, barcode="222", status="SKIPPED"),
                item_payload("OI-3", "SKU-C", quantity=1),
            ]
        )
    )
    session = _claimed(make_session, packer)

    session.scan("111")

    assert session.engine.cursor == 2
    assert session.engine.current_item().sku == "SKU-C"


def test_completing_last_item_wraps_cursor_to_earlier_open_item(backend, make_session, packer) -> None:
    backend.add(
        order_payload(
            items=[
                item_payload("OI-1", "SKU-A", quantity=1, barcode="111"),
                item_payload("OI-2", "SKU-B", quantity=1, barcode="222"),
            ]
        )
    )
    session = _claimed(make_session, packer)
    session.select_item("OI-2")

    result = session.scan("222")

    assert result.item_completed is True
    assert result.cursor == 0
    assert session.engine.current_item().order_item_id == "OI-1"


def test_cursor_stays_put_once_every_item_is_done(backend, make_session, packer) -> None:
    backend.add(order_payload(items=[item_payload("OI-1", "SKU-A", quantity=1, barcode="111")]))
    session = _claimed(make_session, packer)

    session.scan("111")

    assert session.engine.cursor == 0
    assert session.engine.all_verified


def test_optimistic_count_shows_before_refetch(backend, make_session, packer) -> None:
    session = _claimed(make_session, packer)
    backend.failures["get_order"] = api_error(ServerError, 503, "busy")

    session.scan("111")

    assert session.context.store.authoritative.items[0].verified_quantity == 0
    assert session.order().items[0].verified_quantity == 1

    session.refresh()
    assert session.context.store.pending_overlay() == {}
    assert session.order().items[0].verified_quantity == 1


def test_failed_verify_keeps_count_and_resyncs(backend, make_session, packer) -> None:
    session = _claimed(make_session, packer)
    backend.failures["verify"] = api_error(NetworkError, 0, "connection reset")

    with pytest.raises(NetworkError):
        session.scan("111")

    assert session.phase is SessionPhase.CLAIMED
    assert session.order().items[0].verified_quantity == 0
    assert [name for name, _ in backend.calls][-2:] == ["verify", "get_order"]
    assert session.drain_notices()[-1].message == "connection reset"


def test_server_rejection_surfaces_stale_state_and_adopts_count(backend, make_session, packer) -> None:
    backend.add(
        order_payload(
            items=[
                item_payload("OI-1", "SKU-A", quantity=2, verified=1, barcode="111"),
                item_payload("OI-2", "SKU-B", quantity=1, barcode="222"),
            ]
        )
    )
    session = _claimed(make_session, packer)
    session.drain_notices()
    # Another session verified the last unit behind our back.
    backend.raw("SO-1")["items"][0]["verifiedQuantity"] = 2

    with pytest.raises(StaleStateConflict) as exc_info:
        session.scan("111")

    assert isinstance(exc_info.value.cause, PackingVerifyExceedsOrderedError)
    assert session.order().items[0].verified_quantity == 2
    assert session.engine.cursor == 1
    assert session.phase is SessionPhase.CLAIMED
    notice = session.drain_notices()[-1]
    assert notice.level is NoticeLevel.WARNING
    assert notice.message == STALE_STATE_MESSAGE


def test_scan_requires_claim(backend, make_session) -> None:
    backend.add(order_payload(status="PACKING", packer_id="packer-1"))
    session = make_session(PackingActor(user_id="packer-2"))
    with pytest.raises(ClaimConflict):
        session.open()

    with pytest.raises(ActionNotAllowedError):
        session.scan("111")
    assert backend.count("verify") == 0


def test_cursor_initialization_and_predicates() -> None:
    order = Order.model_validate(
        order_payload(
            items=[
                item_payload("OI-1", "SKU-A", quantity=1, verified=1),
                item_payload("OI-2", "SKU-B", quantity=2, status="SKIPPED"),
                item_payload("OI-3", "SKU-C", quantity=1),
            ]
        )
    )
    assert first_open_index(order) == 2
    assert all_verified(order) is False
    assert ready_to_finalize(order) is False

    done = Order.model_validate(
        order_payload(
            items=[
                item_payload("OI-1", "SKU-A", quantity=1, verified=1),
                item_payload("OI-2", "SKU-B", quantity=2, status="SKIPPED"),
            ]
        )
    )
    assert first_open_index(done) == 0
    assert all_verified(done) is False
    assert ready_to_finalize(done) is True
    assert all_verified(Order.model_validate(order_payload(items=[]))) is False
