from __future__ import annotations

from dataclasses import dataclass

from ..error_mapper import refine_packing_error
from ..exceptions import ApiError
from ..idempotency import new_idempotency_keys
from ..models_orders import (
    ClaimPackingRequest,
    CompletePackingRequest,
    ItemStatusUpdateRequest,
    Order,
    SkipPackingItemRequest,
    UnclaimPackingRequest,
    UndoPackingVerificationRequest,
    VerifyPackingRequest,
)
from .base import BaseClient, expect_object

MODULE = "packing"


def order_context_key(order_id: str) -> str:
    return f"order:{order_id}"


@dataclass
class PackingOrdersClient(BaseClient):
    """Order API calls used while packing. Every call is tagged with the order context."""

    def get_order(self, order_id: str, *, fresh: bool = False) -> Order:
        payload = self._request(
            "GET",
            f"/orders/{order_id}",
            module=MODULE,
            operation="get_order",
            use_get_cache=not fresh,
            context_key=order_context_key(order_id),
        )
        return Order.model_validate(expect_object(payload, "order"))

    def claim_for_packing(self, order_id: str, packer_id: str) -> Order:
        body = ClaimPackingRequest(packer_id=packer_id)
        payload = self._mutate(order_id, "claim", f"/orders/{order_id}/claim-for-packing", body.model_dump())
        return Order.model_validate(expect_object(payload, "claim order"))

    def verify_item(self, order_id: str, order_item_id: str, quantity: int = 1) -> None:
        body = VerifyPackingRequest(order_item_id=order_item_id, quantity=quantity)
        self._mutate(order_id, "verify", f"/orders/{order_id}/verify-packing", body.model_dump())

    def skip_item(self, order_id: str, order_item_id: str, reason: str) -> None:
        body = SkipPackingItemRequest(order_item_id=order_item_id, reason=reason)
        self._mutate(order_id, "skip", f"/orders/{order_id}/skip-packing-item", body.model_dump())

    def undo_verification(self, order_id: str, order_item_id: str, reason: str, quantity: int = 1) -> None:
        body = UndoPackingVerificationRequest(order_item_id=order_item_id, quantity=quantity, reason=reason)
        self._mutate(
            order_id,
            "undo",
            f"/orders/{order_id}/undo-packing-verification",
            body.model_dump(),
        )

    def unclaim_packing(self, order_id: str, packer_id: str, reason: str) -> None:
        body = UnclaimPackingRequest(packer_id=packer_id, reason=reason)
        self._mutate(order_id, "unclaim", f"/orders/{order_id}/unclaim-packing", body.model_dump())

    def set_item_status(self, order_id: str, order_item_id: str, status: str) -> None:
        body = ItemStatusUpdateRequest(status=status)
        self._mutate(
            order_id,
            "set_item_status",
            f"/orders/{order_id}/pick-task/{order_item_id}",
            body.model_dump(),
            method="PUT",
        )

    def complete_packing(self, order_id: str, packer_id: str) -> None:
        body = CompletePackingRequest(order_id=order_id, packer_id=packer_id)
        self._mutate(
            order_id,
            "complete",
            f"/orders/{order_id}/complete-packing",
            body.model_dump(by_alias=True),
        )

    def _mutate(self, order_id: str, operation: str, path: str, body: dict, *, method: str = "POST"):
        keys = new_idempotency_keys()
        try:
            return self._request(
                method,
                path,
                json_body=body,
                headers=keys.headers(),
                module=MODULE,
                operation=operation,
                context_key=order_context_key(order_id),
                invalidate_paths=[f"/orders/{order_id}"],
            )
        except ApiError as exc:
            refined = refine_packing_error(exc, operation=operation)
            if refined is exc:
                raise
            raise refined from exc
