from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

from .models_orders import Order

logger = logging.getLogger(__name__)

OrderListener = Callable[[Order], None]


@dataclass(frozen=True)
class OverlayEntry:
    verified_quantity: int
    stamp: int


@dataclass
class OrderStore:
    """Two-layer view of one order.

    The authoritative layer only ever holds orders returned by the server. The
    overlay holds optimistic ``verified_quantity`` values keyed by order item id.
    Reads merge the overlay over the authoritative order.

    Every write takes a stamp from a monotonic counter. A refresh remembers the
    stamp at which its fetch started: overlay entries written before that point
    are already reflected by the server and are dropped, later ones survive.
    A refresh that started before the last applied refresh is discarded, which
    keeps out-of-order GET responses from rolling state back.
    """

    order_id: str
    _authoritative: Order | None = None
    _overlay: dict[str, OverlayEntry] = field(default_factory=dict)
    _clock: int = 0
    _applied_stamp: int = -1
    _listeners: list[OrderListener] = field(default_factory=list)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def subscribe(self, listener: OrderListener) -> None:
        self._listeners.append(listener)

    @property
    def loaded(self) -> bool:
        return self._authoritative is not None

    @property
    def authoritative(self) -> Order | None:
        return self._authoritative

    def snapshot(self) -> Order:
        with self._lock:
            if self._authoritative is None:
                raise LookupError(f"Order {self.order_id} has not been loaded")
            if not self._overlay:
                return self._authoritative
            items = [
                item.model_copy(update={"verified_quantity": self._overlay[item.order_item_id].verified_quantity})
                if item.order_item_id in self._overlay
                else item
                for item in self._authoritative.items
            ]
            return self._authoritative.model_copy(update={"items": items})

    def begin_refresh(self) -> int:
        with self._lock:
            return self._tick()

    def apply_authoritative(self, order: Order, *, started_at: int | None = None) -> bool:
        """Install a server-confirmed order. Returns False when the response was stale."""
        with self._lock:
            stamp = self._tick() if started_at is None else started_at
            if stamp < self._applied_stamp:
                logger.debug(
                    "Ignoring stale order %s snapshot (started at %s, last applied %s)",
                    self.order_id,
                    stamp,
                    self._applied_stamp,
                )
                return False
            self._applied_stamp = stamp
            self._drop_reflected_overlay(order, stamp)
            self._authoritative = order
            merged = self.snapshot()
        for listener in list(self._listeners):
            listener(merged)
        return True

    def apply_optimistic_verified(self, order_item_id: str, verified_quantity: int) -> None:
        with self._lock:
            self._overlay[order_item_id] = OverlayEntry(verified_quantity=verified_quantity, stamp=self._tick())

    def pending_overlay(self) -> dict[str, int]:
        with self._lock:
            return {key: entry.verified_quantity for key, entry in self._overlay.items()}

    def _drop_reflected_overlay(self, order: Order, stamp: int) -> None:
        for order_item_id, entry in list(self._overlay.items()):
            if entry.stamp > stamp:
                continue
            item = order.item(order_item_id)
            server_value = item.verified_quantity if item is not None else None
            if server_value != entry.verified_quantity:
                logger.warning(
                    "Order %s item %s: optimistic verified=%s, server verified=%s; keeping server value",
                    self.order_id,
                    order_item_id,
                    entry.verified_quantity,
                    server_value,
                )
            del self._overlay[order_item_id]

    def _tick(self) -> int:
        self._clock += 1
        return self._clock
