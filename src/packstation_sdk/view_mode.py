from __future__ import annotations

import logging
import threading
from typing import Callable

from .exceptions import ApiError, RequestCancelledError
from .models_orders import TERMINAL_PACKING_STATUSES, Order
from .session_context import PackingContext

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 2.0


class ViewModeSynchronizer:
    """Keeps a read-only session current by polling the order.

    Polling never writes. It stops when the session closes or the order reaches
    a terminal packing status.
    """

    def __init__(
        self,
        context: PackingContext,
        *,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        on_update: Callable[[Order], None] | None = None,
    ) -> None:
        self.context = context
        self.interval_seconds = interval_seconds
        self.on_update = on_update
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        if self.running:
            return False
        if self._is_terminal(self.context.order()):
            logger.info("Order %s is already %s; view polling not started", self.context.order_id, self.context.order().status)
            return False
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"view-mode-{self.context.order_id}",
            daemon=True,
        )
        self._thread.start()
        self.context.emit("view_mode", "view_polling_started", "poll")
        return True

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def poll_once(self) -> bool:
        """Fetch the order once. Returns False when polling should end."""
        ctx = self.context
        if ctx.state.is_closed:
            return False
        try:
            order = ctx.refresh()
        except RequestCancelledError:
            return False
        except ApiError as exc:
            logger.warning("View polling for order %s failed: %s", ctx.order_id, exc)
            return True
        if self.on_update is not None:
            self.on_update(order)
        if self._is_terminal(order):
            logger.info("Order %s reached %s; view polling stopped", ctx.order_id, order.status)
            return False
        return True

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            if not self.poll_once():
                break
        self._stop.set()

    @staticmethod
    def _is_terminal(order: Order) -> bool:
        return order.normalized_status in TERMINAL_PACKING_STATUSES
