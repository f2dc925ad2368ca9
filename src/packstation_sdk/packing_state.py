from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum

from .models_orders import SUPERVISORY_ROLES, TERMINAL_PACKING_STATUSES, Order


@dataclass(frozen=True)
class PackingActor:
    """The worker acting on an order. Passed explicitly to every operation."""

    user_id: str
    role: str = "PACKER"

    @property
    def is_supervisor(self) -> bool:
        return (self.role or "").upper() in SUPERVISORY_ROLES


class ClaimState(str, Enum):
    UNCLAIMED = "UNCLAIMED"
    OWNED_BY_ME = "OWNED_BY_ME"
    OWNED_BY_OTHER = "OWNED_BY_OTHER"
    VIEW_ONLY = "VIEW_ONLY"


class SessionPhase(str, Enum):
    IDLE = "IDLE"
    CLAIMING = "CLAIMING"
    CLAIMED = "CLAIMED"
    VERIFYING = "VERIFYING"
    VIEW_ONLY = "VIEW_ONLY"
    CLOSED = "CLOSED"


def resolve_claim_state(order: Order, actor: PackingActor) -> ClaimState:
    if order.normalized_status in TERMINAL_PACKING_STATUSES:
        return ClaimState.VIEW_ONLY
    owner = order.claimed_by
    if owner and owner != actor.user_id:
        return ClaimState.VIEW_ONLY if actor.is_supervisor else ClaimState.OWNED_BY_OTHER
    if owner == actor.user_id:
        return ClaimState.OWNED_BY_ME
    return ClaimState.UNCLAIMED


class PhaseTransitionError(RuntimeError):
    pass


@dataclass
class OrderSessionState:
    """Per-order session state: the phase enum plus the claim bookkeeping flags.

    All check-and-set operations hold the lock so that a second evaluation can
    never slip in between reading a flag and setting it.
    """

    order_id: str
    phase: SessionPhase = SessionPhase.IDLE
    claim_attempted: bool = False
    claim_error: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def claim_in_flight(self) -> bool:
        return self.phase is SessionPhase.CLAIMING

    @property
    def is_view_only(self) -> bool:
        return self.phase is SessionPhase.VIEW_ONLY

    @property
    def is_closed(self) -> bool:
        return self.phase is SessionPhase.CLOSED

    def begin_claim(self) -> bool:
        with self._lock:
            if self.claim_attempted or self.phase is not SessionPhase.IDLE:
                return False
            self.claim_attempted = True
            self.phase = SessionPhase.CLAIMING
            self.claim_error = None
            return True

    def finish_claim(self, *, error: str | None = None) -> None:
        with self._lock:
            if self.phase is not SessionPhase.CLAIMING:
                return
            self.phase = SessionPhase.IDLE if error else SessionPhase.CLAIMED
            self.claim_error = error

    def mark_claimed(self) -> None:
        with self._lock:
            if self.phase in {SessionPhase.IDLE, SessionPhase.CLAIMING}:
                self.claim_attempted = True
                self.phase = SessionPhase.CLAIMED

    def allow_claim_retry(self) -> None:
        with self._lock:
            if self.phase is SessionPhase.IDLE:
                self.claim_attempted = False
                self.claim_error = None

    def reset_claim(self) -> None:
        with self._lock:
            self.claim_attempted = False
            self.claim_error = None
            if self.phase is not SessionPhase.CLOSED:
                self.phase = SessionPhase.IDLE

    def begin_verify(self) -> bool:
        with self._lock:
            if self.phase is not SessionPhase.CLAIMED:
                return False
            self.phase = SessionPhase.VERIFYING
            return True

    def finish_verify(self) -> None:
        with self._lock:
            if self.phase is SessionPhase.VERIFYING:
                self.phase = SessionPhase.CLAIMED

    def enter_view_only(self) -> None:
        with self._lock:
            if self.phase is SessionPhase.CLOSED:
                raise PhaseTransitionError(f"Session for order {self.order_id} is closed")
            self.phase = SessionPhase.VIEW_ONLY

    def close(self) -> None:
        with self._lock:
            self.phase = SessionPhase.CLOSED


@dataclass(frozen=True)
class PackingActionAvailability:
    can_scan: bool
    can_report_problem: bool
    can_revert_skip: bool
    can_undo: bool
    can_unclaim: bool
    can_finalize: bool
    can_retry_claim: bool


_NOTHING = PackingActionAvailability(False, False, False, False, False, False, False)

UNCLAIMABLE_STATUSES = frozenset({"PICKING", "PICKED", "PACKING"})


def packing_action_availability(
    claim_state: ClaimState,
    phase: SessionPhase,
    *,
    order_status: str,
    ready_to_finalize: bool,
) -> PackingActionAvailability:
    if claim_state is ClaimState.VIEW_ONLY or phase in {SessionPhase.VIEW_ONLY, SessionPhase.CLOSED}:
        return _NOTHING
    if claim_state is not ClaimState.OWNED_BY_ME or phase is SessionPhase.CLAIMING:
        retry = (
            claim_state in {ClaimState.UNCLAIMED, ClaimState.OWNED_BY_OTHER}
            and phase is SessionPhase.IDLE
        )
        return PackingActionAvailability(False, False, False, False, False, False, retry)

    idle = phase is SessionPhase.CLAIMED
    status = (order_status or "").upper()
    return PackingActionAvailability(
        can_scan=idle and not ready_to_finalize,
        can_report_problem=idle and not ready_to_finalize,
        can_revert_skip=idle,
        can_undo=idle,
        can_unclaim=idle and status in UNCLAIMABLE_STATUSES,
        can_finalize=idle and ready_to_finalize,
        can_retry_claim=False,
    )
