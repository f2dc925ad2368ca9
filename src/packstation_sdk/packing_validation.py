from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from .models_orders import OrderItem

if TYPE_CHECKING:
    from .shipment_finalizer import ShippingDraft


@dataclass(frozen=True)
class ValidationIssue:
    row_index: int | None
    field: str
    reason: str


class ClientValidationError(ValueError):
    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = issues
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if not self.issues:
            return "Validation failed"
        issue = self.issues[0]
        location = f"row {issue.row_index}" if issue.row_index is not None else "payload"
        return f"{location} {issue.field}: {issue.reason}"

    @property
    def reason(self) -> str:
        return self.issues[0].reason if self.issues else "Validation failed"


def normalize_scan(value: str | None) -> str:
    return (value or "").strip()


def expected_scan_token(item: OrderItem) -> str:
    """The token an operator must scan for this item: its barcode, else its SKU."""
    barcode = normalize_scan(item.barcode)
    return barcode or normalize_scan(item.sku)


def scan_matches(item: OrderItem, scanned: str | None) -> bool:
    token = normalize_scan(scanned)
    return bool(token) and token == expected_scan_token(item)


def require_reason(reason: str | None, *, field: str = "reason", action: str = "this action") -> str:
    cleaned = (reason or "").strip()
    if not cleaned:
        _raise_issue(None, field, f"a reason is required for {action}")
    return cleaned


@dataclass(frozen=True)
class UnclaimReason:
    reason_id: str
    label: str
    category: str
    requires_notes: bool = False


_UNCLAIM_CATEGORIES = {
    "equipment": "Equipment Issues",
    "staff": "Staff Issues",
    "order": "Order Problems",
    "inventory": "Inventory Issues",
    "other": "Other",
}

UNCLAIM_REASONS: dict[str, UnclaimReason] = {
    reason.reason_id: reason
    for reason in (
        UnclaimReason("scanner_malfunction", "Scanner Malfunction", "equipment"),
        UnclaimReason("pallet_jack_broken", "Pallet Jack Broken", "equipment"),
        UnclaimReason("label_printer_down", "Label Printer Down", "equipment"),
        UnclaimReason("other_equipment", "Other Equipment", "equipment", requires_notes=True),
        UnclaimReason("illness", "Illness", "staff"),
        UnclaimReason("emergency", "Emergency", "staff"),
        UnclaimReason("injury", "Injury", "staff"),
        UnclaimReason("wrong_items", "Wrong Items", "order", requires_notes=True),
        UnclaimReason("damaged_items", "Damaged Items", "order", requires_notes=True),
        UnclaimReason("missing_items", "Missing Items", "order", requires_notes=True),
        UnclaimReason("complex_order", "Complex Order", "order", requires_notes=True),
        UnclaimReason("cannot_locate", "Cannot Locate", "inventory", requires_notes=True),
        UnclaimReason("bin_empty", "Bin Empty", "inventory", requires_notes=True),
        UnclaimReason("wrong_bin", "Wrong Bin Location", "inventory", requires_notes=True),
        UnclaimReason("stock_discrepancy", "Stock Discrepancy", "inventory", requires_notes=True),
        UnclaimReason("other", "Other", "other", requires_notes=True),
    )
}


def compose_unclaim_reason(reason_id: str, notes: str | None = None) -> str:
    reason = UNCLAIM_REASONS.get(reason_id)
    if reason is None:
        _raise_issue(None, "reason_id", f"unknown unclaim reason {reason_id!r}")
    cleaned_notes = (notes or "").strip()
    if reason.requires_notes and not cleaned_notes:
        _raise_issue(None, "notes", f"notes are required for '{reason.label}'")
    text = f"[{_UNCLAIM_CATEGORIES[reason.category]}] {reason.label}"
    if cleaned_notes:
        text = f"{text}\n\nAdditional notes: {cleaned_notes}"
    return text


def parse_positive_decimal(value: object, field: str, message: str) -> Decimal:
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        _raise_issue(None, field, message)
    if not parsed.is_finite() or parsed <= 0:
        _raise_issue(None, field, message)
    return parsed


def parse_positive_int(value: object, field: str, message: str) -> int:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        _raise_issue(None, field, message)
    if parsed <= 0:
        _raise_issue(None, field, message)
    return parsed


def validate_shipping_draft(
    draft: ShippingDraft,
    *,
    requires_quote: bool,
    carrier_known: bool = True,
) -> tuple[Decimal, int]:
    """Check a shipping draft before any network call; returns (weight_lbs, package_count)."""
    if not draft.carrier_id:
        _raise_issue(None, "carrier_id", "Please select a carrier")
    if not carrier_known:
        _raise_issue(None, "carrier_id", "Please select a carrier from the carrier list")
    if requires_quote and draft.selected_quote is None:
        _raise_issue(None, "selected_quote", "Please select a shipping rate/quote")
    if not requires_quote and not (draft.tracking_number or "").strip():
        _raise_issue(None, "tracking_number", "Please enter a tracking number")
    weight = parse_positive_decimal(draft.weight, "weight", "Please enter a valid weight")
    packages = parse_positive_int(draft.package_count, "package_count", "Please enter a valid number of packages")
    return weight, packages


def _raise_issue(row_index: int | None, field: str, reason: str) -> None:
    raise ClientValidationError([ValidationIssue(row_index=row_index, field=field, reason=reason)])
