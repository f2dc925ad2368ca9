from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PICKING = "PICKING"
    PICKED = "PICKED"
    PACKING = "PACKING"
    PACKED = "PACKED"
    SHIPPED = "SHIPPED"
    CANCELLED = "CANCELLED"
    BACKORDER = "BACKORDER"


TERMINAL_PACKING_STATUSES = frozenset({OrderStatus.PACKED.value, OrderStatus.SHIPPED.value})


class OrderItemStatus(str, Enum):
    PENDING = "PENDING"
    SKIPPED = "SKIPPED"


class UserRole(str, Enum):
    PICKER = "PICKER"
    PACKER = "PACKER"
    SUPERVISOR = "SUPERVISOR"
    ADMIN = "ADMIN"


SUPERVISORY_ROLES = frozenset({UserRole.SUPERVISOR.value, UserRole.ADMIN.value})


class OrderItem(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    order_item_id: str = Field(alias="orderItemId")
    sku: str
    name: str | None = None
    barcode: str | None = None
    quantity: int = Field(ge=0)
    verified_quantity: int = Field(default=0, alias="verifiedQuantity")
    status: str = OrderItemStatus.PENDING.value
    skip_reason: str | None = Field(default=None, alias="skipReason")

    @property
    def is_skipped(self) -> bool:
        return (self.status or "").upper() == OrderItemStatus.SKIPPED.value

    @property
    def is_complete(self) -> bool:
        return self.verified_quantity >= self.quantity

    @property
    def label(self) -> str:
        return f"{self.name} ({self.sku})" if self.name else self.sku


class ShippingAddress(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    company: str | None = None
    address_line1: str = Field(alias="addressLine1")
    address_line2: str | None = Field(default=None, alias="addressLine2")
    city: str
    state: str = ""
    postal_code: str = Field(alias="postalCode")
    country: str


class Order(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    order_id: str = Field(alias="orderId")
    customer_id: str | None = Field(default=None, alias="customerId")
    customer_name: str | None = Field(default=None, alias="customerName")
    status: str
    packer_id: str | None = Field(default=None, alias="packerId")
    items: list[OrderItem] = Field(default_factory=list)
    shipping_address: ShippingAddress | None = Field(default=None, alias="shippingAddress")
    packed_at: datetime | None = Field(default=None, alias="packedAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    @property
    def normalized_status(self) -> str:
        return (self.status or "").upper()

    @property
    def claimed_by(self) -> str | None:
        return self.packer_id or None

    def item(self, order_item_id: str) -> OrderItem | None:
        for item in self.items:
            if item.order_item_id == order_item_id:
                return item
        return None

    def index_of(self, order_item_id: str) -> int:
        for index, item in enumerate(self.items):
            if item.order_item_id == order_item_id:
                return index
        return -1


class ClaimPackingRequest(BaseModel):
    packer_id: str


class VerifyPackingRequest(BaseModel):
    order_item_id: str
    quantity: int = Field(default=1, ge=1)


class SkipPackingItemRequest(BaseModel):
    order_item_id: str
    reason: str = Field(min_length=1)


class UndoPackingVerificationRequest(BaseModel):
    order_item_id: str
    quantity: int = Field(default=1, ge=1)
    reason: str = Field(min_length=1)


class UnclaimPackingRequest(BaseModel):
    packer_id: str
    reason: str = Field(min_length=1)


class ItemStatusUpdateRequest(BaseModel):
    status: str


class CompletePackingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderId")
    packer_id: str = Field(alias="packerId")
