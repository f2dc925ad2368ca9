from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Carrier(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    carrier_id: str = Field(alias="carrierId")
    name: str
    carrier_code: str = Field(alias="carrierCode")
    service_types: list[str] = Field(default_factory=list, alias="serviceTypes")
    is_active: bool = Field(default=True, alias="isActive")


class Address(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    company: str | None = None
    address_line1: str = Field(alias="addressLine1")
    address_line2: str | None = Field(default=None, alias="addressLine2")
    city: str
    state: str = ""
    postal_code: str = Field(alias="postalCode")
    country: str


class RatePackage(BaseModel):
    length: float = 10
    width: float = 10
    height: float = 10
    weight: float
    units: int = Field(ge=1)


class RateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    destination: Address
    packages: list[RatePackage]


class CarrierShipmentRequest(RateRequest):
    quote_id: str = Field(alias="quoteId")


class RateQuote(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    quote_id: str = Field(alias="QuoteId")
    carrier: str = Field(alias="Carrier")
    service: str = Field(alias="Service")
    total_price: float = Field(alias="TotalPrice")
    transit_days: int | None = Field(default=None, alias="TransitDays")
    description: str | None = Field(default=None, alias="Description")


class RateRejection(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    carrier: str = Field(alias="Carrier")
    reason: str = Field(alias="Reason")


class RateResponse(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    quotes: list[RateQuote] = Field(default_factory=list, alias="Quotes")
    rejected: list[RateRejection] = Field(default_factory=list, alias="Rejected")
    validation_errors: dict[str, str] = Field(default_factory=dict, alias="ValidationErrors")


class CarrierShipmentResponse(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    consignment_no: str = Field(alias="ConsignmentNo")
    consignment_id: str | None = Field(default=None, alias="ConsignmentId")


class LabelResponse(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    connote: str
    format: str
    content_type: str = Field(alias="contentType")
    data: str


class ShipmentCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderId")
    carrier_id: str = Field(alias="carrierId")
    service_type: str = Field(alias="serviceType")
    shipping_method: str = Field(default="STANDARD", alias="shippingMethod")
    ship_from_address: Address = Field(alias="shipFromAddress")
    ship_to_address: Address = Field(alias="shipToAddress")
    total_weight: float = Field(gt=0, alias="totalWeight")
    total_packages: int = Field(ge=1, alias="totalPackages")
    created_by: str | None = Field(default=None, alias="createdBy")


class Shipment(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    shipment_id: str = Field(alias="shipmentId")
    order_id: str | None = Field(default=None, alias="orderId")
    carrier_id: str | None = Field(default=None, alias="carrierId")
    tracking_number: str | None = Field(default=None, alias="trackingNumber")
    status: str | None = None
    created_at: datetime | None = Field(default=None, alias="createdAt")
