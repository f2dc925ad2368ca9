from .base import BaseClient
from .orders_client import PackingOrdersClient, order_context_key
from .shipping_client import CarrierRatesClient, ShippingClient

__all__ = [
    "BaseClient",
    "CarrierRatesClient",
    "PackingOrdersClient",
    "ShippingClient",
    "order_context_key",
]
