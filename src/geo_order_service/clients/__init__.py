"""Outbound integration clients."""

from geo_order_service.clients.provider import (
    PriceEstimate,
    ProviderClient,
    ProviderResource,
    ProviderStatus,
)

__all__ = ["PriceEstimate", "ProviderClient", "ProviderResource", "ProviderStatus"]
