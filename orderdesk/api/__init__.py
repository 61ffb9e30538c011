"""HTTP client for the order-management backend."""

from .client import (
    LOCAL_REFRESH_TOKEN_KEY,
    LOCAL_TOKEN_KEY,
    OrderDeskAPIError,
    OrderDeskClient,
)

__all__ = [
    "LOCAL_REFRESH_TOKEN_KEY",
    "LOCAL_TOKEN_KEY",
    "OrderDeskAPIError",
    "OrderDeskClient",
]
