"""
Marketplace Cart

Multi-seller shopping cart aggregation, pricing and synchronization.
"""

from .errors import (
    CartError,
    CartContractError,
    CurrencyMismatchError,
    UnknownCurrencyError,
    UnknownSellerPolicyError,
    ItemNotFoundError,
    InvalidQuantityError,
    CartNotFoundError,
    GatewayError,
    GatewayTransientError,
    GatewayRejectedError,
)
from .models import (
    Cart,
    CartItem,
    SellerGroup,
    ProductListing,
    SellerInfo,
    PricingPolicy,
    SellerPolicy,
    StockLimitedWarning,
    PriceChangedNotice,
    ItemRemovedNotice,
    ChangeRejectedNotice,
)
from .services import CartEngine, CartSynchronizer, HttpCartGateway

__all__ = [
    "CartError",
    "CartContractError",
    "CurrencyMismatchError",
    "UnknownCurrencyError",
    "UnknownSellerPolicyError",
    "ItemNotFoundError",
    "InvalidQuantityError",
    "CartNotFoundError",
    "GatewayError",
    "GatewayTransientError",
    "GatewayRejectedError",
    "Cart",
    "CartItem",
    "SellerGroup",
    "ProductListing",
    "SellerInfo",
    "PricingPolicy",
    "SellerPolicy",
    "StockLimitedWarning",
    "PriceChangedNotice",
    "ItemRemovedNotice",
    "ChangeRejectedNotice",
    "CartEngine",
    "CartSynchronizer",
    "HttpCartGateway",
]
