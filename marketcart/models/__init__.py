# Cart Models

from .product import ProductListing, SellerInfo
from .policy import PricingPolicy, SellerPolicy
from .notices import (
    CartNotice,
    StockLimitedWarning,
    PriceChangedNotice,
    ItemRemovedNotice,
    ChangeRejectedNotice,
    RemovalReason,
)
from .cart import Cart, CartItem, CartState, CartSummary, SellerGroup
from .operations import MutationOp, OperationType
from .remote import (
    RemoteCart,
    RemoteCartItem,
    RemoteSellerGroup,
    Rejection,
    PersistResult,
)

__all__ = [
    "ProductListing",
    "SellerInfo",
    "PricingPolicy",
    "SellerPolicy",
    "CartNotice",
    "StockLimitedWarning",
    "PriceChangedNotice",
    "ItemRemovedNotice",
    "ChangeRejectedNotice",
    "RemovalReason",
    "Cart",
    "CartItem",
    "CartState",
    "CartSummary",
    "SellerGroup",
    "MutationOp",
    "OperationType",
    "RemoteCart",
    "RemoteCartItem",
    "RemoteSellerGroup",
    "Rejection",
    "PersistResult",
]
