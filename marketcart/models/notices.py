"""Advisory notices surfaced to the UI alongside a cart snapshot"""

from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class RemovalReason(str, Enum):
    """Why the server took an item out of the cart"""
    DELISTED = "delisted"
    SELLER_INACTIVE = "seller_inactive"
    OUT_OF_STOCK = "out_of_stock"
    CURRENCY_MISMATCH = "currency_mismatch"


class StockLimitedWarning(BaseModel):
    """Requested quantity was clamped to the available stock"""
    kind: Literal["stock_limited"] = "stock_limited"
    product_id: str
    seller_id: str
    requested_quantity: int
    available_quantity: int

    @property
    def message(self) -> str:
        return (
            f"Only {self.available_quantity} of {self.product_id} available, "
            f"requested {self.requested_quantity}"
        )


class PriceChangedNotice(BaseModel):
    """Price differs from the one captured when the item was added"""
    kind: Literal["price_changed"] = "price_changed"
    product_id: str
    seller_id: str
    previous_price: Decimal
    current_price: Decimal

    @property
    def message(self) -> str:
        return f"Price of {self.product_id} changed from {self.previous_price} to {self.current_price}"


class ItemRemovedNotice(BaseModel):
    """Item was removed by an authoritative server decision"""
    kind: Literal["item_removed"] = "item_removed"
    product_id: str
    seller_id: str
    reason: RemovalReason
    detail: Optional[str] = None

    @property
    def message(self) -> str:
        return f"{self.product_id} was removed from your cart ({self.reason.value})"


class ChangeRejectedNotice(BaseModel):
    """A local edit the server refused; it was undone"""
    kind: Literal["change_rejected"] = "change_rejected"
    operation: str
    product_id: Optional[str] = None
    seller_id: Optional[str] = None
    detail: Optional[str] = None

    @property
    def message(self) -> str:
        target = f" of {self.product_id}" if self.product_id else ""
        reason = f": {self.detail}" if self.detail else ""
        return f"Your {self.operation.replace('_', ' ')}{target} could not be saved{reason}"


CartNotice = Annotated[
    Union[StockLimitedWarning, PriceChangedNotice, ItemRemovedNotice, ChangeRejectedNotice],
    Field(discriminator="kind"),
]
