"""Wire models exchanged with the cart persistence backend"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from .notices import RemovalReason


class RemoteCartItem(BaseModel):
    """Cart line as stored by the backend"""
    id: Optional[str] = None
    product_id: str
    product_name: str
    product_sku: Optional[str] = None
    unit_price: Decimal
    sale_price: Optional[Decimal] = None
    quantity: int
    currency: str
    image_url: Optional[str] = None
    stock_quantity: int
    unit_of_measurement: str = "each"
    seller_org_id: str
    seller_name: str
    added_at: Optional[datetime] = None


class RemoteSellerGroup(BaseModel):
    seller_org_id: str
    seller_name: str
    items: list[RemoteCartItem] = []
    estimated_shipping: Decimal = Decimal("0")


class RemoteCart(BaseModel):
    """
    Server copy of a cart.

    Totals sent by the server are accepted on the wire but never trusted;
    the engine derives its own from the items.
    """
    id: str
    revision: int = 0
    currency: str = "USD"
    seller_groups: list[RemoteSellerGroup] = []
    platform_fee_percent: Optional[Decimal] = None
    subtotal: Optional[Decimal] = None
    total: Optional[Decimal] = None
    updated_at: Optional[datetime] = None

    @property
    def items(self) -> list[RemoteCartItem]:
        return [item for group in self.seller_groups for item in group.items]

    @property
    def shipping_by_seller(self) -> dict[str, Decimal]:
        return {g.seller_org_id: g.estimated_shipping for g in self.seller_groups}


class Rejection(BaseModel):
    """Server refusal of a single line, applied regardless of staleness"""
    product_id: str
    seller_org_id: str
    reason: RemovalReason
    available_quantity: Optional[int] = Field(default=None, ge=0)
    detail: Optional[str] = None


class PersistResult(BaseModel):
    """Response to a batch of persisted operations"""
    cart: RemoteCart
    rejections: list[Rejection] = []
