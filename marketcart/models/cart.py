"""Cart models"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, computed_field, model_validator

from .notices import CartNotice


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CartItem(BaseModel):
    """One purchasable line, unique per (product_id, seller_id)"""
    product_id: str
    product_name: str
    product_sku: Optional[str] = None
    unit_price: Decimal = Field(ge=0)  # snapshot taken when the line was added
    sale_price: Optional[Decimal] = Field(default=None, ge=0)
    quantity: int = Field(ge=1)
    stock_quantity: int = Field(ge=1)
    unit_of_measurement: str = "each"
    currency: str
    image_url: Optional[str] = None
    seller_id: str
    seller_name: str
    added_at: datetime = Field(default_factory=utcnow)
    stock_limited: bool = False

    class Config:
        frozen = True

    @model_validator(mode="after")
    def _quantity_within_stock(self) -> "CartItem":
        if self.quantity > self.stock_quantity:
            raise ValueError(
                f"quantity {self.quantity} exceeds available stock {self.stock_quantity}"
            )
        return self

    @property
    def key(self) -> tuple[str, str]:
        return (self.product_id, self.seller_id)

    @computed_field
    @property
    def effective_unit_price(self) -> Decimal:
        """Sale price when it undercuts the unit price"""
        if self.sale_price is not None and self.sale_price < self.unit_price:
            return self.sale_price
        return self.unit_price

    @computed_field
    @property
    def total_price(self) -> Decimal:
        return self.effective_unit_price * self.quantity


class SellerGroup(BaseModel):
    """Items from one seller; always derived, never stored"""
    seller_id: str
    seller_name: str
    items: list[CartItem] = []
    subtotal: Decimal
    estimated_shipping: Decimal
    total: Decimal
    minimum_order_amount: Decimal = Decimal("0")

    @computed_field
    @property
    def meets_minimum_order(self) -> bool:
        return self.subtotal >= self.minimum_order_amount

    @computed_field
    @property
    def amount_to_minimum(self) -> Decimal:
        """How much more the buyer must add to reach the seller's minimum"""
        if self.meets_minimum_order:
            return self.subtotal * 0
        return self.minimum_order_amount - self.subtotal


class Cart(BaseModel):
    """Read-only cart snapshot with every derived field filled in"""
    id: str
    buyer_id: str
    seller_groups: list[SellerGroup] = []
    total_items: int = 0
    unique_products: int = 0
    subtotal: Decimal
    platform_fee_percent: Decimal
    platform_fee_amount: Decimal
    estimated_shipping: Decimal
    estimated_tax: Decimal
    total: Decimal
    currency: str
    revision: int = 0
    updated_at: datetime
    last_synced_at: Optional[datetime] = None
    notices: list[CartNotice] = []

    @property
    def is_empty(self) -> bool:
        return not self.seller_groups

    @property
    def items(self) -> list[CartItem]:
        return [item for group in self.seller_groups for item in group.items]

    @computed_field
    @property
    def checkout_ready(self) -> bool:
        """Non-empty and every seller's minimum order is met"""
        return not self.is_empty and all(g.meets_minimum_order for g in self.seller_groups)

    def find_item(self, product_id: str, seller_id: str) -> Optional[CartItem]:
        return next((i for i in self.items if i.key == (product_id, seller_id)), None)

    def find_group(self, seller_id: str) -> Optional[SellerGroup]:
        return next((g for g in self.seller_groups if g.seller_id == seller_id), None)


class CartSummary(BaseModel):
    """Compact cart view for navigation badges and checkout buttons"""
    total_items: int
    unique_products: int
    seller_count: int
    total: Decimal
    currency: str
    checkout_ready: bool

    @classmethod
    def from_cart(cls, cart: Cart) -> "CartSummary":
        return cls(
            total_items=cart.total_items,
            unique_products=cart.unique_products,
            seller_count=len(cart.seller_groups),
            total=cart.total,
            currency=cart.currency,
            checkout_ready=cart.checkout_ready,
        )


@dataclass(frozen=True)
class CartState:
    """
    Source data of a cart.

    Only items and identity live here; seller groups and totals are derived
    from it by the pricing module on demand.
    """
    cart_id: str
    buyer_id: str
    currency: Optional[str] = None
    items: tuple[CartItem, ...] = ()
    revision: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_synced_at: Optional[datetime] = None

    def find(self, product_id: str, seller_id: str) -> Optional[CartItem]:
        return next((i for i in self.items if i.key == (product_id, seller_id)), None)
