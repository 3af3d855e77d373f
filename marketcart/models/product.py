"""Catalog models the cart is fed from"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class ProductListing(BaseModel):
    """A seller's listing as shown in the marketplace catalog"""
    product_id: str
    product_name: str
    product_sku: Optional[str] = None
    price: Decimal = Field(ge=0)
    sale_price: Optional[Decimal] = Field(default=None, ge=0)
    currency: str = "USD"
    stock_quantity: int = Field(ge=0, default=0)
    unit_of_measurement: str = "each"
    image_url: Optional[str] = None

    class Config:
        from_attributes = True


class SellerInfo(BaseModel):
    """Seller organization that owns a listing"""
    seller_id: str
    seller_name: str
