"""Pricing policy models"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from ..errors import UnknownSellerPolicyError


class SellerPolicy(BaseModel):
    """Per-seller shipping estimate and minimum order"""
    shipping_estimate: Decimal = Field(default=Decimal("0"), ge=0)
    minimum_order_amount: Decimal = Field(default=Decimal("0"), ge=0)


class PricingPolicy(BaseModel):
    """
    Marketplace pricing policy applied to a cart.

    Percentages are expressed as percent values (5 means 5%). The platform fee
    and per-seller shipping estimates are normally supplied by the server.
    """
    currency: str = "USD"
    platform_fee_percent: Decimal = Field(default=Decimal("0"), ge=0)
    tax_rate_percent: Decimal = Field(default=Decimal("0"), ge=0)
    seller_policies: dict[str, SellerPolicy] = {}
    default_seller_policy: Optional[SellerPolicy] = None

    def seller_policy(self, seller_id: str) -> SellerPolicy:
        """Look up the policy for a seller, falling back to the default"""
        policy = self.seller_policies.get(seller_id, self.default_seller_policy)
        if policy is None:
            raise UnknownSellerPolicyError(seller_id)
        return policy

    def with_platform_fee(self, platform_fee_percent: Decimal) -> "PricingPolicy":
        return self.model_copy(update={"platform_fee_percent": platform_fee_percent})

    def with_seller_shipping(self, shipping: dict[str, Decimal]) -> "PricingPolicy":
        """Copy of the policy with server-supplied shipping estimates merged in"""
        if not shipping:
            return self

        policies = dict(self.seller_policies)
        for seller_id, estimate in shipping.items():
            base = policies.get(seller_id, self.default_seller_policy) or SellerPolicy()
            policies[seller_id] = base.model_copy(update={"shipping_estimate": estimate})
        return self.model_copy(update={"seller_policies": policies})
